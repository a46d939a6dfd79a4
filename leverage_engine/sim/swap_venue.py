"""Simulated single-hop swap venue priced off the oracle."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..constants import BPS
from ..valuation import AssetValuation
from .faults import FaultPlan, SimulationError
from .ledger import TokenLedger

logger = logging.getLogger(__name__)


class OracleSwapVenue:
    """Fills every swap at the oracle rate minus a flat fee.

    Inventory is unlimited: input is burned from the account and output is
    minted to it. ``min_out`` and ``deadline`` are enforced like an AMM router.
    """

    def __init__(
        self,
        ledger: TokenLedger,
        valuation: AssetValuation,
        fee_bps: int = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ledger = ledger
        self._valuation = valuation
        self.fee_bps = fee_bps
        self._clock = clock
        self.faults = FaultPlan()

    async def quote(self, from_asset: str, to_asset: str, amount_in: int) -> int:
        expected = await self._valuation.rate(from_asset, to_asset, amount_in)
        return expected * (BPS - self.fee_bps) // BPS

    async def swap_exact(
        self,
        account: str,
        from_asset: str,
        to_asset: str,
        amount_in: int,
        min_out: int,
        deadline: int,
    ) -> int:
        self.faults.check("swap", to_asset)
        if self._clock() > deadline:
            raise SimulationError("Swap deadline expired")
        if min_out <= 0:
            raise SimulationError("min_out must be positive")

        amount_out = await self.quote(from_asset, to_asset, amount_in)
        if amount_out < min_out:
            raise SimulationError(
                f"Insufficient output: {amount_out} {to_asset} < {min_out}"
            )

        self._ledger.burn(account, from_asset, amount_in)
        self._ledger.mint(account, to_asset, amount_out)
        logger.debug(
            "%s swapped %d %s for %d %s", account, amount_in, from_asset, amount_out, to_asset
        )
        return amount_out
