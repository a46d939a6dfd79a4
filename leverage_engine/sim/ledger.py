"""In-memory token balances implementing asset custody."""
from __future__ import annotations

import logging
from collections import defaultdict

from .faults import FaultPlan, SimulationError

logger = logging.getLogger(__name__)


class TokenLedger:
    """Balances per (holder, asset) with transfer, mint and burn."""

    def __init__(self) -> None:
        self._balances: dict[tuple[str, str], int] = defaultdict(int)
        self.faults = FaultPlan()

    def balance(self, holder: str, asset: str) -> int:
        return self._balances[(holder, asset)]

    def mint(self, holder: str, asset: str, amount: int) -> None:
        self._balances[(holder, asset)] += amount

    def burn(self, holder: str, asset: str, amount: int) -> None:
        if self._balances[(holder, asset)] < amount:
            raise SimulationError(
                f"{holder} holds {self._balances[(holder, asset)]} {asset}, cannot burn {amount}"
            )
        self._balances[(holder, asset)] -= amount

    def transfer(self, asset: str, source: str, destination: str, amount: int) -> None:
        if amount < 0:
            raise SimulationError(f"Negative transfer of {asset}: {amount}")
        self.burn(source, asset, amount)
        self.mint(destination, asset, amount)

    # AssetCustody

    async def pull(self, asset: str, owner: str, account: str, amount: int) -> None:
        self.faults.check("pull", asset)
        self.transfer(asset, owner, account, amount)

    async def push(self, asset: str, account: str, owner: str, amount: int) -> None:
        self.faults.check("push", asset)
        self.transfer(asset, account, owner, amount)

    async def balance_of(self, holder: str, asset: str) -> int:
        return self.balance(holder, asset)
