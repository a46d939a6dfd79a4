"""Journaled external steps shared by the builder and the manager.

Each method performs one call against a collaborator, translates failures into
the engine's error types, and records the inverse call on the given journal
(when one is passed).
"""
from __future__ import annotations

import logging
import time

from ..config import EngineConfig
from ..constants import BPS
from ..errors import (
    BorrowFailed,
    LendingOperationFailed,
    LeverageEngineError,
    SwapFailed,
    TransferFailed,
)
from ..interfaces.custody import AssetCustody
from ..interfaces.lending import LendingAdapter
from ..interfaces.swap import SwapAdapter
from ..models import AccountAggregate
from ..valuation import AssetValuation
from .unwind import Compensation, Unwind

logger = logging.getLogger(__name__)


def _record(journal: Unwind | None, description: str, compensate: Compensation) -> None:
    if journal is not None:
        journal.record(description, compensate)


class PositionOperations:
    """Thin, journaled wrapper around lending, swap and custody collaborators."""

    def __init__(
        self,
        lending: LendingAdapter,
        swapper: SwapAdapter,
        custody: AssetCustody,
        valuation: AssetValuation,
        engine: EngineConfig,
    ) -> None:
        self.lending = lending
        self.swapper = swapper
        self.custody = custody
        self.valuation = valuation
        self.engine = engine

    # ------------------------------------------------------------------
    # Custody
    # ------------------------------------------------------------------

    async def pull(
        self, journal: Unwind | None, asset: str, owner: str, account: str, amount: int
    ) -> None:
        try:
            await self.custody.pull(asset, owner, account, amount)
        except LeverageEngineError:
            raise
        except Exception as e:
            raise TransferFailed(
                f"Could not pull {amount} {asset} from {owner}: {e}",
                {"asset": asset, "owner": owner, "amount": amount},
            ) from e

        async def _push_back() -> None:
            available = await self.custody.balance_of(account, asset)
            await self.custody.push(asset, account, owner, min(amount, available))

        _record(journal, f"pull {amount} {asset} from {owner}", _push_back)

    async def push(
        self, journal: Unwind | None, asset: str, account: str, owner: str, amount: int
    ) -> None:
        if amount <= 0:
            return
        try:
            await self.custody.push(asset, account, owner, amount)
        except LeverageEngineError:
            raise
        except Exception as e:
            raise TransferFailed(
                f"Could not push {amount} {asset} to {owner}: {e}",
                {"asset": asset, "owner": owner, "amount": amount},
            ) from e

        _record(
            journal,
            f"push {amount} {asset} to {owner}",
            lambda: self.custody.pull(asset, owner, account, amount),
        )

    # ------------------------------------------------------------------
    # Lending
    # ------------------------------------------------------------------

    async def supply(
        self, journal: Unwind | None, account: str, asset: str, amount: int
    ) -> None:
        try:
            await self.lending.supply(account, asset, amount)
        except LeverageEngineError:
            raise
        except Exception as e:
            raise LendingOperationFailed(
                f"Supply of {amount} {asset} failed: {e}",
                {"asset": asset, "amount": amount},
            ) from e

        _record(
            journal,
            f"supply {amount} {asset}",
            lambda: self.lending.withdraw(account, asset, amount),
        )

    async def borrow(
        self, journal: Unwind | None, account: str, asset: str, amount: int
    ) -> None:
        try:
            await self.lending.borrow(account, asset, amount)
        except LeverageEngineError:
            raise
        except Exception as e:
            raise BorrowFailed(
                f"Borrow of {amount} {asset} failed: {e}",
                {"asset": asset, "amount": amount},
            ) from e

        async def _repay() -> None:
            available = await self.custody.balance_of(account, asset)
            if available < amount:
                # Repay what is on hand; the shortfall still fails this step
                if available > 0:
                    await self.lending.repay(account, asset, available)
                raise LendingOperationFailed(
                    f"Only {available} of {amount} {asset} available to repay",
                    {"asset": asset, "amount": amount, "available": available},
                )
            await self.lending.repay(account, asset, amount)

        _record(journal, f"borrow {amount} {asset}", _repay)

    async def repay(
        self, journal: Unwind | None, account: str, asset: str, amount: int | None
    ) -> int:
        try:
            repaid = await self.lending.repay(account, asset, amount)
        except LeverageEngineError:
            raise
        except Exception as e:
            raise LendingOperationFailed(
                f"Repay of {amount if amount is not None else 'all'} {asset} failed: {e}",
                {"asset": asset, "amount": amount},
            ) from e

        if repaid > 0:
            _record(
                journal,
                f"repay {repaid} {asset}",
                lambda: self.lending.borrow(account, asset, repaid),
            )
        return repaid

    async def withdraw(
        self, journal: Unwind | None, account: str, asset: str, amount: int | None
    ) -> int:
        try:
            withdrawn = await self.lending.withdraw(account, asset, amount)
        except LeverageEngineError:
            raise
        except Exception as e:
            raise LendingOperationFailed(
                f"Withdraw of {amount if amount is not None else 'all'} {asset} failed: {e}",
                {"asset": asset, "amount": amount},
            ) from e

        if withdrawn > 0:
            _record(
                journal,
                f"withdraw {withdrawn} {asset}",
                lambda: self.lending.supply(account, asset, withdrawn),
            )
        return withdrawn

    # ------------------------------------------------------------------
    # Swaps
    # ------------------------------------------------------------------

    async def quote_floor(self, from_asset: str, to_asset: str, amount_in: int) -> int:
        """Oracle-derived output floor after the configured slippage tolerance."""
        expected = await self.valuation.rate(from_asset, to_asset, amount_in)
        return expected * (BPS - self.engine.max_slippage_bps) // BPS

    async def min_out(self, from_asset: str, to_asset: str, amount_in: int) -> int:
        floor = await self.quote_floor(from_asset, to_asset, amount_in)
        if floor <= 0:
            raise SwapFailed(
                f"Swap of {amount_in} {from_asset} to {to_asset} has no minimum output",
                {"from": from_asset, "to": to_asset, "amount_in": amount_in},
            )
        return floor

    def deadline(self) -> int:
        return int(time.time()) + self.engine.swap_deadline_seconds

    async def _swap_exact(
        self, account: str, from_asset: str, to_asset: str, amount_in: int
    ) -> int:
        min_out = await self.min_out(from_asset, to_asset, amount_in)
        try:
            amount_out = await self.swapper.swap_exact(
                account, from_asset, to_asset, amount_in, min_out, self.deadline()
            )
        except LeverageEngineError:
            raise
        except Exception as e:
            raise SwapFailed(
                f"Swap of {amount_in} {from_asset} to {to_asset} failed: {e}",
                {"from": from_asset, "to": to_asset, "amount_in": amount_in},
            ) from e
        if amount_out < min_out:
            raise SwapFailed(
                f"Swap returned {amount_out} {to_asset}, below minimum {min_out}",
                {"amount_out": amount_out, "min_out": min_out},
            )
        return amount_out

    async def swap(
        self,
        journal: Unwind | None,
        account: str,
        from_asset: str,
        to_asset: str,
        amount_in: int,
    ) -> int:
        amount_out = await self._swap_exact(account, from_asset, to_asset, amount_in)
        logger.debug(
            "Swapped %d %s -> %d %s for %s",
            amount_in, from_asset, amount_out, to_asset, account,
        )
        _record(
            journal,
            f"swap {amount_in} {from_asset} -> {amount_out} {to_asset}",
            lambda: self._swap_exact(account, to_asset, from_asset, amount_out),
        )
        return amount_out

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------

    async def refund(
        self,
        account: str,
        owner: str,
        supplied: dict[str, int],
        debt_asset: str,
    ) -> None:
        """Deleverage ``account`` to zero debt and return all it holds to ``owner``.

        ``supplied`` maps every collateral asset the account may hold to the
        amount currently supplied. Debt is repaid first from the debt asset on
        hand, then by withdrawing collateral within the health-factor headroom
        and swapping it into the debt asset. Venue fees are lost, so the owner
        receives slightly less than was deposited when swaps took place.
        """
        on_hand = await self.custody.balance_of(account, debt_asset)
        if on_hand > 0:
            await self.repay(None, account, debt_asset, on_hand)

        max_rounds = self.engine.max_loop_iterations * 2
        rounds = 0
        while True:
            aggregate = await self.lending.get_account_aggregate(account)
            if aggregate.total_debt_usd == 0:
                break
            if rounds >= max_rounds:
                raise LendingOperationFailed(
                    f"{account} still owes ${aggregate.total_debt_usd} after {rounds} round(s)",
                    {"debt_usd": aggregate.total_debt_usd, "rounds": rounds},
                )
            rounds += 1
            await self._deleverage_step(account, supplied, debt_asset, aggregate)

        for asset in supplied:
            await self.withdraw(None, account, asset, None)
            supplied[asset] = 0

        for asset in dict.fromkeys([*supplied, debt_asset]):
            balance = await self.custody.balance_of(account, asset)
            await self.push(None, asset, account, owner, balance)
        logger.info("%s refunded to %s after %d deleverage round(s)", account, owner, rounds)

    async def _deleverage_step(
        self,
        account: str,
        supplied: dict[str, int],
        debt_asset: str,
        aggregate: AccountAggregate,
    ) -> None:
        values = {
            asset: await self.valuation.value_in_usd(asset, amount)
            for asset, amount in supplied.items()
            if amount > 0
        }
        if not values:
            raise LendingOperationFailed(
                f"{account} has debt but no collateral left to sell",
                {"debt_usd": aggregate.total_debt_usd},
            )
        source = max(values, key=values.__getitem__)

        config = await self.lending.get_asset_config(source)
        threshold = config.liquidation_threshold or config.ltv
        headroom = (
            aggregate.total_collateral_usd * aggregate.liquidation_threshold // BPS
            - aggregate.total_debt_usd
        )
        if threshold:
            withdrawable = headroom * BPS // threshold * self.engine.borrow_haircut_bps // BPS
        else:
            withdrawable = values[source]
        needed = aggregate.total_debt_usd * BPS // (BPS - self.engine.max_slippage_bps) + 1
        take_usd = min(withdrawable, needed, values[source])
        if take_usd <= 0:
            raise LendingOperationFailed(
                f"{account} has no withdrawal headroom to deleverage",
                {"debt_usd": aggregate.total_debt_usd, "headroom_usd": headroom},
            )

        amount = min(await self.valuation.usd_to_asset(take_usd, source), supplied[source])
        withdrawn = await self.withdraw(None, account, source, amount)
        supplied[source] -= withdrawn
        await self.swap(None, account, source, debt_asset, withdrawn)
        on_hand = await self.custody.balance_of(account, debt_asset)
        repaid = await self.repay(None, account, debt_asset, on_hand)
        logger.debug(
            "%s deleveraged: sold %d %s, repaid %d %s",
            account, withdrawn, source, repaid, debt_asset,
        )
