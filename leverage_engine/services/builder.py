"""Position construction: safe multi-collateral pass and degen single-asset loop."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ..constants import BPS, LTV_SCALE, PRECISION
from ..errors import (
    BorrowCapacityExceeded,
    DuplicateCollateralAsset,
    ExternalDependencyError,
    IdenticalAssets,
    InvalidAmount,
    InvalidCollateralCount,
    LeverageExceedsSafeMax,
    PositionAlreadyInitialized,
    TargetLeverageNotReached,
    TooManyCollateralAssets,
    UnsupportedAsset,
)
from ..interfaces.lending import LendingAdapter
from ..leverage import (
    LeverageCalculator,
    current_leverage,
    format_leverage,
    target_borrow_usd,
    theoretical_max_leverage,
    validate_leverage,
)
from ..models import CollateralInput, Position, PositionCreated, PositionMode
from ..notifications.dispatcher import NotificationDispatcher
from ..state import PositionState
from ..valuation import AssetValuation
from .operations import PositionOperations
from .unwind import Unwind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _ValuedCollateral:
    asset: str
    amount: int
    usd: int
    ltv: int


class PositionBuilder:
    """Runs one construction strategy against a fresh :class:`PositionState`.

    Nothing is written to the state until every external step has succeeded.
    On failure the position account is deleveraged, everything it holds goes
    back to the owner and the error propagates to the caller.
    """

    def __init__(
        self,
        ops: PositionOperations,
        calculator: LeverageCalculator,
        notifications: NotificationDispatcher,
    ) -> None:
        self._ops = ops
        self._calculator = calculator
        self._notifications = notifications

    @property
    def _lending(self) -> LendingAdapter:
        return self._ops.lending

    @property
    def _valuation(self) -> AssetValuation:
        return self._ops.valuation

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    async def _require_supported(self, asset: str) -> None:
        if not await self._lending.is_asset_supported(asset):
            raise UnsupportedAsset(asset)
        config = await self._lending.get_asset_config(asset)
        if not config.active:
            raise UnsupportedAsset(asset, "not active")

    @staticmethod
    def _require_amounts(collaterals: list[CollateralInput]) -> None:
        for c in collaterals:
            if c.amount <= 0:
                raise InvalidAmount(
                    f"Collateral amount for {c.asset} must be positive",
                    {"asset": c.asset, "amount": c.amount},
                )

    @staticmethod
    def _require_fresh(state: PositionState) -> None:
        if state.initialized:
            raise PositionAlreadyInitialized(
                f"Position {state.position_id} was already constructed",
                {"position_id": state.position_id},
            )

    def _record_refund(
        self,
        journal: Unwind,
        account: str,
        owner: str,
        supplied: dict[str, int],
        debt_asset: str,
    ) -> None:
        journal.record(
            f"refund {account} to {owner}",
            lambda: self._ops.refund(account, owner, supplied, debt_asset),
        )

    # ------------------------------------------------------------------
    # Safe mode
    # ------------------------------------------------------------------

    async def build_safe(
        self,
        state: PositionState,
        owner: str,
        collaterals: list[CollateralInput],
        debt_asset: str,
        leverage: int,
    ) -> Position:
        """Single-pass construction across up to ``max_collateral_assets`` assets."""
        async with state.guard():
            return await self._build_safe(state, owner, collaterals, debt_asset, leverage)

    async def _build_safe(
        self,
        state: PositionState,
        owner: str,
        collaterals: list[CollateralInput],
        debt_asset: str,
        leverage: int,
    ) -> Position:
        self._require_fresh(state)
        validate_leverage(leverage)
        if not collaterals:
            raise InvalidCollateralCount("At least one collateral asset is required")
        if len(collaterals) > state.max_collateral_assets:
            raise TooManyCollateralAssets(
                f"At most {state.max_collateral_assets} collateral assets allowed",
                {"count": len(collaterals)},
            )
        assets = [c.asset for c in collaterals]
        if len(set(assets)) != len(assets):
            raise DuplicateCollateralAsset(
                "Collateral assets must be distinct", {"assets": assets}
            )
        if debt_asset in assets:
            raise IdenticalAssets(debt_asset)
        self._require_amounts(collaterals)

        await self._require_supported(debt_asset)
        for asset in assets:
            await self._require_supported(asset)

        max_safe = await self._calculator.max_safe_leverage(assets)
        if leverage > max_safe:
            raise LeverageExceedsSafeMax(leverage, max_safe)

        valued: list[_ValuedCollateral] = []
        total_usd = 0
        capacity_usd = 0
        for c in collaterals:
            usd = await self._valuation.value_in_usd(c.asset, c.amount)
            ltv = await self._calculator.ltv_of(c.asset)
            valued.append(_ValuedCollateral(c.asset, c.amount, usd, ltv))
            total_usd += usd
            capacity_usd += usd * ltv // LTV_SCALE

        borrow_usd = target_borrow_usd(total_usd, leverage)
        if borrow_usd > capacity_usd:
            raise BorrowCapacityExceeded(
                f"Target borrow ${borrow_usd} exceeds capacity ${capacity_usd}",
                {"borrow_usd": borrow_usd, "capacity_usd": capacity_usd},
            )

        account = state.position_id
        supplied = {v.asset: 0 for v in valued}

        async with Unwind(f"{account} build_safe") as journal:
            self._record_refund(journal, account, owner, supplied, debt_asset)
            for v in valued:
                await self._ops.pull(None, v.asset, owner, account, v.amount)
                await self._ops.supply(None, account, v.asset, v.amount)
                supplied[v.asset] += v.amount

            borrow_amount = 0
            if borrow_usd > 0:
                # Round-up must not push the borrow past capacity at the ceiling
                borrow_amount = min(
                    await self._valuation.usd_to_asset(borrow_usd, debt_asset),
                    await self._valuation.usd_to_asset(capacity_usd, debt_asset) - 1,
                )
                await self._ops.borrow(None, account, debt_asset, borrow_amount)

                shares = await self._fold_dust(
                    self._allocate(valued, borrow_amount, total_usd), valued, debt_asset
                )
                for share_asset, share in shares:
                    if share == 0:
                        continue
                    received = await self._ops.swap(
                        None, account, debt_asset, share_asset, share
                    )
                    await self._ops.supply(None, account, share_asset, received)
                    supplied[share_asset] += received

            position = state.commit(
                owner,
                PositionMode.SAFE,
                [(v.asset, supplied[v.asset]) for v in valued],
                debt_asset,
                borrow_amount,
            )

        logger.info(
            "Safe position %s opened for %s: %s, debt %d %s, target %s",
            account, owner, position.holdings(), borrow_amount, debt_asset,
            format_leverage(leverage),
        )
        await self._announce(state)
        return position

    @staticmethod
    def _allocate(
        valued: list[_ValuedCollateral], borrow_amount: int, total_usd: int
    ) -> list[tuple[str, int]]:
        """Split ``borrow_amount`` pro rata by USD value; the last asset takes the remainder."""
        shares: list[tuple[str, int]] = []
        allocated = 0
        for index, v in enumerate(valued):
            if index == len(valued) - 1:
                share = borrow_amount - allocated
            else:
                share = borrow_amount * v.usd // total_usd if total_usd else 0
            allocated += share
            shares.append((v.asset, share))
        return shares

    async def _fold_dust(
        self,
        shares: list[tuple[str, int]],
        valued: list[_ValuedCollateral],
        debt_asset: str,
    ) -> list[tuple[str, int]]:
        """Move shares that would swap into zero native units onto the largest asset."""
        largest = max(valued, key=lambda v: v.usd).asset
        folded: dict[str, int] = {}
        for asset, share in shares:
            if share and asset != largest:
                if await self._ops.quote_floor(debt_asset, asset, share) <= 0:
                    logger.info(
                        "%d %s share for %s is below one unit of output, moved to %s",
                        share, debt_asset, asset, largest,
                    )
                    asset = largest
            folded[asset] = folded.get(asset, 0) + share
        return list(folded.items())

    # ------------------------------------------------------------------
    # Degen mode
    # ------------------------------------------------------------------

    async def build_degen(
        self,
        state: PositionState,
        owner: str,
        collateral: CollateralInput,
        debt_asset: str,
        leverage: int,
    ) -> Position:
        """Iterative borrow/swap/resupply loop on a single collateral asset."""
        async with state.guard():
            return await self._build_degen(state, owner, collateral, debt_asset, leverage)

    async def _build_degen(
        self,
        state: PositionState,
        owner: str,
        collateral: CollateralInput,
        debt_asset: str,
        leverage: int,
    ) -> Position:
        self._require_fresh(state)
        validate_leverage(leverage)
        asset = collateral.asset
        if asset == debt_asset:
            raise IdenticalAssets(asset)
        self._require_amounts([collateral])
        await self._require_supported(asset)
        await self._require_supported(debt_asset)

        ltv = await self._calculator.ltv_of(asset)
        target = min(leverage, theoretical_max_leverage(ltv))
        if target < leverage:
            logger.info(
                "Degen target clamped from %s to theoretical max %s",
                format_leverage(leverage), format_leverage(target),
            )

        engine = self._ops.engine
        account = state.position_id
        total_borrowed = 0
        reached = PRECISION
        iterations = 0

        supplied = {asset: 0}

        async with Unwind(f"{account} build_degen") as journal:
            self._record_refund(journal, account, owner, supplied, debt_asset)
            await self._ops.pull(None, asset, owner, account, collateral.amount)
            await self._ops.supply(None, account, asset, collateral.amount)
            supplied[asset] += collateral.amount

            while iterations < engine.max_loop_iterations and reached < target:
                aggregate = await self._lending.get_account_aggregate(account)
                if aggregate.available_borrow_usd <= 0:
                    logger.warning(
                        "%s: no borrow capacity left after %d iteration(s)",
                        account, iterations,
                    )
                    break

                capacity = await self._valuation.usd_to_asset(
                    aggregate.available_borrow_usd, debt_asset
                )
                amount = capacity * engine.borrow_haircut_bps // BPS
                if amount <= 0:
                    break

                try:
                    await self._ops.borrow(None, account, debt_asset, amount)
                except ExternalDependencyError as e:
                    logger.warning(
                        "%s: borrow of %d %s failed, stopping loop: %s",
                        account, amount, debt_asset, e,
                    )
                    break

                received = await self._ops.swap(None, account, debt_asset, asset, amount)
                await self._ops.supply(None, account, asset, received)
                supplied[asset] += received
                total_borrowed += amount

                aggregate = await self._lending.get_account_aggregate(account)
                reached = current_leverage(
                    aggregate.total_collateral_usd, aggregate.total_debt_usd
                )
                iterations += 1
                logger.info(
                    "%s loop %d: borrowed %d %s, supplied %d %s, leverage %s",
                    account, iterations, amount, debt_asset, received, asset,
                    format_leverage(reached),
                )

            if reached < target:
                raise TargetLeverageNotReached(reached, target, iterations)

            position = state.commit(
                owner,
                PositionMode.DEGEN,
                [(asset, supplied[asset])],
                debt_asset,
                total_borrowed,
            )

        logger.info(
            "Degen position %s opened for %s: %d %s, debt %d %s, leverage %s in %d loop(s)",
            account, owner, supplied[asset], asset, total_borrowed, debt_asset,
            format_leverage(reached), iterations,
        )
        await self._announce(state)
        return position

    async def _announce(self, state: PositionState) -> None:
        position = state.position
        await self._notifications.publish(
            PositionCreated(
                position_id=state.position_id,
                owner=position.owner,
                mode=position.mode,
                collateral=position.holdings(),
                debt_asset=position.debt_asset,
                debt_amount=position.debt_amount,
            )
        )
