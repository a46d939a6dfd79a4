"""Post-construction operations on an open position."""
from __future__ import annotations

import logging

from ..errors import (
    ExcessiveRepayment,
    IdenticalAssets,
    InvalidAmount,
    TooManyCollateralAssets,
    UnsupportedAsset,
)
from ..leverage import current_leverage, format_leverage
from ..models import (
    CollateralAdded,
    DebtRepaid,
    Position,
    PositionClosed,
    PositionInfo,
)
from ..notifications.dispatcher import NotificationDispatcher
from ..state import PositionState
from .operations import PositionOperations
from .unwind import Unwind

logger = logging.getLogger(__name__)


class PositionManager:
    """Add collateral, repay debt and close one position.

    Every mutating call checks ownership and open state before touching any
    collaborator and holds the position lock for its whole duration.
    """

    def __init__(
        self,
        state: PositionState,
        ops: PositionOperations,
        notifications: NotificationDispatcher,
    ) -> None:
        self._state = state
        self._ops = ops
        self._notifications = notifications

    @property
    def position_id(self) -> str:
        return self._state.position_id

    @property
    def position(self) -> Position:
        return self._state.position

    # ------------------------------------------------------------------
    # Add collateral
    # ------------------------------------------------------------------

    async def add_collateral(self, caller: str, asset: str, amount: int) -> None:
        async with self._state.guard() as position:
            self._state.require_owner(caller)
            if amount <= 0:
                raise InvalidAmount(
                    "Collateral amount must be positive", {"amount": amount}
                )
            if asset == position.debt_asset:
                raise IdenticalAssets(asset)
            lending = self._ops.lending
            if not await lending.is_asset_supported(asset):
                raise UnsupportedAsset(asset)
            if not (await lending.get_asset_config(asset)).active:
                raise UnsupportedAsset(asset, "not active")
            if not self._state.can_track(asset):
                raise TooManyCollateralAssets(
                    f"At most {self._state.asset_cap()} collateral assets allowed",
                    {"asset": asset, "assets": list(position.collateral_assets)},
                )

            account = self.position_id
            async with Unwind(f"{account} add_collateral") as journal:
                await self._ops.pull(journal, asset, caller, account, amount)
                await self._ops.supply(journal, account, asset, amount)
                self._state.add_collateral(asset, amount)

        logger.info("%s: added %d %s collateral", self.position_id, amount, asset)
        await self._notifications.publish(
            CollateralAdded(position_id=self.position_id, asset=asset, amount=amount)
        )

    # ------------------------------------------------------------------
    # Repay
    # ------------------------------------------------------------------

    async def repay_debt(self, caller: str, amount: int) -> None:
        async with self._state.guard() as position:
            self._state.require_owner(caller)
            if amount <= 0:
                raise InvalidAmount("Repayment must be positive", {"amount": amount})
            if amount > position.debt_amount:
                raise ExcessiveRepayment(amount, position.debt_amount)

            account = self.position_id
            debt_asset = position.debt_asset
            async with Unwind(f"{account} repay_debt") as journal:
                await self._ops.pull(journal, debt_asset, caller, account, amount)
                await self._ops.repay(journal, account, debt_asset, amount)
                self._state.reduce_debt(amount)

        logger.info(
            "%s: repaid %d %s, %d outstanding",
            self.position_id, amount, debt_asset, self.position.debt_amount,
        )
        await self._notifications.publish(
            DebtRepaid(position_id=self.position_id, amount=amount)
        )

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------

    async def close_position(self, caller: str) -> dict[str, int]:
        """Repay everything, withdraw everything, hand it to the owner, reset.

        Returns the amount of each collateral asset transferred to the owner.
        """
        async with self._state.guard() as position:
            self._state.require_owner(caller)

            ops = self._ops
            account = self.position_id
            owner = position.owner
            debt_asset = position.debt_asset
            returned: dict[str, int] = {}

            async with Unwind(f"{account} close_position") as journal:
                aggregate = await ops.lending.get_account_aggregate(account)
                # Dust debt can value at $0 while the protocol still holds it
                if aggregate.total_debt_usd > 0 or position.debt_amount > 0:
                    # USD rounding can land below the tracked amount
                    owed = max(
                        await ops.valuation.usd_to_asset(aggregate.total_debt_usd, debt_asset),
                        position.debt_amount,
                    )
                    await ops.pull(journal, debt_asset, owner, account, owed)
                    repaid = await ops.repay(journal, account, debt_asset, None)
                    if owed > repaid:
                        await ops.push(journal, debt_asset, account, owner, owed - repaid)

                # Collect first, hand out after every withdraw has succeeded
                for asset in position.collateral_assets:
                    returned[asset] = await ops.withdraw(journal, account, asset, None)
                for asset, amount in returned.items():
                    await ops.push(journal, asset, account, owner, amount)

                self._state.close()

        logger.info("%s: closed for %s, returned %s", account, owner, returned)
        await self._notifications.publish(PositionClosed(position_id=account, owner=owner))
        return returned

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def position_info(self) -> PositionInfo:
        position = self.position
        aggregate = await self._ops.lending.get_account_aggregate(self.position_id)
        leverage = current_leverage(aggregate.total_collateral_usd, aggregate.total_debt_usd)
        logger.debug(
            "%s: collateral $%d debt $%d leverage %s",
            self.position_id, aggregate.total_collateral_usd,
            aggregate.total_debt_usd, format_leverage(leverage),
        )
        return PositionInfo(
            position_id=self.position_id,
            owner=position.owner,
            mode=position.mode,
            collateral=position.holdings(),
            debt_asset=position.debt_asset,
            debt_amount=position.debt_amount,
            collateral_usd=aggregate.total_collateral_usd,
            debt_usd=aggregate.total_debt_usd,
            leverage=leverage,
            health_factor=aggregate.health_factor,
        )
