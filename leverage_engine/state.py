"""Mutable state of one position, its lock, and its invariants."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from .constants import DEFAULT_MAX_COLLATERAL_ASSETS
from .errors import (
    DuplicateCollateralAsset,
    ExcessiveRepayment,
    IdenticalAssets,
    InvalidAmount,
    InvalidCollateralCount,
    PositionAlreadyInitialized,
    PositionBusy,
    PositionNotOpen,
    TooManyCollateralAssets,
    Unauthorized,
)
from .models import Position, PositionMode

logger = logging.getLogger(__name__)


class PositionState:
    """Owns the ``Position`` record of a single position id.

    All mutation goes through this class so the invariants are checked after
    every change. ``guard()`` is the per-position mutual-exclusion lock: a
    second state-mutating call while one is in flight is rejected outright.
    """

    def __init__(
        self,
        position_id: str,
        max_collateral_assets: int = DEFAULT_MAX_COLLATERAL_ASSETS,
    ) -> None:
        self.position_id = position_id
        self.max_collateral_assets = max_collateral_assets
        self.position = Position()
        self._lock = asyncio.Lock()
        self._initialized = False

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def guard(self) -> AsyncIterator[Position]:
        if self._lock.locked():
            raise PositionBusy(
                f"Position {self.position_id} has an operation in progress",
                {"position_id": self.position_id},
            )
        async with self._lock:
            yield self.position

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    def asset_cap(self, mode: PositionMode | None = None) -> int:
        mode = mode or self.position.mode
        return 1 if mode is PositionMode.DEGEN else self.max_collateral_assets

    def require_open(self) -> None:
        if not self.position.is_open:
            raise PositionNotOpen(
                f"Position {self.position_id} is not open",
                {"position_id": self.position_id},
            )

    def require_owner(self, caller: str) -> None:
        self.require_open()
        if caller != self.position.owner:
            raise Unauthorized(caller)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def commit(
        self,
        owner: str,
        mode: PositionMode,
        holdings: list[tuple[str, int]],
        debt_asset: str,
        debt_amount: int,
    ) -> Position:
        """Write the constructed position exactly once."""
        if self._initialized:
            raise PositionAlreadyInitialized(
                f"Position {self.position_id} was already constructed",
                {"position_id": self.position_id},
            )
        candidate = Position(
            owner=owner,
            collateral_assets=[asset for asset, _ in holdings],
            collateral_amounts=[amount for _, amount in holdings],
            debt_asset=debt_asset,
            debt_amount=debt_amount,
            mode=mode,
        )
        self.check_invariants(candidate)
        self.position = candidate
        self._initialized = True
        logger.debug("Position %s committed: %s", self.position_id, candidate)
        return candidate

    def add_collateral(self, asset: str, amount: int) -> None:
        position = self.position
        if asset == position.debt_asset:
            raise IdenticalAssets(asset)
        if not self.can_track(asset):
            raise TooManyCollateralAssets(
                f"At most {self.asset_cap()} collateral assets allowed",
                {"asset": asset, "assets": list(position.collateral_assets)},
            )
        if asset in position.collateral_assets:
            index = position.collateral_assets.index(asset)
            position.collateral_amounts[index] += amount
        else:
            position.collateral_assets.append(asset)
            position.collateral_amounts.append(amount)
        self.check_invariants(position)

    def can_track(self, asset: str) -> bool:
        """Whether ``asset`` is tracked already or fits under the asset cap."""
        position = self.position
        return (
            asset in position.collateral_assets
            or len(position.collateral_assets) < self.asset_cap()
        )

    def reduce_debt(self, amount: int) -> None:
        if amount > self.position.debt_amount:
            raise ExcessiveRepayment(amount, self.position.debt_amount)
        self.position.debt_amount -= amount
        self.check_invariants(self.position)

    def close(self) -> None:
        self.position.reset()

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def check_invariants(self, position: Position) -> None:
        assets = position.collateral_assets
        if len(assets) != len(position.collateral_amounts):
            raise InvalidCollateralCount(
                "Collateral asset and amount lists differ in length",
                {"assets": len(assets), "amounts": len(position.collateral_amounts)},
            )
        if len(set(assets)) != len(assets):
            raise DuplicateCollateralAsset(
                "Collateral assets must be distinct", {"assets": list(assets)}
            )
        if position.debt_asset and position.debt_asset in assets:
            raise IdenticalAssets(position.debt_asset)
        if position.mode is PositionMode.DEGEN and len(assets) != 1:
            raise InvalidCollateralCount(
                "Degen positions hold exactly one collateral asset",
                {"assets": list(assets)},
            )
        if len(assets) > self.asset_cap(position.mode):
            raise TooManyCollateralAssets(
                f"At most {self.asset_cap(position.mode)} collateral assets allowed",
                {"assets": list(assets)},
            )
        if position.debt_amount < 0:
            raise InvalidAmount("Debt cannot be negative", {"debt": position.debt_amount})
        if any(amount < 0 for amount in position.collateral_amounts):
            raise InvalidAmount("Collateral amounts cannot be negative")
