"""Position registry: one isolated state per position, indexed by owner."""
from __future__ import annotations

import logging
from collections import defaultdict

from ..config import EngineConfig
from ..errors import PositionNotFound
from ..leverage import LeverageCalculator
from ..models import CollateralInput, Position
from ..notifications.dispatcher import NotificationDispatcher
from ..state import PositionState
from .builder import PositionBuilder
from .manager import PositionManager
from .operations import PositionOperations

logger = logging.getLogger(__name__)


class PositionRegistry:
    """Creates positions and keeps them indexed for later management.

    Positions are only indexed once construction succeeds. Closed positions
    stay indexed (inert) and are never removed.
    """

    def __init__(
        self,
        ops: PositionOperations,
        notifications: NotificationDispatcher | None = None,
    ) -> None:
        self._ops = ops
        self._notifications = notifications or NotificationDispatcher()
        self._calculator = LeverageCalculator(ops.lending)
        self._builder = PositionBuilder(ops, self._calculator, self._notifications)
        self._states: dict[str, PositionState] = {}
        self._by_owner: dict[str, list[str]] = defaultdict(list)
        self._owners: dict[str, str] = {}
        self._next_id = 1

    @property
    def engine(self) -> EngineConfig:
        return self._ops.engine

    @property
    def calculator(self) -> LeverageCalculator:
        return self._calculator

    def _new_state(self) -> PositionState:
        position_id = f"pos-{self._next_id:06d}"
        self._next_id += 1
        return PositionState(position_id, self.engine.max_collateral_assets)

    def _index(self, state: PositionState, owner: str) -> None:
        self._states[state.position_id] = state
        self._by_owner[owner].append(state.position_id)
        self._owners[state.position_id] = owner
        logger.info("Registered %s for %s", state.position_id, owner)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def open_safe(
        self,
        owner: str,
        collaterals: list[CollateralInput],
        debt_asset: str,
        leverage: int,
    ) -> str:
        state = self._new_state()
        await self._builder.build_safe(state, owner, collaterals, debt_asset, leverage)
        self._index(state, owner)
        return state.position_id

    async def open_degen(
        self,
        owner: str,
        collateral: CollateralInput,
        debt_asset: str,
        leverage: int,
    ) -> str:
        state = self._new_state()
        await self._builder.build_degen(state, owner, collateral, debt_asset, leverage)
        self._index(state, owner)
        return state.position_id

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def state(self, position_id: str) -> PositionState:
        try:
            return self._states[position_id]
        except KeyError:
            raise PositionNotFound(
                f"Unknown position {position_id}", {"position_id": position_id}
            ) from None

    def get(self, position_id: str) -> Position:
        return self.state(position_id).position

    def manager(self, position_id: str) -> PositionManager:
        return PositionManager(self.state(position_id), self._ops, self._notifications)

    def positions_of(self, owner: str) -> list[str]:
        return list(self._by_owner.get(owner, []))

    def owner_of(self, position_id: str) -> str:
        """Owner recorded at creation; kept after close."""
        self.state(position_id)
        return self._owners[position_id]

    def __len__(self) -> int:
        return len(self._states)
