"""Data models: protocol snapshots and events are frozen, the position record is not."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PositionMode(str, Enum):
    """Construction strategy, fixed for the lifetime of a position."""

    SAFE = "safe"
    DEGEN = "degen"


@dataclass(frozen=True)
class CollateralInput:
    """One caller-supplied deposit instruction (native units)."""

    asset: str
    amount: int


@dataclass(frozen=True)
class AssetConfig:
    """Per-asset lending configuration as reported by the protocol."""

    ltv: int
    active: bool
    reserve_factor: int = 0
    liquidation_threshold: int = 0


@dataclass(frozen=True)
class AccountAggregate:
    """Account-level totals for one protocol account (USD, 8 decimals)."""

    total_collateral_usd: int
    total_debt_usd: int
    available_borrow_usd: int
    liquidation_threshold: int
    ltv: int
    health_factor: int


@dataclass
class Position:
    """Local bookkeeping for one leveraged position.

    ``collateral_assets`` and ``collateral_amounts`` are parallel lists kept in
    insertion order. An empty ``owner`` means the position is closed.
    """

    owner: str = ""
    collateral_assets: list[str] = field(default_factory=list)
    collateral_amounts: list[int] = field(default_factory=list)
    debt_asset: str = ""
    debt_amount: int = 0
    mode: PositionMode | None = None

    @property
    def is_open(self) -> bool:
        return bool(self.owner)

    def amount_of(self, asset: str) -> int:
        try:
            return self.collateral_amounts[self.collateral_assets.index(asset)]
        except ValueError:
            return 0

    def holdings(self) -> tuple[tuple[str, int], ...]:
        return tuple(zip(self.collateral_assets, self.collateral_amounts))

    def reset(self) -> None:
        self.owner = ""
        self.collateral_assets = []
        self.collateral_amounts = []
        self.debt_asset = ""
        self.debt_amount = 0
        self.mode = None


@dataclass(frozen=True)
class PositionInfo:
    """Point-in-time view of a position combined with protocol aggregates."""

    position_id: str
    owner: str
    mode: PositionMode | None
    collateral: tuple[tuple[str, int], ...]
    debt_asset: str
    debt_amount: int
    collateral_usd: int
    debt_usd: int
    leverage: int
    health_factor: int


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PositionCreated:
    position_id: str
    owner: str
    mode: PositionMode
    collateral: tuple[tuple[str, int], ...]
    debt_asset: str
    debt_amount: int


@dataclass(frozen=True)
class CollateralAdded:
    position_id: str
    asset: str
    amount: int


@dataclass(frozen=True)
class DebtRepaid:
    position_id: str
    amount: int


@dataclass(frozen=True)
class PositionClosed:
    position_id: str
    owner: str


PositionEvent = PositionCreated | CollateralAdded | DebtRepaid | PositionClosed
