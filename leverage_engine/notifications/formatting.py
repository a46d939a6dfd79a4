"""Plain-text rendering of position events."""
from __future__ import annotations

from ..models import (
    CollateralAdded,
    DebtRepaid,
    PositionClosed,
    PositionCreated,
    PositionEvent,
)


def format_holdings(holdings: tuple[tuple[str, int], ...]) -> str:
    """Return e.g. ``'ETH 1000000000000000000, WBTC 5000000'``."""
    if not holdings:
        return "none"
    return ", ".join(f"{asset} {amount}" for asset, amount in holdings)


def format_event(event: PositionEvent) -> str:
    if isinstance(event, PositionCreated):
        return (
            f"📈 Position opened · {event.position_id}\n"
            f"Owner: {event.owner}\n"
            f"Mode: {event.mode.value}\n"
            f"Collateral: {format_holdings(event.collateral)}\n"
            f"Debt: {event.debt_amount} {event.debt_asset}"
        )
    if isinstance(event, CollateralAdded):
        return (
            f"➕ Collateral added · {event.position_id}\n"
            f"{event.amount} {event.asset}"
        )
    if isinstance(event, DebtRepaid):
        return f"💸 Debt repaid · {event.position_id}\nAmount: {event.amount}"
    if isinstance(event, PositionClosed):
        return f"🔒 Position closed · {event.position_id}\nOwner: {event.owner}"
    raise TypeError(f"Unknown event type: {type(event).__name__}")
