"""Leveraged collateral position construction and management."""
from .models import CollateralInput, Position, PositionMode
from .services import PositionManager, PositionRegistry

__all__ = [
    "CollateralInput",
    "Position",
    "PositionManager",
    "PositionMode",
    "PositionRegistry",
]

__version__ = "0.1.0"
