"""Service modules"""
from .builder import PositionBuilder
from .manager import PositionManager
from .operations import PositionOperations
from .registry import PositionRegistry
from .unwind import Unwind

__all__ = [
    "PositionBuilder",
    "PositionManager",
    "PositionOperations",
    "PositionRegistry",
    "Unwind",
]
