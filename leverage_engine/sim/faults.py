"""Failure injection for simulated collaborators."""
from __future__ import annotations

from collections import Counter


class SimulationError(RuntimeError):
    """Raised by simulated collaborators the way a real venue would revert."""


class FaultPlan:
    """Makes a named operation fail after it has succeeded ``after`` times.

    ``asset="*"`` matches any asset. Faults stay armed until :meth:`clear`.
    """

    def __init__(self) -> None:
        self._faults: dict[tuple[str, str], int] = {}
        self._calls: Counter[tuple[str, str]] = Counter()

    def fail(self, operation: str, asset: str = "*", after: int = 0) -> None:
        self._faults[(operation, asset)] = after
        self._calls[(operation, asset)] = 0

    def clear(self, operation: str | None = None) -> None:
        if operation is None:
            self._faults.clear()
            return
        for key in [k for k in self._faults if k[0] == operation]:
            del self._faults[key]

    def check(self, operation: str, asset: str) -> None:
        for key in ((operation, asset), (operation, "*")):
            if key not in self._faults:
                continue
            if self._calls[key] >= self._faults[key]:
                raise SimulationError(f"Injected failure: {operation} {asset}")
            self._calls[key] += 1
