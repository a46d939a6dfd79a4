"""Compensating-action journal for multi-step operations."""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any

from ..errors import UnwindIncomplete

logger = logging.getLogger(__name__)

Compensation = Callable[[], Awaitable[Any]]


class Unwind:
    """Records how to undo each external step and replays it on failure.

    Used as ``async with Unwind("label") as journal:``. If the block raises,
    every recorded compensation runs newest-first and the original exception
    propagates. If any compensation fails, :class:`UnwindIncomplete` is raised
    instead, chained from the original error.
    """

    def __init__(self, label: str) -> None:
        self.label = label
        self._steps: list[tuple[str, Compensation]] = []

    def __len__(self) -> int:
        return len(self._steps)

    def record(self, description: str, compensate: Compensation) -> None:
        self._steps.append((description, compensate))

    async def rollback(self) -> None:
        failed: list[str] = []
        while self._steps:
            description, compensate = self._steps.pop()
            try:
                await compensate()
                logger.info("[%s] undone: %s", self.label, description)
            except Exception as e:
                logger.error("[%s] failed to undo %s: %s", self.label, description, e)
                failed.append(description)
        if failed:
            raise UnwindIncomplete(failed)

    async def __aenter__(self) -> Unwind:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc is None:
            self._steps.clear()
            return False

        if self._steps:
            logger.warning(
                "[%s] aborted (%s); unwinding %d step(s)", self.label, exc, len(self._steps)
            )
            try:
                await self.rollback()
            except UnwindIncomplete as incomplete:
                raise incomplete from exc
        return False
