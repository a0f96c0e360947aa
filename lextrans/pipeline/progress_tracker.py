"""Embedding-build progress tracking with callback-based listener notification.

Tracks ``{total, processed, failed}`` for every knowledge base whose
embedding build has been scheduled, and broadcasts each change to the
listeners registered for that knowledge base (observer pattern):

    IngestionService --advance()--> BuildProgressTracker --callback()--> CLI progress bar
                                                          --callback()--> (any other listener)

Listeners are keyed by knowledge-base id, may be sync or async, and a
listener that raises is logged and skipped so it cannot stall a build.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from lextrans.models.knowledge import BuildPhase, BuildStatus
from lextrans.utils.logging import get_logger


@dataclass
class _BuildProgress:
    """Internal mutable counters for one build; never exposed directly."""

    total: int
    processed: int = 0
    failed: int = 0
    finished: bool = False

    def to_status(self) -> BuildStatus:
        if not self.finished:
            phase = BuildPhase.EMBEDDING
        elif self.failed:
            phase = BuildPhase.PARTIALLY_READY
        else:
            phase = BuildPhase.READY
        return BuildStatus(
            ready=self.finished and self.failed == 0,
            total=self.total,
            processed=self.processed,
            failed=self.failed,
            phase=phase,
        )


class BuildProgressTracker:
    """Tracks and broadcasts embedding-build progress per knowledge base."""

    def __init__(self) -> None:
        self._builds: dict[str, _BuildProgress] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self, kb_id: str, total: int) -> None:
        """Begin (or restart) tracking a build of ``total`` chunks."""
        self._builds[kb_id] = _BuildProgress(total=total)
        await self._notify_listeners(kb_id)

    async def advance(self, kb_id: str, failed: bool = False) -> None:
        """Record one processed chunk; ``failed`` marks an empty vector."""
        progress = self._builds.get(kb_id)
        if progress is None:
            return
        progress.processed += 1
        if failed:
            progress.failed += 1
        await self._notify_listeners(kb_id)

    async def finish(self, kb_id: str) -> None:
        progress = self._builds.get(kb_id)
        if progress is None:
            return
        progress.finished = True
        self._logger.debug(
            "build_progress_finished",
            kb_id=kb_id,
            total=progress.total,
            failed=progress.failed,
        )
        await self._notify_listeners(kb_id)

    def discard(self, kb_id: str) -> None:
        """Forget a build and its listeners (knowledge base deleted)."""
        self._builds.pop(kb_id, None)
        self._listeners.pop(kb_id, None)

    def get_status(self, kb_id: str) -> BuildStatus | None:
        """Return the current status, or ``None`` if no build was tracked."""
        progress = self._builds.get(kb_id)
        return progress.to_status() if progress else None

    def register_listener(self, kb_id: str, callback: Callable) -> None:
        """Register ``callback(kb_id, status)`` for one knowledge base."""
        listeners = self._listeners.setdefault(kb_id, [])
        if callback not in listeners:
            listeners.append(callback)

    def unregister_listener(self, kb_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(kb_id, [])
        if callback in listeners:
            listeners.remove(callback)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(self, kb_id: str) -> None:
        listeners = self._listeners.get(kb_id, [])
        if not listeners:
            return

        status = self._builds[kb_id].to_status()
        for callback in list(listeners):
            try:
                result = callback(kb_id, status)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    kb_id=kb_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
