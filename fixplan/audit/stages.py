"""
Stage progress reporting.

The reporter keeps the ordered stage table for one run and fans every
transition out as a StageEvent to asyncio.Queue subscribers (for streaming
consumers) and plain callbacks (for the status endpoint). It only observes;
nothing it does feeds back into the analysis.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Dict, List, Optional

from .models import STAGE_NAMES, StageEvent, StageId, StageStatus

logger = logging.getLogger(__name__)

Listener = Callable[[StageEvent], None]

_CLOSED = None


class StageReporter:
    """
    Usage:
        reporter = StageReporter()
        reporter.add_listener(print)
        result = await SiteAuditor().analyze(config, reporter=reporter)
    """

    def __init__(self):
        self._states: Dict[StageId, StageEvent] = {
            stage: StageEvent(stage_id=stage, status=StageStatus.PENDING) for stage in StageId
        }
        self._history: List[StageEvent] = []
        self._queues: List[asyncio.Queue] = []
        self._listeners: List[Listener] = []
        self._closed = False

    # ── Subscription ──────────────────────────────────────────────────

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def subscribe(self) -> asyncio.Queue:
        """A queue receiving every later event, then None once the reporter closes."""
        queue: asyncio.Queue = asyncio.Queue()
        if self._closed:
            queue.put_nowait(_CLOSED)
        else:
            self._queues.append(queue)
        return queue

    async def stream(self) -> AsyncIterator[StageEvent]:
        queue = self.subscribe()
        while True:
            event = await queue.get()
            if event is _CLOSED:
                return
            yield event

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for queue in self._queues:
            queue.put_nowait(_CLOSED)
        self._queues.clear()

    # ── State ─────────────────────────────────────────────────────────

    def snapshot(self) -> List[StageEvent]:
        """Current state of every stage, in pipeline order."""
        return [self._states[stage] for stage in StageId]

    @property
    def history(self) -> List[StageEvent]:
        return list(self._history)

    def status_of(self, stage: StageId) -> StageStatus:
        return self._states[stage].status

    # ── Transitions ───────────────────────────────────────────────────

    def start(self, stage: StageId, message: Optional[str] = None) -> None:
        self._emit(stage, StageStatus.RUNNING, progress=0, message=message or STAGE_NAMES[stage])

    def progress(self, stage: StageId, progress: int, message: Optional[str] = None) -> None:
        self._emit(stage, StageStatus.RUNNING, progress=max(0, min(100, progress)), message=message)

    def complete(self, stage: StageId, message: Optional[str] = None) -> None:
        self._emit(stage, StageStatus.COMPLETE, progress=100, message=message)

    def fail(self, stage: StageId, error: str) -> None:
        self._emit(stage, StageStatus.ERROR, error=error)

    def skip(self, stage: StageId, message: Optional[str] = None) -> None:
        self._emit(stage, StageStatus.SKIPPED, message=message)

    def _emit(self, stage: StageId, status: StageStatus, **fields) -> None:
        event = StageEvent(stage_id=stage, status=status, **fields)
        self._states[stage] = event
        self._history.append(event)
        logger.debug(f"[{stage.value}] {status.value} {fields.get('message') or fields.get('error') or ''}")

        for queue in self._queues:
            queue.put_nowait(event)
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Stage listener failed: {e}")
