"""
Deferred two-stage layout pipeline.

A layout depends on measured label widths, and a label can only be measured
once it has been drawn with a placeholder size.  Each layout request is
therefore carried out over the next two frames:

    frame N+1 — measure: refresh the measurement cache from the adapter
    frame N+2 — place:   re-sweep category positions and compute the layout

Requests are debounced, not queued.  A new request cancels whatever pair of
frames is still pending, so only the most recent request ever completes and
intermediate diagram states are never laid out.

Failures never reach the caller.  A scheduling failure (no running event
loop) or an exception inside either stage is logged and the last good
layout stays in ``last_layout`` until the next trigger.

Everything runs on one asyncio event loop; nothing here is thread-safe.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .layout import DiagramLayout, FishboneLayout
from .metrics import TextMetrics

logger = logging.getLogger(__name__)


FRAME_INTERVAL = 1 / 60


class SchedulingFailure(RuntimeError):
    """The frame scheduling primitive is unavailable."""


class ChangeSignal:
    """Notifies listeners that the viewport or rendered content changed.

    Editors call ``emit()`` after a content operation; a viewport watcher
    calls it on resize.  Listeners take no arguments.
    """

    def __init__(self):
        self._listeners: list[Callable[[], None]] = []

    def connect(self, listener: Callable[[], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def disconnect(self, listener: Callable[[], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self) -> None:
        for listener in list(self._listeners):
            listener()

    def __len__(self) -> int:
        return len(self._listeners)


class LayoutScheduler:
    """Runs measure-then-place layout passes for one engine.

    Args:
        engine: The layout engine (and, through it, the diagram) to lay out.
        metrics: Text-metrics adapter for the measure stage.  Without one,
                 the measure stage is skipped and labels use heuristics.
        frame_interval: Delay standing in for one animation frame.
        on_layout: Called with each completed ``DiagramLayout``.
    """

    def __init__(
        self,
        engine: FishboneLayout,
        metrics: Optional[TextMetrics] = None,
        frame_interval: float = FRAME_INTERVAL,
        on_layout: Optional[Callable[[DiagramLayout], None]] = None,
    ):
        self.engine = engine
        self.metrics = metrics
        self.frame_interval = frame_interval
        self.on_layout = on_layout
        self.last_layout: Optional[DiagramLayout] = None
        self.completed_passes = 0
        self._task: Optional[asyncio.Task] = None
        self._signals: list[ChangeSignal] = []

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def _running_loop(self) -> asyncio.AbstractEventLoop:
        try:
            return asyncio.get_running_loop()
        except RuntimeError as e:
            raise SchedulingFailure("no running event loop") from e

    def schedule(self) -> bool:
        """Request a layout pass, superseding any pending one.

        Returns False (after logging) when the pass could not be scheduled.
        """
        try:
            self._cancel_pending()
            loop = self._running_loop()
            self._task = loop.create_task(self._run())
            return True
        except SchedulingFailure as e:
            logger.warning(f"Layout scheduling failed: {e}")
            return False

    async def _next_frame(self) -> None:
        await asyncio.sleep(self.frame_interval)

    async def _run(self) -> None:
        await self._next_frame()
        if self.metrics is not None:
            try:
                measured = self.engine.measure(self.metrics)
                logger.debug(f"Measured {measured} labels")
            except Exception as e:
                logger.warning(f"Layout pass skipped, label measurement failed: {e}")
                return

        await self._next_frame()
        try:
            layout = self.engine.compute(refresh=True)
        except Exception as e:
            logger.warning(f"Layout pass skipped due to error: {e}")
            return

        self.last_layout = layout
        self.completed_passes += 1
        if self.on_layout is not None:
            try:
                self.on_layout(layout)
            except Exception as e:
                logger.warning(f"Layout listener failed: {e}")

    def _cancel_pending(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait_idle(self) -> None:
        """Wait until no pass is pending (completed, failed or cancelled)."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    def attach(self, signal: ChangeSignal) -> None:
        """Re-run layout whenever ``signal`` fires."""
        signal.connect(self.schedule)
        if signal not in self._signals:
            self._signals.append(signal)

    def teardown(self) -> None:
        """Cancel any pending pass and detach from every signal."""
        self._cancel_pending()
        for signal in self._signals:
            signal.disconnect(self.schedule)
        self._signals = []
