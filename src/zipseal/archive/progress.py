"""Progress reporting and cooperative cancellation for archive jobs.

One :class:`OperationState` exists per running job. Workers poll it through
:meth:`ProgressController.check_cancelled` once per I/O chunk; the host sets
it through :meth:`OperationState.cancel` from any thread.

Progress flows one way, worker to host, as :class:`ProgressEvent` values
handed to a sink callable. Delivery is fire-and-forget: a failing sink is
logged and ignored.
"""
from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Callable, Optional, Type

from zipseal.errors import Cancelled

logger = logging.getLogger(__name__)

PROGRESS_MIN_INTERVAL = 0.1
SYNTHETIC_STEP = 2
SYNTHETIC_INTERVAL = 0.25
SYNTHETIC_CAP = 95
CANCELLED_MESSAGE = "Operation cancelled by user."


@dataclass(frozen=True)
class ProgressEvent:
    percent: int
    status: str | None = None


ProgressSink = Callable[[ProgressEvent], None]


class OperationState:
    """Cancellation flag and running marker for a single archive job."""

    def __init__(self) -> None:
        self._cancel = threading.Event()
        self._running = threading.Event()

    def reset(self) -> None:
        """Clear the cancellation flag. Only called when a new job starts."""
        self._cancel.clear()

    def claim(self) -> None:
        """Start a fresh job: clear any old cancellation and mark it running."""
        self.reset()
        self.mark_running()

    def cancel(self) -> None:
        """Request cancellation. Idempotent; a no-op when nothing is running."""
        if not self._running.is_set():
            logger.debug("Cancel requested with no running job; ignoring")
            return
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def running(self) -> bool:
        return self._running.is_set()

    def mark_running(self) -> None:
        self._running.set()

    def mark_idle(self) -> None:
        self._running.clear()


class QueueSink:
    """Bounded channel for progress events; drops the oldest event when full."""

    def __init__(self, maxsize: int = 64) -> None:
        self.queue: queue.Queue[ProgressEvent] = queue.Queue(maxsize=maxsize)

    def __call__(self, event: ProgressEvent) -> None:
        while True:
            try:
                self.queue.put_nowait(event)
                return
            except queue.Full:
                try:
                    self.queue.get_nowait()
                except queue.Empty:
                    pass

    def drain(self) -> list[ProgressEvent]:
        events: list[ProgressEvent] = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events


class ProgressController:
    """Throttled, monotonic progress plus cancellation polling for one job.

    Byte counts are mapped into a phase range (``begin_phase``) so a job made
    of several steps, like staging then compressing, still reports a single
    0-100 curve.
    """

    def __init__(
        self,
        state: OperationState,
        sink: ProgressSink | None = None,
        *,
        min_interval: float = PROGRESS_MIN_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.state = state
        self.cancelled_message = CANCELLED_MESSAGE
        self._sink = sink
        self._min_interval = min_interval
        self._clock = clock
        self._lock = threading.RLock()
        self._percent = 0
        self._last_emit: float | None = None
        self._phase_start = 0
        self._phase_end = 100
        self._phase_total = 0
        self._phase_done = 0

    @property
    def percent(self) -> int:
        return self._percent

    def start_job(self) -> None:
        # A host that claimed the state early keeps any cancel issued since.
        if not self.state.running:
            self.state.reset()
            self.state.mark_running()
        with self._lock:
            self._percent = 0
            self._last_emit = None
        self.begin_phase(0, 100, 0)

    def end_job(self) -> None:
        self.state.mark_idle()

    def begin_phase(self, start: int, end: int, total_bytes: int) -> None:
        if not 0 <= start <= end <= 100:
            raise ValueError(f"Invalid progress phase range: {start}..{end}")
        with self._lock:
            self._phase_start = start
            self._phase_end = end
            self._phase_total = max(0, total_bytes)
            self._phase_done = 0

    def check_cancelled(self) -> None:
        if self.state.cancelled:
            raise Cancelled(self.cancelled_message)

    def advance(self, nbytes: int, status: str | None = None) -> None:
        with self._lock:
            self._phase_done += nbytes
            if self._phase_total > 0:
                done = min(self._phase_done, self._phase_total)
                span = self._phase_end - self._phase_start
                percent = self._phase_start + (span * done) // self._phase_total
            else:
                percent = self._phase_start
        self.report(percent, status)

    def report(self, percent: int, status: str | None = None, *, force: bool = False) -> None:
        value = max(0, min(100, int(percent)))
        with self._lock:
            if value < self._percent:
                value = self._percent
            now = self._clock()
            increased = value > self._percent
            interval_elapsed = self._last_emit is None or now - self._last_emit >= self._min_interval
            if not (force or increased or interval_elapsed):
                return
            self._percent = value
            self._last_emit = now
            self._emit(ProgressEvent(value, status))

    def finish(self, status: str | None = None) -> None:
        self.report(100, status, force=True)

    def _emit(self, event: ProgressEvent) -> None:
        if self._sink is None:
            return
        try:
            self._sink(event)
        except Exception:  # noqa: BLE001
            logger.debug("Progress sink failed; event dropped", exc_info=True)


class SyntheticProgress:
    """Timer-driven progress for calls that offer no progress callback.

    The values are an approximation of elapsed time, not a measurement of
    completed work. The ticker thread is stopped and joined on exit, so no
    event is emitted after the wrapped call returns.
    """

    def __init__(
        self,
        controller: ProgressController,
        *,
        start: int,
        cap: int = SYNTHETIC_CAP,
        step: int = SYNTHETIC_STEP,
        interval: float = SYNTHETIC_INTERVAL,
        status: str | None = None,
    ) -> None:
        if cap >= 100:
            raise ValueError("Synthetic progress must stay below 100")
        self._controller = controller
        self._value = start
        self._cap = cap
        self._step = step
        self._interval = interval
        self._status = status
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def __enter__(self) -> SyntheticProgress:
        self._controller.report(self._value, self._status)
        self._thread = threading.Thread(target=self._run, name="zipseal-synthetic-progress", daemon=True)
        self._thread.start()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.stop()

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            if self._value >= self._cap:
                continue
            self._value = min(self._value + self._step, self._cap)
            self._controller.report(self._value, self._status)
