"""Cancellable rectangle workers and the pool that runs them."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Callable, Optional

import numpy as np

from .buffer import Rectangle
from .errors import EngineStoppedError
from .escape import EscapeParameters, Viewport, escape_value

logger = logging.getLogger(__name__)

# Minimum interval in seconds between two progress reports of one worker.
REPORT_PERIOD = 0.040

Reporter = Callable[[Rectangle, np.ndarray], None]


class CancellationToken:
    """Advisory stop signal polled by a running worker."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class Geometry:
    """Pixel size and plane mapping a worker was submitted with."""

    pixel_width: int
    pixel_height: int
    viewport: Viewport
    parameters: EscapeParameters


class CalculationWorker:
    """Compute one rectangle column by column, reporting throttled progress."""

    def __init__(
        self,
        buffer: np.ndarray,
        area: Rectangle,
        geometry: Geometry,
        report: Reporter,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.buffer = buffer
        self.area = area
        self.geometry = geometry
        self.token = CancellationToken()
        self.future: Optional[Future] = None
        self._report = report
        self._clock = clock

    def cancel(self) -> None:
        self.token.cancel()
        future = self.future
        if future is not None:
            future.cancel()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def run(self) -> None:
        area = self.area
        buffer = self.buffer
        token = self.token
        g = self.geometry

        report_start = area.x
        last_report = self._clock()
        for x in range(area.x, area.right):
            for y in range(area.y, area.bottom):
                value = escape_value(x, y, g.pixel_width, g.pixel_height, g.viewport, g.parameters, token)
                if token.cancelled:
                    logger.debug("Worker for %s cancelled at column %d", area, x)
                    return
                buffer[y, x] = value

            now = self._clock()
            if now - last_report >= REPORT_PERIOD:
                self._report(area.columns(report_start, x + 1), buffer)
                report_start = x + 1
                last_report = now

        if report_start < area.right:
            self._report(area.columns(report_start, area.right), buffer)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"<CalculationWorker {self.area} {state}>"


class TaskScheduler:
    """Dispatch :class:`CalculationWorker` instances to a thread pool.

    Every submitted worker stays in the running set until its future is done,
    whether it finished, raised or was cancelled before it started.
    """

    def __init__(self, report: Reporter, *, max_workers: Optional[int] = None) -> None:
        self._report = report
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="mandelbrot-worker")
        self._idle = threading.Condition(threading.RLock())
        self._running: set[CalculationWorker] = set()
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def running_count(self) -> int:
        with self._idle:
            return len(self._running)

    def running(self) -> tuple[CalculationWorker, ...]:
        with self._idle:
            return tuple(self._running)

    def submit(self, buffer: np.ndarray, area: Rectangle, geometry: Geometry) -> CalculationWorker:
        """Start computing ``area`` of ``buffer`` in the pool."""

        worker = CalculationWorker(buffer, area, geometry, self._report)
        with self._idle:
            if self._stopped:
                raise EngineStoppedError("engine stopped: cannot submit new calculations")
            self._running.add(worker)
            try:
                future = self._executor.submit(worker.run)
            except RuntimeError as exc:
                self._running.discard(worker)
                raise EngineStoppedError("engine stopped: cannot submit new calculations") from exc
            worker.future = future
        future.add_done_callback(partial(self._finished, worker))
        logger.debug("Submitted %r", worker)
        return worker

    def cancel_all(self) -> int:
        """Signal every running worker to stop; does not wait for them."""

        workers = self.running()
        for worker in workers:
            worker.cancel()
        if workers:
            logger.debug("Cancelled %d running worker(s)", len(workers))
        return len(workers)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no worker is running; return ``False`` on timeout."""

        with self._idle:
            return self._idle.wait_for(lambda: not self._running, timeout)

    def shutdown(self) -> None:
        with self._idle:
            if self._stopped:
                return
            self._stopped = True
        self.cancel_all()
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.debug("Scheduler shut down")

    def _finished(self, worker: CalculationWorker, future: Future) -> None:
        if not future.cancelled():
            exc = future.exception()
            if exc is not None:
                logger.error("Worker for %s failed", worker.area, exc_info=exc)
        with self._idle:
            self._running.discard(worker)
            if not self._running:
                self._idle.notify_all()
