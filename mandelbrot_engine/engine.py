"""Incremental, concurrent Mandelbrot calculation engine."""

from __future__ import annotations

import logging
import threading
from typing import Optional

import numpy as np

from .buffer import Rectangle, allocate_buffer, plan_resize
from .errors import EngineStoppedError
from .escape import DEFAULT_DIVERGENCE_THRESHOLD, DEFAULT_ITERATION_LIMIT, EscapeParameters, Viewport
from .listeners import CalculationListener, ListenerRegistry
from .worker import Geometry, TaskScheduler

logger = logging.getLogger(__name__)


def _check_dimension(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    return int(value)


class MandelbrotEngine:
    """Keep a buffer of escape-time values in sync with a resizable pixel grid.

    Resizing migrates the already computed values into the new grid, centered,
    and only the newly exposed margins are computed again in the background.
    Listeners are called with ``(rectangle, buffer)`` whenever a worker has
    finished a run of columns.
    """

    def __init__(
        self,
        iteration_limit: int = DEFAULT_ITERATION_LIMIT,
        divergence_threshold: float = DEFAULT_DIVERGENCE_THRESHOLD,
        *,
        viewport: Optional[Viewport] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self._parameters = EscapeParameters(iteration_limit, divergence_threshold)
        self._viewport = viewport if viewport is not None else Viewport()
        self._listeners = ListenerRegistry()
        self._scheduler = TaskScheduler(self._listeners.notify, max_workers=max_workers)
        self._lock = threading.RLock()
        self._width = 0
        self._height = 0
        self._buffer = allocate_buffer(0, 0)

    def __enter__(self) -> "MandelbrotEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    @property
    def parameters(self) -> EscapeParameters:
        return self._parameters

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def width(self) -> int:
        with self._lock:
            return self._width

    @property
    def height(self) -> int:
        with self._lock:
            return self._height

    @property
    def size(self) -> tuple[int, int]:
        with self._lock:
            return self._width, self._height

    @property
    def running_count(self) -> int:
        return self._scheduler.running_count

    @property
    def is_shutdown(self) -> bool:
        return self._scheduler.stopped

    def get_buffer(self) -> np.ndarray:
        """Return the live buffer, shaped ``(height, width)``; it is not copied."""

        with self._lock:
            return self._buffer

    def add_listener(self, listener: CalculationListener) -> None:
        self._listeners.add(listener)

    def remove_listener(self, listener: CalculationListener) -> None:
        self._listeners.remove(listener)

    def resize(self, width: int, height: int) -> None:
        """Resize the grid, keeping computed values and scheduling the new margins."""

        width = _check_dimension("width", width)
        height = _check_dimension("height", height)
        with self._lock:
            self._ensure_running()
            if width == self._width and height == self._height:
                return

            plan = plan_resize(self._buffer, self._viewport, width, height)
            logger.debug(
                "Resizing %dx%d -> %dx%d, %d rectangle(s) exposed",
                self._width, self._height, width, height, len(plan.exposed),
            )
            self._width = width
            self._height = height
            self._viewport = plan.viewport
            self._buffer = plan.buffer

            self._scheduler.cancel_all()
            for area in plan.exposed:
                self._submit(area)

    def recalculate(self) -> None:
        """Discard running work and compute the whole grid again."""

        with self._lock:
            self._ensure_running()
            self._scheduler.cancel_all()
            if self._width > 0 and self._height > 0:
                self._submit(Rectangle(0, 0, self._width, self._height))

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait until every dispatched worker has finished or stopped."""

        return self._scheduler.wait_idle(timeout)

    def shutdown(self) -> None:
        """Cancel running work and stop the pool; later work requests fail."""

        self._scheduler.shutdown()

    def _ensure_running(self) -> None:
        if self._scheduler.stopped:
            raise EngineStoppedError("engine stopped: it has been shut down")

    def _submit(self, area: Rectangle) -> None:
        geometry = Geometry(self._width, self._height, self._viewport, self._parameters)
        self._scheduler.submit(self._buffer, area, geometry)

    def __repr__(self) -> str:
        return (
            f"<MandelbrotEngine {self._width}x{self._height} "
            f"limit={self._parameters.iteration_limit} running={self.running_count}>"
        )
