"""Thread-safe registry of calculation listeners."""

from __future__ import annotations

import logging
import threading
from typing import Callable

import numpy as np

from .buffer import Rectangle

logger = logging.getLogger(__name__)

CalculationListener = Callable[[Rectangle, np.ndarray], None]


class ListenerRegistry:
    """Publish "rectangle calculated" events to registered callbacks.

    Callbacks run on the notifying worker thread, outside the registry lock,
    so they may add or remove listeners or resize the engine. A failing
    callback is logged and does not prevent delivery to the others.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[CalculationListener] = []

    def add(self, listener: CalculationListener) -> None:
        if not callable(listener):
            raise TypeError(f"listener must be callable, got {type(listener).__name__}")
        with self._lock:
            self._listeners.append(listener)

    def remove(self, listener: CalculationListener) -> None:
        # Bound methods are recreated on each attribute access, so match by
        # equality as well as identity.
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    def snapshot(self) -> tuple[CalculationListener, ...]:
        with self._lock:
            return tuple(self._listeners)

    def notify(self, area: Rectangle, buffer: np.ndarray) -> None:
        for listener in self.snapshot():
            try:
                listener(area, buffer)
            except Exception:
                logger.exception("Listener %r failed while handling %s", listener, area)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
