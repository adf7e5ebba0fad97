"""Public API of the incremental Mandelbrot calculation engine.

The TensorFlow evaluator lives in :mod:`mandelbrot_engine.batch` and is
imported on demand.
"""

from .buffer import Rectangle, ResizePlan, exposed_margins, migrate_buffer, plan_resize, rescale_viewport
from .engine import MandelbrotEngine
from .errors import EngineStoppedError
from .escape import (
    DEFAULT_DIVERGENCE_THRESHOLD,
    DEFAULT_ITERATION_LIMIT,
    SENTINEL,
    EscapeParameters,
    Viewport,
    escape_value,
    pixel_to_complex,
)
from .listeners import CalculationListener, ListenerRegistry
from .worker import REPORT_PERIOD, CalculationWorker, CancellationToken, Geometry, TaskScheduler

__all__ = [
    "CalculationListener",
    "CalculationWorker",
    "CancellationToken",
    "DEFAULT_DIVERGENCE_THRESHOLD",
    "DEFAULT_ITERATION_LIMIT",
    "EngineStoppedError",
    "EscapeParameters",
    "Geometry",
    "ListenerRegistry",
    "MandelbrotEngine",
    "REPORT_PERIOD",
    "Rectangle",
    "ResizePlan",
    "SENTINEL",
    "TaskScheduler",
    "Viewport",
    "escape_value",
    "exposed_margins",
    "migrate_buffer",
    "pixel_to_complex",
    "plan_resize",
    "rescale_viewport",
]
