"""Escape-time mapping from pixels to normalized scalars."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .worker import CancellationToken

DEFAULT_ITERATION_LIMIT = 1000
DEFAULT_DIVERGENCE_THRESHOLD = 2.0

DIVERGE_FACTOR = 0.4
NON_DIVERGE_FACTOR = 3.0

# Value left in cells whose computation was cancelled.
SENTINEL = 0.0


@dataclass(frozen=True)
class EscapeParameters:
    """Iteration limit and divergence threshold of the escape-time iteration."""

    iteration_limit: int = DEFAULT_ITERATION_LIMIT
    threshold: float = DEFAULT_DIVERGENCE_THRESHOLD

    def __post_init__(self) -> None:
        if int(self.iteration_limit) != self.iteration_limit or self.iteration_limit <= 0:
            raise ValueError(f"iteration_limit must be a positive integer, got {self.iteration_limit!r}")
        if not self.threshold > 0:
            raise ValueError(f"divergence threshold must be positive, got {self.threshold!r}")


@dataclass(frozen=True)
class Viewport:
    """Visible window of the complex plane."""

    center_re: float = 0.0
    center_im: float = 0.0
    real_width: float = 4.0
    imaginary_height: float = 4.0


def pixel_to_complex(x: int, y: int, pixel_width: int, pixel_height: int, viewport: Viewport) -> tuple[float, float]:
    """Map the center of pixel ``(x, y)`` to a point of the plane."""

    cre = viewport.center_re + ((x + 0.5) / pixel_width - 0.5) * viewport.real_width
    cim = viewport.center_im + ((y + 0.5) / pixel_height - 0.5) * viewport.imaginary_height
    return cre, cim


def smooth_value(iterations: int, magnitude_sq: float, iteration_limit: int) -> float:
    if iterations < iteration_limit:
        return 2.0 * math.atan(DIVERGE_FACTOR * iterations) / math.pi
    return -2.0 * math.atan(NON_DIVERGE_FACTOR * magnitude_sq) / math.pi


def escape_value(
    x: int,
    y: int,
    pixel_width: int,
    pixel_height: int,
    viewport: Viewport,
    parameters: EscapeParameters,
    token: Optional[CancellationToken] = None,
) -> float:
    """Compute the escape-time value of pixel ``(x, y)``.

    Diverging points map into ``[0, 1)`` by escape speed, points that survive
    the iteration limit map into ``(-1, 0]`` by their final magnitude. A
    cancelled computation returns :data:`SENTINEL`.
    """

    cre, cim = pixel_to_complex(x, y, pixel_width, pixel_height, viewport)
    limit = parameters.iteration_limit
    max_absolute = parameters.threshold * parameters.threshold

    re = 0.0
    im = 0.0
    i = 0
    while True:
        re, im = re * re - im * im + cre, 2.0 * re * im + cim
        i += 1
        absolute = re * re + im * im
        if token is not None and token.cancelled:
            return SENTINEL
        if absolute > max_absolute or i >= limit:
            break

    return smooth_value(i, absolute, limit)
