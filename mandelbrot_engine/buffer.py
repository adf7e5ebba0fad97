"""Buffer migration and exposed-margin planning for grid resizes."""

from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np

from .escape import Viewport


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned block of pixels, ``x``/``y`` being its top-left corner."""

    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def columns(self, start: int, stop: int) -> "Rectangle":
        """Return the sub-rectangle spanning columns ``[start, stop)`` at full height."""

        return Rectangle(start, self.y, stop - start, self.height)

    def slices(self) -> tuple[slice, slice]:
        """Numpy index for this rectangle in a ``(height, width)`` buffer."""

        return slice(self.y, self.bottom), slice(self.x, self.right)


@dataclass(frozen=True)
class ResizePlan:
    """Outcome of a resize: the migrated buffer, the rescaled viewport and the work to enqueue."""

    buffer: np.ndarray
    viewport: Viewport
    exposed: tuple[Rectangle, ...]


def allocate_buffer(width: int, height: int) -> np.ndarray:
    return np.zeros((height, width), dtype=np.float64)


def _axis_offsets(old: int, new: int) -> tuple[int, int]:
    """Return ``(old_start, new_start)`` centering the overlap along one axis."""

    if new > old:
        return 0, (new - old) // 2
    if new < old:
        return (old - new) // 2, 0
    return 0, 0


def migrate_buffer(old_buffer: np.ndarray, new_width: int, new_height: int) -> np.ndarray:
    """Copy the centered overlap of ``old_buffer`` into a freshly allocated buffer."""

    old_height, old_width = old_buffer.shape
    new_buffer = allocate_buffer(new_width, new_height)

    copy_width = min(old_width, new_width)
    copy_height = min(old_height, new_height)
    old_x, new_x = _axis_offsets(old_width, new_width)
    old_y, new_y = _axis_offsets(old_height, new_height)

    if copy_width > 0 and copy_height > 0:
        new_buffer[new_y:new_y + copy_height, new_x:new_x + copy_width] = \
            old_buffer[old_y:old_y + copy_height, old_x:old_x + copy_width]
    return new_buffer


def rescale_viewport(viewport: Viewport, old_size: tuple[int, int], new_size: tuple[int, int]) -> Viewport:
    """Scale the window extents so the per-pixel plane scale stays constant."""

    old_width, old_height = old_size
    new_width, new_height = new_size
    real_width = viewport.real_width
    imaginary_height = viewport.imaginary_height
    if old_width != 0:
        real_width = real_width * new_width / old_width
    if old_height != 0:
        imaginary_height = imaginary_height * new_height / old_height
    return replace(viewport, real_width=real_width, imaginary_height=imaginary_height)


def exposed_margins(old_size: tuple[int, int], new_size: tuple[int, int]) -> tuple[Rectangle, ...]:
    """List the rectangles of a resized grid that hold no migrated data.

    Width growth exposes a strip at the left and right edges at full height.
    Height growth exposes a strip at the top and bottom, spanning only the
    columns that received migrated data. A grid that migrated nothing is
    exposed as a single full rectangle. Shrinking exposes nothing.
    """

    old_width, old_height = old_size
    new_width, new_height = new_size
    if new_width <= 0 or new_height <= 0:
        return ()
    if old_width == 0 or old_height == 0:
        return (Rectangle(0, 0, new_width, new_height),)

    margins = []
    _, new_x = _axis_offsets(old_width, new_width)
    _, new_y = _axis_offsets(old_height, new_height)

    if new_width > old_width:
        right_start = new_x + old_width
        margins.append(Rectangle(0, 0, new_x, new_height))
        margins.append(Rectangle(right_start, 0, new_width - right_start, new_height))
    if new_height > old_height:
        copy_width = min(old_width, new_width)
        bottom_start = new_y + old_height
        margins.append(Rectangle(new_x, 0, copy_width, new_y))
        margins.append(Rectangle(new_x, bottom_start, copy_width, new_height - bottom_start))

    return tuple(rect for rect in margins if not rect.is_empty())


def plan_resize(buffer: np.ndarray, viewport: Viewport, new_width: int, new_height: int) -> ResizePlan:
    """Compute the buffer, viewport and exposed rectangles for a resize."""

    old_height, old_width = buffer.shape
    new_buffer = migrate_buffer(buffer, new_width, new_height)
    old_size = (old_width, old_height)
    new_size = (new_width, new_height)
    return ResizePlan(
        buffer=new_buffer,
        viewport=rescale_viewport(viewport, old_size, new_size),
        exposed=exposed_margins(old_size, new_size),
    )
