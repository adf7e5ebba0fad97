"""Vectorized full-frame evaluation of the escape-time mapping with TensorFlow."""

from __future__ import annotations

import math
from typing import Optional

import numpy as np
import tensorflow as tf

from .escape import DIVERGE_FACTOR, NON_DIVERGE_FACTOR, EscapeParameters, Viewport


@tf.function
def _escape_step(re: tf.Tensor, im: tf.Tensor, cre: tf.Tensor, cim: tf.Tensor, ns: tf.Tensor,
                 active: tf.Tensor, max_absolute: tf.Tensor, limit: tf.Tensor) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor, tf.Tensor]:
    """Advance ``z <- z^2 + c`` for the points that are still iterating."""

    re_new = re * re - im * im + cre
    im_new = 2.0 * re * im + cim
    re = tf.where(active, re_new, re)
    im = tf.where(active, im_new, im)
    ns = ns + tf.cast(active, tf.int32)
    absolute = re * re + im * im
    active = tf.logical_and(active, tf.logical_and(absolute <= max_absolute, ns < limit))
    return re, im, ns, active


@tf.function
def _escape_run(cre: tf.Tensor, cim: tf.Tensor, max_absolute: tf.Tensor, limit: tf.Tensor) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor]:
    re = tf.zeros_like(cre)
    im = tf.zeros_like(cim)
    ns = tf.zeros_like(cre, dtype=tf.int32)
    active = tf.ones_like(cre, dtype=tf.bool)
    i = tf.constant(0, dtype=tf.int32)

    def cond(i, re, im, ns, active):
        return tf.logical_and(tf.less(i, limit), tf.reduce_any(active))

    def body(i, re, im, ns, active):
        re, im, ns, active = _escape_step(re, im, cre, cim, ns, active, max_absolute, limit)
        return i + 1, re, im, ns, active

    _, re, im, ns, _ = tf.while_loop(cond, body, (i, re, im, ns, active))
    return re, im, ns


def _plane_axes(width: int, height: int, viewport: Viewport) -> tuple[np.ndarray, np.ndarray]:
    xs = np.arange(width, dtype=np.float64)
    ys = np.arange(height, dtype=np.float64)
    cre = viewport.center_re + ((xs + 0.5) / width - 0.5) * viewport.real_width
    cim = viewport.center_im + ((ys + 0.5) / height - 0.5) * viewport.imaginary_height
    return cre, cim


def render_grid(
    width: int,
    height: int,
    viewport: Optional[Viewport] = None,
    parameters: Optional[EscapeParameters] = None,
    *,
    device: Optional[str] = None,
) -> np.ndarray:
    """Evaluate every pixel of a ``width`` x ``height`` grid in one pass.

    Produces the same values as the threaded engine would after all of its
    workers completed, as a ``(height, width)`` float64 array. There is no
    cancellation and no progress reporting.
    """

    if width < 0 or height < 0:
        raise ValueError(f"grid size must be non-negative, got {width}x{height}")
    viewport = viewport if viewport is not None else Viewport()
    parameters = parameters if parameters is not None else EscapeParameters()
    if width == 0 or height == 0:
        return np.zeros((height, width), dtype=np.float64)

    cre_axis, cim_axis = _plane_axes(width, height, viewport)
    limit = parameters.iteration_limit

    with tf.device(device if device is not None else "/CPU:0"):
        cre, cim = tf.meshgrid(
            tf.convert_to_tensor(cre_axis, dtype=tf.float64),
            tf.convert_to_tensor(cim_axis, dtype=tf.float64),
        )
        max_absolute = tf.constant(parameters.threshold * parameters.threshold, dtype=tf.float64)
        re, im, ns = _escape_run(cre, cim, max_absolute, tf.constant(limit, dtype=tf.int32))

        absolute = re * re + im * im
        ns_float = tf.cast(ns, tf.float64)
        pi = tf.constant(math.pi, dtype=tf.float64)
        diverged = 2.0 * tf.math.atan(DIVERGE_FACTOR * ns_float) / pi
        interior = -2.0 * tf.math.atan(NON_DIVERGE_FACTOR * absolute) / pi
        values = tf.where(ns < limit, diverged, interior)

    return values.numpy()
