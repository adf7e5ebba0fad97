import logging
import os
import sys
import threading
import time
from argparse import ArgumentParser
from pathlib import Path

_VERBOSE_FLAGS = {"--verbose", "-v"}
_cli_verbose = any(arg in _VERBOSE_FLAGS for arg in sys.argv[1:])

# TensorFlow is only imported for --batch; keep its C++ logging quiet unless asked.
if not _cli_verbose and os.environ.get("TF_CPP_MIN_LOG_LEVEL") is None:
    os.environ["TF_CPP_MIN_LOG_LEVEL"] = "3"

import numpy as np

from mandelbrot_engine import (
    DEFAULT_DIVERGENCE_THRESHOLD,
    DEFAULT_ITERATION_LIMIT,
    EscapeParameters,
    MandelbrotEngine,
    Rectangle,
    Viewport,
)

logger = logging.getLogger("snapshot")


def build_parser():
    parser = ArgumentParser(description="Compute a Mandelbrot escape-time buffer and save it as a .npy file.")

    parser.add_argument('--max-iterations', type=int,
                        dest='max_iterations', help='iteration limit before a point counts as interior',
                        metavar='MAX_ITERATIONS', default=DEFAULT_ITERATION_LIMIT)

    parser.add_argument('--threshold', type=float,
                        dest='threshold', help='divergence threshold on |z|',
                        metavar='THRESHOLD', default=DEFAULT_DIVERGENCE_THRESHOLD)

    parser.add_argument('--x-res', type=int,
                        dest='x_res', help='number of pixels along the x-axis',
                        metavar='X_RES', default=256)

    parser.add_argument('--y-res', type=int,
                        dest='y_res', help='number of pixels along the y-axis',
                        metavar='Y_RES', default=256)

    parser.add_argument('--x-center', type=float,
                        dest='x_center', help='real part of the window center',
                        metavar='X_CENTER', default=0.0)

    parser.add_argument('--y-center', type=float,
                        dest='y_center', help='imaginary part of the window center',
                        metavar='Y_CENTER', default=0.0)

    parser.add_argument('--x-width', type=float,
                        dest='x_width', help='width of the window on the real axis',
                        metavar='X_WIDTH', default=4.0)

    parser.add_argument('--y-width', type=float,
                        dest='y_width', help='height of the window on the imaginary axis',
                        metavar='Y_WIDTH', default=4.0)

    parser.add_argument('--workers', type=int, default=None,
                        help='size of the worker pool (default: chosen by the pool).')

    parser.add_argument('--timeout', type=float, default=None,
                        help='give up waiting for the workers after this many seconds.')

    parser.add_argument('--batch', action='store_true',
                        help='evaluate the whole grid in one TensorFlow pass instead of the threaded engine.')

    parser.add_argument('--output', type=str, default='buffer.npy',
                        help='destination of the raw (y_res, x_res) float64 buffer.')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='enable verbose logging, including per-rectangle progress.')

    return parser


def validate_options(opt, parser: ArgumentParser) -> Path:
    if opt.x_res < 0 or opt.y_res < 0:
        parser.error("--x-res and --y-res must be non-negative.")
    if opt.max_iterations <= 0:
        parser.error("--max-iterations must be positive.")
    if opt.threshold <= 0:
        parser.error("--threshold must be positive.")
    if opt.workers is not None and opt.workers <= 0:
        parser.error("--workers must be positive.")

    output_path = Path(opt.output).expanduser()
    if output_path.suffix:
        if output_path.suffix.lower() != ".npy":
            parser.error("--output must end with .npy.")
    else:
        output_path = output_path.with_suffix(".npy")
    return output_path.resolve()


class ProgressLog:
    """Listener counting the pixels reported by the workers."""

    def __init__(self, total: int) -> None:
        self.total = total
        self.reported = 0
        self.started = time.monotonic()
        self._lock = threading.Lock()

    def __call__(self, area: Rectangle, buffer: np.ndarray) -> None:
        with self._lock:
            self.reported += area.area
            reported = self.reported
        logger.info(
            "%s done, %d/%d pixels (%.0f%%) after %.2fs",
            area, reported, self.total,
            100.0 * reported / max(self.total, 1), time.monotonic() - self.started,
        )


def compute_threaded(opt, viewport: Viewport) -> np.ndarray:
    with MandelbrotEngine(opt.max_iterations, opt.threshold, viewport=viewport, max_workers=opt.workers) as engine:
        engine.add_listener(ProgressLog(opt.x_res * opt.y_res))
        engine.resize(opt.x_res, opt.y_res)
        if not engine.wait_idle(opt.timeout):
            logger.warning("Timed out after %.1fs with %d worker(s) still running; saving partial buffer",
                           opt.timeout, engine.running_count)
        return engine.get_buffer().copy()


def compute_batch(opt, viewport: Viewport) -> np.ndarray:
    from mandelbrot_engine.batch import render_grid

    return render_grid(opt.x_res, opt.y_res, viewport, EscapeParameters(opt.max_iterations, opt.threshold))


def main():
    parser = build_parser()
    opt = parser.parse_args()
    output_path = validate_options(opt, parser)

    logging.basicConfig(
        level=logging.DEBUG if opt.verbose else logging.WARNING,
        format="%(asctime)s %(threadName)s %(name)s %(levelname)s: %(message)s",
    )

    viewport = Viewport(
        center_re=opt.x_center,
        center_im=opt.y_center,
        real_width=opt.x_width,
        imaginary_height=opt.y_width,
    )

    started = time.monotonic()
    buffer = compute_batch(opt, viewport) if opt.batch else compute_threaded(opt, viewport)
    logger.info("Computed %dx%d buffer in %.2fs", opt.x_res, opt.y_res, time.monotonic() - started)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    np.save(str(output_path), buffer)
    print(f"Saved {buffer.shape[1]}x{buffer.shape[0]} buffer to {output_path}")


if __name__ == '__main__':
    main()
