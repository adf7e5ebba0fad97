import pytest

from mandelbrot_engine import MandelbrotEngine

# Odd limit: points on the period-2 orbit of c = -1 end at |z| = 1, not on the sentinel.
ITERATION_LIMIT = 63
DRAIN_TIMEOUT = 60.0


@pytest.fixture
def engine():
    engine = MandelbrotEngine(ITERATION_LIMIT, 2.0, max_workers=4)
    yield engine
    engine.shutdown()
