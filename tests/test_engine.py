import threading

import numpy as np
import pytest

from mandelbrot_engine import SENTINEL, EngineStoppedError, MandelbrotEngine, Viewport, escape_value

from conftest import DRAIN_TIMEOUT, ITERATION_LIMIT


class RecordingListener:
    """Keep every reported rectangle together with the values it covered."""

    def __init__(self):
        self._lock = threading.Lock()
        self.reports = []

    def __call__(self, area, buffer):
        with self._lock:
            self.reports.append((area, buffer[area.slices()].copy()))

    @property
    def areas(self):
        with self._lock:
            return [area for area, _ in self.reports]


def test_defaults():
    with MandelbrotEngine() as engine:
        assert engine.parameters.iteration_limit == 1000
        assert engine.parameters.threshold == 2.0
        assert engine.viewport == Viewport(0.0, 0.0, 4.0, 4.0)
        assert engine.size == (0, 0)
        assert engine.get_buffer().shape == (0, 0)


def test_four_by_four_example():
    with MandelbrotEngine(50, 2.0) as engine:
        engine.resize(4, 4)
        assert engine.wait_idle(DRAIN_TIMEOUT)
        buffer = engine.get_buffer()

        assert buffer.shape == (4, 4)
        assert (buffer != SENTINEL).all()
        # Pixels (1, 1) and (2, 2) are the nearest ones to the origin.
        assert buffer[1, 1] < 0.0
        assert buffer[0, 0] > 0.0
        assert buffer[3, 3] > 0.0


def test_first_resize_populates_every_cell(engine):
    engine.resize(16, 12)
    assert engine.wait_idle(DRAIN_TIMEOUT)
    buffer = engine.get_buffer()

    assert buffer.shape == (12, 16)
    assert (buffer != SENTINEL).all()
    assert ((buffer > -1.0) & (buffer < 1.0)).all()
    assert engine.running_count == 0


def test_buffer_matches_escape_function(engine):
    engine.resize(10, 8)
    assert engine.wait_idle(DRAIN_TIMEOUT)
    buffer = engine.get_buffer()
    for x in range(10):
        for y in range(8):
            assert buffer[y, x] == escape_value(x, y, 10, 8, engine.viewport, engine.parameters)


def test_growth_keeps_old_block_and_computes_only_margins(engine):
    engine.resize(8, 6)
    assert engine.wait_idle(DRAIN_TIMEOUT)
    before = engine.get_buffer().copy()

    listener = RecordingListener()
    engine.add_listener(listener)
    engine.resize(13, 11)
    assert engine.wait_idle(DRAIN_TIMEOUT)
    after = engine.get_buffer()

    assert after.shape == (11, 13)
    np.testing.assert_array_equal(after[2:8, 2:10], before)

    counts = np.zeros(after.shape, dtype=np.int64)
    for area in listener.areas:
        counts[area.slices()] += 1
    assert counts[2:8, 2:10].sum() == 0
    counts[2:8, 2:10] = 1
    assert (counts == 1).all()
    assert sum(area.area for area in listener.areas) == 13 * 11 - 8 * 6


def test_growth_keeps_plane_scale(engine):
    engine.resize(10, 10)
    engine.resize(20, 15)
    assert engine.viewport.real_width == pytest.approx(8.0)
    assert engine.viewport.imaginary_height == pytest.approx(6.0)
    assert engine.wait_idle(DRAIN_TIMEOUT)


def test_shrink_is_a_crop_without_recomputation(engine):
    engine.resize(12, 10)
    assert engine.wait_idle(DRAIN_TIMEOUT)
    before = engine.get_buffer().copy()

    listener = RecordingListener()
    engine.add_listener(listener)
    engine.resize(6, 4)

    assert engine.running_count == 0
    assert engine.wait_idle(DRAIN_TIMEOUT)
    assert listener.areas == []
    np.testing.assert_array_equal(engine.get_buffer(), before[3:7, 3:9])


def test_resize_to_same_size_is_noop(engine):
    engine.resize(6, 6)
    buffer = engine.get_buffer()
    engine.resize(6, 6)
    assert engine.get_buffer() is buffer
    assert engine.wait_idle(DRAIN_TIMEOUT)


def test_resize_storm_leaves_no_residue(engine):
    for step in range(1, 40):
        engine.resize(step * 3, step * 2 + 1)
    engine.resize(30, 20)

    assert engine.wait_idle(DRAIN_TIMEOUT)
    assert engine.running_count == 0
    assert engine.size == (30, 20)
    assert engine.get_buffer().shape == (20, 30)


def test_reports_tile_region_and_match_final_buffer(engine):
    listener = RecordingListener()
    engine.add_listener(listener)
    engine.resize(40, 30)
    assert engine.wait_idle(DRAIN_TIMEOUT)
    buffer = engine.get_buffer()

    counts = np.zeros(buffer.shape, dtype=np.int64)
    for area, values in listener.reports:
        counts[area.slices()] += 1
        np.testing.assert_array_equal(values, buffer[area.slices()])
    assert (counts == 1).all()


def test_failing_listener_does_not_stop_workers(engine):
    listener = RecordingListener()

    def broken(area, buffer):
        raise ValueError("renderer went away")

    engine.add_listener(broken)
    engine.add_listener(listener)
    engine.resize(8, 8)
    assert engine.wait_idle(DRAIN_TIMEOUT)

    assert sum(area.area for area in listener.areas) == 64
    assert (engine.get_buffer() != SENTINEL).all()


def test_listener_may_resize_engine(engine):
    resized = threading.Event()

    def grow_once(area, buffer):
        if not resized.is_set():
            resized.set()
            engine.resize(12, 8)

    engine.add_listener(grow_once)
    engine.resize(8, 8)

    assert resized.wait(DRAIN_TIMEOUT)
    assert engine.wait_idle(DRAIN_TIMEOUT)
    assert engine.size == (12, 8)


def test_removed_listener_is_not_called(engine):
    listener = RecordingListener()
    engine.add_listener(listener)
    engine.remove_listener(listener)
    engine.resize(4, 4)
    assert engine.wait_idle(DRAIN_TIMEOUT)
    assert listener.areas == []


def test_recalculate_recomputes_whole_grid(engine):
    engine.resize(10, 6)
    assert engine.wait_idle(DRAIN_TIMEOUT)
    expected = engine.get_buffer().copy()
    engine.get_buffer()[:] = SENTINEL

    listener = RecordingListener()
    engine.add_listener(listener)
    engine.recalculate()
    assert engine.wait_idle(DRAIN_TIMEOUT)

    np.testing.assert_array_equal(engine.get_buffer(), expected)
    assert sum(area.area for area in listener.areas) == 60


def test_empty_grid_schedules_nothing(engine):
    engine.resize(0, 9)
    assert engine.running_count == 0
    assert engine.get_buffer().shape == (9, 0)
    engine.recalculate()
    assert engine.running_count == 0


@pytest.mark.parametrize("size", [(-1, 4), (4, -1)])
def test_negative_size_is_rejected(engine, size):
    with pytest.raises(ValueError):
        engine.resize(*size)
    assert engine.size == (0, 0)


def test_non_integer_size_is_rejected(engine):
    with pytest.raises(TypeError):
        engine.resize(4.5, 4)


@pytest.mark.parametrize("limit,threshold", [(0, 2.0), (-1, 2.0), (10, 0.0), (10, -2.0)])
def test_invalid_construction_is_rejected(limit, threshold):
    with pytest.raises(ValueError):
        MandelbrotEngine(limit, threshold)


def test_work_after_shutdown_fails():
    engine = MandelbrotEngine(ITERATION_LIMIT)
    engine.resize(4, 4)
    engine.shutdown()

    assert engine.is_shutdown
    with pytest.raises(EngineStoppedError):
        engine.resize(8, 8)
    with pytest.raises(EngineStoppedError):
        engine.recalculate()
    assert engine.size == (4, 4)
    assert engine.wait_idle(DRAIN_TIMEOUT)


def test_shutdown_cancels_running_work():
    engine = MandelbrotEngine(100_000, 2.0, max_workers=1)
    engine.resize(64, 64)
    engine.shutdown()
    assert engine.wait_idle(DRAIN_TIMEOUT)
    assert engine.running_count == 0
    engine.shutdown()
