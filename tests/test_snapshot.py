import sys

import numpy as np
import pytest

import snapshot


def _run(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["snapshot.py", *args])
    snapshot.main()


def test_snapshot_writes_engine_buffer(monkeypatch, tmp_path, capsys):
    output = tmp_path / "out" / "grid"
    _run(monkeypatch, "--x-res", "6", "--y-res", "4", "--max-iterations", "31", "--output", str(output))

    saved = np.load(tmp_path / "out" / "grid.npy")
    assert saved.shape == (4, 6)
    assert (saved != 0.0).all()
    assert "Saved 6x4 buffer" in capsys.readouterr().out


def test_snapshot_honours_viewport(monkeypatch, tmp_path):
    output = tmp_path / "zoomed.npy"
    _run(
        monkeypatch,
        "--x-res", "4", "--y-res", "4", "--max-iterations", "31",
        "--x-center", "-0.25", "--x-width", "0.5", "--y-width", "0.5",
        "--output", str(output),
    )
    # The whole window lies inside the main cardioid.
    assert (np.load(output) < 0.0).all()


@pytest.mark.parametrize(
    "args",
    [
        ["--x-res", "-1"],
        ["--max-iterations", "0"],
        ["--threshold", "-2"],
        ["--workers", "0"],
        ["--output", "buffer.png"],
    ],
)
def test_snapshot_rejects_bad_options(monkeypatch, args):
    with pytest.raises(SystemExit):
        _run(monkeypatch, *args)


def test_snapshot_batch_mode(monkeypatch, tmp_path):
    pytest.importorskip("tensorflow")
    output = tmp_path / "batch.npy"
    _run(monkeypatch, "--batch", "--x-res", "6", "--y-res", "4", "--max-iterations", "31", "--output", str(output))
    assert np.load(output).shape == (4, 6)
