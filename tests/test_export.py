import os

import numpy as np
import pytest

from sgramlib.export import (
    render_rgb,
    resolve_export_path,
    save_csv,
    save_png,
)
from sgramlib.history import HistoryBuffer


def _history(*rows, zoom: float = 1.0) -> HistoryBuffer:
    """Build a history; *rows* are given oldest first."""
    history = HistoryBuffer()
    for row in rows:
        history.push(np.asarray(row, dtype=np.float32), zoom)
    return history


def test_csv_writes_oldest_first(tmp_path) -> None:
    history = _history([-20.0, -30.0], [0.0, -10.0])
    path = tmp_path / "out.csv"
    assert save_csv(history, str(path)) == 2
    assert path.read_text(encoding="utf-8").splitlines() == [
        "-20.000000,-30.000000",
        "0.000000,-10.000000",
    ]


def test_csv_creates_parent_directories(tmp_path) -> None:
    path = tmp_path / "a" / "b" / "rows.csv"
    save_csv(_history([1.0]), str(path))
    assert path.is_file()


def test_csv_of_empty_history_is_empty(tmp_path) -> None:
    path = tmp_path / "empty.csv"
    assert save_csv(HistoryBuffer(), str(path)) == 0
    assert path.read_text(encoding="utf-8") == ""


def test_export_path_defaults() -> None:
    assert resolve_export_path(None, "png", now=123.9) == os.path.join("saved", "sgram_123.png")
    assert resolve_export_path("take.csv", "csv") == os.path.join("saved", "take.csv")
    nested = os.path.join("out", "take.csv")
    assert resolve_export_path(nested, "csv") == nested


def test_render_empty_history() -> None:
    assert render_rgb(HistoryBuffer(), "grayscale", -80.0, 0.0) is None


def test_render_repeats_oldest_row() -> None:
    rgb = render_rgb(_history([0.0, -80.0]), "grayscale", -80.0, 0.0, width=4, height=3)
    assert rgb.shape == (3, 4, 3)
    expected = [255, 255, 0, 0]
    for y in range(3):
        assert rgb[y, :, 0].tolist() == expected


def test_render_short_rows_read_as_floor() -> None:
    history = HistoryBuffer()
    history.push(np.zeros(4, dtype=np.float32), zoom=2.0)  # older, 2 bins
    history.push(np.zeros(4, dtype=np.float32), zoom=1.0)  # newer, 4 bins
    rgb = render_rgb(history, "grayscale", -80.0, 0.0, width=4, height=2)
    assert rgb[0, :, 0].tolist() == [255, 255, 255, 255]
    assert rgb[1, :, 0].tolist() == [255, 255, 0, 0]


def test_png_export(tmp_path) -> None:
    qtgui = pytest.importorskip("PySide6.QtGui")
    path = tmp_path / "img" / "snap.png"
    history = _history(np.linspace(-80, 0, 64), np.linspace(0, -80, 64))

    assert save_png(history, str(path), "viridis", -80.0, 0.0, width=40, height=30)
    image = qtgui.QImage(str(path))
    assert image.width() == 40
    assert image.height() == 30


def test_png_export_skips_empty_history(tmp_path) -> None:
    path = tmp_path / "never.png"
    assert save_png(HistoryBuffer(), str(path), "viridis", -80.0, 0.0) is False
    assert not path.exists()
