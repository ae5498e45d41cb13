import numpy as np
import pytest

from sgramlib.models import Style
from sgramlib.pipeline import RowChannel
from sgramlib.session import MAX_ROWS_PER_TICK, Session


def _session(rows: int = 0, capacity: int = 64, **config) -> Session:
    channel = RowChannel(capacity)
    for _ in range(rows):
        channel.send(np.zeros(512, dtype=np.float32))
    return Session(config, channel, clock=lambda: 0.0)


def test_tick_moves_rows_into_history() -> None:
    session = _session(5)
    assert session.tick(now=0.1) == 5
    assert len(session.history) == 5
    assert session.total_rows == 5


def test_paused_session_leaves_rows_queued() -> None:
    session = _session(5)
    session.toggle_pause()
    assert session.tick(now=0.1) == 0
    assert len(session.channel) == 5
    session.toggle_pause()
    assert session.tick(now=0.2) == 5


def test_tick_drains_a_bounded_batch() -> None:
    session = _session(1500, capacity=2000, history=2048)
    assert session.tick(now=0.1) == MAX_ROWS_PER_TICK
    assert session.tick(now=0.2) == 1500 - MAX_ROWS_PER_TICK


def test_rows_per_second_updates_once_per_second() -> None:
    session = _session(10)
    session.tick(now=0.5)
    assert session.rows_per_sec == 0.0
    for _ in range(10):
        session.channel.send(np.zeros(512, dtype=np.float32))
    session.tick(now=1.0)
    assert session.rows_per_sec == pytest.approx(20.0)


def test_zoom_is_applied_to_new_rows() -> None:
    session = _session(1, zoom=2.0)
    session.tick(now=0.1)
    assert session.history.bin_count == 256


def test_zoom_and_floor_adjustments_are_clamped() -> None:
    session = _session()
    session.adjust_zoom(-0.25)
    assert session.zoom == 1.0
    for _ in range(300):
        session.adjust_zoom(0.25)
    assert session.zoom == 64.0

    session.adjust_floor(2.0)
    assert session.db_floor == -78.0
    for _ in range(100):
        session.adjust_floor(-2.0)
    assert session.db_floor == -140.0
    for _ in range(100):
        session.adjust_floor(2.0)
    assert session.db_floor == -10.0


def test_toggles_and_palette_cycling() -> None:
    session = _session()
    session.toggle_style()
    assert session.style is Style.HORIZONTAL
    session.toggle_style()
    assert session.style is Style.WATERFALL
    session.next_palette()
    assert session.palette == "jet"
    session.prev_palette()
    session.prev_palette()
    assert session.palette == "heat"
    session.quit()
    assert not session.running


def test_status_metrics() -> None:
    session = _session(30, zoom=2.0)
    session.tick(now=0.1)
    assert session.max_frequency == pytest.approx(12000.0)
    assert session.seconds_visible == pytest.approx(30 * 256 / 48000)
    assert session.total_seconds == pytest.approx(30 * 256 / 48000)
    session.rows_per_sec = 187.5
    assert session.realtime_factor == pytest.approx(1.0)


def test_tick_interval_from_fps() -> None:
    assert _session(fps=30).tick_interval == pytest.approx(0.033)
    assert _session(fps=0).tick_interval == pytest.approx(1.0)


def test_finished_after_producer_closes() -> None:
    session = _session(2)
    session.channel.close()
    assert not session.finished
    session.tick(now=0.1)
    assert session.finished


def test_save_csv_uses_configured_path(tmp_path) -> None:
    target = tmp_path / "rows.csv"
    session = _session(3, csv_path=str(target))
    session.tick(now=0.1)
    assert session.save_csv() == str(target)
    assert len(target.read_text(encoding="utf-8").splitlines()) == 3


def test_save_csv_defaults_under_saved(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    session = _session(1)
    session.tick(now=0.1)
    written = session.save_csv()
    assert written.startswith("saved")
    assert (tmp_path / written).is_file()


def test_save_png_of_empty_history_returns_none(tmp_path) -> None:
    session = _session()
    assert session.save_png(str(tmp_path / "x.png")) is None
