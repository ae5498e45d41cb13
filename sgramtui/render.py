"""Draw a :class:`~sgramlib.session.Session` as rich renderables.

Every frame is rebuilt from the history buffer: one terminal cell per
(time, frequency) sample in cell mode, two time rows per line in half
mode.  Nothing here touches the terminal directly, so frames can be
rendered to any console (the tests use a recording one).
"""

from __future__ import annotations

from functools import lru_cache
from itertools import groupby

import numpy as np
from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.text import Text

from sgramlib.colormaps import get_colormap, intensity
from sgramlib.freqscale import column_bins, frac_to_bin, frac_to_freq
from sgramlib.models import RenderMode, Style
from sgramlib.session import Session

KEY_LEGEND = (
    "[q] quit  [p] pause  [a] style  [+/-] zoom  [[/]] floor  [c/C] palette  "
    "[s/S] png  [w/W] csv  [f] fullscreen  [d] details  [o] overview  [h] help"
)

HELP_LINES = [
    "Usage: sgram [mic|wav|file|FILE] [FILE] [flags]",
    "Examples: sgram wav song.wav  |  sgram mic  |  sgram song.wav",
    "Keys: q/Esc quit, p pause, a style, +/- zoom, [/] floor, c/C palette, "
    "f fullscreen, o overview, d details, s/S png, w/W csv, h help",
]

FREQ_TICKS = 4
LABEL_STYLE = "bold white on black"
HALF_BLOCK = "▀"


@lru_cache(maxsize=None)
def _hex_lut(palette: str) -> tuple[str, ...]:
    return tuple("#%02x%02x%02x" % tuple(int(c) for c in rgb)
                 for rgb in get_colormap(palette))


def _levels(row: np.ndarray, bins: np.ndarray, db_floor: float,
            db_ceiling: float) -> np.ndarray:
    """LUT indices for *row* sampled at *bins*; missing bins read as floor."""
    db = np.full(bins.shape, float(db_floor), dtype=np.float64)
    valid = bins < row.size
    db[valid] = row[bins[valid]]
    return (intensity(db, db_floor, db_ceiling) * 255).astype(np.uint8)


def _row_max(row: np.ndarray, fallback: float) -> float:
    return float(row.max()) if row.size else fallback


def _cell_line(levels, hexes, label: str = "") -> Text:
    line = Text(no_wrap=True, overflow="crop")
    if label:
        line.append(label, style=LABEL_STYLE)
    for lv, run in groupby(levels[len(label):].tolist()):
        line.append(" " * len(list(run)), style=f"on {hexes[lv]}")
    return line


def _half_line(top, bottom, hexes) -> Text:
    line = Text(no_wrap=True, overflow="crop")
    for (t, b), run in groupby(zip(top.tolist(), bottom.tolist())):
        line.append(HALF_BLOCK * len(list(run)), style=f"{hexes[t]} on {hexes[b]}")
    return line


def _overview_index(line: int, lines: int, total: int) -> int:
    """History index shown on *line* when the whole buffer is squeezed in."""
    frac = 1.0 - (line + 0.5) / lines
    idx = int(round((total - 1) * frac))
    return total - 1 - min(max(idx, 0), total - 1)


# ---------------------------------------------------------------------------
# Spectrogram area
# ---------------------------------------------------------------------------

def waterfall_lines(session: Session, width: int, height: int) -> list[Text]:
    """Newest row on top, frequency left (low) to right (high)."""
    history = session.history
    total = len(history)
    if total == 0 or width <= 0 or height <= 0:
        return [Text() for _ in range(max(height, 0))]
    hexes = _hex_lut(session.palette)
    bins = np.array(column_bins(width, history.bin_count, session.sample_rate,
                                session.zoom, session.freq_scale), dtype=np.intp)
    floor = session.db_floor
    lines: list[Text] = []

    if session.render is RenderMode.CELL:
        for y in range(min(total, height)):
            idx = _overview_index(y, height, total) if session.overview else y
            row = history[idx]
            lines.append(_cell_line(_levels(row, bins, floor, session.db_ceiling), hexes))
    else:
        # two time rows per line: upper half newer, lower half older
        for y in range(min(height, (total + 1) // 2)):
            if session.overview:
                top = history[_overview_index(2 * y, 2 * height, total)]
                bottom = history[_overview_index(2 * y + 1, 2 * height, total)]
            else:
                top = history[2 * y]
                bottom = history[min(2 * y + 1, total - 1)]
            lines.append(_half_line(
                _levels(top, bins, floor, _row_max(top, session.db_ceiling)),
                _levels(bottom, bins, floor, _row_max(bottom, session.db_ceiling)),
                hexes,
            ))

    lines.extend(Text() for _ in range(height - len(lines)))
    return lines


def horizontal_lines(session: Session, width: int, height: int,
                     labels: dict[int, str] | None = None) -> list[Text]:
    """Time left to right (newest on the right), low frequency at the bottom."""
    history = session.history
    total = len(history)
    if total == 0 or width <= 0 or height <= 0:
        return [Text() for _ in range(max(height, 0))]
    hexes = _hex_lut(session.palette)
    # top line samples the highest frequency, bottom line 1/height of the range
    y_bins = np.array([
        frac_to_bin(1.0 - y / height, history.bin_count, session.sample_rate,
                    session.zoom, session.freq_scale)
        for y in range(height)
    ], dtype=np.intp)

    grid = np.zeros((height, width), dtype=np.uint8)
    cache: dict[int, np.ndarray] = {}
    for x in range(width):
        t_idx = min(int(x / width * total), total - 1)
        if t_idx not in cache:
            row = history[total - 1 - t_idx]
            cache[t_idx] = _levels(row, y_bins, session.db_floor, session.db_ceiling)
        grid[:, x] = cache[t_idx]

    labels = labels or {}
    return [_cell_line(grid[y], hexes, labels.get(y, "")) for y in range(height)]


def freq_tick_labels(session: Session, span: int) -> list[tuple[int, str]]:
    """``(offset, "1234Hz")`` for evenly spaced ticks along an axis of *span* cells.

    Offset 0 is the low-frequency end.
    """
    ticks = []
    for i in range(FREQ_TICKS + 1):
        frac = i / FREQ_TICKS
        offset = i * max(span - 1, 0) // FREQ_TICKS
        freq = frac_to_freq(frac, session.sample_rate, session.zoom, session.freq_scale)
        ticks.append((offset, f"{freq:.0f}Hz"))
    return ticks


def _axis_line(session: Session, width: int) -> Text:
    """Frequency labels placed under their columns (waterfall style)."""
    chars = [" "] * width
    for offset, label in freq_tick_labels(session, width):
        start = min(offset, max(width - len(label), 0))
        for i, ch in enumerate(label[:width - start]):
            chars[start + i] = ch
    return Text("".join(chars), style="dim", no_wrap=True, overflow="crop")


def spectrogram_lines(session: Session, width: int, height: int) -> list[Text]:
    if session.style is Style.HORIZONTAL:
        labels = None
        if session.detailed:
            labels = {height - 1 - offset: label
                      for offset, label in freq_tick_labels(session, height)}
        return horizontal_lines(session, width, height, labels)
    if session.detailed and height > 1:
        return [_axis_line(session, width)] + waterfall_lines(session, width, height - 1)
    return waterfall_lines(session, width, height)


# ---------------------------------------------------------------------------
# Panels
# ---------------------------------------------------------------------------

def status_text(session: Session, prompt: str | None = None,
                message: str | None = None) -> Text:
    cfg = session.pipeline_config
    text = Text(KEY_LEGEND, style="dim", no_wrap=True, overflow="ellipsis")
    text.append("\n")
    text.append(
        f"src: {session.source_desc} | style: {session.style.value} | "
        f"zoom: {session.zoom:.2f} | floor: {session.db_floor:.1f} dB "
        f"ceil: {session.db_ceiling:.1f} | rows: {len(session.history)} | "
        f"freq: 0..{session.max_frequency:.0f} Hz | "
        f"time: 0..{session.seconds_visible:.2f}s | "
        f"L/H/N: {cfg.frame_len}/{cfg.hop}/{cfg.fft_size} | fps: {session.fps} | "
        f"rps: {session.rows_per_sec:.1f} | rt: {'on' if session.realtime else 'off'} | "
        f"scale: {session.freq_scale.value} | render: {session.render.value}"
    )
    if session.paused:
        text.append("  [PAUSED]", style="yellow bold")
    if prompt is not None:
        text.append("\n")
        text.append(prompt, style="cyan bold")
    elif message:
        text.append("\n")
        text.append(message, style="green")
    return text


def details_panel(session: Session) -> Panel:
    cfg = session.pipeline_config
    lines = [
        f"src: {session.source_desc}",
        f"fs: {cfg.sample_rate} Hz | L/H/N: {cfg.frame_len}/{cfg.hop}/{cfg.fft_size}",
        f"bins: {cfg.bin_count} | df: {cfg.bin_hz:.1f} Hz",
        f"floor/ceil: {session.db_floor:.0f}/{session.db_ceiling:.0f} dB | zoom: {session.zoom:.2f}",
        f"throughput: {session.rows_per_sec:.1f} rows/s | RTF: {session.realtime_factor:.2f}x "
        f"| total: {session.total_seconds:.2f}s",
        f"scale: {session.freq_scale.value} | render: {session.render.value}",
    ]
    return Panel(Text("\n".join(lines)), title="details", expand=True)


def help_panel() -> Panel:
    return Panel(Text("\n".join(HELP_LINES)), title="Help", border_style="cyan")


DETAILS_HEIGHT = 8
HELP_HEIGHT = 5


def build_display(session: Session, width: int, height: int,
                  prompt: str | None = None,
                  message: str | None = None) -> RenderableType:
    """Compose one full frame of *width* × *height* cells."""
    parts: list[RenderableType] = []
    if session.show_help:
        parts.append(help_panel())
        height -= HELP_HEIGHT

    if session.fullscreen:
        lines = spectrogram_lines(session, width, max(height, 0))
        parts.append(Text("\n").join(lines))
        return Group(*parts)

    status = status_text(session, prompt, message)
    status_height = status.plain.count("\n") + 3
    if session.detailed:
        parts.append(details_panel(session))
        height -= DETAILS_HEIGHT
    inner_h = max(height - status_height - 2, 0)
    inner_w = max(width - 2, 0)
    lines = spectrogram_lines(session, inner_w, inner_h)
    parts.append(Panel(Text("\n").join(lines), title="sgram", padding=0,
                       height=inner_h + 2))
    parts.append(Panel(status, title="status"))
    return Group(*parts)
