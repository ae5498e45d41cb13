from __future__ import annotations

import logging
import time
from typing import Any, Callable

from . import export
from .colormaps import PALETTES, next_palette, prev_palette
from .config import PipelineConfig, default_config, merge_configs
from .freqscale import max_frequency
from .history import HistoryBuffer
from .models import FreqScale, RenderMode, Style
from .pipeline import RowChannel

log = logging.getLogger(__name__)

MAX_ROWS_PER_TICK = 1024
STATS_INTERVAL = 1.0

ZOOM_MIN, ZOOM_MAX, ZOOM_STEP = 1.0, 64.0, 0.25
FLOOR_MIN, FLOOR_MAX, FLOOR_STEP = -140.0, -10.0, 2.0


class Session:
    """Consumer-side state of one spectrogram session.

    Owned by the foreground thread: it drains the row channel into the
    history buffer on every tick and holds the interactive view settings
    (zoom, dB range, palette, layout toggles).  Zoom and floor changes
    affect only rows pushed or drawn afterwards.
    """

    def __init__(
        self,
        config: dict[str, Any],
        channel: RowChannel,
        *,
        pipeline_config: PipelineConfig | None = None,
        source_desc: str = "",
        clock: Callable[[], float] = time.monotonic,
    ):
        cfg = merge_configs(default_config(), config)
        self.config = cfg
        self.pipeline_config = pipeline_config or PipelineConfig.from_config(cfg)
        self.channel = channel
        self.source_desc = source_desc
        self._clock = clock

        self.history = HistoryBuffer(cfg["history"])
        self.zoom = min(max(float(cfg["zoom"]), ZOOM_MIN), ZOOM_MAX)
        self.db_floor = float(cfg["db_floor"])
        self.db_ceiling = float(cfg["db_ceiling"])
        self.palette = cfg["palette"] if cfg["palette"] in PALETTES else "viridis"
        self.style = Style(cfg["style"])
        self.render = RenderMode(cfg["render"])
        self.freq_scale = FreqScale(cfg["freq_scale"])
        self.fps = max(int(cfg["fps"]), 1)
        self.realtime = bool(cfg["realtime"])
        self.detailed = bool(cfg["detailed"])
        self.fullscreen = bool(cfg["fullscreen"])
        self.overview = bool(cfg["overview"])
        self.png_path: str | None = cfg["png_path"]
        self.csv_path: str | None = cfg["csv_path"]
        self.paused = False
        self.show_help = False
        self.running = True

        self.rows_per_sec = 0.0
        self.total_rows = 0
        self._stats_rows = 0
        self._stats_start = clock()

    # -- timing --------------------------------------------------------------

    @property
    def tick_interval(self) -> float:
        """Seconds between ticks (``1000 // fps`` ms)."""
        return (1000 // self.fps) / 1000.0

    def tick(self, now: float | None = None) -> int:
        """Move available rows into the history.

        At most :data:`MAX_ROWS_PER_TICK` rows are taken per call; nothing
        is taken while paused (the producer then blocks on the full
        channel).  Returns the number of rows drained.
        """
        if self.paused:
            return 0
        rows = self.channel.drain(MAX_ROWS_PER_TICK)
        for row in rows:
            self.history.push(row, self.zoom)
        self._stats_rows += len(rows)
        self.total_rows += len(rows)

        now = self._clock() if now is None else now
        elapsed = now - self._stats_start
        if elapsed >= STATS_INTERVAL:
            self.rows_per_sec = self._stats_rows / elapsed
            self._stats_rows = 0
            self._stats_start = now
        return len(rows)

    @property
    def finished(self) -> bool:
        """The producer has ended and every row was consumed."""
        return self.channel.exhausted

    # -- key actions ---------------------------------------------------------

    def quit(self) -> None:
        self.running = False

    def toggle_pause(self) -> None:
        self.paused = not self.paused

    def toggle_style(self) -> None:
        self.style = Style.HORIZONTAL if self.style is Style.WATERFALL else Style.WATERFALL

    def toggle_help(self) -> None:
        self.show_help = not self.show_help

    def toggle_fullscreen(self) -> None:
        self.fullscreen = not self.fullscreen

    def toggle_details(self) -> None:
        self.detailed = not self.detailed

    def toggle_overview(self) -> None:
        self.overview = not self.overview

    def next_palette(self) -> None:
        self.palette = next_palette(self.palette)

    def prev_palette(self) -> None:
        self.palette = prev_palette(self.palette)

    def adjust_zoom(self, delta: float) -> None:
        self.zoom = min(max(self.zoom + delta, ZOOM_MIN), ZOOM_MAX)

    def adjust_floor(self, delta: float) -> None:
        self.db_floor = min(max(self.db_floor + delta, FLOOR_MIN), FLOOR_MAX)

    # -- derived metrics -----------------------------------------------------

    @property
    def sample_rate(self) -> int:
        return self.pipeline_config.sample_rate

    @property
    def hop(self) -> int:
        return self.pipeline_config.hop

    @property
    def max_frequency(self) -> float:
        return max_frequency(self.sample_rate, self.zoom)

    @property
    def seconds_visible(self) -> float:
        """Audio time spanned by the stored history."""
        return len(self.history) * self.hop / self.sample_rate

    @property
    def realtime_factor(self) -> float:
        return self.rows_per_sec * self.hop / self.sample_rate

    @property
    def total_seconds(self) -> float:
        return self.total_rows * self.hop / self.sample_rate

    # -- export --------------------------------------------------------------

    def save_png(self, path: str | None = None, width: int = export.PNG_WIDTH,
                 height: int = export.PNG_HEIGHT) -> str | None:
        """Write the history as PNG; returns the path, or None when empty.

        Without *path* the configured PNG path or ``sgram_<ts>.png`` is
        used; bare file names go under ``saved/``.
        """
        target = export.resolve_export_path(path or self.png_path, "png")
        written = export.save_png(self.history, target, self.palette,
                                  self.db_floor, self.db_ceiling, width, height)
        return target if written else None

    def save_csv(self, path: str | None = None) -> str:
        target = export.resolve_export_path(path or self.csv_path, "csv")
        export.save_csv(self.history, target)
        return target
