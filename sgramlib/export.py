"""CSV and PNG snapshots of the history buffer."""

from __future__ import annotations

import csv
import logging
import os
import time

import numpy as np

from .colormaps import get_colormap, intensity
from .history import HistoryBuffer

log = logging.getLogger(__name__)

SAVE_DIR = "saved"
PNG_WIDTH = 800
PNG_HEIGHT = 600


def default_export_name(ext: str, now: float | None = None) -> str:
    """``sgram_<unix seconds>.<ext>``."""
    ts = int(time.time() if now is None else now)
    return f"sgram_{ts}.{ext.lstrip('.')}"


def resolve_export_path(path: str | None, ext: str, now: float | None = None) -> str:
    """Fill in a default file name and put bare names under ``saved/``."""
    path = path or default_export_name(ext, now)
    if not os.path.dirname(path):
        path = os.path.join(SAVE_DIR, path)
    return path


def _ensure_parent(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def save_csv(history: HistoryBuffer, path: str) -> int:
    """Write one line per row, oldest first, values as ``%.6f``.

    Returns the number of rows written.
    """
    _ensure_parent(path)
    count = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, lineterminator="\n")
        for row in history.oldest_first():
            writer.writerow([f"{v:.6f}" for v in row.tolist()])
            count += 1
    log.info("Saved %d rows to %s", count, path)
    return count


def render_rgb(history: HistoryBuffer, palette: str, db_floor: float,
               db_ceiling: float, width: int = PNG_WIDTH,
               height: int = PNG_HEIGHT) -> np.ndarray | None:
    """Color the history into a ``(height, width, 3)`` uint8 image.

    Image row ``y`` shows history row ``y`` (newest at the top); rows past
    the end of the history repeat the oldest one.  Column ``x`` samples
    bin ``floor(x / width * bins)`` where *bins* is the newest row's
    length; shorter rows read as the floor there.
    """
    if not history:
        return None
    w = max(int(width), 1)
    h = max(int(height), 1)
    bins = max(history.bin_count, 1)
    cols = np.minimum((np.arange(w) * bins) // w, bins - 1)
    lut = get_colormap(palette)

    db = np.full((h, w), float(db_floor), dtype=np.float64)
    last = len(history) - 1
    for y in range(h):
        row = history[min(y, last)]
        valid = cols < row.size
        db[y, valid] = row[cols[valid]]

    t = intensity(db, db_floor, db_ceiling)
    return lut[(t * 255).astype(np.uint8)]


def save_png(history: HistoryBuffer, path: str, palette: str, db_floor: float,
             db_ceiling: float, width: int = PNG_WIDTH,
             height: int = PNG_HEIGHT) -> bool:
    """Render the history to a PNG through Qt's QImage.

    An empty history writes nothing and returns False.  Raises OSError
    when the image cannot be written.
    """
    rgb = render_rgb(history, palette, db_floor, db_ceiling, width, height)
    if rgb is None:
        return False
    # Qt is only needed for export; keep it out of the import path
    from PySide6.QtGui import QImage

    rgb_c = np.ascontiguousarray(rgb)
    h, w = rgb_c.shape[:2]
    img = QImage(rgb_c.data, w, h, w * 3, QImage.Format.Format_RGB888)
    _ensure_parent(path)
    if not img.save(path, "PNG"):
        raise OSError(f"Cannot write PNG image {path}")
    log.info("Saved %dx%d spectrogram to %s", w, h, path)
    return True
