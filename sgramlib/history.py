from __future__ import annotations

import math
from collections import deque
from typing import Iterator

import numpy as np

MIN_HISTORY = 16


def zoom_bins(bin_count: int, zoom: float) -> int:
    """Number of low-frequency bins kept at *zoom* (at least one)."""
    # halves round up
    return max(int(math.floor(bin_count / max(float(zoom), 1e-9) + 0.5)), 1)


class HistoryBuffer:
    """Bounded newest-first sequence of spectral rows.

    Rows are truncated to the zoom factor active when they are pushed;
    changing the zoom later leaves stored rows untouched.  Owned by the
    consumer thread only.
    """

    def __init__(self, max_history: int = 512):
        self.max_history = max(int(max_history), MIN_HISTORY)
        self._rows: deque[np.ndarray] = deque()

    def push(self, row: np.ndarray, zoom: float = 1.0) -> None:
        row = np.asarray(row, dtype=np.float32)
        take = zoom_bins(row.size, zoom)
        self._rows.appendleft(row[:take])
        while len(self._rows) > self.max_history:
            self._rows.pop()

    def clear(self) -> None:
        self._rows.clear()

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[np.ndarray]:
        """Newest first."""
        return iter(self._rows)

    def __getitem__(self, index: int) -> np.ndarray:
        return self._rows[index]

    def __bool__(self) -> bool:
        return bool(self._rows)

    def newest(self) -> np.ndarray | None:
        return self._rows[0] if self._rows else None

    def oldest(self) -> np.ndarray | None:
        return self._rows[-1] if self._rows else None

    def oldest_first(self) -> Iterator[np.ndarray]:
        return reversed(self._rows)

    def bin_counts(self) -> list[int]:
        """Bin count of each stored row, newest first."""
        return [int(r.size) for r in self._rows]

    @property
    def bin_count(self) -> int:
        """Bin count of the newest row (1 when empty)."""
        return int(self._rows[0].size) if self._rows else 1
