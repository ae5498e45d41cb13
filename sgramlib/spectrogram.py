"""Streaming short-time spectrum: framing, windowing, FFT, dB rows."""

from __future__ import annotations

import numpy as np
from scipy import fft as sp_fft
from scipy.signal import get_window

from .config import PipelineConfig
from .models import WindowKind

POWER_EPS = 1e-24
AMPLITUDE_EPS = 1e-12


def window_coefficients(kind: WindowKind | str, length: int) -> np.ndarray:
    """Periodic (DFT-even) window of *length* samples.

    hann:     0.5 - 0.5·cos(2πi/N)
    hamming:  0.54 - 0.46·cos(2πi/N)
    blackman: 0.42 - 0.5·cos(2πi/N) + 0.08·cos(4πi/N)
    """
    if not isinstance(kind, WindowKind):
        kind = WindowKind(str(kind).lower())
    return get_window(kind.value, int(length), fftbins=True).astype(np.float64)


def spectrum_to_db(spectrum: np.ndarray, alpha: int = 1) -> np.ndarray:
    """Convert complex bins to decibels with epsilon floors.

    alpha 2 gives power dB, anything else amplitude dB.  Silent bins map
    to -240 dB instead of -inf.
    """
    power = spectrum.real ** 2 + spectrum.imag ** 2
    if alpha == 2:
        return 10.0 * np.log10(np.maximum(power, POWER_EPS))
    return 20.0 * np.log10(np.maximum(np.sqrt(power), AMPLITUDE_EPS))


class Spectrogram:
    """Turns an arbitrary-length sample stream into log-magnitude rows.

    Incoming samples are appended to an overlap buffer; every time the
    buffer holds a full frame, one row of ``fft_size // 2`` dB values is
    produced and the buffer advances by ``hop`` samples.  Holds no
    knowledge of threads or channels.
    """

    def __init__(self, config: PipelineConfig):
        self.config = config
        self.fft_size = config.fft_size
        self.frame_len = config.frame_len
        self.hop = config.hop
        self.n_bins = config.fft_size // 2
        self.window = window_coefficients(config.window, config.frame_len)
        self._work = np.zeros(config.fft_size, dtype=np.complex128)
        self._overlap = np.zeros(0, dtype=np.float32)
        self._prev_sample = 0.0

    @property
    def pending(self) -> int:
        """Samples buffered but not yet consumed by a full frame."""
        return int(self._overlap.size)

    def reset(self) -> None:
        self._overlap = np.zeros(0, dtype=np.float32)
        self._prev_sample = 0.0

    def _ingest(self, samples: np.ndarray) -> None:
        x = np.asarray(samples, dtype=np.float32).ravel()
        if x.size == 0:
            return
        beta = self.config.pre_emphasis
        if beta is not None:
            prev = np.empty_like(x)
            prev[0] = self._prev_sample
            prev[1:] = x[:-1]
            self._prev_sample = float(x[-1])
            x = (x - np.float32(beta) * prev).astype(np.float32)
        self._overlap = np.concatenate((self._overlap, x))

    def _transform(self, frame: np.ndarray) -> np.ndarray:
        work = self._work
        work[:self.frame_len] = frame * self.window
        work[self.frame_len:] = 0.0
        spectrum = sp_fft.fft(work, overwrite_x=True)
        row = spectrum_to_db(spectrum[:self.n_bins], self.config.alpha)
        if self.config.normalize and row.size:
            row = row - row.max()
        if self.config.clamp_floor:
            row = np.maximum(row, self.config.db_floor)
        return row.astype(np.float32)

    def process_samples(self, samples: np.ndarray) -> list[np.ndarray]:
        """Ingest one chunk and return the rows it completed (maybe none)."""
        self._ingest(samples)
        rows: list[np.ndarray] = []
        start = 0
        buf = self._overlap
        while buf.size - start >= self.frame_len:
            rows.append(self._transform(buf[start:start + self.frame_len]))
            start += min(self.hop, buf.size - start)
        if start:
            self._overlap = buf[start:].copy()
        return rows
