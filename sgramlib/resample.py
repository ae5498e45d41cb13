"""Channel downmix and streaming linear resampling.

The resampler is a plain two-point linear interpolator with a persistent
fractional read position.  There is no band-limiting before decimation,
so content above the new Nyquist frequency aliases into the output when
downsampling.
"""

from __future__ import annotations

import math
from typing import Iterator

import numpy as np

BLOCK_SAMPLES = 1024


def downmix(frames: np.ndarray, channels: int = 1) -> np.ndarray:
    """Average a block of frames down to a float32 mono signal.

    *frames* is either a 2-D ``(n, channels)`` array or a 1-D interleaved
    array whose length is a multiple of *channels*.
    """
    data = np.asarray(frames)
    if data.ndim == 2:
        if data.shape[1] == 1:
            return data[:, 0].astype(np.float32)
        return data.mean(axis=1, dtype=np.float64).astype(np.float32)
    if channels <= 1:
        return data.astype(np.float32)
    if data.size % channels:
        raise ValueError(
            f"interleaved block of {data.size} samples is not a multiple "
            f"of {channels} channels"
        )
    return (
        data.reshape(-1, channels)
        .mean(axis=1, dtype=np.float64)
        .astype(np.float32)
    )


def resample_drain(
    ratio: float,
    src: np.ndarray,
    pos: float,
) -> tuple[np.ndarray, np.ndarray, float]:
    """Interpolate every output sample currently bracketed by *src*.

    ``ratio`` is target_rate / source_rate; the read position advances by
    ``1 / ratio`` per output sample.  Returns ``(out, remaining_src,
    new_pos)``: the consumed whole-sample prefix is dropped from the
    buffer (at least one trailing sample is kept for the next
    interpolation) and the position is reduced by the same amount, so it
    may exceed 1.0 when the step is larger than one sample.
    """
    empty = np.zeros(0, dtype=np.float32)
    n = src.size
    if n < 2 or ratio <= 0.0:
        return empty, src, pos
    step = 1.0 / ratio
    span = (n - 1) - pos
    if span <= 0.0:
        return empty, src, pos

    count = int(math.ceil(span / step)) + 1
    positions = pos + np.arange(count, dtype=np.float64) * step
    positions = positions[positions + 1.0 < n]
    if positions.size == 0:
        return empty, src, pos

    i0 = np.floor(positions).astype(np.intp)
    frac = positions - i0
    x = src.astype(np.float64, copy=False)
    out = (x[i0] * (1.0 - frac) + x[i0 + 1] * frac).astype(np.float32)

    new_pos = float(positions[-1] + step)
    # when downsampling the next position can land past the buffer end;
    # keep the last sample and carry the overshoot in the position
    drop = min(int(math.floor(new_pos)), n - 1)
    if drop > 0:
        src = src[drop:]
        new_pos -= drop
    return out, src, new_pos


class LinearResampler:
    """Streaming mono resampler from *source_rate* to *target_rate*."""

    def __init__(self, source_rate: float, target_rate: float):
        if source_rate <= 0 or target_rate <= 0:
            raise ValueError("sample rates must be positive")
        self.source_rate = float(source_rate)
        self.target_rate = float(target_rate)
        self.ratio = self.target_rate / self.source_rate
        self._buf = np.zeros(0, dtype=np.float32)
        self._pos = 0.0

    @property
    def passthrough(self) -> bool:
        return abs(self.ratio - 1.0) < np.finfo(np.float32).eps

    @property
    def position(self) -> float:
        """Fractional read position into the pending buffer."""
        return self._pos

    @property
    def pending(self) -> int:
        return int(self._buf.size)

    def process(self, mono: np.ndarray) -> np.ndarray:
        """Append *mono* samples and return all newly available output."""
        mono = np.asarray(mono, dtype=np.float32).ravel()
        if mono.size:
            self._buf = np.concatenate((self._buf, mono))
        out, self._buf, self._pos = resample_drain(self.ratio, self._buf, self._pos)
        return out

    def reset(self) -> None:
        self._buf = np.zeros(0, dtype=np.float32)
        self._pos = 0.0


class StreamResampler:
    """Downmix + resample for interleaved multi-channel chunks.

    Partial frames at the end of an interleaved chunk are carried over to
    the next call, so chunk boundaries need not align with frames.
    """

    def __init__(self, source_rate: float, target_rate: float, channels: int = 1):
        self.channels = max(int(channels), 1)
        self.resampler = LinearResampler(source_rate, target_rate)
        self._carry = np.zeros(0, dtype=np.float32)

    def process(self, chunk: np.ndarray) -> np.ndarray:
        data = np.asarray(chunk, dtype=np.float32)
        if data.ndim == 1 and self.channels > 1:
            if self._carry.size:
                data = np.concatenate((self._carry, data))
            whole = data.size - data.size % self.channels
            self._carry = data[whole:].copy()
            data = data[:whole]
        return self.resampler.process(downmix(data, self.channels))


class Rechunker:
    """Regroup a sample stream into fixed-size blocks."""

    def __init__(self, block: int = BLOCK_SAMPLES):
        self.block = max(int(block), 1)
        self._pending = np.zeros(0, dtype=np.float32)

    def push(self, samples: np.ndarray) -> Iterator[np.ndarray]:
        """Yield every complete block available after appending *samples*."""
        if samples.size:
            self._pending = np.concatenate((self._pending, samples))
        offset = 0
        while self._pending.size - offset >= self.block:
            yield self._pending[offset:offset + self.block]
            offset += self.block
        if offset:
            self._pending = self._pending[offset:]

    def flush(self) -> Iterator[np.ndarray]:
        """Yield the leftover samples as blocks of at most ``block``."""
        pending, self._pending = self._pending, np.zeros(0, dtype=np.float32)
        for offset in range(0, pending.size, self.block):
            yield pending[offset:offset + self.block]


def split_blocks(samples: np.ndarray, block: int = BLOCK_SAMPLES) -> Iterator[np.ndarray]:
    """Yield *samples* in consecutive slices of at most *block* samples."""
    for offset in range(0, samples.size, block):
        yield samples[offset:offset + block]
