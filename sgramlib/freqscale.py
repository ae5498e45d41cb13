"""Axis-fraction → frequency → bin mapping shared by the viewer and export.

Purely presentational: rows are always linear in frequency; these
helpers decide which bin a screen column (or pixel) should sample.
"""

from __future__ import annotations

import math

from .models import FreqScale

LOG_MIN_HZ = 20.0


def hz_to_mel(f: float) -> float:
    return 2595.0 * math.log10(1.0 + f / 700.0)


def mel_to_hz(m: float) -> float:
    return 700.0 * (10.0 ** (m / 2595.0) - 1.0)


def max_frequency(sample_rate: float, zoom: float) -> float:
    """Highest frequency visible at *zoom* (Nyquist / zoom)."""
    return sample_rate / 2.0 / max(float(zoom), 1.0)


def frac_to_freq(frac: float, sample_rate: float, zoom: float = 1.0,
                 scale: FreqScale | str = FreqScale.LINEAR) -> float:
    """Frequency (Hz) at fraction *frac* (0 = bottom, 1 = top) of the axis."""
    scale = FreqScale(scale)
    fmax = max_frequency(sample_rate, zoom)
    if scale is FreqScale.LINEAR:
        return frac * fmax
    fmin = LOG_MIN_HZ
    if scale is FreqScale.LOG:
        a = max(fmax / fmin, 1.01)
        return fmin * a ** frac
    mmin = hz_to_mel(fmin)
    mmax = hz_to_mel(fmax)
    return mel_to_hz(mmin + frac * (mmax - mmin))


def frac_to_bin(frac: float, bins: int, sample_rate: float, zoom: float = 1.0,
                scale: FreqScale | str = FreqScale.LINEAR) -> int:
    """Index into a (zoom-truncated) row of *bins* values for axis *frac*."""
    bins = max(int(bins), 1)
    f = frac_to_freq(frac, sample_rate, zoom, scale)
    hz_per_bin = max_frequency(sample_rate, zoom) / bins
    idx = int(math.floor(f / hz_per_bin)) if hz_per_bin > 0 else 0
    return min(max(idx, 0), bins - 1)


def column_bins(width: int, bins: int, sample_rate: float, zoom: float = 1.0,
                scale: FreqScale | str = FreqScale.LINEAR) -> list[int]:
    """Bin index sampled by each of *width* columns (left = low)."""
    width = max(int(width), 1)
    return [frac_to_bin(x / width, bins, sample_rate, zoom, scale) for x in range(width)]
