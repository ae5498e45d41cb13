"""Spectrogram colormaps as 256-entry RGB lookup tables."""

from __future__ import annotations

import numpy as np

COLORMAPS: dict[str, np.ndarray] = {}  # name → (256, 3) uint8 RGB

# Cycling order for next/previous palette
PALETTES: list[str] = []


def _register_colormap(name: str,
                       controls: list[tuple[float, tuple[int, int, int]]]):
    """Build a 256-entry RGB LUT from control points via linear interpolation."""
    lut = np.zeros((256, 3), dtype=np.uint8)
    positions = np.array([c[0] for c in controls])
    for ch in range(3):
        values = np.array([c[1][ch] for c in controls], dtype=np.float64)
        lut[:, ch] = np.clip(
            np.interp(np.linspace(0, 1, 256), positions, values), 0, 255
        ).astype(np.uint8)
    COLORMAPS[name] = lut
    PALETTES.append(name)


_register_colormap("grayscale", [
    (0.0, (0, 0, 0)),
    (1.0, (255, 255, 255)),
])

# black → red → yellow → white
_register_colormap("heat", [
    (0.0, (0, 0, 0)),
    (0.35, (180, 20, 10)),
    (0.65, (255, 140, 0)),
    (0.85, (255, 230, 60)),
    (1.0, (255, 255, 255)),
])

_register_colormap("viridis", [
    (0.0, (68, 1, 84)),
    (0.25, (59, 82, 139)),
    (0.5, (33, 145, 140)),
    (0.75, (94, 201, 98)),
    (1.0, (253, 231, 37)),
])

# blue → cyan → yellow → red
_register_colormap("jet", [
    (0.0, (0, 0, 128)),
    (0.125, (0, 0, 255)),
    (0.375, (0, 255, 255)),
    (0.625, (255, 255, 0)),
    (0.875, (255, 0, 0)),
    (1.0, (128, 0, 0)),
])

_register_colormap("inferno", [
    (0.0, (0, 0, 4)),
    (0.25, (87, 16, 110)),
    (0.5, (188, 55, 84)),
    (0.75, (249, 142, 9)),
    (1.0, (252, 255, 164)),
])

_register_colormap("magma", [
    (0.0, (0, 0, 4)),
    (0.25, (81, 18, 124)),
    (0.5, (183, 55, 121)),
    (0.75, (254, 159, 109)),
    (1.0, (252, 253, 191)),
])

_register_colormap("plasma", [
    (0.0, (13, 8, 135)),
    (0.25, (126, 3, 168)),
    (0.5, (204, 71, 120)),
    (0.75, (248, 149, 64)),
    (1.0, (240, 249, 33)),
])

# deep purple → fire
_register_colormap("purplefire", [
    (0.0, (0, 0, 0)),
    (0.15, (12, 7, 42)),
    (0.35, (60, 10, 90)),
    (0.55, (120, 20, 120)),
    (0.75, (200, 40, 60)),
    (0.9, (255, 110, 10)),
    (1.0, (255, 235, 90)),
])


def get_colormap(name: str) -> np.ndarray:
    try:
        return COLORMAPS[name]
    except KeyError:
        raise ValueError(f"Unknown palette {name!r}; choose from {', '.join(PALETTES)}") from None


def next_palette(name: str) -> str:
    return PALETTES[(PALETTES.index(name) + 1) % len(PALETTES)]


def prev_palette(name: str) -> str:
    return PALETTES[(PALETTES.index(name) - 1) % len(PALETTES)]


def intensity(db, db_floor: float, db_ceiling: float):
    """Map decibels to [0, 1] between floor and ceiling.

    The range is never narrower than 1 dB.
    """
    span = max(db_ceiling - db_floor, 1.0)
    return np.clip((np.asarray(db, dtype=np.float64) - db_floor) / span, 0.0, 1.0)


def color_at(name: str, t: float) -> tuple[int, int, int]:
    """RGB for position *t* in [0, 1] (clamped)."""
    lut = get_colormap(name)
    idx = int(round(min(max(float(t), 0.0), 1.0) * 255))
    r, g, b = lut[idx]
    return int(r), int(g), int(b)


def apply_colormap(db: np.ndarray, name: str,
                   db_floor: float, db_ceiling: float) -> np.ndarray:
    """Color an array of dB values; returns shape ``db.shape + (3,)``."""
    lut = get_colormap(name)
    t = intensity(db, db_floor, db_ceiling)
    return lut[np.rint(t * 255).astype(np.intp)]
