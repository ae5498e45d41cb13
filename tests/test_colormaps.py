import numpy as np
import pytest

from sgramlib.colormaps import (
    COLORMAPS,
    PALETTES,
    apply_colormap,
    color_at,
    get_colormap,
    intensity,
    next_palette,
    prev_palette,
)


def test_palette_cycle_order() -> None:
    assert PALETTES == ["grayscale", "heat", "viridis", "jet", "inferno",
                        "magma", "plasma", "purplefire"]


def test_luts_are_rgb_bytes() -> None:
    for name in PALETTES:
        lut = COLORMAPS[name]
        assert lut.shape == (256, 3)
        assert lut.dtype == np.uint8


def test_intensity_between_floor_and_ceiling() -> None:
    assert intensity(-80.0, -80.0, 0.0) == 0.0
    assert intensity(0.0, -80.0, 0.0) == 1.0
    assert intensity(-40.0, -80.0, 0.0) == pytest.approx(0.5)
    assert intensity(-200.0, -80.0, 0.0) == 0.0
    assert intensity(20.0, -80.0, 0.0) == 1.0


def test_intensity_range_is_at_least_one_db() -> None:
    assert intensity(-79.5, -80.0, -80.0) == pytest.approx(0.5)


def test_grayscale_endpoints() -> None:
    assert color_at("grayscale", 0.0) == (0, 0, 0)
    assert color_at("grayscale", 1.0) == (255, 255, 255)
    assert color_at("grayscale", 7.0) == (255, 255, 255)


def test_purplefire_starts_black() -> None:
    assert color_at("purplefire", 0.0) == (0, 0, 0)
    assert color_at("purplefire", 1.0) == (255, 235, 90)


def test_palette_cycling_wraps() -> None:
    assert next_palette("viridis") == "jet"
    assert next_palette("purplefire") == "grayscale"
    assert prev_palette("grayscale") == "purplefire"


def test_unknown_palette() -> None:
    with pytest.raises(ValueError, match="rainbow"):
        get_colormap("rainbow")


def test_apply_colormap_shape() -> None:
    rgb = apply_colormap(np.array([[-80.0, 0.0]]), "grayscale", -80.0, 0.0)
    assert rgb.shape == (1, 2, 3)
    assert rgb[0, 0].tolist() == [0, 0, 0]
    assert rgb[0, 1].tolist() == [255, 255, 255]
