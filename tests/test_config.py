import json

import pytest

from sgramlib.config import (
    ConfigError,
    PipelineConfig,
    apply_resolution_preset,
    default_config,
    load_preset,
    merge_configs,
    save_preset,
    validate_config,
    validate_config_fields,
)
from sgramlib.models import WindowKind


def test_defaults_match_documented_values() -> None:
    cfg = default_config()
    assert cfg["fft_size"] == 1024
    assert cfg["window_len"] is None
    assert cfg["hop"] == 256
    assert cfg["sample_rate"] == 48000
    assert cfg["db_floor"] == -80.0
    assert cfg["db_ceiling"] == 0.0
    assert cfg["history"] == 512
    assert cfg["palette"] == "viridis"
    assert cfg["style"] == "waterfall"


def test_pipeline_config_clamps_tiny_values() -> None:
    cfg = PipelineConfig(fft_size=8, frame_len=4, hop=0)
    assert cfg.fft_size == 16
    assert cfg.frame_len == 16
    assert cfg.hop == 1


def test_pipeline_config_caps_frame_and_hop() -> None:
    cfg = PipelineConfig(fft_size=1024, frame_len=4096, hop=5000)
    assert cfg.frame_len == 1024
    assert cfg.hop == 1024


def test_pipeline_config_zero_padded_frame() -> None:
    cfg = PipelineConfig.build(fft_size=1024, frame_len=512, hop=128)
    assert cfg.frame_len == 512
    assert cfg.hop == 128
    assert cfg.bin_count == 512


def test_pipeline_config_alpha_normalized() -> None:
    assert PipelineConfig(alpha=3).alpha == 1
    assert PipelineConfig(alpha=2).alpha == 2


def test_pipeline_config_from_flat_dict() -> None:
    cfg = PipelineConfig.from_config({"window_len": 512, "window": "blackman",
                                      "pre_emphasis": 0.97})
    assert cfg.fft_size == 1024
    assert cfg.frame_len == 512
    assert cfg.window is WindowKind.BLACKMAN
    assert cfg.pre_emphasis == pytest.approx(0.97)


def test_bin_geometry() -> None:
    cfg = PipelineConfig()
    assert cfg.bin_count == 512
    assert cfg.bin_hz == pytest.approx(46.875)
    assert cfg.frequency_of(10) == pytest.approx(468.75)


def test_merge_keeps_values_when_later_is_none() -> None:
    merged = merge_configs({"fft_size": 2048, "device": "USB"},
                           {"fft_size": None, "device": None, "hop": 128})
    assert merged == {"fft_size": 2048, "device": "USB", "hop": 128}


def test_validate_rejects_unknown_palette() -> None:
    with pytest.raises(ConfigError, match="Palette"):
        validate_config({"palette": "rainbow"})


def test_validate_collects_every_bad_field() -> None:
    errors = validate_config_fields({"hop": True, "zoom": 100.0, "alpha": 3})
    assert {e.key for e in errors} == {"hop", "zoom", "alpha"}


def test_validate_leaves_relationship_to_clamping() -> None:
    # fft smaller than the hop is clamped later, not rejected
    validate_config({"fft_size": 8, "hop": 4096})


def test_preset_saves_only_non_defaults(tmp_path) -> None:
    path = tmp_path / "presets" / "wide.json"
    cfg = merge_configs(default_config(), {"fft_size": 2048, "headless": True})
    save_preset(cfg, str(path), description="wide")

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["fft_size"] == 2048
    assert data["_description"] == "wide"
    assert "hop" not in data
    assert "headless" not in data

    assert load_preset(str(path)) == {"fft_size": 2048}


def test_load_preset_errors(tmp_path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_preset(str(tmp_path / "missing.json"))

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid JSON"):
        load_preset(str(bad))

    listy = tmp_path / "list.json"
    listy.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ConfigError, match="JSON object"):
        load_preset(str(listy))


def test_resolution_presets() -> None:
    base = default_config()

    low = apply_resolution_preset({**base, "resolution": "low"})
    assert low["history"] == 256
    assert low["render"] == "cell"

    high = apply_resolution_preset({**base, "resolution": "high"})
    assert high["history"] == 1024
    assert high["render"] == "half"

    ultra = apply_resolution_preset({**base, "resolution": "ultra", "history": 4096})
    assert ultra["history"] == 4096
    assert ultra["render"] == "half"

    medium = apply_resolution_preset(base)
    assert medium["history"] == 512
    assert medium["render"] == "cell"
