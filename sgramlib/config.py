from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

from .models import FreqScale, RenderMode, SgramError, Style, WindowKind

PRESET_SCHEMA_VERSION = "1.0"

MIN_FFT_SIZE = 16
MIN_FRAME_LEN = 16

# Keys that describe a single run and should not be saved in presets
_INTERNAL_KEYS = {
    "source", "file", "headless", "preset", "save_preset", "verbose",
    "log_file",
}


class ConfigError(SgramError):
    """Invalid settings, or a preset that cannot be read."""


@dataclass
class ConfigFieldError:
    key: str
    value: Any
    message: str  # ready for display, starts with the field label


@dataclass(frozen=True)
class ParamSpec:
    """Describes one tunable setting: its type, default, range and labels.

    The CLI, the preset loader and the settings file all validate against
    these.
    """
    key: str
    type: type | tuple
    default: Any
    label: str
    description: str = ""
    # numeric bounds, inclusive unless the matching *_exclusive flag is set
    min: float | int | None = None
    max: float | int | None = None
    min_exclusive: bool = False
    max_exclusive: bool = False
    choices: list | None = None
    nullable: bool = False


# ---------------------------------------------------------------------------
# Parameter sections
# ---------------------------------------------------------------------------

PIPELINE_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="fft_size", type=int, default=1024, min=1,
        label="FFT size",
        description=(
            "Transform length in samples. Controls frequency resolution: "
            "each row has fft_size/2 bins of sample_rate/fft_size Hz. "
            "Values below 16 are raised to 16."
        ),
    ),
    ParamSpec(
        key="window_len", type=int, default=None, min=1, nullable=True,
        label="Window length",
        description=(
            "Analysis frame length in samples. Frames shorter than the FFT "
            "size are zero-padded. Empty means the FFT size; longer values "
            "are reduced to the FFT size."
        ),
    ),
    ParamSpec(
        key="hop", type=int, default=256, min=1,
        label="Hop size",
        description="Sample advance between successive frames (at most the window length).",
    ),
    ParamSpec(
        key="sample_rate", type=int, default=48000, min=1,
        label="Sample rate (Hz)",
        description="Processing rate. Inputs at other rates are linearly resampled.",
    ),
    ParamSpec(
        key="window", type=str, default="hann",
        choices=[w.value for w in WindowKind],
        label="Window function",
    ),
    ParamSpec(
        key="alpha", type=int, default=1, choices=[1, 2],
        label="Magnitude exponent",
        description="1 = amplitude dB (20·log10|X|), 2 = power dB (10·log10|X|²).",
    ),
    ParamSpec(
        key="pre_emphasis", type=(int, float), default=None,
        min=0.0, max=1.0, nullable=True,
        label="Pre-emphasis",
        description="First-order high-pass coefficient, e.g. 0.97. Empty disables it.",
    ),
    ParamSpec(
        key="clamp_floor", type=bool, default=False,
        label="Clamp to floor",
        description="Raise every value below the dB floor up to the floor.",
    ),
    ParamSpec(
        key="normalize", type=bool, default=False,
        label="Peak-normalize rows",
        description="Subtract each row's maximum so its peak reads 0 dB.",
    ),
    ParamSpec(
        key="db_floor", type=(int, float), default=-80.0,
        label="dB floor",
        description="Lower display bound; also the clamp level when clamping is on.",
    ),
    ParamSpec(
        key="realtime", type=bool, default=False,
        label="Real-time pacing",
        description="Pace file decoding to wall-clock time instead of running flat out.",
    ),
]

VIEW_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="db_ceiling", type=(int, float), default=0.0,
        label="dB ceiling",
    ),
    ParamSpec(
        key="fps", type=int, default=30, min=1,
        label="Frames per second",
        description="Viewer refresh rate; one tick drains pending rows.",
    ),
    ParamSpec(
        key="zoom", type=(int, float), default=1.0, min=1.0, max=64.0,
        label="Zoom",
        description="Show only the lowest 1/zoom of the frequency range.",
    ),
    ParamSpec(
        key="history", type=int, default=512, min=1,
        label="History length (rows)",
        description="Rows kept for display and export. At least 16 are kept.",
    ),
    ParamSpec(
        key="palette", type=str, default="viridis",
        choices=["grayscale", "heat", "viridis", "jet", "inferno",
                 "magma", "plasma", "purplefire"],
        label="Palette",
    ),
    ParamSpec(
        key="style", type=str, default="waterfall",
        choices=[s.value for s in Style],
        label="Animation style",
    ),
    ParamSpec(
        key="render", type=str, default="cell",
        choices=[r.value for r in RenderMode],
        label="Renderer",
        description="cell = one row per line, half = two rows per line.",
    ),
    ParamSpec(
        key="resolution", type=str, default="medium",
        choices=["low", "medium", "high", "ultra"],
        label="Resolution preset",
    ),
    ParamSpec(
        key="freq_scale", type=str, default="linear",
        choices=[f.value for f in FreqScale],
        label="Frequency scale",
    ),
    ParamSpec(key="detailed", type=bool, default=False, label="Detailed view"),
    ParamSpec(key="fullscreen", type=bool, default=False, label="Fullscreen"),
    ParamSpec(key="overview", type=bool, default=False, label="Overview"),
    ParamSpec(
        key="device", type=str, default=None, nullable=True,
        label="Input device",
        description="Substring of the capture device name.",
    ),
    ParamSpec(key="png_path", type=str, default=None, nullable=True, label="PNG export path"),
    ParamSpec(key="csv_path", type=str, default=None, nullable=True, label="CSV export path"),
]


def all_params() -> list[ParamSpec]:
    return PIPELINE_PARAMS + VIEW_PARAMS


def default_config() -> dict[str, Any]:
    """Returns the built-in default configuration."""
    return {p.key: p.default for p in all_params()}


def merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
    """Layer *configs* left to right.

    A ``None`` in a later layer keeps the earlier value, so unset CLI
    flags do not mask the settings file or a preset.
    """
    result: dict[str, Any] = {}
    for layer in configs:
        result.update((k, v) for k, v in layer.items()
                      if v is not None or k not in result)
    return result


def load_preset(path: str) -> dict[str, Any]:
    """Read the settings stored in a JSON preset (a partial config)."""
    if not os.path.isfile(path):
        raise ConfigError(f"Preset file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in preset {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read preset {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Preset {path} must hold a JSON object, not {type(data).__name__}")
    return {k: v for k, v in data.items() if not k.startswith("_") and k != "schema_version"}


def save_preset(config: dict[str, Any], path: str, *, description: str | None = None) -> None:
    """Write the non-default, non-run-specific entries of *config*."""
    defaults = default_config()
    preset: dict[str, Any] = {"schema_version": PRESET_SCHEMA_VERSION}
    if description:
        preset["_description"] = description
    preset.update(
        (k, v) for k, v in config.items()
        if k not in _INTERNAL_KEYS and not k.startswith("_")
        and not (k in defaults and defaults[k] == v)
    )
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(preset, f, indent=2)
        f.write("\n")


def apply_resolution_preset(config: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *config* with its ``resolution`` preset applied.

    ``low`` shortens the history, ``high`` and ``ultra`` lengthen it and
    switch the default cell renderer to half blocks.
    """
    out = dict(config)
    preset = out.get("resolution", "medium")
    history = int(out.get("history") or 512)
    if preset == "low":
        out["history"] = 256
    elif preset == "high":
        out["history"] = max(history, 1024)
        if out.get("render", "cell") == "cell":
            out["render"] = RenderMode.HALF.value
    elif preset == "ultra":
        out["history"] = max(history, 2048)
        if out.get("render", "cell") == "cell":
            out["render"] = RenderMode.HALF.value
    return out


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _field_problem(spec: ParamSpec, value: Any) -> str | None:
    """Why *value* is unacceptable for *spec*, or None when it is fine."""
    if value is None:
        return None if spec.nullable else "must not be empty"
    # bool is an int subclass; only accept it where bool is expected
    if isinstance(value, bool) and spec.type is not bool:
        return f"must be {_type_label(spec.type)}, got boolean"
    if not isinstance(value, spec.type):
        return f"must be {_type_label(spec.type)}, got {type(value).__name__}"
    if spec.choices is not None and value not in spec.choices:
        return "must be one of " + ", ".join(map(repr, spec.choices))
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if spec.min is not None:
        if spec.min_exclusive and value <= spec.min:
            return f"must be greater than {spec.min}"
        if value < spec.min:
            return f"must be at least {spec.min}"
    if spec.max is not None:
        if spec.max_exclusive and value >= spec.max:
            return f"must be less than {spec.max}"
        if value > spec.max:
            return f"must be at most {spec.max}"
    return None


def validate_param_values(
    params: list[ParamSpec],
    values: dict[str, Any],
) -> list[ConfigFieldError]:
    """Check the entries of *values* that *params* describe.

    Keys absent from *values* are fine; they fall back to their defaults.
    """
    errors: list[ConfigFieldError] = []
    for spec in params:
        if spec.key not in values:
            continue
        value = values[spec.key]
        problem = _field_problem(spec, value)
        if problem:
            errors.append(ConfigFieldError(spec.key, value, f"{spec.label} {problem}."))
    return errors


def validate_config_fields(config: dict[str, Any]) -> list[ConfigFieldError]:
    return validate_param_values(all_params(), config)


def validate_config(config: dict[str, Any]) -> None:
    """Raise :class:`ConfigError` naming every invalid field of *config*."""
    errors = validate_config_fields(config)
    if errors:
        raise ConfigError("Invalid configuration:\n" + "\n".join(
            f"  - {e.message}" for e in errors))


def _type_label(t) -> str:
    if isinstance(t, tuple):
        return " or ".join(x.__name__ for x in t)
    return t.__name__


# ---------------------------------------------------------------------------
# Immutable pipeline configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineConfig:
    """Analysis settings captured by the worker thread for a whole session.

    The frame/hop relationship is clamped on construction so that
    ``1 <= hop <= frame_len <= fft_size`` always holds; it is never
    re-validated afterwards.
    """
    fft_size: int = 1024
    frame_len: int | None = None
    hop: int = 256
    sample_rate: int = 48000
    window: WindowKind = WindowKind.HANN
    alpha: int = 1
    pre_emphasis: float | None = None
    clamp_floor: bool = False
    normalize: bool = False
    db_floor: float = -80.0

    def __post_init__(self):
        fft_size = max(int(self.fft_size), MIN_FFT_SIZE)
        frame_len = int(self.frame_len) if self.frame_len else fft_size
        frame_len = min(max(frame_len, MIN_FRAME_LEN), fft_size)
        hop = min(max(int(self.hop), 1), frame_len)
        window = self.window
        if not isinstance(window, WindowKind):
            window = WindowKind(str(window).lower())
        pre = None if self.pre_emphasis is None else float(self.pre_emphasis)

        object.__setattr__(self, "fft_size", fft_size)
        object.__setattr__(self, "frame_len", frame_len)
        object.__setattr__(self, "hop", hop)
        object.__setattr__(self, "sample_rate", max(int(self.sample_rate), 1))
        object.__setattr__(self, "window", window)
        object.__setattr__(self, "alpha", 2 if self.alpha == 2 else 1)
        object.__setattr__(self, "pre_emphasis", pre)
        object.__setattr__(self, "clamp_floor", bool(self.clamp_floor))
        object.__setattr__(self, "normalize", bool(self.normalize))
        object.__setattr__(self, "db_floor", float(self.db_floor))

    @classmethod
    def build(cls, **kwargs: Any) -> PipelineConfig:
        """Construct with keyword overrides; out-of-range values are clamped."""
        return cls(**kwargs)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> PipelineConfig:
        """Build from a flat config dict (missing keys use defaults)."""
        cfg = merge_configs(default_config(), config)
        return cls(
            fft_size=cfg["fft_size"],
            frame_len=cfg["window_len"],
            hop=cfg["hop"],
            sample_rate=cfg["sample_rate"],
            window=cfg["window"],
            alpha=cfg["alpha"],
            pre_emphasis=cfg["pre_emphasis"],
            clamp_floor=cfg["clamp_floor"],
            normalize=cfg["normalize"],
            db_floor=cfg["db_floor"],
        )

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    @property
    def bin_hz(self) -> float:
        return self.sample_rate / self.fft_size

    def frequency_of(self, bin_index: int) -> float:
        """Centre frequency (Hz) of *bin_index*."""
        return bin_index * self.bin_hz
