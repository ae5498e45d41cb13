from ._version import __version__
from .models import (
    SgramError,
    WindowKind,
    FreqScale,
    Style,
    RenderMode,
    InputKind,
    InputSpec,
    describe_input,
)
from .config import (
    default_config,
    merge_configs,
    validate_config,
    validate_config_fields,
    validate_param_values,
    apply_resolution_preset,
    load_preset,
    save_preset,
    ConfigError,
    ConfigFieldError,
    ParamSpec,
    PipelineConfig,
    PIPELINE_PARAMS,
    VIEW_PARAMS,
)
from .audio import AudioIOError, UnsupportedFormatError, FileSource
from .capture import DeviceError, LiveCapture
from .resample import downmix, LinearResampler, StreamResampler
from .spectrogram import Spectrogram
from .history import HistoryBuffer
from .pipeline import Pipeline, RowChannel, RealtimePacer
from .session import Session
from .events import EventBus

__all__ = [
    "__version__",
    "SgramError",
    "WindowKind",
    "FreqScale",
    "Style",
    "RenderMode",
    "InputKind",
    "InputSpec",
    "describe_input",
    "default_config",
    "merge_configs",
    "validate_config",
    "validate_config_fields",
    "validate_param_values",
    "apply_resolution_preset",
    "load_preset",
    "save_preset",
    "ConfigError",
    "ConfigFieldError",
    "ParamSpec",
    "PipelineConfig",
    "PIPELINE_PARAMS",
    "VIEW_PARAMS",
    "AudioIOError",
    "UnsupportedFormatError",
    "FileSource",
    "DeviceError",
    "LiveCapture",
    "downmix",
    "LinearResampler",
    "StreamResampler",
    "Spectrogram",
    "HistoryBuffer",
    "Pipeline",
    "RowChannel",
    "RealtimePacer",
    "Session",
    "EventBus",
]
