from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SgramError(Exception):
    """Base class for all errors raised by sgramlib."""
    pass


class WindowKind(Enum):
    HANN = "hann"
    HAMMING = "hamming"
    BLACKMAN = "blackman"


class FreqScale(Enum):
    LINEAR = "linear"
    LOG = "log"
    MEL = "mel"


class Style(Enum):
    WATERFALL = "waterfall"
    HORIZONTAL = "horizontal"


class RenderMode(Enum):
    CELL = "cell"
    HALF = "half"


class InputKind(Enum):
    MIC = "mic"
    FILE = "file"


@dataclass(frozen=True)
class InputSpec:
    """Where the pipeline reads audio from.

    Attributes:
        kind:   Live capture or file decode.
        path:   Audio file path (file input only).
        device: Case-insensitive substring of an input device name
                (capture only).  None selects the default input device.
    """
    kind: InputKind
    path: str | None = None
    device: str | None = None

    @classmethod
    def mic(cls, device: str | None = None) -> InputSpec:
        return cls(kind=InputKind.MIC, device=device)

    @classmethod
    def file(cls, path: str) -> InputSpec:
        return cls(kind=InputKind.FILE, path=path)

    def describe(self) -> str:
        if self.kind is InputKind.FILE:
            return f"WAV: {self.path}"
        if self.device:
            return f"Microphone: {self.device}"
        return "Microphone (default)"


def describe_input(source: InputSpec) -> str:
    """Human-readable label for an input, e.g. ``"WAV: take1.wav"``."""
    return source.describe()
