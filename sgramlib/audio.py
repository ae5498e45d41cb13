from __future__ import annotations

import logging
import os
from typing import Iterator

import numpy as np
import soundfile as sf

from .models import SgramError

log = logging.getLogger(__name__)

AUDIO_EXTENSIONS = (".wav", ".wave")

# Sample encodings the file decoder accepts
_SUBTYPE_MAP = {
    'PCM_U8': '8-bit',
    'PCM_S8': '8-bit',
    'PCM_16': '16-bit',
    'PCM_24': '24-bit',
    'PCM_32': '32-bit',
    'FLOAT': '32-bit Float',
    'DOUBLE': '64-bit Float',
}


class AudioIOError(SgramError):
    """Audio file could not be opened or decoded."""
    pass


class UnsupportedFormatError(SgramError):
    """Audio file uses a sample encoding the decoder does not handle."""
    pass


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------

def format_duration(samples: int, samplerate: int) -> str:
    if samplerate <= 0:
        return "00:00.000"
    seconds = samples / samplerate
    m = int(seconds // 60)
    s = int(seconds % 60)
    ms = int((seconds % 1) * 1000)
    return f"{m:02d}:{s:02d}.{ms:03d}"


# ---------------------------------------------------------------------------
# File input
# ---------------------------------------------------------------------------

class FileSource:
    """Finite, block-wise decode of a WAV file at its native rate.

    Iterating yields float32 arrays of shape ``(n, channels)`` with values
    in [-1, 1].  Opening errors raise :class:`AudioIOError` or
    :class:`UnsupportedFormatError`; read errors during iteration raise
    :class:`AudioIOError`.
    """

    def __init__(self, filepath: str, block_frames: int = 4096):
        self.filepath = filepath
        self.block_frames = max(int(block_frames), 1)
        if not os.path.isfile(filepath):
            raise AudioIOError(f"Opening {filepath}: file not found")
        try:
            info = sf.info(filepath)
        except RuntimeError as e:
            raise AudioIOError(f"Opening {filepath}: {e}") from e
        if info.subtype not in _SUBTYPE_MAP:
            raise UnsupportedFormatError(
                f"{os.path.basename(filepath)}: unsupported sample format "
                f"{info.subtype!r}"
            )
        self.samplerate: int = int(info.samplerate)
        self.channels: int = max(int(info.channels), 1)
        self.frames: int = int(info.frames)
        self.subtype: str = info.subtype
        self.bitdepth: str = _SUBTYPE_MAP[info.subtype]
        self.duration_sec: float = float(info.duration)
        log.debug("Opened %s", self.describe())

    @property
    def filename(self) -> str:
        return os.path.basename(self.filepath)

    def describe(self) -> str:
        return (
            f"{self.filename} ({self.samplerate} Hz, {self.channels} ch, "
            f"{self.bitdepth}, {format_duration(self.frames, self.samplerate)})"
        )

    def __iter__(self) -> Iterator[np.ndarray]:
        try:
            with sf.SoundFile(self.filepath) as f:
                for block in f.blocks(
                    blocksize=self.block_frames, dtype='float32', always_2d=True,
                ):
                    yield block
        except RuntimeError as e:
            raise AudioIOError(f"Decoding {self.filepath}: {e}") from e
