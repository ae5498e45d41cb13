"""Live audio capture using sounddevice.

The PortAudio callback never blocks: it downmixes each buffer to mono and
offers it to a bounded queue, dropping the buffer when the queue is full.
A separate consumer drains the queue through :meth:`LiveCapture.blocks`.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Iterator

import numpy as np

from .models import SgramError
from .resample import downmix

log = logging.getLogger(__name__)

CAPTURE_BLOCK = 1024
CAPTURE_QUEUE_SIZE = 64


class DeviceError(SgramError):
    """Capture device could not be found, opened, or started."""
    pass


def _sounddevice():
    """Import sounddevice on first use (it needs the PortAudio library)."""
    try:
        import sounddevice as sd
    except (ImportError, OSError) as e:
        raise DeviceError(f"Audio capture unavailable: {e}") from e
    return sd


def find_input_device(name: str | None = None) -> tuple[int | None, dict[str, Any]]:
    """Resolve an input device.

    With *name*, the first device with input channels whose name contains
    *name* (case-insensitive) is returned; otherwise the default input
    device.  Returns ``(index, info)``; *index* is None for the default.
    """
    sd = _sounddevice()
    try:
        if name:
            needle = name.lower()
            for idx, dev in enumerate(sd.query_devices()):
                if dev.get("max_input_channels", 0) > 0 and needle in dev["name"].lower():
                    return idx, dict(dev)
            raise DeviceError(f"Input device '{name}' not found")
        info = sd.query_devices(kind="input")
    except sd.PortAudioError as e:
        raise DeviceError(f"No default input device: {e}") from e
    return None, dict(info)


class LiveCapture:
    """Microphone / line-in source producing mono float32 buffers.

    The device runs at its own default sample rate; :attr:`samplerate`
    reports it after :meth:`start` so the caller can resample.
    """

    def __init__(
        self,
        device: str | None = None,
        blocksize: int = CAPTURE_BLOCK,
        queue_size: int = CAPTURE_QUEUE_SIZE,
    ):
        self.device = device
        self.blocksize = max(int(blocksize), 1)
        self.samplerate: int = 0
        self.channels: int = 1
        self.device_name: str = ""
        self.dropped = 0
        self._queue: queue.Queue[np.ndarray] = queue.Queue(maxsize=max(int(queue_size), 1))
        self._stream = None

    @property
    def queue(self) -> queue.Queue[np.ndarray]:
        return self._queue

    def _callback(self, indata, frames, time_info, status):
        """Runs on the audio thread; must return immediately."""
        mono = downmix(indata, self.channels)
        try:
            self._queue.put_nowait(mono)
        except queue.Full:
            # the device is never stalled; the newest buffer is lost instead
            self.dropped += 1

    def start(self) -> None:
        sd = _sounddevice()
        index, info = find_input_device(self.device)
        self.device_name = str(info.get("name", ""))
        self.samplerate = int(info.get("default_samplerate") or 48000)
        self.channels = max(1, int(info.get("max_input_channels", 1)))
        try:
            self._stream = sd.InputStream(
                device=index,
                channels=self.channels,
                samplerate=self.samplerate,
                blocksize=self.blocksize,
                dtype="float32",
                callback=self._callback,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            self._stream = None
            raise DeviceError(f"Cannot start input stream on '{self.device_name}': {e}") from e
        log.info("Capturing from %s (%d Hz, %d ch)",
                 self.device_name, self.samplerate, self.channels)

    def blocks(self, stop_event: threading.Event | None = None,
               poll: float = 0.1) -> Iterator[np.ndarray]:
        """Yield captured buffers until *stop_event* is set."""
        while stop_event is None or not stop_event.is_set():
            try:
                yield self._queue.get(timeout=poll)
            except queue.Empty:
                continue

    def close(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.stop()
            stream.close()
        except _sounddevice().PortAudioError as e:
            log.warning("Closing input stream: %s", e)
        if self.dropped:
            log.debug("Capture dropped %d buffers", self.dropped)
