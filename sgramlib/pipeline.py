from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any, Callable, Iterable

import numpy as np

from .audio import FileSource
from .capture import LiveCapture
from .config import PipelineConfig
from .events import (
    EventBus,
    PIPELINE_END,
    PIPELINE_ERROR,
    PIPELINE_PROGRESS,
    PIPELINE_START,
)
from .models import InputKind, InputSpec, SgramError
from .resample import BLOCK_SAMPLES, LinearResampler, Rechunker, StreamResampler, split_blocks
from .spectrogram import Spectrogram

log = logging.getLogger(__name__)

CHANNEL_CAPACITY = 64
MAX_PACING_SLEEP = 0.05


class RowChannel:
    """Bounded single-producer / single-consumer FIFO of spectral rows.

    The producer blocks on :meth:`send` while the channel is full (waking
    periodically to honour a stop request) and calls :meth:`close` once
    it will send nothing more.  The consumer never blocks unless it asks
    to via :meth:`recv`.
    """

    def __init__(self, capacity: int = CHANNEL_CAPACITY):
        self.capacity = max(int(capacity), 1)
        self._queue: queue.Queue[np.ndarray] = queue.Queue(maxsize=self.capacity)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def exhausted(self) -> bool:
        """True once the producer has closed and every row was received."""
        return self._closed.is_set() and self._queue.empty()

    def __len__(self) -> int:
        return self._queue.qsize()

    def send(self, row: np.ndarray, stop_event: threading.Event | None = None,
             poll: float = 0.1) -> bool:
        """Block until *row* is queued.  Returns False if stopped first."""
        while True:
            if stop_event is not None and stop_event.is_set():
                return False
            try:
                self._queue.put(row, timeout=poll)
                return True
            except queue.Full:
                continue

    def close(self) -> None:
        self._closed.set()

    def try_recv(self) -> np.ndarray | None:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def recv(self, timeout: float | None = None, poll: float = 0.05) -> np.ndarray | None:
        """Wait for the next row.  Returns None on timeout or end of stream."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            wait = poll
            if deadline is not None:
                wait = min(poll, deadline - time.monotonic())
                if wait <= 0:
                    return self.try_recv()
            try:
                return self._queue.get(timeout=wait)
            except queue.Empty:
                if self.exhausted:
                    return None

    def drain(self, max_rows: int) -> list[np.ndarray]:
        """Return up to *max_rows* rows that are available right now."""
        rows: list[np.ndarray] = []
        while len(rows) < max_rows:
            row = self.try_recv()
            if row is None:
                break
            rows.append(row)
        return rows


class RealtimePacer:
    """Sleeps so that emitted samples track wall-clock time.

    After each chunk the deadline is ``total_emitted / sample_rate``
    seconds from the pacer's start; the sleep toward it is capped at
    *max_sleep* so a hiccup never causes a long stall.
    """

    def __init__(
        self,
        sample_rate: int,
        max_sleep: float = MAX_PACING_SLEEP,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.sample_rate = max(int(sample_rate), 1)
        self.max_sleep = max_sleep
        self._clock = clock
        self._sleep = sleep
        self._start = clock()
        self.emitted = 0

    def wait(self, emitted_now: int) -> float:
        """Account for *emitted_now* samples; returns the time slept."""
        self.emitted += int(emitted_now)
        target = self.emitted / self.sample_rate
        elapsed = self._clock() - self._start
        if target <= elapsed:
            return 0.0
        delay = min(target - elapsed, self.max_sleep)
        self._sleep(delay)
        return delay


class Pipeline:
    """Input → downmix/resample → spectrogram on one worker thread.

    Completed rows are published on :attr:`channel`.  The worker owns the
    input source, resampler and transform state; the configuration is
    immutable.  Errors end the worker after being logged once; the
    channel is then closed and nothing else crosses to the consumer.
    """

    def __init__(
        self,
        config: PipelineConfig,
        source: InputSpec,
        *,
        realtime: bool = False,
        event_bus: EventBus | None = None,
        channel_capacity: int = CHANNEL_CAPACITY,
        block: int = BLOCK_SAMPLES,
        capture_factory: Callable[[str | None], LiveCapture] | None = None,
    ):
        self.config = config
        self.source = source
        self.realtime = realtime and source.kind is InputKind.FILE
        self.event_bus = event_bus
        self.block = max(int(block), 1)
        self.channel = RowChannel(channel_capacity)
        self.rows_produced = 0
        self._capture_factory = capture_factory or (lambda device: LiveCapture(device=device))
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Lifecycle (foreground thread)
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("pipeline already started")
        self._thread = threading.Thread(
            target=self._run, name="sgram-pipeline", daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = 2.0) -> bool:
        """Signal the worker to finish and join it.

        Returns True if the worker has exited.
        """
        self._stop.set()
        if self._thread is None:
            return True
        self._thread.join(timeout)
        alive = self._thread.is_alive()
        if alive:
            log.warning("Pipeline worker did not exit within %.1fs", timeout or 0.0)
        return not alive

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def __enter__(self) -> Pipeline:
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------

    def _emit(self, event_type: str, **data):
        if self.event_bus:
            self.event_bus.emit(event_type, **data)

    def _run(self) -> None:
        spectrogram = Spectrogram(self.config)
        log.info("Pipeline started: %s", self.source.describe())
        try:
            if self.source.kind is InputKind.FILE:
                self._run_file(spectrogram)
            else:
                self._run_capture(spectrogram)
        except SgramError as e:
            log.error("Input pipeline error: %s", e)
            self._emit(PIPELINE_ERROR, message=str(e))
        except Exception as e:
            log.exception("Input pipeline failed")
            self._emit(PIPELINE_ERROR, message=str(e))
        finally:
            self.channel.close()
            log.info("Pipeline finished after %d rows", self.rows_produced)
            self._emit(PIPELINE_END, rows=self.rows_produced)

    def _publish(self, spectrogram: Spectrogram, chunks: Iterable[np.ndarray],
                 pacer: RealtimePacer | None = None) -> bool:
        """Transform *chunks* and send their rows in order.

        Returns False when a stop was requested.
        """
        for chunk in chunks:
            if self._stop.is_set():
                return False
            for row in spectrogram.process_samples(chunk):
                if not self.channel.send(row, self._stop):
                    return False
                self.rows_produced += 1
            if pacer is not None:
                pacer.wait(chunk.size)
        return True

    def _run_file(self, spectrogram: Spectrogram) -> None:
        source = FileSource(self.source.path or "")
        self._emit(PIPELINE_START, source=self.source.describe(),
                   samplerate=source.samplerate, channels=source.channels)
        resampler = StreamResampler(source.samplerate, self.config.sample_rate, source.channels)
        chunker = Rechunker(self.block)
        pacer = None
        if self.realtime:
            pacer = RealtimePacer(self.config.sample_rate, sleep=self._stop.wait)

        frames_in = 0
        for frames in source:
            if self._stop.is_set():
                return
            frames_in += len(frames)
            out = resampler.process(frames)
            if not self._publish(spectrogram, chunker.push(out), pacer):
                return
            self._emit(PIPELINE_PROGRESS, samples_in=frames_in, frames_total=source.frames)
        self._publish(spectrogram, chunker.flush(), pacer)

    def _run_capture(self, spectrogram: Spectrogram) -> None:
        capture = self._capture_factory(self.source.device)
        capture.start()
        try:
            self._emit(PIPELINE_START, source=self.source.describe(),
                       samplerate=capture.samplerate, channels=capture.channels)
            resampler = LinearResampler(capture.samplerate, self.config.sample_rate)
            for buf in capture.blocks(self._stop):
                if not resampler.passthrough:
                    buf = resampler.process(buf)
                if not self._publish(spectrogram, split_blocks(buf, self.block)):
                    return
        finally:
            capture.close()
