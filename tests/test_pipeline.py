import threading
import time

import numpy as np
import soundfile as sf

from sgramlib.audio import FileSource
from sgramlib.config import PipelineConfig
from sgramlib.events import EventBus, PIPELINE_END, PIPELINE_ERROR, PIPELINE_START
from sgramlib.models import InputSpec
from sgramlib.pipeline import CHANNEL_CAPACITY, Pipeline, RealtimePacer, RowChannel
from sgramlib.resample import Rechunker, StreamResampler
from sgramlib.spectrogram import Spectrogram


def _write_sine(path, freq: float, seconds: float, sr: int, channels: int = 1) -> str:
    n = int(seconds * sr)
    tone = 0.5 * np.sin(2 * np.pi * freq * np.arange(n) / sr)
    data = np.column_stack([tone] * channels) if channels > 1 else tone
    sf.write(str(path), data, sr, subtype="PCM_16")
    return str(path)


def _collect(pipeline: Pipeline, timeout: float = 10.0) -> list[np.ndarray]:
    rows = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        row = pipeline.channel.recv(timeout=1.0)
        if row is None:
            if pipeline.channel.exhausted:
                break
            continue
        rows.append(row)
    return rows


# ---------------------------------------------------------------------------
# RowChannel
# ---------------------------------------------------------------------------

def test_channel_is_fifo() -> None:
    channel = RowChannel(8)
    for i in range(3):
        assert channel.send(np.full(4, i, dtype=np.float32))
    rows = channel.drain(10)
    assert [int(r[0]) for r in rows] == [0, 1, 2]
    assert channel.try_recv() is None


def test_channel_close_marks_end_of_stream() -> None:
    channel = RowChannel(4)
    channel.send(np.zeros(4, dtype=np.float32))
    channel.close()
    assert channel.closed
    assert not channel.exhausted
    assert channel.recv(timeout=0.5) is not None
    assert channel.recv(timeout=0.5) is None
    assert channel.exhausted


def test_blocked_send_observes_stop() -> None:
    channel = RowChannel(1)
    stop = threading.Event()
    assert channel.send(np.zeros(1, dtype=np.float32), stop)
    stop.set()
    assert channel.send(np.zeros(1, dtype=np.float32), stop, poll=0.01) is False
    assert len(channel) == 1


def test_drain_respects_limit() -> None:
    channel = RowChannel(10)
    for _ in range(10):
        channel.send(np.zeros(1, dtype=np.float32))
    assert len(channel.drain(4)) == 4
    assert len(channel) == 6


# ---------------------------------------------------------------------------
# RealtimePacer
# ---------------------------------------------------------------------------

def test_pacer_sleeps_toward_deadline() -> None:
    now = [0.0]
    slept = []
    pacer = RealtimePacer(1000, clock=lambda: now[0], sleep=slept.append)
    assert pacer.wait(10) == 0.01
    assert slept == [0.01]


def test_pacer_caps_sleep() -> None:
    slept = []
    pacer = RealtimePacer(1000, clock=lambda: 0.0, sleep=slept.append)
    pacer.wait(1000)
    assert slept == [0.05]


def test_pacer_does_not_sleep_when_behind() -> None:
    now = [0.0]
    slept = []
    pacer = RealtimePacer(1000, clock=lambda: now[0], sleep=slept.append)
    now[0] = 5.0
    assert pacer.wait(100) == 0.0
    assert slept == []


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def test_file_pipeline_produces_rows(tmp_path) -> None:
    path = _write_sine(tmp_path / "tone.wav", 10 * 46.875, 0.5, 48000)
    bus = EventBus()
    events = []
    bus.subscribe(PIPELINE_START, lambda **d: events.append(("start", d)))
    bus.subscribe(PIPELINE_END, lambda **d: events.append(("end", d)))

    pipeline = Pipeline(PipelineConfig(), InputSpec.file(path), event_bus=bus)
    pipeline.start()
    rows = _collect(pipeline)
    pipeline.join(5.0)

    assert not pipeline.running
    assert len(rows) > 80
    assert pipeline.rows_produced == len(rows)
    assert all(r.shape == (512,) for r in rows)
    assert 9 <= int(np.argmax(rows[len(rows) // 2])) <= 11
    assert events[0][0] == "start"
    assert events[0][1]["samplerate"] == 48000
    assert events[-1] == ("end", {"rows": len(rows)})


def test_rows_arrive_in_production_order(tmp_path) -> None:
    path = str(tmp_path / "noise.wav")
    noise = 0.3 * np.random.default_rng(11).standard_normal((44100, 2))
    sf.write(path, noise, 44100, subtype="PCM_16")
    cfg = PipelineConfig(pre_emphasis=0.97)

    source = FileSource(path)
    resampler = StreamResampler(source.samplerate, cfg.sample_rate, source.channels)
    chunker = Rechunker(1024)
    spectrogram = Spectrogram(cfg)
    expected = []
    for frames in source:
        for block in chunker.push(resampler.process(frames)):
            expected.extend(spectrogram.process_samples(block))
    for block in chunker.flush():
        expected.extend(spectrogram.process_samples(block))
    assert len(expected) > 2 * CHANNEL_CAPACITY

    pipeline = Pipeline(cfg, InputSpec.file(path), block=1024)
    pipeline.start()
    # let the worker fill the channel and block before reading slowly
    deadline = time.monotonic() + 5.0
    while len(pipeline.channel) < CHANNEL_CAPACITY and time.monotonic() < deadline:
        time.sleep(0.01)
    assert len(pipeline.channel) == CHANNEL_CAPACITY
    assert pipeline.running
    rows = []
    while True:
        row = pipeline.channel.recv(timeout=5.0)
        if row is None:
            break
        rows.append(row)
        if len(rows) % 16 == 0:
            time.sleep(0.01)
    pipeline.join(5.0)

    assert len(rows) == len(expected)
    for got, want in zip(rows, expected):
        np.testing.assert_allclose(got, want, rtol=1e-6, atol=1e-5)


def test_file_pipeline_resamples_stereo(tmp_path) -> None:
    path = _write_sine(tmp_path / "stereo.wav", 1000.0, 0.5, 24000, channels=2)
    pipeline = Pipeline(PipelineConfig(sample_rate=48000), InputSpec.file(path))
    pipeline.start()
    rows = _collect(pipeline)
    pipeline.join(5.0)

    assert len(rows) > 80
    # 1000 Hz at 46.875 Hz per bin
    assert 20 <= int(np.argmax(rows[len(rows) // 2])) <= 23


def test_missing_file_ends_pipeline_quietly(tmp_path) -> None:
    bus = EventBus()
    errors = []
    bus.subscribe(PIPELINE_ERROR, lambda message: errors.append(message))

    pipeline = Pipeline(PipelineConfig(), InputSpec.file(str(tmp_path / "nope.wav")),
                        event_bus=bus)
    pipeline.start()
    pipeline.join(5.0)

    assert pipeline.channel.exhausted
    assert pipeline.rows_produced == 0
    assert len(errors) == 1
    assert "nope.wav" in errors[0]


def test_stop_interrupts_realtime_playback(tmp_path) -> None:
    path = _write_sine(tmp_path / "long.wav", 440.0, 10.0, 48000)
    pipeline = Pipeline(PipelineConfig(), InputSpec.file(path), realtime=True)
    pipeline.start()
    time.sleep(0.2)
    assert pipeline.running
    assert pipeline.stop(timeout=2.0)
    assert pipeline.channel.closed


class _FakeCapture:
    samplerate = 48000
    channels = 1

    def __init__(self, device=None):
        self.device = device
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def blocks(self, stop_event):
        for _ in range(3):
            yield np.zeros(2048, dtype=np.float32)

    def close(self):
        self.closed = True


def test_capture_pipeline_passthrough() -> None:
    captures = []

    def factory(device):
        captures.append(_FakeCapture(device))
        return captures[-1]

    pipeline = Pipeline(PipelineConfig(), InputSpec.mic("USB"), capture_factory=factory)
    pipeline.start()
    rows = _collect(pipeline)
    pipeline.join(5.0)

    # 6144 samples, 1024 frame, 256 hop
    assert len(rows) == 21
    assert captures[0].device == "USB"
    assert captures[0].started and captures[0].closed
