from __future__ import annotations

import asyncio
import base64
from pathlib import Path

import pytest

from config import PipelineConfig, SampleMode
from recorder import frame_sampler
from recorder.frame_sampler import FFmpegDecoder, Frame, FrameSampler
from utils.errors import FrameSamplingError

from conftest import FakeDecoder, UndecodableDecoder


def test_two_second_clip_yields_three_distinct_key_frames(config: PipelineConfig) -> None:
    sampler = FrameSampler(config)
    decoder = FakeDecoder(duration=2.0)

    frames = asyncio.run(sampler.sample(decoder))

    assert len(frames) == 3
    timestamps = [f.timestamp for f in frames]
    assert timestamps == [0.2, 1.0, 1.8]
    assert all(t < 2.0 for t in timestamps)
    assert len(set(timestamps)) == 3
    assert [f.index for f in frames] == [0, 1, 2]


def test_fixed_cadence_skips_times_past_the_end() -> None:
    sampler = FrameSampler(PipelineConfig(sample_mode=SampleMode.FIXED_CADENCE, cadence_seconds=2.0))

    assert sampler.sample_times(5.0) == [0.0, 2.0, 4.0]
    assert sampler.sample_times(4.0) == [0.0, 2.0]
    assert sampler.sample_times(0.5) == [0.0]


def test_tiny_clip_collapses_duplicate_times() -> None:
    sampler = FrameSampler(PipelineConfig(key_frame_fractions=(0.0, 0.0001, 0.5)))

    assert sampler.sample_times(1.0) == [0.0, 0.5]


def test_failed_seek_is_skipped_not_retried(config: PipelineConfig) -> None:
    decoder = FakeDecoder(duration=2.0, fail_at={1.0})

    frames = asyncio.run(FrameSampler(config).sample(decoder))

    assert [f.timestamp for f in frames] == [0.2, 1.8]
    assert [f.index for f in frames] == [0, 1]
    assert decoder.seeks == [0.2, 1.0, 1.8]


def test_undecodable_video_is_fatal(config: PipelineConfig) -> None:
    with pytest.raises(FrameSamplingError):
        asyncio.run(FrameSampler(config).sample(UndecodableDecoder()))


def test_zero_length_video_is_fatal(config: PipelineConfig) -> None:
    with pytest.raises(FrameSamplingError, match="too short"):
        asyncio.run(FrameSampler(config).sample(FakeDecoder(duration=0.0)))


def test_no_decodable_frame_is_fatal(config: PipelineConfig) -> None:
    decoder = FakeDecoder(duration=2.0, fail_at={0.2, 1.0, 1.8})

    with pytest.raises(FrameSamplingError, match="any frame"):
        asyncio.run(FrameSampler(config).sample(decoder))


def test_iter_frames_restarts_per_call(config: PipelineConfig) -> None:
    sampler = FrameSampler(config)
    decoder = FakeDecoder(duration=2.0)

    async def collect() -> tuple[list[Frame], list[Frame]]:
        first = [f async for f in sampler.iter_frames(decoder)]
        second = [f async for f in sampler.iter_frames(decoder)]
        return first, second

    first, second = asyncio.run(collect())
    assert [f.timestamp for f in first] == [f.timestamp for f in second]


def test_frame_encoding_and_save(tmp_path: Path, jpeg: bytes) -> None:
    frame = Frame(image=jpeg, timestamp=1.5, index=7)

    assert base64.b64decode(frame.to_base64()) == jpeg
    assert frame.to_data_url().startswith("data:image/jpeg;base64,")
    assert frame.save(tmp_path).name == "frame_0007.jpg"
    assert frame.to_dict() == {"timestamp": 1.5, "index": 7, "size": len(jpeg)}


def test_decoder_requires_ffmpeg(monkeypatch, tmp_path: Path) -> None:  # noqa: ANN001
    monkeypatch.setattr(frame_sampler.shutil, "which", lambda _name: None)

    with pytest.raises(FrameSamplingError, match="ffmpeg not found"):
        FFmpegDecoder(tmp_path / "clip.webm")


def test_decoder_probe_duration_falls_back_to_decoding(monkeypatch, tmp_path: Path) -> None:  # noqa: ANN001
    monkeypatch.setattr(frame_sampler.shutil, "which", lambda name: f"/usr/bin/{name}")
    calls: list[list[str]] = []

    async def fake_run(cmd: list[str]) -> tuple[int, bytes, bytes]:
        calls.append(cmd)
        if cmd[0] == "ffprobe":
            return 0, b'{"format": {"duration": "N/A"}}', b""
        return 0, b"", b"frame=1 time=00:00:01.00\nframe=60 time=00:00:02.50 bitrate=N/A"

    monkeypatch.setattr(frame_sampler, "_run", fake_run)
    decoder = FFmpegDecoder(tmp_path / "clip.webm")

    assert asyncio.run(decoder.probe_duration()) == 2.5
    # Cached after the first probe
    assert asyncio.run(decoder.probe_duration()) == 2.5
    assert [c[0] for c in calls] == ["ffprobe", "ffmpeg"]


def test_decoder_frame_at_raises_on_empty_output(monkeypatch, tmp_path: Path) -> None:  # noqa: ANN001
    monkeypatch.setattr(frame_sampler.shutil, "which", lambda name: f"/usr/bin/{name}")

    async def fake_run(cmd: list[str]) -> tuple[int, bytes, bytes]:
        assert "-ss" in cmd and cmd[cmd.index("-ss") + 1] == "1.250"
        return 0, b"", b""

    monkeypatch.setattr(frame_sampler, "_run", fake_run)
    decoder = FFmpegDecoder(tmp_path / "clip.webm")

    with pytest.raises(FrameSamplingError, match="1.25s"):
        asyncio.run(decoder.frame_at(1.25))


def test_long_cadence_clip_is_bounded_by_max_frames() -> None:
    config = PipelineConfig(sample_mode=SampleMode.FIXED_CADENCE, cadence_seconds=2.0, max_frames=10)
    decoder = FakeDecoder(duration=600.0)

    frames = asyncio.run(FrameSampler(config).sample(decoder))

    assert len(decoder.seeks) <= 10
    assert len(frames) == 10
    assert frames[0].timestamp == 0.0
    assert frames[-1].timestamp >= 500.0
