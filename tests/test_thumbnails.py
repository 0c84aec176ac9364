"""Tests for frame-grab thumbnails (subprocess mocked)"""
import asyncio
import json
import subprocess
from pathlib import Path
from unittest.mock import patch

from mediashelf.core.thumbnails import ThumbnailGenerator, capture_time


class TestCaptureTime:
    def test_offset_within_duration(self):
        assert capture_time(600.0, 20.0) == 20.0

    def test_clamped_to_short_video(self):
        assert capture_time(8.0, 20.0) == 7.0

    def test_never_negative(self):
        assert capture_time(0.5, 20.0) == 0.0

    def test_unknown_duration(self):
        assert capture_time(None, 20.0) == 20.0


def completed(stdout):
    return subprocess.CompletedProcess(args=[], returncode=0, stdout=stdout)


class TestThumbnailGenerator:
    def test_frame_grabbed_at_clamped_time(self):
        generator = ThumbnailGenerator(offset_seconds=20.0)
        outputs = [completed(json.dumps({"format": {"duration": "10.5"}})), completed(b"\xff\xd8jpeg")]

        with patch("mediashelf.core.thumbnails.subprocess.run", side_effect=outputs) as run:
            data = asyncio.run(generator.generate(Path("/v/clip.mp4")))

        assert data == b"\xff\xd8jpeg"
        ffmpeg_args = run.call_args_list[1].args[0]
        assert ffmpeg_args[ffmpeg_args.index("-ss") + 1] == "9.500"
        assert "scale=960:540:force_original_aspect_ratio=decrease" in ffmpeg_args

    def test_missing_ffmpeg_returns_none(self):
        generator = ThumbnailGenerator()
        with patch("mediashelf.core.thumbnails.subprocess.run", side_effect=FileNotFoundError("ffprobe")):
            assert generator.extract_frame(Path("/v/clip.mp4")) is None

    def test_ffmpeg_failure_returns_none(self):
        generator = ThumbnailGenerator()
        outputs = [
            completed(json.dumps({"format": {"duration": "100"}})),
            subprocess.CalledProcessError(1, "ffmpeg"),
        ]
        with patch("mediashelf.core.thumbnails.subprocess.run", side_effect=outputs):
            assert generator.extract_frame(Path("/v/clip.mp4")) is None
