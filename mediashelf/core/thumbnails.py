"""Génération de vignettes à partir du fichier vidéo (ffprobe + ffmpeg)."""
import asyncio
import json
import logging
import subprocess
from pathlib import Path
from typing import Optional

from mediashelf.config import Config

logger = logging.getLogger(__name__)


def capture_time(duration: Optional[float], offset: float) -> float:
    """Offset cible, borné pour ne pas dépasser la durée (une seconde de marge)."""
    if duration is None:
        return offset
    return min(offset, max(duration - 1.0, 0.0))


class ThumbnailGenerator:
    """Extrait une image JPEG d'une vidéo, en dernier recours quand le catalogue n'a pas de vignette.

    Best-effort: every failure is logged and reported as ``None``, never retried.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        offset_seconds: float = 20.0,
        max_width: int = 960,
        max_height: int = 540,
        timeout: int = 30,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.offset_seconds = offset_seconds
        self.max_width = max_width
        self.max_height = max_height
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Config) -> "ThumbnailGenerator":
        metadata = config.metadata
        return cls(
            ffmpeg_path=metadata.ffmpeg_path,
            ffprobe_path=metadata.ffprobe_path,
            offset_seconds=metadata.thumbnail_offset_seconds,
            max_width=metadata.thumbnail_max_width,
            max_height=metadata.thumbnail_max_height,
        )

    def probe_duration(self, path: Path) -> Optional[float]:
        command = [
            self.ffprobe_path, "-v", "error",
            "-show_entries", "format=duration",
            "-of", "json", str(path),
        ]
        try:
            result = subprocess.run(command, capture_output=True, text=True, check=True, timeout=self.timeout)
            return float(json.loads(result.stdout)["format"]["duration"])
        except subprocess.CalledProcessError as e:
            logger.warning(f"ffprobe failed for {path}: {e}, stderr: {e.stderr}")
        except (FileNotFoundError, subprocess.TimeoutExpired, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"ffprobe error for {path}: {e}")
        return None

    def extract_frame(self, path: Path) -> Optional[bytes]:
        at = capture_time(self.probe_duration(path), self.offset_seconds)
        scale = (
            f"scale={self.max_width}:{self.max_height}:force_original_aspect_ratio=decrease"
        )
        command = [
            self.ffmpeg_path, "-v", "error",
            "-ss", f"{at:.3f}",
            "-i", str(path),
            "-frames:v", "1",
            "-vf", scale,
            "-f", "image2pipe", "-vcodec", "mjpeg",
            "pipe:1",
        ]
        try:
            result = subprocess.run(command, capture_output=True, check=True, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            logger.warning(f"ffmpeg failed to grab a frame from {path}: {e}")
            return None
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.warning(f"ffmpeg error for {path}: {e}")
            return None
        if not result.stdout:
            logger.warning(f"ffmpeg produced no image for {path}")
            return None
        return result.stdout

    async def generate(self, path: Path) -> Optional[bytes]:
        """Version asynchrone: le sous-processus tourne dans un thread."""
        return await asyncio.to_thread(self.extract_frame, path)
