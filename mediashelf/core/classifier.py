"""Classification des noms de fichiers (épisode, film, inconnu)."""
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, NamedTuple, Optional

DEFAULT_VIDEO_EXTENSIONS = ("mp4", "m4v", "mov", "avi", "mkv")

# "<title> - S<season>E<episode>"
EPISODE_PATTERN = re.compile(r"^(.+?)\s*-\s*S(\d+)E(\d+)$")
# "<anything> (YYYY)", only used by the sorter
MOVIE_PATTERN = re.compile(r".+\(\d{4}\)$")

YEAR_TAG = re.compile(r"\s*[\(\[]\d{4}[\)\]]")
QUALITY_TAGS = ["1080p", "720p", "2160p", "4K", "BluRay", "WEB-DL", "WEBRip", "HDRip", "BRRip"]
FORBIDDEN_FOLDER_CHARS = re.compile(r'[/:\\*?"<>|]')
UNKNOWN_SHOW_FOLDER = "Unknown Show"


class EpisodeInfo(NamedTuple):
    title: str
    season: int
    episode: int


@dataclass(frozen=True)
class SortTarget:
    """Destination logique d'un fichier: episode, movie ou unknown."""
    kind: str
    show_title: Optional[str] = None


def _stem(filename: str) -> str:
    return os.path.splitext(filename)[0]


def parse_episode(filename: str) -> Optional[EpisodeInfo]:
    """Parse ``"Breaking Bad - S01E05.mp4"`` into ``("Breaking Bad", 1, 5)``.

    The whole name (without extension) must match; no fuzzy matching.
    """
    match = EPISODE_PATTERN.match(_stem(filename).strip())
    if not match:
        return None
    title = match.group(1).strip()
    if not title:
        return None
    return EpisodeInfo(title, int(match.group(2)), int(match.group(3)))


def looks_like_movie(filename: str) -> bool:
    """Signal film du tri: nom terminé par ``(YYYY)``."""
    return MOVIE_PATTERN.match(_stem(filename).strip()) is not None


def classify_sort_target(filename: str) -> SortTarget:
    info = parse_episode(filename)
    if info:
        return SortTarget("episode", info.title)
    if looks_like_movie(filename):
        return SortTarget("movie")
    return SortTarget("unknown")


def is_video_file(path: Path, extensions: Iterable[str] = DEFAULT_VIDEO_EXTENSIONS) -> bool:
    """Extension-only check, case-insensitive."""
    suffix = path.suffix.lower().lstrip(".")
    return bool(suffix) and suffix in {ext.lower().lstrip(".") for ext in extensions}


def clean_movie_title(filename: str) -> str:
    """Titre de recherche à partir d'un nom de fichier film."""
    title = filename
    if "." in title:
        title = title[:title.rindex(".")]

    title = YEAR_TAG.sub("", title)
    for tag in QUALITY_TAGS:
        title = re.sub(re.escape(tag), "", title, flags=re.IGNORECASE)

    title = title.replace(".", " ").replace("_", " ")
    return title.strip()


def sanitize_folder_name(name: str) -> str:
    cleaned = FORBIDDEN_FOLDER_CHARS.sub(" ", name).strip()
    return cleaned or UNKNOWN_SHOW_FOLDER
