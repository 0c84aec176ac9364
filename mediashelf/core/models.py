"""Core business models."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, List, Tuple, Any


class MediaSource(str, Enum):
    """Catalogue de métadonnées externe."""
    TMDB = "TheMovieDB"
    TVDB = "TheTVDB"

    @property
    def display_name(self) -> str:
        return self.value


# Fixed priority for cross-catalog searches
SCAN_ORDER: Tuple[MediaSource, ...] = (MediaSource.TMDB, MediaSource.TVDB)


class LibraryAccessError(Exception):
    """The library root (or a top-level folder) cannot be accessed."""


class JobBusyError(Exception):
    """Another library operation is already running."""


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored by SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class UnifiedShow:
    """Série normalisée, quel que soit le catalogue."""
    id: int
    name: str
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    first_air_date: Optional[str] = None


@dataclass(frozen=True)
class UnifiedEpisode:
    """Épisode normalisé."""
    id: int
    name: str
    overview: Optional[str] = None
    still_path: Optional[str] = None
    air_date: Optional[str] = None


@dataclass(frozen=True)
class UnifiedMovie:
    """Film normalisé."""
    id: int
    title: str
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    release_date: Optional[str] = None
    runtime: Optional[int] = None


@dataclass
class VideoFile:
    """Fichier vidéo d'une série (identité = chemin)."""
    path: Path
    episode_info: Optional[Tuple[int, int]] = None  # (season, episode)
    show_name: Optional[str] = None  # Clé de jointure EpisodeMetadata
    metadata: Optional[Any] = None  # EpisodeMetadata

    @property
    def name(self) -> str:
        return self.path.name

    def __hash__(self) -> int:
        return hash(self.path)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, VideoFile) and other.path == self.path


@dataclass
class Show:
    """Série de la bibliothèque (identité = nom du dossier ou titre parsé)."""
    name: str
    files: List[VideoFile] = field(default_factory=list)
    metadata: Optional[Any] = None  # ShowMetadata

    def playlist(self) -> List[VideoFile]:
        """Episodes by (season, episode) first, unparsed files by name after."""
        parsed = sorted(
            (f for f in self.files if f.episode_info),
            key=lambda f: f.episode_info
        )
        loose = sorted(
            (f for f in self.files if not f.episode_info),
            key=lambda f: f.name.lower()
        )
        return parsed + loose


@dataclass
class Movie:
    """Film de la bibliothèque (identité = chemin)."""
    path: Path
    metadata: Optional[Any] = None  # MovieMetadata

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class Inventory:
    """Résultat d'un scan complet de la bibliothèque."""
    root: Path
    shows: List[Show] = field(default_factory=list)
    movies: List[Movie] = field(default_factory=list)
    scanned_at: datetime = field(default_factory=utcnow)

    def find_show(self, name: str) -> Optional[Show]:
        for show in self.shows:
            if show.name == name:
                return show
        return None

    def find_movie(self, file_name: str) -> Optional[Movie]:
        for movie in self.movies:
            if movie.name == file_name:
                return movie
        return None


@dataclass
class SortResult:
    """Bilan d'un tri de la bibliothèque."""
    scanned_files: int = 0
    moved_files: int = 0
    already_sorted_files: int = 0
    unclassified_files: List[str] = field(default_factory=list)
    failed_moves: List[str] = field(default_factory=list)

    @property
    def unclassified_count(self) -> int:
        return len(self.unclassified_files)

    @property
    def failed_count(self) -> int:
        return len(self.failed_moves)

    @property
    def is_clean(self) -> bool:
        return self.moved_files == 0 and not self.unclassified_files and not self.failed_moves


@dataclass
class SyncResult:
    """Bilan d'une synchronisation des métadonnées."""
    shows_processed: int = 0
    shows_skipped: int = 0
    shows_unmatched: List[str] = field(default_factory=list)
    episodes_updated: int = 0
    movies_processed: int = 0
    movies_skipped: int = 0
    movies_unmatched: List[str] = field(default_factory=list)
    external_processed: int = 0
    thumbnails_generated: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class DeleteResult:
    """Bilan d'une suppression de fichiers."""
    deleted_files: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    records_removed: int = 0
