"""Scanner de la bibliothèque: inventaire séries/films joint au cache."""
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from mediashelf.config import Config
from mediashelf.core.classifier import DEFAULT_VIDEO_EXTENSIONS, is_video_file, parse_episode
from mediashelf.core.models import Inventory, LibraryAccessError, Movie, Show, VideoFile
from mediashelf.db.store import MetadataStore

logger = logging.getLogger(__name__)

EpisodeKey = Tuple[str, int, int]


def episode_show_name(path: Path, shows_root: Path, parsed_title: Optional[str]) -> Optional[str]:
    """Nom de série utilisé comme clé de jointure des épisodes.

    Loose file in the shows root: parsed title. File in a folder whose name
    contains "season": grandparent folder. Otherwise: parent folder.
    """
    parent = path.parent
    if parent == shows_root:
        return parsed_title
    if "season" in parent.name.lower():
        return parent.parent.name
    return parent.name


class LibraryScanner:
    """Construit l'inventaire à partir de l'arborescence de la bibliothèque."""

    def __init__(
        self,
        root: Path,
        shows_dir: str = "Shows",
        movies_dir: str = "Movies",
        imported_dir: str = "Imported",
        extensions: Iterable[str] = DEFAULT_VIDEO_EXTENSIONS,
    ):
        self.root = Path(root)
        self.shows_root = self.root / shows_dir
        self.movies_root = self.root / movies_dir
        self.imported_dir = imported_dir
        self.extensions = tuple(extensions)

    @classmethod
    def from_config(cls, config: Config) -> "LibraryScanner":
        library = config.library
        return cls(
            root=Path(library.root),
            shows_dir=library.shows_dir,
            movies_dir=library.movies_dir,
            imported_dir=library.imported_dir,
            extensions=library.video_extensions,
        )

    def scan(self, store: MetadataStore) -> Inventory:
        if not self.root.is_dir():
            raise LibraryAccessError(f"Library root is not accessible: {self.root}")

        # Lecture groupée, une seule fois
        shows_by_name = {record.show_name: record for record in store.all_shows()}
        movies_by_file = {record.file_name: record for record in store.all_movies()}
        episodes_by_key: Dict[EpisodeKey, object] = {
            (record.show_name, record.season_number, record.episode_number): record
            for record in store.all_episodes()
        }

        movies = self._scan_movies(movies_by_file)
        shows = self._scan_shows(shows_by_name, episodes_by_key)

        logger.info(f"Scan complete: {len(shows)} shows, {len(movies)} movies")
        return Inventory(root=self.root, shows=shows, movies=movies)

    # Helpers

    def _list_dir(self, directory: Path) -> List[Path]:
        try:
            return sorted(directory.iterdir())
        except OSError as e:
            logger.warning(f"Skipping unreadable directory {directory}: {e}")
            return []

    def _is_video(self, path: Path) -> bool:
        try:
            return path.is_file() and is_video_file(path, self.extensions)
        except OSError as e:
            logger.warning(f"Skipping unreadable file {path}: {e}")
            return False

    @staticmethod
    def _hidden(path: Path) -> bool:
        return path.name.startswith(".")

    def _scan_movies(self, movies_by_file: Dict[str, object]) -> List[Movie]:
        if not self.movies_root.is_dir():
            return []

        movies = [
            Movie(path=path, metadata=movies_by_file.get(path.name))
            for path in self._list_dir(self.movies_root)
            if not self._hidden(path) and self._is_video(path)
        ]
        movies.sort(key=lambda m: (m.metadata.display_name if m.metadata else m.name).lower())
        return movies

    def _video_file(self, path: Path, episodes_by_key: Dict[EpisodeKey, object]) -> VideoFile:
        info = parse_episode(path.name)
        if not info:
            return VideoFile(path=path)
        show_name = episode_show_name(path, self.shows_root, info.title)
        return VideoFile(
            path=path,
            episode_info=(info.season, info.episode),
            show_name=show_name,
            metadata=episodes_by_key.get((show_name, info.season, info.episode)),
        )

    def _scan_shows(
        self,
        shows_by_name: Dict[str, object],
        episodes_by_key: Dict[EpisodeKey, object],
    ) -> List[Show]:
        if not self.shows_root.is_dir():
            return []

        entries = [p for p in self._list_dir(self.shows_root) if not self._hidden(p)]

        # Passe 1: fichiers posés directement dans Shows/, groupés par titre parsé
        loose: Dict[str, List[VideoFile]] = {}
        for path in entries:
            if not self._is_video(path):
                continue
            video = self._video_file(path, episodes_by_key)
            if not video.episode_info:
                logger.debug(f"Ignoring unparsed loose file {path.name}")
                continue
            loose.setdefault(video.show_name, []).append(video)

        # Passe 2: un dossier par série, un niveau de sous-dossier (saisons)
        shows: Dict[str, Show] = {}
        for directory in entries:
            if directory.name == self.imported_dir or not directory.is_dir():
                continue

            files: List[VideoFile] = []
            for path in self._list_dir(directory):
                if self._hidden(path):
                    continue
                if path.is_dir():
                    files.extend(
                        self._video_file(child, episodes_by_key)
                        for child in self._list_dir(path)
                        if not self._hidden(child) and self._is_video(child)
                    )
                elif self._is_video(path):
                    files.append(self._video_file(path, episodes_by_key))

            files.extend(loose.pop(directory.name, []))
            if not files:
                continue
            shows[directory.name] = Show(
                name=directory.name, files=files, metadata=shows_by_name.get(directory.name)
            )

        # Séries sans dossier, uniquement des fichiers en vrac
        for name, files in loose.items():
            shows[name] = Show(name=name, files=files, metadata=shows_by_name.get(name))

        return sorted(shows.values(), key=lambda s: s.name.lower())
