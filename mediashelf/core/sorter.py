"""Tri des fichiers vidéo vers les emplacements canoniques."""
import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, List

from mediashelf.config import Config
from mediashelf.core.classifier import (
    DEFAULT_VIDEO_EXTENSIONS, classify_sort_target, is_video_file, sanitize_folder_name
)
from mediashelf.core.models import LibraryAccessError, SortResult

logger = logging.getLogger(__name__)


def unique_destination(directory: Path, filename: str) -> Path:
    """``name.ext``, puis ``name (1).ext``, ``name (2).ext``... jusqu'à un chemin libre."""
    candidate = directory / filename
    stem, ext = os.path.splitext(filename)
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem} ({counter}){ext}"
        counter += 1
    return candidate


def _is_within(path: Path, directory: Path) -> bool:
    try:
        path.relative_to(directory)
        return True
    except ValueError:
        return False


class LibrarySorter:
    """Déplace épisodes et films vers Shows/<Titre>/ et Movies/."""

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
        self.imported_root = self.shows_root / imported_dir
        self.extensions = tuple(extensions)

    @classmethod
    def from_config(cls, config: Config) -> "LibrarySorter":
        library = config.library
        return cls(
            root=Path(library.root),
            shows_dir=library.shows_dir,
            movies_dir=library.movies_dir,
            imported_dir=library.imported_dir,
            extensions=library.video_extensions,
        )

    def _collect(self) -> List[Path]:
        """Liste complète avant tout déplacement."""
        found: List[Path] = []

        def on_error(error: OSError) -> None:
            logger.warning(f"Skipping unreadable directory {error.filename}: {error}")

        for dirpath, dirnames, filenames in os.walk(self.root, onerror=on_error):
            current = Path(dirpath)
            dirnames[:] = sorted(
                d for d in dirnames
                if not d.startswith(".") and current / d != self.imported_root
            )
            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                path = current / filename
                if is_video_file(path, self.extensions):
                    found.append(path)
        return found

    def sort(self) -> SortResult:
        if not self.root.is_dir():
            raise LibraryAccessError(f"Library root is not accessible: {self.root}")
        try:
            self.movies_root.mkdir(parents=True, exist_ok=True)
            self.shows_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LibraryAccessError(f"Cannot create library folders under {self.root}: {e}")

        result = SortResult()
        for path in self._collect():
            result.scanned_files += 1
            target = classify_sort_target(path.name)

            if target.kind == "episode":
                destination_dir = self.shows_root / sanitize_folder_name(target.show_title)
            elif target.kind == "movie":
                destination_dir = self.movies_root
            else:
                result.unclassified_files.append(path.name)
                continue

            # Déjà rangé: dans le dossier canonique (ou un sous-dossier de saison)
            if _is_within(path.parent, destination_dir):
                result.already_sorted_files += 1
                continue

            try:
                destination_dir.mkdir(parents=True, exist_ok=True)
                destination = unique_destination(destination_dir, path.name)
                shutil.move(str(path), str(destination))
                result.moved_files += 1
                logger.info(f"Moved {path.name} -> {destination.relative_to(self.root)}")
            except OSError as e:
                logger.warning(f"Failed to move {path}: {e}")
                result.failed_moves.append(f"{path.name}: {e}")

        logger.info(
            f"Sort complete: {result.scanned_files} scanned, {result.moved_files} moved, "
            f"{result.already_sorted_files} already sorted, {result.unclassified_count} unclassified, "
            f"{result.failed_count} failed"
        )
        return result
