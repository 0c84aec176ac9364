"""Exécuteur des suppressions (fichiers + enregistrements associés)."""
import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from mediashelf.core.models import DeleteResult, Movie, Show
from mediashelf.db.models import ExternalVideo, VideoProgress
from mediashelf.db.store import MetadataStore

logger = logging.getLogger(__name__)


def relative_path(path: Path, root: Path) -> str:
    """Chemin relatif à la racine de la bibliothèque (clé de VideoProgress)."""
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


class Executor:
    """Supprime des fichiers de la bibliothèque et nettoie le cache.

    A file that cannot be removed keeps its records; the failure is collected
    and the next file is processed.
    """

    def __init__(self, store: MetadataStore, root: Path):
        self.store = store
        self.root = Path(root)

    def _remove_progress(self, path: Path) -> int:
        progress: Optional[VideoProgress] = self.store.get_progress(relative_path(path, self.root))
        if progress is None:
            return 0
        self.store.delete(progress)
        return 1

    def _remove_file(self, path: Path, result: DeleteResult) -> bool:
        try:
            os.remove(path)
        except OSError as e:
            logger.warning(f"Failed to delete file {path}: {e}")
            result.failed.append(f"{path.name}: {e}")
            return False
        result.deleted_files.append(path.name)
        logger.info(f"Deleted file: {path.name}")
        return True

    def _finish(self, result: DeleteResult, label: str) -> DeleteResult:
        if not self.store.save():
            result.failed.append(f"{label}: could not save metadata cache")
        if result.failed:
            logger.warning(f"Partial delete of {label}: {len(result.failed)} failures, records kept for those files")
        return result

    def delete_show_files(self, show: Show) -> DeleteResult:
        result = DeleteResult()
        for file in show.files:
            if not self._remove_file(file.path, result):
                continue
            result.records_removed += self._remove_progress(file.path)
            if file.metadata is not None:
                self.store.delete(file.metadata)
                file.metadata = None
                result.records_removed += 1

        # Métadonnées de la série et, en cascade, tous ses épisodes
        record = show.metadata or self.store.get_show(show.name)
        if record is not None:
            if result.failed:
                logger.warning(f"Show metadata for {show.name} removed while some files remain on disk")
            result.records_removed += self.store.delete_show(record)
            show.metadata = None
        return self._finish(result, f"show '{show.name}'")

    def delete_movies(self, movies: Iterable[Movie]) -> DeleteResult:
        result = DeleteResult()
        for movie in movies:
            if not self._remove_file(movie.path, result):
                continue
            result.records_removed += self._remove_progress(movie.path)
            if movie.metadata is not None:
                self.store.delete(movie.metadata)
                movie.metadata = None
                result.records_removed += 1
        return self._finish(result, "movies")

    def delete_external_videos(self, videos: Iterable[ExternalVideo]) -> DeleteResult:
        """Oublie les références externes; les fichiers eux-mêmes restent en place."""
        result = DeleteResult()
        for video in videos:
            for progress in self.store.fetch(VideoProgress, lambda p: p.file_name == video.file_name):
                self.store.delete(progress)
                result.records_removed += 1
            self.store.delete(video)
            result.records_removed += 1
            result.deleted_files.append(video.file_name)
        return self._finish(result, "external videos")
