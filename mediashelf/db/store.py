"""Keyed record store over the metadata cache."""
import logging
from typing import Callable, List, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mediashelf.db.models import (
    ShowMetadata, EpisodeMetadata, MovieMetadata, VideoProgress, ExternalVideo
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MetadataStore:
    """Fetch / insert / delete / save sur le cache persistant.

    Single writer: the synchronizer upserts then calls ``save()`` once per
    item. Nothing spans a whole run.
    """

    def __init__(self, session: Session):
        self.session = session

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "MetadataStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Bulk reads

    def all_shows(self) -> List[ShowMetadata]:
        return self.session.query(ShowMetadata).all()

    def all_episodes(self) -> List[EpisodeMetadata]:
        return self.session.query(EpisodeMetadata).all()

    def all_movies(self) -> List[MovieMetadata]:
        return self.session.query(MovieMetadata).all()

    def all_external_videos(self) -> List[ExternalVideo]:
        return self.session.query(ExternalVideo).order_by(ExternalVideo.date_added).all()

    def fetch(self, model: Type[T], predicate: Callable[[T], bool]) -> List[T]:
        """Fetch-by-predicate générique (filtrage en Python)."""
        return [record for record in self.session.query(model).all() if predicate(record)]

    # Key lookups

    def get_show(self, show_name: str) -> Optional[ShowMetadata]:
        return self.session.query(ShowMetadata).filter(
            ShowMetadata.show_name == show_name
        ).first()

    def get_episode(self, show_name: str, season: int, episode: int) -> Optional[EpisodeMetadata]:
        return self.session.query(EpisodeMetadata).filter(
            EpisodeMetadata.show_name == show_name,
            EpisodeMetadata.season_number == season,
            EpisodeMetadata.episode_number == episode,
        ).first()

    def get_movie(self, file_name: str) -> Optional[MovieMetadata]:
        return self.session.query(MovieMetadata).filter(
            MovieMetadata.file_name == file_name
        ).first()

    def get_movie_by_catalog_id(self, catalog_id: int) -> Optional[MovieMetadata]:
        return self.session.query(MovieMetadata).filter(
            MovieMetadata.catalog_id == catalog_id
        ).first()

    def get_progress(self, relative_path: str) -> Optional[VideoProgress]:
        return self.session.query(VideoProgress).filter(
            VideoProgress.relative_path == relative_path
        ).first()

    def get_external_video(self, file_name: str) -> Optional[ExternalVideo]:
        return self.session.query(ExternalVideo).filter(
            ExternalVideo.file_name == file_name
        ).first()

    # Writes

    def insert(self, record) -> None:
        # Flush so that key lookups in the same item see the pending row
        self.session.add(record)
        self.session.flush()

    def delete(self, record) -> None:
        self.session.delete(record)

    def delete_show(self, record: ShowMetadata) -> int:
        """Supprime la série et, dans la même opération, tous ses épisodes."""
        self.session.flush()
        episodes = self.session.query(EpisodeMetadata).filter(
            EpisodeMetadata.show_name == record.show_name
        ).all()
        for episode in episodes:
            self.session.delete(episode)
        self.session.delete(record)
        return len(episodes) + 1

    def clear_all(self) -> dict:
        """Wipe every cached show/episode/movie record."""
        counts = {
            "shows": self.session.query(ShowMetadata).delete(),
            "episodes": self.session.query(EpisodeMetadata).delete(),
            "movies": self.session.query(MovieMetadata).delete(),
        }
        return counts

    def save(self) -> bool:
        """Commit; on failure roll back, log and return False."""
        try:
            self.session.commit()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Failed to save metadata cache: {str(e)}")
            self.session.rollback()
            return False
