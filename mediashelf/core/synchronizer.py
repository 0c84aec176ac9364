"""Synchronisation des métadonnées de l'inventaire avec les catalogues."""
import logging
from typing import Iterable, List, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError

from mediashelf.core.classifier import clean_movie_title, parse_episode
from mediashelf.core.models import (
    Inventory, MediaSource, Movie, Show, SyncResult, UnifiedMovie, UnifiedShow, VideoFile, utcnow
)
from mediashelf.core.resolver import MetadataResolver
from mediashelf.core.rules import StalenessPolicy
from mediashelf.core.thumbnails import ThumbnailGenerator
from mediashelf.db.models import EpisodeMetadata, ExternalVideo, MovieMetadata, ShowMetadata
from mediashelf.db.store import MetadataStore
from mediashelf.services.errors import CatalogError

logger = logging.getLogger(__name__)

# Failures that end the current item but never the run
ITEM_ERRORS = (CatalogError, httpx.HTTPError, SQLAlchemyError, OSError)


def _record_source(record) -> MediaSource:
    try:
        return MediaSource(record.source) if record.source else MediaSource.TMDB
    except ValueError:
        return MediaSource.TMDB


def cached_show_identity(record: ShowMetadata) -> UnifiedShow:
    return UnifiedShow(
        id=record.catalog_id,
        name=record.display_name,
        overview=record.overview,
        poster_path=record.poster_path,
        backdrop_path=record.backdrop_path,
        first_air_date=record.first_air_date,
    )


class MetadataSynchronizer:
    """Met à jour le cache (séries, épisodes, films, vidéos externes).

    Items are processed one after the other; every item's writes are saved
    together before moving on, and a failing item never stops the run.
    """

    def __init__(
        self,
        resolver: MetadataResolver,
        store: MetadataStore,
        policy: Optional[StalenessPolicy] = None,
        thumbnailer: Optional[ThumbnailGenerator] = None,
    ):
        self.resolver = resolver
        self.store = store
        self.policy = policy or StalenessPolicy()
        self.thumbnailer = thumbnailer or ThumbnailGenerator()

    async def sync(self, inventory: Inventory, external_videos: Iterable[ExternalVideo] = ()) -> SyncResult:
        result = SyncResult()
        logger.info(f"Metadata sync started, sources: {', '.join(s.display_name for s in self.resolver.sources)}")

        external_videos = list(external_videos)
        if external_videos:
            await self.sync_external_videos(external_videos, result)

        for show in inventory.shows:
            try:
                await self.sync_show(show, result)
            except ITEM_ERRORS as e:
                self._item_failed(f"show '{show.name}'", e, result)

        for movie in inventory.movies:
            try:
                await self.sync_movie(movie, result)
            except ITEM_ERRORS as e:
                self._item_failed(f"movie '{movie.name}'", e, result)

        logger.info(
            f"Metadata sync complete: {result.shows_processed} shows, {result.episodes_updated} episodes, "
            f"{result.movies_processed} movies, {result.external_processed} external, "
            f"{len(result.errors)} errors"
        )
        return result

    def _item_failed(self, label: str, error: Exception, result: SyncResult) -> None:
        logger.warning(f"Error fetching metadata for {label}: {error}")
        result.errors.append(f"{label}: {error}")
        self.store.session.rollback()

    def _save(self, label: str, result: SyncResult) -> bool:
        if self.store.save():
            return True
        result.errors.append(f"{label}: save failed")
        return False

    async def _download(self, path: str, source: MediaSource, what: str) -> Optional[bytes]:
        try:
            return await self.resolver.download_image(path, source)
        except (CatalogError, httpx.HTTPError) as e:
            logger.warning(f"Failed to download {what}: {e}")
            return None

    async def _generate_still(self, file: VideoFile, record: EpisodeMetadata, result: SyncResult) -> bool:
        data = await self.thumbnailer.generate(file.path)
        if not data:
            logger.warning(f"Failed to generate video thumbnail for {file.name}")
            return False
        record.still_data = data
        record.last_updated = utcnow()
        result.thumbnails_generated += 1
        return True

    # Shows

    async def sync_show(self, show: Show, result: SyncResult) -> None:
        episode_files = [f for f in show.files if f.episode_info]
        needs_show = self.policy.is_stale(show.metadata)
        needs_episodes = any(self.policy.episode_needs_work(f.metadata) for f in episode_files)
        if not needs_show and not needs_episodes:
            logger.debug(f"Skipping {show.name}, all metadata current")
            result.shows_skipped += 1
            return

        match = await self.resolver.search_show_with_source(show.name)
        if match:
            unified, source = match
            logger.info(f"Found match for {show.name}: {unified.name} (id {unified.id}, {source.display_name})")
        elif show.metadata is not None:
            unified, source = cached_show_identity(show.metadata), _record_source(show.metadata)
            logger.warning(f"No catalog match for {show.name}, falling back to cached show metadata")
        else:
            logger.warning(f"No results for {show.name}")
            result.shows_unmatched.append(show.name)
            return

        if needs_show:
            record = self._upsert_show(show.name, show.metadata, unified, source)
            show.metadata = record
            if unified.poster_path and not record.poster_data:
                record.poster_data = await self._download(unified.poster_path, source, f"poster for {show.name}")

        for file in episode_files:
            await self._sync_episode(show, file, unified, source, result)

        self._save(f"show '{show.name}'", result)
        result.shows_processed += 1

    def _upsert_show(
        self, show_name: str, record: Optional[ShowMetadata], unified: UnifiedShow, source: MediaSource
    ) -> ShowMetadata:
        if record is None:
            record = self.store.get_show(show_name)
        if record is None:
            record = ShowMetadata(show_name=show_name, catalog_id=unified.id, display_name=unified.name)
            self.store.insert(record)
        record.catalog_id = unified.id
        record.source = source.value
        record.display_name = unified.name
        record.overview = unified.overview
        record.poster_path = unified.poster_path
        record.backdrop_path = unified.backdrop_path
        record.first_air_date = unified.first_air_date
        record.last_updated = utcnow()
        return record

    def _episode_record(self, show_name: str, season: int, episode: int, show_id: int, unified) -> EpisodeMetadata:
        record = self.store.get_episode(show_name, season, episode)
        if record is None:
            record = EpisodeMetadata(
                show_name=show_name,
                season_number=season,
                episode_number=episode,
                catalog_id=unified.id,
                show_catalog_id=show_id,
                display_name=unified.name,
            )
            self.store.insert(record)
        return record

    async def _sync_episode(
        self, show: Show, file: VideoFile, show_identity: UnifiedShow, source: MediaSource, result: SyncResult
    ) -> None:
        season, episode = file.episode_info
        existing = file.metadata
        if existing is not None and not self.policy.episode_needs_work(existing):
            return

        try:
            # Vignette manquante mais chemin connu: simple re-téléchargement
            if existing is not None and not existing.still_data and existing.still_path:
                data = await self._download(existing.still_path, source, f"still for {file.name}")
                if data:
                    existing.still_data = data
                    result.episodes_updated += 1
                    return

            unified = await self.resolver.get_episode(show_identity.id, season, episode, source)
            if unified is None:
                logger.warning(f"No data for {show.name} S{season}E{episode}")
                return

            record = existing or self._episode_record(
                file.show_name or show.name, season, episode, show_identity.id, unified
            )
            record.catalog_id = unified.id
            record.show_catalog_id = show_identity.id
            record.display_name = unified.name
            record.overview = unified.overview
            record.still_path = unified.still_path
            record.air_date = unified.air_date
            record.last_updated = utcnow()
            file.metadata = record

            if unified.still_path and not record.still_data:
                data = await self._download(unified.still_path, source, f"still for {file.name}")
                if data:
                    record.still_data = data
                else:
                    await self._generate_still(file, record, result)
            elif not record.still_data:
                logger.info(f"No remote thumbnail for {file.name}")
                await self._generate_still(file, record, result)
            result.episodes_updated += 1

        except (CatalogError, httpx.HTTPError) as e:
            logger.warning(f"Failed to fetch episode S{season}E{episode} of {show.name}: {e}")
            if existing is not None and not existing.still_data:
                await self._generate_still(file, existing, result)

    # Movies

    async def sync_movie(self, movie: Movie, result: SyncResult) -> None:
        if self.policy.movie_is_fresh(movie.metadata):
            logger.debug(f"Skipping {movie.name}, metadata current")
            result.movies_skipped += 1
            return

        title = clean_movie_title(movie.name)
        match = await self.resolver.search_movie_with_source(title)
        if not match:
            logger.warning(f"No results for {title}")
            result.movies_unmatched.append(movie.name)
            return
        unified, source = match
        logger.info(f"Found match for {movie.name}: {unified.title} (id {unified.id}, {source.display_name})")

        record = movie.metadata or self.store.get_movie(movie.name)
        poster_changed = False
        if record is None:
            record = MovieMetadata(file_name=movie.name, catalog_id=unified.id, display_name=unified.title)
            self.store.insert(record)
        else:
            poster_changed = record.poster_path != unified.poster_path
        self._apply_movie(record, unified, source)
        movie.metadata = record

        if unified.poster_path and (not record.poster_data or poster_changed):
            data = await self._download(unified.poster_path, source, f"poster for {movie.name}")
            if data:
                record.poster_data = data

        self._save(f"movie '{movie.name}'", result)
        result.movies_processed += 1

    @staticmethod
    def _apply_movie(record: MovieMetadata, unified: UnifiedMovie, source: MediaSource) -> None:
        record.catalog_id = unified.id
        record.source = source.value
        record.display_name = unified.title
        record.overview = unified.overview
        record.poster_path = unified.poster_path
        record.backdrop_path = unified.backdrop_path
        record.release_date = unified.release_date
        record.runtime = unified.runtime
        record.last_updated = utcnow()

    # External videos

    async def sync_external_videos(self, videos: List[ExternalVideo], result: SyncResult) -> None:
        for video in videos:
            try:
                info = parse_episode(video.file_name)
                if info:
                    saved = await self._sync_external_episode(video, info.title, info.season, info.episode, result)
                else:
                    saved = await self._sync_external_movie(video, result)
                if saved:
                    result.external_processed += 1
            except ITEM_ERRORS as e:
                self._item_failed(f"external video '{video.file_name}'", e, result)

    async def _sync_external_episode(
        self, video: ExternalVideo, title: str, season: int, episode: int, result: SyncResult
    ) -> bool:
        match = await self.resolver.search_show_with_source(title)
        if not match:
            logger.warning(f"No results for {title}")
            result.shows_unmatched.append(video.file_name)
            return False
        unified, source = match

        video.show_name = title
        video.season_number = season
        video.episode_number = episode
        video.movie_catalog_id = None

        # Créé uniquement si absent
        if self.store.get_show(title) is None:
            record = ShowMetadata(show_name=title, catalog_id=unified.id, display_name=unified.name)
            self._upsert_show(title, record, unified, source)
            self.store.insert(record)
            if unified.poster_path:
                record.poster_data = await self._download(unified.poster_path, source, f"poster for {title}")

        unified_episode = await self.resolver.get_episode(unified.id, season, episode, source)
        if unified_episode is None:
            logger.warning(f"No data for {title} S{season}E{episode}")
            return self._save(f"external video '{video.file_name}'", result)

        record = self._episode_record(title, season, episode, unified.id, unified_episode)
        record.display_name = unified_episode.name
        record.overview = unified_episode.overview
        record.still_path = unified_episode.still_path
        record.air_date = unified_episode.air_date
        record.last_updated = utcnow()
        if unified_episode.still_path and not record.still_data:
            record.still_data = await self._download(unified_episode.still_path, source, f"still for {video.file_name}")

        return self._save(f"external video '{video.file_name}'", result)

    async def _sync_external_movie(self, video: ExternalVideo, result: SyncResult) -> bool:
        title = clean_movie_title(video.file_name)
        match = await self.resolver.search_movie_with_source(title)
        if not match:
            logger.warning(f"No results for {title}")
            result.movies_unmatched.append(video.file_name)
            return False
        unified, source = match
        video.movie_catalog_id = unified.id

        if self.store.get_movie_by_catalog_id(unified.id) is None:
            record = MovieMetadata(file_name=video.file_name, catalog_id=unified.id, display_name=unified.title)
            self._apply_movie(record, unified, source)
            self.store.insert(record)
            if unified.poster_path:
                record.poster_data = await self._download(unified.poster_path, source, f"poster for {video.file_name}")

        return self._save(f"external video '{video.file_name}'", result)

    # Manual re-match

    async def rematch_show(self, show: Show, unified: UnifiedShow, source: MediaSource) -> SyncResult:
        """Applique le choix de l'utilisateur et recharge tous les épisodes depuis ``source``."""
        result = SyncResult()
        record = self._upsert_show(show.name, show.metadata, unified, source)
        show.metadata = record
        if not unified.poster_path:
            record.poster_data = None
        else:
            data = await self._download(unified.poster_path, source, f"poster for {show.name}")
            if data:
                record.poster_data = data

        for file in show.files:
            if not file.episode_info:
                continue
            season, episode = file.episode_info
            try:
                unified_episode = await self.resolver.get_episode(unified.id, season, episode, source)
            except (CatalogError, httpx.HTTPError) as e:
                logger.warning(f"Failed to update episode S{season}E{episode} of {show.name}: {e}")
                result.errors.append(f"{file.name}: {e}")
                continue
            if unified_episode is None:
                logger.warning(f"No data for {show.name} S{season}E{episode}")
                continue

            record_episode = file.metadata or self._episode_record(
                file.show_name or show.name, season, episode, unified.id, unified_episode
            )
            record_episode.catalog_id = unified_episode.id
            record_episode.show_catalog_id = unified.id
            record_episode.display_name = unified_episode.name
            record_episode.overview = unified_episode.overview
            record_episode.still_path = unified_episode.still_path
            record_episode.air_date = unified_episode.air_date
            record_episode.last_updated = utcnow()
            record_episode.still_data = None
            file.metadata = record_episode

            data = None
            if unified_episode.still_path:
                data = await self._download(unified_episode.still_path, source, f"still for {file.name}")
            if data:
                record_episode.still_data = data
            else:
                await self._generate_still(file, record_episode, result)
            result.episodes_updated += 1

        self._save(f"show '{show.name}'", result)
        result.shows_processed = 1
        return result

    async def rematch_movie(self, movie: Movie, unified: UnifiedMovie, source: MediaSource) -> SyncResult:
        result = SyncResult()
        record = movie.metadata or self.store.get_movie(movie.name)
        if record is None:
            record = MovieMetadata(file_name=movie.name, catalog_id=unified.id, display_name=unified.title)
            self.store.insert(record)
        self._apply_movie(record, unified, source)
        movie.metadata = record

        record.poster_data = None
        if unified.poster_path:
            record.poster_data = await self._download(unified.poster_path, source, f"poster for {movie.name}")

        self._save(f"movie '{movie.name}'", result)
        result.movies_processed = 1
        return result
