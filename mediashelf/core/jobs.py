"""Opérations de bibliothèque déclenchées explicitement, protégées par un drapeau occupé."""
import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from mediashelf.config import Config
from mediashelf.core.executor import Executor
from mediashelf.core.models import (
    DeleteResult, Inventory, JobBusyError, MediaSource, SortResult, SyncResult, UnifiedMovie,
    UnifiedShow, utcnow
)
from mediashelf.core.resolver import MetadataResolver
from mediashelf.core.rules import StalenessPolicy
from mediashelf.core.scanner import LibraryScanner
from mediashelf.core.sorter import LibrarySorter
from mediashelf.core.synchronizer import MetadataSynchronizer
from mediashelf.core.thumbnails import ThumbnailGenerator
from mediashelf.db.database import get_db_sync
from mediashelf.db.models import ExternalVideo
from mediashelf.db.store import MetadataStore

logger = logging.getLogger(__name__)


class UnknownItemError(LookupError):
    """No show/movie with that name in the current library."""


def default_store_factory() -> MetadataStore:
    return MetadataStore(get_db_sync())


class LibraryJobs:
    """Scan, tri, synchronisation et maintenance, une opération à la fois.

    A call made while another operation runs is rejected with
    ``JobBusyError``, never queued. Runs are not cancellable.
    """

    def __init__(
        self,
        scanner: LibraryScanner,
        sorter: LibrarySorter,
        resolver: MetadataResolver,
        policy: Optional[StalenessPolicy] = None,
        thumbnailer: Optional[ThumbnailGenerator] = None,
        store_factory: Callable[[], MetadataStore] = default_store_factory,
    ):
        self.scanner = scanner
        self.sorter = sorter
        self.resolver = resolver
        self.policy = policy or StalenessPolicy()
        self.thumbnailer = thumbnailer or ThumbnailGenerator()
        self.store_factory = store_factory

        self.busy_with: Optional[str] = None
        self.last_error: Optional[str] = None
        self.last_sort_result: Optional[SortResult] = None
        self.last_sync_result: Optional[SyncResult] = None
        self.last_sync_finished: Optional[datetime] = None
        self.inventory: Optional[Inventory] = None
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, config: Config, resolver: Optional[MetadataResolver] = None) -> "LibraryJobs":
        return cls(
            scanner=LibraryScanner.from_config(config),
            sorter=LibrarySorter.from_config(config),
            resolver=resolver or MetadataResolver.from_config(config),
            policy=StalenessPolicy.from_config(config),
            thumbnailer=ThumbnailGenerator.from_config(config),
        )

    @property
    def is_busy(self) -> bool:
        return self.busy_with is not None

    @property
    def root(self) -> Path:
        return self.scanner.root

    def _begin(self, operation: str) -> None:
        if self.busy_with is not None:
            raise JobBusyError(f"Cannot start {operation} while {self.busy_with} is running")
        self.busy_with = operation
        self.last_error = None
        logger.info(f"Starting {operation}")

    def _end(self) -> None:
        logger.info(f"Finished {self.busy_with}")
        self.busy_with = None

    def _failed(self, operation: str, error: Exception) -> None:
        self.last_error = f"{operation}: {error}"
        logger.error(f"{operation} failed: {error}")

    def _synchronizer(self, store: MetadataStore) -> MetadataSynchronizer:
        return MetadataSynchronizer(self.resolver, store, self.policy, self.thumbnailer)

    def _rescan(self, store: MetadataStore) -> Inventory:
        self.inventory = self.scanner.scan(store)
        return self.inventory

    def _scan_now(self) -> Inventory:
        with self.store_factory() as store:
            return self._rescan(store)

    # Scan / sort

    async def scan(self) -> Inventory:
        self._begin("scan")
        try:
            return await asyncio.to_thread(self._scan_now)
        except Exception as e:
            self._failed("scan", e)
            raise
        finally:
            self._end()

    async def sort(self) -> SortResult:
        """Trie puis rescanne la bibliothèque."""
        self._begin("sort")
        try:
            result = await asyncio.to_thread(self.sorter.sort)
            self.last_sort_result = result
            await asyncio.to_thread(self._scan_now)
            return result
        except Exception as e:
            self._failed("sort", e)
            raise
        finally:
            self._end()

    # Sync

    async def _run_sync(self) -> SyncResult:
        try:
            with self.store_factory() as store:
                inventory = await asyncio.to_thread(self._rescan, store)
                result = await self._synchronizer(store).sync(inventory, store.all_external_videos())
                await asyncio.to_thread(self._rescan, store)
            self.last_sync_result = result
            self.last_sync_finished = utcnow()
            return result
        except Exception as e:
            self._failed("sync", e)
            raise
        finally:
            self._end()

    async def sync(self) -> SyncResult:
        """Synchronisation complète, attendue jusqu'au bout."""
        self._begin("sync")
        return await self._run_sync()

    def start_sync(self) -> asyncio.Task:
        """Lance la synchronisation en tâche de fond (rejet immédiat si occupé)."""
        self._begin("sync")
        self._task = asyncio.create_task(self._run_sync())
        self._task.add_done_callback(self._sync_done)
        return self._task

    @staticmethod
    def _sync_done(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background sync ended with an error: {task.exception()}")

    def clear_all_metadata(self) -> Dict[str, int]:
        self._begin("clear metadata")
        try:
            with self.store_factory() as store:
                counts = store.clear_all()
                if not store.save():
                    raise RuntimeError("could not save metadata cache")
                if self.inventory is not None:
                    self._rescan(store)
            logger.info(
                f"Cleared metadata: {counts['shows']} shows, {counts['episodes']} episodes, {counts['movies']} movies"
            )
            return counts
        except Exception as e:
            self._failed("clear metadata", e)
            raise
        finally:
            self._end()

    # Manual re-match

    async def rematch_show(self, name: str, unified: UnifiedShow, source: MediaSource) -> SyncResult:
        self._begin("re-match")
        try:
            with self.store_factory() as store:
                inventory = self._rescan(store)
                show = inventory.find_show(name)
                if show is None:
                    raise UnknownItemError(f"Show not found: {name}")
                result = await self._synchronizer(store).rematch_show(show, unified, source)
                self._rescan(store)
            return result
        finally:
            self._end()

    async def rematch_movie(self, file_name: str, unified: UnifiedMovie, source: MediaSource) -> SyncResult:
        self._begin("re-match")
        try:
            with self.store_factory() as store:
                inventory = self._rescan(store)
                movie = inventory.find_movie(file_name)
                if movie is None:
                    raise UnknownItemError(f"Movie not found: {file_name}")
                result = await self._synchronizer(store).rematch_movie(movie, unified, source)
                self._rescan(store)
            return result
        finally:
            self._end()

    # Deletion

    def delete_show_files(self, name: str) -> DeleteResult:
        self._begin("delete")
        try:
            with self.store_factory() as store:
                show = self._rescan(store).find_show(name)
                if show is None:
                    raise UnknownItemError(f"Show not found: {name}")
                result = Executor(store, self.root).delete_show_files(show)
                self._rescan(store)
            return result
        finally:
            self._end()

    def delete_movies(self) -> DeleteResult:
        self._begin("delete")
        try:
            with self.store_factory() as store:
                movies = self._rescan(store).movies
                result = Executor(store, self.root).delete_movies(movies)
                self._rescan(store)
            return result
        finally:
            self._end()

    # External videos

    def external_videos(self) -> List[ExternalVideo]:
        with self.store_factory() as store:
            return store.all_external_videos()

    def register_external_video(self, path: Path) -> ExternalVideo:
        """Ajoute (ou met à jour) une référence par nom de fichier."""
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Video not found: {path}")
        self._begin("register")
        try:
            with self.store_factory() as store:
                record = store.get_external_video(path.name)
                if record is None:
                    record = ExternalVideo(file_name=path.name, path=str(path), date_added=utcnow())
                    store.insert(record)
                else:
                    record.path = str(path)
                if not store.save():
                    raise RuntimeError("could not save external video")
                return record
        finally:
            self._end()

    def delete_external_videos(self) -> DeleteResult:
        self._begin("delete")
        try:
            with self.store_factory() as store:
                return Executor(store, self.root).delete_external_videos(store.all_external_videos())
        finally:
            self._end()


# Global jobs instance (initialized in main.py)
jobs: Optional[LibraryJobs] = None


def get_jobs() -> LibraryJobs:
    if jobs is None:
        raise RuntimeError("Library jobs not initialized. Call init_jobs() first.")
    return jobs


def init_jobs(config: Config, resolver: Optional[MetadataResolver] = None) -> LibraryJobs:
    global jobs
    jobs = LibraryJobs.from_config(config, resolver)
    return jobs


def set_jobs(new_jobs: Optional[LibraryJobs]) -> Optional[LibraryJobs]:
    global jobs
    jobs = new_jobs
    return jobs
