"""Shared fixtures: in-memory cache, library trees, fake catalogs."""
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mediashelf.core.models import UnifiedEpisode, UnifiedMovie, UnifiedShow
from mediashelf.db.models import Base
from mediashelf.db.store import MetadataStore
from mediashelf.services.errors import CatalogError


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def store_factory(session_factory):
    return lambda: MetadataStore(session_factory())


@pytest.fixture
def store(store_factory):
    with store_factory() as s:
        yield s


def touch(root: Path, *relative: str) -> List[Path]:
    """Create empty files under ``root``."""
    created = []
    for rel in relative:
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"")
        created.append(path)
    return created


class FakeCatalog:
    """In-memory catalog with the same capabilities as the real clients."""

    def __init__(
        self,
        shows: Optional[Dict[str, List[UnifiedShow]]] = None,
        movies: Optional[Dict[str, UnifiedMovie]] = None,
        episodes: Optional[Dict[tuple, UnifiedEpisode]] = None,
        images: Optional[Dict[str, bytes]] = None,
        supports_movies: bool = True,
        fail: bool = False,
    ):
        self.shows = shows or {}
        self.movies = movies or {}
        self.episodes = episodes or {}
        self.images = images or {}
        self.supports_movies = supports_movies
        self.fail = fail
        self.calls: List[tuple] = []

    def _check(self, *call):
        self.calls.append(call)
        if self.fail:
            raise CatalogError("catalog unavailable")

    async def search_show(self, name):
        shows = await self.search_shows(name, 1)
        return shows[0] if shows else None

    async def search_shows(self, name, limit=10):
        self._check("search_shows", name)
        return list(self.shows.get(name, []))[:limit]

    async def search_movie(self, title):
        self._check("search_movie", title)
        if not self.supports_movies:
            return None
        return self.movies.get(title)

    async def search_movies(self, title, limit=10):
        self._check("search_movies", title)
        if not self.supports_movies:
            return []
        movie = self.movies.get(title)
        return [movie] if movie else []

    async def get_episode(self, show_id, season, episode):
        self._check("get_episode", show_id, season, episode)
        return self.episodes.get((show_id, season, episode))

    async def download_image(self, path):
        self._check("download_image", path)
        if path not in self.images:
            raise CatalogError(f"no image at {path}")
        return self.images[path]

    async def ping(self):
        self._check("ping")
        return True


class FakeThumbnailer:
    def __init__(self, data: Optional[bytes] = b"frame"):
        self.data = data
        self.calls: List[Path] = []

    async def generate(self, path):
        self.calls.append(path)
        return self.data
