"""Résolution d'identité multi-catalogues."""
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx

from mediashelf.config import Config
from mediashelf.core.models import (
    MediaSource, SCAN_ORDER, UnifiedShow, UnifiedEpisode, UnifiedMovie
)
from mediashelf.services.errors import CatalogError, CatalogNotConfiguredError
from mediashelf.utils.http_client import RobustHTTPClient

logger = logging.getLogger(__name__)

# Errors that a multi-source search absorbs as "no match from this catalog"
ABSORBED_ERRORS = (CatalogError, httpx.HTTPError)


class CatalogClient(Protocol):
    async def search_show(self, name: str) -> Optional[UnifiedShow]: ...
    async def search_shows(self, name: str, limit: int = 10) -> List[UnifiedShow]: ...
    async def search_movie(self, title: str) -> Optional[UnifiedMovie]: ...
    async def search_movies(self, title: str, limit: int = 10) -> List[UnifiedMovie]: ...
    async def get_episode(self, show_id: int, season: int, episode: int) -> Optional[UnifiedEpisode]: ...
    async def download_image(self, path: str) -> bytes: ...
    async def ping(self) -> bool: ...


class MetadataResolver:
    """Interroge les catalogues dans l'ordre de priorité fixe.

    Multi-source queries stop at the first non-empty answer and report the
    catalog that produced it; callers carry that source into follow-up calls
    (episodes, images), which are single-source and take it explicitly.
    """

    def __init__(self, clients: Dict[MediaSource, CatalogClient], scan_order: Sequence[MediaSource] = SCAN_ORDER):
        self.clients = clients
        self.scan_order = [source for source in scan_order if source in clients]

    @classmethod
    def from_config(cls, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None) -> "MetadataResolver":
        """Build clients for every configured catalog."""
        from mediashelf.services.tmdb import TMDbService
        from mediashelf.services.tvdb import TVDbService

        def http_client() -> RobustHTTPClient:
            return RobustHTTPClient(
                default_timeout=config.http.timeout,
                max_retries=config.http.max_retries,
                circuit_breaker_threshold=config.http.circuit_breaker_threshold,
                circuit_breaker_timeout=config.http.circuit_breaker_timeout,
                transport=transport,
            )

        clients: Dict[MediaSource, CatalogClient] = {}
        if config.tmdb:
            clients[MediaSource.TMDB] = TMDbService.from_config(config, http_client())
        if config.tvdb:
            clients[MediaSource.TVDB] = TVDbService.from_config(config, http_client())
        if not clients:
            logger.warning("No metadata catalog configured, every search will come back empty")
        return cls(clients)

    @property
    def sources(self) -> List[MediaSource]:
        return list(self.scan_order)

    def client(self, source: MediaSource) -> CatalogClient:
        try:
            return self.clients[source]
        except KeyError:
            raise CatalogNotConfiguredError(f"{source.display_name} is not configured")

    # Shows

    async def search_show(self, name: str, source: Optional[MediaSource] = None) -> Optional[UnifiedShow]:
        """Source explicite: les erreurs remontent. Sinon premier match."""
        if source is not None:
            return await self.client(source).search_show(name)
        match = await self.search_show_with_source(name)
        return match[0] if match else None

    async def search_show_with_source(self, name: str) -> Optional[Tuple[UnifiedShow, MediaSource]]:
        for source in self.scan_order:
            try:
                show = await self.clients[source].search_show(name)
            except ABSORBED_ERRORS as e:
                logger.warning(f"{source.display_name} show search failed for '{name}': {e}")
                continue
            if show:
                return show, source
        return None

    async def search_shows(
        self, name: str, limit: int = 10, source: Optional[MediaSource] = None
    ) -> List[UnifiedShow]:
        """Résultats fusionnés de tous les catalogues, ou d'un seul si ``source``.

        Merged results are deduplicated on (lowercased name, first air date);
        the first catalog to return a key wins.
        """
        if source is not None:
            return await self.client(source).search_shows(name, limit)
        return [show for show, _ in await self.search_shows_with_source(name, limit)]

    async def search_shows_with_source(
        self, name: str, limit: int = 10
    ) -> List[Tuple[UnifiedShow, MediaSource]]:
        """Same merge as ``search_shows`` but keeps each entry's catalog."""
        merged: List[Tuple[UnifiedShow, MediaSource]] = []
        seen = set()
        for current in self.scan_order:
            try:
                results = await self.clients[current].search_shows(name, limit)
            except ABSORBED_ERRORS as e:
                logger.warning(f"{current.display_name} shows search failed for '{name}': {e}")
                continue
            for result in results:
                key = (result.name.lower(), result.first_air_date or "")
                if key in seen:
                    continue
                seen.add(key)
                merged.append((result, current))
                if len(merged) >= limit:
                    return merged
        return merged

    # Movies

    async def search_movie(self, title: str, source: Optional[MediaSource] = None) -> Optional[UnifiedMovie]:
        if source is not None:
            return await self.client(source).search_movie(title)
        match = await self.search_movie_with_source(title)
        return match[0] if match else None

    async def search_movie_with_source(self, title: str) -> Optional[Tuple[UnifiedMovie, MediaSource]]:
        # TheTVDB répond None (non supporté), ce qui compte comme "pas de match"
        for source in self.scan_order:
            try:
                movie = await self.clients[source].search_movie(title)
            except ABSORBED_ERRORS as e:
                logger.warning(f"{source.display_name} movie search failed for '{title}': {e}")
                continue
            if movie:
                return movie, source
        return None

    async def search_movies(self, title: str, limit: int = 10) -> List[UnifiedMovie]:
        """Recherche multiple: uniquement le catalogue principal."""
        if MediaSource.TMDB not in self.clients:
            return []
        return await self.clients[MediaSource.TMDB].search_movies(title, limit)

    # Single-source follow-ups

    async def get_episode(
        self, show_id: int, season: int, episode: int, source: MediaSource
    ) -> Optional[UnifiedEpisode]:
        return await self.client(source).get_episode(show_id, season, episode)

    async def download_image(self, path: str, source: MediaSource) -> bytes:
        return await self.client(source).download_image(path)

    async def diagnostics(self) -> Dict[str, Dict[str, Any]]:
        """Vérifie la connexion à chaque catalogue."""
        results: Dict[str, Dict[str, Any]] = {}
        for source in MediaSource:
            status: Dict[str, Any] = {"configured": source in self.clients, "connected": False, "error": None}
            if source in self.clients:
                try:
                    status["connected"] = await self.clients[source].ping()
                except ABSORBED_ERRORS as e:
                    status["error"] = str(e)
            results[source.display_name] = status
        return results
