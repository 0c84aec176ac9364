"""TheMovieDB API client (catalogue principal)."""
import logging
from typing import Any, Dict, List, Optional

import httpx

from mediashelf.config import Config
from mediashelf.core.models import UnifiedShow, UnifiedEpisode, UnifiedMovie
from mediashelf.services.errors import (
    CatalogDecodeError, CatalogNotConfiguredError, decode_catalog_id, require_field
)
from mediashelf.utils.http_client import RobustHTTPClient

logger = logging.getLogger(__name__)

SERVICE_NAME = "tmdb"


class TMDbService:
    """Service pour interagir avec TheMovieDB (clé API dans chaque requête)."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.themoviedb.org/3",
        image_base_url: str = "https://image.tmdb.org/t/p/w500",
        http_client: Optional[RobustHTTPClient] = None,
    ):
        if not api_key:
            raise CatalogNotConfiguredError("TMDb API key is missing")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.image_base_url = image_base_url.rstrip("/")
        self.http = http_client or RobustHTTPClient()

    @classmethod
    def from_config(cls, config: Config, http_client: Optional[RobustHTTPClient] = None) -> "TMDbService":
        if not config.tmdb:
            raise CatalogNotConfiguredError("TMDb configuration not found")
        return cls(
            api_key=config.tmdb.api_key,
            base_url=config.tmdb.base_url,
            image_base_url=config.tmdb.image_base_url,
            http_client=http_client,
        )

    def _get_params(self, **extra: Any) -> Dict[str, Any]:
        """Get base API parameters."""
        params = {"api_key": self.api_key}
        params.update(extra)
        return params

    async def _get_json(self, path: str, **params: Any) -> Dict[str, Any]:
        response = await self.http.get_async(
            f"{self.base_url}{path}",
            service_name=SERVICE_NAME,
            params=self._get_params(**params),
        )
        try:
            data = response.json()
        except ValueError as e:
            raise CatalogDecodeError(f"TMDb returned invalid JSON for {path}: {e}")
        if not isinstance(data, dict):
            raise CatalogDecodeError(f"TMDb returned unexpected payload for {path}")
        return data

    @staticmethod
    def _results(data: Dict[str, Any]) -> List[Dict[str, Any]]:
        results = data.get("results") or []
        if not isinstance(results, list):
            raise CatalogDecodeError("TMDb 'results' is not a list")
        return results

    # Normalisation

    @staticmethod
    def to_show(item: Dict[str, Any]) -> UnifiedShow:
        return UnifiedShow(
            id=decode_catalog_id(item, "id"),
            name=require_field(item, "name"),
            overview=item.get("overview"),
            poster_path=item.get("poster_path"),
            backdrop_path=item.get("backdrop_path"),
            first_air_date=item.get("first_air_date") or None,
        )

    @staticmethod
    def to_movie(item: Dict[str, Any]) -> UnifiedMovie:
        runtime = item.get("runtime")
        return UnifiedMovie(
            id=decode_catalog_id(item, "id"),
            title=require_field(item, "title"),
            overview=item.get("overview"),
            poster_path=item.get("poster_path"),
            backdrop_path=item.get("backdrop_path"),
            release_date=item.get("release_date") or None,
            runtime=runtime if isinstance(runtime, int) else None,
        )

    @staticmethod
    def to_episode(item: Dict[str, Any]) -> UnifiedEpisode:
        return UnifiedEpisode(
            id=decode_catalog_id(item, "id"),
            name=require_field(item, "name"),
            overview=item.get("overview"),
            still_path=item.get("still_path"),
            air_date=item.get("air_date") or None,
        )

    # Capacités

    async def search_show(self, name: str) -> Optional[UnifiedShow]:
        """Recherche une série et retourne le premier résultat."""
        shows = await self.search_shows(name, limit=1)
        return shows[0] if shows else None

    async def search_shows(self, name: str, limit: int = 10) -> List[UnifiedShow]:
        """Recherche des séries (plusieurs résultats)."""
        data = await self._get_json("/search/tv", query=name)
        return [self.to_show(item) for item in self._results(data)[:limit]]

    async def search_movie(self, title: str) -> Optional[UnifiedMovie]:
        """Recherche un film; le détail est rechargé car la recherche omet le runtime."""
        data = await self._get_json("/search/movie", query=title)
        results = self._results(data)
        if not results:
            return None
        movie_id = decode_catalog_id(results[0], "id")
        return await self.get_movie_details(movie_id)

    async def search_movies(self, title: str, limit: int = 10) -> List[UnifiedMovie]:
        """Recherche des films, détail complet pour chaque résultat."""
        data = await self._get_json("/search/movie", query=title)
        movies = []
        for item in self._results(data)[:limit]:
            try:
                movie = await self.get_movie_details(decode_catalog_id(item, "id"))
            except (httpx.HTTPError, CatalogDecodeError) as e:
                logger.warning(f"Skipping TMDb movie result for '{title}': {e}")
                continue
            if movie:
                movies.append(movie)
        return movies

    async def get_movie_details(self, movie_id: int) -> Optional[UnifiedMovie]:
        data = await self._get_json(f"/movie/{movie_id}")
        return self.to_movie(data)

    async def get_episode(self, show_id: int, season: int, episode: int) -> Optional[UnifiedEpisode]:
        """Détail d'un épisode; None si TMDb ne le connaît pas."""
        try:
            data = await self._get_json(f"/tv/{show_id}/season/{season}/episode/{episode}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        return self.to_episode(data)

    def image_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.image_base_url}{path}"

    async def download_image(self, path: str) -> bytes:
        """Télécharge un poster ou une vignette (chemin relatif ou URL)."""
        response = await self.http.get_async(self.image_url(path), service_name=SERVICE_NAME)
        return response.content

    async def ping(self) -> bool:
        """Connectivity check used by diagnostics."""
        await self._get_json("/configuration")
        return True
