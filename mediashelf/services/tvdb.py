"""TheTVDB v4 API client (catalogue secondaire)."""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import httpx

from mediashelf.config import Config
from mediashelf.core.models import UnifiedShow, UnifiedEpisode, UnifiedMovie
from mediashelf.services.errors import (
    CatalogDecodeError, CatalogNotConfiguredError, coerce_catalog_id, decode_catalog_id,
    require_field
)
from mediashelf.utils.http_client import RobustHTTPClient

logger = logging.getLogger(__name__)

SERVICE_NAME = "tvdb"


class BearerTokenCache:
    """Jeton TheTVDB en mémoire, protégé par un verrou.

    The login endpoint does not return an expiry; validity is assumed
    (24h by default).
    """

    def __init__(self, validity: timedelta = timedelta(hours=24), clock: Callable[[], datetime] = datetime.now):
        self.validity = validity
        self.clock = clock
        self.token: Optional[str] = None
        self.expires_at: Optional[datetime] = None
        self.lock = asyncio.Lock()

    def is_valid(self) -> bool:
        return self.token is not None and self.expires_at is not None and self.expires_at > self.clock()

    def store(self, token: str) -> None:
        self.token = token
        self.expires_at = self.clock() + self.validity

    def invalidate(self) -> None:
        self.token = None
        self.expires_at = None


class TVDbService:
    """Service pour interagir avec TheTVDB (authentification par jeton)."""

    def __init__(
        self,
        api_key: str,
        pin: Optional[str] = None,
        base_url: str = "https://api4.thetvdb.com/v4",
        image_base_url: str = "https://artworks.thetvdb.com",
        token_validity_hours: int = 24,
        http_client: Optional[RobustHTTPClient] = None,
        token_cache: Optional[BearerTokenCache] = None,
    ):
        if not api_key:
            raise CatalogNotConfiguredError("TheTVDB API key is missing")
        self.api_key = api_key
        self.pin = pin
        self.base_url = base_url.rstrip("/")
        self.image_base_url = image_base_url.rstrip("/")
        self.http = http_client or RobustHTTPClient()
        self.tokens = token_cache or BearerTokenCache(timedelta(hours=token_validity_hours))

    @classmethod
    def from_config(cls, config: Config, http_client: Optional[RobustHTTPClient] = None) -> "TVDbService":
        if not config.tvdb:
            raise CatalogNotConfiguredError("TheTVDB configuration not found")
        return cls(
            api_key=config.tvdb.api_key,
            pin=config.tvdb.pin,
            base_url=config.tvdb.base_url,
            image_base_url=config.tvdb.image_base_url,
            token_validity_hours=config.tvdb.token_validity_hours,
            http_client=http_client,
        )

    async def _authenticate(self) -> str:
        """Récupère un jeton si absent ou expiré."""
        async with self.tokens.lock:
            if self.tokens.is_valid():
                return self.tokens.token

            body = {"apikey": self.api_key}
            if self.pin:
                body["pin"] = self.pin
            response = await self.http.post_async(
                f"{self.base_url}/login",
                service_name=SERVICE_NAME,
                json=body,
            )
            try:
                token = response.json()["data"]["token"]
            except (ValueError, KeyError, TypeError) as e:
                raise CatalogDecodeError(f"TheTVDB login response has no token: {e}")
            if not isinstance(token, str) or not token:
                raise CatalogDecodeError("TheTVDB login returned an empty token")

            self.tokens.store(token)
            logger.info("TheTVDB token refreshed")
            return token

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET authentifié; un 401 invalide le jeton et rejoue une fois."""
        for attempt in range(2):
            token = await self._authenticate()
            try:
                response = await self.http.get_async(
                    f"{self.base_url}{path}",
                    service_name=SERVICE_NAME,
                    headers={"Authorization": f"Bearer {token}"},
                    params=params,
                )
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 401 and attempt == 0:
                    logger.info("TheTVDB token rejected, logging in again")
                    self.tokens.invalidate()
                    continue
                raise
            try:
                data = response.json()
            except ValueError as e:
                raise CatalogDecodeError(f"TheTVDB returned invalid JSON for {path}: {e}")
            if not isinstance(data, dict):
                raise CatalogDecodeError(f"TheTVDB returned unexpected payload for {path}")
            return data
        raise CatalogDecodeError(f"TheTVDB rejected authentication for {path}")

    # Normalisation

    @staticmethod
    def to_show(item: Dict[str, Any]) -> UnifiedShow:
        # tvdb_id (int ou str) d'abord, sinon objectID "series-440284"
        return UnifiedShow(
            id=decode_catalog_id(item, "tvdb_id", "objectID", "id"),
            name=require_field(item, "name"),
            overview=item.get("overview"),
            poster_path=item.get("image_url") or item.get("image"),
            backdrop_path=item.get("backdrop"),
            first_air_date=item.get("first_air_time") or item.get("firstAired") or None,
        )

    @staticmethod
    def to_episode(item: Dict[str, Any]) -> UnifiedEpisode:
        return UnifiedEpisode(
            id=decode_catalog_id(item, "id"),
            name=item.get("name") or f"Episode {item.get('number', '?')}",
            overview=item.get("overview"),
            still_path=item.get("image"),
            air_date=item.get("aired") or None,
        )

    # Capacités

    async def search_show(self, name: str) -> Optional[UnifiedShow]:
        shows = await self.search_shows(name, limit=1)
        return shows[0] if shows else None

    async def search_shows(self, name: str, limit: int = 10) -> List[UnifiedShow]:
        data = await self._get_json("/search", params={"query": name, "type": "series"})
        items = data.get("data") or []
        if not isinstance(items, list):
            raise CatalogDecodeError("TheTVDB 'data' is not a list")
        return [self.to_show(item) for item in items[:limit]]

    async def search_movie(self, title: str) -> Optional[UnifiedMovie]:
        """Non supporté: jamais de substitution par un autre résultat."""
        return None

    async def search_movies(self, title: str, limit: int = 10) -> List[UnifiedMovie]:
        return []

    async def get_episode(self, show_id: int, season: int, episode: int) -> Optional[UnifiedEpisode]:
        """Cherche l'épisode dans la liste de la saison."""
        data = await self._get_json(
            f"/series/{show_id}/episodes/default",
            params={"season": season},
        )
        try:
            episodes = data["data"]["episodes"] or []
        except (KeyError, TypeError) as e:
            raise CatalogDecodeError(f"TheTVDB episodes payload is malformed: {e}")

        for item in episodes:
            if coerce_catalog_id(item.get("number")) != episode:
                continue
            item_season = coerce_catalog_id(item.get("seasonNumber"))
            if item_season is not None and item_season != season:
                continue
            return self.to_episode(item)
        return None

    def image_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.image_base_url}{path}"

    async def download_image(self, path: str) -> bytes:
        response = await self.http.get_async(self.image_url(path), service_name=SERVICE_NAME)
        return response.content

    async def ping(self) -> bool:
        await self._authenticate()
        return True
