"""Tests for the TMDb and TheTVDB clients (HTTP mocked with httpx.MockTransport)"""
import asyncio
from datetime import datetime, timedelta

import httpx
import pytest

from mediashelf.services.errors import (
    CatalogDecodeError, CatalogNotConfiguredError, coerce_catalog_id, decode_catalog_id
)
from mediashelf.services.tmdb import TMDbService
from mediashelf.services.tvdb import BearerTokenCache, TVDbService
from mediashelf.utils.http_client import RobustHTTPClient


def client_for(handler) -> RobustHTTPClient:
    return RobustHTTPClient(max_retries=0, transport=httpx.MockTransport(handler))


class TestIdDecoding:
    """Heterogeneous identifier encodings normalise to int"""

    @pytest.mark.parametrize("value,expected", [
        (1396, 1396),
        ("1396", 1396),
        (" 81189 ", 81189),
        ("series-440284", 440284),
    ])
    def test_accepted_encodings(self, value, expected):
        assert coerce_catalog_id(value) == expected

    @pytest.mark.parametrize("value", [None, "", "abc", True, 3.5, "v2"])
    def test_rejected_encodings(self, value):
        assert coerce_catalog_id(value) is None

    def test_first_usable_key_wins(self):
        assert decode_catalog_id({"tvdb_id": None, "objectID": "series-7"}, "tvdb_id", "objectID") == 7

    def test_missing_id_is_decode_error(self):
        """Never a silent zero"""
        with pytest.raises(CatalogDecodeError):
            decode_catalog_id({"name": "X"}, "id")


class TestTMDbService:
    """Key-authenticated catalog"""

    def test_requires_api_key(self):
        with pytest.raises(CatalogNotConfiguredError):
            TMDbService(api_key="")

    def test_api_key_sent_with_every_request(self):
        seen = []

        def handler(request):
            seen.append(request.url.params.get("api_key"))
            return httpx.Response(200, json={"results": [{"id": 1396, "name": "Breaking Bad"}]})

        service = TMDbService(api_key="secret", http_client=client_for(handler))
        show = asyncio.run(service.search_show("Breaking Bad"))

        assert show.id == 1396
        assert show.name == "Breaking Bad"
        assert seen == ["secret"]

    def test_movie_search_fetches_details_for_runtime(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            if request.url.path.endswith("/search/movie"):
                return httpx.Response(200, json={"results": [{"id": "348", "title": "Alien"}]})
            return httpx.Response(200, json={
                "id": 348, "title": "Alien", "runtime": 117,
                "poster_path": "/alien.jpg", "release_date": "1979-05-25",
            })

        service = TMDbService(api_key="k", http_client=client_for(handler))
        movie = asyncio.run(service.search_movie("Alien"))

        assert movie.id == 348
        assert movie.runtime == 117
        assert movie.poster_path == "/alien.jpg"
        assert paths == ["/3/search/movie", "/3/movie/348"]

    def test_movie_search_without_results(self):
        service = TMDbService(api_key="k", http_client=client_for(
            lambda request: httpx.Response(200, json={"results": []})
        ))
        assert asyncio.run(service.search_movie("Nothing")) is None

    def test_unknown_episode_is_none(self):
        service = TMDbService(api_key="k", http_client=client_for(
            lambda request: httpx.Response(404, json={"status_message": "not found"})
        ))
        assert asyncio.run(service.get_episode(1, 9, 99)) is None

    def test_show_without_id_is_decode_error(self):
        service = TMDbService(api_key="k", http_client=client_for(
            lambda request: httpx.Response(200, json={"results": [{"name": "No id"}]})
        ))
        with pytest.raises(CatalogDecodeError):
            asyncio.run(service.search_shows("No id"))

    def test_relative_image_path_uses_image_base(self):
        urls = []

        def handler(request):
            urls.append(str(request.url))
            return httpx.Response(200, content=b"jpeg")

        service = TMDbService(api_key="k", http_client=client_for(handler))
        data = asyncio.run(service.download_image("/poster.jpg"))

        assert data == b"jpeg"
        assert urls == ["https://image.tmdb.org/t/p/w500/poster.jpg"]


class TestBearerTokenCache:
    def test_expiry(self):
        now = [datetime(2024, 1, 1)]
        cache = BearerTokenCache(timedelta(hours=24), clock=lambda: now[0])
        assert not cache.is_valid()

        cache.store("tok")
        assert cache.is_valid()

        now[0] += timedelta(hours=25)
        assert not cache.is_valid()


class TestTVDbService:
    """Token-authenticated catalog"""

    def make_handler(self, log, episodes=None, reject_first=False):
        state = {"rejected": False}

        def handler(request):
            log.append((request.method, request.url.path, request.headers.get("Authorization")))
            if request.url.path.endswith("/login"):
                return httpx.Response(200, json={"data": {"token": f"tok{len(log)}"}})
            if reject_first and not state["rejected"]:
                state["rejected"] = True
                return httpx.Response(401, json={"message": "expired"})
            if request.url.path.endswith("/search"):
                return httpx.Response(200, json={"data": [
                    {"objectID": "series-81189", "name": "Breaking Bad", "image_url": "https://artworks/bb.jpg",
                     "first_air_time": "2008-01-20"},
                ]})
            return httpx.Response(200, json={"data": {"episodes": episodes or []}})

        return handler

    def test_token_acquired_once_and_reused(self):
        log = []
        service = TVDbService(api_key="k", http_client=client_for(self.make_handler(log)))

        async def run():
            await service.search_shows("Breaking Bad")
            return await service.search_shows("Breaking Bad")

        shows = asyncio.run(run())

        assert shows[0].id == 81189
        assert shows[0].first_air_date == "2008-01-20"
        logins = [entry for entry in log if entry[1].endswith("/login")]
        assert len(logins) == 1
        assert log[1][2] == "Bearer tok1"

    def test_expired_token_refreshed(self):
        now = [datetime(2024, 1, 1)]
        log = []
        cache = BearerTokenCache(timedelta(hours=24), clock=lambda: now[0])
        service = TVDbService(api_key="k", http_client=client_for(self.make_handler(log)), token_cache=cache)

        asyncio.run(service.search_shows("X"))
        now[0] += timedelta(hours=30)
        asyncio.run(service.search_shows("X"))

        assert len([entry for entry in log if entry[1].endswith("/login")]) == 2

    def test_rejected_token_triggers_one_relogin(self):
        log = []
        service = TVDbService(api_key="k", http_client=client_for(self.make_handler(log, reject_first=True)))

        shows = asyncio.run(service.search_shows("Breaking Bad"))

        assert shows[0].name == "Breaking Bad"
        assert len([entry for entry in log if entry[1].endswith("/login")]) == 2

    def test_movie_search_unsupported(self):
        """No request, no substitution"""
        log = []
        service = TVDbService(api_key="k", http_client=client_for(self.make_handler(log)))

        assert asyncio.run(service.search_movie("Alien")) is None
        assert asyncio.run(service.search_movies("Alien")) == []
        assert log == []

    def test_episode_picked_from_season_list(self):
        log = []
        episodes = [
            {"id": 1, "number": 1, "seasonNumber": 2, "name": "One"},
            {"id": "349232", "number": "5", "seasonNumber": 2, "name": "Five", "image": "/still.jpg",
             "aired": "2009-04-12"},
        ]
        service = TVDbService(api_key="k", http_client=client_for(self.make_handler(log, episodes)))

        episode = asyncio.run(service.get_episode(81189, 2, 5))

        assert episode.id == 349232
        assert episode.name == "Five"
        assert episode.still_path == "/still.jpg"
        assert asyncio.run(service.get_episode(81189, 2, 9)) is None

    def test_relative_image_path_uses_artworks_host(self):
        service = TVDbService(api_key="k")
        assert service.image_url("/banners/x.jpg") == "https://artworks.thetvdb.com/banners/x.jpg"
        assert service.image_url("https://cdn/x.jpg") == "https://cdn/x.jpg"
