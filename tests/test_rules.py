"""Tests for the cache staleness policy"""
from datetime import datetime, timedelta

from mediashelf.core.rules import StalenessPolicy
from mediashelf.db.models import EpisodeMetadata, MovieMetadata, ShowMetadata

NOW = datetime(2024, 6, 1, 12, 0, 0)


def policy() -> StalenessPolicy:
    return StalenessPolicy(refresh_days=7, clock=lambda: NOW)


def show(days_old: float) -> ShowMetadata:
    return ShowMetadata(show_name="X", catalog_id=1, display_name="X", last_updated=NOW - timedelta(days=days_old))


class TestIsStale:
    def test_eight_days_is_stale(self):
        assert policy().is_stale(show(8))

    def test_six_days_is_fresh(self):
        assert not policy().is_stale(show(6))

    def test_absent_is_stale(self):
        assert policy().is_stale(None)

    def test_window_boundary_is_stale(self):
        assert policy().is_stale(show(7))


class TestEpisodeWork:
    def episode(self, days_old, still):
        return EpisodeMetadata(
            show_name="X", season_number=1, episode_number=1, catalog_id=1, show_catalog_id=1,
            display_name="E", still_data=still, last_updated=NOW - timedelta(days=days_old),
        )

    def test_fresh_with_still_needs_nothing(self):
        assert not policy().episode_needs_work(self.episode(1, b"img"))

    def test_fresh_without_still_needs_work(self):
        assert policy().episode_needs_work(self.episode(1, None))

    def test_show_work_driven_by_episodes(self):
        """A fresh show still needs work when an episode lacks its image"""
        assert policy().show_needs_work(show(1), [self.episode(1, None)])
        assert not policy().show_needs_work(show(1), [self.episode(1, b"img")])


class TestMovieFreshness:
    def movie(self, days_old, poster):
        return MovieMetadata(
            file_name="a.mp4", catalog_id=1, display_name="A", poster_data=poster,
            last_updated=NOW - timedelta(days=days_old),
        )

    def test_fresh_requires_poster(self):
        assert policy().movie_is_fresh(self.movie(1, b"p"))
        assert not policy().movie_is_fresh(self.movie(1, None))

    def test_stale_movie(self):
        assert not policy().movie_is_fresh(self.movie(10, b"p"))
        assert not policy().movie_is_fresh(None)
