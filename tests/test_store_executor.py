"""Tests for the metadata store and deletions"""
from mediashelf.core.executor import Executor, relative_path
from mediashelf.core.scanner import LibraryScanner
from mediashelf.db.models import (
    EpisodeMetadata, ExternalVideo, MovieMetadata, ShowMetadata, VideoProgress
)

from conftest import touch


def episode(show_name, number):
    return EpisodeMetadata(
        show_name=show_name, season_number=1, episode_number=number, catalog_id=number,
        show_catalog_id=1, display_name=f"E{number}",
    )


class TestMetadataStore:
    def test_delete_show_cascades_to_episodes(self, store):
        show = ShowMetadata(show_name="Lost", catalog_id=1, display_name="Lost")
        store.insert(show)
        store.insert(episode("Lost", 1))
        store.insert(episode("Lost", 2))
        store.insert(episode("Dark", 1))
        store.save()

        removed = store.delete_show(show)
        store.save()

        assert removed == 3
        assert store.get_show("Lost") is None
        assert [e.show_name for e in store.all_episodes()] == ["Dark"]

    def test_clear_all(self, store):
        store.insert(ShowMetadata(show_name="Lost", catalog_id=1, display_name="Lost"))
        store.insert(episode("Lost", 1))
        store.insert(MovieMetadata(file_name="a.mp4", catalog_id=2, display_name="A"))
        store.insert(ExternalVideo(file_name="x.mp4", path="/x.mp4"))
        store.save()

        counts = store.clear_all()
        store.save()

        assert counts == {"shows": 1, "episodes": 1, "movies": 1}
        assert store.all_shows() == [] and store.all_movies() == []
        assert len(store.all_external_videos()) == 1

    def test_fetch_by_predicate(self, store):
        store.insert(MovieMetadata(file_name="a.mp4", catalog_id=2, display_name="A", runtime=90))
        store.insert(MovieMetadata(file_name="b.mp4", catalog_id=3, display_name="B", runtime=150))
        store.save()
        long_movies = store.fetch(MovieMetadata, lambda m: (m.runtime or 0) > 120)
        assert [m.file_name for m in long_movies] == ["b.mp4"]

    def test_failed_save_returns_false(self, store):
        store.insert(MovieMetadata(file_name="a.mp4", catalog_id=2, display_name="A"))
        store.save()
        store.session.add(MovieMetadata(file_name="a.mp4", catalog_id=3, display_name="dup"))
        assert store.save() is False


class TestExecutor:
    def test_delete_show_files(self, tmp_path, store):
        files = touch(tmp_path, "Shows/Lost/Season 1/Lost - S01E01.mp4", "Shows/Lost/Lost - S01E02.mp4")
        store.insert(ShowMetadata(show_name="Lost", catalog_id=1, display_name="Lost"))
        store.insert(episode("Lost", 1))
        store.insert(episode("Lost", 2))
        store.insert(VideoProgress(relative_path=relative_path(files[0], tmp_path), file_name=files[0].name))
        store.save()
        show = LibraryScanner(tmp_path).scan(store).find_show("Lost")

        result = Executor(store, tmp_path).delete_show_files(show)

        assert sorted(result.deleted_files) == ["Lost - S01E01.mp4", "Lost - S01E02.mp4"]
        assert result.failed == []
        assert not files[0].exists() and not files[1].exists()
        assert store.all_shows() == []
        assert store.all_episodes() == []
        assert store.get_progress("Shows/Lost/Season 1/Lost - S01E01.mp4") is None

    def test_failed_file_reported(self, tmp_path, store):
        (path,) = touch(tmp_path, "Movies/Heat (1995).mp4")
        movies = LibraryScanner(tmp_path).scan(store).movies
        path.unlink()

        result = Executor(store, tmp_path).delete_movies(movies)

        assert result.deleted_files == []
        assert len(result.failed) == 1
        assert result.failed[0].startswith("Heat (1995).mp4:")

    def test_delete_movies_removes_metadata(self, tmp_path, store):
        touch(tmp_path, "Movies/Heat (1995).mp4")
        store.insert(MovieMetadata(file_name="Heat (1995).mp4", catalog_id=949, display_name="Heat"))
        store.save()
        movies = LibraryScanner(tmp_path).scan(store).movies

        result = Executor(store, tmp_path).delete_movies(movies)

        assert result.records_removed == 1
        assert store.all_movies() == []

    def test_delete_external_keeps_files(self, tmp_path, store):
        (path,) = touch(tmp_path, "elsewhere/clip.mp4")
        store.insert(ExternalVideo(file_name="clip.mp4", path=str(path)))
        store.insert(VideoProgress(relative_path="clip.mp4", file_name="clip.mp4"))
        store.save()

        result = Executor(store, tmp_path).delete_external_videos(store.all_external_videos())

        assert result.records_removed == 2
        assert path.exists()
        assert store.all_external_videos() == []
