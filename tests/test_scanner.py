"""Tests for the library scanner"""
import shutil

import pytest

from mediashelf.core.models import LibraryAccessError
from mediashelf.core.scanner import LibraryScanner, episode_show_name
from mediashelf.db.models import EpisodeMetadata, MovieMetadata, ShowMetadata

from conftest import touch


def episode_record(show_name, season, episode):
    return EpisodeMetadata(
        show_name=show_name, season_number=season, episode_number=episode,
        catalog_id=100 + episode, show_catalog_id=1, display_name=f"Episode {episode}",
    )


class TestShowNameDerivation:
    """Episode join key depends on where the file lives"""

    def test_three_layouts(self, tmp_path):
        shows = tmp_path / "Shows"
        assert episode_show_name(shows / "Lost - S01E01.mp4", shows, "Lost") == "Lost"
        assert episode_show_name(shows / "LOST" / "Season 01" / "Lost - S01E01.mp4", shows, "Lost") == "LOST"
        assert episode_show_name(shows / "LOST" / "Lost - S01E01.mp4", shows, "Lost") == "LOST"


class TestScan:
    def test_missing_root_is_fatal(self, tmp_path, store):
        with pytest.raises(LibraryAccessError):
            LibraryScanner(tmp_path / "nope").scan(store)

    def test_missing_sections_are_empty(self, tmp_path, store):
        inventory = LibraryScanner(tmp_path).scan(store)
        assert inventory.shows == []
        assert inventory.movies == []

    def test_movies_joined_by_file_name(self, tmp_path, store):
        touch(tmp_path, "Movies/Alien (1979).mp4", "Movies/notes.txt", "Movies/.hidden.mp4")
        store.insert(MovieMetadata(file_name="Alien (1979).mp4", catalog_id=348, display_name="Alien"))
        store.save()

        inventory = LibraryScanner(tmp_path).scan(store)

        assert [m.name for m in inventory.movies] == ["Alien (1979).mp4"]
        assert inventory.movies[0].metadata.catalog_id == 348

    def test_show_folders_and_season_nesting(self, tmp_path, store):
        touch(
            tmp_path,
            "Shows/Lost/Season 1/Lost - S01E02.mp4",
            "Shows/Lost/Lost - S01E01.mkv",
            "Shows/Lost/behind the scenes.mp4",
            "Shows/Empty/readme.txt",
        )
        store.insert(ShowMetadata(show_name="Lost", catalog_id=4607, display_name="Lost"))
        store.insert(episode_record("Lost", 1, 2))
        store.save()

        inventory = LibraryScanner(tmp_path).scan(store)

        assert [s.name for s in inventory.shows] == ["Lost"]
        lost = inventory.shows[0]
        assert lost.metadata.catalog_id == 4607
        assert [f.name for f in lost.playlist()] == [
            "Lost - S01E01.mkv", "Lost - S01E02.mp4", "behind the scenes.mp4"
        ]
        by_name = {f.name: f for f in lost.files}
        assert by_name["Lost - S01E02.mp4"].metadata.catalog_id == 102
        assert by_name["Lost - S01E01.mkv"].metadata is None
        assert by_name["behind the scenes.mp4"].episode_info is None

    def test_loose_files_grouped_by_title(self, tmp_path, store):
        touch(
            tmp_path,
            "Shows/Dark - S01E01.mp4",
            "Shows/Dark - S01E02.mp4",
            "Shows/Lost - S02E01.mp4",
            "Shows/Lost/Lost - S01E01.mp4",
            "Shows/random_clip.mov",
        )
        inventory = LibraryScanner(tmp_path).scan(store)

        assert [s.name for s in inventory.shows] == ["Dark", "Lost"]
        assert len(inventory.find_show("Dark").files) == 2
        assert sorted(f.name for f in inventory.find_show("Lost").files) == [
            "Lost - S01E01.mp4", "Lost - S02E01.mp4"
        ]

    def test_imported_folder_skipped(self, tmp_path, store):
        touch(tmp_path, "Shows/Imported/Lost - S01E01.mp4")
        assert LibraryScanner(tmp_path).scan(store).shows == []

    def test_episode_identity_survives_move(self, tmp_path, store):
        """Season folder to show folder: same record, no duplicate"""
        touch(tmp_path, "Shows/X/Season 01/X - S01E03.mp4")
        store.insert(episode_record("X", 1, 3))
        store.save()
        scanner = LibraryScanner(tmp_path)

        before = scanner.scan(store).find_show("X").files[0]
        shutil.move(str(tmp_path / "Shows/X/Season 01/X - S01E03.mp4"), str(tmp_path / "Shows/X/X - S01E03.mp4"))
        after = scanner.scan(store).find_show("X").files[0]

        assert before.metadata is not None
        assert after.metadata is before.metadata
        assert after.show_name == before.show_name == "X"
        assert len(store.all_episodes()) == 1
