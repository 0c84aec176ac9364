"""Tests for filename classification"""
from pathlib import Path

import pytest

from mediashelf.core.classifier import (
    EpisodeInfo, classify_sort_target, clean_movie_title, is_video_file, looks_like_movie,
    parse_episode, sanitize_folder_name
)


class TestParseEpisode:
    """parse_episode() on the '<title> - S<n>E<n>' pattern"""

    def test_standard_episode(self):
        assert parse_episode("Breaking Bad - S01E05.mp4") == EpisodeInfo("Breaking Bad", 1, 5)

    def test_unpadded_and_long_numbers(self):
        assert parse_episode("Show - S1E123.mkv") == EpisodeInfo("Show", 1, 123)

    def test_title_is_trimmed(self):
        info = parse_episode("  The Office  -  S02E10 .avi")
        assert info == EpisodeInfo("The Office", 2, 10)

    def test_title_with_dash_keeps_prefix(self):
        """The title is the shortest prefix before the final '- S##E##'"""
        info = parse_episode("Spider-Man - S01E01.mp4")
        assert info.title == "Spider-Man"

    @pytest.mark.parametrize("name", [
        "random_clip.mov",
        "Breaking Bad S01E05.mp4",
        "Breaking Bad - S01E05 - Gray Matter.mp4",
        "Breaking Bad - s01e05.mp4",
        " - S01E05.mp4",
    ])
    def test_non_matching_names(self, name):
        """Whole-name match only, no fuzzy fallback"""
        assert parse_episode(name) is None


class TestSortSignals:
    """Looser movie heuristic used only by the sorter"""

    def test_year_suffix_is_movie(self):
        assert looks_like_movie("Alien (1979).mp4")
        assert classify_sort_target("Alien (1979).mp4").kind == "movie"

    def test_episode_wins(self):
        target = classify_sort_target("Lost - S01E01.mkv")
        assert target.kind == "episode"
        assert target.show_title == "Lost"

    def test_unknown(self):
        assert classify_sort_target("holiday.mp4").kind == "unknown"
        assert not looks_like_movie("Alien 1979.mp4")


class TestVideoExtensions:
    def test_case_insensitive(self):
        assert is_video_file(Path("a.MKV"))
        assert is_video_file(Path("a.m4v"))

    def test_rejects_other_files(self):
        assert not is_video_file(Path("notes.txt"))
        assert not is_video_file(Path("noextension"))

    def test_custom_allow_list(self):
        assert is_video_file(Path("a.webm"), ["webm"])
        assert not is_video_file(Path("a.mp4"), ["webm"])


class TestCleanMovieTitle:
    """Search title built from a movie filename"""

    def test_year_and_extension(self):
        assert clean_movie_title("Alien (1979).mp4") == "Alien"

    def test_quality_tags_and_dots(self):
        assert clean_movie_title("The.Matrix.1080p.BluRay.mkv") == "The Matrix"

    def test_bracketed_year(self):
        assert clean_movie_title("Heat [1995].avi") == "Heat"


class TestSanitizeFolderName:
    def test_illegal_characters_replaced(self):
        assert sanitize_folder_name('Star: Trek/TNG') == "Star  Trek TNG"

    def test_empty_falls_back(self):
        assert sanitize_folder_name(':/?') == "Unknown Show"
