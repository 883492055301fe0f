import os
import shutil
import tempfile
import unittest

from parsing import ParsedGuess, build_candidate, canonical_path, is_supported_file, parse_media_path, parse_name


class TestParseName(unittest.TestCase):
    def test_scene_release_name(self):
        guess = parse_name("Movie.Name.2019.1080p.x264-GROUP.mkv")
        self.assertEqual(guess.title, "Movie Name")
        self.assertEqual(guess.year, 2019)
        self.assertEqual(guess.resolution, "1080p")
        self.assertEqual(guess.codec, "x264")
        self.assertEqual(guess.container, "mkv")

    def test_simple_release(self):
        guess = parse_name("Film.2020.720p.mp4")
        self.assertEqual(guess, ParsedGuess(title="Film", year=2020, resolution="720p", codec=None, container="mp4"))

    def test_underscores_and_hevc(self):
        guess = parse_name("The_Matrix_1999_2160p_HEVC.mkv")
        self.assertEqual(guess.title, "The Matrix")
        self.assertEqual(guess.year, 1999)
        self.assertEqual(guess.resolution, "2160p")
        self.assertEqual(guess.codec, "hevc")

    def test_source_and_group_tags_are_stripped(self):
        guess = parse_name("Inception.2010.1080p.BluRay.x264-SPARKS.mkv")
        self.assertEqual(guess.title, "Inception")
        self.assertEqual(guess.year, 2010)

    def test_year_inside_title_keeps_release_year(self):
        guess = parse_name("2001.A.Space.Odyssey.1968.720p.mkv")
        self.assertEqual(guess.title, "2001 A Space Odyssey")
        self.assertEqual(guess.year, 1968)

    def test_parenthesised_year_and_bracketed_tags(self):
        guess = parse_name("Heat (1995) [1080p].mkv")
        self.assertEqual(guess.title, "Heat")
        self.assertEqual(guess.year, 1995)
        self.assertEqual(guess.resolution, "1080p")

    def test_hyphens_become_spaces(self):
        self.assertEqual(parse_name("Spider-Man.2002.1080p.mkv").title, "Spider Man")

    def test_dash_joined_group_without_other_markers(self):
        self.assertEqual(parse_name("Movie.Name-GROUP.mkv").title, "Movie Name")
        self.assertEqual(parse_name("The.Amazing.Spider-Man.mkv").title, "The Amazing Spider Man")

    def test_no_year(self):
        guess = parse_name("Some.Movie.mkv")
        self.assertEqual(guess.title, "Some Movie")
        self.assertIsNone(guess.year)
        self.assertIsNone(guess.resolution)

    def test_year_beyond_next_year_is_not_a_year(self):
        guess = parse_name("Future.Film.2030.mkv", current_year=2024)
        self.assertIsNone(guess.year)
        self.assertEqual(guess.title, "Future Film 2030")

    def test_next_year_is_accepted(self):
        self.assertEqual(parse_name("Future.Film.2025.mkv", current_year=2024).year, 2025)

    def test_unusable_names_give_empty_title(self):
        self.assertEqual(parse_name(""), ParsedGuess())
        guess = parse_name("1080p.x264.mkv")
        self.assertEqual(guess.title, "")
        self.assertEqual(guess.resolution, "1080p")


class TestParseMediaPath(unittest.TestCase):
    def test_short_filename_falls_back_to_folder(self):
        guess = parse_media_path(os.path.join("movies", "Heat.1995.1080p", "01.mkv"))
        self.assertEqual(guess.title, "Heat")
        self.assertEqual(guess.year, 1995)
        self.assertEqual(guess.resolution, "1080p")
        self.assertEqual(guess.container, "mkv")

    def test_good_filename_ignores_folder(self):
        guess = parse_media_path(os.path.join("movies", "Random Folder", "Inception.2010.mkv"))
        self.assertEqual(guess.title, "Inception")
        self.assertEqual(guess.year, 2010)

    def test_folder_not_longer_keeps_file_guess(self):
        guess = parse_media_path(os.path.join("x", "ab", "cd.mkv"))
        self.assertEqual(guess.title, "cd")


class TestCandidates(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_build_candidate_uses_stat_and_canonical_path(self):
        path = os.path.join(self.test_dir, "Film.2020.720p.mp4")
        with open(path, "wb") as f:
            f.write(b"x" * 42)

        candidate = build_candidate(path, os.stat(path))
        self.assertEqual(candidate.raw_filename, "Film.2020.720p.mp4")
        self.assertEqual(candidate.absolute_path, canonical_path(path))
        self.assertTrue(os.path.isabs(candidate.absolute_path))
        self.assertEqual(candidate.guessed_title, "Film")
        self.assertEqual(candidate.guessed_year, 2020)
        self.assertEqual(candidate.size_bytes, 42)

    def test_supported_extensions(self):
        self.assertTrue(is_supported_file("a/b/Movie.MKV"))
        self.assertTrue(is_supported_file("clip.m4v"))
        self.assertFalse(is_supported_file("notes.txt"))
        self.assertFalse(is_supported_file("movie.mkv.part"))


if __name__ == "__main__":
    unittest.main()
