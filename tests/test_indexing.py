import os
import shutil
import tempfile
import unittest
from datetime import date
from unittest.mock import patch

from sqlalchemy.exc import IntegrityError

from catalog_writer import CatalogWriter
from config import IndexerConfig
from errors import FolderNotFoundError, LookupTransportError, ScanInProgressError, UnsupportedExtensionError
from indexing import IndexingService
from parsing import canonical_path
from resolver import MetadataResolver
from tests.fakes import FakeLookup, TempCatalog, make_candidate, touch
from tmdb import MetadataMatch


def film_detail():
    return MetadataMatch(
        external_id=101, title="Film", release_date=date(2020, 1, 1),
        genre_names=["Drama"], cast=["Lead Actor"], is_detailed=True,
    )


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class TestIndexingService(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.catalog = TempCatalog()
        self.test_dir = tempfile.mkdtemp()
        self.movies_dir = os.path.join(self.test_dir, "movies")
        os.makedirs(self.movies_dir)

        self.lookup = FakeLookup(
            search_results={("Film", 2020): [MetadataMatch(external_id=101, title="Film", release_date=date(2020, 1, 1))]},
            details={101: film_detail()},
        )
        self.sleep = RecordingSleep()
        self.service = self.make_service(IndexerConfig(movies_folder=self.movies_dir))

    def tearDown(self):
        self.catalog.close()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def make_service(self, config):
        writer = CatalogWriter(self.catalog.store, self.lookup, config.max_actors)
        return IndexingService(config, MetadataResolver(self.lookup), writer, sleep=self.sleep)

    async def test_scanning_a_new_file_creates_catalog_entry(self):
        path = touch(os.path.join(self.movies_dir, "Film.2020.720p.mp4"))

        summary = await self.service.index_existing_files()

        self.assertEqual(summary.total, 1)
        self.assertEqual(len(summary.succeeded), 1)
        movies = self.catalog.store.list_bound_movies()
        self.assertEqual(len(movies), 1)
        self.assertEqual(movies[0].local_path, canonical_path(path))
        self.assertEqual(movies[0].release_date, date(2020, 1, 1))
        self.assertEqual(movies[0].resolution, "720p")
        self.assertEqual(movies[0].container, "mp4")

    async def test_bulk_run_records_failures_and_continues(self):
        touch(os.path.join(self.movies_dir, "Film.2020.720p.mp4"))
        touch(os.path.join(self.movies_dir, "Unknown.Thing.2001.mkv"))
        touch(os.path.join(self.movies_dir, "Broken.Link.1999.avi"))
        self.lookup.search_errors["Broken Link"] = LookupTransportError("TMDB request failed: timeout")

        summary = await self.service.index_existing_files()

        self.assertEqual(summary.total, 3)
        self.assertEqual([r.filename for r in summary.succeeded], ["Film.2020.720p.mp4"])
        errors = {r.filename: r.error for r in summary.failed}
        self.assertIn("No metadata match", errors["Unknown.Thing.2001.mkv"])
        self.assertIn("timeout", errors["Broken.Link.1999.avi"])
        self.assertIn("Unknown.Thing.2001.mkv", summary.format_failures())

        progress = self.service.progress
        self.assertFalse(progress.is_scanning)
        self.assertEqual(progress.status, "complete")
        self.assertEqual((progress.current, progress.total), (3, 3))
        self.assertEqual((progress.movies_indexed, progress.movies_failed), (1, 2))

    async def test_unexpected_store_error_fails_one_file_only(self):
        touch(os.path.join(self.movies_dir, "Alpha.2001.mkv"))
        touch(os.path.join(self.movies_dir, "Beta.2002.mkv"))
        for external_id, title, year in ((1, "Alpha", 2001), (2, "Beta", 2002)):
            self.lookup.search_results[(title, year)] = [MetadataMatch(
                external_id=external_id, title=title, release_date=date(year, 1, 1),
                genre_names=["Drama"], is_detailed=True,
            )]

        store = self.catalog.store
        real_link_genre = store.link_genre
        calls = []

        def link_genre(movie_id, name):
            calls.append(movie_id)
            if len(calls) == 1:
                raise IntegrityError("INSERT INTO movie_genres", {}, Exception("UNIQUE constraint failed"))
            return real_link_genre(movie_id, name)

        with patch.object(store, "link_genre", side_effect=link_genre):
            summary = await self.service.index_existing_files()

        self.assertEqual(summary.total, 2)
        self.assertEqual([r.filename for r in summary.succeeded], ["Beta.2002.mkv"])
        self.assertEqual([r.filename for r in summary.failed], ["Alpha.2001.mkv"])
        self.assertIn("UNIQUE constraint failed", summary.failed[0].error)
        self.assertEqual(self.service.progress.status, "complete")
        self.assertFalse(self.service.progress.is_scanning)

    async def test_throttle_between_files(self):
        for name in ("Film.2020.720p.mp4", "Other.2001.mkv", "Third.1999.mkv"):
            touch(os.path.join(self.movies_dir, name))

        await self.service.index_existing_files()

        self.assertEqual(self.sleep.calls, [0.3, 0.3])

    async def test_excluded_and_capped_files(self):
        touch(os.path.join(self.movies_dir, "Film.2020.720p.mp4"))
        touch(os.path.join(self.movies_dir, "Film.2020.Sample.mp4"))
        touch(os.path.join(self.movies_dir, "Zeta.2001.mkv"))
        service = self.make_service(IndexerConfig(movies_folder=self.movies_dir, max_files=1))

        summary = await service.index_existing_files()

        self.assertEqual([r.filename for r in summary.results], ["Film.2020.720p.mp4"])

    async def test_concurrent_bulk_run_is_rejected(self):
        self.service.progress.is_scanning = True
        with self.assertRaises(ScanInProgressError):
            await self.service.index_existing_files()

    async def test_missing_root_fails_and_resets_progress(self):
        service = self.make_service(IndexerConfig(movies_folder=os.path.join(self.test_dir, "gone")))
        with self.assertRaises(FolderNotFoundError):
            await service.index_existing_files()
        self.assertFalse(service.progress.is_scanning)
        self.assertEqual(service.progress.status, "error")

    async def test_index_single_file(self):
        path = touch(os.path.join(self.movies_dir, "Film.2020.720p.mp4"))
        result = await self.service.index_single_file(path)

        self.assertTrue(result.success)
        self.assertEqual(result.title, "Film")
        self.assertEqual(result.year, 2020)
        self.assertIsNotNone(result.movie_id)

    async def test_index_single_file_propagates_transport_errors(self):
        path = touch(os.path.join(self.movies_dir, "Film.2020.720p.mp4"))
        self.lookup.search_errors["Film"] = LookupTransportError("TMDB API error 503")
        with self.assertRaises(LookupTransportError):
            await self.service.index_single_file(path)

    async def test_index_single_file_missing_or_unsupported(self):
        result = await self.service.index_single_file(os.path.join(self.movies_dir, "Nope.2000.mkv"))
        self.assertFalse(result.success)
        self.assertEqual(result.error, "File not found")

        with self.assertRaises(UnsupportedExtensionError):
            await self.service.index_single_file(os.path.join(self.movies_dir, "notes.txt"))

    async def test_candidate_without_title_is_a_failure(self):
        result = await self.service.index_candidate(make_candidate("/movies/1080p.mkv", ""))
        self.assertFalse(result.success)
        self.assertIn("Could not extract a title", result.error)
        self.assertEqual(self.lookup.queries, [])


if __name__ == "__main__":
    unittest.main()
