import asyncio
import os
import shutil
import tempfile
import unittest
from unittest.mock import MagicMock

from watchdog.events import DirCreatedEvent, FileCreatedEvent, FileDeletedEvent, FileModifiedEvent, FileMovedEvent

from config import IndexerConfig
from errors import FolderNotFoundError, UnsupportedExtensionError, WatcherAlreadyRunningError, WatcherNotRunningError
from parsing import canonical_path
from tests.fakes import FakeObserver, FakeScheduler, touch, wait_until
from watcher import EVENT_ADD, EVENT_CHANGE, EVENT_UNLINK, MovieWatcher, WatcherEventHandler, WatcherState


class RecordingIndexer:
    """Async index_file stand-in; optionally blocks until released"""

    def __init__(self):
        self.calls = []
        self.gate = None
        self.error = None

    async def __call__(self, path):
        self.calls.append(path)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return path


class TestMovieWatcher(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.movies_dir = os.path.join(self.test_dir, "movies")
        self.movie = canonical_path(touch(os.path.join(self.movies_dir, "Film.2020.720p.mp4")))
        self.config = IndexerConfig(movies_folder=self.movies_dir, debounce_ms=2000)
        self.scheduler = FakeScheduler()
        self.observers = []
        self.indexer = RecordingIndexer()
        self.watcher = MovieWatcher(self.config, self.indexer, self.scheduler, self.make_observer)

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def make_observer(self):
        observer = FakeObserver()
        self.observers.append(observer)
        return observer

    async def fire(self, seconds=2.0):
        """Advance the fake clock and let any started indexing finish"""
        self.scheduler.advance(seconds)
        await self.watcher.drain()

    # Lifecycle

    async def test_start_and_stop(self):
        await self.watcher.start()
        self.assertEqual(self.watcher.state, WatcherState.RUNNING)
        observer = self.observers[0]
        self.assertTrue(observer.started)
        self.assertEqual(observer.scheduled[0][1], canonical_path(self.movies_dir))
        self.assertTrue(observer.scheduled[0][2])

        await self.watcher.stop()
        self.assertEqual(self.watcher.state, WatcherState.STOPPED)
        self.assertTrue(observer.stopped)

    async def test_start_twice_fails(self):
        await self.watcher.start()
        with self.assertRaises(WatcherAlreadyRunningError):
            await self.watcher.start()
        self.assertEqual(len(self.observers), 1)

    async def test_stop_when_stopped_fails(self):
        with self.assertRaises(WatcherNotRunningError):
            await self.watcher.stop()

    async def test_start_with_missing_root_fails(self):
        self.watcher.config = IndexerConfig(movies_folder=os.path.join(self.test_dir, "gone"))
        with self.assertRaises(FolderNotFoundError):
            await self.watcher.start()
        self.assertEqual(self.watcher.state, WatcherState.STOPPED)
        self.assertEqual(self.observers, [])

    async def test_restart(self):
        await self.watcher.start()
        await self.watcher.restart()
        self.assertEqual(self.watcher.state, WatcherState.RUNNING)
        self.assertEqual(len(self.observers), 2)
        self.assertTrue(self.observers[0].stopped)

    async def test_reconfigure_new_root_restarts(self):
        other = os.path.join(self.test_dir, "other")
        os.makedirs(other)
        await self.watcher.start()

        restarted = await self.watcher.reconfigure(IndexerConfig(movies_folder=other))

        self.assertTrue(restarted)
        self.assertEqual(self.observers[-1].scheduled[0][1], canonical_path(other))
        self.assertEqual(self.watcher.status()["watch_path"], canonical_path(other))

    async def test_reconfigure_same_root_does_not_restart(self):
        await self.watcher.start()
        restarted = await self.watcher.reconfigure(IndexerConfig(movies_folder=self.movies_dir, debounce_ms=500))
        self.assertFalse(restarted)
        self.assertEqual(len(self.observers), 1)

    async def test_reconfigure_while_stopped_does_not_start(self):
        restarted = await self.watcher.reconfigure(IndexerConfig(movies_folder=self.test_dir))
        self.assertFalse(restarted)
        self.assertEqual(self.watcher.state, WatcherState.STOPPED)

    # Debounce and in-flight guard

    async def test_burst_of_events_indexes_once(self):
        await self.watcher.start()
        self.watcher.handle_event(EVENT_ADD, self.movie)
        self.scheduler.advance(1.0)
        self.watcher.handle_event(EVENT_CHANGE, self.movie)
        await self.fire(1.5)
        self.assertEqual(self.indexer.calls, [])

        await self.fire(0.5)
        self.assertEqual(self.indexer.calls, [self.movie])
        self.assertEqual(self.watcher.status()["active_timers"], 0)

    async def test_event_after_completion_indexes_again(self):
        await self.watcher.start()
        self.watcher.handle_event(EVENT_ADD, self.movie)
        await self.fire()
        self.watcher.handle_event(EVENT_CHANGE, self.movie)
        await self.fire()
        self.assertEqual(self.indexer.calls, [self.movie, self.movie])

    async def test_event_while_in_flight_is_skipped(self):
        self.indexer.gate = asyncio.Event()
        await self.watcher.start()

        self.watcher.handle_event(EVENT_ADD, self.movie)
        self.scheduler.advance(2.0)
        await wait_until(lambda: len(self.indexer.calls) == 1)
        self.assertEqual(self.watcher.status()["processing_count"], 1)

        # Trailing edit still gets a timer, but it finds the path busy
        self.watcher.handle_event(EVENT_CHANGE, self.movie)
        self.assertEqual(self.watcher.status()["active_timers"], 1)
        self.scheduler.advance(2.0)
        await asyncio.sleep(0.05)

        self.indexer.gate.set()
        await self.watcher.drain()
        self.assertEqual(self.indexer.calls, [self.movie])
        self.assertEqual(self.watcher.status()["processing_count"], 0)

    def test_dispatch_resolves_path_before_handing_to_loop(self):
        loop = MagicMock()
        loop.is_closed.return_value = False
        self.watcher._loop = loop
        os.makedirs(os.path.join(self.movies_dir, "extras"))
        raw = os.path.join(self.movies_dir, "extras", "..", "Film.2020.720p.mp4")

        self.watcher.dispatch(EVENT_ADD, raw)
        self.watcher.dispatch(EVENT_ADD, os.path.join(self.movies_dir, "notes.txt"))

        loop.call_soon_threadsafe.assert_called_once_with(self.watcher.handle_event, EVENT_ADD, self.movie)

    async def test_different_paths_are_independent(self):
        other = canonical_path(touch(os.path.join(self.movies_dir, "Heat.1995.mkv")))
        await self.watcher.start()
        self.watcher.handle_event(EVENT_ADD, self.movie)
        self.watcher.handle_event(EVENT_ADD, other)
        await self.fire()
        self.assertEqual(sorted(self.indexer.calls), sorted([self.movie, other]))

    async def test_failure_clears_in_flight(self):
        self.indexer.error = RuntimeError("lookup exploded")
        await self.watcher.start()
        self.watcher.handle_event(EVENT_ADD, self.movie)
        await self.fire()
        self.assertEqual(self.watcher.status()["processing_count"], 0)

        self.indexer.error = None
        self.watcher.handle_event(EVENT_ADD, self.movie)
        await self.fire()
        self.assertEqual(len(self.indexer.calls), 2)

    async def test_unsupported_extension_is_ignored(self):
        await self.watcher.start()
        self.watcher.handle_event(EVENT_ADD, os.path.join(self.movies_dir, "notes.txt"))
        self.assertEqual(self.scheduler.pending(), [])

    async def test_unlink_does_not_index(self):
        await self.watcher.start()
        self.watcher.handle_event(EVENT_UNLINK, self.movie)
        self.assertEqual(self.scheduler.pending(), [])
        await self.fire()
        self.assertEqual(self.indexer.calls, [])

    async def test_vanished_file_is_skipped(self):
        await self.watcher.start()
        self.watcher.handle_event(EVENT_ADD, self.movie)
        os.remove(self.movie)
        await self.fire()
        self.assertEqual(self.indexer.calls, [])

    async def test_events_ignored_when_stopped(self):
        self.watcher.handle_event(EVENT_ADD, self.movie)
        self.assertEqual(self.scheduler.pending(), [])

    async def test_stop_cancels_pending_timers(self):
        await self.watcher.start()
        self.watcher.handle_event(EVENT_ADD, self.movie)
        await self.watcher.stop()
        self.assertEqual(self.scheduler.pending(), [])
        self.assertEqual(self.watcher.status()["active_timers"], 0)

    # Force indexing

    async def test_force_index_file_skips_debounce(self):
        result = await self.watcher.force_index_file(self.movie)
        self.assertEqual(result, self.movie)
        self.assertEqual(self.indexer.calls, [self.movie])

    async def test_force_index_rejects_unsupported_extension(self):
        with self.assertRaises(UnsupportedExtensionError):
            await self.watcher.force_index_file(os.path.join(self.movies_dir, "notes.txt"))

    async def test_force_index_respects_in_flight(self):
        self.indexer.gate = asyncio.Event()
        first = asyncio.create_task(self.watcher.force_index_file(self.movie))
        await wait_until(lambda: len(self.indexer.calls) == 1)

        self.assertIsNone(await self.watcher.force_index_file(self.movie))

        self.indexer.gate.set()
        self.assertEqual(await first, self.movie)
        self.assertEqual(len(self.indexer.calls), 1)


class TestWatcherEventHandler(unittest.TestCase):
    def setUp(self):
        self.watcher = MagicMock()
        self.handler = WatcherEventHandler(self.watcher)

    def test_created_and_modified(self):
        self.handler.on_created(FileCreatedEvent("/m/a.mkv"))
        self.handler.on_modified(FileModifiedEvent("/m/a.mkv"))
        self.assertEqual(
            [c.args for c in self.watcher.dispatch.call_args_list],
            [(EVENT_ADD, "/m/a.mkv"), (EVENT_CHANGE, "/m/a.mkv")],
        )

    def test_deleted(self):
        self.handler.on_deleted(FileDeletedEvent("/m/a.mkv"))
        self.watcher.dispatch.assert_called_once_with(EVENT_UNLINK, "/m/a.mkv")

    def test_moved_is_unlink_plus_add(self):
        self.handler.on_moved(FileMovedEvent("/m/a.mkv", "/m/b.mkv"))
        self.assertEqual(
            [c.args for c in self.watcher.dispatch.call_args_list],
            [(EVENT_UNLINK, "/m/a.mkv"), (EVENT_ADD, "/m/b.mkv")],
        )

    def test_directories_are_ignored(self):
        self.handler.on_created(DirCreatedEvent("/m/new"))
        self.watcher.dispatch.assert_not_called()


if __name__ == "__main__":
    unittest.main()
