"""
Debounced file system watcher for the movies folder.

watchdog delivers events on its own thread; they are handed to the event loop
with call_soon_threadsafe and everything after that runs on the loop:

    event -> extension filter -> (re)schedule per-path timer -> timer fires
          -> in-flight check -> index_file(path)

State machine: STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED.
The timer map and the in-flight set are owned by MovieWatcher and only touched
from the loop.
"""
import asyncio
import logging
import os
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Set

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from errors import IndexerError, UnsupportedExtensionError, WatcherAlreadyRunningError, WatcherNotRunningError
from parsing import canonical_path, is_supported_file
from scanning import check_root

logger = logging.getLogger(__name__)

EVENT_ADD = "add"
EVENT_CHANGE = "change"
EVENT_UNLINK = "unlink"

OBSERVER_JOIN_TIMEOUT = 5


class WatcherState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class WatcherEventHandler(FileSystemEventHandler):
    """Translate watchdog events into add/change/unlink for the watcher"""

    def __init__(self, watcher: "MovieWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_created(self, event):
        if event.is_directory:
            return
        self.watcher.dispatch(EVENT_ADD, os.fsdecode(event.src_path))

    def on_modified(self, event):
        if event.is_directory:
            return
        self.watcher.dispatch(EVENT_CHANGE, os.fsdecode(event.src_path))

    def on_deleted(self, event):
        if event.is_directory:
            return
        self.watcher.dispatch(EVENT_UNLINK, os.fsdecode(event.src_path))

    def on_moved(self, event):
        if event.is_directory:
            return
        self.watcher.dispatch(EVENT_UNLINK, os.fsdecode(event.src_path))
        self.watcher.dispatch(EVENT_ADD, os.fsdecode(event.dest_path))


class MovieWatcher:
    """
    Watches one root folder and indexes each file once its writes settle.

    `index_file` is an async callable taking a canonical path. `scheduler` only
    needs `call_later(delay, callback, *args)` returning a handle with
    `cancel()`; it defaults to the running event loop.
    """

    def __init__(self, config, index_file: Callable[[str], Awaitable], scheduler=None, observer_factory=Observer):
        self.config = config
        self._index_file = index_file
        self._scheduler_override = scheduler
        self._observer_factory = observer_factory

        self.state = WatcherState.STOPPED
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._scheduler = scheduler
        self._observer = None
        self._watch_path: Optional[str] = None

        self._timers: Dict[str, object] = {}  # path -> pending timer handle
        self._in_flight: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self.state == WatcherState.RUNNING

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        if self.state != WatcherState.STOPPED:
            raise WatcherAlreadyRunningError(self.state.value)

        self.state = WatcherState.STARTING
        try:
            root = check_root(self.config.movies_folder)
            self._loop = asyncio.get_running_loop()
            self._scheduler = self._scheduler_override or self._loop

            observer = self._observer_factory()
            observer.schedule(WatcherEventHandler(self), str(root), recursive=self.config.recursive)
            observer.start()
        except Exception:
            self.state = WatcherState.STOPPED
            raise

        self._observer = observer
        self._watch_path = str(root)
        self.state = WatcherState.RUNNING
        logger.info(f"Watcher started for {root} (recursive={self.config.recursive}, debounce={self.config.debounce_ms}ms)")

    async def stop(self):
        """Stop receiving events. Indexing already in progress runs to completion."""
        if self.state != WatcherState.RUNNING:
            raise WatcherNotRunningError(self.state.value)

        self.state = WatcherState.STOPPING
        try:
            for handle in self._timers.values():
                handle.cancel()
            self._timers.clear()

            observer, self._observer = self._observer, None
            if observer is not None:
                observer.stop()
                await asyncio.to_thread(observer.join, OBSERVER_JOIN_TIMEOUT)
        finally:
            self.state = WatcherState.STOPPED
        logger.info(f"Watcher stopped for {self._watch_path}")

    async def restart(self):
        await self.stop()
        await self.start()

    async def reconfigure(self, config) -> bool:
        """
        Swap in a new config. A running watcher whose root (or recursion) changed
        is restarted on the new root. Returns True if a restart happened.
        """
        old = self.config
        self.config = config
        if not self.is_running:
            return False
        if config.movies_folder == old.movies_folder and config.recursive == old.recursive:
            return False
        logger.info(f"Watch root changed: {old.movies_folder} -> {config.movies_folder}, restarting watcher")
        await self.restart()
        return True

    async def drain(self):
        """Wait for every indexing task started by the watcher to finish"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def status(self) -> dict:
        return {
            "state": self.state.value,
            "is_running": self.is_running,
            "watch_path": self._watch_path if self.is_running else None,
            "recursive": self.config.recursive,
            "debounce_ms": self.config.debounce_ms,
            "processing_count": len(self._in_flight),
            "active_timers": len(self._timers),
        }

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def dispatch(self, kind: str, path: str):
        """
        Entry point for the observer thread. Paths are filtered and resolved on
        this thread; handle_event only ever sees canonical paths.
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        if not is_supported_file(path, self.config.extensions):
            return
        loop.call_soon_threadsafe(self.handle_event, kind, canonical_path(path))

    def handle_event(self, kind: str, path: str):
        """Runs on the loop; `path` is already canonical"""
        if self.state != WatcherState.RUNNING:
            return
        if not is_supported_file(path, self.config.extensions):
            return

        if kind == EVENT_UNLINK:
            # Catalog cleanup is left to the reconciler
            logger.info(f"File removed: {path}")
            return
        if kind not in (EVENT_ADD, EVENT_CHANGE):
            logger.debug(f"Ignoring unknown event '{kind}' for {path}")
            return

        logger.debug(f"File {kind}: {path}")
        self._schedule(path)

    def _schedule(self, path: str):
        previous = self._timers.pop(path, None)
        if previous is not None:
            previous.cancel()
        self._timers[path] = self._scheduler.call_later(self.config.debounce_seconds, self._on_timer, path)

    def _on_timer(self, path: str):
        self._timers.pop(path, None)
        task = self._loop.create_task(self._process(path))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process(self, path: str, raise_errors: bool = False):
        if path in self._in_flight:
            logger.info(f"Skipping {path}: already being indexed")
            return None

        self._in_flight.add(path)
        try:
            if not await asyncio.to_thread(os.path.isfile, path):
                logger.info(f"Skipping {path}: file no longer exists")
                return None
            return await self._index_file(path)
        except IndexerError as e:
            logger.error(f"Indexing failed for {path}: {e}")
            if raise_errors:
                raise
        except Exception as e:
            logger.error(f"Unexpected error indexing {path}: {e}", exc_info=True)
            if raise_errors:
                raise
        finally:
            self._in_flight.discard(path)
        return None

    async def force_index_file(self, path):
        """
        Index one file now, skipping the debounce. The in-flight guard still
        applies: returns None if the path is already being indexed. Indexing
        errors are raised to the caller instead of only being logged.
        """
        if not is_supported_file(path, self.config.extensions):
            raise UnsupportedExtensionError(path)
        path = canonical_path(path)
        pending = self._timers.pop(path, None)
        if pending is not None:
            pending.cancel()
        logger.info(f"Force indexing {path}")
        return await self._process(path, raise_errors=True)
