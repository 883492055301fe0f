"""
Explicit wiring of the indexing pipeline.

Everything is built once from an IndexerConfig at process start; runtime changes
go through IndexerServices.reconfigure().
"""
import asyncio
import logging
from typing import Optional

from watchdog.observers import Observer

from catalog_writer import CatalogWriter
from config import IndexerConfig
from database import CatalogStore
from errors import ConfigurationError
from indexing import IndexingService
from reconcile import Reconciler
from resolver import MetadataResolver
from tmdb import LookupService, TMDBClient
from watcher import MovieWatcher

logger = logging.getLogger(__name__)


def validate_or_keep(config: IndexerConfig) -> IndexerConfig:
    """Validate at startup without refusing to boot on a bad movies folder"""
    try:
        return config.validate()
    except ConfigurationError as e:
        logger.warning(f"Movies folder not usable yet: {e.message}")
        return config


def make_lookup(config: IndexerConfig) -> TMDBClient:
    if not config.tmdb_api_key:
        logger.warning("TMDB_API_KEY is not set; metadata lookups will fail")
    return TMDBClient(config.tmdb_api_key, config.tmdb_base_url, config.tmdb_language)


class IndexerServices:
    def __init__(self, config: IndexerConfig, store: CatalogStore, lookup: LookupService,
                 scheduler=None, observer_factory=Observer, sleep=asyncio.sleep):
        self.config = config
        self.store = store
        self.lookup = lookup
        self.resolver = MetadataResolver(lookup)
        self.writer = CatalogWriter(store, lookup, config.max_actors)
        self.indexer = IndexingService(config, self.resolver, self.writer, sleep=sleep)
        self.watcher = MovieWatcher(config, self.indexer.index_single_file, scheduler, observer_factory)
        self.reconciler = Reconciler(config, store)

    def _set_lookup(self, lookup: LookupService):
        old = self.lookup
        self.lookup = lookup
        self.resolver.lookup = lookup
        self.writer.lookup = lookup
        if isinstance(old, TMDBClient):
            old.close()

    async def reconfigure(self, config: IndexerConfig) -> bool:
        """
        Validate and apply a new config to every component. Returns True when the
        running watcher was restarted on a new root.
        """
        config = config.validate()
        old = self.config
        self.config = config
        self.writer.max_actors = config.max_actors
        self.indexer.config = config
        self.reconciler.config = config

        lookup_changed = (
            config.tmdb_api_key != old.tmdb_api_key
            or config.tmdb_base_url != old.tmdb_base_url
            or config.tmdb_language != old.tmdb_language
        )
        if lookup_changed and isinstance(self.lookup, TMDBClient):
            self._set_lookup(make_lookup(config))

        return await self.watcher.reconfigure(config)

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    async def watcher_status(self) -> dict:
        status = self.watcher.status()
        snapshot = await asyncio.to_thread(self.store.read_index_state)
        status["snapshot_file_count"] = snapshot.file_count
        status["last_indexed_at"] = snapshot.last_indexed_at.isoformat() if snapshot.last_indexed_at else None
        return status

    async def start_watcher(self) -> dict:
        await self.watcher.start()
        return self.watcher.status()

    async def stop_watcher(self) -> dict:
        await self.watcher.stop()
        return self.watcher.status()

    async def restart_watcher(self) -> dict:
        await self.watcher.restart()
        return self.watcher.status()

    async def index_file(self, path):
        return await self.watcher.force_index_file(path)

    async def index_existing_files(self):
        return await self.indexer.index_existing_files()

    async def reconcile(self):
        return await self.reconciler.reconcile()

    async def shutdown(self):
        if self.watcher.is_running:
            await self.watcher.stop()
        await self.watcher.drain()
        if isinstance(self.lookup, TMDBClient):
            self.lookup.close()
        logger.info("Indexer services shut down")


def build_services(session_factory, config: IndexerConfig, lookup: Optional[LookupService] = None, **kwargs) -> IndexerServices:
    config = validate_or_keep(config)
    store = CatalogStore(session_factory)
    return IndexerServices(config, store, lookup or make_lookup(config), **kwargs)
