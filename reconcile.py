"""
Reconciliation: bring the catalog back in line with what is on disk.

The only place catalog entries are deleted. Runs on demand:
    1. scan the whole root (no excludes, no cap) for the current file set
    2. delete every bound entry whose local path is not in that set
    3. overwrite the index snapshot with the current file set
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from errors import ScanInProgressError, StoreUnavailableError
from scanning import scan_folder

logger = logging.getLogger(__name__)


@dataclass
class ReconcileSummary:
    removed_count: int = 0
    failed_count: int = 0
    kept_count: int = 0
    known_paths: frozenset = field(default_factory=frozenset)
    indexed_at: datetime = None

    def to_dict(self) -> dict:
        return {
            "removed_count": self.removed_count,
            "failed_count": self.failed_count,
            "kept_count": self.kept_count,
            "file_count": len(self.known_paths),
            "indexed_at": self.indexed_at.isoformat() if self.indexed_at else None,
        }


class Reconciler:
    def __init__(self, config, store):
        self.config = config
        self.store = store
        self._running = False

    async def reconcile(self) -> ReconcileSummary:
        if self._running:
            raise ScanInProgressError("reconcile")

        self._running = True
        try:
            return await self._reconcile()
        finally:
            self._running = False

    async def _reconcile(self) -> ReconcileSummary:
        root = self.config.movies_folder
        logger.info(f"Reconciling catalog against {root}")

        candidates = await scan_folder(root, self.config.full_scan_options())
        on_disk = frozenset(c.absolute_path for c in candidates)

        movies = await asyncio.to_thread(self.store.list_bound_movies)
        summary = ReconcileSummary()
        for movie in movies:
            if movie.local_path in on_disk:
                summary.kept_count += 1
                continue
            try:
                await asyncio.to_thread(self.store.delete_movie_cascade, movie.id)
            except StoreUnavailableError as e:
                summary.failed_count += 1
                logger.error(f"Could not remove orphaned movie id={movie.id} ({movie.local_path}): {e}")
                continue
            except Exception as e:
                summary.failed_count += 1
                logger.error(f"Unexpected error removing movie id={movie.id} ({movie.local_path}): {e}", exc_info=True)
                continue
            summary.removed_count += 1
            logger.info(f"Removed orphaned movie '{movie.title}' (id={movie.id}): {movie.local_path} no longer exists")

        snapshot = await asyncio.to_thread(self.store.replace_index_state, on_disk)
        summary.known_paths = snapshot.known_paths
        summary.indexed_at = snapshot.last_indexed_at

        logger.info(
            f"Reconcile complete: {summary.removed_count} removed, {summary.kept_count} kept, "
            f"{summary.failed_count} failed, {len(on_disk)} file(s) on disk"
        )
        return summary
