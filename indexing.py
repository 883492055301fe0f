"""
Indexing service: single-file indexing for the watcher and the bulk
"index existing files now" run.

    candidate -> resolver.resolve -> writer.persist

Lookup-not-found and unparseable names become failed IndexResult entries.
During a bulk run transport/store errors are also recorded per file so one bad
file does not abort the batch; index_single_file lets them propagate.
"""
import asyncio
import logging
import os
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from errors import LookupTransportError, ScanInProgressError, StoreUnavailableError, UnsupportedExtensionError
from parsing import ParsedCandidate, build_candidate, canonical_path, is_supported_file
from scanning import scan_folder

logger = logging.getLogger(__name__)

MAX_LOG_ENTRIES = 500


@dataclass
class IndexResult:
    filename: str
    path: str
    title: str = ""
    year: Optional[int] = None
    success: bool = False
    error: Optional[str] = None
    movie_id: Optional[int] = None


@dataclass
class IndexSummary:
    results: List[IndexResult] = field(default_factory=list)

    @property
    def succeeded(self) -> List[IndexResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> List[IndexResult]:
        return [r for r in self.results if not r.success]

    @property
    def total(self) -> int:
        return len(self.results)

    def format_failures(self) -> str:
        if not self.failed:
            return f"Indexed {len(self.succeeded)}/{self.total} file(s), no failures"
        lines = [f"Indexed {len(self.succeeded)}/{self.total} file(s), {len(self.failed)} failed:"]
        for result in self.failed:
            lines.append(f"  {result.filename}: {result.error}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "failures": [{"filename": r.filename, "path": r.path, "error": r.error} for r in self.failed],
        }


class IndexProgress:
    """Bulk index progress plus a bounded log the control surface can poll"""

    def __init__(self):
        self.logs = deque(maxlen=MAX_LOG_ENTRIES)
        self.reset()

    def reset(self):
        self.is_scanning = False
        self.current = 0
        self.total = 0
        self.current_file = ""
        self.status = "idle"
        self.movies_indexed = 0
        self.movies_failed = 0

    def add_log(self, level: str, message: str):
        """Add a log entry to the progress log and the module logger"""
        timestamp = datetime.now().strftime("%H:%M:%S")
        self.logs.append({
            "timestamp": timestamp,
            "level": level,  # "info", "success", "warning", "error"
            "message": message
        })

        if level == "error":
            logger.error(f"[INDEX] {message}")
        elif level == "warning":
            logger.warning(f"[INDEX] {message}")
        else:
            logger.info(f"[INDEX] {message}")

    def to_dict(self, log_tail: int = 100) -> dict:
        logs = list(self.logs)
        return {
            "is_scanning": self.is_scanning,
            "current": self.current,
            "total": self.total,
            "current_file": self.current_file,
            "status": self.status,
            "progress_percent": (self.current / self.total * 100) if self.total > 0 else 0,
            "movies_indexed": self.movies_indexed,
            "movies_failed": self.movies_failed,
            "logs": logs[-log_tail:] if log_tail > 0 else logs,
        }


def _failure(candidate: ParsedCandidate, reason: str) -> IndexResult:
    return IndexResult(
        filename=candidate.raw_filename,
        path=candidate.absolute_path,
        title=candidate.guessed_title,
        year=candidate.guessed_year,
        success=False,
        error=reason,
    )


class IndexingService:
    def __init__(self, config, resolver, writer, sleep=asyncio.sleep):
        self.config = config
        self.resolver = resolver
        self.writer = writer
        self._sleep = sleep
        self.progress = IndexProgress()

    async def index_candidate(self, candidate: ParsedCandidate) -> IndexResult:
        if not candidate.guessed_title:
            return _failure(candidate, "Could not extract a title from the filename")

        match = await self.resolver.resolve(candidate)
        if match is None:
            year = f" ({candidate.guessed_year})" if candidate.guessed_year else ""
            return _failure(candidate, f"No metadata match for '{candidate.guessed_title}'{year}")

        movie = await self.writer.persist(candidate, match)
        return IndexResult(
            filename=candidate.raw_filename,
            path=candidate.absolute_path,
            title=match.title,
            year=match.release_year,
            success=True,
            movie_id=movie.id if movie is not None else None,
        )

    async def index_single_file(self, path) -> IndexResult:
        """
        Index one file on demand (watcher, force-index).

        Raises UnsupportedExtensionError for non-video paths; transport and store
        errors propagate to the caller.
        """
        path = Path(str(path))
        if not is_supported_file(path, self.config.extensions):
            raise UnsupportedExtensionError(path)

        try:
            stat = await asyncio.to_thread(os.stat, path)
        except FileNotFoundError:
            return IndexResult(filename=path.name, path=canonical_path(path), error="File not found")

        candidate = await asyncio.to_thread(build_candidate, path, stat)
        result = await self.index_candidate(candidate)
        if result.success:
            logger.info(f"Indexed {candidate.raw_filename} -> '{result.title}' (id={result.movie_id})")
        else:
            logger.warning(f"Could not index {candidate.raw_filename}: {result.error}")
        return result

    async def index_existing_files(self) -> IndexSummary:
        """
        Scan the movies folder and index every file found, pausing
        `throttle_ms` between files. Only one run at a time.
        """
        if self.progress.is_scanning:
            raise ScanInProgressError("index")

        progress = self.progress
        progress.reset()
        progress.is_scanning = True
        progress.status = "scanning"
        summary = IndexSummary()

        try:
            progress.add_log("info", f"Scanning {self.config.movies_folder}")
            candidates = await scan_folder(self.config.movies_folder, self.config.scan_options())
            progress.total = len(candidates)
            progress.status = "indexing"
            progress.add_log("info", f"Found {len(candidates)} media file(s)")

            for i, candidate in enumerate(candidates):
                if i > 0 and self.config.throttle_ms > 0:
                    await self._sleep(self.config.throttle_seconds)

                progress.current = i + 1
                progress.current_file = candidate.raw_filename
                try:
                    result = await self.index_candidate(candidate)
                except (LookupTransportError, StoreUnavailableError) as e:
                    result = _failure(candidate, str(e))
                except Exception as e:
                    logger.error(f"Unexpected error indexing {candidate.raw_filename}: {e}", exc_info=True)
                    result = _failure(candidate, f"Unexpected error: {e}")
                summary.results.append(result)

                if result.success:
                    progress.movies_indexed += 1
                    progress.add_log("success", f"{candidate.raw_filename} -> {result.title}")
                else:
                    progress.movies_failed += 1
                    progress.add_log("warning", f"{candidate.raw_filename}: {result.error}")

            progress.status = "complete"
            progress.current_file = ""
            progress.add_log("info", f"Indexing complete: {len(summary.succeeded)} indexed, {len(summary.failed)} failed")
        except Exception as e:
            progress.status = "error"
            progress.add_log("error", f"Indexing failed: {e}")
            raise
        finally:
            progress.is_scanning = False

        logger.info(summary.format_failures())
        return summary
