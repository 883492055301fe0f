"""
Directory scanning for Movie Indexer.

One scanner serves both bulk indexing and reconciliation; `recursive` picks
between walking the whole tree and looking at the root folder only.
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from cleaning_patterns import SUPPORTED_EXTENSIONS
from errors import FolderNotFoundError
from parsing import ParsedCandidate, build_candidate, is_supported_file

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_PATTERNS = ("sample", "trailer")


@dataclass(frozen=True)
class ScanOptions:
    recursive: bool = True
    extensions: frozenset = SUPPORTED_EXTENSIONS
    exclude_patterns: tuple = ()
    max_files: Optional[int] = None


def check_root(root_path) -> Path:
    """Fail fast when the root folder cannot be scanned at all"""
    if root_path is None or str(root_path).strip() == "":
        raise FolderNotFoundError(root_path, "is not configured")
    root = Path(str(root_path)).expanduser()
    if not root.exists():
        raise FolderNotFoundError(root)
    if not root.is_dir():
        raise FolderNotFoundError(root, "is not a directory")
    if not os.access(root, os.R_OK | os.X_OK):
        raise FolderNotFoundError(root, "is not accessible")
    return root.resolve()


def is_excluded(filename: str, exclude_patterns: Iterable[str]) -> bool:
    """Substring match, case-insensitive ('Movie.Sample.mkv' matches 'sample')"""
    lowered = filename.lower()
    return any(p and p.lower() in lowered for p in exclude_patterns)


def _walk(root: Path, options: ScanOptions) -> List[ParsedCandidate]:
    extensions = {e.lower() for e in options.extensions}
    found: List[ParsedCandidate] = []
    pending = [root]

    while pending:
        directory = pending.pop()
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"Skipping unreadable directory {directory}: {e}")
            continue

        subdirs = []
        for entry in entries:
            try:
                if entry.is_dir():
                    if options.recursive:
                        subdirs.append(entry.path)
                    continue
                if not entry.is_file():
                    continue
            except OSError as e:
                logger.warning(f"Skipping unreadable entry {entry.path}: {e}")
                continue

            if not is_supported_file(entry.name, extensions):
                continue
            if is_excluded(entry.name, options.exclude_patterns):
                logger.debug(f"Skipping excluded file: {entry.name}")
                continue
            try:
                stat = entry.stat()
            except OSError as e:
                logger.warning(f"Could not stat {entry.path}: {e}")
                continue
            found.append(build_candidate(entry.path, stat))

        pending.extend(reversed(subdirs))

    found.sort(key=lambda c: c.absolute_path)
    if options.max_files is not None:
        found = found[:max(options.max_files, 0)]
    return found


async def scan_folder(root_path, options: Optional[ScanOptions] = None) -> List[ParsedCandidate]:
    """
    Collect supported media files under root_path.

    Raises FolderNotFoundError before anything is read if the root itself is
    missing or inaccessible; unreadable subdirectories are logged and skipped.
    """
    options = options or ScanOptions()
    root = check_root(root_path)
    logger.info(f"Scanning {root} (recursive={options.recursive})")
    candidates = await asyncio.to_thread(_walk, root, options)
    logger.info(f"Scan of {root} found {len(candidates)} media file(s)")
    return candidates
