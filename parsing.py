"""
Filename parsing for Movie Indexer.

Turns a raw file or folder name into a structured guess (title, year, resolution,
codec, container). Everything here is pure: no filesystem access, no exceptions
for unusable names (an empty title means "could not parse").
"""
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from cleaning_patterns import (
    SUPPORTED_EXTENSIONS,
    clean_release_group_suffix,
    detect_codec,
    detect_container,
    detect_resolution,
    find_title_end,
    normalize_separators,
    remove_bracketed_content,
    remove_edition_tags,
    remove_language_tags,
    remove_quality_tags,
    remove_website_prefixes,
    strip_extension,
)

# First feature film year; nothing older is a plausible release year
MIN_YEAR = 1888

# Titles shorter than this trigger the parent-folder fallback
MIN_TITLE_LENGTH = 3

YEAR_CANDIDATE = re.compile(r'(?<![A-Za-z0-9])(\d{4})(?![A-Za-z0-9])')


@dataclass
class ParsedGuess:
    title: str = ""
    year: Optional[int] = None
    resolution: Optional[str] = None
    codec: Optional[str] = None
    container: Optional[str] = None


@dataclass
class ParsedCandidate:
    """A file found on disk together with what its name tells us"""
    raw_filename: str
    absolute_path: str
    guessed_title: str
    guessed_year: Optional[int] = None
    resolution: Optional[str] = None
    codec: Optional[str] = None
    container: Optional[str] = None
    size_bytes: int = 0
    modified_at: datetime = field(default_factory=datetime.now)

    # Resolver/writer only need the guess-shaped view
    @property
    def title(self) -> str:
        return self.guessed_title

    @property
    def year(self) -> Optional[int]:
        return self.guessed_year


def canonical_path(path) -> str:
    """Absolute, resolved string form used for every stored path comparison"""
    return str(Path(path).expanduser().resolve())


def is_supported_file(path, extensions: Iterable[str] = SUPPORTED_EXTENSIONS) -> bool:
    return Path(str(path)).suffix.lower() in {e.lower() for e in extensions}


def _clean_title(text: str) -> str:
    text = normalize_separators(text, dashes=False)
    text = remove_bracketed_content(text)
    text = remove_quality_tags(text)
    text = remove_edition_tags(text)
    text = remove_language_tags(text)
    text = clean_release_group_suffix(text)
    text = normalize_separators(text)
    return text.strip(' -:,;')


def _split_on_year(text: str, max_year: int):
    """
    Pick the release year and the text that precedes it.

    Prefers the last plausible year before the first release marker whose prefix
    still yields a title ("2001.A.Space.Odyssey.1968" -> 1968, "1917.2019" -> 2019).
    """
    title_end = find_title_end(text)
    candidates = [
        m for m in YEAR_CANDIDATE.finditer(text)
        if MIN_YEAR <= int(m.group(1)) <= max_year
    ]
    for match in reversed([m for m in candidates if m.start() < title_end]):
        head = text[:match.start()]
        if _clean_title(head):
            return int(match.group(1)), head
    # Year tucked behind the release markers: keep it, title ends at the markers
    for match in candidates:
        if match.start() >= title_end:
            return int(match.group(1)), text[:title_end]
    return None, text[:title_end]


def parse_name(name: str, current_year: Optional[int] = None) -> ParsedGuess:
    """
    Parse a single file or folder name.

    >>> parse_name("Movie.Name.2019.1080p.x264-GROUP.mkv")
    ParsedGuess(title='Movie Name', year=2019, resolution='1080p', codec='x264', container='mkv')
    """
    if not name or not name.strip():
        return ParsedGuess()

    max_year = (current_year or datetime.now().year) + 1
    raw = name.strip()
    container = detect_container(raw)
    stem = strip_extension(raw)

    text = remove_website_prefixes(stem)
    year, head = _split_on_year(text, max_year)
    title = _clean_title(head)

    return ParsedGuess(
        title=title,
        year=year,
        resolution=detect_resolution(stem),
        codec=detect_codec(stem),
        container=container,
    )


def parse_media_path(path, current_year: Optional[int] = None) -> ParsedGuess:
    """
    Parse a media file path, falling back to the parent folder name when the
    filename alone yields a title shorter than MIN_TITLE_LENGTH
    (e.g. "Heat (1995) 1080p/cd1.mkv").
    """
    path_obj = Path(str(path))
    guess = parse_name(path_obj.name, current_year)
    if len(guess.title) >= MIN_TITLE_LENGTH or not path_obj.parent.name:
        return guess

    folder = parse_name(path_obj.parent.name, current_year)
    if len(folder.title) <= len(guess.title):
        return guess

    return ParsedGuess(
        title=folder.title,
        year=folder.year or guess.year,
        resolution=guess.resolution or folder.resolution,
        codec=guess.codec or folder.codec,
        # The container is a property of the file, never of the folder
        container=guess.container,
    )


def build_candidate(path, stat_result: os.stat_result, current_year: Optional[int] = None) -> ParsedCandidate:
    """Combine a parsed path with its stat() data"""
    guess = parse_media_path(path, current_year)
    return ParsedCandidate(
        raw_filename=Path(str(path)).name,
        absolute_path=canonical_path(path),
        guessed_title=guess.title,
        guessed_year=guess.year,
        resolution=guess.resolution,
        codec=guess.codec,
        container=guess.container,
        size_bytes=stat_result.st_size,
        modified_at=datetime.fromtimestamp(stat_result.st_mtime),
    )
