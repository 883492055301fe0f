"""
Centralized cleaning patterns for movie file and folder names.

This module is the single source of truth for the release-metadata vocabulary:
resolution markers, codecs, sources, editions, containers and the supported
video extensions. The parser composes these helpers; nothing here does I/O.
"""

import re
from typing import Optional, Set

# ============================================================================
# SUPPORTED FILES
# ============================================================================

SUPPORTED_EXTENSIONS = frozenset({
    '.mp4', '.mkv', '.avi', '.mov', '.wmv', '.flv', '.webm', '.m4v',
})

CONTAINERS = {ext.lstrip('.') for ext in SUPPORTED_EXTENSIONS}

# ============================================================================
# RESOLUTION & QUALITY PATTERNS
# ============================================================================

RESOLUTIONS = {
    '2160p', '1080p', '1080i', '720p', '576p', '480p', '4k', 'uhd',
}

HDR_FORMATS = {
    'hdr', 'hdr10', 'hdr10+', 'dolby vision', 'dv',
}

# ============================================================================
# VIDEO SOURCE PATTERNS
# ============================================================================

VIDEO_SOURCES = {
    'webrip', 'web-dl', 'webdl', 'hdtv',
    'bluray', 'blu-ray', 'bdrip', 'brrip', 'hdrip',
    'remux', 'dvdrip', 'dvdscr',
    'cam', 'ts', 'tc', 'hdcam', 'hdts',
    'screener', 'scr', 'r5', 'dvdr',
}

# ============================================================================
# VIDEO CODEC PATTERNS
# ============================================================================

VIDEO_CODECS = {
    'x264', 'x265', 'h264', 'h265', 'h.264', 'h.265',
    'hevc', 'avc', 'xvid', 'divx', 'vp9', 'av1',
}

# ============================================================================
# AUDIO CODEC & FORMAT PATTERNS
# ============================================================================

AUDIO_CODECS = {
    'aac', 'ac3', 'eac3', 'mp3', 'flac', 'opus',
    'dts', 'dts-hd', 'dtshd', 'truehd', 'atmos',
}

# ============================================================================
# EDITION & RELEASE TYPE PATTERNS
# ============================================================================

EDITION_TAGS = {
    'extended', 'unrated', 'remastered', 'directors cut', 'final cut',
    'ultimate edition', 'special edition', 'theatrical cut',
    'criterion collection', 'proper', 'repack', 'rerip',
    'limited', 'internal',
}

# ============================================================================
# LANGUAGE TAGS
# ============================================================================

LANGUAGE_TAGS = {
    'english', 'french', 'german', 'spanish', 'italian',
    'truefrench', 'vostfr', 'multi', 'dual audio', 'dubbed',
    'en-sub', 'eng-sub', 'subbed',
}

# ============================================================================
# RELEASE GROUPS (common scene/p2p groups that show up without a dash)
# ============================================================================

RELEASE_GROUPS = {
    'rarbg', 'yts', 'yify', 'evo', 'etrg', 'fgt', 'sparks', 'geckos',
    'ntb', 'ion10', 'psa', 'tigole', 'qxr', 'amiable',
}

# ============================================================================
# COMPILED REGEX PATTERNS
# ============================================================================

def _build_word_pattern(words: Set[str]) -> str:
    """Build a regex pattern that matches any of the words as whole words."""
    escaped = [re.escape(w).replace(r'\ ', r'[-\s._]*') for w in sorted(words, key=len, reverse=True)]
    return r'(?<![A-Za-z0-9])(?:' + '|'.join(escaped) + r')(?![A-Za-z0-9])'


RESOLUTION_PATTERN = _build_word_pattern(RESOLUTIONS)
VIDEO_CODEC_PATTERN = r'(?<![A-Za-z0-9])(?:x26[45]|h\.?\s?26[45]|hevc|avc|xvid|divx|vp9|av1)(?![A-Za-z0-9])'
AUDIO_CODEC_PATTERN = r'(?<![A-Za-z0-9])(?:aac\d*(?:[\s.]?\d)?|e?ac3|dts(?:-?hd)?|truehd|atmos|mp3|flac|opus|ddp?\d[\s.]?\d)(?![A-Za-z0-9])'
AUDIO_CHANNEL_PATTERN = r'(?<![0-9])(?:5\.1|7\.1|2\.0)(?![0-9])'
EDITION_PATTERN = _build_word_pattern(EDITION_TAGS)
LANGUAGE_PATTERN = _build_word_pattern(LANGUAGE_TAGS)
RELEASE_GROUP_PATTERN = _build_word_pattern(RELEASE_GROUPS)
CONTAINER_PATTERN = _build_word_pattern(CONTAINERS)

# Short source and HDR tags (ts, tc, cam, r5, dv) collide with real titles
# ("Cam", "TC"), so only the unambiguous ones terminate or get stripped from a title.
STRONG_SOURCE_PATTERN = _build_word_pattern({s for s in VIDEO_SOURCES if len(s) >= 4})
STRONG_HDR_PATTERN = _build_word_pattern({f for f in HDR_FORMATS if len(f) >= 3})

TITLE_TERMINATORS = [
    RESOLUTION_PATTERN,
    VIDEO_CODEC_PATTERN,
    STRONG_SOURCE_PATTERN,
    STRONG_HDR_PATTERN,
]

QUALITY_SOURCE_PATTERNS = [
    RESOLUTION_PATTERN,
    STRONG_HDR_PATTERN,
    STRONG_SOURCE_PATTERN,
    VIDEO_CODEC_PATTERN,
    AUDIO_CODEC_PATTERN,
    AUDIO_CHANNEL_PATTERN,
    RELEASE_GROUP_PATTERN,
]

# ============================================================================
# TOKEN DETECTION
# ============================================================================

def detect_resolution(text: str) -> Optional[str]:
    """Return the normalized resolution marker found in text, if any."""
    match = re.search(RESOLUTION_PATTERN, text, flags=re.IGNORECASE)
    if not match:
        return None
    value = match.group(0).lower()
    if value == 'uhd':
        return '2160p'
    return value


def detect_codec(text: str) -> Optional[str]:
    """Return the normalized video codec found in text (h.264 -> h264)."""
    match = re.search(VIDEO_CODEC_PATTERN, text, flags=re.IGNORECASE)
    if not match:
        return None
    return re.sub(r'[\s.]', '', match.group(0).lower())


def detect_container(text: str) -> Optional[str]:
    """Return the container from a trailing extension, else from a bare token."""
    ext_match = re.search(r'\.([A-Za-z0-9]{2,4})$', text)
    if ext_match and ext_match.group(1).lower() in CONTAINERS:
        return ext_match.group(1).lower()
    match = re.search(CONTAINER_PATTERN, text, flags=re.IGNORECASE)
    if match:
        return match.group(0).lower()
    return None


def strip_extension(text: str) -> str:
    """Drop a trailing known container extension."""
    ext_match = re.search(r'\.([A-Za-z0-9]{2,4})$', text)
    if ext_match and ext_match.group(1).lower() in CONTAINERS:
        return text[:ext_match.start()]
    return text


def find_title_end(text: str) -> int:
    """Index of the first strong release-metadata marker, or len(text)."""
    end = len(text)
    for pattern in TITLE_TERMINATORS:
        match = re.search(pattern, text, flags=re.IGNORECASE)
        if match and match.start() < end:
            end = match.start()
    return end

# ============================================================================
# HELPER FUNCTIONS FOR COMMON CLEANING OPERATIONS
# ============================================================================

def remove_quality_tags(text: str) -> str:
    """Remove all quality/source/codec tags from text."""
    for pattern in QUALITY_SOURCE_PATTERNS:
        text = re.sub(pattern, ' ', text, flags=re.IGNORECASE)
    return re.sub(r'\s+', ' ', text).strip()


def remove_edition_tags(text: str) -> str:
    """Remove edition/release type tags from text."""
    text = re.sub(EDITION_PATTERN, ' ', text, flags=re.IGNORECASE)
    return re.sub(r'\s+', ' ', text).strip()


def remove_language_tags(text: str) -> str:
    """Remove language tags from text."""
    text = re.sub(LANGUAGE_PATTERN, ' ', text, flags=re.IGNORECASE)
    return re.sub(r'\s+', ' ', text).strip()


def remove_website_prefixes(text: str) -> str:
    """Remove website prefixes like 'www.site.com - ' or '[ www.site.com ] - '."""
    # Bracketed website prefixes
    text = re.sub(r'^\s*\[\s*www\.[^\]]+\]\s*-?\s*', '', text, flags=re.IGNORECASE)
    # Non-bracketed website prefixes
    text = re.sub(r'^\s*www\.[^\s]+\s+-\s*', '', text, flags=re.IGNORECASE)
    return text.strip()


def remove_bracketed_content(text: str) -> str:
    """Remove [..] and {..} blocks, plus parentheses holding release markers."""
    text = re.sub(r'\[[^\]]*\]', ' ', text)
    text = re.sub(r'\{[^}]*\}', ' ', text)

    def should_remove(match):
        inner = match.group(1)
        for pattern in QUALITY_SOURCE_PATTERNS + [EDITION_PATTERN, LANGUAGE_PATTERN]:
            if re.search(pattern, inner, flags=re.IGNORECASE):
                return ' '
        return match.group(0)

    text = re.sub(r'\(([^)]*)\)', should_remove, text)
    text = re.sub(r'\(\s*\)', ' ', text)
    # Dangling opener left behind after the year was cut, e.g. "Heat ("
    text = re.sub(r'\s*[\(\[\{<][^)\]}>]*$', '', text)
    return re.sub(r'\s+', ' ', text).strip()


def clean_release_group_suffix(text: str) -> str:
    """
    Remove a scene-group suffix such as ' -GROUP' or ' - [GROUP]' from the end.

    A dash with no whitespace before it only counts when the group is upper-case
    and the name has several words ("Movie Name-GROUP"), so hyphenated titles
    ("Spider-Man", "Jay-Z") survive.
    """
    text = re.sub(r'\s-\s*\[?[A-Za-z0-9]{2,15}\]?\s*$', '', text).strip()
    if ' ' in text:
        text = re.sub(r'(?<=[a-z0-9])-[A-Z0-9]*[A-Z][A-Z0-9]*$', '', text).strip()
    return text


def normalize_separators(text: str, dashes: bool = True) -> str:
    """Convert dots and underscores (and dashes) to spaces, normalize whitespace."""
    text = re.sub(r'[._]+', ' ', text)
    if dashes:
        text = re.sub(r'\s*-+\s*', ' ', text)
    text = re.sub(r'\s+', ' ', text)
    return text.strip(' \t.-_')


def strip_punctuation(text: str) -> str:
    """Aggressive normalization for metadata queries: no punctuation, single spaces."""
    text = re.sub(r'[^\w\s]', ' ', text)
    return re.sub(r'\s+', ' ', text).strip()
