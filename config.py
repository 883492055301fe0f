"""
Configuration management for Movie Indexer.

Settings live as JSON values in the `config` table; environment variables
override them. The result is an immutable IndexerConfig that is validated once
(`validate()`) and replaced wholesale when something changes.
"""
import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Mapping, Optional

from cleaning_patterns import SUPPORTED_EXTENSIONS
from errors import ConfigurationError
from models import Config
from scanning import DEFAULT_EXCLUDE_PATTERNS, ScanOptions, check_root
from tmdb import DEFAULT_BASE_URL

logger = logging.getLogger(__name__)

ENV_OVERRIDES = {
    "MOVIES_FOLDER_PATH": "movies_folder",
    "TMDB_API_KEY": "tmdb_api_key",
    "TMDB_BASE_URL": "tmdb_base_url",
    "MOVIE_INDEXER_DB": "database_file",
}
ENV_DB_FILE = "MOVIE_INDEXER_DB"


def load_config(session_factory) -> dict:
    """Load configuration from database"""
    db = session_factory()
    try:
        config = {}
        try:
            config_rows = db.query(Config).all()
            for row in config_rows:
                # Parse as JSON - if invalid, log error and skip
                try:
                    config[row.key] = json.loads(row.value)
                except (json.JSONDecodeError, TypeError) as e:
                    logger.warning(f"Invalid JSON in config key '{row.key}': {e}. Skipping.")
                    continue
        except Exception as e:
            # Database tables not initialized yet
            logger.debug(f"Database not initialized yet: {e}")

        return config
    finally:
        db.close()


def save_config(session_factory, config: dict):
    """Save configuration to database"""
    db = session_factory()
    try:
        for key, value in config.items():
            # Always JSON-encode the value, even if it's a string
            value_str = json.dumps(value)
            existing = db.query(Config).filter(Config.key == key).first()
            if existing:
                existing.value = value_str
            else:
                db.add(Config(key=key, value=value_str))
        db.commit()
    finally:
        db.close()


def get_database_file(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    environ = os.environ if environ is None else environ
    return environ.get(ENV_DB_FILE) or None


@dataclass(frozen=True)
class IndexerConfig:
    movies_folder: Optional[str] = None
    extensions: frozenset = SUPPORTED_EXTENSIONS
    recursive: bool = True
    debounce_ms: int = 2000
    exclude_patterns: tuple = DEFAULT_EXCLUDE_PATTERNS
    max_files: Optional[int] = None
    throttle_ms: int = 300
    max_actors: int = 10
    tmdb_api_key: Optional[str] = None
    tmdb_base_url: str = DEFAULT_BASE_URL
    tmdb_language: Optional[str] = None
    database_file: Optional[str] = None
    watch_on_startup: bool = False

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def throttle_seconds(self) -> float:
        return self.throttle_ms / 1000.0

    def scan_options(self) -> ScanOptions:
        """Options for bulk indexing: excludes and the file cap apply"""
        return ScanOptions(
            recursive=self.recursive,
            extensions=self.extensions,
            exclude_patterns=self.exclude_patterns,
            max_files=self.max_files,
        )

    def full_scan_options(self) -> ScanOptions:
        """Options for reconciliation: every supported file under the root"""
        return ScanOptions(recursive=self.recursive, extensions=self.extensions)

    def validate(self) -> "IndexerConfig":
        """
        Resolve and check the movies folder once. Returns a config whose
        movies_folder is the canonical absolute path.
        """
        if not self.movies_folder:
            raise ConfigurationError(
                "MOVIES_FOLDER_PATH is not set. Configure the movies folder "
                "(e.g. MOVIES_FOLDER_PATH=/movies) before indexing."
            )
        if self.debounce_ms < 0 or self.throttle_ms < 0:
            raise ConfigurationError("debounce_ms and throttle_ms must be >= 0")
        if self.max_files is not None and self.max_files < 0:
            raise ConfigurationError("max_files must be >= 0")
        root = check_root(self.movies_folder)
        return replace(self, movies_folder=str(root))


def build_config(settings: Optional[Mapping] = None, environ: Optional[Mapping[str, str]] = None,
                 overrides: Optional[Mapping] = None) -> IndexerConfig:
    """Defaults, then database settings, then environment variables, then explicit overrides"""
    environ = os.environ if environ is None else environ
    values = {}
    known = {f.name for f in fields(IndexerConfig)}

    for key, value in (settings or {}).items():
        if key in known and value is not None:
            values[key] = value
    for env_key, field_name in ENV_OVERRIDES.items():
        if environ.get(env_key):
            values[field_name] = environ[env_key]
    for key, value in (overrides or {}).items():
        if key in known and value is not None:
            values[key] = value

    if "extensions" in values:
        values["extensions"] = frozenset(
            e.lower() if e.startswith(".") else f".{e.lower()}" for e in values["extensions"]
        )
    if "exclude_patterns" in values:
        values["exclude_patterns"] = tuple(values["exclude_patterns"])
    if "movies_folder" in values:
        values["movies_folder"] = str(Path(str(values["movies_folder"])).expanduser())

    return IndexerConfig(**values)
