"""
Pydantic models for request/response validation in the Movie Indexer API.
"""
from pydantic import BaseModel


class IndexFileRequest(BaseModel):
    path: str


class ConfigRequest(BaseModel):
    movies_folder: str | None = None
    recursive: bool | None = None
    debounce_ms: int | None = None
    exclude_patterns: list[str] | None = None
    max_files: int | None = None
    throttle_ms: int | None = None
    max_actors: int | None = None
    tmdb_language: str | None = None
    watch_on_startup: bool | None = None


class IndexResultResponse(BaseModel):
    filename: str
    path: str
    title: str = ""
    year: int | None = None
    success: bool
    error: str | None = None
    movie_id: int | None = None


class IndexSummaryResponse(BaseModel):
    total: int
    succeeded: int
    failed: int
    failures: list[dict] = []


class ReconcileResponse(BaseModel):
    removed_count: int
    failed_count: int
    kept_count: int
    file_count: int
    indexed_at: str | None = None


class WatcherStatusResponse(BaseModel):
    state: str
    is_running: bool
    watch_path: str | None = None
    recursive: bool
    debounce_ms: int
    processing_count: int
    active_timers: int
    snapshot_file_count: int | None = None
    last_indexed_at: str | None = None
