"""
Error taxonomy for the movie indexer.

Every error raised by the pipeline derives from IndexerError and carries a stable
`code` and a `status_code` so the HTTP layer can map it without inspecting types.
"Not found" outcomes (no metadata match, unparseable filename) are NOT errors;
they are reported as failed IndexResult entries.
"""
from typing import Optional


class IndexerError(Exception):
    """Base class for all indexer errors"""
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "status_code": self.status_code,
        }


# --- Configuration errors (fatal to start()/scan, never retried) ---

class ConfigurationError(IndexerError):
    code = "CONFIGURATION_ERROR"
    status_code = 400


class FolderNotFoundError(ConfigurationError):
    """The watched root is missing, not a directory, or not readable"""
    code = "FOLDER_NOT_FOUND"
    status_code = 404

    def __init__(self, path, reason: str = "does not exist"):
        super().__init__(f"Movies folder {reason}: {path}", {"path": str(path)})
        self.path = str(path)


# --- Transport / availability errors (propagated, caught per file in bulk runs) ---

class LookupTransportError(IndexerError):
    """The metadata service could not be reached or answered with an error"""
    code = "SERVICE_UNAVAILABLE"
    status_code = 503


class DetailFetchError(LookupTransportError):
    code = "DETAIL_FETCH_FAILED"


class StoreUnavailableError(IndexerError):
    code = "STORE_UNAVAILABLE"
    status_code = 503


# --- State errors ---

class WatcherStateError(IndexerError):
    status_code = 409


class WatcherAlreadyRunningError(WatcherStateError):
    code = "WATCHER_ALREADY_RUNNING"

    def __init__(self, state: str):
        super().__init__(f"Watcher is already running (state: {state})", {"state": state})


class WatcherNotRunningError(WatcherStateError):
    code = "WATCHER_NOT_RUNNING"

    def __init__(self, state: str):
        super().__init__(f"Watcher is not running (state: {state})", {"state": state})


class ScanInProgressError(IndexerError):
    code = "SCAN_IN_PROGRESS"
    status_code = 409

    def __init__(self, operation: str = "scan"):
        super().__init__(f"A {operation} is already in progress", {"operation": operation})


class UnsupportedExtensionError(IndexerError):
    code = "UNSUPPORTED_EXTENSION"
    status_code = 400

    def __init__(self, path):
        super().__init__(f"Unsupported file extension: {path}", {"path": str(path)})
