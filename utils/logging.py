"""
Logging configuration for Movie Indexer.

IMPORTANT: Do NOT use emojis or Unicode symbols (checkmarks, X marks, etc.) in log messages.
Keep log messages plain text only for compatibility and readability.
"""
import sys
import logging
from pathlib import Path

# Log file in root directory
LOG_FILE = Path(__file__).parent.parent / "movie_indexer.log"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class ConsoleLogFilter(logging.Filter):
    """Filter to suppress chatty watchdog internals on console"""
    def filter(self, record):
        # Allow all logs that are WARNING or above
        if record.levelno >= logging.WARNING:
            return True
        # Suppress INFO/DEBUG logs from watchdog's observer threads
        if record.name.startswith('watchdog'):
            return False
        return True


def setup_logging(log_file=None):
    """Configure root logger with file and console handlers"""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture everything

    # Already configured (module imported twice under uvicorn reload)
    if any(getattr(h, "_movie_indexer", False) for h in root_logger.handlers):
        return root_logger

    formatter = logging.Formatter(LOG_FORMAT)

    # File handler: logs everything (DEBUG and above)
    file_handler = logging.FileHandler(log_file or LOG_FILE, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    file_handler._movie_indexer = True
    root_logger.addHandler(file_handler)

    # Console handler: only logs INFO and above
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.addFilter(ConsoleLogFilter())
    console_handler.setFormatter(formatter)
    console_handler._movie_indexer = True
    root_logger.addHandler(console_handler)

    return root_logger
