"""Uvicorn server configuration and startup"""
import uvicorn

from main import logger
from utils.logging import LOG_FILE, LOG_FORMAT

HOST = "127.0.0.1"
PORT = 8002


def get_uvicorn_log_config():
    """Get uvicorn logging configuration"""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": LOG_FORMAT,
            },
            "access": {
                "format": LOG_FORMAT,
            },
        },
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
            "access": {
                "formatter": "access",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
            "file_default": {
                "formatter": "default",
                "class": "logging.FileHandler",
                "filename": str(LOG_FILE),
                "encoding": "utf-8",
            },
            "file_access": {
                "formatter": "access",
                "class": "logging.FileHandler",
                "filename": str(LOG_FILE),
                "encoding": "utf-8",
            },
        },
        "loggers": {
            "uvicorn.error": {
                "handlers": ["default", "file_default"],
                "level": "INFO",
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["access", "file_access"],
                "level": "INFO",
                "propagate": False,
            },
        },
    }


def run_server(host: str = HOST, port: int = PORT, dev: bool = False):
    """Run the uvicorn server with configured settings

    Args:
        dev: If True, enables auto-reload on .py file changes
    """
    logger.info("=" * 60)
    logger.info("Starting Movie Indexer server")
    logger.info(f"Server URL: http://{host}:{port}")
    if dev:
        logger.info("DEV MODE: Auto-reload enabled for *.py files")
    logger.info("=" * 60)

    uvicorn_kwargs = {
        "app": "main:app",
        "host": host,
        "port": port,
        "use_colors": False,
        "log_config": get_uvicorn_log_config(),
    }

    if dev:
        # Dev mode: enable reload watching only .py files
        uvicorn_kwargs.update({
            "reload": True,
            "reload_includes": ["*.py"],
            "reload_excludes": ["*.pyc", "__pycache__/*", ".git/*"],
        })
    else:
        uvicorn_kwargs["reload"] = False

    # uvicorn's own signal handling triggers the lifespan shutdown (stop watcher, drain)
    uvicorn.run(**uvicorn_kwargs)


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Movie Indexer Server")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--dev", action="store_true", help="Enable dev mode with auto-reload on .py changes")
    args = parser.parse_args()

    run_server(host=args.host, port=args.port, dev=args.dev)
