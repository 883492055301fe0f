import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, HTTPException, Query

# Setup logging
from utils.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

from config import build_config, get_database_file, load_config, save_config
from core.models import (
    ConfigRequest,
    IndexFileRequest,
    IndexResultResponse,
    IndexSummaryResponse,
    ReconcileResponse,
    WatcherStatusResponse,
)
from database import create_db_engine, init_db, make_session_factory
from errors import IndexerError
from services import IndexerServices, build_services

# Wired during lifespan startup
services: IndexerServices | None = None
session_factory = None

# Server start time for uptime tracking
_server_start_time: float | None = None


def _http_error(e: IndexerError) -> HTTPException:
    logger.warning(f"{e.code}: {e.message}")
    return HTTPException(status_code=e.status_code, detail=e.to_dict())


def get_services() -> IndexerServices:
    if services is None:
        raise HTTPException(status_code=503, detail="Indexer is still starting up")
    return services


@asynccontextmanager
async def lifespan(app):
    """Lifespan context manager for startup and shutdown"""
    global services, session_factory, _server_start_time
    _server_start_time = time.time()

    try:
        logger.info("=== LIFESPAN STARTUP BEGIN ===")
        engine = create_db_engine(get_database_file())
        init_db(engine)
        session_factory = make_session_factory(engine)

        config = build_config(load_config(session_factory))
        services = build_services(session_factory, config)
        logger.info(f"Startup: movies folder = {services.config.movies_folder or '(not set)'}")
    except Exception as e:
        logger.error(f"Error during lifespan startup: {e}", exc_info=True)
        raise

    if services.config.watch_on_startup:
        try:
            await services.start_watcher()
        except IndexerError as e:
            logger.error(f"Could not start watcher on startup: {e}")

    logger.info("=== LIFESPAN STARTUP COMPLETE ===")

    yield

    # Shutdown
    logger.info("Shutdown event triggered, cleaning up...")
    await services.shutdown()
    engine.dispose()


# Create FastAPI app with lifespan
app = FastAPI(title="Movie Indexer", lifespan=lifespan)


# ----------------------------------------------------------------------
# Watcher
# ----------------------------------------------------------------------

@app.get("/api/watcher/status", response_model=WatcherStatusResponse)
async def get_watcher_status():
    """Watcher state plus the last reconcile snapshot"""
    try:
        return await get_services().watcher_status()
    except IndexerError as e:
        raise _http_error(e) from e


@app.post("/api/watcher/start", response_model=WatcherStatusResponse)
async def start_watcher():
    try:
        return await get_services().start_watcher()
    except IndexerError as e:
        raise _http_error(e) from e


@app.post("/api/watcher/stop", response_model=WatcherStatusResponse)
async def stop_watcher():
    try:
        return await get_services().stop_watcher()
    except IndexerError as e:
        raise _http_error(e) from e


@app.post("/api/watcher/restart", response_model=WatcherStatusResponse)
async def restart_watcher():
    try:
        return await get_services().restart_watcher()
    except IndexerError as e:
        raise _http_error(e) from e


@app.post("/api/watcher/index-file")
async def index_file(request: IndexFileRequest):
    """Index one file now, bypassing the debounce"""
    logger.info(f"POST /api/watcher/index-file - path={request.path}")
    try:
        result = await get_services().index_file(request.path)
    except IndexerError as e:
        raise _http_error(e) from e

    if result is None:
        return {"status": "skipped", "path": request.path}
    return {"status": "indexed" if result.success else "failed", "result": IndexResultResponse(**asdict(result))}


# ----------------------------------------------------------------------
# Bulk indexing / reconciliation
# ----------------------------------------------------------------------

@app.post("/api/index", response_model=IndexSummaryResponse)
async def index_movies():
    """Index every file already in the movies folder (waits for completion)"""
    try:
        summary = await get_services().index_existing_files()
    except IndexerError as e:
        raise _http_error(e) from e
    return summary.to_dict()


@app.get("/api/index/progress")
async def get_index_progress(logs: int = Query(100, ge=0, description="Number of log entries to return")):
    """Get current bulk index progress"""
    return get_services().indexer.progress.to_dict(log_tail=logs)


@app.post("/api/reconcile", response_model=ReconcileResponse)
async def reconcile():
    """Delete catalog entries whose file is gone and rewrite the index snapshot"""
    try:
        summary = await get_services().reconcile()
    except IndexerError as e:
        raise _http_error(e) from e
    return summary.to_dict()


# ----------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------

@app.get("/api/config")
async def get_config():
    """Get current configuration"""
    config = get_services().config
    return {
        "movies_folder": config.movies_folder or "",
        "recursive": config.recursive,
        "debounce_ms": config.debounce_ms,
        "exclude_patterns": list(config.exclude_patterns),
        "max_files": config.max_files,
        "throttle_ms": config.throttle_ms,
        "max_actors": config.max_actors,
        "tmdb_language": config.tmdb_language,
        "tmdb_api_key_set": bool(config.tmdb_api_key),
        "watch_on_startup": config.watch_on_startup,
    }


@app.post("/api/config")
async def set_config(request: ConfigRequest):
    """Persist settings and apply them to the running pipeline"""
    updates = request.model_dump(exclude_none=True)
    logger.info(f"POST /api/config - Request data: {updates}")
    svc = get_services()

    settings = await asyncio.to_thread(load_config, session_factory)
    settings.update(updates)
    try:
        # Values sent here win over the environment for this process
        new_config = build_config(settings, overrides=updates).validate()
        await asyncio.to_thread(save_config, session_factory, updates)
        restarted = await svc.reconfigure(new_config)
    except IndexerError as e:
        raise _http_error(e) from e

    return {
        "status": "saved",
        "movies_folder": svc.config.movies_folder,
        "watcher_restarted": restarted,
    }


@app.get("/api/health")
async def get_health():
    uptime = time.time() - _server_start_time if _server_start_time else 0
    return {"status": "ok", "uptime_seconds": round(uptime, 1)}
