"""
Database setup and the catalog store for Movie Indexer.

CatalogStore is the only code that talks SQL. Every public method is one unit of
work (own session, own transaction) so callers can run them from worker threads
via asyncio.to_thread without sharing sessions.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from sqlalchemy import create_engine, delete, event, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from errors import StoreUnavailableError
from models import (
    Actor,
    Base,
    Genre,
    IndexedPath,
    IndexState,
    Movie,
    MovieActor,
    MovieGenre,
    Review,
)

logger = logging.getLogger(__name__)

# Configuration
SCRIPT_DIR = Path(__file__).parent.absolute()
DEFAULT_DB_FILE = SCRIPT_DIR / "movie_indexer.db"

INDEX_STATE_ID = 1

FILE_BINDING_COLUMNS = ("local_path", "filename", "file_size", "resolution", "codec", "container", "last_scanned")


def set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def create_db_engine(db_file=None):
    """Create the SQLite engine (foreign keys + WAL enabled on every connection)"""
    db_file = Path(db_file) if db_file else DEFAULT_DB_FILE
    engine = create_engine(
        f"sqlite:///{db_file}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 15}  # Sessions are used from worker threads
    )
    event.listen(engine, "connect", set_sqlite_pragma)
    return engine


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine):
    """Initialize database tables"""
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database ready: {engine.url}")


@dataclass(frozen=True)
class IndexStateSnapshot:
    known_paths: frozenset
    last_indexed_at: Optional[datetime] = None

    @property
    def file_count(self) -> int:
        return len(self.known_paths)


class CatalogStore:
    """Upsert/read/delete primitives used by the catalog writer and the reconciler"""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    @contextmanager
    def session_scope(self):
        db: Session = self._session_factory()
        try:
            yield db
            db.commit()
        except OperationalError as e:
            db.rollback()
            logger.error(f"Database unavailable: {e}")
            raise StoreUnavailableError(f"Database unavailable: {e.orig}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Catalog entries
    # ------------------------------------------------------------------

    def upsert_movie(self, match, candidate, scanned_at: Optional[datetime] = None) -> int:
        """
        Insert or update the catalog entry keyed by the external id and (re)bind it
        to the candidate's local file. Returns the movie id.
        """
        scanned_at = scanned_at or datetime.now()
        values = {
            "tmdb_id": match.external_id,
            "title": match.title,
            "synopsis": match.overview or "",
            "poster_url": match.poster_url,
            "trailer_url": match.trailer_url,
            "release_date": match.release_date,
            "duration": match.runtime or 0,
            "local_path": candidate.absolute_path,
            "filename": candidate.raw_filename,
            "file_size": candidate.size_bytes,
            "resolution": candidate.resolution or "",
            "codec": candidate.codec or "",
            "container": candidate.container or "",
            "last_scanned": scanned_at,
        }
        # Rating is user-owned; only seeded on first insert
        stmt = sqlite_insert(Movie).values(rating=0, **values)
        # An existing entry only gets its file binding refreshed; descriptive
        # columns are left to update_movie_details
        update_values = {k: values[k] for k in FILE_BINDING_COLUMNS}
        update_values["updated"] = func.now()
        stmt = stmt.on_conflict_do_update(index_elements=[Movie.tmdb_id], set_=update_values)

        with self.session_scope() as db:
            db.execute(stmt)
            movie_id = db.execute(
                select(Movie.id).where(Movie.tmdb_id == match.external_id)
            ).scalar_one()
        return movie_id

    def update_movie_details(self, movie_id: int, match) -> None:
        """Overwrite the descriptive columns with a detailed match"""
        with self.session_scope() as db:
            movie = db.get(Movie, movie_id)
            if movie is None:
                return
            movie.title = match.title
            movie.synopsis = match.overview or ""
            movie.poster_url = match.poster_url
            movie.trailer_url = match.trailer_url
            movie.release_date = match.release_date
            movie.duration = match.runtime or 0
            movie.updated = datetime.now()

    def get_movie(self, movie_id: int) -> Optional[Movie]:
        with self.session_scope() as db:
            return db.get(Movie, movie_id)

    def get_movie_by_path(self, local_path: str) -> Optional[Movie]:
        with self.session_scope() as db:
            return db.execute(
                select(Movie).where(Movie.local_path == local_path)
            ).scalars().first()

    def list_bound_movies(self) -> List[Movie]:
        """All catalog entries that currently have a local path"""
        with self.session_scope() as db:
            return list(db.execute(
                select(Movie).where(Movie.local_path.is_not(None)).order_by(Movie.id)
            ).scalars())

    def delete_movie_cascade(self, movie_id: int) -> None:
        """Delete a movie plus its genre/actor links and reviews in one transaction"""
        with self.session_scope() as db:
            db.execute(delete(MovieGenre).where(MovieGenre.movie_id == movie_id))
            db.execute(delete(MovieActor).where(MovieActor.movie_id == movie_id))
            db.execute(delete(Review).where(Review.movie_id == movie_id))
            db.execute(delete(Movie).where(Movie.id == movie_id))

    # ------------------------------------------------------------------
    # Genres / actors (shared, never deleted here)
    # ------------------------------------------------------------------

    def link_genre(self, movie_id: int, name: str) -> int:
        """Upsert the genre by name, then the (movie, genre) link. Returns the genre id."""
        with self.session_scope() as db:
            db.execute(
                sqlite_insert(Genre).values(name=name)
                .on_conflict_do_nothing(index_elements=[Genre.name])
            )
            genre_id = db.execute(select(Genre.id).where(Genre.name == name)).scalar_one()
            db.execute(
                sqlite_insert(MovieGenre).values(movie_id=movie_id, genre_id=genre_id)
                .on_conflict_do_nothing(index_elements=[MovieGenre.movie_id, MovieGenre.genre_id])
            )
        return genre_id

    def link_actor(self, movie_id: int, name: str, character: str = "") -> int:
        """Upsert the actor by name, then the (movie, actor) link. Returns the actor id."""
        with self.session_scope() as db:
            db.execute(
                sqlite_insert(Actor).values(name=name)
                .on_conflict_do_nothing(index_elements=[Actor.name])
            )
            actor_id = db.execute(select(Actor.id).where(Actor.name == name)).scalar_one()
            db.execute(
                sqlite_insert(MovieActor).values(movie_id=movie_id, actor_id=actor_id, character=character)
                .on_conflict_do_nothing(index_elements=[MovieActor.movie_id, MovieActor.actor_id])
            )
        return actor_id

    def get_genre_names(self, movie_id: int) -> List[str]:
        with self.session_scope() as db:
            return list(db.execute(
                select(Genre.name).join(MovieGenre, MovieGenre.genre_id == Genre.id)
                .where(MovieGenre.movie_id == movie_id).order_by(Genre.name)
            ).scalars())

    def get_actor_names(self, movie_id: int) -> List[str]:
        with self.session_scope() as db:
            return list(db.execute(
                select(Actor.name).join(MovieActor, MovieActor.actor_id == Actor.id)
                .where(MovieActor.movie_id == movie_id).order_by(MovieActor.id)
            ).scalars())

    # ------------------------------------------------------------------
    # Index state snapshot
    # ------------------------------------------------------------------

    def replace_index_state(self, paths: Iterable[str], indexed_at: Optional[datetime] = None) -> IndexStateSnapshot:
        """Overwrite the snapshot wholesale with the given path set"""
        indexed_at = indexed_at or datetime.now()
        known = frozenset(paths)
        with self.session_scope() as db:
            db.execute(delete(IndexedPath))
            if known:
                db.execute(sqlite_insert(IndexedPath), [{"path": p} for p in sorted(known)])
            stmt = sqlite_insert(IndexState).values(
                id=INDEX_STATE_ID, last_indexed_at=indexed_at, file_count=len(known)
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[IndexState.id],
                set_={"last_indexed_at": indexed_at, "file_count": len(known), "updated": func.now()},
            )
            db.execute(stmt)
        return IndexStateSnapshot(known_paths=known, last_indexed_at=indexed_at)

    def read_index_state(self) -> IndexStateSnapshot:
        with self.session_scope() as db:
            paths = frozenset(db.execute(select(IndexedPath.path)).scalars())
            state = db.get(IndexState, INDEX_STATE_ID)
            return IndexStateSnapshot(
                known_paths=paths,
                last_indexed_at=state.last_indexed_at if state else None,
            )
