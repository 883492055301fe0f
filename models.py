"""
SQLAlchemy database models (table definitions) for Movie Indexer.
"""
from sqlalchemy import (
    BigInteger, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class Movie(Base):
    """Catalog entry: one row per external (TMDB) id, bound to at most one local file"""
    __tablename__ = "movies"

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    tmdb_id = Column(Integer, nullable=False, unique=True, index=True)
    title = Column(String, nullable=False, index=True)
    synopsis = Column(Text, nullable=True)
    poster_url = Column(String, nullable=True)
    trailer_url = Column(String, nullable=True)
    release_date = Column(Date, nullable=True)
    duration = Column(Integer, nullable=True)  # Runtime in minutes
    rating = Column(Float, nullable=True)
    # Local file binding
    local_path = Column(String, nullable=True, index=True)  # Canonical absolute path
    filename = Column(String, nullable=True)
    file_size = Column(BigInteger, nullable=True)
    resolution = Column(String, nullable=True)
    codec = Column(String, nullable=True)
    container = Column(String, nullable=True)
    last_scanned = Column(DateTime, nullable=True)
    created = Column(DateTime, default=func.now(), nullable=False)
    updated = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)


class Genre(Base):
    __tablename__ = "genres"

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    name = Column(String, nullable=False, unique=True, index=True)
    created = Column(DateTime, default=func.now(), nullable=False)


class Actor(Base):
    __tablename__ = "actors"

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    name = Column(String, nullable=False, unique=True, index=True)
    created = Column(DateTime, default=func.now(), nullable=False)


class MovieGenre(Base):
    __tablename__ = "movie_genres"
    __table_args__ = (UniqueConstraint("movie_id", "genre_id", name="uq_movie_genre"),)

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    movie_id = Column(Integer, ForeignKey('movies.id', ondelete='CASCADE'), nullable=False, index=True)
    genre_id = Column(Integer, ForeignKey('genres.id', ondelete='CASCADE'), nullable=False, index=True)
    created = Column(DateTime, default=func.now(), nullable=False)


class MovieActor(Base):
    __tablename__ = "movie_actors"
    __table_args__ = (UniqueConstraint("movie_id", "actor_id", name="uq_movie_actor"),)

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    movie_id = Column(Integer, ForeignKey('movies.id', ondelete='CASCADE'), nullable=False, index=True)
    actor_id = Column(Integer, ForeignKey('actors.id', ondelete='CASCADE'), nullable=False, index=True)
    character = Column(String, nullable=False, default="")
    created = Column(DateTime, default=func.now(), nullable=False)


class Review(Base):
    """User reviews; only touched here when the reviewed movie is removed"""
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    movie_id = Column(Integer, ForeignKey('movies.id', ondelete='CASCADE'), nullable=False, index=True)
    author = Column(String, nullable=True)
    rating = Column(Integer, nullable=True)  # 1-5
    comment = Column(Text, nullable=True)
    created = Column(DateTime, default=func.now(), nullable=False)
    updated = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)


class Config(Base):
    __tablename__ = "config"

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    key = Column(String, nullable=False, unique=True, index=True)
    value = Column(Text, nullable=True)
    created = Column(DateTime, default=func.now(), nullable=False)
    updated = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)


class IndexedPath(Base):
    """One row per media file seen by the last reconciliation pass"""
    __tablename__ = "indexed_paths"

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    path = Column(String, nullable=False, unique=True, index=True)
    created = Column(DateTime, default=func.now(), nullable=False)


class IndexState(Base):
    """Singleton row (id=1) describing the last reconciliation pass"""
    __tablename__ = "index_state"

    id = Column(Integer, primary_key=True, nullable=False)
    last_indexed_at = Column(DateTime, nullable=True)
    file_count = Column(Integer, default=0, nullable=False)
    updated = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)
