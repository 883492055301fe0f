"""
Catalog writer: persist a resolved match and its genre/cast relations.

Every step is an upsert, so persisting the same (candidate, match) twice leaves
exactly one movie row and one link row per genre/actor.
"""
import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from database import CatalogStore
from errors import DetailFetchError, LookupTransportError
from models import Movie
from tmdb import LookupService, MetadataMatch

logger = logging.getLogger(__name__)

DEFAULT_MAX_ACTORS = 10


class CatalogWriter:
    def __init__(self, store: CatalogStore, lookup: LookupService, max_actors: int = DEFAULT_MAX_ACTORS):
        self.store = store
        self.lookup = lookup
        self.max_actors = max_actors

    async def _fetch_detail(self, match: MetadataMatch) -> MetadataMatch:
        if match.is_detailed:
            return match
        try:
            return await self.lookup.get_by_id(match.external_id)
        except LookupTransportError as e:
            raise DetailFetchError(
                f"Could not fetch details for '{match.title}' [{match.external_id}]: {e}",
                {"external_id": match.external_id},
            ) from e

    async def _genre_names(self, detail: MetadataMatch) -> List[str]:
        if detail.genre_names:
            return detail.genre_names
        if not detail.genre_ids:
            return []
        genres = await self.lookup.list_genres()
        return [genres[genre_id] for genre_id in detail.genre_ids if genre_id in genres]

    async def persist(self, candidate, match: MetadataMatch, scanned_at: Optional[datetime] = None) -> Movie:
        """
        Upsert the catalog entry for `match`, bind it to the candidate's file and
        attach genres and the first `max_actors` cast members.

        Raises DetailFetchError if the full record cannot be fetched; at that
        point only the initial upsert has been written.
        """
        movie_id = await asyncio.to_thread(self.store.upsert_movie, match, candidate, scanned_at)
        logger.info(f"Saved movie '{match.title}' [{match.external_id}] -> id={movie_id} ({candidate.raw_filename})")

        detail = await self._fetch_detail(match)
        await asyncio.to_thread(self.store.update_movie_details, movie_id, detail)

        genre_names = await self._genre_names(detail)
        for name in dict.fromkeys(n for n in genre_names if n):
            await asyncio.to_thread(self.store.link_genre, movie_id, name)

        actors = [name for name in detail.cast[:self.max_actors] if name]
        for name in dict.fromkeys(actors):
            await asyncio.to_thread(self.store.link_actor, movie_id, name, "")

        logger.debug(f"Linked {len(genre_names)} genre(s) and {len(actors)} actor(s) to movie id={movie_id}")
        return await asyncio.to_thread(self.store.get_movie, movie_id)
