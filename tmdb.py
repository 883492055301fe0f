"""
Metadata lookup service for Movie Indexer (TMDB v3 REST API).

The HTTP calls use requests and are blocking, so the public async methods run
them on a worker thread. Transport problems (connection errors, timeouts, non-2xx
answers) raise LookupTransportError; an empty search is just an empty list.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

import requests

from errors import LookupTransportError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.themoviedb.org/3"
IMAGE_BASE_URL = "https://image.tmdb.org/t/p"
POSTER_SIZE = "w500"
REQUEST_TIMEOUT = 10


def parse_release_date(value) -> Optional[date]:
    """TMDB returns 'YYYY-MM-DD' or an empty string for unknown dates"""
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def get_image_url(poster_path: Optional[str], size: str = POSTER_SIZE) -> Optional[str]:
    if not poster_path:
        return None
    return f"{IMAGE_BASE_URL}/{size}{poster_path}"


def pick_trailer_key(videos: List[dict]) -> Optional[str]:
    """First YouTube trailer or teaser, in provider order"""
    for video in videos or []:
        if video.get("site") == "YouTube" and video.get("type") in ("Trailer", "Teaser") and video.get("key"):
            return video["key"]
    return None


@dataclass
class MetadataMatch:
    external_id: int
    title: str
    release_date: Optional[date] = None
    overview: str = ""
    poster_path: Optional[str] = None
    trailer_key: Optional[str] = None
    runtime: Optional[int] = None
    vote_average: Optional[float] = None
    genre_ids: List[int] = field(default_factory=list)
    genre_names: List[str] = field(default_factory=list)
    cast: List[str] = field(default_factory=list)
    is_detailed: bool = False

    @property
    def release_year(self) -> Optional[int]:
        return self.release_date.year if self.release_date else None

    @property
    def poster_url(self) -> Optional[str]:
        return get_image_url(self.poster_path)

    @property
    def trailer_url(self) -> Optional[str]:
        if not self.trailer_key:
            return None
        return f"https://www.youtube.com/watch?v={self.trailer_key}"

    @classmethod
    def from_summary(cls, payload: dict) -> "MetadataMatch":
        """Build from a /search/movie result"""
        return cls(
            external_id=int(payload["id"]),
            title=payload.get("title") or payload.get("original_title") or "",
            release_date=parse_release_date(payload.get("release_date")),
            overview=payload.get("overview") or "",
            poster_path=payload.get("poster_path"),
            vote_average=payload.get("vote_average"),
            genre_ids=list(payload.get("genre_ids") or []),
        )

    @classmethod
    def from_detail(cls, payload: dict) -> "MetadataMatch":
        """Build from /movie/{id}?append_to_response=videos,credits"""
        genres = payload.get("genres") or []
        credits = payload.get("credits") or {}
        videos = (payload.get("videos") or {}).get("results") or []
        return cls(
            external_id=int(payload["id"]),
            title=payload.get("title") or payload.get("original_title") or "",
            release_date=parse_release_date(payload.get("release_date")),
            overview=payload.get("overview") or "",
            poster_path=payload.get("poster_path"),
            trailer_key=pick_trailer_key(videos),
            runtime=payload.get("runtime"),
            vote_average=payload.get("vote_average"),
            genre_ids=[g["id"] for g in genres if "id" in g] or list(payload.get("genre_ids") or []),
            genre_names=[g["name"] for g in genres if g.get("name")],
            cast=[c.get("name") for c in credits.get("cast") or [] if c.get("name")],
            is_detailed=True,
        )


class LookupService:
    """Abstract metadata lookup used by the resolver and the catalog writer"""

    async def search_by_title(self, title: str, year: Optional[int] = None) -> List[MetadataMatch]:
        raise NotImplementedError

    async def get_by_id(self, external_id: int) -> MetadataMatch:
        raise NotImplementedError

    async def list_genres(self) -> Dict[int, str]:
        raise NotImplementedError


class TMDBClient(LookupService):
    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, language: Optional[str] = None,
                 session: Optional[requests.Session] = None, timeout: float = REQUEST_TIMEOUT):
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.language = language
        self.timeout = timeout
        self._session = session or requests.Session()
        self._genres: Optional[Dict[int, str]] = None
        logger.info(f"TMDB client initialized (api key: {'set' if api_key else 'missing'}, base: {self.base_url})")

    def _request(self, endpoint: str, params: Optional[dict] = None) -> dict:
        query = {"api_key": self.api_key}
        if self.language:
            query["language"] = self.language
        if params:
            query.update(params)
        url = f"{self.base_url}{endpoint}"
        logger.debug(f"TMDB request: {endpoint} {params or {}}")
        try:
            response = self._session.get(url, params=query, timeout=self.timeout)
        except requests.RequestException as e:
            raise LookupTransportError(f"TMDB request failed for {endpoint}: {e}", {"endpoint": endpoint}) from e
        if response.status_code != 200:
            raise LookupTransportError(
                f"TMDB API error {response.status_code} for {endpoint}",
                {"endpoint": endpoint, "status": response.status_code},
            )
        try:
            return response.json()
        except ValueError as e:
            raise LookupTransportError(f"TMDB returned invalid JSON for {endpoint}", {"endpoint": endpoint}) from e

    # Blocking implementations

    def search_movie(self, title: str, year: Optional[int] = None) -> List[MetadataMatch]:
        params = {"query": title, "include_adult": "false"}
        if year:
            params["year"] = year
        data = self._request("/search/movie", params)
        return [MetadataMatch.from_summary(r) for r in data.get("results") or [] if r.get("id") is not None]

    def get_movie(self, external_id: int) -> MetadataMatch:
        data = self._request(f"/movie/{external_id}", {"append_to_response": "videos,credits"})
        return MetadataMatch.from_detail(data)

    def get_genres(self) -> Dict[int, str]:
        if self._genres is None:
            data = self._request("/genre/movie/list")
            self._genres = {g["id"]: g["name"] for g in data.get("genres") or [] if "id" in g and g.get("name")}
        return self._genres

    # LookupService

    async def search_by_title(self, title: str, year: Optional[int] = None) -> List[MetadataMatch]:
        return await asyncio.to_thread(self.search_movie, title, year)

    async def get_by_id(self, external_id: int) -> MetadataMatch:
        return await asyncio.to_thread(self.get_movie, external_id)

    async def list_genres(self) -> Dict[int, str]:
        return await asyncio.to_thread(self.get_genres)

    def close(self):
        self._session.close()
