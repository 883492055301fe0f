"""
Metadata resolution: turn a parsed guess into a single catalog match.

Strategies run in order and the first non-empty search wins:
    1. title + year (only when a year was guessed)
    2. title alone
    3. punctuation-stripped title, again with year then without
Whenever a year was guessed, a result released within YEAR_TOLERANCE of it is
preferred over the provider's first result.

Returning None means "nothing matched" and is a normal outcome. Transport
errors from the lookup service are not caught here.
"""
import logging
from typing import List, Optional

from cleaning_patterns import strip_punctuation
from tmdb import LookupService, MetadataMatch

logger = logging.getLogger(__name__)

YEAR_TOLERANCE = 1


def pick_best(results: List[MetadataMatch], year: Optional[int]) -> Optional[MetadataMatch]:
    """Provider-ranked first result, unless one is within YEAR_TOLERANCE of the guessed year"""
    if not results:
        return None
    if year:
        for result in results:
            if result.release_year is not None and abs(result.release_year - year) <= YEAR_TOLERANCE:
                return result
    return results[0]


class MetadataResolver:
    def __init__(self, lookup: LookupService):
        self.lookup = lookup

    def _queries(self, title: str, year: Optional[int]):
        """(strategy, query, year filter) in the order they should be tried"""
        if year:
            yield 1, title, year
        yield 2, title, None
        normalized = strip_punctuation(title)
        if normalized:
            if year:
                yield 3, normalized, year
            yield 3, normalized, None

    async def resolve(self, guess) -> Optional[MetadataMatch]:
        title = (guess.title or "").strip()
        year = guess.year
        if not title:
            return None

        tried = set()
        for strategy, query, year_filter in self._queries(title, year):
            if (query, year_filter) in tried:
                continue
            tried.add((query, year_filter))

            results = await self.lookup.search_by_title(query, year_filter)
            match = pick_best(results, year)
            if match is not None:
                logger.debug(
                    f"Resolved '{title}' ({year or 'no year'}) via strategy {strategy} "
                    f"query='{query}' -> {match.title} [{match.external_id}]"
                )
                return match

        logger.info(f"No metadata match for '{title}' ({year or 'no year'})")
        return None
