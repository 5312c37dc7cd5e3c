from typing import List, Optional
from loguru import logger
from aggregator import FanOutAggregator, all_failed
from cache import GENRE_BOOKS, RECOMMENDATIONS, CacheStore, cache_key
from freshness import dedupe, exclude_owned, owned_isbns
from genres import FALLBACK_GENRE_KEYS, get_genre, get_genre_by_label, subject_query
from models import Book, dump_books, parse_books
from ranking import rank
from sources import CuratedListSource, LibrarySource, SearchSource

SHORT_CACHE_TTL = 60 * 30
LONG_CACHE_TTL = 60 * 60 * 24 * 3


def fallback_genre_labels() -> List[str]:
    return [get_genre(key).label for key in FALLBACK_GENRE_KEYS]


class DiscoveryOrchestrator:
    """
    Genre-driven recommendations for one user.

    recs:{user} (short tier) -> library snapshot -> genre ranking ->
    per-genre fan-out, each genre cached in genre-books:{genre} (long tier)
    -> dedupe -> drop owned books.
    """

    def __init__(
        self,
        library: LibrarySource,
        search: SearchSource,
        curated: CuratedListSource,
        cache: CacheStore,
        aggregator: Optional[FanOutAggregator] = None,
        short_ttl: int = SHORT_CACHE_TTL,
        long_ttl: int = LONG_CACHE_TTL,
        genre_query_size: int = 20,
    ):
        self.library = library
        self.search = search
        self.curated = curated
        self.cache = cache
        self.aggregator = aggregator or FanOutAggregator(fallback_items=fallback_genre_labels(), name="recommendations")
        self.short_ttl = short_ttl
        self.long_ttl = long_ttl
        self.genre_query_size = genre_query_size

    async def books_for_genre(self, genre: str) -> List[Book]:
        key = cache_key(GENRE_BOOKS, genre)
        cached = parse_books(await self.cache.get_json(key))
        if cached is not None:
            logger.debug(f"Genre cache hit for '{genre}'")
            return cached

        entry = get_genre_by_label(genre)
        if entry and entry.list_name and self.curated.enabled:
            books = await self.curated.fetch_list(entry.list_name)
        else:
            books = await self.search.search_subject(subject_query(genre), self.genre_query_size)

        if books:
            await self.cache.set_json(key, dump_books(books), self.long_ttl)
        return books

    async def recommendations(self, user_id: str) -> List[Book]:
        key = cache_key(RECOMMENDATIONS, user_id)
        cached = parse_books(await self.cache.get_json(key))
        if cached is not None:
            logger.info(f"Serving cached recommendations for user {user_id}")
            return cached

        library = await self.library.load(user_id)
        genres = rank(library, "genre")
        logger.info(f"Top genres for user {user_id}: {genres[:len(self.aggregator.limits)]}")

        merged, outcomes = await self.aggregator.aggregate_with_outcomes(genres, self.books_for_genre)
        recommendations = exclude_owned(dedupe(merged), owned_isbns(library))

        if all_failed(outcomes):
            logger.warning(f"Every genre query failed for user {user_id}; not caching recommendations")
        else:
            await self.cache.set_json(key, dump_books(recommendations), self.short_ttl)
        return recommendations
