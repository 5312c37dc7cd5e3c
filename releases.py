from typing import Dict, List, Optional, Set, Tuple
from loguru import logger
from aggregator import FanOutAggregator
from cache import AUTHOR_RELEASES, USER_AUTHORS, CacheStore, cache_key
from discovery import LONG_CACHE_TTL, SHORT_CACHE_TTL
from freshness import dedupe, exclude_owned, is_fresh, owned_isbns
from models import Book, dump_books, parse_books
from ranking import rank
from sources import LibrarySource, SearchSource


class ReleaseTracker:
    """
    Recent books by the authors a user reads most.

    The user's ranked authors and owned isbns sit in the short tier
    (user-authors:{user}); each author's newest titles sit in the long
    tier (author-releases:{author}) and are shared by every reader of
    that author.
    """

    def __init__(
        self,
        library: LibrarySource,
        search: SearchSource,
        cache: CacheStore,
        aggregator: Optional[FanOutAggregator] = None,
        short_ttl: int = SHORT_CACHE_TTL,
        long_ttl: int = LONG_CACHE_TTL,
        window_months: int = 12,
        author_query_size: int = 20,
    ):
        self.library = library
        self.search = search
        self.cache = cache
        # Every reader gets per-author queries, however few authors they have.
        self.aggregator = aggregator or FanOutAggregator(min_items=0, name="releases")
        self.short_ttl = short_ttl
        self.long_ttl = long_ttl
        self.window_months = window_months
        self.author_query_size = author_query_size

    async def user_authors(self, user_id: str) -> Tuple[List[str], Set[str]]:
        key = cache_key(USER_AUTHORS, user_id)
        cached = await self.cache.get_json(key)
        if isinstance(cached, dict) and isinstance(cached.get("authors"), list):
            logger.debug(f"Author cache hit for user {user_id}")
            return cached["authors"], set(cached.get("owned") or [])

        library = await self.library.load(user_id)
        authors = rank(library, "author")
        owned = owned_isbns(library)
        await self.cache.set_json(key, {"authors": authors, "owned": sorted(owned)}, self.short_ttl)
        return authors, owned

    async def author_releases(self, author: str) -> List[Book]:
        key = cache_key(AUTHOR_RELEASES, author)
        cached = parse_books(await self.cache.get_json(key))
        if cached is not None:
            return cached
        books = await self.search.search_author(author, self.author_query_size)
        if books:
            await self.cache.set_json(key, dump_books(books), self.long_ttl)
        return books

    async def fresh_releases(self, author: str) -> List[Book]:
        return [b for b in await self.author_releases(author) if is_fresh(b.year, self.window_months)]

    async def new_releases(self, user_id: str) -> List[Book]:
        authors, owned = await self.user_authors(user_id)
        if not authors: return []
        merged = await self.aggregator.aggregate(authors, self.fresh_releases)
        releases = exclude_owned(dedupe(merged), owned)
        logger.info(f"Found {len(releases)} new releases for user {user_id}")
        return releases

    async def last_releases(self, user_id: str) -> Dict[str, List[Book]]:
        authors, owned = await self.user_authors(user_id)
        if not authors: return {}
        planned = self.aggregator.plan(authors)
        results = await self.aggregator.gather([author for author, _ in planned], self.fresh_releases)

        grouped: Dict[str, List[Book]] = {}
        for (author, cap), result in zip(planned, results):
            books = exclude_owned(dedupe(result.books), owned)[:cap]
            if books:
                grouped[author] = books
        return grouped
