import re
from typing import Any, Dict, List, Optional, Tuple
from loguru import logger
from pydantic import ValidationError
from errors import UpstreamError
from fetcher import RateLimitedFetcher
from genres import GENRE_TAXONOMY, resolve_genre
from models import Book

# --- CONFIGURATION ---
GOOGLE_BOOKS_API_URL = "https://www.googleapis.com/books/v1/volumes"
NYT_BOOKS_API_URL = "https://api.nytimes.com/svc/books/v3/lists/current"
GOOGLE_MAX_RESULTS = 40

YEAR_PREFIX = re.compile(r"^(\d{4})")

# --------------------------------------------------------------------
# 1. Normalization Helpers
# --------------------------------------------------------------------

def ensure_https(url: Optional[str]) -> Optional[str]:
    if not url: return None
    secure_url = url.replace("http://", "https://", 1)
    if "books.google.com" in secure_url:
        secure_url = secure_url.replace("&edge=curl", "")
    return secure_url

def year_from_date(date_string: Optional[str]) -> Optional[str]:
    """"2024-05-01", "2024-05" and "2024" all give "2024". Prefix only, no calendar parsing."""
    if not date_string: return None
    match = YEAR_PREFIX.match(str(date_string).strip())
    return match.group(1) if match else None

def _isbns_from_google_item(info: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    isbn_13, isbn_10 = None, None
    for i in info.get("industryIdentifiers") or []:
        if i.get("type") == "ISBN_13" and not isbn_13: isbn_13 = i.get("identifier")
        elif i.get("type") == "ISBN_10" and not isbn_10: isbn_10 = i.get("identifier")
    return isbn_13, isbn_10

# --------------------------------------------------------------------
# 2. Mappers
# --------------------------------------------------------------------

def normalize_google_volume(item: Dict[str, Any]) -> Book:
    info = item.get("volumeInfo") or {}
    isbn_13, isbn_10 = _isbns_from_google_item(info)
    links = info.get("imageLinks") or {}
    authors = [a for a in info.get("authors") or [] if a]

    return Book(
        isbn=isbn_13 or isbn_10,
        title=info.get("title") or "Unknown Title",
        author=", ".join(authors) if authors else "Unknown Author",
        thumbnail=ensure_https(links.get("thumbnail") or links.get("smallThumbnail")),
        genre=resolve_genre(info.get("categories")),
        year=year_from_date(info.get("publishedDate")),
        description=info.get("description") or "",
    )

def normalize_nyt_book(item: Dict[str, Any], list_label: Optional[str] = None, list_date: Optional[str] = None) -> Book:
    """NYT list entries carry no categories; the list itself decides the genre."""
    return Book(
        isbn=item.get("primary_isbn13") or item.get("primary_isbn10") or None,
        title=item.get("title") or "Unknown Title",
        author=item.get("author") or item.get("contributor") or "Unknown Author",
        thumbnail=ensure_https(item.get("book_image")),
        genre=list_label,
        year=year_from_date(item.get("published_date") or list_date),
        description=item.get("description") or "",
    )

def parse_library_row(row: Dict[str, Any]) -> Book:
    return Book(
        isbn=row.get("isbn") or None,
        title=row.get("title") or "Unknown Title",
        author=row.get("author") or "Unknown Author",
        thumbnail=ensure_https(row.get("thumbnail")),
        genre=row.get("genre") or None,
        year=year_from_date(row.get("year")),
        description=row.get("description") or "",
    )

# --------------------------------------------------------------------
# 3. Source Clients
# --------------------------------------------------------------------

class SearchSource:
    """Google Books volume search."""

    def __init__(self, fetcher: RateLimitedFetcher, base_url: str = GOOGLE_BOOKS_API_URL, api_key: Optional[str] = None):
        self.fetcher = fetcher
        self.base_url = base_url
        self.api_key = api_key

    async def search(self, q: str, max_results: int = 20, order_by: Optional[str] = None) -> List[Book]:
        params = {
            "q": q,
            "maxResults": max(1, min(max_results, GOOGLE_MAX_RESULTS)),
            "orderBy": order_by,
            "printType": "books",
            "key": self.api_key,
        }
        data = await self.fetcher.fetch_json(self.base_url, params)
        return [normalize_google_volume(item) for item in (data or {}).get("items") or []]

    async def search_subject(self, subject_query: str, max_results: int = 20) -> List[Book]:
        return await self.search(subject_query, max_results=max_results, order_by="relevance")

    async def search_author(self, author: str, max_results: int = 20) -> List[Book]:
        return await self.search(f'inauthor:"{author}"', max_results=max_results, order_by="newest")


class CuratedListSource:
    """NYT Books current bestseller lists."""

    def __init__(self, fetcher: RateLimitedFetcher, base_url: str = NYT_BOOKS_API_URL, api_key: Optional[str] = None):
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def fetch_list(self, list_name: str) -> List[Book]:
        url = f"{self.base_url}/{list_name}.json"
        data = await self.fetcher.fetch_json(url, {"api-key": self.api_key})
        results = (data or {}).get("results") or {}
        label = next((g.label for g in GENRE_TAXONOMY if g.list_name == list_name), None)
        list_date = results.get("published_date")
        return [normalize_nyt_book(item, label, list_date) for item in results.get("books") or []]


class LibrarySource:
    """The user's library, owned by the item-data store. A primary dependency: failures propagate."""

    def __init__(self, fetcher: RateLimitedFetcher, base_url: str):
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")

    async def load(self, user_id: str) -> List[Book]:
        url = f"{self.base_url}/books/{user_id}"
        rows = await self.fetcher.fetch_json(url)
        if not isinstance(rows, list):
            raise UpstreamError(self.fetcher.source, url, "library payload is not a list")
        books = []
        for row in rows:
            try:
                books.append(parse_library_row(row))
            except (ValidationError, AttributeError) as e:
                logger.warning(f"Skipping malformed library row for user {user_id}: {e}")
        logger.info(f"Loaded library snapshot for user {user_id}: {len(books)} books")
        return books
