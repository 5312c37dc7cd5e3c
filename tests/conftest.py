from datetime import datetime
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from cache import MemoryCacheStore
from fetcher import RateLimitedFetcher
from main import limiter

LIBRARY_URL = "http://item-data.test"
GOOGLE_URL = "https://books.test/volumes"
NYT_URL = "https://nyt.test/lists"

CURRENT_YEAR = str(datetime.now().year)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_fetcher(handler: Callable[[httpx.Request], httpx.Response], source: str = "test", **kwargs) -> RateLimitedFetcher:
    options = dict(min_interval=0.0, retry_delay=0.0, timeout=2.0)
    options.update(kwargs)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RateLimitedFetcher(source, client=client, **options)


def google_volume(
    title: str,
    authors: Optional[List[str]] = None,
    isbn13: Optional[str] = None,
    isbn10: Optional[str] = None,
    published: Optional[str] = None,
    categories: Optional[List[str]] = None,
    thumbnail: Optional[str] = None,
) -> Dict:
    identifiers = []
    if isbn10: identifiers.append({"type": "ISBN_10", "identifier": isbn10})
    if isbn13: identifiers.append({"type": "ISBN_13", "identifier": isbn13})
    info = {"title": title, "industryIdentifiers": identifiers}
    if authors: info["authors"] = authors
    if published: info["publishedDate"] = published
    if categories: info["categories"] = categories
    if thumbnail: info["imageLinks"] = {"thumbnail": thumbnail}
    return {"id": title.lower().replace(" ", "-"), "volumeInfo": info}


def library_row(title: str, author: str, genre: Optional[str] = None, isbn: Optional[str] = None, year: Optional[str] = None) -> Dict:
    return {"id": 1, "user_id": 7, "isbn": isbn, "title": title, "author": author, "genre": genre, "year": year, "description": None}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_cache(clock) -> MemoryCacheStore:
    return MemoryCacheStore(clock=clock)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
