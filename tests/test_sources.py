"""Tests for provider payload normalization and the source clients."""
import httpx
import pytest

from errors import UpstreamError
from sources import (
    CuratedListSource,
    LibrarySource,
    SearchSource,
    normalize_google_volume,
    normalize_nyt_book,
    year_from_date,
)
from tests.conftest import GOOGLE_URL, LIBRARY_URL, NYT_URL, google_volume, library_row, make_fetcher


def test_google_volume_complete():
    item = google_volume(
        "The Dispossessed",
        authors=["Ursula K. Le Guin"],
        isbn10="0061054887",
        isbn13="9780061054884",
        published="1974-05",
        categories=["Fiction"],
        thumbnail="http://books.google.com/books/content?id=1&zoom=1&edge=curl",
    )
    book = normalize_google_volume(item)

    assert book.isbn == "9780061054884"
    assert book.title == "The Dispossessed"
    assert book.author == "Ursula K. Le Guin"
    assert book.thumbnail == "https://books.google.com/books/content?id=1&zoom=1"
    assert book.genre == "Fiction"
    assert book.year == "1974"
    assert book.description == ""


def test_google_volume_missing_fields_use_fallbacks():
    book = normalize_google_volume({"volumeInfo": {}})
    assert book.title == "Unknown Title"
    assert book.author == "Unknown Author"
    assert book.isbn is None
    assert book.thumbnail is None
    assert book.genre is None
    assert book.year is None


def test_google_volume_isbn10_when_no_isbn13():
    book = normalize_google_volume(google_volume("Solo", isbn10="0123456789"))
    assert book.isbn == "0123456789"


def test_multiple_authors_are_joined():
    book = normalize_google_volume(google_volume("Good Omens", authors=["Terry Pratchett", "Neil Gaiman"]))
    assert book.author == "Terry Pratchett, Neil Gaiman"


def test_unmatched_category_kept_verbatim():
    book = normalize_google_volume(google_volume("Cookbook", categories=["Cooking / Regional"]))
    assert book.genre == "Cooking / Regional"


@pytest.mark.parametrize("raw, expected", [("2024-05-01", "2024"), ("2024-05", "2024"), ("2024", "2024"), ("", None), ("May 2024", None), (None, None)])
def test_year_from_date(raw, expected):
    assert year_from_date(raw) == expected


def test_nyt_book_uses_list_label_and_date():
    item = {
        "primary_isbn13": "9780593135204",
        "primary_isbn10": "0593135202",
        "title": "PROJECT HAIL MARY",
        "author": "Andy Weir",
        "book_image": "http://storage.googleapis.com/du-prd/books/images/9780593135204.jpg",
        "description": "A lone astronaut.",
    }
    book = normalize_nyt_book(item, "Fiction", "2021-06-06")
    assert book.isbn == "9780593135204"
    assert book.thumbnail.startswith("https://")
    assert book.genre == "Fiction"
    assert book.year == "2021"


async def test_search_source_sends_query_and_normalizes():
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, json={"items": [google_volume("Dune", authors=["Frank Herbert"], isbn13="9780441013593")]})

    source = SearchSource(make_fetcher(handler), GOOGLE_URL, api_key="k")
    books = await source.search_author("Frank Herbert", max_results=100)

    assert [b.title for b in books] == ["Dune"]
    params = seen[0].params
    assert params["q"] == 'inauthor:"Frank Herbert"'
    assert params["orderBy"] == "newest"
    assert params["maxResults"] == "40"
    assert params["key"] == "k"


async def test_search_source_handles_no_items():
    source = SearchSource(make_fetcher(lambda request: httpx.Response(200, json={"totalItems": 0})), GOOGLE_URL)
    assert await source.search("subject:nothing") == []


async def test_curated_list_source():
    def handler(request):
        assert request.url.path == "/lists/hardcover-fiction.json"
        assert request.url.params["api-key"] == "secret"
        return httpx.Response(200, json={"results": {"published_date": "2024-03-10", "books": [{"title": "A", "author": "B", "primary_isbn13": "1"}]}})

    source = CuratedListSource(make_fetcher(handler), NYT_URL, api_key="secret")
    assert source.enabled
    books = await source.fetch_list("hardcover-fiction")
    assert books[0].genre == "Fiction"
    assert books[0].year == "2024"
    assert not CuratedListSource(make_fetcher(handler), NYT_URL).enabled


async def test_library_source_parses_rows_and_skips_bad_ones():
    rows = [library_row("Dune", "Frank Herbert", "Sci-Fi", isbn="9780441013593", year="1965"), "garbage"]
    source = LibrarySource(make_fetcher(lambda request: httpx.Response(200, json=rows)), LIBRARY_URL)
    books = await source.load("7")
    assert len(books) == 1
    assert books[0].description == ""
    assert books[0].genre == "Sci-Fi"


async def test_library_source_failure_propagates():
    source = LibrarySource(make_fetcher(lambda request: httpx.Response(500)), LIBRARY_URL)
    with pytest.raises(UpstreamError):
        await source.load("7")
