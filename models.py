from pydantic import BaseModel, ConfigDict, Field, ValidationError
from typing import Any, Dict, List, Optional


class Book(BaseModel):
    """
    The common record shape shared by the library store, the search
    catalog and the curated lists.
    `isbn` is the catalog identity used for deduplication.
    """
    model_config = ConfigDict(frozen=True)

    isbn: Optional[str] = None
    title: str = "Unknown Title"
    author: str = "Unknown Author"
    thumbnail: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[str] = None
    description: str = ""


class GenreInfo(BaseModel):
    key: str
    label: str
    list_name: Optional[str] = None
    subject_tags: List[str] = Field(default_factory=list)


class ServiceHealth(BaseModel):
    name: str
    status: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    services: List[ServiceHealth]


class CacheStats(BaseModel):
    status: str
    backend: str
    key_count: int
    used_memory: str


def dump_books(books: List[Book]) -> List[Dict[str, Any]]:
    return [b.model_dump() for b in books]


def parse_books(rows: Any) -> Optional[List[Book]]:
    """Books from a cached JSON payload, or None when the payload is unusable."""
    if not isinstance(rows, list): return None
    try:
        return [Book(**row) for row in rows]
    except (TypeError, ValidationError):
        return None
