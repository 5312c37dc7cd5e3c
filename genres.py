import re
from pydantic import BaseModel, ConfigDict
from typing import Iterable, List, Optional, Tuple

# --------------------------------------------------------------------
# 1. Pydantic Models
# --------------------------------------------------------------------

class GenreEntry(BaseModel):
    """
    A canonical genre label, the catalog subject tags that map onto it
    and, when one exists, the curated bestseller list covering it.
    """
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    list_name: Optional[str] = None  # NYT list slug, e.g. "hardcover-fiction"
    subject_tags: Tuple[str, ...]

# Catalogs prefix subject queries this way ("subject:fantasy").
SUBJECT_PREFIX = re.compile(r"^\s*subject:", re.IGNORECASE)

def clean_tag(raw: str) -> str:
    return SUBJECT_PREFIX.sub("", raw).strip().lower()

def _tags(*raw: str) -> Tuple[str, ...]:
    return tuple(clean_tag(r) for r in raw)

# --------------------------------------------------------------------
# 2. Taxonomy (declaration order is the resolution order)
# --------------------------------------------------------------------

# --- 1. CURATED LIST GENRES ---
GENRE_TAXONOMY: tuple = (
    GenreEntry(
        key="fiction",
        label="Fiction",
        list_name="hardcover-fiction",
        subject_tags=_tags("subject:fiction", "subject:novel"),
    ),
    GenreEntry(
        key="nonfiction",
        label="Non Fiction",
        list_name="hardcover-nonfiction",
        subject_tags=_tags("subject:nonfiction", "subject:biography", "subject:history"),
    ),
    GenreEntry(
        key="business",
        label="Business",
        list_name="business-books",
        subject_tags=_tags("subject:business", "subject:economy", "subject:leadership", "subject:management"),
    ),
    GenreEntry(
        key="manga",
        label="Manga",
        list_name="graphic-books-and-manga",
        subject_tags=_tags("subject:manga", "subject:graphic", "subject:comics", "subject:anime"),
    ),
    GenreEntry(
        key="ya",
        label="Young Adult",
        list_name="young-adult-hardcover",
        subject_tags=_tags("subject:young", "subject:teen"),
    ),
    GenreEntry(
        key="advice",
        label="Advice & Self Help",
        list_name="advice-how-to-and-miscellaneous",
        subject_tags=_tags(
            "subject:help", "subject:personal", "subject:motivation",
            "subject:psychology", "subject:relationships",
        ),
    ),
    GenreEntry(
        key="combined",
        label="Trending",
        list_name="combined-print-and-e-book-fiction",
        subject_tags=_tags("subject:fiction"),
    ),
# --- 2. SEARCH-ONLY GENRES ---
    GenreEntry(
        key="fantasy",
        label="Fantasy",
        subject_tags=_tags("subject:fantasy", "subject:epic", "subject:magic"),
    ),
    GenreEntry(
        key="scifi",
        label="Sci-Fi",
        subject_tags=_tags("subject:scifi", "subject:dystopian", "subject:space", "subject:cyberpunk"),
    ),
    GenreEntry(
        key="romance",
        label="Romance",
        subject_tags=_tags("subject:romance", "subject:romantic", "subject:love"),
    ),
    GenreEntry(
        key="thriller",
        label="Thriller",
        subject_tags=_tags("subject:thriller", "subject:mystery", "subject:crime", "subject:suspense"),
    ),
    GenreEntry(
        key="horror",
        label="Horror",
        subject_tags=_tags("subject:horror", "subject:gothic"),
    ),
)

# Generic categories queried for users whose library is too sparse to rank.
FALLBACK_GENRE_KEYS = ("combined", "nonfiction", "fantasy")

# --------------------------------------------------------------------
# 3. Lookups
# --------------------------------------------------------------------

def get_genre(key: str) -> Optional[GenreEntry]:
    return next((g for g in GENRE_TAXONOMY if g.key == key), None)

def get_genre_by_label(label: str) -> Optional[GenreEntry]:
    target = label.strip().lower()
    return next((g for g in GENRE_TAXONOMY if g.label.lower() == target), None)

def curated_genres() -> List[GenreEntry]:
    return [g for g in GENRE_TAXONOMY if g.list_name]

def match_genre(categories: Optional[Iterable[str]]) -> Optional[GenreEntry]:
    """First taxonomy entry (in declaration order) whose tags contain any category."""
    if not categories: return None
    cleaned = {clean_tag(c) for c in categories if isinstance(c, str) and c.strip()}
    if not cleaned: return None
    for entry in GENRE_TAXONOMY:
        if not cleaned.isdisjoint(entry.subject_tags):
            return entry
    return None

def resolve_genre(categories: Optional[List[str]]) -> Optional[str]:
    entry = match_genre(categories)
    if entry: return entry.label
    return categories[0] if categories else None

def subject_query(label: str) -> str:
    """Search query for a genre label: the entry's first tag, or the raw label."""
    entry = get_genre_by_label(label)
    if entry:
        return f"subject:{entry.subject_tags[0]}"
    return f"subject:{clean_tag(label)}"
