from typing import Dict, List, Sequence
from models import Book

RANKABLE_ATTRIBUTES = ("genre", "author")


def frequency_table(records: Sequence[Book], attribute: str) -> Dict[str, int]:
    """Occurrence counts per value, keyed in first-occurrence order. Null and blank values are skipped."""
    if attribute not in RANKABLE_ATTRIBUTES:
        raise ValueError(f"Cannot rank on '{attribute}'")
    counts: Dict[str, int] = {}
    for record in records:
        value = getattr(record, attribute, None)
        if not value or not value.strip(): continue
        counts[value] = counts.get(value, 0) + 1
    return counts


def rank(records: Sequence[Book], attribute: str) -> List[str]:
    # sorted() is stable: equal counts keep first-occurrence order.
    counts = frequency_table(records, attribute)
    return sorted(counts, key=lambda value: counts[value], reverse=True)
