import calendar
from datetime import date, datetime
from typing import Collection, Iterable, List, Optional, Set
from models import Book


def months_ago(now: datetime, months: int) -> date:
    total = now.year * 12 + (now.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


# Non-ISO spellings catalogs use for publication dates.
DATE_FORMATS = (
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%B %Y",
    "%b %Y",
)


def _parse_date(date_string: str) -> Optional[date]:
    if len(date_string) == 7:
        date_string = f"{date_string}-01"
    try:
        return datetime.fromisoformat(date_string).date()
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(date_string, fmt).date()
        except ValueError:
            continue
    return None


def is_fresh(date_string: Optional[str], window_months: int = 12, now: Optional[datetime] = None) -> bool:
    """
    Whether a publication date falls inside the trailing window.

    A bare year only knows its year: it is fresh when it is the current year,
    or last year while the current (zero-based) month is still below the window.
    With short windows this flips abruptly in January; that coarseness is kept.
    """
    if not date_string: return False
    now = now or datetime.now()
    date_string = date_string.strip()

    if len(date_string) == 4:
        if not date_string.isdigit(): return False
        year = int(date_string)
        return year == now.year or (year == now.year - 1 and (now.month - 1) < window_months)

    published = _parse_date(date_string)
    if published is None: return False
    return published >= months_ago(now, window_months)


def dedupe(records: Iterable[Book]) -> List[Book]:
    seen = set()
    unique = []
    for record in records:
        if record.isbn:
            if record.isbn in seen: continue
            seen.add(record.isbn)
        unique.append(record)
    return unique


def exclude_owned(records: Iterable[Book], owned: Collection[str]) -> List[Book]:
    """Drop records the user already has. `owned` is the isbn set of the library snapshot."""
    return [r for r in records if not r.isbn or r.isbn not in owned]


def owned_isbns(library: Iterable[Book]) -> Set[str]:
    return {b.isbn for b in library if b.isbn}
