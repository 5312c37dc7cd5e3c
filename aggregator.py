import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple
from loguru import logger
from models import Book

FetchOne = Callable[[str], Awaitable[List[Book]]]

# Earlier-ranked signals get a larger share of the merged result.
DEFAULT_LIMITS = (15, 8, 6, 6, 4)
DEFAULT_GLOBAL_CAP = 35
DEFAULT_MIN_ITEMS = 3


@dataclass
class BranchResult:
    item: str
    books: List[Book] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class FanOutAggregator:
    """
    Runs one query per ranked signal concurrently and merges the results.

    A failed branch is logged and contributes nothing. When there are fewer
    than `min_items` distinct signals the fixed `fallback_items` are queried
    instead (sparse or empty libraries).
    """

    def __init__(
        self,
        limits: Sequence[int] = DEFAULT_LIMITS,
        global_cap: int = DEFAULT_GLOBAL_CAP,
        min_items: int = DEFAULT_MIN_ITEMS,
        fallback_items: Sequence[str] = (),
        fallback_limit: int = 10,
        max_tasks: int = 8,
        name: str = "fan-out",
    ):
        if any(limit <= 0 for limit in limits):
            raise ValueError("Per-item limits must be positive")
        self.limits = tuple(limits)
        self.global_cap = global_cap
        self.min_items = min_items
        self.fallback_items = tuple(fallback_items)
        self.fallback_limit = fallback_limit
        self.max_tasks = max_tasks
        self.name = name

    async def _run_branch(self, item: str, fetch_one: FetchOne, slots: asyncio.Semaphore) -> BranchResult:
        async with slots:
            try:
                return BranchResult(item=item, books=list(await fetch_one(item)))
            except Exception as e:
                logger.warning(f"[{self.name}] Branch '{item}' failed, contributing no results: {e}")
                return BranchResult(item=item, error=e)

    async def gather(self, items: Sequence[str], fetch_one: FetchOne) -> List[BranchResult]:
        """One tagged result per item, in item order. Never raises for a branch failure."""
        slots = asyncio.Semaphore(self.max_tasks)
        return list(await asyncio.gather(*(self._run_branch(item, fetch_one, slots) for item in items)))

    def plan(self, items: Sequence[str], limits: Optional[Sequence[int]] = None) -> List[tuple]:
        """(item, cap) pairs to query: the top ranked items, or the fallback set."""
        distinct = list(dict.fromkeys(i for i in items if i))
        if len(distinct) < self.min_items:
            logger.info(f"[{self.name}] Only {len(distinct)} distinct signals, using fallback set {list(self.fallback_items)}")
            return [(item, self.fallback_limit) for item in self.fallback_items]
        limits = tuple(limits) if limits is not None else self.limits
        return list(zip(distinct, limits))

    async def aggregate_with_outcomes(
        self, items: Sequence[str], fetch_one: FetchOne, limits: Optional[Sequence[int]] = None
    ) -> Tuple[List[Book], List[BranchResult]]:
        """Merged books plus the per-branch outcomes, so callers can tell an outage from an empty result."""
        planned = self.plan(items, limits)
        if not planned: return [], []
        results = await self.gather([item for item, _ in planned], fetch_one)

        merged: List[Book] = []
        for (_, cap), result in zip(planned, results):
            merged.extend(result.books[:cap])

        failed = sum(1 for r in results if not r.ok)
        logger.info(f"[{self.name}] Merged {len(merged)} results from {len(results) - failed}/{len(results)} branches")
        return merged[:self.global_cap], results

    async def aggregate(self, items: Sequence[str], fetch_one: FetchOne, limits: Optional[Sequence[int]] = None) -> List[Book]:
        merged, _ = await self.aggregate_with_outcomes(items, fetch_one, limits)
        return merged


def all_failed(results: Sequence[BranchResult]) -> bool:
    return bool(results) and not any(r.ok for r in results)
