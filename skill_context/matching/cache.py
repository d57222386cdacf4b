"""Per-session LRU cache of expanded load plans."""
from collections import OrderedDict
from typing import Optional, Tuple

from skill_context.matching.plan import LoadPlan

CacheKey = Tuple[str, str, int]


class PlanCache:
    """Shortcut for identical queries against an unchanged catalog.

    Keys combine the catalog version, the normalized query and the budget,
    so a catalog reload naturally invalidates older entries.
    """

    def __init__(self, max_size: int = 32):
        self.max_size = max_size
        self._plans: "OrderedDict[CacheKey, LoadPlan]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(catalog_version: str, query: str, budget: int) -> CacheKey:
        return catalog_version, " ".join(query.lower().split()), budget

    def get(self, key: CacheKey) -> Optional[LoadPlan]:
        plan = self._plans.get(key)
        if plan is None:
            self.misses += 1
            return None
        self._plans.move_to_end(key)
        self.hits += 1
        return plan

    def put(self, key: CacheKey, plan: LoadPlan) -> None:
        if self.max_size <= 0:
            return
        self._plans[key] = plan
        self._plans.move_to_end(key)
        while len(self._plans) > self.max_size:
            self._plans.popitem(last=False)

    def clear(self) -> None:
        self._plans.clear()

    def __len__(self) -> int:
        return len(self._plans)
