"""Trigger matching and budget allocation."""

from skill_context.matching.plan import (
    DeferredReference,
    LoadPlan,
    MatchCandidate,
    PlanEntry,
)
from skill_context.matching.matcher import TriggerMatcher
from skill_context.matching.allocator import BudgetAllocator

__all__ = [
    "DeferredReference",
    "LoadPlan",
    "MatchCandidate",
    "PlanEntry",
    "TriggerMatcher",
    "BudgetAllocator",
]
