"""Greedy token-budget allocation of ranked skill candidates."""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from skill_context.config import EngineConfig
from skill_context.errors import BudgetExceededError
from skill_context.matching.plan import LoadPlan, MatchCandidate, PlanEntry

logger = logging.getLogger(__name__)


class BudgetAllocator:
    """Select whole skill documents, in score order, within a token ceiling.

    This is a bounded greedy knapsack: each candidate is taken if its main
    body still fits, otherwise it is skipped and the scan moves on to the
    next (smaller) one. Categories listed in ``category_minimums`` get their
    best-ranked candidates reserved first.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def allocate(self, candidates: Sequence[MatchCandidate], budget_tokens: int) -> LoadPlan:
        """Build a LoadPlan from ranked candidates.

        Args:
            candidates: Candidates ordered highest score first
            budget_tokens: Token ceiling for the plan

        Returns:
            LoadPlan whose total cost never exceeds ``budget_tokens``

        Raises:
            ValueError: If the budget is negative
            BudgetExceededError: If the top candidate alone exceeds the budget
        """
        if budget_tokens < 0:
            raise ValueError(f"budget_tokens must be >= 0, got {budget_tokens}")

        ranked: List[MatchCandidate] = []
        seen = set()
        for candidate in candidates:
            if candidate.identifier not in seen:
                seen.add(candidate.identifier)
                ranked.append(candidate)

        if not ranked:
            return LoadPlan.empty(budget_tokens)

        top = ranked[0]
        if top.tokens > budget_tokens:
            raise BudgetExceededError(
                top.identifier, top.tokens, budget_tokens, plan=LoadPlan.empty(budget_tokens)
            )

        selected = set()
        used = 0

        for category, minimum in sorted(self.config.category_minimums.items()):
            reserved = 0
            for candidate in ranked:
                if reserved >= minimum:
                    break
                if candidate.skill.category.value != category or candidate.identifier in selected:
                    continue
                if used + candidate.tokens <= budget_tokens:
                    selected.add(candidate.identifier)
                    used += candidate.tokens
                    reserved += 1
            if reserved < minimum:
                logger.debug(
                    "Category '%s' minimum %d not met (%d reserved)", category, minimum, reserved
                )

        for candidate in ranked:
            if candidate.identifier in selected:
                continue
            if used + candidate.tokens <= budget_tokens:
                selected.add(candidate.identifier)
                used += candidate.tokens

        entries = [PlanEntry(skill=c.skill) for c in ranked if c.identifier in selected]
        skipped = tuple(c.identifier for c in ranked if c.identifier not in selected)

        if skipped:
            logger.debug("Budget %d: skipped %s", budget_tokens, ", ".join(skipped))

        return LoadPlan(entries=tuple(entries), budget=budget_tokens, skipped=skipped)

