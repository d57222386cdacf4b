"""Per-query value types: match candidates and load plans."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, List, Tuple

from skill_context.models import ReferenceFile, SkillDocument

NOT_RELEVANT = "not-relevant"
OVER_BUDGET = "over-budget"


@dataclass(frozen=True)
class MatchCandidate:
    skill: SkillDocument
    score: float
    clauses: Tuple[str, ...] = ()
    matched_terms: Tuple[str, ...] = ()

    @property
    def identifier(self) -> str:
        return self.skill.identifier

    @property
    def tokens(self) -> int:
        return self.skill.tokens


@dataclass(frozen=True)
class DeferredReference:
    """A progressive disclosure reference left out of a plan, with why."""

    skill_id: str
    reference: ReferenceFile
    reason: str


@dataclass(frozen=True)
class PlanEntry:
    skill: SkillDocument
    references: Tuple[ReferenceFile, ...] = ()
    deferred: Tuple[DeferredReference, ...] = ()

    @property
    def tokens(self) -> int:
        return self.skill.tokens + sum(r.tokens for r in self.references)


@dataclass(frozen=True)
class LoadPlan:
    """What to load into the context window for one query.

    Attributes:
        entries: Selected skills in load order, each with its references
        budget: Token ceiling the plan was built for
        skipped: Identifiers of ranked candidates that did not fit
        omitted: "skill/reference" names that could not be resolved
    """

    entries: Tuple[PlanEntry, ...] = ()
    budget: int = 0
    skipped: Tuple[str, ...] = ()
    omitted: Tuple[str, ...] = ()
    expanded: bool = field(default=False, compare=False)

    @classmethod
    def empty(cls, budget: int) -> "LoadPlan":
        return cls(entries=(), budget=budget)

    @property
    def total_tokens(self) -> int:
        return sum(entry.tokens for entry in self.entries)

    @property
    def remaining(self) -> int:
        return self.budget - self.total_tokens

    @property
    def skill_ids(self) -> List[str]:
        return [entry.skill.identifier for entry in self.entries]

    @property
    def categories(self) -> List[str]:
        seen = []
        for entry in self.entries:
            if entry.skill.category.value not in seen:
                seen.append(entry.skill.category.value)
        return seen

    @property
    def deferred(self) -> List[DeferredReference]:
        return [d for entry in self.entries for d in entry.deferred]

    def entry(self, skill_id: str):
        for entry in self.entries:
            if entry.skill.identifier == skill_id:
                return entry
        return None

    def is_empty(self) -> bool:
        return not self.entries

    def with_entries(self, entries, **changes) -> "LoadPlan":
        return replace(self, entries=tuple(entries), **changes)

    def to_dict(self) -> Dict[str, object]:
        """Render the plan in its external output shape."""
        return {
            "budget": self.budget,
            "total_tokens": self.total_tokens,
            "remaining": self.remaining,
            "skills": [
                {
                    "id": entry.skill.identifier,
                    "category": entry.skill.category.value,
                    "tokens": entry.skill.tokens,
                    "references": [
                        {"name": ref.name, "tokens": ref.tokens}
                        for ref in entry.references
                    ],
                    "deferred": [
                        {"name": d.reference.name, "reason": d.reason}
                        for d in entry.deferred
                    ],
                }
                for entry in self.entries
            ],
            "skipped": list(self.skipped),
            "omitted": list(self.omitted),
        }
