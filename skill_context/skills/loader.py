"""Progressive disclosure: decide which reference files join a load plan."""
import logging
from typing import List, Optional, Set

from skill_context.config import EngineConfig
from skill_context.errors import ReferenceResolutionError
from skill_context.matching.plan import (
    NOT_RELEVANT,
    OVER_BUDGET,
    DeferredReference,
    LoadPlan,
    PlanEntry,
)
from skill_context.matching.text import tokenize
from skill_context.models import ReferenceFile
from skill_context.skills.catalog import CatalogIndex

logger = logging.getLogger(__name__)


class ProgressiveDisclosureLoader:
    """Expands a LoadPlan with the reference files a query justifies.

    A reference is only a candidate when the skill body declares it as
    progressive disclosure content. A candidate is loaded when the query
    shares enough keywords with its topics and it fits the remaining budget;
    otherwise it is recorded as deferred so the caller can offer it in a
    follow-up turn.
    """

    def __init__(self, catalog: CatalogIndex, config: Optional[EngineConfig] = None):
        self.catalog = catalog
        self.config = config or EngineConfig()

    def is_relevant(self, reference: ReferenceFile, query_tokens: Set[str]) -> bool:
        topics = set(reference.topics)
        if not topics:
            return False
        shared = topics & query_tokens
        if not shared:
            return False
        return len(shared) / len(topics) >= self.config.reference_overlap_threshold

    def expand(self, plan: LoadPlan, query: str) -> LoadPlan:
        """Resolve references for every skill in ``plan``.

        Expanding an already expanded plan with the same query returns an
        equal plan.

        Args:
            plan: Plan produced by the BudgetAllocator (or a previous expand)
            query: The text the plan was built for

        Returns:
            New LoadPlan with included and deferred references filled in
        """
        query_tokens = tokenize(query)
        remaining = plan.remaining
        omitted: List[str] = list(plan.omitted)
        entries: List[PlanEntry] = []

        for entry in plan.entries:
            skill = entry.skill
            included = list(entry.references)
            included_names = {ref.name for ref in included}
            deferred: List[DeferredReference] = []

            for ref in skill.references:
                if ref.name in included_names or not skill.is_deferrable(ref):
                    continue

                if not self.is_relevant(ref, query_tokens):
                    deferred.append(DeferredReference(skill.identifier, ref, NOT_RELEVANT))
                    continue

                if ref.tokens > remaining:
                    logger.debug(
                        "Deferring %s/%s: needs %d tokens, %d left",
                        skill.identifier, ref.name, ref.tokens, remaining,
                    )
                    deferred.append(DeferredReference(skill.identifier, ref, OVER_BUDGET))
                    continue

                try:
                    self.catalog.read_reference(skill.identifier, ref.name)
                except ReferenceResolutionError as e:
                    logger.warning("Omitting reference: %s", e)
                    key = f"{skill.identifier}/{ref.name}"
                    if key not in omitted:
                        omitted.append(key)
                    continue

                included.append(ref)
                included_names.add(ref.name)
                remaining -= ref.tokens

            entries.append(PlanEntry(skill=skill, references=tuple(included), deferred=tuple(deferred)))

        return plan.with_entries(entries, omitted=tuple(omitted), expanded=True)

    def load_reference(self, skill_id: str, name: str) -> str:
        """Page in a single reference, e.g. one deferred by an earlier plan.

        Raises:
            ReferenceResolutionError: If the catalog has no such reference
        """
        return self.catalog.read_reference(skill_id, name)

    def render(self, plan: LoadPlan) -> str:
        """Convert a plan to prompt context.

        Each skill becomes a ``<skill>`` block with its body, the text of its
        included references and the names of deferred ones.
        """
        blocks = []
        for entry in plan.entries:
            skill = entry.skill
            context = f"<skill name=\"{skill.identifier}\" category=\"{skill.category.value}\">\n"
            context += f"{skill.body}\n"

            for ref in entry.references:
                try:
                    text = self.catalog.read_reference(skill.identifier, ref.name)
                except ReferenceResolutionError as e:
                    logger.warning("Reference vanished while rendering: %s", e)
                    continue
                context += f"\n<reference name=\"{ref.name}\">\n{text.strip()}\n</reference>\n"

            if entry.deferred:
                context += "\n<deferred_references>\n"
                for item in entry.deferred:
                    topics = ", ".join(item.reference.topics)
                    context += f"- {item.reference.name} ({topics})\n"
                context += "</deferred_references>\n"

            context += "</skill>"
            blocks.append(context)

        return "\n\n".join(blocks)
