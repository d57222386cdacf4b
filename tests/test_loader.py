from __future__ import annotations

import pytest

from skill_context.config import EngineConfig
from skill_context.errors import ReferenceResolutionError
from skill_context.matching.plan import NOT_RELEVANT, OVER_BUDGET, LoadPlan, PlanEntry
from skill_context.skills.catalog import CatalogIndex
from skill_context.skills.loader import ProgressiveDisclosureLoader

QUERY = "create a migration to change the schema"


def _plan(skill, budget: int) -> LoadPlan:
    return LoadPlan(entries=(PlanEntry(skill=skill),), budget=budget)


class TestExpand:
    def test_relevant_reference_included(self, prisma_catalog, prisma_skill) -> None:
        plan = ProgressiveDisclosureLoader(prisma_catalog).expand(_plan(prisma_skill, 1000), QUERY)

        entry = plan.entry("prisma")
        assert [r.name for r in entry.references] == ["migrations.md"]
        assert plan.total_tokens == 300
        assert plan.expanded

    def test_irrelevant_reference_deferred(self, prisma_catalog, prisma_skill) -> None:
        plan = ProgressiveDisclosureLoader(prisma_catalog).expand(_plan(prisma_skill, 1000), QUERY)

        deferred = plan.deferred
        assert [(d.reference.name, d.reason) for d in deferred] == [("seeding.md", NOT_RELEVANT)]
        assert deferred[0].skill_id == "prisma"

    def test_undeclared_reference_never_considered(self, prisma_catalog, prisma_skill) -> None:
        plan = ProgressiveDisclosureLoader(prisma_catalog).expand(
            _plan(prisma_skill, 1000), "internal notes"
        )
        entry = plan.entry("prisma")
        assert "internal.md" not in [r.name for r in entry.references]
        assert "internal.md" not in [d.reference.name for d in entry.deferred]

    def test_over_budget_reference_deferred(self, prisma_catalog, prisma_skill) -> None:
        plan = ProgressiveDisclosureLoader(prisma_catalog).expand(_plan(prisma_skill, 250), QUERY)

        assert plan.entry("prisma").references == ()
        assert ("migrations.md", OVER_BUDGET) in [(d.reference.name, d.reason) for d in plan.deferred]
        assert plan.total_tokens <= plan.budget

    def test_overlap_threshold(self, prisma_catalog, prisma_skill) -> None:
        strict = ProgressiveDisclosureLoader(
            prisma_catalog, EngineConfig(reference_overlap_threshold=0.5)
        )
        plan = strict.expand(_plan(prisma_skill, 1000), QUERY)
        assert plan.entry("prisma").references == ()

    def test_expand_is_idempotent(self, prisma_catalog, prisma_skill) -> None:
        loader = ProgressiveDisclosureLoader(prisma_catalog)
        for budget in (1000, 250):
            once = loader.expand(_plan(prisma_skill, budget), QUERY)
            assert loader.expand(once, QUERY) == once

    def test_unresolvable_reference_omitted(self, prisma_skill) -> None:
        catalog = CatalogIndex([prisma_skill], {("prisma", "seeding.md"): "# Seeding"})
        loader = ProgressiveDisclosureLoader(catalog)

        plan = loader.expand(_plan(prisma_skill, 1000), QUERY)
        assert plan.omitted == ("prisma/migrations.md",)
        assert plan.entry("prisma").references == ()
        assert plan.skill_ids == ["prisma"]
        assert loader.expand(plan, QUERY) == plan

    def test_empty_plan(self, prisma_catalog) -> None:
        plan = ProgressiveDisclosureLoader(prisma_catalog).expand(LoadPlan.empty(100), QUERY)
        assert plan.is_empty()


class TestRender:
    def test_render_blocks(self, prisma_catalog, prisma_skill) -> None:
        loader = ProgressiveDisclosureLoader(prisma_catalog)
        context = loader.render(loader.expand(_plan(prisma_skill, 1000), QUERY))

        assert context.startswith('<skill name="prisma" category="domain">')
        assert '<reference name="migrations.md">' in context
        assert "Run prisma migrate dev." in context
        assert "<deferred_references>\n- seeding.md (seeding, seed, fixtures)" in context
        assert context.endswith("</skill>")

    def test_load_reference(self, prisma_catalog) -> None:
        loader = ProgressiveDisclosureLoader(prisma_catalog)
        assert loader.load_reference("prisma", "seeding.md").startswith("# Seeding")
        with pytest.raises(ReferenceResolutionError):
            loader.load_reference("prisma", "missing.md")

    def test_plan_to_dict(self, prisma_catalog, prisma_skill) -> None:
        plan = ProgressiveDisclosureLoader(prisma_catalog).expand(_plan(prisma_skill, 1000), QUERY)
        data = plan.to_dict()

        assert data["total_tokens"] == 300
        assert data["remaining"] == 700
        assert data["skills"][0]["references"] == [{"name": "migrations.md", "tokens": 200}]
        assert data["skills"][0]["deferred"] == [{"name": "seeding.md", "reason": "not-relevant"}]
