from __future__ import annotations

import pytest

from skill_context.models import ReferenceFile, SkillCategory, SkillDocument
from skill_context.skills.catalog import CatalogIndex


def make_skill(
    identifier: str,
    *,
    tokens: int = 100,
    category: SkillCategory = SkillCategory.STACK,
    trigger: str = "Use when testing things",
    tags=(),
    clauses=("testing things",),
    references=(),
    disclosures=(),
    body: str = "",
) -> SkillDocument:
    return SkillDocument(
        identifier=identifier,
        trigger=trigger,
        category=category,
        tokens=tokens,
        tags=tuple(tags),
        references=tuple(references),
        clauses=tuple(clauses),
        disclosures=frozenset(disclosures),
        body=body or f"# {identifier}\n\nInstructions for {identifier}.",
    )


@pytest.fixture
def skill_factory():
    return make_skill


@pytest.fixture
def prisma_skill():
    """A skill with two progressive disclosure references and one plain one."""
    return make_skill(
        "prisma",
        tokens=100,
        category=SkillCategory.DOMAIN,
        trigger="Prisma ORM. Use when writing database migrations or seeding data",
        tags=("prisma", "database"),
        clauses=("writing database migrations", "seeding data"),
        references=(
            ReferenceFile("migrations.md", "references/migrations.md", 200, ("migrations", "migrate", "schema")),
            ReferenceFile("seeding.md", "references/seeding.md", 150, ("seeding", "seed", "fixtures")),
            ReferenceFile("internal.md", "references/internal.md", 50, ("internal",)),
        ),
        disclosures=("migrations.md", "seeding.md"),
    )


@pytest.fixture
def prisma_catalog(prisma_skill):
    return CatalogIndex(
        [prisma_skill],
        {
            ("prisma", "migrations.md"): "# Migrations\n\nRun prisma migrate dev.",
            ("prisma", "seeding.md"): "# Seeding\n\nUse prisma db seed.",
            ("prisma", "internal.md"): "# Internal\n\nNotes.",
        },
    )
