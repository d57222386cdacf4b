"""Skill catalog: discovery, parsing, indexing and progressive disclosure."""

from skill_context.skills.discovery import (
    catalog_signature,
    discover_skills,
    infer_category,
    list_skill_references,
)
from skill_context.skills.parser import (
    extract_condition_clauses,
    load_reference_file,
    parse_disclosures,
    parse_skill_full,
    parse_skill_metadata,
    validate_skill_name,
)
from skill_context.skills.catalog import CatalogIndex, SkillCatalog
from skill_context.skills.loader import ProgressiveDisclosureLoader

__all__ = [
    "catalog_signature",
    "discover_skills",
    "infer_category",
    "list_skill_references",
    "extract_condition_clauses",
    "load_reference_file",
    "parse_disclosures",
    "parse_skill_full",
    "parse_skill_metadata",
    "validate_skill_name",
    "CatalogIndex",
    "SkillCatalog",
    "ProgressiveDisclosureLoader",
]
