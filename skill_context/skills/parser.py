"""Skill parser module for extracting YAML frontmatter and content from SKILL.md files.

Parsing is done via `python-frontmatter` (import name: `frontmatter`). Besides
the metadata this module extracts the two things the engine reasons about
in prose: the condition clauses of a trigger description and the reference
files a body declares as progressive disclosure content.
"""

import re
import warnings
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

import frontmatter

from skill_context.errors import CatalogError
from skill_context.matching.text import keywords, ordered_keywords

MAX_NAME_LENGTH = 64
MAX_DESCRIPTION_LENGTH = 1024

STANDARD_FIELDS = {
    'name', 'description', 'version', 'license', 'compatibility',
    'tools', 'metadata', 'tags', 'category', 'references',
}

# Phrases that open a condition clause inside a trigger description, e.g.
# "Trigger: When creating React components, using hooks" or
# "Use this skill for database migrations or schema changes."
_CONDITION_MARKER = re.compile(
    r"\b(?:"
    r"use\s+(?:this\s+skill\s+|this\s+|it\s+)?(?:when|whenever|for|if|to)"
    r"|triggers?(?:\s+(?:when|on|for)|(?=\s*:))"
    r"|invoke\s+(?:when|for|if)"
    r"|activate\s+(?:when|for|if)"
    r"|applies\s+to"
    r"|whenever|when|if"
    r")\b\s*:?",
    re.IGNORECASE,
)
_CLAUSE_END = re.compile(r"[.!?\n](?:\s|$)")
_CLAUSE_SPLIT = re.compile(r"\s*(?:[,;]|\bor\b|\n\s*[-*]\s+)\s*", re.IGNORECASE)

_HEADING = re.compile(r"^(#{1,6})\s+(.*)$")
_DISCLOSURE_PHRASE = re.compile(r"progressive[\s_-]+disclosure", re.IGNORECASE)
# [`api.md`](references/api.md), `references/api.md`, references/api.md
_REFERENCE_MENTION = re.compile(
    r"\[`?([^\]`]+)`?\]\(([^)\s]+)\)|`([^`\s]+)`|([A-Za-z0-9_./-]+\.[A-Za-z0-9]{1,5})\b"
)


def validate_skill_name(name: str) -> bool:
    """Validate a skill identifier.

    Rules:
    - 1-64 characters
    - Lowercase alphanumeric + hyphens only
    - No leading, trailing, or consecutive hyphens
    """
    if not name or len(name) > MAX_NAME_LENGTH:
        return False
    if name.startswith('-') or name.endswith('-') or '--' in name:
        return False
    return bool(re.match(r'^[a-z0-9-]+$', name))


def _load_post(skill_file: Path):
    try:
        return frontmatter.load(skill_file)
    except Exception as e:
        raise CatalogError(f"Failed to parse frontmatter: {e}", skill_file) from e


def _parse_tags(value, skill_file: Path) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return ordered_keywords(re.split(r"[,\s]+", value))
    if isinstance(value, (list, tuple)):
        return ordered_keywords(str(v) for v in value)
    raise CatalogError("'tags' must be a string or a list", skill_file)


def _parse_reference_entries(value, skill_file: Path) -> List[Dict[str, object]]:
    """Normalize the optional ``references`` frontmatter list."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise CatalogError("'references' must be a list", skill_file)

    entries = []
    for item in value:
        if isinstance(item, str):
            entries.append({'path': item, 'name': Path(item).name, 'topics': []})
        elif isinstance(item, dict) and item.get('path'):
            topics = item.get('topics', item.get('keywords', []))
            if isinstance(topics, str):
                topics = re.split(r"[,\s]+", topics)
            entries.append({
                'path': str(item['path']),
                'name': str(item.get('name') or Path(str(item['path'])).name),
                'topics': ordered_keywords(topics or []),
            })
        else:
            raise CatalogError(
                "each entry of 'references' needs a 'path'", skill_file
            )
    return entries


def parse_skill_metadata(skill_file: Path) -> Dict[str, object]:
    """Parse only the YAML frontmatter from a SKILL.md file.

    Args:
        skill_file: Path to SKILL.md file

    Returns:
        Dictionary with skill metadata:
        - name: 1-64 chars, lowercase alphanumeric + hyphens (defaults to
          the folder name)
        - description: Required trigger description, 1-1024 chars
        - clauses: Condition clauses extracted from the description
        - tags: Lower-cased, de-duplicated tag list
        - category: Raw category value or None
        - references: Declared reference entries (may be empty)

    Raises:
        CatalogError: If required fields are missing or invalid
    """
    post = _load_post(skill_file)

    metadata = post.metadata
    if not isinstance(metadata, dict) or not metadata:
        raise CatalogError("No YAML frontmatter found", skill_file)

    name = metadata.get('name', skill_file.parent.name)
    if not isinstance(name, str) or not validate_skill_name(name):
        raise CatalogError(
            f"Invalid 'name' {name!r}: must be 1-64 lowercase alphanumerics "
            "or single hyphens",
            skill_file,
        )

    description = metadata.get('description')
    if not isinstance(description, str) or not description.strip():
        raise CatalogError(f"Skill '{name}' has no trigger description", skill_file)
    description = " ".join(description.split())
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise CatalogError(
            f"Description of '{name}' exceeds {MAX_DESCRIPTION_LENGTH} characters",
            skill_file,
        )

    clauses = extract_condition_clauses(description)
    if not clauses:
        raise CatalogError(
            f"Trigger description of '{name}' has no condition clause "
            "(expected e.g. 'Use when ...' or 'Trigger: ...')",
            skill_file,
        )

    result = {
        'name': name,
        'description': description,
        'clauses': clauses,
        'tags': _parse_tags(metadata.get('tags'), skill_file),
        'category': metadata.get('category'),
        'references': _parse_reference_entries(metadata.get('references'), skill_file),
    }

    non_standard = set(metadata.keys()) - STANDARD_FIELDS
    if non_standard:
        warnings.warn(
            f"Non-standard fields in {skill_file}: {sorted(non_standard)}. "
            "They will be ignored.",
            UserWarning,
        )

    return result


def parse_skill_full(skill_file: Path) -> Tuple[Dict[str, object], str]:
    """Parse both metadata and the markdown body from a SKILL.md file.

    Returns:
        Tuple of (metadata_dict, body) where body is the content after the
        frontmatter, stripped.
    """
    metadata = parse_skill_metadata(skill_file)
    post = _load_post(skill_file)
    return metadata, (post.content or "").strip()


def extract_condition_clauses(description: str) -> List[str]:
    """Return the condition clauses enumerated in a trigger description.

    A clause is the text that follows a condition marker ("when", "use for",
    "Trigger:", ...) up to the end of its sentence, split on commas,
    semicolons and "or". Clauses without any keyword are dropped.
    """
    markers = list(_CONDITION_MARKER.finditer(description))
    clauses: List[str] = []

    for index, marker in enumerate(markers):
        start = marker.end()
        stop = len(description)
        if index + 1 < len(markers):
            stop = markers[index + 1].start()
        end = _CLAUSE_END.search(description, start, stop)
        if end:
            stop = end.start()

        segment = description[start:stop]
        for fragment in _CLAUSE_SPLIT.split(segment):
            fragment = fragment.strip(" \t:-*").rstrip(".")
            if fragment and keywords(fragment) and fragment.lower() not in (
                c.lower() for c in clauses
            ):
                clauses.append(fragment)

    return clauses


def _mentioned_paths(text: str) -> Set[str]:
    mentions = set()
    for match in _REFERENCE_MENTION.finditer(text):
        for group in match.groups():
            if group:
                mentions.add(group.strip().lstrip("./"))
    return mentions


def parse_disclosures(body: str, references: Sequence[Tuple[str, str]]) -> Set[str]:
    """Find the references a skill body declares as progressive disclosure content.

    A reference counts when it is mentioned (by name or path) either inside a
    section whose heading mentions "progressive disclosure", or on a line
    that itself contains the phrase.

    Args:
        body: Markdown body of the skill
        references: (name, relative path) pairs of the skill's references

    Returns:
        Set of reference names
    """
    declared_text: List[str] = []
    section_level: Optional[int] = None

    for line in body.splitlines():
        heading = _HEADING.match(line.strip())
        if heading:
            level = len(heading.group(1))
            if section_level is not None and level <= section_level:
                section_level = None
            if _DISCLOSURE_PHRASE.search(heading.group(2)):
                section_level = level
            continue

        if section_level is not None or _DISCLOSURE_PHRASE.search(line):
            declared_text.append(line)

    if not declared_text:
        return set()

    mentions = _mentioned_paths("\n".join(declared_text))
    declared = set()
    for name, rel_path in references:
        candidates = {name, rel_path.lstrip("./"), Path(rel_path).name}
        if candidates & mentions:
            declared.add(name)
    return declared


def first_heading(text: str) -> str:
    for line in text.splitlines():
        heading = _HEADING.match(line.strip())
        if heading:
            return heading.group(2).strip()
    return ""


def load_reference_file(reference_path: Path) -> str:
    """Load a reference document from a skill directory.

    Raises:
        FileNotFoundError: If the reference does not exist
    """
    if not reference_path.exists() or not reference_path.is_file():
        raise FileNotFoundError(f"Reference file not found: {reference_path}")

    return reference_path.read_text(encoding='utf-8')
