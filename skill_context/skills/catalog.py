"""Skill catalog: an immutable index of skill documents and its owner.

This module provides:
- ``CatalogIndex``: built once from SKILL.md trees, read-only afterwards.
  Body and reference text is read and measured at build time and cached.
- ``SkillCatalog``: owns the current index and publishes rebuilt indexes
  atomically, so readers never see a half-built catalog.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from skill_context.config import EngineConfig
from skill_context.errors import CatalogError, ReferenceResolutionError, SecurityError
from skill_context.matching.text import estimate_tokens, keywords, ordered_keywords
from skill_context.models import ReferenceFile, SkillCategory, SkillDocument
from skill_context.skills.discovery import (
    REFERENCES_DIR,
    PathLike,
    catalog_signature,
    discover_skills,
    list_skill_references,
)
from skill_context.skills.parser import first_heading, load_reference_file, parse_disclosures

logger = logging.getLogger(__name__)


def _sandboxed(skill_dir: Path, rel_path: str, skill_file: Path) -> Path:
    skill_root = skill_dir.resolve()
    candidate = (skill_root / Path(rel_path)).resolve()
    try:
        candidate.relative_to(skill_root)
    except ValueError as e:
        raise SecurityError(
            f"Reference '{rel_path}' is outside its skill directory", skill_file
        ) from e
    return candidate


def _reference_topics(name: str, text: str, declared: Sequence[str]) -> Tuple[str, ...]:
    if declared:
        return tuple(declared)
    stem = Path(name).stem
    derived = sorted(keywords(stem)) + sorted(keywords(first_heading(text)))
    return tuple(ordered_keywords(derived))


def _build_references(
    meta: Dict[str, object], chars_per_token: float
) -> Tuple[List[ReferenceFile], Dict[str, str]]:
    skill_dir: Path = meta['skill_dir']
    skill_file: Path = meta['path']

    entries = list(meta.get('references') or [])
    if not entries:
        references_dir = skill_dir / REFERENCES_DIR
        for ref_path in list_skill_references(skill_dir):
            entries.append({
                'name': ref_path.relative_to(references_dir).as_posix(),
                'path': ref_path.relative_to(skill_dir).as_posix(),
                'topics': [],
            })

    references: List[ReferenceFile] = []
    texts: Dict[str, str] = {}
    for entry in entries:
        name = str(entry['name'])
        if name in texts:
            raise CatalogError(f"Duplicate reference name '{name}'", skill_file)

        ref_path = _sandboxed(skill_dir, str(entry['path']), skill_file)
        try:
            text = load_reference_file(ref_path)
        except FileNotFoundError as e:
            raise CatalogError(f"Dangling reference '{entry['path']}'", skill_file) from e
        except (OSError, UnicodeDecodeError) as e:
            raise CatalogError(f"Unreadable reference '{entry['path']}': {e}", skill_file) from e

        texts[name] = text
        references.append(ReferenceFile(
            name=name,
            path=ref_path.relative_to(skill_dir.resolve()).as_posix(),
            tokens=estimate_tokens(text, chars_per_token),
            topics=_reference_topics(name, text, entry.get('topics') or []),
        ))

    return references, texts


class CatalogIndex:
    """Read-only index of skill documents keyed by identifier."""

    def __init__(
        self,
        skills: Iterable[SkillDocument],
        reference_text: Optional[Dict[Tuple[str, str], str]] = None,
    ):
        by_id: Dict[str, SkillDocument] = {}
        for skill in skills:
            if skill.identifier in by_id:
                raise CatalogError(f"Duplicate skill identifier '{skill.identifier}'", skill.path)
            by_id[skill.identifier] = skill

        self._skills: Tuple[SkillDocument, ...] = tuple(
            by_id[key] for key in sorted(by_id)
        )
        self._by_id = by_id
        self._reference_text = dict(reference_text or {})
        self.version = self._fingerprint()

    @classmethod
    def build(
        cls,
        skills_dirs: Sequence[PathLike],
        config: Optional[EngineConfig] = None,
    ) -> "CatalogIndex":
        """Scan ``skills_dirs`` and build a complete index.

        Raises:
            CatalogError: For the first malformed or inconsistent document;
                nothing is returned in that case
        """
        config = config or EngineConfig()
        documents = []
        reference_text: Dict[Tuple[str, str], str] = {}

        for meta in discover_skills(skills_dirs):
            references, texts = _build_references(meta, config.chars_per_token)
            body = str(meta['body'])
            name = str(meta['name'])

            disclosures = parse_disclosures(body, [(r.name, r.path) for r in references])
            documents.append(SkillDocument(
                identifier=name,
                trigger=str(meta['description']),
                category=meta['category'],
                tokens=estimate_tokens(body, config.chars_per_token),
                tags=tuple(meta.get('tags') or ()),
                references=tuple(references),
                clauses=tuple(meta['clauses']),
                disclosures=frozenset(disclosures),
                body=body,
                path=meta['skill_dir'],
            ))
            for ref_name, text in texts.items():
                reference_text[(name, ref_name)] = text

        index = cls(documents, reference_text)
        logger.info(
            "Built skill catalog: %d skills, %d references (version %s)",
            len(index), len(reference_text), index.version[:12],
        )
        return index

    def _fingerprint(self) -> str:
        # Every field a plan or its rendering depends on, bodies and
        # reference text included.
        digest = hashlib.sha1()
        for skill in self._skills:
            digest.update(
                f"{skill.identifier}|{skill.category.value}|{skill.tokens}|"
                f"{skill.trigger}|{','.join(skill.tags)}|{'|'.join(skill.clauses)}|"
                f"{','.join(sorted(skill.disclosures))}\0{skill.body}\0".encode("utf-8")
            )
            for ref in skill.references:
                text = self._reference_text.get((skill.identifier, ref.name), "")
                digest.update(
                    f"{ref.name}|{ref.path}|{ref.tokens}|{','.join(ref.topics)}\0{text}\0".encode("utf-8")
                )
        return digest.hexdigest()

    def lookup(self, identifier: str) -> Optional[SkillDocument]:
        return self._by_id.get(identifier)

    def all(self) -> Tuple[SkillDocument, ...]:
        """All skills, ordered lexicographically by identifier."""
        return self._skills

    def by_category(self, category: SkillCategory) -> Tuple[SkillDocument, ...]:
        return tuple(s for s in self._skills if s.category == category)

    def read_reference(self, skill_id: str, name: str) -> str:
        """Return the cached text of a skill's reference file.

        Raises:
            ReferenceResolutionError: If this index has no such reference
        """
        try:
            return self._reference_text[(skill_id, name)]
        except KeyError:
            reason = "unknown skill" if skill_id not in self._by_id else "not in catalog"
            raise ReferenceResolutionError(skill_id, name, reason) from None

    def list_skills(self) -> str:
        """Returns formatted list of Name: Description for a system prompt."""
        return "\n".join(f"- {s.identifier}: {s.trigger}" for s in self._skills)

    def __len__(self) -> int:
        return len(self._skills)

    def __iter__(self) -> Iterator[SkillDocument]:
        return iter(self._skills)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._by_id


class SkillCatalog:
    """Owner of the current ``CatalogIndex``.

    Readers take ``catalog.current`` once per turn and keep using that
    snapshot. Rebuilds construct a full replacement and publish it with a
    single reference assignment; a failed rebuild leaves the previous index
    in place.
    """

    def __init__(
        self,
        skills_dirs: Sequence[PathLike] = ("./skills",),
        config: Optional[EngineConfig] = None,
    ):
        self.skills_dirs = [Path(d) for d in skills_dirs]
        self.config = config or EngineConfig()
        self._lock = threading.Lock()
        self._signature = catalog_signature(self.skills_dirs)
        self._current = CatalogIndex.build(self.skills_dirs, self.config)

    @property
    def current(self) -> CatalogIndex:
        return self._current

    def reload(self) -> CatalogIndex:
        """Rebuild the index from disk and publish it."""
        with self._lock:
            return self._rebuild()

    def refresh(self) -> bool:
        """Rebuild only if a file under the skill roots changed.

        Returns:
            True if a new index was published
        """
        with self._lock:
            if catalog_signature(self.skills_dirs) == self._signature:
                return False
            index = self._rebuild()
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Skill files changed; published version %s", index.version[:12])
            return True

    def _rebuild(self) -> CatalogIndex:
        signature = catalog_signature(self.skills_dirs)
        try:
            index = CatalogIndex.build(self.skills_dirs, self.config)
        except CatalogError:
            logger.exception("Catalog rebuild failed; keeping version %s", self._current.version[:12])
            raise
        self._current = index
        self._signature = signature
        return index
