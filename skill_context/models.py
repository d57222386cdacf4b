"""Immutable value types describing catalog entries."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple


class SkillCategory(str, Enum):
    STACK = "stack"
    DOMAIN = "domain"
    META = "meta"

    @classmethod
    def parse(cls, value: object) -> Optional["SkillCategory"]:
        """Return the category named by ``value`` or None if it is not one."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class ReferenceFile:
    name: str
    path: str
    tokens: int
    topics: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SkillDocument:
    """A skill as it appears in the catalog.

    ``tokens`` is measured from ``body``; ``clauses`` are the condition
    clauses extracted from ``trigger`` and ``disclosures`` the reference
    names the body declares as progressive disclosure content.
    """

    identifier: str
    trigger: str
    category: SkillCategory
    tokens: int
    tags: Tuple[str, ...] = ()
    references: Tuple[ReferenceFile, ...] = ()
    clauses: Tuple[str, ...] = ()
    disclosures: frozenset = field(default_factory=frozenset)
    body: str = field(default="", repr=False, compare=False)
    path: Optional[Path] = field(default=None, compare=False)

    def reference(self, name: str) -> Optional[ReferenceFile]:
        for ref in self.references:
            if ref.name == name:
                return ref
        return None

    def is_deferrable(self, reference: ReferenceFile) -> bool:
        return reference.name in self.disclosures
