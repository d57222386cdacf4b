"""Skill discovery module for scanning directories and finding SKILL.md files."""
import hashlib
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from skill_context.errors import CatalogError
from skill_context.models import SkillCategory
from skill_context.skills.parser import parse_skill_full

logger = logging.getLogger(__name__)

SKILL_FILE = "SKILL.md"
REFERENCES_DIR = "references"

PathLike = Union[str, Path]


def _resolve_roots(skills_dirs: Optional[Sequence[PathLike]]) -> List[Path]:
    if skills_dirs is None:
        skills_dirs = ["./skills"]

    roots = []
    for skills_dir in skills_dirs:
        root = Path(skills_dir).expanduser().resolve()
        if not root.exists():
            raise CatalogError("Skills directory not found", root)
        if not root.is_dir():
            raise CatalogError("Skills path is not a directory", root)
        roots.append(root)
    return roots


def _skill_files(root: Path) -> List[Path]:
    # Sorted so build order, and therefore error reporting, is reproducible.
    return sorted(root.glob(f"**/{SKILL_FILE}"))


def infer_category(skill_file: Path, root: Path) -> SkillCategory:
    """Infer a skill's category from its location under ``root``.

    ``skills/stack/react/SKILL.md`` is a stack skill; the first directory
    segment that names a category wins. Skills outside any category folder
    default to ``domain``.
    """
    try:
        parts = skill_file.parent.relative_to(root).parts
    except ValueError:
        parts = ()
    for part in (root.name,) + tuple(parts):
        category = SkillCategory.parse(part)
        if category is not None:
            return category
    return SkillCategory.DOMAIN


def discover_skills(skills_dirs: Optional[Sequence[PathLike]] = None) -> List[Dict[str, object]]:
    """Discover all skills in the specified directories.

    Scans directories recursively for SKILL.md files and parses each one.

    Args:
        skills_dirs: List of directory paths to scan for skills.
            If None, defaults to ["./skills"].

    Returns:
        List of skill dictionaries with keys:
        - name, description, clauses, tags, references: from the parser
        - category: SkillCategory (declared, else inferred from the path)
        - body: Markdown body after the frontmatter
        - path: Path to SKILL.md file
        - skill_dir: Parent directory of the skill

    Raises:
        CatalogError: If a directory is missing, a skill is malformed or
            two skills share a name
    """
    skills = []
    seen: Dict[str, Path] = {}

    for root in _resolve_roots(skills_dirs):
        for skill_file in _skill_files(root):
            skill_dir = skill_file.parent
            metadata, body = parse_skill_full(skill_file)

            name = metadata['name']
            if name in seen:
                raise CatalogError(
                    f"Duplicate skill name '{name}' (first defined at {seen[name]}). "
                    "Skill names must be unique",
                    skill_file,
                )
            seen[name] = skill_file

            declared = metadata.get('category')
            if declared is not None:
                category = SkillCategory.parse(declared)
                if category is None:
                    raise CatalogError(
                        f"Unknown category {declared!r} for '{name}'; expected one of "
                        + ", ".join(c.value for c in SkillCategory),
                        skill_file,
                    )
            else:
                category = infer_category(skill_file, root)

            skills.append({
                **metadata,
                'category': category,
                'body': body,
                'path': skill_file,
                'skill_dir': skill_dir,
            })

    logger.debug("Discovered %d skills", len(skills))
    return skills


def list_skill_references(skill_dir: Path) -> List[Path]:
    """List all reference documents in a skill's references/ directory.

    Args:
        skill_dir: Path to skill directory

    Returns:
        Sorted list of paths to reference files
    """
    references_dir = skill_dir / REFERENCES_DIR
    if not references_dir.exists():
        return []

    references = []
    for ref_file in references_dir.rglob("*"):
        if ref_file.is_file() and not ref_file.name.startswith('.'):
            references.append(ref_file)

    return sorted(references)


def catalog_signature(skills_dirs: Iterable[PathLike]) -> str:
    """Fingerprint every file under the skill roots by path, mtime and size.

    Used to decide whether a catalog reload is needed. Missing roots
    contribute their path only, so a root appearing later changes the
    signature.
    """
    digest = hashlib.sha1()
    for skills_dir in skills_dirs:
        root = Path(skills_dir).expanduser().resolve()
        digest.update(str(root).encode("utf-8"))
        if not root.is_dir():
            continue
        for path in sorted(p for p in root.rglob("*") if p.is_file()):
            try:
                stat = path.stat()
            except OSError:
                continue
            digest.update(
                f"{path}:{stat.st_mtime_ns}:{stat.st_size}".encode("utf-8")
            )
    return digest.hexdigest()
