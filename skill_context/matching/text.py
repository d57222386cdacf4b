"""Text helpers shared by the matcher, the disclosure loader and the parser."""
from __future__ import annotations

import math
import re
from typing import Iterable, List, Set

_WORD_RE = re.compile(r"[a-z0-9]+(?:[-_.][a-z0-9]+)*")

STOP_WORDS = frozenset(
    {
        "a", "an", "and", "any", "are", "as", "at", "be", "by", "can", "do",
        "for", "from", "how", "i", "if", "in", "into", "is", "it", "its",
        "me", "my", "need", "of", "on", "or", "our", "so", "some", "such",
        "that", "the", "their", "them", "then", "there", "these", "this",
        "to", "up", "use", "used", "uses", "using", "via", "want", "was",
        "we", "what", "when", "whenever", "where", "which", "while", "who",
        "why", "will", "with", "without", "you", "your", "skill", "trigger",
        "triggers", "invoke", "apply", "applies", "working", "e.g", "etc",
    }
)


def tokenize(text: str) -> Set[str]:
    """Return the lower-cased word set of ``text``.

    Compound words (``react-native``, ``next.js``) contribute the compound
    itself and each of its parts, so a tag ``react-native`` matches a query
    that spells it out and a trigger keyword ``react`` matches either.
    """
    tokens: Set[str] = set()
    if not text:
        return tokens

    for word in _WORD_RE.findall(text.lower()):
        tokens.add(word)
        parts = re.split(r"[-_.]", word)
        if len(parts) > 1:
            tokens.update(p for p in parts if p)
    return tokens


def keywords(text: str) -> Set[str]:
    """Tokenize ``text`` and drop stop words and one-letter tokens."""
    return {t for t in tokenize(text) if t not in STOP_WORDS and len(t) > 1}


def ordered_keywords(values: Iterable[str]) -> List[str]:
    """Lower-case and de-duplicate ``values`` preserving their order."""
    seen = set()
    result = []
    for value in values:
        key = str(value).strip().lower()
        if key and key not in seen:
            seen.add(key)
            result.append(key)
    return result


def estimate_tokens(text: str, chars_per_token: float = 4.0) -> int:
    """Estimate the token count of ``text`` from its character length."""
    if not text:
        return 0
    return int(math.ceil(len(text) / chars_per_token))
