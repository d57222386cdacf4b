"""Lexical trigger matcher.

Scores every catalog entry against the recent conversation window with a
transparent weighted keyword overlap:

    score = tag_weight      * (tags present in the query)
          + clause_weight   * (trigger keywords present in the query
                               + condition clauses quoted verbatim)
          + category_weight * (category name mentioned)

Ties are broken by ascending identifier so the ranking is reproducible.
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional

from skill_context.config import EngineConfig
from skill_context.matching.plan import MatchCandidate
from skill_context.matching.text import keywords, tokenize
from skill_context.models import SkillDocument

logger = logging.getLogger(__name__)


def _normalize(text: str) -> str:
    return " ".join(re.findall(r"[a-z0-9][a-z0-9.+#_-]*", text.lower()))


class TriggerMatcher:
    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def score(self, skill: SkillDocument, query_tokens: set, normalized_query: str) -> MatchCandidate:
        """Score one skill against an already tokenized query."""
        cfg = self.config

        tag_hits = [
            tag for tag in skill.tags
            if tag in query_tokens or (" " in tag and tag in normalized_query)
        ]

        trigger_keywords = keywords(skill.trigger)
        keyword_hits = sorted(trigger_keywords & query_tokens)

        matched_clauses = []
        verbatim = 0
        for clause in skill.clauses:
            normalized_clause = _normalize(clause)
            if normalized_clause and normalized_clause in normalized_query:
                verbatim += 1
                matched_clauses.append(clause)
            elif keywords(clause) & query_tokens:
                matched_clauses.append(clause)

        category_hit = skill.category.value in query_tokens

        score = (
            cfg.tag_weight * len(tag_hits)
            + cfg.clause_weight * (len(keyword_hits) + verbatim)
            + cfg.category_weight * (1 if category_hit else 0)
        )

        terms = list(tag_hits)
        terms.extend(k for k in keyword_hits if k not in terms)
        if category_hit and skill.category.value not in terms:
            terms.append(skill.category.value)

        return MatchCandidate(
            skill=skill,
            score=float(score),
            clauses=tuple(matched_clauses),
            matched_terms=tuple(terms),
        )

    def match(self, query: str, catalog) -> List[MatchCandidate]:
        """Rank the catalog against ``query``, highest score first.

        Args:
            query: Recent conversation window as plain text
            catalog: CatalogIndex to rank

        Returns:
            Candidates with a positive score. Empty for a blank query; the
            caller decides on any default set.
        """
        if not query or not query.strip():
            return []

        query_tokens = tokenize(query)
        normalized_query = _normalize(query)

        candidates = []
        for skill in catalog.all():
            candidate = self.score(skill, query_tokens, normalized_query)
            if candidate.score > 0:
                candidates.append(candidate)

        candidates.sort(key=lambda c: (-c.score, c.identifier))

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Matched %d/%d skills: %s",
                len(candidates),
                len(catalog),
                ", ".join(f"{c.identifier}={c.score:g}" for c in candidates[:10]),
            )
        return candidates
