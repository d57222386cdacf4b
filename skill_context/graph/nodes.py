"""Graph nodes for the per-turn skill resolution pipeline."""
from typing import Dict, List, Optional
import logging

from langchain_core.messages import HumanMessage

from skill_context.config import EngineConfig
from skill_context.errors import BudgetExceededError
from skill_context.graph.state import TurnState
from skill_context.matching.allocator import BudgetAllocator
from skill_context.matching.cache import PlanCache
from skill_context.matching.matcher import TriggerMatcher
from skill_context.matching.plan import MatchCandidate
from skill_context.monitor.health import ConversationHealthMonitor
from skill_context.skills.loader import ProgressiveDisclosureLoader


logger = logging.getLogger(__name__)


def _human_texts(messages) -> List[str]:
    texts = []
    for message in messages or []:
        if isinstance(message, HumanMessage):
            content = message.content
            if not isinstance(content, str):
                content = " ".join(
                    part if isinstance(part, str) else str(part.get("text", ""))
                    for part in content
                )
            if content.strip():
                texts.append(content.strip())
    return texts


def build_query_node(state: TurnState, query_window: int) -> Dict:
    """Build the match query from the trailing human messages.

    Args:
        state: Current turn state
        query_window: Number of trailing human messages to include

    Returns:
        State update with query and recent_queries
    """
    recent = list(state.get("recent_queries", []))
    recent.extend(_human_texts(state.get("messages", [])))
    recent = recent[-query_window:]

    return {
        "query": "\n".join(recent),
        "recent_queries": recent,
    }


def plan_cache_node(state: TurnState, cache: PlanCache) -> Dict:
    """Reuse a cached plan for an identical query against the same catalog."""
    catalog = state["catalog"]
    key = PlanCache.key(catalog.version, state.get("query", ""), state["budget"])
    plan = cache.get(key)
    if plan is None:
        return {"cache_hit": False}

    logger.debug("Plan cache hit for %r", state.get("query", "")[:60])
    return {"plan": plan, "cache_hit": True}


def route_after_cache(state: TurnState) -> str:
    if state.get("cache_hit"):
        return "monitor"
    return "match"


def match_node(state: TurnState, matcher: TriggerMatcher, always_on: List[str]) -> Dict:
    """Rank the catalog snapshot against the query.

    With no match (e.g. an empty first turn) the configured always-on
    skills are used instead, with a zero score.
    """
    catalog = state["catalog"]
    candidates = matcher.match(state.get("query", ""), catalog)

    if not candidates and always_on:
        for identifier in always_on:
            skill = catalog.lookup(identifier)
            if skill is None:
                logger.warning("Always-on skill '%s' is not in the catalog", identifier)
                continue
            candidates.append(MatchCandidate(skill=skill, score=0.0))

    return {"candidates": candidates}


def allocate_node(state: TurnState, allocator: BudgetAllocator) -> Dict:
    """Allocate the budget, degrading instead of failing on oversized skills.

    When the best candidate alone exceeds the budget it is dropped (and a
    notice recorded) and allocation is retried with the remaining ones.
    """
    candidates = list(state.get("candidates", []))
    budget = state["budget"]
    notices = []

    while True:
        try:
            plan = allocator.allocate(candidates, budget)
            break
        except BudgetExceededError as e:
            logger.warning("%s; falling back to a smaller plan", e)
            notices.append(str(e))
            candidates = [c for c in candidates if c.identifier != e.skill_id]

    return {"plan": plan, "notices": notices}


def expand_node(
    state: TurnState,
    config: EngineConfig,
    cache: PlanCache,
) -> Dict:
    """Resolve progressive disclosure references and cache the result."""
    catalog = state["catalog"]
    query = state.get("query", "")
    loader = ProgressiveDisclosureLoader(catalog, config)
    plan = loader.expand(state["plan"], query)

    notices = [f"Reference {name} could not be loaded" for name in plan.omitted]
    cache.put(PlanCache.key(catalog.version, query, state["budget"]), plan)
    return {"plan": plan, "notices": notices}


def route_after_expand(state: TurnState) -> str:
    # A refocus pass re-plans only; the monitor already saw this turn.
    if state.get("refocused"):
        return "end"
    return "monitor"


def monitor_node(state: TurnState, monitor: ConversationHealthMonitor) -> Dict:
    """Feed the turn to the health monitor."""
    plan = state.get("plan")
    categories = plan.categories if plan is not None else []

    advisory = monitor.observe(
        state.get("messages", []),
        categories=categories,
        notices=state.get("notices", []),
    )

    return {
        "advisory": advisory,
        "health": monitor.health.value,
    }


def route_after_monitor(state: TurnState, auto_refocus: bool) -> str:
    """Re-run matching with the narrowed query when an advisory asks for it."""
    advisory = state.get("advisory")
    if not auto_refocus or advisory is None or not advisory.user_visible:
        return "end"

    narrowed: Optional[str] = advisory.refocus_query
    if not narrowed or narrowed == state.get("query"):
        return "end"
    return "refocus"


def refocus_node(state: TurnState) -> Dict:
    advisory = state["advisory"]
    logger.info("Refocusing on latest request after %s advisory", advisory.kind.value)
    return {
        "query": advisory.refocus_query,
        "recent_queries": [advisory.refocus_query],
        "refocused": True,
        "cache_hit": False,
    }
