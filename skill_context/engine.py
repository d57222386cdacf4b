"""Engine facade: catalog ownership and per-conversation sessions."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union
import logging
import threading

from langchain_core.messages import BaseMessage, HumanMessage

from skill_context.config import EngineConfig
from skill_context.graph.builder import create_turn_graph
from skill_context.matching.allocator import BudgetAllocator
from skill_context.matching.cache import PlanCache
from skill_context.matching.matcher import TriggerMatcher
from skill_context.matching.plan import LoadPlan
from skill_context.monitor.health import Advisory, ConversationHealthMonitor, HealthState
from skill_context.skills.catalog import CatalogIndex, SkillCatalog
from skill_context.skills.loader import ProgressiveDisclosureLoader

logger = logging.getLogger(__name__)

TurnInput = Union[str, BaseMessage, Sequence[BaseMessage]]


@dataclass(frozen=True)
class TurnResult:
    """Outcome of one pipeline pass.

    ``context`` is the rendered prompt text for the plan; ``notices`` lists
    recoverable problems (oversized skills, unresolvable references).
    """

    query: str
    plan: LoadPlan
    health: HealthState
    advisory: Optional[Advisory] = None
    notices: Tuple[str, ...] = ()
    cache_hit: bool = False
    refocused: bool = False
    context: str = field(default="", repr=False)

    def to_dict(self) -> Dict[str, object]:
        return {
            "query": self.query,
            "plan": self.plan.to_dict(),
            "health": self.health.value,
            "advisory": self.advisory.to_dict() if self.advisory else None,
            "notices": list(self.notices),
            "cache_hit": self.cache_hit,
            "refocused": self.refocused,
        }


class ConversationSession:
    """One conversation: its health state, plan cache and turn pipeline.

    Sessions share the engine's catalog but no mutable state with each
    other. Each ``run`` takes one catalog snapshot and uses it for the whole
    pass.

    Example:
        ```python
        engine = SkillContextEngine(["./skills"])
        session = engine.session("thread-1")

        result = session.run("How do I write a React hook for data fetching?")
        print(result.plan.skill_ids)
        print(result.context)

        # After the assistant replied:
        advisory = session.record([AIMessage(content="...")])
        ```
    """

    def __init__(self, engine: "SkillContextEngine", session_id: str = "default"):
        self.engine = engine
        self.session_id = session_id
        self.config = engine.config
        self.monitor = ConversationHealthMonitor(self.config)
        self.cache = PlanCache(self.config.plan_cache_size)
        self.recent_queries: List[str] = []
        self.last_result: Optional[TurnResult] = None
        self.graph = create_turn_graph(
            self.config,
            self.monitor,
            self.cache,
            matcher=engine.matcher,
            allocator=engine.allocator,
        )

    @property
    def health(self) -> HealthState:
        return self.monitor.health

    def run(self, user_input: TurnInput, budget: Optional[int] = None) -> TurnResult:
        """Run one turn: match, allocate, expand, then update conversation health.

        Args:
            user_input: The user's message, or the list of messages that
                arrived since the previous turn (assistant replies, tool
                results and the new user message)
            budget: Token ceiling for this turn (config default if omitted)

        Returns:
            TurnResult with the expanded plan and any advisory
        """
        if isinstance(user_input, str):
            messages = [HumanMessage(content=user_input)]
        elif isinstance(user_input, BaseMessage):
            messages = [user_input]
        else:
            messages = list(user_input)

        catalog = self.engine.catalog.current
        budget = self.config.budget_tokens if budget is None else budget

        input_state = {
            "messages": messages,
            "recent_queries": list(self.recent_queries),
            "catalog": catalog,
            "budget": budget,
            "notices": [],
            "refocused": False,
        }
        final = self.graph.invoke(input_state)

        self.recent_queries = list(final.get("recent_queries", self.recent_queries))
        plan = final.get("plan") or LoadPlan.empty(budget)
        loader = ProgressiveDisclosureLoader(catalog, self.config)

        result = TurnResult(
            query=final.get("query", ""),
            plan=plan,
            health=self.monitor.health,
            advisory=final.get("advisory"),
            notices=tuple(final.get("notices", [])),
            cache_hit=bool(final.get("cache_hit")),
            refocused=bool(final.get("refocused")),
            context=loader.render(plan),
        )
        self.last_result = result

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Session %s turn: skills=%s tokens=%d/%d health=%s",
                self.session_id,
                plan.skill_ids,
                plan.total_tokens,
                plan.budget,
                result.health.value,
            )
        return result

    def record(self, messages: Sequence) -> Optional[Advisory]:
        """Feed assistant/tool output to the monitor outside a pipeline pass.

        Messages are attributed to the categories of the last plan.
        """
        categories = self.last_result.plan.categories if self.last_result else []
        return self.monitor.observe(messages, categories=categories)

    def acknowledge(self) -> bool:
        """The user acted on the current advisory; return to healthy."""
        return self.monitor.acknowledge()

    def reset(self) -> None:
        """Start a new conversation in this session."""
        self.monitor.reset()
        self.cache.clear()
        self.recent_queries = []
        self.last_result = None

    def load_deferred(self, skill_id: str, reference: str) -> str:
        """Page in a reference that an earlier plan deferred.

        Raises:
            ReferenceResolutionError: If the current catalog has no such reference
        """
        loader = ProgressiveDisclosureLoader(self.engine.catalog.current, self.config)
        return loader.load_reference(skill_id, reference)


class SkillContextEngine:
    """Skill resolution and context budget engine.

    Owns the skill catalog and the shared matcher/allocator, and hands out
    independent conversation sessions.

    Example:
        ```python
        from skill_context import SkillContextEngine, EngineConfig

        engine = SkillContextEngine(
            ["./skills"],
            config=EngineConfig(budget_tokens=6000, always_on=["conventions"]),
        )
        plan = engine.plan("add a prisma migration for the users table")
        ```
    """

    def __init__(
        self,
        skills_dirs: Optional[Sequence[str]] = None,
        config: Optional[EngineConfig] = None,
        catalog: Optional[SkillCatalog] = None,
    ):
        self.config = config or EngineConfig()
        self.catalog = catalog or SkillCatalog(skills_dirs or ["./skills"], self.config)
        self.matcher = TriggerMatcher(self.config)
        self.allocator = BudgetAllocator(self.config)
        self._sessions: Dict[str, ConversationSession] = {}
        self._sessions_lock = threading.Lock()

    def session(self, session_id: str = "default") -> ConversationSession:
        """Get or create the session with this id."""
        with self._sessions_lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = ConversationSession(self, session_id)
                self._sessions[session_id] = session
            return session

    def close_session(self, session_id: str) -> None:
        with self._sessions_lock:
            self._sessions.pop(session_id, None)

    def reload(self) -> CatalogIndex:
        """Rebuild the catalog from disk (fails loudly, keeps the old index)."""
        return self.catalog.reload()

    def refresh(self) -> bool:
        """Rebuild the catalog if any skill file changed."""
        return self.catalog.refresh()

    def plan(self, query: str, budget: Optional[int] = None) -> LoadPlan:
        """Stateless match -> allocate -> expand for a single query.

        Raises:
            BudgetExceededError: If the best match alone exceeds the budget
        """
        catalog = self.catalog.current
        budget = self.config.budget_tokens if budget is None else budget

        candidates = self.matcher.match(query, catalog)
        plan = self.allocator.allocate(candidates, budget)
        return ProgressiveDisclosureLoader(catalog, self.config).expand(plan, query)

    def list_skills(self) -> List[Dict[str, object]]:
        """List catalog entries with their metadata."""
        return [
            {
                "name": skill.identifier,
                "description": skill.trigger,
                "category": skill.category.value,
                "tags": list(skill.tags),
                "tokens": skill.tokens,
                "references": [ref.name for ref in skill.references],
            }
            for skill in self.catalog.current.all()
        ]
