"""State definitions for the per-turn LangGraph pipeline."""
from typing import TypedDict, List, Optional, Annotated, Any
from langchain_core.messages import BaseMessage
import operator


class TurnState(TypedDict, total=False):
    """State schema for one pass of match -> allocate -> expand -> monitor.

    Attributes:
        messages: Messages that arrived this turn (user input and anything
            the assistant or tools produced since the previous turn)
        recent_queries: Trailing human messages used to build the query
        catalog: CatalogIndex snapshot the whole pass works against
        budget: Token ceiling for the plan
        query: Text the catalog is matched against
        candidates: Ranked MatchCandidates
        plan: LoadPlan (allocated, then expanded)
        cache_hit: Whether the plan came from the session's plan cache
        notices: Recoverable problems met during the pass
        advisory: Advisory emitted by the health monitor, if any
        health: Health state after the monitor update
        refocused: Set once the pipeline re-ran with a narrowed query
    """
    messages: List[BaseMessage]
    recent_queries: List[str]
    catalog: Any
    budget: int

    query: str
    candidates: List[Any]
    plan: Optional[Any]
    cache_hit: bool

    # Accumulated across nodes
    notices: Annotated[List[str], operator.add]

    advisory: Optional[Any]
    health: Optional[str]
    refocused: bool
