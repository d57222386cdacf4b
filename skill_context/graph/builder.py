"""LangGraph graph builder for the per-turn pipeline.

Graph structure:
```
START -> build_query -> plan_cache --(hit)--> monitor
                            |                    |
                          (miss)            (auto_refocus)
                            v                    v
                          match <----------- refocus
                            |
                         allocate -> expand --(refocused)--> END
                                        |
                                        +--> monitor --> END
```
"""
from langgraph.graph import StateGraph, END

from skill_context.config import EngineConfig
from skill_context.graph.state import TurnState
from skill_context.graph.nodes import (
    build_query_node,
    plan_cache_node,
    route_after_cache,
    match_node,
    allocate_node,
    expand_node,
    route_after_expand,
    monitor_node,
    route_after_monitor,
    refocus_node,
)
from skill_context.matching.allocator import BudgetAllocator
from skill_context.matching.cache import PlanCache
from skill_context.matching.matcher import TriggerMatcher
from skill_context.monitor.health import ConversationHealthMonitor


def create_turn_graph(
    config: EngineConfig,
    monitor: ConversationHealthMonitor,
    cache: PlanCache,
    matcher: TriggerMatcher = None,
    allocator: BudgetAllocator = None,
):
    """Create the LangGraph state machine for one conversation session.

    The session's monitor and plan cache are bound into the nodes; the
    catalog snapshot and budget travel in the state so a catalog reload
    never changes the index in the middle of a pass.

    Args:
        config: Engine configuration
        monitor: The session's ConversationHealthMonitor
        cache: The session's PlanCache
        matcher: TriggerMatcher to use (built from config if omitted)
        allocator: BudgetAllocator to use (built from config if omitted)

    Returns:
        Compiled LangGraph graph
    """
    matcher = matcher or TriggerMatcher(config)
    allocator = allocator or BudgetAllocator(config)

    workflow = StateGraph(TurnState)

    workflow.add_node(
        "build_query",
        lambda state: build_query_node(state, config.query_window)
    )
    workflow.add_node(
        "plan_cache",
        lambda state: plan_cache_node(state, cache)
    )
    workflow.add_node(
        "match",
        lambda state: match_node(state, matcher, list(config.always_on))
    )
    workflow.add_node(
        "allocate",
        lambda state: allocate_node(state, allocator)
    )
    workflow.add_node(
        "expand",
        lambda state: expand_node(state, config, cache)
    )
    workflow.add_node(
        "monitor",
        lambda state: monitor_node(state, monitor)
    )
    workflow.add_node("refocus", refocus_node)

    workflow.set_entry_point("build_query")
    workflow.add_edge("build_query", "plan_cache")

    workflow.add_conditional_edges(
        "plan_cache",
        route_after_cache,
        {
            "monitor": "monitor",
            "match": "match",
        },
    )

    workflow.add_edge("match", "allocate")
    workflow.add_edge("allocate", "expand")

    workflow.add_conditional_edges(
        "expand",
        route_after_expand,
        {
            "monitor": "monitor",
            "end": END,
        },
    )

    workflow.add_conditional_edges(
        "monitor",
        lambda state: route_after_monitor(state, config.auto_refocus),
        {
            "refocus": "refocus",
            "end": END,
        },
    )
    workflow.add_edge("refocus", "match")

    return workflow.compile()
