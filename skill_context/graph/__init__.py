"""LangGraph pipeline for per-turn skill resolution."""

from skill_context.graph.state import TurnState
from skill_context.graph.nodes import (
    build_query_node,
    plan_cache_node,
    match_node,
    allocate_node,
    expand_node,
    monitor_node,
    refocus_node,
)
from skill_context.graph.builder import create_turn_graph

__all__ = [
    "TurnState",
    "build_query_node",
    "plan_cache_node",
    "match_node",
    "allocate_node",
    "expand_node",
    "monitor_node",
    "refocus_node",
    "create_turn_graph",
]
