"""Skill Context: skill resolution and context budgeting for AI assistants.

Given a catalog of SKILL.md documents and a live conversation, the engine
decides which skills to load into a bounded context window, which of their
reference files to disclose, and watches the conversation for drift.
"""

from skill_context.config import EngineConfig
from skill_context.errors import (
    SkillContextError,
    CatalogError,
    SecurityError,
    BudgetExceededError,
    ReferenceResolutionError,
)
from skill_context.models import SkillCategory, SkillDocument, ReferenceFile
from skill_context.matching import (
    BudgetAllocator,
    DeferredReference,
    LoadPlan,
    MatchCandidate,
    PlanEntry,
    TriggerMatcher,
)
from skill_context.skills import CatalogIndex, SkillCatalog, ProgressiveDisclosureLoader
from skill_context.monitor import (
    Advisory,
    AdvisoryKind,
    ConversationHealthMonitor,
    ConversationState,
    HealthState,
)
from skill_context.engine import ConversationSession, SkillContextEngine, TurnResult
from skill_context.tools import create_reference_tool

__version__ = "0.1.0"
__all__ = [
    "EngineConfig",
    # Errors
    "SkillContextError",
    "CatalogError",
    "SecurityError",
    "BudgetExceededError",
    "ReferenceResolutionError",
    # Catalog
    "SkillCategory",
    "SkillDocument",
    "ReferenceFile",
    "CatalogIndex",
    "SkillCatalog",
    # Matching and allocation
    "TriggerMatcher",
    "BudgetAllocator",
    "MatchCandidate",
    "LoadPlan",
    "PlanEntry",
    "DeferredReference",
    "ProgressiveDisclosureLoader",
    # Conversation health
    "ConversationHealthMonitor",
    "ConversationState",
    "HealthState",
    "Advisory",
    "AdvisoryKind",
    # Engine
    "SkillContextEngine",
    "ConversationSession",
    "TurnResult",
    "create_reference_tool",
]
