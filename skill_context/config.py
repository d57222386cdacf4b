"""Engine configuration.

Every threshold and weight used by the matcher, the allocator, the
disclosure loader and the health monitor lives here so it can be tuned
without code changes. Values can be supplied directly or read from
``SKILL_CONTEXT_<FIELD>`` environment variables via ``EngineConfig.from_env``.
"""
from __future__ import annotations

import os
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from skill_context.models import SkillCategory

ENV_PREFIX = "SKILL_CONTEXT_"

_TRUTHY = {"1", "true", "yes", "y", "on"}


def _truthy(value: str) -> bool:
    return value.strip().lower() in _TRUTHY


class EngineConfig(BaseModel):
    """Tunable settings for one engine instance."""

    # Budget and token estimation
    budget_tokens: int = Field(default=8000, ge=0)
    chars_per_token: float = Field(default=4.0, gt=0)

    # Trigger matching
    tag_weight: float = Field(default=3.0, ge=0)
    clause_weight: float = Field(default=2.0, ge=0)
    category_weight: float = Field(default=1.0, ge=0)
    query_window: int = Field(default=3, ge=1)

    # Allocation
    category_minimums: Dict[str, int] = Field(default_factory=dict)
    always_on: List[str] = Field(default_factory=list)
    plan_cache_size: int = Field(default=32, ge=0)

    # Progressive disclosure
    reference_overlap_threshold: float = Field(default=0.25, ge=0, le=1)

    # Conversation health
    warn_messages: int = Field(default=40, ge=1)
    action_messages: int = Field(default=60, ge=1)
    category_window: int = Field(default=20, ge=1)
    warn_categories: int = Field(default=2, ge=1)
    action_categories: int = Field(default=3, ge=1)
    error_window: int = Field(default=10, ge=1)
    warn_error_repeats: int = Field(default=2, ge=1)
    action_error_repeats: int = Field(default=3, ge=1)
    clarification_window: int = Field(default=10, ge=1)
    warn_clarification_repeats: int = Field(default=2, ge=1)
    action_clarification_repeats: int = Field(default=3, ge=1)
    action_outstanding_spawns: int = Field(default=3, ge=1)
    recovery_messages: int = Field(default=5, ge=1)
    spawn_tool_names: List[str] = Field(
        default_factory=lambda: ["task", "spawn_agent", "delegate"]
    )
    completion_pattern: str = r"\b(completed?|done|finished)\b"
    auto_refocus: bool = False

    model_config = {"frozen": True}

    @field_validator("category_minimums")
    @classmethod
    def _known_categories(cls, value: Dict[str, int]) -> Dict[str, int]:
        normalized = {}
        for name, minimum in value.items():
            category = SkillCategory.parse(name)
            if category is None:
                raise ValueError(f"Unknown skill category in category_minimums: {name!r}")
            if minimum < 0:
                raise ValueError(f"Minimum for {name!r} must be >= 0")
            normalized[category.value] = int(minimum)
        return normalized

    @field_validator("spawn_tool_names")
    @classmethod
    def _lower_names(cls, value: List[str]) -> List[str]:
        return [name.strip().lower() for name in value if name.strip()]

    @model_validator(mode="after")
    def _ordered_thresholds(self) -> "EngineConfig":
        pairs = [
            ("warn_messages", "action_messages"),
            ("warn_categories", "action_categories"),
            ("warn_error_repeats", "action_error_repeats"),
            ("warn_clarification_repeats", "action_clarification_repeats"),
        ]
        for warn, action in pairs:
            if getattr(self, warn) > getattr(self, action):
                raise ValueError(f"{warn} must not exceed {action}")
        return self

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> "EngineConfig":
        """Build a config from ``SKILL_CONTEXT_*`` environment variables.

        Lists are comma separated, ``category_minimums`` uses ``name=count``
        pairs (``stack=1,meta=1``) and booleans accept 1/true/yes/y/on.
        Explicit keyword overrides win over the environment.
        """
        if environ is None:
            environ = os.environ

        values: Dict[str, object] = {}
        for name, field_info in cls.model_fields.items():
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is None:
                continue

            annotation = field_info.annotation
            if annotation is bool:
                values[name] = _truthy(raw)
            elif name == "category_minimums":
                pairs = [p for p in raw.split(",") if p.strip()]
                minimums = {}
                for pair in pairs:
                    key, _, count = pair.partition("=")
                    minimums[key.strip()] = int(count or 1)
                values[name] = minimums
            elif name in ("always_on", "spawn_tool_names"):
                values[name] = [p.strip() for p in raw.split(",") if p.strip()]
            else:
                values[name] = raw

        values.update(overrides)
        return cls(**values)
