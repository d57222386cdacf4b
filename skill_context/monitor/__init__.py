"""Conversation drift detection."""

from skill_context.monitor.health import (
    Advisory,
    AdvisoryKind,
    ConversationHealthMonitor,
    ConversationState,
    HealthState,
    error_fingerprint,
)

__all__ = [
    "Advisory",
    "AdvisoryKind",
    "ConversationHealthMonitor",
    "ConversationState",
    "HealthState",
    "error_fingerprint",
]
