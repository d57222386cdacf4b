"""Conversation health monitoring.

The monitor consumes the running transcript (LangChain messages) and keeps a
small set of drift counters per session:

- message count since the last acknowledgement
- skill categories matched within a trailing message window
- repeated error fingerprints
- repeated clarification questions
- specialist spawns still waiting for a completion marker

After every observed turn the counters drive a three state machine
(healthy -> warning -> action-needed). Entering warning or action-needed
produces an ``Advisory``; the monitor never changes a load plan itself.
"""
from __future__ import annotations

import hashlib
import logging
import re
from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage, convert_to_messages

from skill_context.config import EngineConfig
from skill_context.matching.text import keywords

logger = logging.getLogger(__name__)


class HealthState(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    ACTION_NEEDED = "action-needed"


class AdvisoryKind(str, Enum):
    SUMMARIZE = "summarize"
    SPLIT_TOPICS = "split-topics"
    REASSESS_ERROR = "reassess-error"
    VERIFY_UNDERSTANDING = "verify-understanding"


# Signal names, in advisory priority order.
SIGNAL_ERRORS = "repeated-error"
SIGNAL_CLARIFICATIONS = "clarification-loop"
SIGNAL_SPAWNS = "outstanding-spawns"
SIGNAL_TOPICS = "topic-spread"
SIGNAL_LENGTH = "length"

_SIGNAL_KIND = {
    SIGNAL_ERRORS: AdvisoryKind.REASSESS_ERROR,
    SIGNAL_CLARIFICATIONS: AdvisoryKind.VERIFY_UNDERSTANDING,
    SIGNAL_SPAWNS: AdvisoryKind.VERIFY_UNDERSTANDING,
    SIGNAL_TOPICS: AdvisoryKind.SPLIT_TOPICS,
    SIGNAL_LENGTH: AdvisoryKind.SUMMARIZE,
}
_PRIORITY = [SIGNAL_ERRORS, SIGNAL_CLARIFICATIONS, SIGNAL_SPAWNS, SIGNAL_TOPICS, SIGNAL_LENGTH]

_ERROR_LINE = re.compile(
    r"^\s*(?:[\w.]*(?:Error|Exception)|error|fatal|panic)(?:\[[^\]]*\])?\s*:\s*\S.*$",
    re.IGNORECASE | re.MULTILINE,
)
_QUOTED = re.compile(r"(['\"`]).*?\1")
_PATH = re.compile(r"(?:[A-Za-z]:)?(?:[\\/][\w.\-]+)+")
_HEX = re.compile(r"\b0x[0-9a-f]+\b|\b[0-9a-f]{8,}\b")
_NUMBER = re.compile(r"\d+")
_QUESTION = re.compile(r"[^.!?\n]*\?")


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and isinstance(part.get("text"), str):
            parts.append(part["text"])
    return "\n".join(parts)


def normalize_error(text: str) -> str:
    """Strip the volatile parts of an error line (ids, paths, numbers, literals)."""
    text = text.strip().lower()
    text = _QUOTED.sub("<str>", text)
    text = _PATH.sub("<path>", text)
    text = _HEX.sub("<hex>", text)
    text = _NUMBER.sub("<n>", text)
    return " ".join(text.split())


def error_fingerprint(text: str) -> str:
    return hashlib.sha1(normalize_error(text).encode("utf-8")).hexdigest()[:16]


def find_error(message: BaseMessage) -> Optional[str]:
    """Return the error line a message reports, or None.

    Tool results flagged ``status="error"`` always count; otherwise the last
    ``SomeError: ...`` / ``error: ...`` line of the text is used, which for a
    traceback is the exception line.
    """
    text = _message_text(message)
    lines = _ERROR_LINE.findall(text)
    if lines:
        return lines[-1].strip()
    if isinstance(message, ToolMessage) and getattr(message, "status", None) == "error":
        first = text.strip().splitlines()
        return first[0] if first else f"tool error: {message.name or 'unknown'}"
    return None


def find_clarification(message: BaseMessage) -> Optional[str]:
    """Return the question an assistant message ends its turn with, or None."""
    if not isinstance(message, AIMessage) or message.tool_calls:
        return None
    questions = [q.strip() for q in _QUESTION.findall(_message_text(message)) if q.strip()]
    if not questions:
        return None
    return questions[-1]


def clarification_fingerprint(question: str) -> str:
    # Keyword-free questions ("Why?", "Ok?") are told apart by their own text.
    normalized = " ".join(sorted(keywords(question))) or " ".join(question.lower().split())
    return hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class Advisory:
    """Structured remediation suggestion for the host application."""

    state: HealthState
    kind: AdvisoryKind
    message: str
    signals: Tuple[str, ...] = ()
    refocus_query: Optional[str] = None
    user_visible: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "state": self.state.value,
            "kind": self.kind.value,
            "message": self.message,
            "signals": list(self.signals),
            "refocus_query": self.refocus_query,
            "user_visible": self.user_visible,
        }


@dataclass
class ConversationState:
    """Running drift counters for one conversation session.

    Counters never decrease within a session; the deques are fixed-size
    rolling windows that evict their oldest entry on overflow.
    """

    recent_categories: Deque[FrozenSet[str]]
    error_fingerprints: Deque[str]
    clarification_fingerprints: Deque[str]
    message_count: int = 0
    topics: Set[str] = field(default_factory=set)
    specialist_spawns: int = 0
    specialist_completions: int = 0
    health: HealthState = HealthState.HEALTHY
    message_baseline: int = 0
    spawn_baseline: int = 0
    acknowledgements: int = 0
    pending_spawns: Set[str] = field(default_factory=set)
    last_query: Optional[str] = None
    quiet_messages: int = 0

    @classmethod
    def create(cls, config: EngineConfig) -> "ConversationState":
        return cls(
            recent_categories=deque(maxlen=config.category_window),
            error_fingerprints=deque(maxlen=config.error_window),
            clarification_fingerprints=deque(maxlen=config.clarification_window),
        )

    @property
    def messages_since_baseline(self) -> int:
        return self.message_count - self.message_baseline

    @property
    def outstanding_spawns(self) -> int:
        return max(0, self.specialist_spawns - self.specialist_completions - self.spawn_baseline)

    def window_categories(self) -> Set[str]:
        seen: Set[str] = set()
        for categories in self.recent_categories:
            seen.update(categories)
        return seen

    def to_dict(self) -> Dict[str, object]:
        return {
            "health": self.health.value,
            "message_count": self.message_count,
            "messages_since_baseline": self.messages_since_baseline,
            "topics": sorted(self.topics),
            "window_categories": sorted(self.window_categories()),
            "error_fingerprints": list(self.error_fingerprints),
            "clarification_fingerprints": list(self.clarification_fingerprints),
            "specialist_spawns": self.specialist_spawns,
            "specialist_completions": self.specialist_completions,
            "outstanding_spawns": self.outstanding_spawns,
            "acknowledgements": self.acknowledgements,
            "quiet_messages": self.quiet_messages,
        }


class ConversationHealthMonitor:
    """Drift detector for a single conversation session."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self._completion = re.compile(self.config.completion_pattern, re.IGNORECASE)
        self.state = ConversationState.create(self.config)

    @property
    def health(self) -> HealthState:
        return self.state.health

    def reset(self) -> None:
        """Start a new conversation session."""
        self.state = ConversationState.create(self.config)
        logger.info("Conversation state reset")

    def acknowledge(self) -> bool:
        """Record that the user acted on a remediation suggestion.

        Returns the session to healthy, moves the length and spawn baselines
        to the current counters and clears the rolling windows.

        Returns:
            True if the state changed
        """
        state = self.state
        if state.health == HealthState.HEALTHY:
            return False

        previous = state.health
        state.health = HealthState.HEALTHY
        state.message_baseline = state.message_count
        state.spawn_baseline = state.specialist_spawns - state.specialist_completions
        state.recent_categories.clear()
        state.error_fingerprints.clear()
        state.clarification_fingerprints.clear()
        state.acknowledgements += 1
        state.quiet_messages = 0
        logger.info("Advisory acknowledged: %s -> %s", previous.value, state.health.value)
        return True

    def _record(self, message: BaseMessage, categories: FrozenSet[str]) -> None:
        state = self.state
        state.message_count += 1
        state.recent_categories.append(categories)
        state.topics.update(categories)

        if isinstance(message, HumanMessage):
            text = _message_text(message).strip()
            if text:
                state.last_query = text

        error = find_error(message)
        if error is not None:
            state.error_fingerprints.append(error_fingerprint(error))

        question = find_clarification(message)
        if question is not None:
            state.clarification_fingerprints.append(clarification_fingerprint(question))

        if isinstance(message, AIMessage):
            for call in message.tool_calls or []:
                if str(call.get("name", "")).lower() in self.config.spawn_tool_names:
                    state.specialist_spawns += 1
                    state.pending_spawns.add(call.get("id") or f"spawn-{state.specialist_spawns}")

        if isinstance(message, ToolMessage) and message.tool_call_id in state.pending_spawns:
            state.pending_spawns.discard(message.tool_call_id)
            finished = getattr(message, "status", "success") != "error"
            if finished and self._completion.search(_message_text(message)):
                state.specialist_completions += 1

    def signals(self) -> Tuple[List[str], List[str]]:
        """Evaluate the thresholds against the current counters.

        Returns:
            (warning signals, action signals), each in priority order
        """
        cfg = self.config
        state = self.state
        warn: Set[str] = set()
        action: Set[str] = set()

        messages = state.messages_since_baseline
        if messages >= cfg.warn_messages:
            warn.add(SIGNAL_LENGTH)
        if messages >= cfg.action_messages:
            action.add(SIGNAL_LENGTH)

        spread = len(state.window_categories())
        if spread >= cfg.warn_categories:
            warn.add(SIGNAL_TOPICS)
        if spread >= cfg.action_categories:
            action.add(SIGNAL_TOPICS)

        errors = Counter(state.error_fingerprints).most_common(1)
        repeats = errors[0][1] if errors else 0
        if repeats >= cfg.warn_error_repeats:
            warn.add(SIGNAL_ERRORS)
        if repeats >= cfg.action_error_repeats:
            action.add(SIGNAL_ERRORS)

        questions = Counter(state.clarification_fingerprints).most_common(1)
        asked = questions[0][1] if questions else 0
        if asked >= cfg.warn_clarification_repeats:
            warn.add(SIGNAL_CLARIFICATIONS)
        if asked >= cfg.action_clarification_repeats:
            action.add(SIGNAL_CLARIFICATIONS)

        if state.outstanding_spawns >= cfg.action_outstanding_spawns:
            warn.add(SIGNAL_SPAWNS)
            action.add(SIGNAL_SPAWNS)

        return (
            [s for s in _PRIORITY if s in warn],
            [s for s in _PRIORITY if s in action],
        )

    def observe(
        self,
        messages: Sequence = (),
        categories: Iterable[str] = (),
        notices: Sequence[str] = (),
    ) -> Optional[Advisory]:
        """Update the counters with one turn of transcript and re-evaluate.

        Args:
            messages: The turn's messages (LangChain messages, or anything
                ``convert_to_messages`` accepts)
            categories: Skill categories matched for this turn
            notices: Recoverable problems from this turn, included in a
                user-visible advisory

        Returns:
            An Advisory when the turn moved the session into warning or
            action-needed, otherwise None
        """
        if isinstance(messages, (BaseMessage, str, dict)):
            messages = [messages]
        converted = convert_to_messages(list(messages))
        turn_categories = frozenset(str(c) for c in categories)

        for message in converted:
            self._record(message, turn_categories)

        return self._transition(notices, len(converted))

    def _transition(self, notices: Sequence[str], observed: int = 0) -> Optional[Advisory]:
        state = self.state
        warn, action = self.signals()
        previous = state.health

        if warn or action:
            state.quiet_messages = 0
        else:
            state.quiet_messages += observed

        if previous == HealthState.HEALTHY:
            # Never jump straight to action-needed; warn first.
            if warn or action:
                state.health = HealthState.WARNING
        elif previous == HealthState.WARNING:
            if action:
                state.health = HealthState.ACTION_NEEDED
            elif state.quiet_messages >= self.config.recovery_messages:
                # Only after a quiet stretch, so a signal hovering at its
                # threshold does not re-issue the same advisory.
                state.health = HealthState.HEALTHY

        if state.health == previous or state.health == HealthState.HEALTHY:
            if state.health != previous:
                logger.info("Conversation health: %s -> %s", previous.value, state.health.value)
            return None

        fired = action if state.health == HealthState.ACTION_NEEDED else (warn or action)
        advisory = self._advisory(state.health, fired, notices)
        logger.info(
            "Conversation health: %s -> %s (%s)",
            previous.value, state.health.value, ", ".join(fired),
        )
        return advisory

    def _advisory(self, health: HealthState, fired: List[str], notices: Sequence[str]) -> Advisory:
        state = self.state
        cfg = self.config
        kind = _SIGNAL_KIND[fired[0]]

        if kind == AdvisoryKind.REASSESS_ERROR:
            repeats = Counter(state.error_fingerprints).most_common(1)[0][1]
            message = (
                f"The same error has come up {repeats} times. Step back and reassess "
                "the approach instead of retrying it."
            )
        elif kind == AdvisoryKind.VERIFY_UNDERSTANDING:
            if fired[0] == SIGNAL_SPAWNS:
                message = (
                    f"{state.outstanding_spawns} specialist tasks were started without "
                    "reporting completion. Verify what each was meant to deliver."
                )
            else:
                message = (
                    "The same clarification keeps being asked. Confirm the shared "
                    "understanding of the goal before continuing."
                )
        elif kind == AdvisoryKind.SPLIT_TOPICS:
            categories = ", ".join(sorted(state.window_categories()))
            message = (
                f"The last {cfg.category_window} messages span several skill areas "
                f"({categories}). Consider splitting them into focused sessions."
            )
        else:
            message = (
                f"This conversation has run for {state.messages_since_baseline} messages. "
                "Summarize progress and continue in a fresh context."
            )

        user_visible = health == HealthState.ACTION_NEEDED
        if user_visible and notices:
            message += " Recent issues: " + "; ".join(notices)

        return Advisory(
            state=health,
            kind=kind,
            message=message,
            signals=tuple(fired),
            refocus_query=state.last_query,
            user_visible=user_visible,
        )
