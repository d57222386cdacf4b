from __future__ import annotations

import pytest
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from skill_context.config import EngineConfig
from skill_context.monitor.health import (
    AdvisoryKind,
    ConversationHealthMonitor,
    HealthState,
    clarification_fingerprint,
    error_fingerprint,
    find_clarification,
    find_error,
)


def _error(n: int) -> ToolMessage:
    return ToolMessage(
        content=f"TypeError: cannot read property 'id' of undefined at line {n}",
        tool_call_id=f"call-{n}",
        status="error",
    )


def _spawn(call_id: str) -> AIMessage:
    return AIMessage(content="", tool_calls=[{"name": "Task", "args": {"goal": "x"}, "id": call_id}])


@pytest.fixture
def monitor() -> ConversationHealthMonitor:
    return ConversationHealthMonitor()


class TestSignals:
    def test_error_fingerprint_ignores_volatile_parts(self) -> None:
        a = error_fingerprint("KeyError: 'user_42' at /srv/app/models.py line 10")
        b = error_fingerprint("KeyError: 'order_7' at /home/me/app/models.py line 311")
        assert a == b
        assert a != error_fingerprint("ValueError: invalid literal")

    def test_find_error_uses_last_error_line(self) -> None:
        traceback = HumanMessage(
            content=(
                "Traceback (most recent call last):\n"
                '  File "app.py", line 3, in <module>\n'
                "ZeroDivisionError: division by zero"
            )
        )
        assert find_error(traceback) == "ZeroDivisionError: division by zero"
        assert find_error(HumanMessage(content="all good")) is None

    def test_tool_error_status_counts(self) -> None:
        failed = ToolMessage(content="command exited 1", tool_call_id="c1", status="error")
        assert find_error(failed) == "command exited 1"

    def test_clarification_only_from_assistant(self) -> None:
        assert find_clarification(AIMessage(content="Done. Which database are you using?")) == (
            "Which database are you using?"
        )
        assert find_clarification(HumanMessage(content="Which database?")) is None
        assert find_clarification(AIMessage(content="Here is the fix.")) is None


class TestHealthTransitions:
    def test_length_warning(self, monitor: ConversationHealthMonitor) -> None:
        for i in range(1, 46):
            advisory = monitor.observe(HumanMessage(content=f"step {i}"), categories=["stack"])
            if i < 40:
                assert monitor.health == HealthState.HEALTHY
                assert advisory is None
            elif i == 40:
                assert monitor.health == HealthState.WARNING
                assert advisory.kind == AdvisoryKind.SUMMARIZE
                assert not advisory.user_visible
            else:
                assert monitor.health == HealthState.WARNING
                assert advisory is None

    def test_repeated_error_escalates(self, monitor: ConversationHealthMonitor) -> None:
        advisories = {}
        for i in range(1, 41):
            message = _error(i) if i in (10, 25, 40) else HumanMessage(content=f"try {i}")
            advisories[i] = monitor.observe(message, categories=["stack"])
            if i < 25:
                assert monitor.health == HealthState.HEALTHY

        assert advisories[25].state == HealthState.WARNING
        assert advisories[25].kind == AdvisoryKind.REASSESS_ERROR

        final = advisories[40]
        assert monitor.health == HealthState.ACTION_NEEDED
        assert final.kind == AdvisoryKind.REASSESS_ERROR
        assert final.user_visible
        assert "3 times" in final.message
        assert final.refocus_query == "try 39"

    def test_no_state_is_skipped(self, monitor: ConversationHealthMonitor) -> None:
        advisory = monitor.observe([_error(1), _error(2), _error(3)])
        assert monitor.health == HealthState.WARNING
        assert advisory.state == HealthState.WARNING

        advisory = monitor.observe([])
        assert monitor.health == HealthState.ACTION_NEEDED
        assert advisory.user_visible

    def test_action_needed_holds_until_acknowledged(self) -> None:
        monitor = ConversationHealthMonitor(EngineConfig(category_window=2))

        first = monitor.observe(HumanMessage(content="mixed"), categories=["stack", "domain", "meta"])
        assert first.kind == AdvisoryKind.SPLIT_TOPICS
        assert monitor.observe(HumanMessage(content="more"), categories=["stack"]).user_visible

        for i in range(5):
            assert monitor.observe(HumanMessage(content=f"calm {i}"), categories=["stack"]) is None
            assert monitor.health == HealthState.ACTION_NEEDED

        assert monitor.acknowledge() is True
        assert monitor.health == HealthState.HEALTHY
        assert monitor.acknowledge() is False
        assert monitor.state.acknowledgements == 1

    def test_warning_recovers_when_signals_clear(self) -> None:
        monitor = ConversationHealthMonitor(EngineConfig(category_window=1, recovery_messages=1))

        monitor.observe(HumanMessage(content="a"), categories=["stack", "meta"])
        assert monitor.health == HealthState.WARNING

        monitor.observe(HumanMessage(content="b"), categories=["stack"])
        assert monitor.health == HealthState.HEALTHY

    def test_warning_holds_through_short_quiet_spells(self) -> None:
        monitor = ConversationHealthMonitor(EngineConfig(category_window=1, recovery_messages=3))

        assert monitor.observe(HumanMessage(content="a"), categories=["stack", "meta"]) is not None
        for _ in range(3):
            assert monitor.observe(HumanMessage(content="b"), categories=["stack"]) is None
            assert monitor.health == HealthState.WARNING
            # Spread comes back before the quiet stretch is over: no new advisory.
            assert monitor.observe(HumanMessage(content="c"), categories=["stack", "meta"]) is None
            assert monitor.health == HealthState.WARNING

        for _ in range(3):
            monitor.observe(HumanMessage(content="d"), categories=["stack"])
        assert monitor.health == HealthState.HEALTHY
        assert monitor.state.quiet_messages == 3

    def test_topic_spread(self, monitor: ConversationHealthMonitor) -> None:
        assert monitor.observe(HumanMessage(content="a"), categories=["stack"]) is None
        advisory = monitor.observe(HumanMessage(content="b"), categories=["meta"])
        assert advisory.kind == AdvisoryKind.SPLIT_TOPICS
        assert "meta, stack" in advisory.message
        assert monitor.state.topics == {"stack", "meta"}

    def test_clarification_loop(self, monitor: ConversationHealthMonitor) -> None:
        question = AIMessage(content="Which database are you using?")
        advisory = monitor.observe([question, HumanMessage(content="postgres"), question])

        assert monitor.health == HealthState.WARNING
        assert advisory.kind == AdvisoryKind.VERIFY_UNDERSTANDING

    def test_outstanding_spawns(self, monitor: ConversationHealthMonitor) -> None:
        advisory = monitor.observe([_spawn("t1"), _spawn("t2"), _spawn("t3")])

        assert monitor.state.specialist_spawns == 3
        assert monitor.health == HealthState.WARNING
        assert advisory.kind == AdvisoryKind.VERIFY_UNDERSTANDING
        assert advisory.message.startswith("3 specialist tasks")

        monitor.observe(ToolMessage(content="Task completed", tool_call_id="t1"))
        assert monitor.state.specialist_completions == 1
        assert monitor.state.outstanding_spawns == 2
        assert monitor.health == HealthState.WARNING

        for i in range(4):
            monitor.observe(HumanMessage(content=f"next {i}"))
        assert monitor.health == HealthState.HEALTHY

    def test_keyword_free_questions_are_distinct(self, monitor: ConversationHealthMonitor) -> None:
        assert clarification_fingerprint("Why?") != clarification_fingerprint("How so?")
        assert clarification_fingerprint("Why?") == clarification_fingerprint("why?")

        monitor.observe([AIMessage(content="Why?"), AIMessage(content="How so?")])
        assert monitor.health == HealthState.HEALTHY

    def test_failed_spawn_is_not_a_completion(self, monitor: ConversationHealthMonitor) -> None:
        monitor.observe(_spawn("t1"))
        monitor.observe(ToolMessage(content="not done: crashed", tool_call_id="t1", status="error"))
        assert monitor.state.specialist_completions == 0
        assert monitor.state.outstanding_spawns == 1

    def test_user_visible_advisory_carries_notices(self, monitor: ConversationHealthMonitor) -> None:
        monitor.observe([_error(1), _error(2), _error(3)])
        advisory = monitor.observe([], notices=["Reference prisma/seeding.md could not be loaded"])

        assert advisory.user_visible
        assert "prisma/seeding.md" in advisory.message

    def test_acknowledge_moves_baseline(self, monitor: ConversationHealthMonitor) -> None:
        for i in range(40):
            monitor.observe(HumanMessage(content=f"m{i}"))
        assert monitor.health == HealthState.WARNING

        monitor.acknowledge()
        assert monitor.observe(HumanMessage(content="fresh")) is None
        assert monitor.state.messages_since_baseline == 1
        assert monitor.state.message_count == 41

    def test_reset(self, monitor: ConversationHealthMonitor) -> None:
        monitor.observe([_error(1), _error(2)])
        monitor.reset()

        assert monitor.health == HealthState.HEALTHY
        assert monitor.state.message_count == 0
        assert not monitor.state.error_fingerprints

    def test_accepts_plain_strings_and_dicts(self, monitor: ConversationHealthMonitor) -> None:
        monitor.observe("hello there")
        monitor.observe({"role": "user", "content": "and again"})

        assert monitor.state.message_count == 2
        assert monitor.state.last_query == "and again"
