"""Tests for the conversation store and its stage machine."""

from datetime import timedelta

import pytest

from taskbot.models.conversation import (
    ConversationMessage,
    ConversationMode,
    ConversationStage,
    MessageRole,
    ReporterOption,
    SprintOption,
    TaskKind,
)
from taskbot.services.conversation_store import ConversationStore
from taskbot.services.persistence import LoadedState


def _create(store, thread_ts="100.1", mode=ConversationMode.TASK):
    return store.create(
        thread_ts,
        "C123",
        mode,
        "Add a mood filter",
        TaskKind.FEATURE if mode == ConversationMode.TASK else None,
        ["playlist"],
        "context",
        slack_user_id="U1",
    )


class TestLifecycle:
    """SUT: create / get / load / shutdown."""

    def test_create_initial_state(self, store):
        record = _create(store)
        assert record.stage == ConversationStage.QUESTIONING
        assert record.question_rounds == 0
        assert record.history == []
        assert store.get("100.1") is record

    def test_create_overwrites(self, store):
        """At most one record per thread."""
        _create(store)
        store.append_human("100.1", "first")
        _create(store, mode=ConversationMode.QUESTION)
        assert len(store) == 1
        assert store.get("100.1").mode == ConversationMode.QUESTION
        assert store.get("100.1").history == []

    def test_mutation_schedules_save(self, store, persistence):
        _create(store)
        before = len(persistence.scheduled)
        store.append_human("100.1", "hello")
        assert len(persistence.scheduled) == before + 1
        assert persistence.scheduled[-1]["100.1"]["history"][-1]["content"] == "hello"

    def test_mutation_updates_last_activity(self, store, clock):
        record = _create(store)
        created = record.last_activity
        clock.advance(minutes=5)
        store.append_human("100.1", "hello")
        assert record.last_activity - created == timedelta(minutes=5)

    def test_snapshot_is_a_copy(self, store):
        _create(store)
        snapshot = store.snapshot()
        snapshot["100.1"]["history"].append({"role": "human", "content": "x"})
        assert store.get("100.1").history == []

    async def test_load_replaces_collection(self, persistence, clock):
        other = ConversationStore(persistence, clock=clock)
        record = _create(other, "200.2")
        persistence.loaded = LoadedState(conversations={"200.2": record})

        store = ConversationStore(persistence, clock=clock)
        assert await store.load(timedelta(hours=24)) == 1
        assert "200.2" in store

    async def test_shutdown_forces_save(self, store, persistence):
        _create(store)
        assert await store.shutdown()
        assert "100.1" in persistence.forced[-1]

    def test_list_newest_first(self, store, clock):
        _create(store, "1.1")
        clock.advance(seconds=1)
        _create(store, "2.2")
        assert [r.thread_ts for r in store.list_conversations()] == ["2.2", "1.1"]


class TestHistory:
    """SUT: append_human / append_assistant / restore_history."""

    def test_assistant_turn_counts_round(self, store):
        _create(store)
        store.append_human("100.1", "answer")
        store.append_assistant("100.1", "question")
        record = store.get("100.1")
        assert record.question_rounds == 1
        assert [m.role for m in record.history] == [MessageRole.HUMAN, MessageRole.ASSISTANT]

    def test_rounds_never_decrease(self, store):
        _create(store)
        seen = []
        for i in range(4):
            store.append_assistant("100.1", f"q{i}")
            store.append_human("100.1", f"a{i}")
            seen.append(store.get("100.1").question_rounds)
        store.restore_history("100.1", [])
        seen.append(store.get("100.1").question_rounds)
        assert seen == sorted(seen)

    def test_missing_thread_is_noop(self, store, persistence):
        store.append_human("missing", "hello")
        store.append_assistant("missing", "hello")
        store.mark_complete("missing")
        assert store.get("missing") is None
        assert persistence.scheduled == []

    def test_restore_history_approximates_rounds(self, store):
        _create(store)
        history = [
            ConversationMessage(role=MessageRole.ASSISTANT if i % 2 else MessageRole.HUMAN, content=str(i))
            for i in range(7)
        ]
        store.restore_history("100.1", history)
        record = store.get("100.1")
        assert len(record.history) == 7
        assert record.question_rounds == 3


class TestTriggerChecks:
    """SUT: should_* checks."""

    def test_completion_phrase(self, store):
        _create(store)
        assert store.should_generate_specification("100.1", "that's all")
        assert not store.should_generate_specification("100.1", "mobile only")

    def test_round_ceiling_in_task_mode(self, store):
        """The ceiling alone triggers generation."""
        _create(store)
        for i in range(5):
            store.append_assistant("100.1", f"q{i}")
        assert store.should_generate_specification("100.1", "mobile only")

    def test_round_ceiling_ignored_in_question_mode(self, store):
        _create(store, mode=ConversationMode.QUESTION)
        for i in range(6):
            store.append_assistant("100.1", f"a{i}")
        assert not store.should_generate_specification("100.1", "and what about shows?")

    def test_missing_thread(self, store):
        assert not store.should_generate_specification("missing", "done")

    def test_mode_switch_only_from_question_mode(self, store):
        _create(store, "1.1", mode=ConversationMode.QUESTION)
        _create(store, "2.2", mode=ConversationMode.TASK)
        assert store.should_switch_to_task_mode("1.1", "create a spec")
        assert not store.should_switch_to_task_mode("2.2", "create a spec")

    def test_decision_checks_require_awaiting_decision(self, store):
        _create(store)
        assert not store.should_create_ticket("100.1", "yes")
        store.set_awaiting_decision("100.1", "spec")
        assert store.should_create_ticket("100.1", "yes")
        assert store.should_decline_ticket("100.1", "no thanks")


class TestStageTransitions:
    """SUT: stage transition operations."""

    def test_mode_switch_keeps_history_and_rounds(self, store):
        _create(store, mode=ConversationMode.QUESTION)
        store.append_assistant("100.1", "answer 1")
        store.append_human("100.1", "create a spec for X")
        assert store.should_switch_to_task_mode("100.1", "create a spec for X")

        assert store.switch_to_task_mode("100.1", TaskKind.CHANGE, ["show"])
        record = store.get("100.1")
        assert record.mode == ConversationMode.TASK
        assert record.stage == ConversationStage.QUESTIONING
        assert record.question_rounds == 1
        assert len(record.history) == 2
        assert record.task_kind == TaskKind.CHANGE
        assert record.affected_areas == ["show"]

    def test_mode_switch_rejected_in_task_mode(self, store):
        _create(store)
        assert not store.switch_to_task_mode("100.1", TaskKind.FIX, [])

    def test_decline_completes(self, store):
        _create(store)
        store.set_awaiting_decision("100.1", "the spec")
        assert store.should_decline_ticket("100.1", "no thanks")
        store.mark_complete("100.1")
        record = store.get("100.1")
        assert record.stage == ConversationStage.COMPLETE
        assert record.ticket_key is None

    def test_complete_is_terminal(self, store):
        _create(store)
        store.mark_complete("100.1")
        store.mark_complete("100.1")
        store.append_human("100.1", "hello?")
        store.set_awaiting_decision("100.1", "spec")
        record = store.get("100.1")
        assert record.stage == ConversationStage.COMPLETE
        assert record.history == []

    def test_selection_menus_are_exclusive(self, store):
        _create(store)
        store.set_awaiting_decision("100.1", "spec")
        store.set_awaiting_reporter_selection("100.1", [ReporterOption(account_id="a1", display_name="Ann")])
        record = store.get("100.1")
        assert record.stage == ConversationStage.AWAITING_REPORTER_SELECTION
        assert record.pending_sprint_options is None

        store.set_awaiting_sprint_selection("100.1", [SprintOption(id=1, name="S1")])
        assert record.stage == ConversationStage.AWAITING_SPRINT_SELECTION
        assert record.pending_reporter_options is None
        assert len(record.pending_sprint_options) == 1

    def test_resolving_clears_menu_without_stage_change(self, store):
        _create(store)
        store.set_awaiting_sprint_selection("100.1", [SprintOption(id=1, name="S1")])
        store.set_resolved_sprint("100.1", 1, "S1")
        record = store.get("100.1")
        assert record.stage == ConversationStage.AWAITING_SPRINT_SELECTION
        assert record.pending_sprint_options is None
        assert record.resolved_sprint.id == 1

    def test_resolved_values_are_write_once(self, store):
        _create(store)
        store.set_resolved_reporter("100.1", "a1", "Ann")
        store.set_resolved_reporter("100.1", "b2", "Bob")
        store.set_resolved_sprint("100.1", 1, "S1")
        store.set_resolved_sprint("100.1", 2, "S2")
        record = store.get("100.1")
        assert record.resolved_reporter.account_id == "a1"
        assert record.resolved_sprint.id == 1

    def test_failed_ticket_reverts_to_decision(self, store):
        """The stored specification survives the failed attempt."""
        _create(store)
        store.set_awaiting_decision("100.1", "the spec")
        store.set_awaiting_sprint_selection("100.1", [SprintOption(id=1, name="S1")])
        record = store.get("100.1")
        store.set_awaiting_decision("100.1", record.generated_spec)
        assert record.stage == ConversationStage.AWAITING_DECISION
        assert record.generated_spec == "the spec"
        assert record.pending_sprint_options is None

    def test_set_context_and_ticket_key(self, store):
        _create(store)
        store.set_context("100.1", "new context")
        store.store_ticket_key("100.1", "PROJ-9")
        record = store.get("100.1")
        assert record.codebase_context == "new context"
        assert record.ticket_key == "PROJ-9"


class TestCleanup:
    """SUT: cleanup_expired."""

    def test_removes_idle_conversations(self, store, clock, persistence):
        _create(store, "1.1")
        clock.advance(hours=20)
        _create(store, "2.2")
        clock.advance(hours=5)

        saves = len(persistence.scheduled)
        assert store.cleanup_expired(timedelta(hours=24)) == 1
        assert "1.1" not in store
        assert "2.2" in store
        assert len(persistence.scheduled) == saves + 1

    def test_nothing_expired_does_not_save(self, store, persistence):
        _create(store)
        saves = len(persistence.scheduled)
        assert store.cleanup_expired(timedelta(hours=24)) == 0
        assert len(persistence.scheduled) == saves

    @pytest.mark.parametrize("hours,remaining", [(23, 1), (25, 0)])
    def test_window_boundary(self, store, clock, hours, remaining):
        _create(store)
        clock.advance(hours=hours)
        store.cleanup_expired(timedelta(hours=24))
        assert len(store) == remaining
