"""Tests for domain/executor.py — isolated, ordered execution of accepted actions."""

import pytest

from jarvis.adapters.storage.memory_store import InMemoryEntityStore
from jarvis.domain.executor import ActionExecutor, describe_records, summarize_results
from jarvis.domain.models import ActionStatus, EntityType, ExecutionResult, ResolvedAction, Verb
from jarvis.ports.outbound import StoreResult

TASK = EntityType.TASK


class RecordingStore(InMemoryEntityStore):
    """In-memory store that logs calls and can fail or raise on chosen ids."""

    def __init__(self, fail_ids=(), raise_ids=()):
        super().__init__()
        self.calls = []
        self.fail_ids = set(fail_ids)
        self.raise_ids = set(raise_ids)

    async def delete(self, user_id, entity_type, entity_id):
        self.calls.append(("delete", entity_id))
        if entity_id in self.raise_ids:
            raise RuntimeError("connection dropped")
        if entity_id in self.fail_ids:
            return StoreResult.fail("permission denied")
        return StoreResult.ok({"id": entity_id})


def _accepted(verb=Verb.DELETE, target_id="t1", **kwargs):
    action = ResolvedAction(verb=verb, entity_type=TASK, description=f"{verb.value} {target_id}",
                            target_id=target_id, **kwargs)
    action.transition(ActionStatus.ACCEPTED)
    return action


class TestExecute:
    @pytest.mark.asyncio
    async def test_success_moves_to_executed(self):
        store = RecordingStore()
        results = await ActionExecutor(store).execute([_accepted()], "u1")
        assert results[0].success is True
        assert results[0].action.status is ActionStatus.EXECUTED
        assert store.calls == [("delete", "t1")]

    @pytest.mark.asyncio
    async def test_failures_are_isolated_and_order_preserved(self):
        store = RecordingStore(fail_ids={"t2"}, raise_ids={"t3"})
        actions = [_accepted(target_id=t) for t in ("t1", "t2", "t3", "t4")]

        results = await ActionExecutor(store).execute(actions, "u1")

        assert [r.action.target_id for r in results] == ["t1", "t2", "t3", "t4"]
        assert [r.success for r in results] == [True, False, False, True]
        assert results[1].error == "permission denied"
        assert results[2].error == "connection dropped"
        assert [a.status for a in actions] == [
            ActionStatus.EXECUTED, ActionStatus.FAILED, ActionStatus.FAILED, ActionStatus.EXECUTED,
        ]
        assert store.calls == [("delete", t) for t in ("t1", "t2", "t3", "t4")]

    @pytest.mark.asyncio
    async def test_no_retries(self):
        store = RecordingStore(fail_ids={"t1"})
        await ActionExecutor(store).execute([_accepted()], "u1")
        assert store.calls == [("delete", "t1")]

    @pytest.mark.asyncio
    async def test_non_accepted_action_is_never_dispatched(self):
        store = RecordingStore()
        pending = ResolvedAction(verb=Verb.DELETE, entity_type=TASK, description="d", target_id="t1")
        results = await ActionExecutor(store).execute([pending], "u1")
        assert results[0].success is False
        assert pending.status is ActionStatus.PENDING
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_create_validation_failure_next_to_sibling_success(self):
        store = InMemoryEntityStore()
        good = _accepted(Verb.CREATE, target_id=None, params={"title": "buy milk"})
        bad = _accepted(Verb.CREATE, target_id=None, params={"title": "x", "priority": "whenever"})

        results = await ActionExecutor(store).execute([bad, good], "u1")

        assert results[0].success is False
        assert "Priority must be one of" in results[0].error
        assert results[1].success is True
        assert results[1].data["title"] == "buy milk"
        tasks = store.all_records(TASK)
        assert [t["title"] for t in tasks] == ["buy milk"]

    @pytest.mark.asyncio
    async def test_update_applies_updates(self):
        store = InMemoryEntityStore()
        created = await store.create("u1", TASK, {"title": "report"})
        action = _accepted(Verb.UPDATE, target_id=created.data["id"], updates={"status": "completed"})

        results = await ActionExecutor(store).execute([action], "u1")

        assert results[0].success is True
        assert results[0].data["status"] == "completed"
        assert results[0].data["completed_at"]

    @pytest.mark.asyncio
    async def test_update_without_target_fails(self):
        action = _accepted(Verb.UPDATE, target_id=None, updates={"status": "completed"})
        results = await ActionExecutor(InMemoryEntityStore()).execute([action], "u1")
        assert results[0].success is False
        assert action.status is ActionStatus.FAILED


class TestSummaries:
    def _result(self, success, description="d", error=None):
        action = ResolvedAction(verb=Verb.DELETE, entity_type=TASK, description=description)
        return ExecutionResult(action=action, success=success, error=error)

    def test_partial_failure_is_not_reported_as_success(self):
        text = summarize_results([
            self._result(True, 'Delete task: "a"'),
            self._result(False, 'Delete task: "b"', error="not found"),
        ])
        assert text.startswith("1 of 2 action(s) completed, 1 failed.")
        assert '- failed: Delete task: "b" (not found)' in text

    def test_all_succeeded(self):
        assert summarize_results([self._result(True)]).startswith("All 1 action(s) completed.")

    def test_none_succeeded(self):
        assert summarize_results([self._result(False, error="x")]).startswith("None of the 1")

    def test_empty(self):
        assert summarize_results([]) == "No actions were executed."

    def test_describe_records(self):
        records = [{"title": f"t{i}", "due_date": "2026-10-19"} for i in range(7)]
        text = describe_records(records, TASK, limit=5)
        assert text.splitlines()[0] == "Found 7 task(s):"
        assert "- t0 (2026-10-19)" in text
        assert text.splitlines()[-1] == "- ...and 2 more"
        assert describe_records([], EntityType.EVENT) == "No events found."
