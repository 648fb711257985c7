"""End-to-end tests for domain/pipeline.py with an in-memory store and mock model."""

import json
from datetime import date

import pytest

from jarvis.adapters.storage.memory_store import InMemoryEntityStore
from jarvis.config import AppConfig
from jarvis.domain.errors import NotFound
from jarvis.domain.extractor import CLARIFY_RESPONSE
from jarvis.domain.models import ActionStatus, Decision, EntityType
from jarvis.domain.pipeline import ConversationHistory, create_keyword_pipeline, create_pipeline

TASK = EntityType.TASK


class MockLLM:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def generate(self, prompt, system_prompt=None, temperature=0.2, max_tokens=2048):
        self.calls.append(prompt)
        return self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]


def _reply(response, *actions):
    return json.dumps({"response": response, "actions": list(actions), "needsContext": False})


DELETE_URGENT = _reply(
    "These urgent tasks will be deleted once you confirm.",
    {"type": "DELETE_TASK", "params": {"searchParams": {"tags": ["urgent"]}}},
)


async def _seed(store, title, user_id="u1", **fields):
    result = await store.create(user_id, TASK, {"title": title, **fields})
    return result.data["id"]


@pytest.fixture
def store():
    return InMemoryEntityStore()


class TestDeleteByTagScenario:
    @pytest.mark.asyncio
    async def test_accept_two_reject_one(self, store):
        ids = [await _seed(store, f"urgent {i}", tags=["urgent"]) for i in range(3)]
        await _seed(store, "calm", tags=["later"])
        pipeline = create_pipeline(AppConfig(), llm=MockLLM(DELETE_URGENT), store=store)

        turn = await pipeline.handle_message("c1", "u1", "delete all tasks tagged urgent")

        assert turn.needs_confirmation is True
        assert len(turn.actions) == 3
        assert all(a.status is ActionStatus.PENDING for a in turn.actions)

        first, second, third = turn.actions
        assert pipeline.decide("c1", turn.id, first.id, Decision.ACCEPT) is True
        assert pipeline.decide("c1", turn.id, second.id, Decision.REJECT) is True
        assert pipeline.decide("c1", turn.id, third.id, Decision.ACCEPT) is True

        report = await pipeline.execute("c1", turn.id, "u1")

        assert len(report.results) == 2
        assert report.success is True
        assert [r.action.target_id for r in report.results] == [ids[0], ids[2]]
        remaining = sorted(t["title"] for t in store.all_records(TASK))
        assert remaining == ["calm", "urgent 1"]
        assert second.status is ActionStatus.REJECTED

    @pytest.mark.asyncio
    async def test_executed_turn_is_closed(self, store):
        await _seed(store, "urgent", tags=["urgent"])
        pipeline = create_pipeline(AppConfig(), llm=MockLLM(DELETE_URGENT), store=store)
        turn = await pipeline.handle_message("c1", "u1", "delete all tasks tagged urgent")
        pipeline.decide_all("c1", turn.id, Decision.REJECT)

        await pipeline.execute("c1", turn.id, "u1")

        with pytest.raises(NotFound):
            pipeline.get_turn("c1", turn.id)

    @pytest.mark.asyncio
    async def test_reject_all_twice_changes_nothing(self, store):
        for i in range(3):
            await _seed(store, f"urgent {i}", tags=["urgent"])
        pipeline = create_pipeline(AppConfig(), llm=MockLLM(DELETE_URGENT), store=store)
        turn = await pipeline.handle_message("c1", "u1", "delete all tasks tagged urgent")

        assert pipeline.decide_all("c1", turn.id, Decision.REJECT) == 3
        assert pipeline.decide_all("c1", turn.id, Decision.REJECT) == 0
        report = await pipeline.execute("c1", turn.id, "u1")

        assert report.results == []
        assert report.summary == "No accepted actions to execute."
        assert len(store.all_records(TASK)) == 3


class TestReadScenario:
    @pytest.mark.asyncio
    async def test_whats_due_today_needs_no_confirmation(self, store):
        await _seed(store, "File taxes", due_date=date.today().isoformat())
        await _seed(store, "Someday", due_date="2099-01-01")
        pipeline = create_keyword_pipeline(store)

        turn = await pipeline.handle_message("c1", "u1", "what's due today")

        assert turn.needs_confirmation is False
        assert len(turn.actions) == 1
        read = turn.actions[0]
        assert read.status is ActionStatus.EXECUTED
        assert [r["title"] for r in read.results] == ["File taxes"]
        assert "File taxes" in turn.response
        assert "Someday" not in turn.response


class TestPartialFailure:
    @pytest.mark.asyncio
    async def test_invalid_create_next_to_valid_create(self, store):
        llm = MockLLM(_reply(
            "Creating two tasks.",
            {"type": "CREATE_TASK", "params": {"title": "buy milk"}},
            {"type": "CREATE_TASK", "params": {"title": "bad", "priority": "someday"}},
        ))
        pipeline = create_pipeline(AppConfig(), llm=llm, store=store)
        turn = await pipeline.handle_message("c1", "u1", "add two tasks")
        pipeline.decide_all("c1", turn.id, Decision.ACCEPT)

        report = await pipeline.execute("c1", turn.id, "u1")

        assert [r.success for r in report.results] == [True, False]
        assert report.success is False
        assert report.summary.startswith("1 of 2 action(s) completed, 1 failed.")
        assert [t["title"] for t in store.all_records(TASK)] == ["buy milk"]


class TestFailureModes:
    @pytest.mark.asyncio
    async def test_malformed_output_yields_empty_turn(self, store):
        pipeline = create_pipeline(AppConfig(), llm=MockLLM("no json here"), store=store)
        turn = await pipeline.handle_message("c1", "u1", "delete everything")
        assert turn.actions == []
        assert turn.needs_confirmation is False
        assert turn.response == CLARIFY_RESPONSE

    @pytest.mark.asyncio
    async def test_zero_match_notice_in_response(self, store):
        pipeline = create_pipeline(AppConfig(), llm=MockLLM(DELETE_URGENT), store=store)
        turn = await pipeline.handle_message("c1", "u1", "delete all tasks tagged urgent")
        assert turn.actions == []
        assert "No tasks matched tagged urgent." in turn.response

    @pytest.mark.asyncio
    async def test_unknown_ids(self, store):
        await _seed(store, "urgent", tags=["urgent"])
        pipeline = create_pipeline(AppConfig(), llm=MockLLM(DELETE_URGENT), store=store)
        turn = await pipeline.handle_message("c1", "u1", "delete all tasks tagged urgent")

        with pytest.raises(NotFound):
            pipeline.get_turn("c2", turn.id)
        with pytest.raises(NotFound):
            pipeline.decide("c1", turn.id, "nope", Decision.ACCEPT)
        with pytest.raises(NotFound):
            await pipeline.execute("c1", turn.id, "someone-else")

    @pytest.mark.asyncio
    async def test_decisions_are_scoped_to_the_turn_owner(self, store):
        await _seed(store, "urgent", tags=["urgent"])
        pipeline = create_pipeline(AppConfig(), llm=MockLLM(DELETE_URGENT), store=store)
        turn = await pipeline.handle_message("c1", "u1", "delete all tasks tagged urgent")
        action = turn.actions[0]

        with pytest.raises(NotFound):
            pipeline.decide("c1", turn.id, action.id, Decision.ACCEPT, user_id="u2")
        with pytest.raises(NotFound):
            pipeline.decide_all("c1", turn.id, Decision.ACCEPT, user_id="u2")
        assert action.status is ActionStatus.PENDING
        assert pipeline.decide("c1", turn.id, action.id, Decision.ACCEPT, user_id="u1") is True

    @pytest.mark.asyncio
    async def test_same_record_requested_twice_is_offered_once(self, store):
        task_id = await _seed(store, "File taxes", priority="urgent")
        llm = MockLLM(_reply(
            "Deleting it.",
            {"type": "DELETE_TASK", "params": {"id": task_id}},
            {"type": "DELETE_TASK", "params": {"searchParams": {"priority": "urgent"}}},
        ))
        pipeline = create_pipeline(AppConfig(), llm=llm, store=store)
        turn = await pipeline.handle_message("c1", "u1", "delete my urgent tasks")
        pipeline.decide_all("c1", turn.id, Decision.ACCEPT)

        report = await pipeline.execute("c1", turn.id, "u1")

        assert [r.success for r in report.results] == [True]
        assert "requested more than once" in turn.response


class TestHistory:
    @pytest.mark.asyncio
    async def test_execution_summary_feeds_next_prompt(self, store):
        await _seed(store, "urgent", tags=["urgent"])
        llm = MockLLM(DELETE_URGENT, _reply("ok"))
        pipeline = create_pipeline(AppConfig(), llm=llm, store=store)
        turn = await pipeline.handle_message("c1", "u1", "delete all tasks tagged urgent")
        pipeline.decide_all("c1", turn.id, Decision.ACCEPT)
        await pipeline.execute("c1", turn.id, "u1")

        await pipeline.handle_message("c1", "u1", "thanks")

        assert "user: delete all tasks tagged urgent" in llm.calls[1]
        assert "All 1 action(s) completed." in llm.calls[1]

    def test_history_is_bounded(self):
        history = ConversationHistory(max_messages=3, max_conversations=2)
        for i in range(5):
            history.append("c1", "user", f"m{i}")
        assert [m.content for m in history.recent("c1")] == ["m2", "m3", "m4"]

        history.append("c2", "user", "x")
        history.append("c3", "user", "y")
        assert history.recent("c1") == []
        assert [m.content for m in history.recent("c3")] == ["y"]
