"""Action pipeline — extract, resolve, confirm, execute.

``ActionPipeline`` is the one object the web layer talks to. It owns the
per-conversation message history that is fed back into extraction, so
the outcome of an execution is visible to the next utterance.
"""

from __future__ import annotations

import sys
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from jarvis.domain.confirmation import ConfirmationCoordinator
from jarvis.domain.errors import NotFound
from jarvis.domain.executor import ActionExecutor, describe_records, summarize_results
from jarvis.domain.extractor import (
    ExtractionStrategy,
    IntentExtractor,
    KeywordExtractionStrategy,
    ModelExtractionStrategy,
)
from jarvis.domain.models import (
    ActionStatus,
    ChatMessage,
    ConversationTurn,
    Decision,
    ExecutionResult,
)
from jarvis.domain.resolver import ActionResolver
from jarvis.ports.inbound import IncomingMessage
from jarvis.ports.outbound import EntityStorePort, LanguageModelPort

if TYPE_CHECKING:
    from jarvis.config import AppConfig


def _log(msg: str):
    print(msg, file=sys.stderr)


class ConversationHistory:
    """Bounded per-conversation message log."""

    _MAX_CONVERSATIONS = 20

    def __init__(self, max_messages: int = 10, max_conversations: Optional[int] = None):
        self._max_messages = max_messages
        self._max_conversations = max_conversations or self._MAX_CONVERSATIONS
        self._history: OrderedDict[str, List[ChatMessage]] = OrderedDict()

    def recent(self, conversation_id: str) -> List[ChatMessage]:
        return list(self._history.get(conversation_id, [])[-self._max_messages:])

    def append(self, conversation_id: str, role: str, content: str) -> None:
        if conversation_id in self._history:
            self._history.move_to_end(conversation_id)
        else:
            self._history[conversation_id] = []
            while len(self._history) > self._max_conversations:
                evicted_id, _ = self._history.popitem(last=False)
                _log(f"[history] evicted conversation {evicted_id}")
        history = self._history[conversation_id]
        history.append(ChatMessage(role=role, content=content))
        if len(history) > self._max_messages:
            self._history[conversation_id] = history[-self._max_messages:]


@dataclass
class ExecutionReport:
    turn: ConversationTurn
    results: List[ExecutionResult] = field(default_factory=list)
    summary: str = ""

    @property
    def success(self) -> bool:
        return bool(self.results) and all(r.success for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "turnId": self.turn.id,
            "summary": self.summary,
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
        }


class ActionPipeline:
    def __init__(
        self,
        extractor: IntentExtractor,
        resolver: ActionResolver,
        executor: ActionExecutor,
        coordinator: Optional[ConfirmationCoordinator] = None,
        history: Optional[ConversationHistory] = None,
        llm: Optional[LanguageModelPort] = None,
    ):
        self.extractor = extractor
        self.resolver = resolver
        self.executor = executor
        self.coordinator = coordinator or ConfirmationCoordinator()
        self.history = history or ConversationHistory()
        self.llm = llm

    async def handle_message(self, conversation_id: str, user_id: str, utterance: str) -> ConversationTurn:
        """Turn one user message into a held ConversationTurn.

        READ actions come back already executed; everything else waits
        for decide()/execute().
        """
        recent = self.history.recent(conversation_id)
        turn = await self.extractor.extract(utterance, recent, user_id)
        resolution = await self.resolver.resolve(turn.proposals, user_id)
        turn.actions = resolution.actions
        turn.notices = resolution.notices
        turn.response = self._compose(turn)
        self.coordinator.hold(conversation_id, turn)

        self.history.append(conversation_id, "user", utterance)
        self.history.append(conversation_id, "assistant", turn.response)
        return turn

    async def handle(self, message: IncomingMessage) -> ConversationTurn:
        return await self.handle_message(message.conversation_id, message.user_id, message.content)

    def get_turn(self, conversation_id: str, turn_id: str) -> ConversationTurn:
        turn = self.coordinator.get_turn(conversation_id, turn_id)
        if turn is None:
            raise NotFound(f"turn {turn_id} not found in conversation {conversation_id}")
        return turn

    def _owned_turn(self, conversation_id: str, turn_id: str, user_id: Optional[str]) -> ConversationTurn:
        turn = self.get_turn(conversation_id, turn_id)
        if user_id is not None and turn.user_id is not None and turn.user_id != user_id:
            raise NotFound(f"turn {turn_id} not found for user {user_id}")
        return turn

    def decide(
        self,
        conversation_id: str,
        turn_id: str,
        action_id: str,
        decision: Decision,
        user_id: Optional[str] = None,
    ) -> bool:
        turn = self._owned_turn(conversation_id, turn_id, user_id)
        action = turn.find_action(action_id)
        if action is None:
            raise NotFound(f"action {action_id} not found in turn {turn_id}")
        return self.coordinator.decide(action, decision)

    def decide_all(
        self, conversation_id: str, turn_id: str, decision: Decision, user_id: Optional[str] = None
    ) -> int:
        return self.coordinator.decide_all(self._owned_turn(conversation_id, turn_id, user_id), decision)

    async def execute(self, conversation_id: str, turn_id: str, user_id: str) -> ExecutionReport:
        """Run the accepted actions of a turn and close it.

        Actions still pending at this point are dropped with the turn.
        """
        turn = self._owned_turn(conversation_id, turn_id, user_id)

        accepted = self.coordinator.take_accepted(turn)
        if not accepted:
            report = ExecutionReport(turn=turn, summary="No accepted actions to execute.")
        else:
            results = await self.executor.execute(accepted, user_id)
            report = ExecutionReport(turn=turn, results=results, summary=summarize_results(results))

        skipped = len(turn.pending_actions())
        if skipped:
            report.summary += f"\n{skipped} undecided action(s) were not executed."

        self.coordinator.discard(conversation_id, turn_id)
        self.history.append(conversation_id, "assistant", report.summary)
        return report

    @staticmethod
    def _compose(turn: ConversationTurn) -> str:
        parts = [turn.response]
        for action in turn.actions:
            if action.is_read and action.status is ActionStatus.EXECUTED:
                parts.append(describe_records(action.results or [], action.entity_type))
        parts.extend(turn.notices)
        return "\n\n".join(p for p in parts if p)


def create_pipeline(
    config: Optional[AppConfig] = None,
    llm: Optional[LanguageModelPort] = None,
    store: Optional[EntityStorePort] = None,
    strategy: Optional[ExtractionStrategy] = None,
) -> ActionPipeline:
    """Wire the default pipeline from config.

    Pass ``llm``/``store``/``strategy`` to override the configured backends.
    """
    from jarvis.config import AppConfig

    config = config or AppConfig.from_env()

    if store is None:
        from jarvis.adapters.storage import create_store

        store = create_store(config.store)

    if strategy is None:
        if llm is None:
            from jarvis.adapters.llm import create_gateway

            usage_file = f"{config.store.storage_dir}/usage.json" if config.store.backend == "json" else None
            llm = create_gateway(config.generation, config.usage_limits, usage_file=usage_file)
        strategy = ModelExtractionStrategy(
            llm,
            temperature=config.generation.temperature,
            max_tokens=config.generation.max_tokens,
            timeout_seconds=config.generation.timeout_seconds,
        )

    resolver = ActionResolver(
        store,
        max_matches=config.pipeline.max_search_matches,
        read_limit=config.pipeline.read_result_limit,
    )
    extractor = IntentExtractor(
        strategy,
        context_source=resolver,
        max_context_reprompts=config.pipeline.max_context_reprompts,
    )
    return ActionPipeline(
        extractor=extractor,
        resolver=resolver,
        executor=ActionExecutor(store),
        history=ConversationHistory(max_messages=config.pipeline.context_messages),
        llm=llm,
    )


def create_keyword_pipeline(store: EntityStorePort, config: Optional[AppConfig] = None) -> ActionPipeline:
    """Pipeline without a language model, using phrase matching only."""
    from jarvis.config import AppConfig

    return create_pipeline(config or AppConfig(), store=store, strategy=KeywordExtractionStrategy())
