"""Confirmation coordinator — per-action accept/reject bookkeeping.

States: pending -> accepted -> executed | failed
        \\-> rejected
"""

from __future__ import annotations

import sys
from collections import OrderedDict
from typing import Dict, List, Optional

from jarvis.domain.models import ActionStatus, ConversationTurn, Decision, ResolvedAction


def _log(msg: str):
    print(msg, file=sys.stderr)


_DECISION_STATUS = {
    Decision.ACCEPT: ActionStatus.ACCEPTED,
    Decision.REJECT: ActionStatus.REJECTED,
}


class ConfirmationCoordinator:
    """Holds turns awaiting confirmation and applies user decisions.

    Turns are kept per conversation, least-recently-used conversations are
    evicted past ``max_conversations``.
    """

    _MAX_CONVERSATIONS = 20

    def __init__(self, max_conversations: Optional[int] = None, max_turns: int = 10):
        self._max_conversations = max_conversations or self._MAX_CONVERSATIONS
        self._max_turns = max_turns
        self._turns: OrderedDict[str, OrderedDict[str, ConversationTurn]] = OrderedDict()

    def hold(self, conversation_id: str, turn: ConversationTurn) -> None:
        turn.conversation_id = conversation_id
        turns = self._turns.setdefault(conversation_id, OrderedDict())
        turns[turn.id] = turn
        self._turns.move_to_end(conversation_id)
        while len(turns) > self._max_turns:
            turns.popitem(last=False)
        while len(self._turns) > self._max_conversations:
            evicted_id, _ = self._turns.popitem(last=False)
            _log(f"[confirm] evicted turns of conversation {evicted_id}")

    def get_turn(self, conversation_id: str, turn_id: str) -> Optional[ConversationTurn]:
        return self._turns.get(conversation_id, {}).get(turn_id)

    def turns(self, conversation_id: str) -> List[ConversationTurn]:
        return list(self._turns.get(conversation_id, {}).values())

    def discard(self, conversation_id: str, turn_id: str) -> None:
        turns = self._turns.get(conversation_id)
        if turns is not None:
            turns.pop(turn_id, None)
            if not turns:
                del self._turns[conversation_id]

    @staticmethod
    def decide(action: ResolvedAction, decision: Decision) -> bool:
        """Apply a decision to one action. Returns False when nothing changed."""
        if action.is_read or action.status is not ActionStatus.PENDING:
            return False
        action.transition(_DECISION_STATUS[Decision(decision)])
        return True

    def decide_all(self, turn: ConversationTurn, decision: Decision) -> int:
        return sum(1 for action in turn.actions if self.decide(action, decision))

    @staticmethod
    def take_accepted(turn: ConversationTurn) -> List[ResolvedAction]:
        return [a for a in turn.actions if a.status is ActionStatus.ACCEPTED]

    @staticmethod
    def tally(turn: ConversationTurn) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for action in turn.actions:
            if action.is_read:
                continue
            counts[action.status.value] = counts.get(action.status.value, 0) + 1
        return counts
