"""Domain data models — pure Python dataclasses."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from jarvis.domain.errors import InvalidTransition


class Verb(str, Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class EntityType(str, Enum):
    TASK = "TASK"
    EVENT = "EVENT"

    @property
    def label(self) -> str:
        return self.value.lower()


class ActionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXECUTED = "executed"
    FAILED = "failed"


class Decision(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


# pending -> accepted|rejected, accepted -> executed|failed; the rest are terminal
ALLOWED_TRANSITIONS = {
    ActionStatus.PENDING: {ActionStatus.ACCEPTED, ActionStatus.REJECTED},
    ActionStatus.ACCEPTED: {ActionStatus.EXECUTED, ActionStatus.FAILED},
    ActionStatus.REJECTED: set(),
    ActionStatus.EXECUTED: set(),
    ActionStatus.FAILED: set(),
}


def _short_id() -> str:
    return str(uuid.uuid4())[:8]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ChatMessage:
    """One entry of conversation context."""

    role: str  # "user" | "assistant"
    content: str
    created_at: str = field(default_factory=_now_iso)


@dataclass
class ActionProposal:
    """Candidate operation extracted from user text, possibly criteria-based."""

    verb: Verb
    entity_type: EntityType
    params: Dict[str, Any] = field(default_factory=dict)
    search_criteria: Optional[Dict[str, Any]] = None
    updates: Optional[Dict[str, Any]] = None

    @property
    def target_id(self) -> Optional[str]:
        target = self.params.get("id")
        return str(target) if target else None


@dataclass
class ResolvedAction:
    """A proposal bound to a concrete target, carrying confirmation status."""

    verb: Verb
    entity_type: EntityType
    description: str
    params: Dict[str, Any] = field(default_factory=dict)
    status: ActionStatus = ActionStatus.PENDING
    target_id: Optional[str] = None
    updates: Optional[Dict[str, Any]] = None
    item: Optional[Dict[str, Any]] = None  # snapshot of the target record
    results: Optional[List[Dict[str, Any]]] = None  # READ only
    error: Optional[str] = None
    id: str = field(default_factory=_short_id)

    @property
    def is_read(self) -> bool:
        return self.verb is Verb.READ

    def transition(self, status: ActionStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"action {self.id}: {self.status.value} -> {status.value} not allowed"
            )
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "verb": self.verb.value,
            "entityType": self.entity_type.value,
            "description": self.description,
            "status": self.status.value,
            "targetId": self.target_id,
            "params": self.params,
            "updates": self.updates,
            "item": self.item,
            "results": self.results,
            "error": self.error,
        }


@dataclass
class ConversationTurn:
    """Actions produced for one user message plus the assistant's summary."""

    response: str
    actions: List[ResolvedAction] = field(default_factory=list)
    proposals: List[ActionProposal] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    notices: List[str] = field(default_factory=list)
    user_id: Optional[str] = None
    conversation_id: Optional[str] = None
    id: str = field(default_factory=_short_id)
    created_at: str = field(default_factory=_now_iso)

    @property
    def needs_confirmation(self) -> bool:
        return any(not a.is_read for a in self.actions)

    def find_action(self, action_id: str) -> Optional[ResolvedAction]:
        return next((a for a in self.actions if a.id == action_id), None)

    def pending_actions(self) -> List[ResolvedAction]:
        return [a for a in self.actions if a.status is ActionStatus.PENDING and not a.is_read]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conversationId": self.conversation_id,
            "response": self.response,
            "actions": [a.to_dict() for a in self.actions],
            "needsConfirmation": self.needs_confirmation,
            "notices": list(self.notices),
            "metadata": dict(self.metadata),
            "createdAt": self.created_at,
        }


@dataclass
class ExecutionResult:
    action: ResolvedAction
    success: bool
    error: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actionId": self.action.id,
            "description": self.action.description,
            "status": self.action.status.value,
            "success": self.success,
            "error": self.error,
            "data": self.data,
        }
