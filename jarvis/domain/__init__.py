"""Domain layer — pure business logic, no external dependencies."""

from jarvis.domain.errors import (
    ExecutionError,
    ExtractionParseError,
    GenerationError,
    InvalidTransition,
    NotFound,
    PipelineError,
    ResolutionError,
)
from jarvis.domain.models import (
    ActionProposal,
    ActionStatus,
    ChatMessage,
    ConversationTurn,
    Decision,
    EntityType,
    ExecutionResult,
    ResolvedAction,
    Verb,
)
from jarvis.domain.search import SearchCriteria

__all__ = [
    "ActionProposal",
    "ActionStatus",
    "ChatMessage",
    "ConversationTurn",
    "Decision",
    "EntityType",
    "ExecutionError",
    "ExecutionResult",
    "ExtractionParseError",
    "GenerationError",
    "InvalidTransition",
    "NotFound",
    "PipelineError",
    "ResolutionError",
    "ResolvedAction",
    "SearchCriteria",
    "Verb",
]
