"""Outbound ports — interfaces for external system adapters."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from jarvis.domain.models import EntityType
from jarvis.domain.search import SearchCriteria


@dataclass
class StoreResult:
    """Unified result type for entity store operations."""

    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "StoreResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "StoreResult":
        return cls(success=False, error=error)


@runtime_checkable
class LanguageModelPort(Protocol):
    """Interface for text generation backends. Raises GenerationError."""

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 2048,
    ) -> str: ...


@runtime_checkable
class EntityStorePort(Protocol):
    """Interface for task/event persistence. Never raises across the boundary."""

    async def create(self, user_id: str, entity_type: EntityType, fields: Dict[str, Any]) -> StoreResult: ...

    async def get(self, user_id: str, entity_type: EntityType, entity_id: str) -> StoreResult: ...

    async def search(
        self,
        user_id: str,
        entity_type: EntityType,
        criteria: SearchCriteria,
        limit: Optional[int] = None,
    ) -> StoreResult: ...

    async def update(
        self, user_id: str, entity_type: EntityType, entity_id: str, fields: Dict[str, Any]
    ) -> StoreResult: ...

    async def delete(self, user_id: str, entity_type: EntityType, entity_id: str) -> StoreResult: ...


def records(result: StoreResult) -> List[Dict[str, Any]]:
    """List payload of a successful search result."""
    if not result.success or not isinstance(result.data, list):
        return []
    return [r for r in result.data if isinstance(r, dict)]
