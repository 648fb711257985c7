"""In-process entity store — implements EntityStorePort."""

import copy
import sys
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Tuple

from jarvis.adapters.storage.validation import apply_updates, build_record, validate
from jarvis.domain.models import EntityType
from jarvis.domain.search import SearchCriteria
from jarvis.ports.outbound import StoreResult


def _log(msg: str):
    print(msg, file=sys.stderr)


class InMemoryEntityStore:
    """Tasks and events kept in dicts, scoped per user.

    Records are copied on the way in and out so callers never hold a live
    reference to stored state.
    """

    def __init__(self, seed: Optional[Iterable[Tuple[EntityType, Dict[str, Any]]]] = None):
        self._records: Dict[EntityType, "OrderedDict[str, Dict[str, Any]]"] = {
            entity_type: OrderedDict() for entity_type in EntityType
        }
        for entity_type, record in seed or ():
            self._records[entity_type][record["id"]] = copy.deepcopy(record)

    def _owned(self, user_id: str, entity_type: EntityType, entity_id: str) -> Optional[Dict[str, Any]]:
        record = self._records[entity_type].get(entity_id)
        if record is None or record.get("user_id") != user_id:
            return None
        return record

    def _changed(self, entity_type: EntityType) -> None:
        """Hook for persistent subclasses. May raise OSError."""

    def _commit(self, entity_type: EntityType, entity_id: str, previous: Optional[Dict[str, Any]]) -> Optional[str]:
        """Persist a change, restoring the previous record if that fails."""
        try:
            self._changed(entity_type)
        except OSError as e:
            if previous is None:
                self._records[entity_type].pop(entity_id, None)
            else:
                self._records[entity_type][entity_id] = previous
            _log(f"[store] could not persist {entity_type.label} {entity_id}: {e}")
            return f"could not persist {entity_type.label}: {e}"
        return None

    def all_records(self, entity_type: EntityType) -> List[Dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._records[entity_type].values()]

    async def create(self, user_id: str, entity_type: EntityType, fields: Dict[str, Any]) -> StoreResult:
        record = build_record(entity_type, user_id, fields)
        errors = validate(entity_type, record)
        if errors:
            return StoreResult.fail("; ".join(errors))
        self._records[entity_type][record["id"]] = record
        error = self._commit(entity_type, record["id"], None)
        if error:
            return StoreResult.fail(error)
        return StoreResult.ok(copy.deepcopy(record))

    async def get(self, user_id: str, entity_type: EntityType, entity_id: str) -> StoreResult:
        record = self._owned(user_id, entity_type, entity_id)
        if record is None:
            return StoreResult.fail(f"{entity_type.label} {entity_id} not found")
        return StoreResult.ok(copy.deepcopy(record))

    async def search(
        self,
        user_id: str,
        entity_type: EntityType,
        criteria: SearchCriteria,
        limit: Optional[int] = None,
    ) -> StoreResult:
        found = [
            copy.deepcopy(r)
            for r in self._records[entity_type].values()
            if r.get("user_id") == user_id and criteria.matches(entity_type, r)
        ]
        if limit is not None:
            found = found[:limit]
        return StoreResult.ok(found)

    async def update(
        self, user_id: str, entity_type: EntityType, entity_id: str, fields: Dict[str, Any]
    ) -> StoreResult:
        record = self._owned(user_id, entity_type, entity_id)
        if record is None:
            return StoreResult.fail(f"{entity_type.label} {entity_id} not found")
        merged = apply_updates(entity_type, record, fields)
        errors = validate(entity_type, merged)
        if errors:
            return StoreResult.fail("; ".join(errors))
        self._records[entity_type][entity_id] = merged
        error = self._commit(entity_type, entity_id, record)
        if error:
            return StoreResult.fail(error)
        return StoreResult.ok(copy.deepcopy(merged))

    async def delete(self, user_id: str, entity_type: EntityType, entity_id: str) -> StoreResult:
        record = self._owned(user_id, entity_type, entity_id)
        if record is None:
            return StoreResult.fail(f"{entity_type.label} {entity_id} not found")
        del self._records[entity_type][entity_id]
        error = self._commit(entity_type, entity_id, record)
        if error:
            return StoreResult.fail(error)
        return StoreResult.ok({"id": entity_id})
