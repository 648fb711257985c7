"""Action executor — runs accepted actions against the entity store."""

from __future__ import annotations

import sys
from datetime import datetime
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Tuple

from jarvis.domain.errors import ExecutionError
from jarvis.domain.models import ActionStatus, EntityType, ExecutionResult, ResolvedAction, Verb
from jarvis.domain.search import PRIMARY_DATE_FIELD
from jarvis.ports.outbound import EntityStorePort, StoreResult


def _log(msg: str):
    print(f"[{datetime.now().isoformat()}] {msg}", file=sys.stderr)


Handler = Callable[[ResolvedAction, str], Awaitable[StoreResult]]


class ActionExecutor:
    """Dispatches accepted actions one at a time, in order, without retries.

    A failing action never affects its siblings; each gets its own
    ExecutionResult and its status moves to executed or failed.
    """

    def __init__(self, store: EntityStorePort):
        self._store = store
        self._handlers: Dict[Tuple[Verb, EntityType], Handler] = {}
        for entity_type in EntityType:
            self._handlers[(Verb.CREATE, entity_type)] = partial(self._create, entity_type)
            self._handlers[(Verb.UPDATE, entity_type)] = partial(self._update, entity_type)
            self._handlers[(Verb.DELETE, entity_type)] = partial(self._delete, entity_type)

    async def execute(self, actions: List[ResolvedAction], user_id: str) -> List[ExecutionResult]:
        results = []
        for action in actions:
            results.append(await self._execute_one(action, user_id))
        return results

    async def _execute_one(self, action: ResolvedAction, user_id: str) -> ExecutionResult:
        if action.status is not ActionStatus.ACCEPTED:
            return ExecutionResult(
                action=action,
                success=False,
                error=f"action is {action.status.value}, not accepted",
            )

        handler = self._handlers.get((action.verb, action.entity_type))
        try:
            if handler is None:
                raise ExecutionError(f"no handler for {action.verb.value} {action.entity_type.value}")
            result = await handler(action, user_id)
        except Exception as e:
            result = StoreResult.fail(str(e) or e.__class__.__name__)

        if result.success:
            action.transition(ActionStatus.EXECUTED)
            data = result.data if isinstance(result.data, dict) else None
            return ExecutionResult(action=action, success=True, data=data)

        action.transition(ActionStatus.FAILED)
        action.error = result.error or "unknown error"
        _log(f"[executor] {action.description} failed: {action.error}")
        return ExecutionResult(action=action, success=False, error=action.error)

    async def _create(self, entity_type: EntityType, action: ResolvedAction, user_id: str) -> StoreResult:
        return await self._store.create(user_id, entity_type, dict(action.params))

    async def _update(self, entity_type: EntityType, action: ResolvedAction, user_id: str) -> StoreResult:
        if not action.target_id:
            raise ExecutionError("update has no target id")
        return await self._store.update(user_id, entity_type, action.target_id, dict(action.updates or {}))

    async def _delete(self, entity_type: EntityType, action: ResolvedAction, user_id: str) -> StoreResult:
        if not action.target_id:
            raise ExecutionError("delete has no target id")
        return await self._store.delete(user_id, entity_type, action.target_id)


def summarize_results(results: List[ExecutionResult]) -> str:
    """Itemised outcome text. Partial failure is reported as such."""
    if not results:
        return "No actions were executed."
    succeeded = [r for r in results if r.success]
    failed = [r for r in results if not r.success]

    if not failed:
        head = f"All {len(results)} action(s) completed."
    elif not succeeded:
        head = f"None of the {len(results)} action(s) succeeded."
    else:
        head = f"{len(succeeded)} of {len(results)} action(s) completed, {len(failed)} failed."

    lines = [head]
    for r in results:
        if r.success:
            lines.append(f"- done: {r.action.description}")
        else:
            lines.append(f"- failed: {r.action.description} ({r.error})")
    return "\n".join(lines)


def describe_records(records: List[Dict[str, Any]], entity_type: EntityType, limit: int = 5) -> str:
    """Short digest of READ results for the turn summary."""
    label = entity_type.label
    if not records:
        return f"No {label}s found."
    date_field = PRIMARY_DATE_FIELD[entity_type]
    lines = [f"Found {len(records)} {label}(s):"]
    for record in records[:limit]:
        when = record.get(date_field)
        suffix = f" ({when})" if when else ""
        lines.append(f"- {record.get('title') or record.get('id')}{suffix}")
    if len(records) > limit:
        lines.append(f"- ...and {len(records) - limit} more")
    return "\n".join(lines)
