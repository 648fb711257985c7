"""Model reply parsing — structural JSON scan plus action normalisation.

The generation may wrap its JSON in prose or code fences, or stop halfway
through. We scan for brace-balanced objects (string-literal aware), validate
the first one that parses against ``ModelReply``, and normalise its action
list into ``ActionProposal`` objects.
"""

from __future__ import annotations

import json
import math
import sys
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from jarvis.domain.errors import ExtractionParseError
from jarvis.domain.models import ActionProposal, EntityType, Verb


def _log(msg: str):
    print(msg, file=sys.stderr)


# Original wire form: "type": "DELETE_TASK" etc.
ACTION_TYPE_MAP: Dict[str, Tuple[Verb, EntityType]] = {
    "CREATE_TASK": (Verb.CREATE, EntityType.TASK),
    "READ_TASKS": (Verb.READ, EntityType.TASK),
    "READ_TASK": (Verb.READ, EntityType.TASK),
    "UPDATE_TASK": (Verb.UPDATE, EntityType.TASK),
    "DELETE_TASK": (Verb.DELETE, EntityType.TASK),
    "CREATE_EVENT": (Verb.CREATE, EntityType.EVENT),
    "READ_EVENTS": (Verb.READ, EntityType.EVENT),
    "READ_EVENT": (Verb.READ, EntityType.EVENT),
    "UPDATE_EVENT": (Verb.UPDATE, EntityType.EVENT),
    "DELETE_EVENT": (Verb.DELETE, EntityType.EVENT),
}

# camelCase names the model is told to use -> record field names
FIELD_ALIASES = {
    "dueDate": "due_date",
    "startDate": "start_date",
    "endDate": "end_date",
    "isAllDay": "is_all_day",
    "estimatedDuration": "estimated_duration",
    "parentTaskId": "parent_task_id",
}

# Keys inside params that are not record fields
_CONTROL_KEYS = {"searchParams", "search_params", "searchCriteria", "updates", "id"}

# Top-level keys that identify a reply object
REPLY_KEYS = ("response", "actions", "needsContext", "needs_context")


class ReplyMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    intent: str = "general"
    confidence: float = 0.0

    @field_validator("intent", mode="before")
    @classmethod
    def _coerce_intent(cls, value: Any) -> str:
        return "general" if value is None or value == "" else str(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            confidence = float(value)
        except (TypeError, ValueError):
            return 0.0
        if math.isnan(confidence):
            return 0.0
        return min(max(confidence, 0.0), 1.0)


class ModelReply(BaseModel):
    """Schema the extraction prompt asks the model to follow."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    response: str = ""
    actions: List[Dict[str, Any]] = Field(default_factory=list)
    needs_context: bool = Field(default=False, alias="needsContext")
    context_query: Optional[str] = Field(default=None, alias="contextQuery")
    metadata: ReplyMetadata = Field(default_factory=ReplyMetadata)

    @field_validator("response", mode="before")
    @classmethod
    def _coerce_response(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("needs_context", mode="before")
    @classmethod
    def _coerce_needs_context(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ("true", "yes", "1")
        return bool(value)

    @field_validator("context_query", mode="before")
    @classmethod
    def _coerce_context_query(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @field_validator("actions", mode="before")
    @classmethod
    def _coerce_actions(cls, value: Any) -> List[Dict[str, Any]]:
        if isinstance(value, dict):
            value = [value]
        if not isinstance(value, list):
            return []
        return [a for a in value if isinstance(a, dict)]

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    def proposals(self) -> List[ActionProposal]:
        return normalize_actions(self.actions)


def iter_json_objects(text: str) -> Iterator[str]:
    """Yield each brace-balanced ``{...}`` span of text, outermost first.

    Braces inside JSON string literals are ignored. Spans that never close
    (truncated output) are not yielded.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break
        if end != -1:
            yield text[start:end + 1]
            start = text.find("{", end + 1)
        else:
            start = text.find("{", start + 1)


def find_json_object(text: str, keys: Optional[Tuple[str, ...]] = None) -> Optional[Dict[str, Any]]:
    """Return the first balanced span of text that decodes to a JSON object.

    With ``keys``, only objects carrying at least one of them qualify, so a
    nested fragment of a truncated reply is not mistaken for the reply.
    """
    if not text:
        return None
    for candidate in iter_json_objects(text):
        try:
            obj = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(obj, dict):
            continue
        if keys and not any(k in obj for k in keys):
            continue
        return obj
    return None


def parse_model_reply(text: str) -> ModelReply:
    """Parse raw generation text into a ModelReply. Raises ExtractionParseError."""
    obj = find_json_object(text or "", keys=REPLY_KEYS)
    if obj is None:
        raise ExtractionParseError("no JSON object found in model output", raw=text or "")
    try:
        return ModelReply.model_validate(obj)
    except ValidationError as e:
        raise ExtractionParseError(f"model output does not match schema: {e}", raw=text) from e


def normalize_fields(fields: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Rename camelCase model fields to record field names."""
    if not isinstance(fields, dict):
        return {}
    return {FIELD_ALIASES.get(k, k): v for k, v in fields.items() if v is not None}


def _verb_and_type(raw: Dict[str, Any]) -> Optional[Tuple[Verb, EntityType]]:
    action_type = str(raw.get("type") or "").strip().upper()
    if action_type:
        return ACTION_TYPE_MAP.get(action_type)
    try:
        verb = Verb(str(raw.get("verb") or "").strip().upper())
        entity_type = EntityType(str(raw.get("entityType") or raw.get("entity_type") or "").strip().upper())
    except ValueError:
        return None
    return verb, entity_type


def normalize_action(raw: Any) -> Optional[ActionProposal]:
    """Turn one raw action dict into an ActionProposal, or None if unusable."""
    if not isinstance(raw, dict):
        return None
    kinds = _verb_and_type(raw)
    if kinds is None:
        return None
    verb, entity_type = kinds

    params = raw.get("params") if isinstance(raw.get("params"), dict) else {}
    search = (
        params.get("searchParams")
        or params.get("search_params")
        or params.get("searchCriteria")
        or raw.get("searchCriteria")
        or raw.get("search_criteria")
    )
    updates = params.get("updates") or raw.get("updates")

    clean = normalize_fields({k: v for k, v in params.items() if k not in _CONTROL_KEYS})
    target = params.get("id") or raw.get("id")
    if target:
        clean["id"] = str(target)

    return ActionProposal(
        verb=verb,
        entity_type=entity_type,
        params=clean,
        search_criteria=dict(search) if isinstance(search, dict) and search else None,
        updates=normalize_fields(updates) if isinstance(updates, dict) and updates else None,
    )


def normalize_actions(raw_actions: List[Any]) -> List[ActionProposal]:
    proposals = []
    for raw in raw_actions or []:
        proposal = normalize_action(raw)
        if proposal is None:
            _log(f"[extractor] dropped unsupported action: {str(raw)[:120]}")
            continue
        proposals.append(proposal)
    return proposals
