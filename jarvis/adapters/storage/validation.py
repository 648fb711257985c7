"""Task/event record defaults and validation, shared by the store adapters."""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from jarvis.domain.models import EntityType
from jarvis.domain.search import parse_datetime

TASK_PRIORITIES = ("low", "medium", "high", "urgent")
TASK_STATUSES = ("pending", "in_progress", "completed", "cancelled")
EVENT_STATUSES = ("confirmed", "tentative", "cancelled")
EVENT_VISIBILITIES = ("private", "public")

TASK_DEFAULTS: Dict[str, Any] = {
    "title": "",
    "description": "",
    "priority": "medium",
    "value": 0,
    "status": "pending",
    "due_date": None,
    "completed_at": None,
    "parent_task_id": None,
    "tags": [],
    "estimated_duration": None,
    "actual_duration": None,
}

EVENT_DEFAULTS: Dict[str, Any] = {
    "title": "",
    "description": "",
    "start_date": None,
    "end_date": None,
    "is_all_day": False,
    "location": "",
    "status": "confirmed",
    "visibility": "private",
    "color": "#1976d2",
    "attendees": [],
    "reminders": [],
}

DEFAULTS = {EntityType.TASK: TASK_DEFAULTS, EntityType.EVENT: EVENT_DEFAULTS}

# Fields the caller may never set directly
_RESERVED = ("id", "user_id", "created_at", "updated_at")


def new_record_id() -> str:
    return uuid.uuid4().hex[:15]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _validate_task(record: Dict[str, Any]) -> List[str]:
    errors = []
    if not str(record.get("title") or "").strip():
        errors.append("Title is required")
    if record.get("priority") not in TASK_PRIORITIES:
        errors.append("Priority must be one of: " + ", ".join(TASK_PRIORITIES))
    if record.get("status") not in TASK_STATUSES:
        errors.append("Status must be one of: " + ", ".join(TASK_STATUSES))
    try:
        value = float(record.get("value") or 0)
    except (TypeError, ValueError):
        errors.append("Value must be a number")
    else:
        if value < 0 or value > 100:
            errors.append("Value must be between 0 and 100")
    if record.get("due_date") and parse_datetime(record["due_date"]) is None:
        errors.append("Due date is not a valid date")
    return errors


def _validate_event(record: Dict[str, Any]) -> List[str]:
    errors = []
    if not str(record.get("title") or "").strip():
        errors.append("Title is required")
    start = parse_datetime(record.get("start_date"))
    end = parse_datetime(record.get("end_date"))
    if start is None:
        errors.append("Start date is required")
    if record.get("end_date") and end is None:
        errors.append("End date is not a valid date")
    if start and end and start >= end:
        errors.append("End date must be after start date")
    if record.get("status") not in EVENT_STATUSES:
        errors.append("Status must be one of: " + ", ".join(EVENT_STATUSES))
    if record.get("visibility") not in EVENT_VISIBILITIES:
        errors.append("Visibility must be one of: " + ", ".join(EVENT_VISIBILITIES))
    return errors


_VALIDATORS = {EntityType.TASK: _validate_task, EntityType.EVENT: _validate_event}


def validate(entity_type: EntityType, record: Dict[str, Any]) -> List[str]:
    """Return the list of validation errors (empty when the record is valid)."""
    return _VALIDATORS[entity_type](record)


def _clean(fields: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    clean = {k: v for k, v in (fields or {}).items() if k not in _RESERVED}
    tags = clean.get("tags")
    if isinstance(tags, str):
        clean["tags"] = [t.strip() for t in tags.split(",") if t.strip()]
    return clean


def build_record(entity_type: EntityType, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Fill defaults for a new record. The result still needs validate()."""
    now = now_iso()
    record = dict(DEFAULTS[entity_type])
    record.update(_clean(fields))
    if entity_type is EntityType.TASK and record["status"] == "completed" and not record.get("completed_at"):
        record["completed_at"] = now
    record.update(id=new_record_id(), user_id=user_id, created_at=now, updated_at=now)
    return record


def apply_updates(entity_type: EntityType, record: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of record with updates merged in. The result still needs validate()."""
    merged = dict(record)
    merged.update(_clean(updates))
    if entity_type is EntityType.TASK:
        if merged.get("status") == "completed" and record.get("status") != "completed":
            merged["completed_at"] = now_iso()
        elif merged.get("status") != "completed":
            merged["completed_at"] = None
    merged["updated_at"] = now_iso()
    return merged
