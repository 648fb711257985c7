"""Search predicate over task and event records.

Semantics: case-insensitive substring on title, exact status/priority,
tag membership, inclusive date-range containment on the entity's primary
date. All given predicates AND together; an empty criteria matches all.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

from jarvis.domain.models import EntityType

# Record field holding the date a filter applies to
PRIMARY_DATE_FIELD = {
    EntityType.TASK: "due_date",
    EntityType.EVENT: "start_date",
}

# Model-facing names -> criteria fields
_CRITERIA_ALIASES = {
    "title": "title",
    "query": "title",
    "status": "status",
    "priority": "priority",
    "tag": "tags",
    "tags": "tags",
    "date": "date",
    "dueDate": "date",
    "due_date": "date",
    "startDate": "date",
    "start_date": "date",
    "dateFrom": "date_from",
    "date_from": "date_from",
    "dueAfter": "date_from",
    "startAfter": "date_from",
    "dateTo": "date_to",
    "date_to": "date_to",
    "dueBefore": "date_to",
    "startBefore": "date_to",
}

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO-ish date strings ("2026-10-19", "2026-10-19 14:00", "...Z")."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    # Naive comparison throughout; stored values are treated as local wall time
    return parsed.replace(tzinfo=None)


def _day_bounds(value: str) -> Optional[Tuple[datetime, datetime]]:
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    if _DATE_ONLY_RE.match(value.strip()):
        start = datetime.combine(parsed.date(), time.min)
        return start, start + timedelta(days=1) - timedelta(microseconds=1)
    return parsed, parsed


@dataclass
class SearchCriteria:
    title: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    date: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None

    @classmethod
    def from_params(cls, params: Optional[Dict[str, Any]]) -> "SearchCriteria":
        """Build criteria from model-supplied search params, ignoring unknown keys."""
        criteria = cls()
        for key, value in (params or {}).items():
            target = _CRITERIA_ALIASES.get(key)
            if target is None or value is None or value == "":
                continue
            if target == "tags":
                values = value if isinstance(value, list) else [value]
                criteria.tags.extend(str(v).strip().lower() for v in values if str(v).strip())
            else:
                setattr(criteria, target, str(value).strip())
        return criteria

    @property
    def is_empty(self) -> bool:
        return not (
            self.title or self.status or self.priority or self.tags
            or self.date or self.date_from or self.date_to
        )

    def _range(self) -> Tuple[Optional[datetime], Optional[datetime]]:
        lower: Optional[datetime] = None
        upper: Optional[datetime] = None
        if self.date:
            bounds = _day_bounds(self.date)
            if bounds:
                lower, upper = bounds
        if self.date_from:
            bounds = _day_bounds(self.date_from)
            if bounds:
                lower = bounds[0] if lower is None else max(lower, bounds[0])
        if self.date_to:
            bounds = _day_bounds(self.date_to)
            if bounds:
                upper = bounds[1] if upper is None else min(upper, bounds[1])
        return lower, upper

    def matches(self, entity_type: EntityType, record: Dict[str, Any]) -> bool:
        if self.title:
            if self.title.lower() not in str(record.get("title") or "").lower():
                return False
        if self.status and record.get("status") != self.status:
            return False
        if self.priority and record.get("priority") != self.priority:
            return False
        if self.tags:
            record_tags = {str(t).lower() for t in record.get("tags") or []}
            if not all(tag in record_tags for tag in self.tags):
                return False
        lower, upper = self._range()
        if lower is not None or upper is not None:
            value = parse_datetime(record.get(PRIMARY_DATE_FIELD[entity_type]))
            if value is None:
                return False
            if lower is not None and value < lower:
                return False
            if upper is not None and value > upper:
                return False
        return True

    def describe(self) -> str:
        """Short human-readable rendering for summaries."""
        parts = []
        if self.title:
            parts.append(f'title contains "{self.title}"')
        if self.status:
            parts.append(f"status {self.status}")
        if self.priority:
            parts.append(f"priority {self.priority}")
        if self.tags:
            parts.append("tagged " + ", ".join(self.tags))
        if self.date:
            parts.append(f"on {self.date}")
        if self.date_from:
            parts.append(f"from {self.date_from}")
        if self.date_to:
            parts.append(f"until {self.date_to}")
        return " and ".join(parts) if parts else "any"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for key in ("title", "status", "priority", "date", "date_from", "date_to"):
            value = getattr(self, key)
            if value:
                data[key] = value
        if self.tags:
            data["tags"] = list(self.tags)
        return data
