"""Language model call accounting and rate limiting."""

import json
import sys
from dataclasses import asdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jarvis.config import UsageLimitsConfig

_WINDOWS = (
    ("Per-minute", 60, "max_calls_per_minute"),
    ("Per-hour", 3600, "max_calls_per_hour"),
    ("Daily", 86400, "max_calls_per_day"),
)


class UsageLimitExceeded(Exception):
    """Raised when a gateway call would exceed a configured limit."""


class UsageTracker:
    """Sliding-window call counter shared by the language model gateways.

    With ``usage_file`` set, call timestamps survive restarts; without it
    they are kept in memory only.
    """

    def __init__(
        self,
        limits: Optional[UsageLimitsConfig] = None,
        usage_file: Optional[Union[str, Path]] = None,
        clock=datetime.now,
    ):
        self.limits = limits or UsageLimitsConfig()
        self.usage_file = Path(usage_file) if usage_file else None
        self._clock = clock
        self._data = self._load()

    def _load(self) -> Dict[str, Any]:
        if self.usage_file and self.usage_file.exists():
            try:
                with open(self.usage_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data.get("calls"), list):
                    return data
            except (OSError, ValueError) as e:
                print(f"Ignoring unreadable usage file {self.usage_file}: {e}", file=sys.stderr)
        return {"calls": [], "total_calls": 0}

    def _save(self):
        if not self.usage_file:
            return
        try:
            self.usage_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.usage_file, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            print(f"Failed to save usage data: {e}", file=sys.stderr)

    def _calls_since(self, seconds: float) -> int:
        cutoff = (self._clock() - timedelta(seconds=seconds)).isoformat()
        return sum(1 for ts in self._data["calls"] if ts > cutoff)

    def check_limits(self):
        """Raise UsageLimitExceeded if the next call would break a limit."""
        limits = self.limits
        if limits.paused:
            raise UsageLimitExceeded("Usage is paused by configuration")

        min_interval = limits.min_call_interval_seconds
        if min_interval and self._data["calls"]:
            elapsed = (self._clock() - datetime.fromisoformat(self._data["calls"][-1])).total_seconds()
            if elapsed < min_interval:
                raise UsageLimitExceeded(
                    f"Cooldown: {min_interval - elapsed:.1f}s remaining (min interval: {min_interval}s)"
                )

        for label, seconds, attr in _WINDOWS:
            used = self._calls_since(seconds)
            allowed = getattr(limits, attr)
            if used >= allowed:
                raise UsageLimitExceeded(f"{label} limit reached: {used}/{allowed}")

    def record_call(self):
        cutoff = (self._clock() - timedelta(hours=24)).isoformat()
        self._data["calls"] = [ts for ts in self._data["calls"] if ts > cutoff]
        self._data["calls"].append(self._clock().isoformat())
        self._data["total_calls"] = self._data.get("total_calls", 0) + 1
        self._save()

    def get_warning(self) -> Optional[str]:
        per_day = self._calls_since(86400)
        max_day = self.limits.max_calls_per_day
        if max_day and per_day >= max_day * self.limits.warning_threshold_pct / 100:
            return f"Usage warning: {per_day}/{max_day} daily calls used ({per_day * 100 // max_day}%)"
        return None

    def get_status(self) -> Dict[str, Any]:
        return {
            "calls_today": self._calls_since(86400),
            "calls_this_hour": self._calls_since(3600),
            "calls_this_minute": self._calls_since(60),
            "limits": asdict(self.limits),
            "total_calls_all_time": self._data.get("total_calls", 0),
        }
