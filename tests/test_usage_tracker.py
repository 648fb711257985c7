"""Tests for UsageTracker"""

import json
from datetime import datetime, timedelta

import pytest

from jarvis.config import UsageLimitsConfig
from jarvis.infrastructure.usage import UsageLimitExceeded, UsageTracker


class FakeClock:
    def __init__(self, start=datetime(2026, 10, 19, 9, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def _limits(**overrides):
    values = dict(max_calls_per_minute=999, max_calls_per_hour=999, max_calls_per_day=999)
    values.update(overrides)
    return UsageLimitsConfig(**values)


@pytest.fixture
def clock():
    return FakeClock()


class TestDailyLimit:
    def test_blocks_when_daily_limit_reached(self, clock):
        """Should raise UsageLimitExceeded when daily call limit is reached"""
        tracker = UsageTracker(_limits(max_calls_per_day=3), clock=clock)
        for _ in range(3):
            tracker.record_call()

        with pytest.raises(UsageLimitExceeded, match="Daily limit"):
            tracker.check_limits()

    def test_old_calls_expire(self, clock):
        tracker = UsageTracker(_limits(max_calls_per_day=2), clock=clock)
        tracker.record_call()
        tracker.record_call()
        clock.advance(hours=25)
        tracker.check_limits()


class TestHourlyLimit:
    def test_blocks_when_hourly_limit_reached(self, clock):
        tracker = UsageTracker(_limits(max_calls_per_hour=2), clock=clock)
        tracker.record_call()
        tracker.record_call()
        with pytest.raises(UsageLimitExceeded, match="Per-hour limit"):
            tracker.check_limits()


class TestPerMinuteLimit:
    def test_blocks_then_recovers(self, clock):
        tracker = UsageTracker(_limits(max_calls_per_minute=1), clock=clock)
        tracker.record_call()
        with pytest.raises(UsageLimitExceeded, match="Per-minute limit"):
            tracker.check_limits()
        clock.advance(seconds=61)
        tracker.check_limits()


class TestCooldown:
    def test_blocks_within_min_interval(self, clock):
        tracker = UsageTracker(_limits(min_call_interval_seconds=10), clock=clock)
        tracker.record_call()
        clock.advance(seconds=3)
        with pytest.raises(UsageLimitExceeded, match="Cooldown"):
            tracker.check_limits()
        clock.advance(seconds=8)
        tracker.check_limits()


class TestPaused:
    def test_paused_blocks_everything(self, clock):
        tracker = UsageTracker(_limits(paused=True), clock=clock)
        with pytest.raises(UsageLimitExceeded, match="paused"):
            tracker.check_limits()


class TestWarning:
    def test_warns_past_threshold(self, clock):
        tracker = UsageTracker(_limits(max_calls_per_day=10, warning_threshold_pct=50), clock=clock)
        for _ in range(4):
            tracker.record_call()
        assert tracker.get_warning() is None
        tracker.record_call()
        assert tracker.get_warning() == "Usage warning: 5/10 daily calls used (50%)"


class TestPersistence:
    def test_calls_survive_restart(self, tmp_path, clock):
        usage_file = tmp_path / "usage.json"
        tracker = UsageTracker(_limits(), usage_file=str(usage_file), clock=clock)
        tracker.record_call()
        tracker.record_call()

        reopened = UsageTracker(_limits(), usage_file=str(usage_file), clock=clock)
        status = reopened.get_status()
        assert status["calls_today"] == 2
        assert status["total_calls_all_time"] == 2
        assert json.loads(usage_file.read_text(encoding="utf-8"))["total_calls"] == 2

    def test_corrupt_file_starts_fresh(self, tmp_path, clock):
        usage_file = tmp_path / "usage.json"
        usage_file.write_text("not json", encoding="utf-8")
        tracker = UsageTracker(usage_file=str(usage_file), clock=clock)
        assert tracker.get_status()["calls_today"] == 0

    def test_in_memory_without_file(self, clock):
        tracker = UsageTracker(clock=clock)
        tracker.record_call()
        status = tracker.get_status()
        assert status["calls_this_minute"] == 1
        assert status["limits"]["max_calls_per_day"] == 5000
