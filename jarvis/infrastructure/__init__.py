"""Infrastructure — cross-cutting services."""

from jarvis.infrastructure.usage import UsageLimitExceeded, UsageTracker

__all__ = ["UsageLimitExceeded", "UsageTracker"]
