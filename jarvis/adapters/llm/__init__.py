"""Language model gateways — Gemini REST, Claude and Codex CLIs."""

from typing import Optional

from jarvis.adapters.llm.claude_adapter import ClaudeGateway
from jarvis.adapters.llm.codex_adapter import CodexGateway
from jarvis.adapters.llm.gemini_adapter import GeminiGateway
from jarvis.adapters.llm.runner import run_cancellable
from jarvis.config import AppConfig, GenerationConfig, UsageLimitsConfig
from jarvis.infrastructure.usage import UsageTracker
from jarvis.ports.outbound import LanguageModelPort


def create_gateway(
    generation: Optional[GenerationConfig] = None,
    usage_limits: Optional[UsageLimitsConfig] = None,
    usage_file: Optional[str] = None,
) -> LanguageModelPort:
    """Create a gateway for the configured provider."""
    generation = generation or AppConfig.from_env().generation
    tracker = UsageTracker(usage_limits, usage_file=usage_file)
    selected = generation.provider.strip().lower()
    if selected == "gemini":
        return GeminiGateway(
            generation.gemini_api_key,
            model=generation.model,
            timeout_seconds=generation.timeout_seconds,
            usage_tracker=tracker,
        )
    if selected == "claude":
        return ClaudeGateway(generation.model, generation.timeout_seconds, tracker)
    if selected == "codex":
        return CodexGateway(generation.model, generation.timeout_seconds, tracker)
    raise ValueError(f"Unsupported provider: {selected}")


__all__ = [
    "ClaudeGateway",
    "CodexGateway",
    "GeminiGateway",
    "create_gateway",
    "run_cancellable",
]
