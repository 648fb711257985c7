"""Configuration and shared settings."""

__version__ = "0.1.0"

import os
import sys
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

_stderr_print = lambda *a, **kw: print(*a, **kw, file=sys.stderr)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        _stderr_print(f"Invalid {name}={raw!r}, falling back to {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        _stderr_print(f"Invalid {name}={raw!r}, falling back to {default}")
        return default


SUPPORTED_AI_PROVIDERS = ("gemini", "claude", "codex")
AI_PROVIDER = os.getenv("AI_PROVIDER", "gemini").strip().lower()
if AI_PROVIDER not in SUPPORTED_AI_PROVIDERS:
    _stderr_print(f"Unsupported AI_PROVIDER={AI_PROVIDER!r}, falling back to 'gemini'")
    AI_PROVIDER = "gemini"

MODEL_ALIASES_BY_PROVIDER = {
    "gemini": {
        "flash": os.getenv("GEMINI_MODEL_FLASH", "gemini-2.0-flash-lite"),
        "pro": os.getenv("GEMINI_MODEL_PRO", "gemini-2.5-pro"),
    },
    "claude": {
        "flash": os.getenv("CLAUDE_MODEL_FLASH", "claude-haiku-4-5-20251001"),
        "pro": os.getenv("CLAUDE_MODEL_PRO", "claude-sonnet-4-5-20250929"),
    },
    "codex": {
        "flash": os.getenv("CODEX_MODEL_FLASH", "gpt-5.3-codex-mini"),
        "pro": os.getenv("CODEX_MODEL_PRO", "gpt-5.3-codex"),
    },
}

MODEL_ALIASES = MODEL_ALIASES_BY_PROVIDER[AI_PROVIDER]

DEFAULT_MODEL = os.getenv("AI_DEFAULT_MODEL", "pro").strip().lower()
if DEFAULT_MODEL not in MODEL_ALIASES:
    _stderr_print(
        f"Unsupported AI_DEFAULT_MODEL={DEFAULT_MODEL!r} for provider={AI_PROVIDER!r}, "
        "falling back to 'pro'"
    )
    DEFAULT_MODEL = "pro"

SUPPORTED_STORE_BACKENDS = ("memory", "json", "pocketbase")
STORE_BACKEND = os.getenv("STORE_BACKEND", "json").strip().lower()
if STORE_BACKEND not in SUPPORTED_STORE_BACKENDS:
    _stderr_print(f"Unsupported STORE_BACKEND={STORE_BACKEND!r}, falling back to 'json'")
    STORE_BACKEND = "json"

CONFIG = {
    "port": _env_int("PORT", 3000),
    "ai_provider": AI_PROVIDER,
    "gemini_api_key": os.getenv("GEMINI_API_KEY", ""),
    # Language model call shape
    "llm_timeout_seconds": _env_float("LLM_TIMEOUT_SECONDS", 60.0),
    "llm_temperature": _env_float("LLM_TEMPERATURE", 0.2),
    "llm_max_tokens": _env_int("LLM_MAX_TOKENS", 2048),
    # Resolution bounds
    "max_search_matches": _env_int("MAX_SEARCH_MATCHES", 10),
    "read_result_limit": _env_int("READ_RESULT_LIMIT", 20),
    "context_messages": _env_int("CONTEXT_MESSAGES", 10),
    # Entity store
    "store_backend": STORE_BACKEND,
    "store_dir": os.getenv("STORE_DIR", "memory"),
    "pocketbase_url": os.getenv("POCKETBASE_URL", "http://127.0.0.1:8090"),
    "pocketbase_token": os.getenv("POCKETBASE_TOKEN", ""),
    # Usage limits for language model calls
    "usage_limits": {
        "max_calls_per_minute": 30,
        "max_calls_per_hour": 500,
        "max_calls_per_day": 5000,
        "min_call_interval_seconds": 0,
        "warning_threshold_pct": 80,
        "paused": False,
    },
}


# ── Typed config ──────────────────────────────────────


@dataclass
class UsageLimitsConfig:
    max_calls_per_minute: int = 30
    max_calls_per_hour: int = 500
    max_calls_per_day: int = 5000
    min_call_interval_seconds: int = 0
    warning_threshold_pct: int = 80
    paused: bool = False


@dataclass
class GenerationConfig:
    """Options passed to every language model call."""

    provider: str = "gemini"
    model: str = "pro"
    temperature: float = 0.2
    max_tokens: int = 2048
    timeout_seconds: float = 60.0
    gemini_api_key: str = ""


@dataclass
class PipelineConfig:
    # Upper bound on per-item actions expanded from one search proposal
    max_search_matches: int = 10
    read_result_limit: int = 20
    context_messages: int = 10
    max_context_reprompts: int = 1


@dataclass
class StoreConfig:
    backend: str = "json"
    storage_dir: str = "memory"
    pocketbase_url: str = "http://127.0.0.1:8090"
    pocketbase_token: str = ""


@dataclass
class AppConfig:
    port: int = 3000
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    usage_limits: UsageLimitsConfig = field(default_factory=UsageLimitsConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create AppConfig from environment variables."""
        return cls(
            port=CONFIG["port"],
            generation=GenerationConfig(
                provider=AI_PROVIDER,
                model=MODEL_ALIASES[DEFAULT_MODEL],
                temperature=CONFIG["llm_temperature"],
                max_tokens=CONFIG["llm_max_tokens"],
                timeout_seconds=CONFIG["llm_timeout_seconds"],
                gemini_api_key=CONFIG["gemini_api_key"],
            ),
            pipeline=PipelineConfig(
                max_search_matches=CONFIG["max_search_matches"],
                read_result_limit=CONFIG["read_result_limit"],
                context_messages=CONFIG["context_messages"],
            ),
            store=StoreConfig(
                backend=CONFIG["store_backend"],
                storage_dir=CONFIG["store_dir"],
                pocketbase_url=CONFIG["pocketbase_url"],
                pocketbase_token=CONFIG["pocketbase_token"],
            ),
            usage_limits=UsageLimitsConfig(**CONFIG["usage_limits"]),
        )
