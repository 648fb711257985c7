"""Gemini REST gateway using aiohttp — implements LanguageModelPort."""

import sys
from datetime import datetime
from typing import Any, Dict, Optional

import aiohttp

from jarvis.domain.errors import GenerationError
from jarvis.infrastructure.usage import UsageLimitExceeded, UsageTracker

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


def _log(msg: str):
    print(f"[{datetime.now().isoformat()}] {msg}", file=sys.stderr)


class GeminiGateway:
    """Single-shot ``generateContent`` calls asking for a JSON response."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-pro",
        timeout_seconds: float = 60.0,
        usage_tracker: Optional[UsageTracker] = None,
        api_base: str = GEMINI_API_BASE,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.usage_tracker = usage_tracker or UsageTracker()
        self.api_base = api_base.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _payload(self, prompt: str, system_prompt: Optional[str], temperature: float, max_tokens: int) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
                "topP": 0.95,
                "topK": 64,
                "responseMimeType": "application/json",
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason")
            raise GenerationError(f"Gemini returned no candidates{f' (blocked: {reason})' if reason else ''}")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not text.strip():
            raise GenerationError(f"Gemini returned empty content (finishReason={candidates[0].get('finishReason')})")
        return text

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 2048,
    ) -> str:
        if not self.is_configured:
            raise GenerationError("Gemini API key not configured")
        try:
            self.usage_tracker.check_limits()
        except UsageLimitExceeded as e:
            raise GenerationError(str(e)) from e

        url = f"{self.api_base}/models/{self.model}:generateContent"
        payload = self._payload(prompt, system_prompt, temperature, max_tokens)
        _log(f"Generating with Gemini ({self.model})")

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, params={"key": self.api_key}, json=payload) as resp:
                    data = await resp.json(content_type=None)
                    if resp.status != 200:
                        message = (data.get("error") or {}).get("message") if isinstance(data, dict) else None
                        raise GenerationError(f"Gemini HTTP {resp.status}: {message or data}")
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"Gemini request failed: {str(e) or e.__class__.__name__}") from e

        text = self._extract_text(data)
        _log("Completed")
        self.usage_tracker.record_call()
        warning = self.usage_tracker.get_warning()
        if warning:
            _log(warning)
        return text
