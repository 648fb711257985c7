"""Claude CLI gateway — implements LanguageModelPort."""

import asyncio
import sys
from datetime import datetime
from typing import Optional

from jarvis.adapters.llm.runner import run_cancellable
from jarvis.domain.errors import GenerationError
from jarvis.infrastructure.usage import UsageLimitExceeded, UsageTracker


def _log(msg: str):
    print(f"[{datetime.now().isoformat()}] {msg}", file=sys.stderr)


class ClaudeGateway:
    """Runs ``claude --print`` once per generation.

    The CLI has no sampling flags, so temperature and max_tokens are
    accepted for interface compatibility only.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        timeout_seconds: float = 60.0,
        usage_tracker: Optional[UsageTracker] = None,
    ):
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.usage_tracker = usage_tracker or UsageTracker()

    def _args(self, prompt: str, system_prompt: Optional[str]):
        args = ["claude", "--print", "--output-format", "text"]
        if self.model:
            args.extend(["--model", self.model])
        if system_prompt:
            args.extend(["--system-prompt", system_prompt])
        args.append(prompt)
        return args

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 2048,
    ) -> str:
        try:
            self.usage_tracker.check_limits()
        except UsageLimitExceeded as e:
            raise GenerationError(str(e)) from e

        _log("Generating with Claude CLI")
        try:
            proc, stdout, stderr = await run_cancellable(self._args(prompt, system_prompt), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise GenerationError(f"Timeout ({self.timeout_seconds:.0f}s)") from e
        except OSError as e:
            raise GenerationError(f"claude CLI unavailable: {e}") from e

        if proc.returncode != 0:
            raise GenerationError(f"Exit code {proc.returncode}: {stderr.decode('utf-8', 'replace').strip()}")

        _log("Completed")
        self.usage_tracker.record_call()
        warning = self.usage_tracker.get_warning()
        if warning:
            _log(warning)
        return stdout.decode("utf-8").strip()
