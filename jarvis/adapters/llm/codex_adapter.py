"""Codex CLI gateway — implements LanguageModelPort."""

import asyncio
import os
import sys
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional

from jarvis.adapters.llm.runner import run_cancellable
from jarvis.domain.errors import GenerationError
from jarvis.infrastructure.usage import UsageLimitExceeded, UsageTracker


def _log(msg: str):
    print(f"[{datetime.now().isoformat()}] {msg}", file=sys.stderr)


class CodexGateway:
    """Runs ``codex exec`` and reads the last message from a temp file."""

    def __init__(
        self,
        model: Optional[str] = None,
        timeout_seconds: float = 60.0,
        usage_tracker: Optional[UsageTracker] = None,
    ):
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.usage_tracker = usage_tracker or UsageTracker()

    @staticmethod
    def _compose_prompt(prompt: str, system_prompt: Optional[str]) -> str:
        # codex exec has no system prompt flag
        if not system_prompt:
            return prompt
        return f"System instructions:\n{system_prompt}\n\nUser message:\n{prompt}"

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

        fd, output_path = tempfile.mkstemp(prefix="codex-last-", suffix=".txt")
        os.close(fd)
        out_file = Path(output_path)

        args = ["codex", "exec", "--color", "never", "--output-last-message", output_path]
        if self.model:
            args.extend(["--model", self.model])
        args.append(self._compose_prompt(prompt, system_prompt))
        _log("Generating with Codex CLI")

        try:
            proc, stdout, stderr = await run_cancellable(args, timeout=self.timeout_seconds)
            if proc.returncode != 0:
                err_text = stderr.decode("utf-8", "replace").strip() or stdout.decode("utf-8", "replace").strip()
                raise GenerationError(f"Exit code {proc.returncode}: {err_text}")

            response = out_file.read_text(encoding="utf-8").strip() if out_file.exists() else ""
            if not response:
                response = stdout.decode("utf-8").strip()
            if not response:
                raise GenerationError("Codex returned empty response")
        except asyncio.TimeoutError as e:
            raise GenerationError(f"Timeout ({self.timeout_seconds:.0f}s)") from e
        except OSError as e:
            raise GenerationError(f"codex CLI unavailable: {e}") from e
        finally:
            out_file.unlink(missing_ok=True)

        _log("Completed")
        self.usage_tracker.record_call()
        warning = self.usage_tracker.get_warning()
        if warning:
            _log(warning)
        return response
