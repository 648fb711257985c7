"""Tests for the Gemini, Claude and Codex gateways."""

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from jarvis.adapters.llm import ClaudeGateway, CodexGateway, GeminiGateway, create_gateway, run_cancellable
from jarvis.config import GenerationConfig, UsageLimitsConfig
from jarvis.domain.errors import GenerationError
from jarvis.infrastructure.usage import UsageTracker


def run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class _FakeProc:
    def __init__(self, returncode=0, stdout=b"", stderr=b"", hang=False):
        self.returncode = returncode
        self._stdout = stdout
        self._stderr = stderr
        self._hang = hang
        self.killed = False
        if hang:
            self.returncode = None

    async def communicate(self):
        if self._hang:
            await asyncio.sleep(10)
        return self._stdout, self._stderr

    def kill(self):
        self.killed = True
        self.returncode = -9

    async def wait(self):
        return self.returncode


def _mock_gemini_session(status, data, captured):
    class FakeResponse:
        def __init__(self):
            self.status = status

        async def json(self, content_type=None):
            return data

        async def __aenter__(self):
            return self

        async def __aexit__(self, *args):
            pass

    class FakeSession:
        def __init__(self, timeout=None):
            pass

        def post(self, url, params=None, json=None):
            captured["url"] = url
            captured["params"] = params
            captured["json"] = json
            return FakeResponse()

        async def __aenter__(self):
            return self

        async def __aexit__(self, *args):
            pass

    return FakeSession


def _candidate(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}]}


class TestGeminiGateway:
    def test_generate_sends_payload(self):
        captured = {}
        gateway = GeminiGateway("key-1", model="gemini-test")
        session = _mock_gemini_session(200, _candidate('{"response": "hi"}'), captured)

        with patch("jarvis.adapters.llm.gemini_adapter.aiohttp.ClientSession", session):
            text = run(gateway.generate("hello", system_prompt="be brief", temperature=0.1, max_tokens=64))

        assert text == '{"response": "hi"}'
        assert captured["url"].endswith("/models/gemini-test:generateContent")
        assert captured["params"] == {"key": "key-1"}
        body = captured["json"]
        assert body["contents"][0]["parts"][0]["text"] == "hello"
        assert body["systemInstruction"]["parts"][0]["text"] == "be brief"
        assert body["generationConfig"]["temperature"] == 0.1
        assert body["generationConfig"]["maxOutputTokens"] == 64
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        assert gateway.usage_tracker.get_status()["calls_today"] == 1

    def test_http_error(self):
        session = _mock_gemini_session(429, {"error": {"message": "Resource exhausted"}}, {})
        gateway = GeminiGateway("key-1")
        with patch("jarvis.adapters.llm.gemini_adapter.aiohttp.ClientSession", session):
            with pytest.raises(GenerationError, match="Resource exhausted"):
                run(gateway.generate("hello"))
        assert gateway.usage_tracker.get_status()["calls_today"] == 0

    def test_blocked_prompt(self):
        session = _mock_gemini_session(200, {"promptFeedback": {"blockReason": "SAFETY"}}, {})
        with patch("jarvis.adapters.llm.gemini_adapter.aiohttp.ClientSession", session):
            with pytest.raises(GenerationError, match="SAFETY"):
                run(GeminiGateway("key-1").generate("hello"))

    def test_unconfigured(self):
        gateway = GeminiGateway("")
        assert gateway.is_configured is False
        with pytest.raises(GenerationError, match="not configured"):
            run(gateway.generate("hello"))

    def test_usage_limit_becomes_generation_error(self):
        tracker = UsageTracker(UsageLimitsConfig(paused=True))
        with pytest.raises(GenerationError, match="paused"):
            run(GeminiGateway("key-1", usage_tracker=tracker).generate("hello"))


class TestClaudeGateway:
    def test_passes_model_and_system_prompt(self, monkeypatch):
        captured = {}

        async def fake_create_subprocess_exec(*args, **kwargs):
            captured["args"] = args
            return _FakeProc(stdout=b"  answer \n")

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_create_subprocess_exec)

        response = run(ClaudeGateway(model="claude-test").generate("hello", system_prompt="rules"))

        args = captured["args"]
        assert args[0:2] == ("claude", "--print")
        assert args[args.index("--model") + 1] == "claude-test"
        assert args[args.index("--system-prompt") + 1] == "rules"
        assert args[-1] == "hello"
        assert response == "answer"

    def test_nonzero_exit(self, monkeypatch):
        async def fake_create_subprocess_exec(*args, **kwargs):
            return _FakeProc(returncode=1, stderr=b"not logged in")

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_create_subprocess_exec)

        with pytest.raises(GenerationError, match="not logged in"):
            run(ClaudeGateway().generate("hello"))

    def test_missing_binary(self, monkeypatch):
        async def fake_create_subprocess_exec(*args, **kwargs):
            raise FileNotFoundError("claude")

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_create_subprocess_exec)

        with pytest.raises(GenerationError, match="unavailable"):
            run(ClaudeGateway().generate("hello"))

    def test_timeout_kills_child(self, monkeypatch):
        proc = _FakeProc(hang=True)

        async def fake_create_subprocess_exec(*args, **kwargs):
            return proc

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_create_subprocess_exec)

        with pytest.raises(GenerationError, match="Timeout"):
            run(ClaudeGateway(timeout_seconds=0.05).generate("hello"))
        assert proc.killed is True


class TestCodexGateway:
    def test_uses_codex_exec_and_reads_output(self, monkeypatch):
        captured = {}

        async def fake_create_subprocess_exec(*args, **kwargs):
            captured["args"] = args
            output_path = args[args.index("--output-last-message") + 1]
            captured["path"] = output_path
            Path(output_path).write_text("codex-result", encoding="utf-8")
            return _FakeProc()

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_create_subprocess_exec)

        response = run(CodexGateway(model="gpt-test").generate("hello", system_prompt="system-guidance"))

        args = captured["args"]
        assert args[0:2] == ("codex", "exec")
        assert "gpt-test" in args
        assert "System instructions:" in args[-1]
        assert "User message:" in args[-1]
        assert response == "codex-result"
        assert not Path(captured["path"]).exists()

    def test_empty_response(self, monkeypatch):
        async def fake_create_subprocess_exec(*args, **kwargs):
            return _FakeProc()

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_create_subprocess_exec)

        with pytest.raises(GenerationError, match="empty"):
            run(CodexGateway().generate("hello"))


class TestRunner:
    def test_returns_output(self, monkeypatch):
        async def fake_create_subprocess_exec(*args, **kwargs):
            return _FakeProc(stdout=b"out", stderr=b"err")

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_create_subprocess_exec)

        proc, stdout, stderr = run(run_cancellable(["echo"], timeout=1))
        assert (proc.returncode, stdout, stderr) == (0, b"out", b"err")


class TestCreateGateway:
    def test_rejects_unknown_provider(self):
        with pytest.raises(ValueError):
            create_gateway(GenerationConfig(provider="unknown-provider"))

    def test_providers(self):
        assert isinstance(create_gateway(GenerationConfig(provider="gemini", gemini_api_key="k")), GeminiGateway)
        assert isinstance(create_gateway(GenerationConfig(provider="claude")), ClaudeGateway)
        assert isinstance(create_gateway(GenerationConfig(provider="codex")), CodexGateway)

    def test_limits_reach_tracker(self):
        gateway = create_gateway(GenerationConfig(provider="claude"), UsageLimitsConfig(max_calls_per_day=7))
        assert gateway.usage_tracker.limits.max_calls_per_day == 7
