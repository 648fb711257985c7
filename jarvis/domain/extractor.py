"""Intent extraction — utterance to ActionProposals.

Two interchangeable strategies sit behind ``IntentExtractor``:
``ModelExtractionStrategy`` asks the language model for strict JSON, and
``KeywordExtractionStrategy`` is a deterministic phrase matcher for offline
use and tests. The extractor owns failure handling and the single bounded
context round trip.
"""

from __future__ import annotations

import asyncio
import re
import sys
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Protocol

from jarvis.domain.errors import ExtractionParseError, GenerationError
from jarvis.domain.models import ActionProposal, ChatMessage, ConversationTurn
from jarvis.domain.prompts import BASE_INSTRUCTIONS, build_context_prompt, build_extraction_prompt
from jarvis.domain.response_parser import ModelReply, parse_model_reply
from jarvis.ports.outbound import LanguageModelPort


def _log(msg: str):
    print(msg, file=sys.stderr)


CLARIFY_RESPONSE = "I couldn't work out what you'd like me to do. Could you rephrase that?"
APOLOGY_RESPONSE = "Sorry, I can't process requests right now. Please try again in a moment."


class ExtractionStrategy(Protocol):
    name: str

    async def analyze(
        self,
        utterance: str,
        recent_context: List[ChatMessage],
        gathered_context: Optional[Dict[str, Any]] = None,
        prior_reply: Optional[ModelReply] = None,
    ) -> ModelReply: ...


class ContextSource(Protocol):
    async def gather_context(self, proposals: List[ActionProposal], user_id: str) -> Dict[str, Any]: ...


class ModelExtractionStrategy:
    """Language-model backed extraction."""

    name = "model"

    def __init__(
        self,
        llm: LanguageModelPort,
        temperature: float = 0.2,
        max_tokens: int = 2048,
        timeout_seconds: float = 60.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._llm = llm
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    async def analyze(
        self,
        utterance: str,
        recent_context: List[ChatMessage],
        gathered_context: Optional[Dict[str, Any]] = None,
        prior_reply: Optional[ModelReply] = None,
    ) -> ModelReply:
        if gathered_context is None:
            prompt = build_extraction_prompt(utterance, recent_context, today=self._clock())
        else:
            first = prior_reply.model_dump(by_alias=True) if prior_reply else {}
            prompt = build_context_prompt(utterance, first, gathered_context, today=self._clock())
        raw = await self._generate(prompt)
        return parse_model_reply(raw)

    async def _generate(self, prompt: str) -> str:
        timeout = self.timeout_seconds
        try:
            return await asyncio.wait_for(
                self._llm.generate(
                    prompt,
                    system_prompt=BASE_INSTRUCTIONS,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise GenerationError(f"Timeout ({timeout:.0f}s)") from e
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(str(e) or e.__class__.__name__) from e


# ── Keyword fallback ──────────────────────────────────────

_DELETE_RE = re.compile(
    r"\b(?:delete|remove|cancel|get\s+rid\s+of|throw\s+away)\b"
    r"(?P<mods>(?:\s+(?!(?:tasks?|todos?|events?|meetings?|appointments?)\b)[\w'-]+){0,4}?)"
    r"\s+(?P<kind>tasks?|todos?|events?|meetings?|appointments?)\b",
    re.I,
)
_COMPLETE_RE = re.compile(
    r"\b(?:complete|finish|done\s+with|mark)\b(?:\s+(?:the|my))*\s+(?:task|todo)\b"
    r"|\btask\s+is\s+(?:done|complete|finished)\b",
    re.I,
)
_CREATE_RE = re.compile(
    r"\b(?:create|add|make|new)\s+(?:a\s+)?(?:task|todo)\b"
    r"|\b(?:i\s+need\s+to|i\s+have\s+to|i\s+should|remind\s+me\s+to|don't\s+forget\s+to)\b",
    re.I,
)
_CREATE_EVENT_RE = re.compile(
    r"\b(?:schedule|book|create|add|set\s+up)\s+(?:a\s+|an\s+)?(?:event|meeting|appointment|call)\b",
    re.I,
)
_LIST_TASKS_RE = re.compile(
    r"\b(?:show|list|get|see)\s+(?:me\s+)?(?:all\s+)?(?:my\s+)?(?:tasks|todos|task\s+list)\b"
    r"|\bwhat\s+(?:tasks|todos)\s+(?:do\s+i\s+have|are)\b"
    r"|\bwhat(?:'s|\s+is)\s+(?:due|on\s+my\s+(?:task|todo)\s+list)\b"
    r"|\b(?:deadlines|due\s+dates)\b",
    re.I,
)
_LIST_EVENTS_RE = re.compile(
    r"\b(?:show|list|get|see)\s+(?:me\s+)?(?:my\s+)?(?:calendar|events|schedule|meetings)\b"
    r"|\bwhat(?:'s|\s+is)\s+on\s+my\s+(?:calendar|schedule)\b"
    r"|\bwhat\s+(?:events|meetings)\b",
    re.I,
)

_PRIORITY_PATTERNS = [
    ("urgent", re.compile(r"\b(?:urgent|asap|immediately|right\s+away)\b", re.I)),
    ("high", re.compile(r"\b(?:high\s+priority|important|critical)\b", re.I)),
    ("medium", re.compile(r"\b(?:medium\s+priority|normal)\b", re.I)),
    ("low", re.compile(r"\b(?:low\s+priority|whenever|not\s+urgent)\b", re.I)),
]
_TAG_RE = re.compile(r"\btagged\s+(?:with\s+)?[\"']?([\w-]+)", re.I)
_QUOTED_RE = re.compile(r"[\"\u201c]([^\"\u201d]+)[\"\u201d]")
_NAMED_RE = re.compile(r"\b(?:called|named|titled)\s+(.+)$", re.I)
_DONE_SUFFIX_RE = re.compile(r"\s+as\s+(?:done|completed?|finished)\s*[.!]?$", re.I)
_LEADING_FILLER_RE = re.compile(r"^(?:(?:for|about|on|all|every|the|my|of)(?:\s+|$))+", re.I)

_CREATE_STRIP_RE = re.compile(
    r"(?:create|add|make|new|i\s+need\s+to|i\s+have\s+to|i\s+should|remind\s+me\s+to|don't\s+forget\s+to)"
    r"\s+(?:a\s+)?(?:task\s+|todo\s+)?(?:called\s+|named\s+|to\s+)?",
    re.I,
)
_NOISE_RE = re.compile(
    r"\b(?:urgent|asap|immediately|right\s+away|high\s+priority|important|critical|medium\s+priority"
    r"|low\s+priority|whenever|not\s+urgent|(?:by\s+|due\s+)?(?:today|tomorrow)"
    r"|(?:by\s+)?(?:this|next)\s+week)\b",
    re.I,
)


class KeywordExtractionStrategy:
    """Deterministic phrase matcher producing the same reply shape as the model."""

    name = "keyword"

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock

    async def analyze(
        self,
        utterance: str,
        recent_context: List[ChatMessage],
        gathered_context: Optional[Dict[str, Any]] = None,
        prior_reply: Optional[ModelReply] = None,
    ) -> ModelReply:
        return ModelReply.model_validate(self._classify(utterance.strip()))

    def _classify(self, text: str) -> Dict[str, Any]:
        delete = _DELETE_RE.search(text)
        if delete:
            kind = delete.group("kind").lower()
            is_task = kind.startswith(("task", "todo"))
            search = self._criteria(text, is_task=is_task, after=delete.group("mods") + text[delete.end():])
            if not search:
                return self._reply("Which items should I delete? Please name them.", [], "general", 0.4)
            action_type = "DELETE_TASK" if is_task else "DELETE_EVENT"
            return self._reply(
                "Here is what I found to delete. Please confirm each item.",
                [{"type": action_type, "params": {"searchParams": search}}],
                "task_management" if is_task else "event_scheduling",
            )

        if _COMPLETE_RE.search(text):
            after = _DONE_SUFFIX_RE.sub("", _COMPLETE_RE.split(text, maxsplit=1)[-1])
            search = self._criteria(_DONE_SUFFIX_RE.sub("", text), is_task=True, after=after)
            if not search.get("title"):
                return self._reply("Which task would you like to mark as complete?", [], "task_management", 0.4)
            return self._reply(
                "I'll mark that task as completed once you confirm.",
                [{"type": "UPDATE_TASK", "params": {"searchParams": {"title": search["title"]},
                                                     "updates": {"status": "completed"}}}],
                "task_management",
            )

        if _LIST_EVENTS_RE.search(text):
            search = self._date_filters(text, prefix="start")
            return self._reply("Here are your events.", [{"type": "READ_EVENTS", "params": {"searchParams": search}}],
                               "event_scheduling")

        if _LIST_TASKS_RE.search(text):
            search = self._date_filters(text, prefix="due")
            priority = self._priority(text)
            if priority:
                search["priority"] = priority
            return self._reply("Here are your tasks.", [{"type": "READ_TASKS", "params": {"searchParams": search}}],
                               "task_management")

        if _CREATE_EVENT_RE.search(text):
            return self._reply("When should the event take place?", [], "event_scheduling", 0.4)

        if _CREATE_RE.search(text):
            title = self._create_title(text)
            if not title:
                return self._reply("What task would you like me to create?", [], "task_management", 0.4)
            params: Dict[str, Any] = {"title": title}
            priority = self._priority(text)
            if priority:
                params["priority"] = priority
            due = self._date_filters(text, prefix="due").get("dueDate")
            if due:
                params["dueDate"] = due
            return self._reply(f'Create the task "{title}"?', [{"type": "CREATE_TASK", "params": params}],
                               "task_management")

        return self._reply(
            "I can create, update, delete or list your tasks and events. What would you like to do?",
            [], "general", 0.2,
        )

    @staticmethod
    def _reply(response: str, actions: List[Dict[str, Any]], intent: str, confidence: float = 0.8) -> Dict[str, Any]:
        return {
            "response": response,
            "actions": actions,
            "needsContext": False,
            "metadata": {"intent": intent, "confidence": confidence},
        }

    @staticmethod
    def _priority(text: str) -> Optional[str]:
        for priority, pattern in _PRIORITY_PATTERNS:
            if pattern.search(text):
                return priority
        return None

    def _date_filters(self, text: str, prefix: str) -> Dict[str, str]:
        today = self._clock().date()
        lower = text.lower()
        if "tomorrow" in lower:
            return {f"{prefix}Date": (today + timedelta(days=1)).isoformat()}
        if "today" in lower:
            return {f"{prefix}Date": today.isoformat()}
        if "next week" in lower:
            start = today + timedelta(days=7 - today.weekday())
            return {f"{prefix}After": start.isoformat(), f"{prefix}Before": (start + timedelta(days=6)).isoformat()}
        if "this week" in lower:
            end = today + timedelta(days=6 - today.weekday())
            return {f"{prefix}After": today.isoformat(), f"{prefix}Before": end.isoformat()}
        return {}

    def _criteria(self, text: str, is_task: bool, after: str) -> Dict[str, Any]:
        search: Dict[str, Any] = {}
        tag = _TAG_RE.search(text)
        if tag:
            search["tags"] = [tag.group(1).lower()]
        elif is_task:
            priority = self._priority(text)
            if priority:
                search["priority"] = priority
        search.update(self._date_filters(text, prefix="due" if is_task else "start"))

        quoted = _QUOTED_RE.search(text)
        named = _NAMED_RE.search(text)
        if quoted:
            search["title"] = quoted.group(1).strip()
        elif named:
            search["title"] = named.group(1).strip(" .!?")
        elif not search:
            remainder = _NOISE_RE.sub("", after).strip(" .!?")
            remainder = _LEADING_FILLER_RE.sub("", remainder).strip()
            if remainder:
                search["title"] = remainder
        return search

    @staticmethod
    def _create_title(text: str) -> str:
        title = _CREATE_STRIP_RE.sub("", text, count=1)
        title = _NOISE_RE.sub("", title)
        return re.sub(r"\s{2,}", " ", title).strip(" .,!?")


# ── Extractor ──────────────────────────────────────


class IntentExtractor:
    """Runs a strategy and turns its reply into an unresolved ConversationTurn.

    At most ``max_context_reprompts`` follow-up calls are made when the
    reply asks for database context.
    """

    def __init__(
        self,
        strategy: ExtractionStrategy,
        context_source: Optional[ContextSource] = None,
        max_context_reprompts: int = 1,
    ):
        self._strategy = strategy
        self._context_source = context_source
        self._max_context_reprompts = max_context_reprompts

    async def extract(
        self,
        utterance: str,
        recent_context: List[ChatMessage],
        user_id: str,
    ) -> ConversationTurn:
        if not utterance or not utterance.strip():
            return self._fallback_turn(CLARIFY_RESPONSE, user_id, "empty")

        try:
            reply = await self._strategy.analyze(utterance, recent_context)
        except ExtractionParseError as e:
            _log(f"[extractor] unparseable model output: {e} raw={e.raw[:200]!r}")
            return self._fallback_turn(CLARIFY_RESPONSE, user_id, "parse")
        except GenerationError as e:
            _log(f"[extractor] generation failed: {e}")
            return self._fallback_turn(APOLOGY_RESPONSE, user_id, "generation")

        proposals = reply.proposals()
        context_rounds = 0
        if (
            reply.needs_context
            and proposals
            and self._context_source is not None
            and self._max_context_reprompts > 0
        ):
            # One follow-up at most; its own needsContext is ignored
            context_rounds = 1
            refined = await self._refine(utterance, recent_context, reply, proposals, user_id)
            if refined is not None:
                reply = refined
                proposals = reply.proposals()

        return ConversationTurn(
            response=reply.response or "Done.",
            proposals=proposals,
            user_id=user_id,
            metadata={
                "intent": reply.metadata.intent,
                "confidence": reply.metadata.confidence,
                "strategy": self._strategy.name,
                "context_rounds": context_rounds,
            },
        )

    async def _refine(
        self,
        utterance: str,
        recent_context: List[ChatMessage],
        reply: ModelReply,
        proposals: List[ActionProposal],
        user_id: str,
    ) -> Optional[ModelReply]:
        gathered = await self._context_source.gather_context(proposals, user_id)
        try:
            return await self._strategy.analyze(
                utterance, recent_context, gathered_context=gathered, prior_reply=reply,
            )
        except (ExtractionParseError, GenerationError) as e:
            _log(f"[extractor] context follow-up failed, keeping first reply: {e}")
            return None

    def _fallback_turn(self, response: str, user_id: str, error: str) -> ConversationTurn:
        return ConversationTurn(
            response=response,
            user_id=user_id,
            metadata={"intent": "general", "confidence": 0.0, "strategy": self._strategy.name, "error": error},
        )
