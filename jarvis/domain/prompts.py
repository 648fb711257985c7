"""Prompt text for intent extraction."""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from jarvis.domain.models import ChatMessage

BASE_INSTRUCTIONS = """SYSTEM INSTRUCTIONS - Follow these at all times:
- Be concise, to the point, and unemotional
- Do not praise or thank the user
- ALWAYS respond with a single valid JSON object and nothing else

CAPABILITIES:
- Task management: create, update, delete and query tasks
- Event scheduling: create, update, delete and query calendar events
- General assistance: answer questions directly when no action is needed

ANALYSIS PROCESS:
1. Identify the user's intent
2. Extract actionable items (tasks or events to create/update/delete, queries to run)
3. Decide whether facts from the user's database are needed before answering
4. Provide the response

Response Format:
{
  "response": "your reply to the user. If actions are proposed, ask for confirmation.",
  "actions": [
    {
      "type": "CREATE_TASK" | "UPDATE_TASK" | "DELETE_TASK" | "READ_TASKS" |
              "CREATE_EVENT" | "UPDATE_EVENT" | "DELETE_EVENT" | "READ_EVENTS",
      "params": {
        "id": "record id, only when the exact record is known",

        "title": "string",
        "description": "string",
        "priority": "low|medium|high|urgent",
        "dueDate": "YYYY-MM-DD",
        "tags": ["tag1", "tag2"],

        "startDate": "YYYY-MM-DD HH:mm",
        "endDate": "YYYY-MM-DD HH:mm",
        "location": "string",

        "searchParams": {
          "title": "partial match",
          "status": "pending|in_progress|completed|cancelled",
          "priority": "low|medium|high|urgent",
          "tags": ["tag"],
          "dueDate": "YYYY-MM-DD",
          "dueBefore": "YYYY-MM-DD",
          "dueAfter": "YYYY-MM-DD",
          "startAfter": "YYYY-MM-DD",
          "startBefore": "YYYY-MM-DD"
        },

        "updates": {"field": "new value"}
      }
    }
  ],
  "needsContext": false,
  "contextQuery": "what database facts are needed, if any",
  "metadata": {
    "intent": "task_management|event_scheduling|question|general",
    "confidence": 0.9
  }
}

RULES:
- Use searchParams instead of guessing ids when the user refers to records by description
- For UPDATE actions put only the changed fields in "updates"
- Set "needsContext": true only when you cannot answer without the user's records"""

CONTEXT_REFINEMENTS = """IMPORTANT REFINEMENTS:
1. For DELETE operations: create one action per item found, each with its "id"
2. For READ operations: keep them as READ actions, they run without confirmation
3. For UPDATE operations: one action per item, with its "id" and the new values in "updates"
4. Do not set "needsContext" again

Use the same JSON format as before."""


def format_history(messages: List[ChatMessage]) -> str:
    lines = [f"{m.role}: {m.content}" for m in messages if m.content]
    return "\n".join(lines)


def build_extraction_prompt(
    utterance: str,
    recent_context: List[ChatMessage],
    today: Optional[datetime] = None,
) -> str:
    now = today or datetime.now()
    parts = [f"Current date: {now.strftime('%Y-%m-%d %H:%M')} ({now.strftime('%A')})"]
    history = format_history(recent_context)
    if history:
        parts.append("Previous conversation:\n" + history)
    parts.append(f'User message: "{utterance}"')
    return "\n\n".join(parts)


def build_context_prompt(
    utterance: str,
    first_reply: Dict[str, Any],
    gathered: Dict[str, Any],
    today: Optional[datetime] = None,
) -> str:
    now = today or datetime.now()
    return "\n\n".join([
        f"Current date: {now.strftime('%Y-%m-%d %H:%M')} ({now.strftime('%A')})",
        f'Original user message: "{utterance}"',
        "Initial analysis:\n" + json.dumps(first_reply, indent=2, ensure_ascii=False, default=str),
        "Context gathered from database:\n" + json.dumps(gathered, indent=2, ensure_ascii=False, default=str),
        "Based on this context, provide your final response and any refined actions.",
        CONTEXT_REFINEMENTS,
    ])
