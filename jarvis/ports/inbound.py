"""Inbound port — transport-agnostic chat request representation."""

from dataclasses import dataclass


@dataclass
class IncomingMessage:
    """A user utterance as received from the web/CLI layer."""

    conversation_id: str
    user_id: str
    content: str
