"""Jarvis — conversational task and event assistant with confirmed actions."""

from jarvis.config import CONFIG, DEFAULT_MODEL, MODEL_ALIASES, __version__
from jarvis.domain.pipeline import ActionPipeline, ConversationHistory, create_pipeline

__all__ = [
    "CONFIG",
    "DEFAULT_MODEL",
    "MODEL_ALIASES",
    "__version__",
    "ActionPipeline",
    "ConversationHistory",
    "create_pipeline",
]
