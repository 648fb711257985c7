"""Port interfaces (Hexagonal Architecture)."""

from jarvis.ports.inbound import IncomingMessage
from jarvis.ports.outbound import EntityStorePort, LanguageModelPort, StoreResult, records

__all__ = [
    "IncomingMessage",
    "EntityStorePort",
    "LanguageModelPort",
    "StoreResult",
    "records",
]
