"""Entity store adapters."""

from typing import Optional

from jarvis.adapters.storage.json_store import JsonEntityStore
from jarvis.adapters.storage.memory_store import InMemoryEntityStore
from jarvis.adapters.storage.pocketbase_store import PocketBaseEntityStore
from jarvis.config import StoreConfig
from jarvis.ports.outbound import EntityStorePort


def create_store(config: Optional[StoreConfig] = None) -> EntityStorePort:
    """Create the store for the configured backend."""
    config = config or StoreConfig()
    backend = config.backend.strip().lower()
    if backend == "memory":
        return InMemoryEntityStore()
    if backend == "json":
        return JsonEntityStore(config.storage_dir)
    if backend == "pocketbase":
        return PocketBaseEntityStore(config.pocketbase_url, config.pocketbase_token)
    raise ValueError(f"Unsupported store backend: {backend}")


__all__ = [
    "InMemoryEntityStore",
    "JsonEntityStore",
    "PocketBaseEntityStore",
    "create_store",
]
