"""JSON file-backed entity store — implements EntityStorePort."""

import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List

from jarvis.adapters.storage.memory_store import InMemoryEntityStore
from jarvis.domain.models import EntityType

_FILE_NAMES = {EntityType.TASK: "tasks.json", EntityType.EVENT: "events.json"}


class JsonEntityStore(InMemoryEntityStore):
    """One JSON array per entity type under ``storage_dir``, rewritten atomically on change."""

    def __init__(self, storage_dir: str = "memory"):
        super().__init__()
        self._storage_dir = Path(storage_dir)
        self._storage_dir.mkdir(parents=True, exist_ok=True)
        for entity_type in EntityType:
            for record in self._load(entity_type):
                if record.get("id"):
                    self._records[entity_type][str(record["id"])] = record

    def _path(self, entity_type: EntityType) -> Path:
        return self._storage_dir / _FILE_NAMES[entity_type]

    def _load(self, entity_type: EntityType) -> List[Dict[str, Any]]:
        path = self._path(entity_type)
        if not path.exists():
            return []
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            print(f"Ignoring unreadable store file {path}: {e}", file=sys.stderr)
            return []
        return [r for r in raw if isinstance(r, dict)] if isinstance(raw, list) else []

    def _changed(self, entity_type: EntityType) -> None:
        path = self._path(entity_type)
        content = json.dumps(list(self._records[entity_type].values()), ensure_ascii=False, indent=2)
        # Atomic write
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_path, str(path))
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
