"""PocketBase REST entity store using aiohttp — implements EntityStorePort.

Records are fetched with a ``user_id`` filter and narrowed client-side by
``SearchCriteria.matches`` so the predicate is identical across stores.
"""

import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp

from jarvis.adapters.storage.validation import apply_updates, build_record, validate
from jarvis.domain.models import EntityType
from jarvis.domain.search import SearchCriteria
from jarvis.ports.outbound import StoreResult

COLLECTIONS = {EntityType.TASK: "tasks", EntityType.EVENT: "events"}
SORT_ORDER = {EntityType.TASK: "-created", EntityType.EVENT: "-start_date"}

# Assigned by PocketBase itself
_SERVER_FIELDS = ("id", "created_at", "updated_at", "created", "updated", "collectionId", "collectionName")

_PAGE_SIZE = 200


def _log(msg: str):
    print(f"[{datetime.now().isoformat()}] {msg}", file=sys.stderr)


class PocketBaseError(RuntimeError):
    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class PocketBaseEntityStore:
    def __init__(self, base_url: str = "http://127.0.0.1:8090", token: str = "", timeout_seconds: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds

    def _url(self, entity_type: EntityType, entity_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/api/collections/{COLLECTIONS[entity_type]}/records"
        return f"{url}/{entity_id}" if entity_id else url

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": self.token} if self.token else {}

    @staticmethod
    def _from_server(record: Dict[str, Any]) -> Dict[str, Any]:
        out = {k: v for k, v in record.items() if k not in ("collectionId", "collectionName", "expand")}
        if "created" in out:
            out["created_at"] = out.pop("created")
        if "updated" in out:
            out["updated_at"] = out.pop("updated")
        return out

    @staticmethod
    def _to_server(record: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in record.items() if k not in _SERVER_FIELDS}

    @staticmethod
    def _quote(value: str) -> str:
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout, headers=self._headers()) as session:
            async with session.request(method, url, params=params, json=body) as resp:
                if resp.status == 204:
                    return None
                data = await resp.json(content_type=None)
                if resp.status >= 400:
                    message = data.get("message") if isinstance(data, dict) else None
                    raise PocketBaseError(f"PocketBase HTTP {resp.status}: {message or data}", resp.status)
                return data

    async def _fetch_owned(self, user_id: str, entity_type: EntityType, entity_id: str) -> Optional[Dict[str, Any]]:
        try:
            data = await self._request("GET", self._url(entity_type, entity_id))
        except PocketBaseError as e:
            if e.status == 404:
                return None
            raise
        if not isinstance(data, dict) or data.get("user_id") != user_id:
            return None
        return self._from_server(data)

    async def _list(self, user_id: str, entity_type: EntityType) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            data = await self._request(
                "GET",
                self._url(entity_type),
                params={
                    "filter": f"user_id = {self._quote(user_id)}",
                    "sort": SORT_ORDER[entity_type],
                    "page": page,
                    "perPage": _PAGE_SIZE,
                },
            )
            items.extend(self._from_server(r) for r in (data or {}).get("items", []) if isinstance(r, dict))
            if page >= int((data or {}).get("totalPages") or 1):
                return items
            page += 1

    async def create(self, user_id: str, entity_type: EntityType, fields: Dict[str, Any]) -> StoreResult:
        record = build_record(entity_type, user_id, fields)
        errors = validate(entity_type, record)
        if errors:
            return StoreResult.fail("; ".join(errors))
        body = self._to_server(record)
        try:
            data = await self._request("POST", self._url(entity_type), body=body)
        except Exception as e:
            _log(f"[pocketbase] create {entity_type.label} failed: {e}")
            return StoreResult.fail(str(e))
        return StoreResult.ok(self._from_server(data))

    async def get(self, user_id: str, entity_type: EntityType, entity_id: str) -> StoreResult:
        try:
            record = await self._fetch_owned(user_id, entity_type, entity_id)
        except Exception as e:
            return StoreResult.fail(str(e))
        if record is None:
            return StoreResult.fail(f"{entity_type.label} {entity_id} not found")
        return StoreResult.ok(record)

    async def search(
        self,
        user_id: str,
        entity_type: EntityType,
        criteria: SearchCriteria,
        limit: Optional[int] = None,
    ) -> StoreResult:
        try:
            records = await self._list(user_id, entity_type)
        except Exception as e:
            _log(f"[pocketbase] search {entity_type.label}s failed: {e}")
            return StoreResult.fail(str(e))
        found = [r for r in records if criteria.matches(entity_type, r)]
        return StoreResult.ok(found[:limit] if limit is not None else found)

    async def update(
        self, user_id: str, entity_type: EntityType, entity_id: str, fields: Dict[str, Any]
    ) -> StoreResult:
        try:
            record = await self._fetch_owned(user_id, entity_type, entity_id)
            if record is None:
                return StoreResult.fail(f"{entity_type.label} {entity_id} not found")
            merged = apply_updates(entity_type, record, fields)
            errors = validate(entity_type, merged)
            if errors:
                return StoreResult.fail("; ".join(errors))
            changed = {k: v for k, v in self._to_server(merged).items() if record.get(k) != v}
            data = await self._request("PATCH", self._url(entity_type, entity_id), body=changed)
        except Exception as e:
            _log(f"[pocketbase] update {entity_type.label} {entity_id} failed: {e}")
            return StoreResult.fail(str(e))
        return StoreResult.ok(self._from_server(data))

    async def delete(self, user_id: str, entity_type: EntityType, entity_id: str) -> StoreResult:
        try:
            if await self._fetch_owned(user_id, entity_type, entity_id) is None:
                return StoreResult.fail(f"{entity_type.label} {entity_id} not found")
            await self._request("DELETE", self._url(entity_type, entity_id))
        except Exception as e:
            _log(f"[pocketbase] delete {entity_type.label} {entity_id} failed: {e}")
            return StoreResult.fail(str(e))
        return StoreResult.ok({"id": entity_id})
