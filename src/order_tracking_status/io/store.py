# src/order_tracking_status/io/store.py
from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

from order_tracking_status.io.schema import COLLECTIONS

logger = logging.getLogger("order_tracking_status.io.store")


class StoreError(RuntimeError):
    """The datastore could not be reached or answered with an error."""


class DocumentStore(Protocol):
    """Read-only document lookups; every document carries its id under "id"."""

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        ...

    def find_one(self, collection: str, field: str, value: Any) -> Optional[dict[str, Any]]:
        ...

    def find(self, collection: str, filters: Optional[dict[str, Any]] = None,
             limit: Optional[int] = None) -> list[dict[str, Any]]:
        ...

    def close(self) -> None:
        ...


def _matches(doc: dict[str, Any], filters: dict[str, Any]) -> bool:
    return all(doc.get(k) == v for k, v in filters.items())


@dataclass
class InMemoryStore:
    """Dict-backed store used for tests, fixtures and offline replays.

    `collections` maps collection name → {doc_id: document}. Documents are
    copied on the way out so callers can never mutate the backing data.
    """

    collections: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)

    @classmethod
    def from_json(cls, path: Path | str) -> "InMemoryStore":
        """
        Load a fixture file shaped as {collection: {id: doc}} or
        {collection: [doc-with-"id", ...]}.
        """
        p = Path(path)
        if not p.is_file():
            raise ValueError(f"Store fixture does not exist: {p}")
        raw = json.loads(p.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"Store fixture must be a JSON object: {p}")

        store = cls()
        for name, docs in raw.items():
            if isinstance(docs, dict):
                for doc_id, doc in docs.items():
                    store.add(name, str(doc_id), doc)
            elif isinstance(docs, list):
                for i, doc in enumerate(docs):
                    doc_id = doc.get("id") if isinstance(doc, dict) else None
                    store.add(name, str(doc_id if doc_id is not None else i), doc)
        unknown = set(store.collections) - set(COLLECTIONS)
        if unknown:
            logger.debug("Fixture has extra collections: %s", sorted(unknown))
        return store

    def add(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None:
        body = dict(doc)
        body.setdefault("id", doc_id)
        self.collections.setdefault(collection, {})[str(doc_id)] = body

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        doc = self.collections.get(collection, {}).get(str(doc_id))
        return copy.deepcopy(doc) if doc is not None else None

    def find_one(self, collection: str, field: str, value: Any) -> Optional[dict[str, Any]]:
        for doc in self.collections.get(collection, {}).values():
            if doc.get(field) == value:
                return copy.deepcopy(doc)
        return None

    def find(self, collection: str, filters: Optional[dict[str, Any]] = None,
             limit: Optional[int] = None) -> list[dict[str, Any]]:
        out = [
            copy.deepcopy(doc)
            for doc in self.collections.get(collection, {}).values()
            if _matches(doc, filters or {})
        ]
        return out[:limit] if limit is not None else out

    def close(self) -> None:
        """Nothing to release."""


class MongoStore:
    """pymongo-backed store; `_id` is exposed as a string "id"."""

    def __init__(self, uri: str, database: str, *, timeout_ms: int = 3000, client: Any = None) -> None:
        if client is None:
            from pymongo import MongoClient

            client = MongoClient(uri, serverSelectionTimeoutMS=timeout_ms)
        self._client = client
        self._db = client[database]

    @staticmethod
    def _expose(doc: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
        if doc is None:
            return None
        out = dict(doc)
        if "_id" in out:
            out.setdefault("id", str(out.pop("_id")))
        return out

    def _call(self, fn, *args, **kwargs):
        from pymongo.errors import PyMongoError

        try:
            return fn(*args, **kwargs)
        except PyMongoError as ex:
            raise StoreError(str(ex)) from ex

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        doc = self._call(self._db[collection].find_one, {"_id": doc_id})
        if doc is None:
            from bson import ObjectId
            from bson.errors import InvalidId

            try:
                oid = ObjectId(str(doc_id))
            except (InvalidId, TypeError):
                return None
            doc = self._call(self._db[collection].find_one, {"_id": oid})
        return self._expose(doc)

    def find_one(self, collection: str, field: str, value: Any) -> Optional[dict[str, Any]]:
        return self._expose(self._call(self._db[collection].find_one, {field: value}))

    def find(self, collection: str, filters: Optional[dict[str, Any]] = None,
             limit: Optional[int] = None) -> list[dict[str, Any]]:
        cursor = self._call(self._db[collection].find, filters or {})
        if limit is not None:
            cursor = cursor.limit(int(limit))
        return [self._expose(d) for d in self._call(list, cursor)]

    def close(self) -> None:
        self._client.close()
