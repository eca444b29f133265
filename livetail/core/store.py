"""
Event storage - the only shared resource of the tail protocol.

The tail service needs just three read queries from a store: newest key,
items with key strictly greater than X ascending limited to N, and (for
diagnostics) count/oldest. Appends are done by an external ingestion
process; `append` exists here for seeding and tests.
"""

import json
import struct
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from .codec import FixedKey, GenericKey, RecordKey, compare_keys, encode_cursor, key_after
from .db import check_collection_name, get_db, health_check, init_db
from .errors import InvalidCursor
from .schema import Event


class IEventStore(ABC):
    """Abstract interface for append-only, key-ordered event collections."""

    @abstractmethod
    def newest_key(self, collection: str) -> Optional[RecordKey]:
        """Return the greatest key in the collection, or None when empty."""
        pass

    @abstractmethod
    def oldest_key(self, collection: str) -> Optional[RecordKey]:
        """Return the smallest key in the collection, or None when empty."""
        pass

    @abstractmethod
    def count(self, collection: str) -> int:
        """Return the number of records in the collection."""
        pass

    @abstractmethod
    def items_after(self, collection: str, after: RecordKey, limit: int) -> List[Event]:
        """Return up to `limit` records with key > after, ascending by key."""
        pass

    @abstractmethod
    def append(self, collection: str, category: str, fields: Mapping[str, Any]) -> Event:
        """Append a record and return it with its newly assigned key."""
        pass

    def healthy(self) -> bool:
        """Check that the backing storage is reachable."""
        return True


class SQLiteEventStore(IEventStore):
    """SQLite backed store using FixedKey ids (timestamp + sequence)."""

    def __init__(self, collections, db_path: Optional[str] = None):
        self.db_path = db_path
        self.collections = tuple(check_collection_name(c) for c in collections)
        init_db(self.collections, db_path)

    def _table(self, collection: str) -> str:
        if collection not in self.collections:
            raise KeyError(f"Unknown collection: {collection}")
        return collection

    def healthy(self) -> bool:
        return health_check(self.collections, self.db_path)

    def _extreme_key(self, collection: str, order: str) -> Optional[RecordKey]:
        table = self._table(collection)
        with get_db(self.db_path) as conn:
            row = conn.execute(f"SELECT id FROM {table} ORDER BY id {order} LIMIT 1").fetchone()
        return FixedKey(bytes(row[0])) if row else None

    def newest_key(self, collection: str) -> Optional[RecordKey]:
        return self._extreme_key(collection, "DESC")

    def oldest_key(self, collection: str) -> Optional[RecordKey]:
        return self._extreme_key(collection, "ASC")

    def count(self, collection: str) -> int:
        table = self._table(collection)
        with get_db(self.db_path) as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def items_after(self, collection: str, after: RecordKey, limit: int) -> List[Event]:
        table = self._table(collection)
        if not isinstance(after, FixedKey):
            raise InvalidCursor(encode_cursor(after), "collection uses fixed-width ids")

        with get_db(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT id, category, fields FROM {table} WHERE id > ? ORDER BY id ASC LIMIT ?",
                (after.raw, limit)
            ).fetchall()

        return [
            Event(key=FixedKey(bytes(raw_id)), category=category, fields=json.loads(fields))
            for raw_id, category, fields in rows
        ]

    def append(self, collection: str, category: str, fields: Mapping[str, Any]) -> Event:
        table = self._table(collection)
        payload = json.dumps(dict(fields))

        with get_db(self.db_path) as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(f"SELECT id FROM {table} ORDER BY id DESC LIMIT 1").fetchone()

            # Keys never decrease, even if the wall clock steps backwards
            ts, seq = int(time.time()), 0
            if row:
                newest_ts, newest_seq = struct.unpack(">IQ", bytes(row[0]))
                if ts <= newest_ts:
                    ts, seq = newest_ts, newest_seq + 1

            key = FixedKey.generate(ts, seq)
            conn.execute(
                f"INSERT INTO {table} (id, category, fields) VALUES (?, ?, ?)",
                (key.raw, category, payload)
            )
            conn.commit()

        return Event(key=key, category=category, fields=fields)


class InMemoryEventStore(IEventStore):
    """In-memory store; accepts either key shape, defaults to integer GenericKeys."""

    def __init__(self):
        self._collections: Dict[str, List[Event]] = {}
        self._lock = threading.Lock()

    def _items(self, collection: str) -> List[Event]:
        return self._collections.setdefault(collection, [])

    @staticmethod
    def _next_key(newest: Optional[RecordKey]) -> RecordKey:
        if newest is None:
            return GenericKey.of(1)
        if isinstance(newest, FixedKey):
            return FixedKey((int.from_bytes(newest.raw, "big") + 1).to_bytes(12, "big"))
        if isinstance(newest.value, int):
            return GenericKey.of(newest.value + 1)
        raise ValueError("Cannot derive the next key for non-integer generic keys; pass key=")

    def newest_key(self, collection: str) -> Optional[RecordKey]:
        with self._lock:
            items = self._items(collection)
            return items[-1].key if items else None

    def oldest_key(self, collection: str) -> Optional[RecordKey]:
        with self._lock:
            items = self._items(collection)
            return items[0].key if items else None

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._items(collection))

    def items_after(self, collection: str, after: RecordKey, limit: int) -> List[Event]:
        with self._lock:
            result = []
            for event in self._items(collection):
                if compare_keys(event.key, after) > 0:
                    result.append(event)
                    if len(result) >= limit:
                        break
            return result

    def append(self, collection: str, category: str, fields: Mapping[str, Any],
               key: Optional[RecordKey] = None) -> Event:
        with self._lock:
            items = self._items(collection)
            newest = items[-1].key if items else None

            if key is None:
                key = self._next_key(newest)
            if not key_after(key, newest):
                raise ValueError(f"Key {encode_cursor(key)} does not advance collection {collection}")

            event = Event(key=key, category=category, fields=fields)
            items.append(event)
            return event
