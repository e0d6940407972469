"""
app/db/kv_store.py

Purpose: Key-value persistence boundary

- Four logical tables, each stored as one whole JSON document
- get/put with graceful degradation (failed read -> empty document)
- Version token on every document for compare-and-swap writes
- update() = read-modify-write retried on version conflicts

Consistency model: last writer wins per table unless the caller goes
through update() (or passes expected_version to put()), in which case a
concurrent write makes the CAS fail and the mutation is replayed on
fresh data. There are no cross-table transactions.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.config import DEFAULT_KV_MAX_CAS_ATTEMPTS
from app.core.exceptions import PersistenceError
from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class Table(str, Enum):
    """Logical tables of the shop."""

    USERS = "users"
    ACCOUNTS = "accounts"
    CONFIG = "config"
    PENDING_PAYMENTS = "pending_payments"


class KVStore:
    """
    Base key-value store.

    Subclasses implement _read and _write; both raise PersistenceError
    on backend failure. The public methods decide whether a failure
    degrades (get/put) or propagates (get_versioned/update).
    """

    def __init__(self, max_attempts: int = DEFAULT_KV_MAX_CAS_ATTEMPTS):
        self.max_attempts = max_attempts

    async def _read(self, table: Table) -> Tuple[Dict[str, Any], int]:
        raise NotImplementedError

    async def _write(
        self,
        table: Table,
        doc: Dict[str, Any],
        expected_version: Optional[int]
    ) -> bool:
        raise NotImplementedError

    async def get(self, table: Table) -> Dict[str, Any]:
        """
        Reads a whole table.

        Returns:
            The table document, or {} when missing or on backend failure
        """
        try:
            doc, _ = await self._read(table)
            return doc
        except PersistenceError as e:
            logger.error(f"KV read failed for {table.value}: {e.message}")
            return {}

    async def get_versioned(self, table: Table) -> Tuple[Dict[str, Any], int]:
        """
        Reads a table together with its version token.

        Raises:
            PersistenceError: If the backend fails
        """
        return await self._read(table)

    async def put(
        self,
        table: Table,
        doc: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> bool:
        """
        Writes a whole table.

        Args:
            table: Target table
            doc: Full document to store
            expected_version: When given, write only if the stored version matches

        Returns:
            True if written, False on conflict or backend failure
        """
        try:
            return await self._write(table, doc, expected_version)
        except PersistenceError as e:
            logger.error(f"KV write failed for {table.value}: {e.message}")
            return False

    async def update(self, table: Table, mutate: Callable[[Dict[str, Any]], T]) -> T:
        """
        Read-modify-write with compare-and-swap.

        mutate() receives the current document, changes it in place and
        returns a result. If it raises, nothing is written. On a version
        conflict the document is re-read and mutate() runs again.

        Raises:
            PersistenceError: On backend failure or when conflicts persist
        """
        for attempt in range(1, self.max_attempts + 1):
            doc, version = await self._read(table)
            result = mutate(doc)
            if await self._write(table, doc, version):
                return result
            logger.warning(
                f"Write conflict on {table.value} (attempt {attempt}/{self.max_attempts})"
            )

        raise PersistenceError(
            f"Could not update {table.value} after {self.max_attempts} attempts",
            details={"table": table.value}
        )


class MemoryKVStore(KVStore):
    """
    In-process store. Documents are kept as JSON text so callers never
    share mutable state with the store, same as a remote backend.
    """

    def __init__(self, max_attempts: int = DEFAULT_KV_MAX_CAS_ATTEMPTS):
        super().__init__(max_attempts)
        self._tables: Dict[str, Tuple[str, int]] = {}

    async def _read(self, table: Table) -> Tuple[Dict[str, Any], int]:
        raw, version = self._tables.get(table.value, ("{}", 0))
        return json.loads(raw), version

    async def _write(
        self,
        table: Table,
        doc: Dict[str, Any],
        expected_version: Optional[int]
    ) -> bool:
        _, current = self._tables.get(table.value, ("{}", 0))
        if expected_version is not None and expected_version != current:
            return False
        try:
            payload = json.dumps(doc)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Document for {table.value} is not JSON serializable") from e
        self._tables[table.value] = (payload, current + 1)
        return True

    def snapshot(self) -> Dict[str, Any]:
        """Copy of every table, for diagnostics and tests."""
        return {name: json.loads(raw) for name, (raw, _) in self._tables.items()}


class MongoKVStore(KVStore):
    """
    MongoDB-backed store: one document per table in the kv_store collection.
    """

    def __init__(
        self,
        collection_getter: Callable[[], Any],
        max_attempts: int = DEFAULT_KV_MAX_CAS_ATTEMPTS
    ):
        super().__init__(max_attempts)
        self._collection_getter = collection_getter

    def _collection(self):
        try:
            return self._collection_getter()
        except RuntimeError as e:
            raise PersistenceError(str(e)) from e

    async def _read(self, table: Table) -> Tuple[Dict[str, Any], int]:
        try:
            record = await self._collection().find_one({"_id": table.value})
        except PyMongoError as e:
            raise PersistenceError(f"MongoDB read failed for {table.value}") from e

        if not record:
            return {}, 0

        try:
            doc = json.loads(record.get("json") or "{}")
        except ValueError as e:
            raise PersistenceError(f"Corrupt JSON stored for {table.value}") from e

        return doc, int(record.get("version", 0))

    async def _write(
        self,
        table: Table,
        doc: Dict[str, Any],
        expected_version: Optional[int]
    ) -> bool:
        try:
            payload = json.dumps(doc)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Document for {table.value} is not JSON serializable") from e

        now = datetime.now(timezone.utc)
        collection = self._collection()

        try:
            if expected_version is None:
                await collection.update_one(
                    {"_id": table.value},
                    {"$set": {"json": payload, "updated_at": now}, "$inc": {"version": 1}},
                    upsert=True
                )
                return True

            if expected_version == 0:
                try:
                    await collection.insert_one({
                        "_id": table.value,
                        "json": payload,
                        "version": 1,
                        "updated_at": now
                    })
                    return True
                except DuplicateKeyError:
                    return False

            result = await collection.update_one(
                {"_id": table.value, "version": expected_version},
                {"$set": {"json": payload, "updated_at": now}, "$inc": {"version": 1}}
            )
            return result.matched_count == 1

        except PyMongoError as e:
            raise PersistenceError(f"MongoDB write failed for {table.value}") from e
