import asyncio

import pytest

from app.core.exceptions import PersistenceError, StockGoneError
from app.db.kv_store import MemoryKVStore, Table

from conftest import BrokenKVStore, YieldingKVStore, run


def test_missing_table_reads_as_empty():
    store = MemoryKVStore()
    assert run(store.get(Table.USERS)) == {}
    assert run(store.get_versioned(Table.USERS)) == ({}, 0)


def test_update_writes_and_bumps_version():
    store = MemoryKVStore()

    def add(doc):
        doc["1"] = {"id": "1", "balance": 0}
        return "added"

    assert run(store.update(Table.USERS, add)) == "added"
    doc, version = run(store.get_versioned(Table.USERS))
    assert doc == {"1": {"id": "1", "balance": 0}}
    assert version == 1


def test_mutation_error_writes_nothing():
    store = MemoryKVStore()
    run(store.put(Table.ACCOUNTS, {"a@x.com": {"name": "A"}}))

    def claim_missing(doc):
        doc.pop("a@x.com")
        raise StockGoneError()

    with pytest.raises(StockGoneError):
        run(store.update(Table.ACCOUNTS, claim_missing))

    assert run(store.get(Table.ACCOUNTS)) == {"a@x.com": {"name": "A"}}


def test_put_with_stale_version_is_rejected():
    store = MemoryKVStore()
    run(store.put(Table.CONFIG, {"totalTransactions": 1}))

    assert run(store.put(Table.CONFIG, {"totalTransactions": 5}, expected_version=0)) is False
    assert run(store.put(Table.CONFIG, {"totalTransactions": 2}, expected_version=1)) is True
    assert run(store.get(Table.CONFIG)) == {"totalTransactions": 2}


def test_concurrent_updates_are_not_lost():
    store = YieldingKVStore(max_attempts=50)

    def increment(doc):
        doc["n"] = doc.get("n", 0) + 1

    async def scenario():
        await asyncio.gather(*[store.update(Table.CONFIG, increment) for _ in range(10)])

    run(scenario())
    assert run(store.get(Table.CONFIG)) == {"n": 10}


def test_update_gives_up_after_max_attempts():
    class AlwaysConflicting(MemoryKVStore):
        async def _write(self, table, doc, expected_version):
            return False

    store = AlwaysConflicting(max_attempts=3)
    with pytest.raises(PersistenceError):
        run(store.update(Table.USERS, lambda doc: None))


def test_failed_read_degrades_for_get_but_not_for_update():
    store = BrokenKVStore()
    run(store.put(Table.USERS, {"1": {"id": "1"}}))
    store.broken = True

    assert run(store.get(Table.USERS)) == {}
    assert run(store.put(Table.USERS, {})) is False
    with pytest.raises(PersistenceError):
        run(store.update(Table.USERS, lambda doc: doc.clear()))

    store.broken = False
    assert run(store.get(Table.USERS)) == {"1": {"id": "1"}}


def test_documents_are_not_shared_with_callers():
    store = MemoryKVStore()
    run(store.put(Table.USERS, {"1": {"balance": 10}}))

    doc = run(store.get(Table.USERS))
    doc["1"]["balance"] = 999

    assert run(store.get(Table.USERS)) == {"1": {"balance": 10}}
    assert store.snapshot() == {"users": {"1": {"balance": 10}}}
