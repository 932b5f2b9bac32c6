"""Tests for the in-memory document store."""

import asyncio

import pytest

from app.store import (
    ArrayRemove,
    ArrayUnion,
    DocumentExistsError,
    DocumentNotFoundError,
    Increment,
    TransactionConflictError,
)
from app.store.base import apply_transforms


def test_apply_transforms():
    current = {"availableSeats": 3, "joinedUsers": ["a", "b"], "title": "Old"}

    result = apply_transforms(
        current,
        {
            "availableSeats": Increment(-1),
            "joinedUsers": ArrayUnion(["b", "c"]),
            "title": "New",
        },
    )

    assert result == {"availableSeats": 2, "joinedUsers": ["a", "b", "c"], "title": "New"}
    assert current["joinedUsers"] == ["a", "b"]

    removed = apply_transforms(result, {"joinedUsers": ArrayRemove(["a", "missing"])})
    assert removed["joinedUsers"] == ["b", "c"]


@pytest.mark.asyncio
async def test_set_merge_and_update(store):
    await store.set("users/u1", {"displayName": "Ann", "currentTable": None})
    await store.set("users/u1", {"currentTable": {"tableId": "t1"}}, merge=True)

    document = await store.get("users/u1")
    assert document.id == "u1"
    assert document.data == {"displayName": "Ann", "currentTable": {"tableId": "t1"}}

    await store.set("users/u1", {"displayName": "Ann B"})
    assert (await store.get("users/u1")).data == {"displayName": "Ann B"}

    with pytest.raises(DocumentNotFoundError):
        await store.update("users/missing", {"displayName": "X"})


@pytest.mark.asyncio
async def test_snapshots_are_copies(store):
    await store.set("users/u1", {"tableHistory": []})

    document = await store.get("users/u1")
    document.data["tableHistory"].append("mutated")

    assert (await store.get("users/u1")).data["tableHistory"] == []


@pytest.mark.asyncio
async def test_query_filters_and_order(store):
    await store.set("locations/l1/tables/a", {"status": "active", "createdAt": 1})
    await store.set("locations/l1/tables/b", {"status": "inactive", "createdAt": 2})
    await store.set("locations/l1/tables/c", {"status": "active", "createdAt": 3})
    await store.set("locations/l2/tables/d", {"status": "active", "createdAt": 4})

    documents = await store.query(
        "locations/l1/tables",
        filters=[("status", "==", "active")],
        order_by="createdAt",
        descending=True,
    )

    assert [document.id for document in documents] == ["c", "a"]


@pytest.mark.asyncio
async def test_query_ignores_nested_collections(store):
    await store.set("locations/l1", {"name": "One"})
    await store.set("locations/l1/tables/a", {"status": "active"})

    documents = await store.query("locations")

    assert [document.id for document in documents] == ["l1"]


@pytest.mark.asyncio
async def test_get_all_skips_missing(store):
    await store.set("users/a", {"displayName": "A"})
    await store.set("users/b", {"displayName": "B"})

    documents = await store.get_all("users", ["b", "missing", "a"])

    assert [document.id for document in documents] == ["b", "a"]


@pytest.mark.asyncio
async def test_transaction_commits_all_writes(store):
    await store.set("counters/c", {"value": 1})

    async def _txn(transaction):
        document = await transaction.get("counters/c")
        transaction.update("counters/c", {"value": Increment(1)})
        transaction.create("counters/d", {"value": document.data["value"]})
        return "done"

    assert await store.run_transaction(_txn) == "done"
    assert (await store.get("counters/c")).data["value"] == 2
    assert (await store.get("counters/d")).data["value"] == 1


@pytest.mark.asyncio
async def test_transaction_create_existing_fails_without_writing(store):
    await store.set("counters/c", {"value": 1})

    async def _txn(transaction):
        transaction.update("counters/c", {"value": 5})
        transaction.create("counters/c", {"value": 10})

    with pytest.raises(DocumentExistsError):
        await store.run_transaction(_txn)
    assert (await store.get("counters/c")).data["value"] == 1


@pytest.mark.asyncio
async def test_transaction_retries_on_conflict(store):
    await store.set("counters/c", {"value": 0})
    attempts = 0

    async def _txn(transaction):
        nonlocal attempts
        attempts += 1
        document = await transaction.get("counters/c")
        if attempts == 1:
            # Concurrent writer lands between read and commit
            await store.set("counters/c", {"value": 100})
        transaction.set("counters/c", {"value": document.data["value"] + 1})

    await store.run_transaction(_txn)

    assert attempts == 2
    assert (await store.get("counters/c")).data["value"] == 101


@pytest.mark.asyncio
async def test_transaction_gives_up_after_retries(store):
    await store.set("counters/c", {"value": 0})

    async def _txn(transaction):
        await transaction.get("counters/c")
        await store.update("counters/c", {"value": Increment(1)})
        transaction.update("counters/c", {"value": -1})

    with pytest.raises(TransactionConflictError):
        await store.run_transaction(_txn)
    assert (await store.get("counters/c")).data["value"] == 5


@pytest.mark.asyncio
async def test_transaction_reads_must_precede_writes(store):
    async def _txn(transaction):
        transaction.set("counters/c", {"value": 1})
        await transaction.get("counters/c")

    with pytest.raises(RuntimeError):
        await store.run_transaction(_txn)


@pytest.mark.asyncio
async def test_subscription_delivers_current_state_then_changes(store):
    await store.set("tables/t", {"status": "active"})
    received = []

    async with store.subscribe("tables/t") as subscription:
        received.append(await asyncio.wait_for(subscription.__anext__(), timeout=1))
        await store.update("tables/t", {"status": "inactive"})
        received.append(await asyncio.wait_for(subscription.__anext__(), timeout=1))
        await store.delete("tables/t")
        received.append(await asyncio.wait_for(subscription.__anext__(), timeout=1))

    assert received[0].data["status"] == "active"
    assert received[1].data["status"] == "inactive"
    assert received[2] is None
    assert store.subscriber_count("tables/t") == 0


@pytest.mark.asyncio
async def test_closed_subscription_stops_iteration(store):
    subscription = store.subscribe("tables/missing")
    subscription.close()
    subscription.close()

    snapshots = [snapshot async for snapshot in subscription]

    assert snapshots == [None]
    assert subscription.closed
    assert store.subscriber_count("tables/missing") == 0
