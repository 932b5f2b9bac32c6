"""In-process document store.

Used for local development and tests. Transactions are optimistic: every
document read inside a transaction records its version, and the commit is
rejected and retried when any of them changed in the meantime.
"""

import asyncio
import copy
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from app.store.base import (
    Document,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    Subscription,
    Transaction,
    TransactionConflictError,
    apply_transforms,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MAX_TRANSACTION_ATTEMPTS = 5


class _Conflict(Exception):
    pass


class MemoryTransaction(Transaction):
    """Buffered transaction against a :class:`MemoryDocumentStore`."""

    def __init__(self, store: "MemoryDocumentStore"):
        self._store = store
        self._read_versions: dict[str, int] = {}
        self._writes: list[tuple[str, str, dict[str, Any], bool]] = []

    async def get(self, path: str) -> Document | None:
        if self._writes:
            raise RuntimeError("Transactions require all reads before writes")
        await asyncio.sleep(0)
        self._read_versions[path] = self._store._versions.get(path, 0)
        return self._store._snapshot(path)

    def create(self, path: str, data: dict[str, Any]) -> None:
        self._writes.append(("create", path, data, False))

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self._writes.append(("set", path, data, merge))

    def update(self, path: str, data: dict[str, Any]) -> None:
        self._writes.append(("update", path, data, False))

    def commit(self) -> None:
        for path, version in self._read_versions.items():
            if self._store._versions.get(path, 0) != version:
                raise _Conflict(path)

        # Validate every write before applying any of them.
        staged: dict[str, dict[str, Any] | None] = {}
        for op, path, data, merge in self._writes:
            current = staged[path] if path in staged else self._store._docs.get(path)
            if op == "create":
                if current is not None:
                    raise DocumentExistsError(path)
                staged[path] = apply_transforms({}, data)
            elif op == "update":
                if current is None:
                    raise DocumentNotFoundError(path)
                staged[path] = apply_transforms(current, data)
            else:
                staged[path] = apply_transforms((current or {}) if merge else {}, data)

        for path, data in staged.items():
            self._store._write(path, data)


class MemoryDocumentStore(DocumentStore):
    """Dictionary-backed :class:`DocumentStore`."""

    def __init__(self) -> None:
        self._docs: dict[str, dict[str, Any]] = {}
        self._versions: dict[str, int] = defaultdict(int)
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)

    def _snapshot(self, path: str) -> Document | None:
        data = self._docs.get(path)
        if data is None:
            return None
        return Document(path=path, data=copy.deepcopy(data))

    def _write(self, path: str, data: dict[str, Any] | None) -> None:
        if data is None:
            self._docs.pop(path, None)
        else:
            self._docs[path] = copy.deepcopy(data)
        self._versions[path] += 1
        self._notify(path)

    def _notify(self, path: str) -> None:
        for subscription in list(self._subscriptions.get(path, [])):
            subscription.push(self._snapshot(path))

    async def get(self, path: str) -> Document | None:
        await asyncio.sleep(0)
        return self._snapshot(path)

    async def get_all(self, collection: str, ids: list[str]) -> list[Document]:
        await asyncio.sleep(0)
        documents = [self._snapshot(f"{collection}/{doc_id}") for doc_id in ids]
        return [document for document in documents if document is not None]

    async def query(
        self,
        collection: str,
        filters: list[tuple[str, str, Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        await asyncio.sleep(0)
        prefix = f"{collection}/"
        results = []
        for path in self._docs:
            if not path.startswith(prefix) or "/" in path[len(prefix) :]:
                continue
            document = self._snapshot(path)
            if all(_matches(document.data.get(name), op, value) for name, op, value in filters or []):
                results.append(document)

        if order_by:
            results.sort(
                key=lambda document: (document.data.get(order_by) is not None, document.data.get(order_by)),
                reverse=descending,
            )
        return results

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        await asyncio.sleep(0)
        current = self._docs.get(path) if merge else None
        self._write(path, apply_transforms(current or {}, data))

    async def update(self, path: str, data: dict[str, Any]) -> None:
        await asyncio.sleep(0)
        current = self._docs.get(path)
        if current is None:
            raise DocumentNotFoundError(path)
        self._write(path, apply_transforms(current, data))

    async def delete(self, path: str) -> None:
        await asyncio.sleep(0)
        if path in self._docs:
            self._write(path, None)

    def new_id(self, collection: str) -> str:
        return uuid.uuid4().hex[:20]

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        for attempt in range(1, MAX_TRANSACTION_ATTEMPTS + 1):
            transaction = MemoryTransaction(self)
            result = await fn(transaction)
            try:
                transaction.commit()
            except _Conflict as e:
                logger.debug("transaction_retry", attempt=attempt, path=str(e))
                continue
            return result
        raise TransactionConflictError("Transaction failed after too many conflicting writes")

    def subscribe(self, path: str) -> Subscription:
        subscription = Subscription(path)
        self._subscriptions[path].append(subscription)
        subscription.bind(lambda: self._subscriptions[path].remove(subscription))
        subscription.push(self._snapshot(path))
        return subscription

    def subscriber_count(self, path: str) -> int:
        return len(self._subscriptions.get(path, []))

    async def ping(self) -> bool:
        return True


def _matches(actual: Any, op: str, expected: Any) -> bool:
    if op == "==":
        return actual == expected
    if op == "!=":
        return actual != expected
    if op == "in":
        return actual in expected
    if op == "array_contains":
        return isinstance(actual, list) and expected in actual
    raise ValueError(f"Unsupported filter operator: {op}")
