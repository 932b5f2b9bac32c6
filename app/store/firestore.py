"""Cloud Firestore implementation of the document store."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from app.store.base import (
    ArrayRemove,
    ArrayUnion,
    Document,
    DocumentExistsError,
    DocumentListenerError,
    DocumentNotFoundError,
    DocumentStore,
    Increment,
    Subscription,
    Transaction,
    TransactionConflictError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MAX_TRANSACTION_ATTEMPTS = 5

WATCH_POLL_SECONDS = 5.0


def _to_firestore(data: dict[str, Any]) -> dict[str, Any]:
    """Translate transform markers into Firestore sentinels."""
    converted = {}
    for key, value in data.items():
        if isinstance(value, Increment):
            converted[key] = firestore.Increment(value.amount)
        elif isinstance(value, ArrayUnion):
            converted[key] = firestore.ArrayUnion(list(value.values))
        elif isinstance(value, ArrayRemove):
            converted[key] = firestore.ArrayRemove(list(value.values))
        else:
            converted[key] = value
    return converted


def _to_document(path: str, snapshot: Any) -> Document | None:
    if snapshot is None or not snapshot.exists:
        return None
    return Document(path=path, data=snapshot.to_dict() or {})


class FirestoreTransaction(Transaction):
    """Wraps an ``AsyncTransaction``."""

    def __init__(self, client: firestore.AsyncClient, transaction: firestore.AsyncTransaction):
        self._client = client
        self._transaction = transaction

    async def get(self, path: str) -> Document | None:
        snapshot = await self._client.document(path).get(transaction=self._transaction)
        return _to_document(path, snapshot)

    def create(self, path: str, data: dict[str, Any]) -> None:
        self._transaction.create(self._client.document(path), _to_firestore(data))

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self._transaction.set(self._client.document(path), _to_firestore(data), merge=merge)

    def update(self, path: str, data: dict[str, Any]) -> None:
        self._transaction.update(self._client.document(path), _to_firestore(data))


class FirestoreDocumentStore(DocumentStore):
    """Document store backed by Cloud Firestore.

    Reads and writes go through the async client. Real-time listeners are only
    offered by the sync client, whose watch thread is bridged into the event
    loop of the subscriber.
    """

    def __init__(
        self,
        client: firestore.AsyncClient,
        sync_client: firestore.Client,
        watch_poll_seconds: float = WATCH_POLL_SECONDS,
    ):
        self._client = client
        self._sync_client = sync_client
        self.watch_poll_seconds = watch_poll_seconds

    async def get(self, path: str) -> Document | None:
        snapshot = await self._client.document(path).get()
        return _to_document(path, snapshot)

    async def get_all(self, collection: str, ids: list[str]) -> list[Document]:
        if not ids:
            return []
        refs = [self._client.collection(collection).document(doc_id) for doc_id in ids]
        documents = []
        async for snapshot in self._client.get_all(refs):
            document = _to_document(f"{collection}/{snapshot.id}", snapshot)
            if document is not None:
                documents.append(document)
        return documents

    async def query(
        self,
        collection: str,
        filters: list[tuple[str, str, Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        query = self._client.collection(collection)
        for name, op, value in filters or []:
            query = query.where(filter=FieldFilter(name, op, value))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)

        return [
            Document(path=f"{collection}/{snapshot.id}", data=snapshot.to_dict() or {})
            async for snapshot in query.stream()
        ]

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        await self._client.document(path).set(_to_firestore(data), merge=merge)

    async def update(self, path: str, data: dict[str, Any]) -> None:
        try:
            await self._client.document(path).update(_to_firestore(data))
        except gcp_exceptions.NotFound as e:
            raise DocumentNotFoundError(path) from e

    async def delete(self, path: str) -> None:
        await self._client.document(path).delete()

    def new_id(self, collection: str) -> str:
        return self._client.collection(collection).document().id

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        @firestore.async_transactional
        async def _run(transaction: firestore.AsyncTransaction) -> T:
            return await fn(FirestoreTransaction(self._client, transaction))

        try:
            return await _run(self._client.transaction(max_attempts=MAX_TRANSACTION_ATTEMPTS))
        except gcp_exceptions.NotFound as e:
            raise DocumentNotFoundError(str(e)) from e
        except gcp_exceptions.AlreadyExists as e:
            raise DocumentExistsError(str(e)) from e
        except gcp_exceptions.Aborted as e:
            raise TransactionConflictError(str(e)) from e

    def subscribe(self, path: str) -> Subscription:
        loop = asyncio.get_running_loop()
        subscription = Subscription(path)

        def on_snapshot(snapshots: list[Any], changes: Any, read_time: Any) -> None:
            snapshot = snapshots[0] if snapshots else None
            loop.call_soon_threadsafe(subscription.push, _to_document(path, snapshot))

        watch = self._sync_client.document(path).on_snapshot(on_snapshot)
        monitor = loop.create_task(self._monitor_watch(path, watch, subscription))

        def unsubscribe() -> None:
            monitor.cancel()
            watch.unsubscribe()

        subscription.bind(unsubscribe)
        logger.debug("document_subscribed", path=path)
        return subscription

    async def _monitor_watch(self, path: str, watch: Any, subscription: Subscription) -> None:
        # The watch thread stops silently on unrecoverable errors.
        while not subscription.closed:
            await asyncio.sleep(self.watch_poll_seconds)
            if not watch.is_active and not subscription.closed:
                logger.warning("document_listener_stopped", path=path)
                subscription.fail(DocumentListenerError(f"Listener for {path} stopped"))
                return

    async def ping(self) -> bool:
        try:
            await self._client.collection("locations").limit(1).get()
            return True
        except Exception as e:
            logger.error("firestore_ping_failed", error=str(e))
            return False
