"""Document store boundary.

The lifecycle code talks to a schemaless, subscribable document database
through :class:`DocumentStore`. Paths are slash separated
(``users/{uid}``, ``locations/{id}/tables/{table_id}``). Field writes may
carry the transform markers below instead of literal values; backends apply
them atomically on the server side.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

T = TypeVar("T")


class DocumentNotFoundError(LookupError):
    """Raised when updating a document that does not exist."""


class DocumentExistsError(Exception):
    """Raised when creating a document that already exists."""


class TransactionConflictError(Exception):
    """Raised when a transaction could not commit after all retries."""


class DocumentListenerError(Exception):
    """Raised to subscribers when the backend stops delivering snapshots."""


@dataclass(frozen=True)
class Increment:
    """Add ``amount`` to a numeric field."""

    amount: int


@dataclass(frozen=True)
class ArrayUnion:
    """Append the values missing from an array field."""

    values: tuple[Any, ...]

    def __init__(self, values: list[Any] | tuple[Any, ...]):
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True)
class ArrayRemove:
    """Remove every occurrence of the values from an array field."""

    values: tuple[Any, ...]

    def __init__(self, values: list[Any] | tuple[Any, ...]):
        object.__setattr__(self, "values", tuple(values))


@dataclass
class Document:
    """A document snapshot."""

    path: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]


def apply_transforms(current: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    """Return ``current`` with ``changes`` applied field by field."""
    result = dict(current)
    for key, value in changes.items():
        if isinstance(value, Increment):
            result[key] = (result.get(key) or 0) + value.amount
        elif isinstance(value, ArrayUnion):
            existing = list(result.get(key) or [])
            for item in value.values:
                if item not in existing:
                    existing.append(item)
            result[key] = existing
        elif isinstance(value, ArrayRemove):
            result[key] = [item for item in result.get(key) or [] if item not in value.values]
        else:
            result[key] = value
    return result


class Transaction(ABC):
    """Reads and buffered writes that commit together."""

    @abstractmethod
    async def get(self, path: str) -> Document | None:
        """Read a document inside the transaction."""

    @abstractmethod
    def create(self, path: str, data: dict[str, Any]) -> None:
        """Create a document; fails on commit if it exists."""

    @abstractmethod
    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Write a document, optionally merging top-level fields."""

    @abstractmethod
    def update(self, path: str, data: dict[str, Any]) -> None:
        """Update fields of an existing document."""


class Subscription:
    """Push channel for a single document.

    Items are :class:`Document` snapshots or ``None`` when the document does
    not exist. Closing the subscription unsubscribes from the backend and ends
    iteration.
    """

    _CLOSED = object()

    def __init__(self, path: str):
        self.path = path
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._unsubscribe: Callable[[], None] | None = None
        self._closed = False

    def bind(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, snapshot: Document | None) -> None:
        if not self._closed:
            self._queue.put_nowait(snapshot)

    def fail(self, error: BaseException) -> None:
        if not self._closed:
            self._queue.put_nowait(error)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Document | None:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()


class DocumentStore(ABC):
    """Async document database client."""

    @abstractmethod
    async def get(self, path: str) -> Document | None:
        """Fetch a single document, ``None`` if missing."""

    @abstractmethod
    async def get_all(self, collection: str, ids: list[str]) -> list[Document]:
        """Fetch the existing documents of ``collection`` with the given ids."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: list[tuple[str, str, Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        """Run an equality-filtered, optionally ordered collection query."""

    @abstractmethod
    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Write a document."""

    @abstractmethod
    async def update(self, path: str, data: dict[str, Any]) -> None:
        """Update fields of an existing document."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete a document; missing documents are ignored."""

    @abstractmethod
    def new_id(self, collection: str) -> str:
        """Allocate a fresh document id in ``collection``."""

    @abstractmethod
    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run ``fn`` in a transaction, retrying it on write conflicts."""

    @abstractmethod
    def subscribe(self, path: str) -> Subscription:
        """Open a real-time subscription on a document.

        Must be called from a running event loop. The first item delivered is
        the current state of the document.
        """

    @abstractmethod
    async def ping(self) -> bool:
        """Check connectivity to the backend."""

    async def close(self) -> None:
        """Release backend resources."""
