"""Document store backends."""

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

__all__ = [
    "ArrayRemove",
    "ArrayUnion",
    "Document",
    "DocumentExistsError",
    "DocumentListenerError",
    "DocumentNotFoundError",
    "DocumentStore",
    "Increment",
    "Subscription",
    "Transaction",
    "TransactionConflictError",
]
