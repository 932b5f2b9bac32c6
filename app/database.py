"""Document store configuration and connection management."""

import structlog

from app.config import settings
from app.core.firebase import get_firestore_clients
from app.store import DocumentStore
from app.store.firestore import FirestoreDocumentStore
from app.store.memory import MemoryDocumentStore

logger = structlog.get_logger(__name__)

# Global document store instance
_document_store: DocumentStore | None = None


def create_document_store(backend: str | None = None) -> DocumentStore:
    """
    Build the document store selected by ``DOCUMENT_STORE_BACKEND``.

    The Firestore backend needs Firebase to be initialized first.
    """
    backend = (backend or settings.document_store_backend).lower()

    if backend == "memory":
        return MemoryDocumentStore()
    if backend == "firestore":
        client, sync_client = get_firestore_clients()
        return FirestoreDocumentStore(client, sync_client)

    raise ValueError(f"Unknown document store backend: {backend}")


def get_document_store() -> DocumentStore:
    """Dependency for getting the shared document store."""
    global _document_store

    if _document_store is None:
        _document_store = create_document_store()
        logger.info("document_store_created", backend=settings.document_store_backend)

    return _document_store


async def check_database_connection() -> bool:
    """Check if the document store is reachable."""
    try:
        return await get_document_store().ping()
    except Exception:
        return False


async def close_document_store() -> None:
    """Release the shared document store."""
    global _document_store

    if _document_store is not None:
        await _document_store.close()
        _document_store = None
