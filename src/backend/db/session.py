"""
Process-wide document store for the HTTP layer.

Services never import this module; they receive the store through their
constructors. Only the FastAPI dependencies and lifecycle events use the
singleton defined here.
"""

import logging

from core.config import settings
from db.store import DocumentStore, InMemoryDocumentStore

logger = logging.getLogger(__name__)

# Global store instance (lazy-initialized)
_store: DocumentStore | None = None


def create_document_store() -> DocumentStore:
    """Build a store for the configured STORAGE_BACKEND."""
    if settings.STORAGE_BACKEND == "cosmos":
        from db.cosmos_store import CosmosDocumentStore

        return CosmosDocumentStore.from_settings(settings)

    logger.info("Using in-memory document store")
    return InMemoryDocumentStore()


def get_document_store() -> DocumentStore:
    """
    Get or create the document store.

    The store is a singleton and reused across requests.
    """
    global _store

    if _store is None:
        _store = create_document_store()

    return _store


def set_document_store(store: DocumentStore | None) -> None:
    """Replace the process-wide store (used by tests and startup wiring)."""
    global _store
    _store = store


async def close_document_store() -> None:
    """
    Close the document store.

    Should be called during application shutdown.
    """
    global _store

    if _store is not None:
        await _store.close()
        _store = None
        logger.info("Closed document store")
