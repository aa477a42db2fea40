"""Database module."""

from db.session import close_document_store, get_document_store
from db.store import DocumentStore, InMemoryDocumentStore, QueryFilter

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "QueryFilter",
    "close_document_store",
    "get_document_store",
]
