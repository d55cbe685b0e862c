# =============================================================================
# hydraulics_core/data/remote_store.py
# Remote document store contract + in-memory implementation
# =============================================================================
"""
The sync core talks to the cloud through a small document-store contract:
collections of JSON documents addressed by string id.

Implementations:
- InMemoryDocumentStore: local-only mode and tests
- SupabaseDocumentStore (supabase_client.py): one Postgres table per collection
"""

from __future__ import annotations
import copy
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from hydraulics_core.errors import DocumentNotFoundError


class RemoteDocumentStore(ABC):
    """Collections of documents addressed by id."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document, or None when it does not exist."""

    @abstractmethod
    def set(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        merge: bool = False,
    ) -> None:
        """
        Write a document under a caller-chosen id.

        merge=False replaces the whole document; merge=True overlays the given
        top-level fields on the stored document (creating it when missing).
        """

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Raises DocumentNotFoundError when absent."""

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Documents whose top-level fields equal every filter value."""


class InMemoryDocumentStore(RemoteDocumentStore):
    """Thread-safe dict-backed store."""

    def __init__(self, initial: Optional[Mapping[str, Mapping[str, Mapping[str, Any]]]] = None):
        self._lock = threading.Lock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for collection, docs in (initial or {}).items():
            self._collections[collection] = {
                doc_id: copy.deepcopy(dict(doc)) for doc_id, doc in docs.items()
            }

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        merge: bool = False,
    ) -> None:
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            new_fields = copy.deepcopy(dict(fields))
            if merge and doc_id in docs:
                docs[doc_id].update(new_fields)
            else:
                docs[doc_id] = new_fields

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            docs = self._collections.get(collection, {})
            if doc_id not in docs:
                raise DocumentNotFoundError(
                    "Document not found", collection=collection, document_id=doc_id
                )
            del docs[doc_id]

    def query(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            docs = list(self._collections.get(collection, {}).values())
        filters = filters or {}
        return [
            copy.deepcopy(doc) for doc in docs
            if all(doc.get(key) == value for key, value in filters.items())
        ]
