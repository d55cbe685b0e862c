# =============================================================================
# hydraulics_core/data/__init__.py
# Remote document store adapters
# =============================================================================

from .remote_store import RemoteDocumentStore, InMemoryDocumentStore

__all__ = [
    "RemoteDocumentStore",
    "InMemoryDocumentStore",
]
