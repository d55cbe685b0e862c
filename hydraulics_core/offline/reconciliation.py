# =============================================================================
# hydraulics_core/offline/reconciliation.py
# Applies journaled mutations to the remote document store
# =============================================================================
"""
ReconciliationClient - turns a Mutation into a remote write and every remote
failure into one of three sync error kinds:

    NETWORK_UNAVAILABLE  remote unreachable; keep pending, retry on next trigger
    REMOTE_REJECTED      remote refused the write; surface, do not auto-retry
    UNKNOWN              anything else; logged, retried up to the ceiling

Creates use the client-generated entity id as the document id, so replaying
a create that already landed overwrites the same document instead of adding
a duplicate.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from hydraulics_core.data.remote_store import RemoteDocumentStore
from hydraulics_core.errors import (
    DocumentNotFoundError,
    HydraulicsError,
    NetworkUnavailableError,
    RemoteRejectedError,
)
from hydraulics_core.offline.mutation_store import ChangeType, Mutation
from hydraulics_core.services.base_service import BaseService, ServiceResult


class SyncErrorKind(str, Enum):
    NETWORK_UNAVAILABLE = "network_unavailable"
    REMOTE_REJECTED = "remote_rejected"
    UNKNOWN = "unknown"


def classify_error(error: BaseException) -> SyncErrorKind:
    """Map a remote-call exception onto a SyncErrorKind."""
    if isinstance(error, NetworkUnavailableError):
        return SyncErrorKind.NETWORK_UNAVAILABLE
    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError)):
        return SyncErrorKind.NETWORK_UNAVAILABLE
    if isinstance(error, (RemoteRejectedError, PermissionError)):
        return SyncErrorKind.REMOTE_REJECTED
    return SyncErrorKind.UNKNOWN


class ReconciliationClient(BaseService):
    """
    Remote side of the sync loop.

    Usage:
        client = ReconciliationClient(remote_store)
        result = client.apply(mutation)
        if not result:
            kind = SyncErrorKind(result.error_code)
    """

    def __init__(self, remote: RemoteDocumentStore):
        super().__init__()
        self.remote = remote

    def apply(self, mutation: Mutation) -> ServiceResult:
        """
        Perform the remote write for one mutation.

        Returns:
            ServiceResult.ok(mutation.entity_id), or a failure whose
            error_code is a SyncErrorKind value
        """
        try:
            self._write(mutation)
        except Exception as e:
            kind = classify_error(e)
            label = f"{mutation.change_type.value} {mutation.collection}/{mutation.entity_id}"
            if kind == SyncErrorKind.UNKNOWN:
                self.logger.error(f"Unexpected error applying {label}: {e}", exc_info=True)
            else:
                self.logger.warning(f"Could not apply {label}: {kind.value}: {e}")
            message = e.message if isinstance(e, HydraulicsError) else str(e)
            return ServiceResult.fail(
                message,
                error_code=kind.value,
                metadata={"entity_id": mutation.entity_id, "seq": mutation.seq},
            )
        return ServiceResult.ok(mutation.entity_id)

    def _write(self, mutation: Mutation) -> None:
        if mutation.change_type == ChangeType.CREATE:
            self.remote.set(mutation.collection, mutation.entity_id, mutation.payload, merge=False)
        elif mutation.change_type == ChangeType.UPDATE:
            self.remote.set(mutation.collection, mutation.entity_id, mutation.payload, merge=True)
        elif mutation.change_type == ChangeType.DELETE:
            try:
                self.remote.delete(mutation.collection, mutation.entity_id)
            except DocumentNotFoundError:
                self.logger.debug(
                    f"{mutation.collection}/{mutation.entity_id} already deleted remotely"
                )
        else:
            raise ValueError(f"Unsupported change type: {mutation.change_type}")

    def fetch_collection(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Authoritative remote documents; remote errors propagate."""
        return self.remote.query(collection, filters)
