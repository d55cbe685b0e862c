# =============================================================================
# hydraulics_core/data/supabase_client.py
# Supabase Client Configuration for the Work Order sync core
# Document-store adapter over one Postgres table per collection
# =============================================================================
"""
Each collection maps to a table shaped like:

    id          TEXT PRIMARY KEY      -- client-generated entity id
    data        JSONB NOT NULL        -- the entity document
    updated_at  TIMESTAMPTZ           -- server write time

See scripts/create_document_tables.py for the DDL.
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
import logging

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from hydraulics_core.config import SupabaseSettings
from hydraulics_core.data.remote_store import RemoteDocumentStore
from hydraulics_core.errors import (
    ConfigurationError,
    DocumentNotFoundError,
    NetworkUnavailableError,
    RemoteRejectedError,
    RemoteStoreError,
)

logger = logging.getLogger(__name__)

# PostgREST / Postgres error codes that mean "this write will never succeed as is":
# 42xxx privileges/undefined objects, 22xxx bad data, 23xxx constraint
# violations, PGRST1xx-3xx request, schema cache and JWT errors.
REJECTED_CODE_PREFIXES = ("42", "22", "23", "PGRST1", "PGRST2", "PGRST3")

PAGE_SIZE = 1000


def get_supabase_client(settings: SupabaseSettings) -> Client:
    """
    Create a Supabase client from settings.

    Raises:
        ConfigurationError: when url or key is missing
    """
    if not settings.is_configured:
        raise ConfigurationError(
            "Supabase credentials not found. Set SUPABASE_URL and SUPABASE_KEY "
            "or add a [supabase] section to the config file.",
            config_key="supabase",
        )
    client = create_client(settings.url, settings.key)
    logger.info("Supabase client created")
    return client


def is_rejection(error: APIError) -> bool:
    code = str(getattr(error, "code", "") or "")
    return code.startswith(REJECTED_CODE_PREFIXES)


class SupabaseDocumentStore(RemoteDocumentStore):
    """
    RemoteDocumentStore backed by Supabase tables.

    Usage:
        store = SupabaseDocumentStore(get_supabase_client(settings.supabase))
        store.set("workOrders", wo.id, wo.to_document())
    """

    def __init__(self, client: Client, table_prefix: str = ""):
        self.client = client
        self.table_prefix = table_prefix

    def table_name(self, collection: str) -> str:
        return f"{self.table_prefix}{collection}"

    @contextmanager
    def _remote_call(self, operation: str, collection: str, doc_id: Optional[str] = None):
        """Translate transport and PostgREST errors into RemoteStoreError types."""
        try:
            yield
        except (httpx.TransportError, ConnectionError, TimeoutError) as e:
            raise NetworkUnavailableError(
                f"{operation} failed: remote store unreachable ({e})",
                collection=collection,
                document_id=doc_id,
            ) from e
        except APIError as e:
            details = {"code": e.code, "hint": e.hint, "details": e.details}
            if is_rejection(e):
                raise RemoteRejectedError(
                    f"{operation} rejected: {e.message}",
                    collection=collection,
                    document_id=doc_id,
                    details=details,
                ) from e
            raise RemoteStoreError(
                f"{operation} failed: {e.message}",
                collection=collection,
                document_id=doc_id,
                details=details,
            ) from e

    def _fetch_row(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        response = (
            self.client.table(self.table_name(collection))
            .select("*")
            .eq("id", doc_id)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return rows[0] if rows else None

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._remote_call("get", collection, doc_id):
            row = self._fetch_row(collection, doc_id)
        if row is None:
            return None
        return dict(row.get("data") or {})

    def set(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        merge: bool = False,
    ) -> None:
        with self._remote_call("set", collection, doc_id):
            data = dict(fields)
            if merge:
                existing = self._fetch_row(collection, doc_id)
                if existing is not None:
                    data = {**(existing.get("data") or {}), **data}

            self.client.table(self.table_name(collection)).upsert(
                {
                    "id": doc_id,
                    "data": data,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }
            ).execute()

    def delete(self, collection: str, doc_id: str) -> None:
        with self._remote_call("delete", collection, doc_id):
            response = (
                self.client.table(self.table_name(collection))
                .delete()
                .eq("id", doc_id)
                .execute()
            )
        if not response.data:
            raise DocumentNotFoundError(
                "Document not found", collection=collection, document_id=doc_id
            )

    def query(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch ALL matching documents (handles the Supabase 1000 row limit).

        Filters compare against top-level JSON fields as text.
        """
        documents: List[Dict[str, Any]] = []
        offset = 0

        with self._remote_call("query", collection):
            while True:
                query = self.client.table(self.table_name(collection)).select("*")
                for key, value in (filters or {}).items():
                    query = query.eq(f"data->>{key}", _filter_text(value))

                query = query.order("id").range(offset, offset + PAGE_SIZE - 1)
                response = query.execute()
                rows = response.data or []

                for row in rows:
                    doc = dict(row.get("data") or {})
                    doc.setdefault("id", row.get("id"))
                    documents.append(doc)

                if len(rows) < PAGE_SIZE:
                    break
                offset += PAGE_SIZE

        logger.debug(f"Fetched {len(documents)} documents from {self.table_name(collection)}")
        return documents


def _filter_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
