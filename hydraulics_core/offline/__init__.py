# =============================================================================
# hydraulics_core/offline/__init__.py
# Offline-First Sync for the Work Order app
# =============================================================================
"""
Offline-First Sync Module

Technicians keep checking in equipment, changing item status and writing
notes with no connection. Every change is visible immediately, journaled
locally, and replayed to the cloud when the connection returns.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                    OFFLINE-FIRST ARCHITECTURE                    │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │   WorkOrderService / CustomerService / UserService        │  │
│   │         (Single API - the UI uses these only)             │  │
│   └──────────────────────────────────────────────────────────┘  │
│          │ optimistic           │ online           │ offline    │
│          ▼                      ▼                  ▼            │
│   ┌──────────────┐    ┌──────────────────┐  ┌──────────────┐   │
│   │PublishedCache│    │ Reconciliation   │  │MutationStore │   │
│   │ (UI reads)   │    │ Client           │  │ (SQLite)     │   │
│   └──────────────┘    └──────────────────┘  └──────────────┘   │
│          ▲                      │                  │            │
│          │ mark synced          ▼                  │ pending    │
│          │             ┌──────────────────┐        │            │
│          │             │ Remote document  │        │            │
│          │             │ store (Supabase) │        │            │
│          │             └──────────────────┘        │            │
│          │                      ▲ replay           │            │
│   ┌──────┴──────────────────────┴──────────────────┴───────┐   │
│   │                    SyncEngine                           │   │
│   │   (collapse per entity, ordered replay, retry ceiling)  │   │
│   └─────────────────────────────────────────────────────────┘   │
│                             ▲ restored                          │
│                    ┌──────────────────┐                         │
│                    │ ConnectionManager│                         │
│                    └──────────────────┘                         │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from hydraulics_core.bootstrap import build_app_services

services = build_app_services()
services.start()

services.customers.create(Customer(name="Acme", phone_number="239-246-7352"))
print(services.sync_engine.status_message)  # "1 change pending sync" offline
"""

from hydraulics_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionEvent,
    socket_probe,
    remote_hosts,
)

from hydraulics_core.offline.mutation_store import (
    MutationStore,
    Mutation,
    ChangeType,
    MutationStatus,
)

from hydraulics_core.offline.published_cache import (
    PublishedCache,
    CacheChange,
    MergeStats,
)

from hydraulics_core.offline.reconciliation import (
    ReconciliationClient,
    SyncErrorKind,
    classify_error,
)

from hydraulics_core.offline.sync_engine import (
    SyncEngine,
    SyncReport,
    SyncState,
    SyncStatus,
    collapse_pending,
)

from hydraulics_core.offline.entity_service import (
    EntityService,
    WorkOrderService,
    CustomerService,
    UserService,
)

__all__ = [
    # Connectivity
    "ConnectionManager",
    "ConnectionEvent",
    "socket_probe",
    "remote_hosts",
    # Local journal
    "MutationStore",
    "Mutation",
    "ChangeType",
    "MutationStatus",
    # Cache
    "PublishedCache",
    "CacheChange",
    "MergeStats",
    # Remote
    "ReconciliationClient",
    "SyncErrorKind",
    "classify_error",
    # Sync Engine
    "SyncEngine",
    "SyncReport",
    "SyncState",
    "SyncStatus",
    "collapse_pending",
    # Entity services (Main API)
    "EntityService",
    "WorkOrderService",
    "CustomerService",
    "UserService",
]
