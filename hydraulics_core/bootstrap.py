# =============================================================================
# hydraulics_core/bootstrap.py
# Composition root - builds the offline sync services from Settings
# =============================================================================
"""
Everything is constructed here and passed down explicitly; nothing in the
package reaches for a global instance. Tests build the same graph with
fakes (in-memory remote store, scripted connectivity probe).

Usage:
    services = build_app_services(load_settings())
    services.start()
    services.work_orders.check_in(work_order, by="maria")
    print(services.sync_engine.status_message)
    services.stop()
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional

from hydraulics_core.config import Settings, load_settings
from hydraulics_core.data.remote_store import InMemoryDocumentStore, RemoteDocumentStore
from hydraulics_core.errors import ErrorContext
from hydraulics_core.logging import get_logger, setup_logging
from hydraulics_core.offline.connection_manager import (
    ConnectionManager,
    Probe,
    remote_hosts,
    socket_probe,
)
from hydraulics_core.offline.entity_service import (
    CustomerService,
    EntityService,
    UserService,
    WorkOrderService,
)
from hydraulics_core.offline.mutation_store import MutationStore
from hydraulics_core.offline.published_cache import Dispatcher, PublishedCache
from hydraulics_core.offline.reconciliation import ReconciliationClient
from hydraulics_core.offline.sync_engine import SyncEngine
from hydraulics_core.services.base_service import ServiceResult
from hydraulics_core.services.validation_service import ValidationService

logger = get_logger(__name__)


@dataclass
class AppServices:
    """The wired-up service graph."""
    settings: Settings
    connection: ConnectionManager
    store: MutationStore
    cache: PublishedCache
    client: ReconciliationClient
    sync_engine: SyncEngine
    work_orders: WorkOrderService
    customers: CustomerService
    users: UserService
    _started: bool = field(default=False, repr=False)

    @property
    def entity_services(self) -> Dict[str, EntityService]:
        return {
            service.collection: service
            for service in (self.work_orders, self.customers, self.users)
        }

    def start(self, monitor_connectivity: bool = True) -> None:
        """Initialize storage, connectivity and sync; resume pending work."""
        if self._started:
            return
        with ErrorContext("Starting sync services", recoverable=False):
            self.store.initialize()
            self.connection.initialize(start_monitoring=monitor_connectivity)
            self.sync_engine.initialize()
            self.sync_engine.start()
            self.sync_engine.resume_pending()
        self._started = True

    def refresh_all(self) -> Dict[str, ServiceResult]:
        """Refresh every collection; one failing collection does not stop the rest."""
        return {
            collection: service.safe_execute(f"Refreshing {collection}", service.refresh)
            for collection, service in self.entity_services.items()
        }

    def stop(self) -> None:
        self.sync_engine.stop()
        self.connection.stop_monitoring()
        self.store.close()
        self._started = False


def build_remote_store(settings: Settings) -> RemoteDocumentStore:
    """Remote store for the configured provider."""
    if settings.remote_provider == "supabase":
        from hydraulics_core.data.supabase_client import (
            SupabaseDocumentStore,
            get_supabase_client,
        )
        client = get_supabase_client(settings.supabase)
        return SupabaseDocumentStore(client, table_prefix=settings.supabase.table_prefix)

    logger.info("Using in-memory remote store (local-only mode)")
    return InMemoryDocumentStore()


def build_app_services(
    settings: Optional[Settings] = None,
    remote_store: Optional[RemoteDocumentStore] = None,
    probe: Optional[Probe] = None,
    dispatcher: Optional[Dispatcher] = None,
    configure_logging: bool = False,
) -> AppServices:
    """
    Wire the service graph.

    Args:
        settings: Settings (default: load_settings())
        remote_store: Override the remote store (tests, embedding)
        probe: Override the connectivity probe
        dispatcher: Marshals cache notifications to the UI thread
        configure_logging: Call setup_logging() from settings first
    """
    settings = settings or load_settings()
    if configure_logging:
        setup_logging(settings.log_level, log_to_file=settings.log_to_file)

    sync = settings.sync
    remote = remote_store or build_remote_store(settings)

    if probe is None:
        probe = socket_probe(remote_hosts(settings.supabase.url), sync.connection_timeout)

    connection = ConnectionManager(
        probe=probe,
        restore_debounce=sync.connectivity_debounce_seconds,
        check_interval_online=sync.check_interval_online,
        check_interval_offline=sync.check_interval_offline,
    )
    store = MutationStore(settings.local_db_path)
    cache = PublishedCache(dispatcher=dispatcher)
    client = ReconciliationClient(remote)
    engine = SyncEngine(
        store,
        client,
        cache=cache,
        connection=connection,
        max_attempts=sync.max_attempts,
        sync_interval=sync.auto_sync_interval,
        purge_synced=sync.purge_synced,
    )

    validator = ValidationService(completion=settings.completion)
    common = dict(
        cache=cache,
        store=store,
        client=client,
        connection=connection,
        engine=engine,
        validator=validator,
        tombstone_ttl=timedelta(days=sync.tombstone_ttl_days),
    )

    return AppServices(
        settings=settings,
        connection=connection,
        store=store,
        cache=cache,
        client=client,
        sync_engine=engine,
        work_orders=WorkOrderService(**common),
        customers=CustomerService(**common),
        users=UserService(**common),
    )
