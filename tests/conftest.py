# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional
from unittest.mock import MagicMock

import pytest

from hydraulics_core.data.remote_store import InMemoryDocumentStore
from hydraulics_core.models import Customer, WorkOrder, WorkOrderItem


# =============================================================================
# CLOCK / CONNECTIVITY FAKES
# =============================================================================

class FakeClock:
    """Deterministic clock; every call advances by `step` seconds."""

    def __init__(self, start: Optional[datetime] = None, step: float = 1.0):
        self.current = start or datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc)
        self.step = timedelta(seconds=step)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


class ScriptedProbe:
    """Connectivity probe whose answer the test controls."""

    def __init__(self, online: bool = True):
        self.online = online
        self.error: Optional[Exception] = None
        self.calls = 0

    def __call__(self) -> bool:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.online


class RecordingRemote(InMemoryDocumentStore):
    """In-memory remote that records writes and can fail per entity id."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        self.query_error: Optional[Exception] = None
        self.block: Optional[threading.Event] = None
        self.entered = threading.Event()

    def _maybe_fail(self, doc_id: str) -> None:
        self.entered.set()
        if self.block is not None:
            self.block.wait(timeout=5)
        error = self.failures.get(doc_id)
        if error is not None:
            raise error

    def set(self, collection: str, doc_id: str, fields: Mapping[str, Any], merge: bool = False) -> None:
        self.calls.append(("set", collection, doc_id, merge))
        self._maybe_fail(doc_id)
        super().set(collection, doc_id, fields, merge=merge)

    def delete(self, collection: str, doc_id: str) -> None:
        self.calls.append(("delete", collection, doc_id))
        self._maybe_fail(doc_id)
        super().delete(collection, doc_id)

    def query(self, collection: str, filters=None):
        if self.query_error is not None:
            raise self.query_error
        return super().query(collection, filters)

    def writes_for(self, doc_id: str) -> List[tuple]:
        return [call for call in self.calls if call[2] == doc_id]


# =============================================================================
# CORE COMPONENT FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def probe():
    return ScriptedProbe(online=True)


@pytest.fixture
def remote():
    return RecordingRemote()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "local_data" / "workorders.db"


@pytest.fixture
def store(db_path, clock):
    from hydraulics_core.offline.mutation_store import MutationStore

    store = MutationStore(db_path, clock=clock)
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def connection(probe):
    from hydraulics_core.offline.connection_manager import ConnectionManager

    manager = ConnectionManager(probe=probe, restore_debounce=0.0)
    yield manager
    manager.stop_monitoring()


@pytest.fixture
def cache():
    from hydraulics_core.offline.published_cache import PublishedCache

    return PublishedCache()


@pytest.fixture
def client(remote):
    from hydraulics_core.offline.reconciliation import ReconciliationClient

    return ReconciliationClient(remote)


@pytest.fixture
def engine(store, client, cache, connection, clock):
    from hydraulics_core.offline.sync_engine import SyncEngine

    engine = SyncEngine(
        store,
        client,
        cache=cache,
        connection=connection,
        max_attempts=3,
        sync_interval=0,
        clock=clock,
    )
    yield engine
    engine.stop()


@pytest.fixture
def service_kwargs(cache, store, client, connection, clock):
    """Shared constructor arguments for entity services (no auto-sync trigger)."""
    return dict(
        cache=cache,
        store=store,
        client=client,
        connection=connection,
        engine=None,
        clock=clock,
    )


@pytest.fixture
def work_orders(service_kwargs):
    from hydraulics_core.offline.entity_service import WorkOrderService

    return WorkOrderService(**service_kwargs)


@pytest.fixture
def customers(service_kwargs):
    from hydraulics_core.offline.entity_service import CustomerService

    return CustomerService(**service_kwargs)


@pytest.fixture
def users(service_kwargs):
    from hydraulics_core.offline.entity_service import UserService

    return UserService(**service_kwargs)


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_customer():
    return Customer(
        id="cust-1",
        name="Gulf Coast Marine",
        phone_number="239-246-7352",
        company="GCM LLC",
        email="service@gcm.example.com",
    )


@pytest.fixture
def sample_work_order(sample_customer):
    return WorkOrder(
        id="wo-1",
        customer_id=sample_customer.id,
        customer_name=sample_customer.name,
        customer_phone=sample_customer.phone_number,
        work_order_type="Intake",
        items=[
            WorkOrderItem(
                id="item-1",
                type="Cylinder",
                reasons_for_service=["Leaking"],
                dropdowns={"size": "3in", "color": "Black"},
            )
        ],
    )


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_supabase():
    """Mock Supabase client; chained table calls all return the same builder."""
    mock_client = MagicMock()
    builder = MagicMock()
    mock_client.table.return_value = builder
    for method in ("select", "eq", "limit", "order", "range", "upsert", "delete"):
        getattr(builder, method).return_value = builder
    builder.execute.return_value.data = []
    return mock_client
