# =============================================================================
# tests/integration/test_offline_sync_scenario.py
# Integration Tests for the offline -> online flow (Edit → Journal → Replay)
# =============================================================================

import threading

import pytest

from hydraulics_core.bootstrap import build_app_services
from hydraulics_core.config import Settings, SyncSettings
from hydraulics_core.models import Customer, WorkOrder, WorkOrderItem
from hydraulics_core.offline.sync_engine import SyncStatus


def idle_waiter(services):
    """Event set when the next sync pass finishes."""
    done = threading.Event()

    def on_state(state):
        if state.status == SyncStatus.IDLE:
            done.set()

    services.sync_engine.register_callback(on_state)
    return done


class TestOfflineSyncIntegration:
    """
    Integration tests for the complete offline flow.

    Tests the flow:
    1. Edits made while offline land in the cache and the journal
    2. Connectivity restoration triggers one sync pass
    3. The remote store ends up with the latest version of every entity
    4. Pending work survives a restart and is resumed at launch
    """

    @pytest.fixture
    def settings(self, tmp_path):
        return Settings(
            local_db_path=tmp_path / "local_data" / "workorders.db",
            sync=SyncSettings(auto_sync_interval=0, connectivity_debounce_seconds=0),
        )

    @pytest.fixture
    def services(self, settings, remote, probe):
        services = build_app_services(settings, remote_store=remote, probe=probe)
        services.start(monitor_connectivity=False)
        yield services
        services.stop()

    def test_offline_edits_replay_on_reconnect(self, services, remote):
        services.connection.update_status(False)

        customer = services.customers.create(
            Customer(id="cust-1", name="Gulf Coast Marine", phone_number="2392467352")
        )
        services.work_orders.check_in(
            WorkOrder(
                id="wo-1",
                customer_id=customer.id,
                customer_name=customer.name,
                customer_phone=customer.phone_number,
                items=[WorkOrderItem(id="item-1", type="Cylinder", reasons_for_service=["Leaking"])],
            ),
            by="maria",
        )
        services.work_orders.add_note("wo-1", "Customer waiting", "maria")
        services.work_orders.change_item_status("wo-1", "item-1", "Disassembly", "maria")

        assert remote.calls == []
        assert services.sync_engine.status_message == "2 changes pending sync"
        assert services.work_orders.is_pending("wo-1")

        done = idle_waiter(services)
        services.connection.update_status(True)
        assert done.wait(timeout=10)

        stored = remote.get("workOrders", "wo-1")
        assert stored["notes"][-1]["text"] == "Status changed to Disassembly"
        assert stored["items"][0]["statusHistory"][-1]["status"] == "Disassembly"
        assert len(remote.writes_for("wo-1")) == 1
        assert remote.get("customers", "cust-1")["name"] == "Gulf Coast Marine"

        assert services.store.pending_count() == 0
        assert services.sync_engine.status_message == "All changes synced"
        assert not services.work_orders.is_pending("wo-1")

    def test_pending_work_resumed_after_restart(self, settings, remote, probe):
        first = build_app_services(settings, remote_store=remote, probe=probe)
        first.start(monitor_connectivity=False)
        first.connection.update_status(False)
        first.customers.create(Customer(id="cust-1", name="Ann", phone_number="2392467352"))
        first.stop()

        second = build_app_services(settings, remote_store=remote, probe=probe)
        done = idle_waiter(second)
        try:
            second.start(monitor_connectivity=False)
            assert done.wait(timeout=10)
        finally:
            second.stop()

        assert remote.get("customers", "cust-1")["name"] == "Ann"

    def test_refresh_all_after_sync(self, services, remote):
        remote.set("users", "u1", {"id": "u1", "displayName": "Jose Ortiz", "role": "manager"})

        results = services.refresh_all()

        assert all(results.values())
        assert [u.display_name for u in services.users.list()] == ["Jose Ortiz"]

    def test_refresh_failure_is_isolated_per_collection(self, services, remote):
        from hydraulics_core.errors import NetworkUnavailableError

        remote.query_error = NetworkUnavailableError("offline")

        results = services.refresh_all()

        assert not any(results.values())
        assert results["customers"].error_code == "REMOTE_001"
