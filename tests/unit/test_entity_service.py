# =============================================================================
# tests/unit/test_entity_service.py
# Unit Tests for the entity write/read services
# =============================================================================

from dataclasses import replace
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from hydraulics_core.errors import (
    DataValidationError,
    LocalStoreError,
    NetworkUnavailableError,
    RemoteRejectedError,
    StatusTransitionError,
)
from hydraulics_core.models import ItemStatus, User, WorkOrder, WorkOrderItem
from hydraulics_core.offline.mutation_store import ChangeType


class TestWritePath:
    """Direct write vs journal"""

    def test_online_create_writes_through(self, customers, sample_customer, remote, store):
        customers.create(sample_customer)

        assert remote.get("customers", "cust-1")["name"] == "Gulf Coast Marine"
        assert store.pending_count() == 0
        assert not customers.is_pending("cust-1")

    def test_offline_create_is_journaled(self, customers, sample_customer, connection, remote, store):
        connection.update_status(False)

        customers.create(sample_customer)

        assert remote.calls == []
        assert store.pending_count() == 1
        assert customers.is_pending("cust-1")
        assert customers.get("cust-1").name == "Gulf Coast Marine"

    def test_transient_remote_failure_falls_back_to_journal(
        self, customers, sample_customer, remote, store
    ):
        remote.failures["cust-1"] = NetworkUnavailableError("timed out")

        customers.create(sample_customer)

        assert store.pending_count() == 1
        assert customers.is_pending("cust-1")

    def test_queued_changes_block_direct_write(
        self, customers, sample_customer, connection, remote, store
    ):
        """Older journal entries for the entity replay first"""
        connection.update_status(False)
        customers.create(sample_customer)
        connection.update_status(True)

        customers.update(replace(sample_customer, company="Renamed"))

        assert remote.calls == []
        assert len(store.mutations_for("cust-1")) == 2

    def test_direct_write_retires_escalated_changes(self, customers, sample_customer, store):
        """A stale escalated change cannot be retried over a newer direct write"""
        stale = store.enqueue("customers", "cust-1", ChangeType.CREATE, {"id": "cust-1"})
        store.escalate("cust-1", stale.seq, "denied")

        customers.create(sample_customer)

        assert store.needs_attention() == []
        assert store.requeue("cust-1") == 0

    def test_update_restamps_modification_time(self, customers, sample_customer, clock):
        created = customers.create(sample_customer)
        before = clock.current

        updated = customers.update(replace(created, email="ops@gcm.example.com"))

        assert updated.last_modified >= before

    def test_enqueue_requests_sync_when_connected(self, service_kwargs, sample_customer, remote):
        from hydraulics_core.offline.entity_service import CustomerService

        engine = MagicMock()
        remote.failures["cust-1"] = NetworkUnavailableError("flaky")
        service = CustomerService(**{**service_kwargs, "engine": engine})

        service.create(sample_customer)

        engine.request_sync.assert_called_once_with(reason="local_change")


class TestRollback:
    """Optimistic changes are undone on failure"""

    def test_local_store_failure_rolls_back_and_raises(self, service_kwargs, sample_customer, connection):
        from hydraulics_core.offline.entity_service import CustomerService

        connection.update_status(False)
        broken_store = MagicMock()
        broken_store.enqueue.side_effect = LocalStoreError(operation="enqueue")
        service = CustomerService(**{**service_kwargs, "store": broken_store})

        with pytest.raises(LocalStoreError) as exc_info:
            service.create(sample_customer)

        assert exc_info.value.message == "Unable to save changes locally"
        assert service.get("cust-1") is None
        assert not service.is_pending("cust-1")

    def test_local_store_failure_restores_previous_version(
        self, service_kwargs, sample_customer, connection, cache
    ):
        from hydraulics_core.offline.entity_service import CustomerService

        cache.apply_local("customers", sample_customer, pending=False)
        connection.update_status(False)
        broken_store = MagicMock()
        broken_store.enqueue.side_effect = LocalStoreError()
        service = CustomerService(**{**service_kwargs, "store": broken_store})

        with pytest.raises(LocalStoreError):
            service.update(replace(sample_customer, name="Changed"))

        assert service.get("cust-1").name == "Gulf Coast Marine"

    def test_remote_rejection_of_direct_write_rolls_back(self, customers, sample_customer, remote, store):
        remote.failures["cust-1"] = RemoteRejectedError("row level security")

        with pytest.raises(RemoteRejectedError):
            customers.create(sample_customer)

        assert customers.get("cust-1") is None
        assert store.pending_count() == 0

    def test_invalid_entity_never_reaches_cache(self, customers, sample_customer):
        with pytest.raises(DataValidationError):
            customers.create(replace(sample_customer, phone_number="abc"))

        assert customers.get("cust-1") is None


class TestDeleteAndRefresh:
    """Hard delete, tombstones and remote refresh"""

    def test_delete_removes_remotely_and_tombstones(self, customers, sample_customer, remote, store):
        customers.create(sample_customer)

        customers.delete("cust-1")

        assert remote.get("customers", "cust-1") is None
        assert customers.get("cust-1") is None
        assert store.tombstoned_ids("customers") == {"cust-1"}

    def test_tombstone_stops_stale_listing_resurrecting(
        self, customers, sample_customer, remote, connection
    ):
        connection.update_status(False)
        customers.create(sample_customer)
        customers.delete("cust-1")
        # a listing fetched before the delete replays
        remote.set("customers", "cust-1", sample_customer.to_document())
        connection.update_status(True)

        customers.refresh()

        assert customers.get("cust-1") is None

    def test_refresh_skips_undecodable_documents(self, customers, remote, sample_customer):
        remote.set("customers", "cust-1", sample_customer.to_document())
        remote.set("customers", "broken", {"name": "no id"})

        stats = customers.refresh()

        assert [c.id for c in customers.list()] == ["cust-1"]
        assert stats.inserted == 1

    def test_refresh_propagates_remote_errors(self, customers, remote):
        remote.query_error = NetworkUnavailableError("offline")

        with pytest.raises(NetworkUnavailableError):
            customers.refresh()


class TestWorkOrders:
    """Work order operations"""

    def test_check_in_numbers_and_seeds_history(self, work_orders, sample_work_order):
        sample_work_order.work_order_number = ""

        created = work_orders.check_in(sample_work_order, by="maria")

        assert created.work_order_number == "250314-001"
        assert created.created_by == "maria"
        assert created.items[0].resolved_status == ItemStatus.CHECKED_IN.value

    def test_second_check_in_same_day_increments(self, work_orders, sample_work_order):
        sample_work_order.work_order_number = ""
        work_orders.check_in(sample_work_order, by="maria")

        second = WorkOrder(
            id="wo-2",
            customer_name="Other",
            customer_phone="2395550100",
            items=[WorkOrderItem(type="Pump", reasons_for_service=["Noise"])],
        )

        assert work_orders.check_in(second, by="maria").work_order_number == "250314-002"

    def test_add_note_to_item(self, work_orders, sample_work_order):
        work_orders.check_in(sample_work_order, by="maria")

        updated = work_orders.add_note("wo-1", "  Seal kit ordered ", "maria", item_id="item-1")

        assert updated.item("item-1").notes[-1].text == "Seal kit ordered"
        assert updated.last_modified_by == "maria"

    def test_empty_note_rejected(self, work_orders, sample_work_order):
        work_orders.check_in(sample_work_order, by="maria")

        with pytest.raises(DataValidationError):
            work_orders.add_note("wo-1", "   ", "maria")

    def test_change_item_status_appends_history_and_note(self, work_orders, sample_work_order):
        work_orders.check_in(sample_work_order, by="maria")

        updated = work_orders.change_item_status("wo-1", "item-1", "In Progress", "jose")

        item = updated.item("item-1")
        assert item.resolved_status == "In Progress"
        assert updated.notes[-1].text == "Status changed to In Progress"

    def test_complete_requires_completion_details(self, work_orders, sample_work_order):
        work_orders.check_in(sample_work_order, by="maria")
        work_orders.change_item_status("wo-1", "item-1", "In Progress", "jose")

        with pytest.raises(DataValidationError) as exc_info:
            work_orders.change_item_status("wo-1", "item-1", "Complete", "jose")

        assert exc_info.value.details["errors"] == [
            "Parts Used is required",
            "Hours Worked is required",
            "Cost is required",
        ]
        assert work_orders.get("wo-1").item("item-1").resolved_status == "In Progress"

    def test_complete_writes_details_onto_item(self, work_orders, sample_work_order):
        work_orders.check_in(sample_work_order, by="maria")
        work_orders.change_item_status("wo-1", "item-1", "In Progress", "jose")

        updated = work_orders.change_item_status(
            "wo-1", "item-1", "Complete", "jose",
            parts_used=" Seal kit ", hours_worked="2.5", cost="180.00",
        )

        item = updated.item("item-1")
        assert item.resolved_status == "Complete"
        assert (item.parts_used, item.hours_worked, item.cost) == ("Seal kit", "2.5", "180.00")

    def test_disallowed_transition_raises(self, work_orders, sample_work_order):
        work_orders.check_in(sample_work_order, by="maria")
        work_orders.change_item_status("wo-1", "item-1", "Closed", "jose")

        with pytest.raises(StatusTransitionError):
            work_orders.change_item_status("wo-1", "item-1", "In Progress", "jose")

    def test_update_item_refuses_stale_schema(self, work_orders, sample_work_order):
        work_orders.check_in(sample_work_order, by="maria")
        stale = replace(sample_work_order.items[0], dropdown_schema_version=-5)

        with pytest.raises(DataValidationError):
            work_orders.update_item("wo-1", stale, by="maria")

    def test_attach_image_sets_primary(self, work_orders, sample_work_order):
        work_orders.check_in(sample_work_order, by="maria")

        updated = work_orders.attach_image(
            "wo-1", "item-1", "https://img/1.jpg", "maria", thumb_url="https://img/1_t.jpg"
        )

        assert updated.primary_image_url == "https://img/1.jpg"
        assert updated.item("item-1").thumb_urls == ["https://img/1_t.jpg"]

    def test_active_work_orders_hide_deleted_and_duplicates(self, work_orders, cache, clock):
        base = clock.current
        older = WorkOrder(id="a", work_order_number="250314-001", timestamp=base, last_modified=base)
        newer = replace(older, id="b", last_modified=base + timedelta(minutes=5))
        deleted = WorkOrder(id="c", work_order_number="250314-002", is_deleted=True)
        for wo in (older, newer, deleted):
            cache.apply_local("workOrders", wo, pending=False)

        assert [wo.id for wo in work_orders.active_work_orders()] == ["b"]

    def test_soft_delete_keeps_document(self, work_orders, sample_work_order, remote):
        work_orders.check_in(sample_work_order, by="maria")

        work_orders.soft_delete("wo-1", by="maria")

        assert remote.get("workOrders", "wo-1")["isDeleted"] is True
        assert work_orders.active_work_orders() == []


class TestCustomersAndUsers:
    def test_customer_search_by_phone_digits(self, customers, sample_customer):
        customers.create(sample_customer)

        assert [c.id for c in customers.search("246-7352")] == ["cust-1"]
        assert [c.id for c in customers.search("gcm")] == ["cust-1"]
        assert customers.search("nobody") == []

    def test_user_display_name_length(self, users):
        with pytest.raises(DataValidationError):
            users.create(User(display_name="J"))

    def test_deactivate_user(self, users):
        user = users.create(User(id="u1", display_name="Jose Ortiz"))

        deactivated = users.deactivate(user.id, by="admin")

        assert deactivated.is_active is False
        assert deactivated.updated_by_user_id == "admin"
