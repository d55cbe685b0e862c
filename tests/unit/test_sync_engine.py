# =============================================================================
# tests/unit/test_sync_engine.py
# Unit Tests for the SyncEngine replay loop
# =============================================================================

import threading
from unittest.mock import patch

import pytest

from hydraulics_core.errors import NetworkUnavailableError, RemoteRejectedError, RemoteStoreError
from hydraulics_core.offline.mutation_store import ChangeType, Mutation
from hydraulics_core.offline.sync_engine import SyncStatus, collapse_pending


def _doc(entity_id, **fields):
    return {"id": entity_id, "name": "Customer", "phoneNumber": "2392467352", **fields}


class TestCollapsePending:
    """Supersede collapse"""

    def test_keeps_latest_per_entity_in_enqueue_order(self, clock):
        a1 = Mutation("customers", "a", ChangeType.CREATE, {}, enqueued_at=clock(), seq=1)
        b1 = Mutation("customers", "b", ChangeType.CREATE, {}, enqueued_at=clock(), seq=2)
        a2 = Mutation("customers", "a", ChangeType.UPDATE, {}, enqueued_at=clock(), seq=3)

        survivors = collapse_pending([a1, b1, a2])

        assert [(m.entity_id, m.seq) for m in survivors] == [("b", 2), ("a", 3)]

    def test_seq_breaks_timestamp_ties(self, clock):
        when = clock()
        first = Mutation("customers", "a", ChangeType.UPDATE, {"v": 1}, enqueued_at=when, seq=4)
        second = Mutation("customers", "a", ChangeType.UPDATE, {"v": 2}, enqueued_at=when, seq=5)

        assert collapse_pending([second, first]) == [second]


class TestSyncPass:
    """Replay behaviour of a single pass"""

    def test_update_update_delete_applies_only_delete(self, engine, store, remote):
        """Superseded mutations are never sent"""
        remote.set("customers", "c1", _doc("c1"))
        remote.calls.clear()
        store.enqueue("customers", "c1", ChangeType.UPDATE, _doc("c1", name="A"))
        store.enqueue("customers", "c1", ChangeType.UPDATE, _doc("c1", name="B"))
        store.enqueue("customers", "c1", ChangeType.DELETE, {"id": "c1"})

        report = engine.sync_now()

        assert remote.calls == [("delete", "customers", "c1")]
        assert report.superseded == 2
        assert report.applied == ["c1"]
        assert store.pending_mutations() == []
        assert remote.get("customers", "c1") is None

    def test_replaying_create_twice_leaves_one_document(self, engine, store, remote, client):
        """Creates are idempotent by client id"""
        mutation = store.enqueue("customers", "c1", ChangeType.CREATE, _doc("c1"))

        assert client.apply(mutation)  # crashed before mark_synced
        engine.sync_now()

        assert remote.query("customers") == [_doc("c1")]
        assert store.pending_count() == 0

    def test_partial_failure_isolated(self, engine, store, remote):
        """One network failure does not block the other entities"""
        for entity_id in ("c1", "c2", "c3"):
            store.enqueue("customers", entity_id, ChangeType.CREATE, _doc(entity_id))
        remote.failures["c2"] = NetworkUnavailableError("offline")

        report = engine.sync_now()

        assert sorted(report.applied) == ["c1", "c3"]
        assert report.failed == {"c2": "network_unavailable"}
        assert [m.entity_id for m in store.pending_mutations()] == ["c2"]
        assert store.pending_mutations()[0].attempts == 0

    def test_failed_mutation_retried_on_next_trigger(self, engine, store, remote):
        store.enqueue("customers", "c1", ChangeType.CREATE, _doc("c1"))
        remote.failures["c1"] = NetworkUnavailableError("offline")
        engine.sync_now()

        del remote.failures["c1"]
        report = engine.sync_now()

        assert report.applied == ["c1"]
        assert engine.state.status_message == "All changes synced"

    def test_rejected_mutation_escalates_immediately(self, engine, store, remote):
        store.enqueue("customers", "c1", ChangeType.CREATE, _doc("c1"))
        remote.failures["c1"] = RemoteRejectedError("permission denied")

        report = engine.sync_now()

        assert report.escalated == ["c1"]
        assert store.pending_mutations() == []
        assert store.needs_attention()[0].last_error == "permission denied"

    def test_unknown_error_escalates_at_retry_ceiling(self, engine, store, remote):
        """max_attempts is 3 in the fixture"""
        store.enqueue("customers", "c1", ChangeType.CREATE, _doc("c1"))
        remote.failures["c1"] = RemoteStoreError("server exploded")

        engine.sync_now()
        engine.sync_now()
        assert store.pending_count() == 1

        report = engine.sync_now()

        assert report.escalated == ["c1"]
        assert store.pending_count() == 0
        assert engine.state.needs_attention_count == 1

    def test_retry_escalated_puts_work_back(self, engine, store, remote):
        store.enqueue("customers", "c1", ChangeType.CREATE, _doc("c1"))
        remote.failures["c1"] = RemoteRejectedError("denied")
        engine.sync_now()
        del remote.failures["c1"]

        assert engine.retry_escalated("c1") == 1
        assert engine.sync_now().applied == ["c1"]

    def test_retry_never_replays_change_older_than_synced_one(self, engine, store, remote):
        """A rejected change stays dead once a newer change for the entity syncs"""
        store.enqueue("customers", "c1", ChangeType.UPDATE, _doc("c1", name="OLD"))
        remote.failures["c1"] = RemoteRejectedError("denied")
        engine.sync_now()
        del remote.failures["c1"]

        store.enqueue("customers", "c1", ChangeType.UPDATE, _doc("c1", name="NEW"))
        engine.sync_now()

        assert remote.get("customers", "c1")["name"] == "NEW"
        assert engine.state.needs_attention_count == 0

        assert engine.retry_escalated("c1") == 0
        engine.sync_now()

        assert remote.get("customers", "c1")["name"] == "NEW"

    def test_ceiling_escalation_is_not_reported_as_rejection(self, engine, store, remote):
        store.enqueue("customers", "c1", ChangeType.CREATE, _doc("c1"))
        remote.failures["c1"] = RemoteStoreError("server exploded")

        with patch("hydraulics_core.offline.sync_engine.handle_error") as handle_error:
            for _ in range(3):
                engine.sync_now()

        handle_error.assert_called_once()
        reported = handle_error.call_args.args[0]
        assert reported.code == "REMOTE_000"
        assert not isinstance(reported, RemoteRejectedError)
        assert reported.details["rejected"] is False

    def test_skipped_when_offline(self, engine, store, connection):
        store.enqueue("customers", "c1", ChangeType.CREATE, _doc("c1"))
        connection.update_status(False)

        report = engine.sync_now()

        assert report.skipped
        assert report.skip_reason == "offline"
        assert store.pending_count() == 1

    def test_cache_marked_synced_after_replay(self, engine, store, cache):
        from hydraulics_core.models import Customer

        customer = Customer(id="c1", name="Customer", phone_number="2392467352")
        cache.apply_local("customers", customer)
        store.enqueue("customers", "c1", ChangeType.CREATE, customer.to_document())

        engine.sync_now()

        assert not cache.is_pending("customers", "c1")

    def test_status_message_counts_pending_entities(self, engine, store, connection):
        connection.update_status(False)
        store.enqueue("customers", "c1", ChangeType.CREATE, _doc("c1"))
        store.enqueue("customers", "c1", ChangeType.UPDATE, _doc("c1"))
        store.enqueue("customers", "c2", ChangeType.CREATE, _doc("c2"))

        assert engine.status_message == "2 changes pending sync"


class TestReentrancyGuard:
    """At most one pass at a time"""

    def test_second_trigger_is_a_noop_while_syncing(self, engine, store, remote):
        store.enqueue("customers", "c1", ChangeType.CREATE, _doc("c1"))
        remote.block = threading.Event()
        states = []
        engine.register_callback(lambda state: states.append(state.status))

        worker = threading.Thread(target=engine.sync_now)
        worker.start()
        assert remote.entered.wait(timeout=5)

        second = engine.sync_now(reason="connectivity")
        assert engine.is_syncing

        remote.block.set()
        worker.join(timeout=5)

        assert second.skipped
        assert second.skip_reason == "already_syncing"
        assert len(remote.writes_for("c1")) == 1
        assert states == [SyncStatus.SYNCING, SyncStatus.IDLE]
        assert not engine.is_syncing


class TestTriggers:
    """Connectivity and launch triggers"""

    def test_connectivity_restoration_triggers_sync(self, engine, store, connection, remote):
        engine.initialize()
        connection.update_status(False)
        store.enqueue("customers", "c1", ChangeType.CREATE, _doc("c1"))
        done = threading.Event()
        engine.register_callback(
            lambda state: done.set() if state.status == SyncStatus.IDLE else None
        )

        connection.update_status(True)

        assert done.wait(timeout=5)
        assert remote.get("customers", "c1") is not None

    def test_resume_pending_only_with_work(self, engine, store, remote):
        assert engine.resume_pending() is None

        store.enqueue("customers", "c1", ChangeType.CREATE, _doc("c1"))
        thread = engine.resume_pending()
        thread.join(timeout=5)

        assert remote.get("customers", "c1") is not None

    def test_last_success_persisted(self, engine, store):
        engine.sync_now()

        assert store.get_setting("last_sync_success") is not None
