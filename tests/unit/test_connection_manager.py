# =============================================================================
# tests/unit/test_connection_manager.py
# Unit Tests for connectivity observation and debouncing
# =============================================================================

import threading

from hydraulics_core.offline.connection_manager import (
    PUBLIC_HOSTS,
    ConnectionManager,
    remote_hosts,
)


class FakeMonotonic:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestTransitions:
    """One event per state change"""

    def test_starts_connected(self, probe):
        assert ConnectionManager(probe=probe).is_connected

    def test_emits_once_per_change(self, connection):
        events = []
        connection.register_callback(events.append)

        connection.update_status(False)
        connection.update_status(False)
        connection.update_status(True)
        connection.update_status(True)

        assert [e.is_connected for e in events] == [False, True]

    def test_probe_result_drives_state(self, connection, probe):
        probe.online = False
        assert connection.check_connection() is False

        probe.online = True
        assert connection.check_connection() is True
        assert probe.calls == 2

    def test_probe_exception_defaults_to_connected(self, connection, probe):
        connection.update_status(False)
        probe.error = RuntimeError("network framework unavailable")

        assert connection.check_connection() is True

    def test_failing_callback_does_not_block_others(self, connection):
        received = []

        def broken(event):
            raise ValueError("listener bug")

        connection.register_callback(broken)
        connection.register_callback(received.append)

        connection.update_status(False)

        assert len(received) == 1


class TestDebounce:
    """Restoration events are rate limited"""

    def test_flap_within_window_defers_restoration(self, probe):
        clock = FakeMonotonic()
        manager = ConnectionManager(probe=probe, restore_debounce=0.2, monotonic=clock)
        restored = []
        fired = threading.Event()

        def on_event(event):
            if event.is_connected:
                restored.append(event.source)
                fired.set()

        manager.register_callback(on_event)

        manager.update_status(False)
        manager.update_status(True)          # first restoration: immediate
        manager.update_status(False)
        clock.now += 0.05
        fired.clear()
        manager.update_status(True)          # inside window: deferred

        assert restored == ["platform"]
        assert fired.wait(timeout=5)
        assert restored == ["platform", "debounced"]
        manager.stop_monitoring()

    def test_deferred_restoration_dropped_if_offline_again(self, probe):
        """Listeners never see two offline events in a row"""
        clock = FakeMonotonic()
        manager = ConnectionManager(probe=probe, restore_debounce=0.1, monotonic=clock)
        events = []
        manager.register_callback(events.append)

        manager.update_status(False)
        manager.update_status(True)
        manager.update_status(False)
        manager.update_status(True)          # deferred
        manager.update_status(False)         # cancels it

        threading.Event().wait(0.3)

        assert [e.is_connected for e in events] == [False, True, False]
        manager.stop_monitoring()

    def test_restoration_after_window_is_immediate(self, probe):
        clock = FakeMonotonic()
        manager = ConnectionManager(probe=probe, restore_debounce=2.0, monotonic=clock)
        events = []
        manager.register_callback(events.append)

        manager.update_status(False)
        manager.update_status(True)
        manager.update_status(False)
        clock.now += 2.5
        manager.update_status(True)

        assert [e.is_connected for e in events] == [False, True, False, True]
        assert events[-1].source == "platform"

    def test_restoration_after_suppressed_flap_still_emitted(self, probe):
        clock = FakeMonotonic()
        manager = ConnectionManager(probe=probe, restore_debounce=2.0, monotonic=clock)
        events = []
        manager.register_callback(events.append)

        manager.update_status(False)
        manager.update_status(True)
        manager.update_status(False)
        manager.update_status(True)          # deferred
        manager.update_status(False)         # no second offline event
        clock.now += 2.5
        manager.update_status(True)

        assert [e.is_connected for e in events] == [False, True, False, True]
        manager.stop_monitoring()


class TestProbeHosts:
    def test_remote_url_host_is_probed(self):
        assert remote_hosts("https://abc.supabase.co") == [("abc.supabase.co", 443)]
        assert remote_hosts("http://localhost:54321") == [("localhost", 54321)]

    def test_public_hosts_without_url(self):
        assert remote_hosts("") == list(PUBLIC_HOSTS)

    def test_status_display(self, connection):
        connection.update_status(False)
        display = connection.get_status_display()

        assert display["is_connected"] is False
        assert display["last_change"] is not None
