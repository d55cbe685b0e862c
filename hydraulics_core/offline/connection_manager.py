# =============================================================================
# hydraulics_core/offline/connection_manager.py
# Connection Status Detection and Management
# =============================================================================
"""
ConnectionManager - tracks whether the remote store is reachable.

Features:
- Boolean connected state, connected until proven otherwise
- One event per state change, pushed or probed
- Debounced restoration events (flapping links do not storm the sync loop)
- Periodic background probing
- Event callbacks for status changes
"""

from __future__ import annotations
import socket
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse
import logging

logger = logging.getLogger(__name__)

Probe = Callable[[], bool]

# Fallback hosts when no remote URL is configured
PUBLIC_HOSTS: Sequence[Tuple[str, int]] = (
    ("8.8.8.8", 53),        # Google DNS
    ("1.1.1.1", 53),        # Cloudflare DNS
    ("208.67.222.222", 53), # OpenDNS
)


@dataclass
class ConnectionEvent:
    """A connectivity transition delivered to callbacks."""
    is_connected: bool
    timestamp: datetime
    source: str = "probe"

    @property
    def restored(self) -> bool:
        return self.is_connected


def socket_probe(hosts: Sequence[Tuple[str, int]], timeout: float) -> Probe:
    """
    Build a probe that succeeds if any host accepts a TCP connection.

    Socket failures mean "offline"; they are not raised.
    """
    def probe() -> bool:
        for host, port in hosts:
            try:
                with socket.create_connection((host, port), timeout=timeout):
                    return True
            except OSError:
                continue
        return False

    return probe


def remote_hosts(remote_url: Optional[str]) -> List[Tuple[str, int]]:
    """Host/port to probe for a remote URL, else the public resolvers."""
    if remote_url:
        parsed = urlparse(remote_url)
        if parsed.hostname:
            default_port = 80 if parsed.scheme == "http" else 443
            return [(parsed.hostname, parsed.port or default_port)]
    return list(PUBLIC_HOSTS)


class ConnectionManager:
    """
    Connectivity observer.

    Usage:
        manager = ConnectionManager(probe=socket_probe(remote_hosts(url), 5))
        manager.register_callback(on_change)
        manager.initialize()
        if manager.is_connected:
            ...
    """

    CHECK_INTERVAL_ONLINE = 30      # Seconds between checks when online
    CHECK_INTERVAL_OFFLINE = 10     # Seconds between checks when offline
    CONNECTION_TIMEOUT = 5          # Timeout for connection tests
    RESTORE_DEBOUNCE = 2.0          # Minimum seconds between restoration events

    def __init__(
        self,
        probe: Optional[Probe] = None,
        restore_debounce: Optional[float] = None,
        check_interval_online: Optional[float] = None,
        check_interval_offline: Optional[float] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._probe = probe or socket_probe(PUBLIC_HOSTS, self.CONNECTION_TIMEOUT)
        self.restore_debounce = (
            self.RESTORE_DEBOUNCE if restore_debounce is None else restore_debounce
        )
        self.check_interval_online = check_interval_online or self.CHECK_INTERVAL_ONLINE
        self.check_interval_offline = check_interval_offline or self.CHECK_INTERVAL_OFFLINE
        self._monotonic = monotonic

        self._is_connected = True
        self._last_emitted = True
        self._state_lock = threading.RLock()
        self._last_restore_emitted: Optional[float] = None
        self._deferred_restore: Optional[threading.Timer] = None
        self._callbacks: List[Callable[[ConnectionEvent], None]] = []
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()
        self._initialized = False
        self.last_check: Optional[datetime] = None
        self.last_change: Optional[datetime] = None

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    def initialize(self, start_monitoring: bool = True) -> None:
        """
        Take an initial reading and optionally start background monitoring.
        """
        if self._initialized:
            return

        self.check_connection()
        if start_monitoring:
            self.start_monitoring()

        self._initialized = True
        logger.info(
            f"ConnectionManager initialized. Connected: {self._is_connected}"
        )

    def check_connection(self) -> bool:
        """
        Probe reachability and update state.

        A probe that raises (platform API unavailable) counts as connected.
        """
        self.last_check = datetime.now(timezone.utc)
        try:
            connected = bool(self._probe())
        except Exception as e:
            logger.warning(f"Connectivity probe unavailable, assuming connected: {e}")
            connected = True
        self._apply_status(connected, source="probe")
        return self._is_connected

    def update_status(self, connected: bool, source: str = "platform") -> None:
        """Push a reachability reading from a platform network callback."""
        self._apply_status(bool(connected), source=source)

    def _apply_status(self, connected: bool, source: str) -> None:
        with self._state_lock:
            if connected == self._is_connected:
                return

            self._is_connected = connected
            self.last_change = datetime.now(timezone.utc)
            logger.info(
                f"Connection status changed: "
                f"{'offline -> online' if connected else 'online -> offline'} ({source})"
            )

            if not connected:
                self._cancel_deferred_restore()
                # no repeat offline event when the restore was held back
                emit = self._last_emitted
            else:
                now = self._monotonic()
                elapsed = (
                    None if self._last_restore_emitted is None
                    else now - self._last_restore_emitted
                )
                emit = elapsed is None or elapsed >= self.restore_debounce
                if emit:
                    self._last_restore_emitted = now
                else:
                    self._schedule_deferred_restore(self.restore_debounce - elapsed)

            if emit:
                self._last_emitted = connected

        if emit:
            self._notify_callbacks(ConnectionEvent(connected, self.last_change, source))

    def _schedule_deferred_restore(self, delay: float) -> None:
        """Emit a suppressed restoration once the debounce window has passed."""
        self._cancel_deferred_restore()
        logger.debug(f"Restoration event debounced for {delay:.2f}s")
        timer = threading.Timer(delay, self._emit_deferred_restore)
        timer.daemon = True
        self._deferred_restore = timer
        timer.start()

    def _cancel_deferred_restore(self) -> None:
        if self._deferred_restore is not None:
            self._deferred_restore.cancel()
            self._deferred_restore = None

    def _emit_deferred_restore(self) -> None:
        with self._state_lock:
            self._deferred_restore = None
            if not self._is_connected:
                return
            self._last_restore_emitted = self._monotonic()
            self._last_emitted = True
            event = ConnectionEvent(True, datetime.now(timezone.utc), "debounced")
        self._notify_callbacks(event)

    def start_monitoring(self) -> None:
        """Start background connection monitoring."""
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ConnectionMonitor"
        )
        self._monitor_thread.start()
        logger.debug("Connection monitoring started")

    def stop_monitoring(self) -> None:
        """Stop background monitoring and any pending debounced event."""
        self._stop_monitoring.set()
        with self._state_lock:
            self._cancel_deferred_restore()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5)
        logger.debug("Connection monitoring stopped")

    def _monitoring_loop(self) -> None:
        while not self._stop_monitoring.is_set():
            interval = (
                self.check_interval_online
                if self._is_connected
                else self.check_interval_offline
            )

            if self._stop_monitoring.wait(timeout=interval):
                break

            try:
                self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

    def register_callback(self, callback: Callable[[ConnectionEvent], None]) -> None:
        """
        Register a callback for connection status changes.

        Args:
            callback: Function called with a ConnectionEvent on each transition
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[ConnectionEvent], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self, event: ConnectionEvent) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}", exc_info=True)

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "is_connected": self._is_connected,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "last_change": self.last_change.isoformat() if self.last_change else None,
        }
