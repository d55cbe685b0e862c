# =============================================================================
# hydraulics_core/offline/sync_engine.py
# Mutation Replay / Synchronization Engine
# =============================================================================
"""
SyncEngine - drains the mutation journal into the remote store.

Features:
- At most one sync pass at a time (extra triggers are dropped, not queued)
- Supersede collapse: only the latest pending mutation per entity is sent
- Replay in enqueue order across entities
- One failing entity never blocks the rest of the pass
- Retry ceiling with escalation to "needs attention"
- Triggers: connectivity restored, manual, launch with pending work, and an
  optional periodic background pass
- Sync status tracking and event callbacks
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

from hydraulics_core.errors import RemoteRejectedError, RemoteStoreError, handle_error
from hydraulics_core.models.decoding import format_timestamp, parse_timestamp, utc_now
from hydraulics_core.offline.connection_manager import ConnectionEvent, ConnectionManager
from hydraulics_core.offline.mutation_store import Mutation, MutationStore
from hydraulics_core.offline.published_cache import PublishedCache
from hydraulics_core.offline.reconciliation import ReconciliationClient, SyncErrorKind

logger = logging.getLogger(__name__)

LAST_SYNC_SUCCESS_KEY = "last_sync_success"


class SyncStatus(Enum):
    IDLE = "idle"
    SYNCING = "syncing"


@dataclass
class SyncReport:
    """Outcome of one sync pass (or of a trigger that did not run one)."""
    reason: str = "manual"
    skipped: bool = False
    skip_reason: Optional[str] = None
    considered: int = 0
    superseded: int = 0
    applied: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    escalated: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return not self.skipped and not self.failed


@dataclass
class SyncState:
    """Current sync state."""
    status: SyncStatus = SyncStatus.IDLE
    last_sync: Optional[datetime] = None
    last_sync_success: Optional[datetime] = None
    pending_count: int = 0
    failed_count: int = 0
    needs_attention_count: int = 0
    total_synced: int = 0
    last_error: Optional[str] = None

    @property
    def is_syncing(self) -> bool:
        return self.status == SyncStatus.SYNCING

    @property
    def status_message(self) -> str:
        if self.pending_count == 0:
            return "All changes synced"
        noun = "change" if self.pending_count == 1 else "changes"
        return f"{self.pending_count} {noun} pending sync"


def collapse_pending(pending: List[Mutation]) -> List[Mutation]:
    """
    Keep the latest mutation per entity, ordered by enqueue time.

    Latest means greatest (enqueued_at, seq).
    """
    latest: Dict[str, Mutation] = {}
    for mutation in pending:
        current = latest.get(mutation.entity_id)
        if current is None or mutation.sort_key > current.sort_key:
            latest[mutation.entity_id] = mutation
    return sorted(latest.values(), key=lambda m: m.sort_key)


class SyncEngine:
    """
    Sync coordinator between the local journal and the remote store.

    Usage:
        engine = SyncEngine(store, client, cache, connection)
        engine.initialize()     # listen for connectivity restoration
        engine.start()          # optional periodic pass
        engine.sync_now()       # manual pass
    """

    SYNC_INTERVAL = 30          # Seconds between periodic passes
    MAX_RETRY_ATTEMPTS = 5      # Unknown-error attempts before escalation

    def __init__(
        self,
        store: MutationStore,
        client: ReconciliationClient,
        cache: Optional[PublishedCache] = None,
        connection: Optional[ConnectionManager] = None,
        max_attempts: Optional[int] = None,
        sync_interval: Optional[float] = None,
        purge_synced: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.client = client
        self.cache = cache
        self.connection = connection
        self.max_attempts = max_attempts or self.MAX_RETRY_ATTEMPTS
        self.sync_interval = self.SYNC_INTERVAL if sync_interval is None else sync_interval
        self.purge_synced = purge_synced
        self._clock = clock

        self._state = SyncState()
        self._sync_lock = threading.Lock()
        self._sync_thread: Optional[threading.Thread] = None
        self._stop_sync = threading.Event()
        self._callbacks: List[Callable[[SyncState], None]] = []
        self._initialized = False

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._state.is_syncing

    @property
    def pending_count(self) -> int:
        """Entities with changes not yet on the remote store."""
        return self.store.pending_count()

    @property
    def status_message(self) -> str:
        self._refresh_counts()
        return self._state.status_message

    def initialize(self) -> None:
        """Subscribe to connectivity changes and load persisted state."""
        if self._initialized:
            return

        if self.connection is not None:
            self.connection.register_callback(self._on_connection_change)

        last_success = self.store.get_setting(LAST_SYNC_SUCCESS_KEY)
        if last_success:
            self._state.last_sync_success = parse_timestamp(last_success)
        self._refresh_counts()

        self._initialized = True
        logger.info(f"SyncEngine initialized ({self._state.status_message})")

    # =========================================================================
    # TRIGGERS
    # =========================================================================

    def start(self) -> None:
        """Start the periodic background pass (no-op when the interval is 0)."""
        self.initialize()
        if self.sync_interval <= 0:
            return
        if self._sync_thread is not None and self._sync_thread.is_alive():
            return

        self._stop_sync.clear()
        self._sync_thread = threading.Thread(
            target=self._sync_loop,
            daemon=True,
            name="SyncEngine"
        )
        self._sync_thread.start()
        logger.info("Sync engine started")

    def stop(self) -> None:
        """Stop the background thread; a pass in flight runs to completion."""
        self._stop_sync.set()
        if self._sync_thread:
            self._sync_thread.join(timeout=10)
        if self.connection is not None:
            self.connection.unregister_callback(self._on_connection_change)
        self._initialized = False
        logger.info("Sync engine stopped")

    def _sync_loop(self) -> None:
        while not self._stop_sync.is_set():
            if self._stop_sync.wait(timeout=self.sync_interval):
                break
            if self.store.pending_count() == 0:
                continue
            try:
                self.sync_now(reason="periodic")
            except Exception as e:
                logger.error(f"Sync error: {e}", exc_info=True)

    def _on_connection_change(self, event: ConnectionEvent) -> None:
        if event.restored:
            logger.info("Connection restored, triggering sync")
            self.request_sync(reason="connectivity")

    def request_sync(self, reason: str = "manual") -> threading.Thread:
        """Run a pass on a short-lived background thread."""
        thread = threading.Thread(
            target=self._run_triggered,
            args=(reason,),
            daemon=True,
            name=f"SyncTrigger-{reason}",
        )
        thread.start()
        return thread

    def _run_triggered(self, reason: str) -> None:
        try:
            self.sync_now(reason=reason)
        except Exception as e:
            logger.error(f"Triggered sync ({reason}) failed: {e}", exc_info=True)

    def resume_pending(self) -> Optional[threading.Thread]:
        """Launch/foreground trigger: start a pass if the journal has work."""
        if self.store.pending_count() == 0:
            return None
        logger.info("Pending changes found at launch, triggering sync")
        return self.request_sync(reason="launch")

    # =========================================================================
    # SYNC PASS
    # =========================================================================

    def sync_now(self, reason: str = "manual") -> SyncReport:
        """
        Run one sync pass on the calling thread.

        Returns immediately with a skipped report when another pass holds the
        guard or the connection is down.
        """
        if not self._sync_lock.acquire(blocking=False):
            logger.debug(f"Sync already running, ignoring {reason} trigger")
            return SyncReport(reason=reason, skipped=True, skip_reason="already_syncing")

        try:
            if self.connection is not None and not self.connection.is_connected:
                logger.debug("Cannot sync: offline")
                return SyncReport(reason=reason, skipped=True, skip_reason="offline")
            return self._perform_sync(reason)
        finally:
            self._sync_lock.release()

    def _perform_sync(self, reason: str) -> SyncReport:
        report = SyncReport(reason=reason, started_at=self._clock())
        self._state.status = SyncStatus.SYNCING
        self._state.last_sync = report.started_at
        self._notify_callbacks()

        try:
            pending = self.store.pending_mutations()
            survivors = collapse_pending(pending)
            report.considered = len(pending)
            report.superseded = len(pending) - len(survivors)

            if survivors:
                logger.info(
                    f"Syncing {len(survivors)} entities ({report.superseded} superseded, "
                    f"trigger: {reason})"
                )

            for mutation in survivors:
                self._replay(mutation, report)

            self._state.total_synced += len(report.applied)
            self._state.failed_count = len(report.failed)
            if not report.failed:
                self._state.last_sync_success = self._clock()
                self.store.set_setting(
                    LAST_SYNC_SUCCESS_KEY, format_timestamp(self._state.last_sync_success)
                )

            if self.purge_synced:
                self.store.clear_synced()
                self.store.purge_expired_tombstones()

            if survivors:
                logger.info(
                    f"Sync complete: {len(report.applied)} applied, "
                    f"{len(report.failed)} failed, {len(report.escalated)} escalated"
                )
            return report

        finally:
            report.finished_at = self._clock()
            self._state.status = SyncStatus.IDLE
            self._refresh_counts()
            self._notify_callbacks()

    def _replay(self, mutation: Mutation, report: SyncReport) -> None:
        result = self.client.apply(mutation)

        if result:
            self.store.mark_synced(mutation.entity_id, through_seq=mutation.seq)
            report.applied.append(mutation.entity_id)
            if self.cache is not None and not self.store.has_pending(mutation.entity_id):
                self.cache.mark_synced(mutation.collection, mutation.entity_id)
            return

        kind = SyncErrorKind(result.error_code)
        error = result.error or kind.value
        report.failed[mutation.entity_id] = kind.value
        self._state.last_error = error

        if kind == SyncErrorKind.NETWORK_UNAVAILABLE:
            self.store.record_failure(mutation.seq, error, count_attempt=False)
            return

        if kind == SyncErrorKind.REMOTE_REJECTED:
            self.store.record_failure(mutation.seq, error)
            self._escalate(mutation, error, report, rejected=True)
            return

        attempts = self.store.record_failure(mutation.seq, error)
        if attempts >= self.max_attempts:
            self._escalate(
                mutation, f"{error} (gave up after {attempts} attempts)", report
            )

    def _escalate(
        self,
        mutation: Mutation,
        error: str,
        report: SyncReport,
        rejected: bool = False,
    ) -> None:
        self.store.escalate(mutation.entity_id, mutation.seq, error)
        report.escalated.append(mutation.entity_id)
        message = (
            f"Changes to {mutation.collection}/{mutation.entity_id} need attention: {error}"
        )
        error_class = RemoteRejectedError if rejected else RemoteStoreError
        handle_error(
            error_class(
                message,
                collection=mutation.collection,
                document_id=mutation.entity_id,
                details={"rejected": rejected, "seq": mutation.seq},
            ),
            log_error=False,
        )
        logger.warning(message)

    def retry_escalated(self, entity_id: Optional[str] = None) -> int:
        """Put escalated mutations back in the queue (user-initiated retry)."""
        count = self.store.requeue(entity_id)
        self._refresh_counts()
        self._notify_callbacks()
        return count

    # =========================================================================
    # STATUS
    # =========================================================================

    def _refresh_counts(self) -> None:
        self._state.pending_count = self.store.pending_count()
        self._state.needs_attention_count = self.store.needs_attention_count()

    def register_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Register a callback for sync state changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        self._refresh_counts()
        return {
            "status": self._state.status.value,
            "is_syncing": self._state.is_syncing,
            "message": self._state.status_message,
            "last_sync": format_timestamp(self._state.last_sync),
            "last_success": format_timestamp(self._state.last_sync_success),
            "pending_count": self._state.pending_count,
            "failed_count": self._state.failed_count,
            "needs_attention_count": self._state.needs_attention_count,
            "total_synced": self._state.total_synced,
            "last_error": self._state.last_error,
        }
