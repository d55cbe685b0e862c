# =============================================================================
# hydraulics_core/offline/published_cache.py
# Observable in-memory entity cache
# =============================================================================
"""
PublishedCache - what the UI reads.

Holds the current entities per collection and which of them carry changes
that have not reached the remote store. Local edits land here first
(optimistic), remote reads are merged in with last-write-wins on the entity
timestamp, and entities with pending local changes are never dropped by a
remote refresh.

Observers are called through a dispatcher so a UI toolkit can marshal the
notification onto its main thread.
"""

from __future__ import annotations
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Set
import logging

import pandas as pd

from hydraulics_core.models import Entity

logger = logging.getLogger(__name__)

Dispatcher = Callable[[Callable[[], None]], None]


def inline_dispatcher(fn: Callable[[], None]) -> None:
    fn()


@dataclass
class CacheChange:
    """Delivered to observers after a collection changes."""
    collection: str
    entity_ids: List[str]
    reason: str          # local | rollback | remote | synced | removed


@dataclass
class MergeStats:
    inserted: int = 0
    updated: int = 0
    kept_local: int = 0
    removed: int = 0
    skipped_tombstoned: int = 0


class PublishedCache:
    """
    Thread-safe per-collection entity cache with change notifications.

    Usage:
        cache = PublishedCache()
        cache.subscribe(lambda change: refresh_view(change.collection))
        previous = cache.apply_local("workOrders", work_order)
    """

    def __init__(self, dispatcher: Optional[Dispatcher] = None):
        self._dispatch = dispatcher or inline_dispatcher
        self._lock = threading.RLock()
        self._entities: Dict[str, Dict[str, Entity]] = {}
        self._pending: Dict[str, Set[str]] = {}
        self._subscribers: List[Callable[[CacheChange], None]] = []

    # =========================================================================
    # OBSERVERS
    # =========================================================================

    def subscribe(self, callback: Callable[[CacheChange], None]) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[CacheChange], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _publish(self, change: CacheChange) -> None:
        subscribers = list(self._subscribers)

        def deliver() -> None:
            for callback in subscribers:
                try:
                    callback(change)
                except Exception as e:
                    logger.error(f"Error in cache subscriber: {e}", exc_info=True)

        self._dispatch(deliver)

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, collection: str, entity_id: str) -> Optional[Entity]:
        with self._lock:
            return self._entities.get(collection, {}).get(entity_id)

    def snapshot(self, collection: str) -> List[Entity]:
        with self._lock:
            return list(self._entities.get(collection, {}).values())

    def is_pending(self, collection: str, entity_id: str) -> bool:
        with self._lock:
            return entity_id in self._pending.get(collection, set())

    def pending_count(self, collection: Optional[str] = None) -> int:
        with self._lock:
            if collection is not None:
                return len(self._pending.get(collection, set()))
            return sum(len(ids) for ids in self._pending.values())

    def to_dataframe(self, collection: str) -> pd.DataFrame:
        """Documents of a collection as rows, plus a `pending` column."""
        with self._lock:
            entities = list(self._entities.get(collection, {}).values())
            pending = set(self._pending.get(collection, set()))
        rows = []
        for entity in entities:
            row = entity.to_document()
            row["pending"] = entity.id in pending
            rows.append(row)
        return pd.DataFrame(rows)

    # =========================================================================
    # LOCAL WRITES
    # =========================================================================

    def apply_local(self, collection: str, entity: Entity, pending: bool = True) -> Optional[Entity]:
        """
        Put a locally edited entity in the cache.

        Returns:
            The entity it replaced (None if new); pass it to rollback()
        """
        with self._lock:
            entities = self._entities.setdefault(collection, {})
            previous = entities.get(entity.id)
            entities[entity.id] = entity
            if pending:
                self._pending.setdefault(collection, set()).add(entity.id)
        self._publish(CacheChange(collection, [entity.id], "local"))
        return previous

    def remove_local(self, collection: str, entity_id: str, pending: bool = True) -> Optional[Entity]:
        """Drop an entity after a local delete. Returns the removed entity."""
        with self._lock:
            previous = self._entities.get(collection, {}).pop(entity_id, None)
            if pending:
                self._pending.setdefault(collection, set()).add(entity_id)
        self._publish(CacheChange(collection, [entity_id], "removed"))
        return previous

    def rollback(
        self,
        collection: str,
        entity_id: str,
        previous: Optional[Entity],
        was_pending: bool = False,
    ) -> None:
        """Undo an optimistic change."""
        with self._lock:
            entities = self._entities.setdefault(collection, {})
            if previous is None:
                entities.pop(entity_id, None)
            else:
                entities[entity_id] = previous
            if not was_pending:
                self._pending.get(collection, set()).discard(entity_id)
        logger.info(f"Rolled back optimistic change to {collection}/{entity_id}")
        self._publish(CacheChange(collection, [entity_id], "rollback"))

    def mark_synced(self, collection: str, entity_id: str) -> None:
        with self._lock:
            pending = self._pending.get(collection, set())
            if entity_id not in pending:
                return
            pending.discard(entity_id)
        self._publish(CacheChange(collection, [entity_id], "synced"))

    # =========================================================================
    # REMOTE MERGE
    # =========================================================================

    def merge_remote(
        self,
        collection: str,
        remote_entities: Iterable[Entity],
        tombstones: Iterable[str] = (),
    ) -> MergeStats:
        """
        Merge an authoritative remote listing into the cache.

        - remote entity newer than local (strictly) replaces it
        - equal or older remote copies of pending entities leave local alone
        - ids in tombstones are ignored
        - local entities missing remotely are kept if pending, else removed
        """
        stats = MergeStats()
        tombstoned = set(tombstones)
        changed: List[str] = []

        with self._lock:
            entities = self._entities.setdefault(collection, {})
            pending = self._pending.setdefault(collection, set())
            seen: Set[str] = set()

            for remote in remote_entities:
                if remote.id in tombstoned:
                    stats.skipped_tombstoned += 1
                    continue
                seen.add(remote.id)
                local = entities.get(remote.id)

                if local is None:
                    if remote.id in pending:
                        # deleted locally, delete not yet replayed
                        stats.kept_local += 1
                        continue
                    entities[remote.id] = remote
                    stats.inserted += 1
                    changed.append(remote.id)
                elif remote.updated_at > local.updated_at:
                    entities[remote.id] = remote
                    stats.updated += 1
                    changed.append(remote.id)
                elif remote.id in pending:
                    stats.kept_local += 1

            for entity_id in list(entities):
                if entity_id in seen:
                    continue
                if entity_id in pending:
                    stats.kept_local += 1
                    continue
                del entities[entity_id]
                stats.removed += 1
                changed.append(entity_id)

        logger.debug(
            f"Merged {collection}: {stats.inserted} new, {stats.updated} updated, "
            f"{stats.kept_local} kept local, {stats.removed} removed"
        )
        if changed:
            self._publish(CacheChange(collection, changed, "remote"))
        return stats
