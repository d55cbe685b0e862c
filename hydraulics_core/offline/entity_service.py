# =============================================================================
# hydraulics_core/offline/entity_service.py
# Entity services - the single write/read API the UI uses
# =============================================================================
"""
Entity services - every UI mutation goes through here.

Write path:
    1. Optimistically update the PublishedCache
    2. Online with no older queued change for the entity: write remotely
       directly; transient failures fall back to the journal
    3. Otherwise append to the MutationStore journal
    4. A local journal failure rolls the cache back and raises LocalStoreError;
       a remote rejection of a direct write rolls back and raises
       RemoteRejectedError

Reads come from the cache; refresh() pulls the authoritative remote listing
and merges it in.
"""

from __future__ import annotations
import copy
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Dict, Generic, List, Optional, Type, TypeVar

from hydraulics_core.errors import (
    DataValidationError,
    DocumentDecodeError,
    LocalStoreError,
    RemoteRejectedError,
)
from hydraulics_core.models import (
    Customer,
    Entity,
    Note,
    StatusEntry,
    User,
    WorkOrder,
    WorkOrderItem,
    ItemStatus,
    check_version,
)
from hydraulics_core.models.decoding import utc_now
from hydraulics_core.offline.connection_manager import ConnectionManager
from hydraulics_core.offline.mutation_store import ChangeType, Mutation, MutationStore
from hydraulics_core.offline.published_cache import MergeStats, PublishedCache
from hydraulics_core.offline.reconciliation import ReconciliationClient, SyncErrorKind
from hydraulics_core.services.base_service import BaseService
from hydraulics_core.services.validation_service import ValidationService
from hydraulics_core.utils import digits_only, next_work_order_number

E = TypeVar("E", bound=Entity)

DEFAULT_TOMBSTONE_TTL = timedelta(days=30)


class EntityService(BaseService, Generic[E]):
    """
    Create/update/delete/refresh for one collection.

    Subclasses set `entity_cls` and may override `_validate`.
    """

    entity_cls: Type[E]

    def __init__(
        self,
        cache: PublishedCache,
        store: MutationStore,
        client: ReconciliationClient,
        connection: Optional[ConnectionManager] = None,
        engine=None,
        validator: Optional[ValidationService] = None,
        tombstone_ttl: timedelta = DEFAULT_TOMBSTONE_TTL,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__()
        self.cache = cache
        self.store = store
        self.client = client
        self.connection = connection
        self.engine = engine
        self.validator = validator or ValidationService()
        self.tombstone_ttl = tombstone_ttl
        self._clock = clock

    @property
    def collection(self) -> str:
        return self.entity_cls.COLLECTION

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, entity_id: str) -> Optional[E]:
        return self.cache.get(self.collection, entity_id)

    def list(self) -> List[E]:
        return self.cache.snapshot(self.collection)

    def is_pending(self, entity_id: str) -> bool:
        return self.cache.is_pending(self.collection, entity_id)

    def refresh(self) -> MergeStats:
        """
        Pull the remote collection and merge it into the cache.

        Undecodable documents are skipped; remote errors propagate.
        """
        documents = self.client.fetch_collection(self.collection)
        entities = []
        for doc in documents:
            try:
                entities.append(self.entity_cls.from_document(doc))
            except DocumentDecodeError as e:
                self.logger.warning(f"Skipping undecodable {self.collection} document: {e}")
        tombstones = self.store.tombstoned_ids(self.collection)
        return self.cache.merge_remote(self.collection, entities, tombstones)

    # =========================================================================
    # WRITES
    # =========================================================================

    def create(self, entity: E) -> E:
        """Validate and save a new entity (its id is the remote document id)."""
        self._validate(entity)
        return self._commit(entity, ChangeType.CREATE)

    def update(self, entity: E, by: Optional[str] = None) -> E:
        """Restamp, validate and save an edited entity."""
        entity = entity.touched(self._clock(), by)
        self._validate(entity)
        return self._commit(entity, ChangeType.UPDATE)

    def delete(self, entity_id: str) -> None:
        """Hard delete: remove locally, replicate, tombstone the id."""
        was_pending = self.cache.is_pending(self.collection, entity_id)
        previous = self.cache.remove_local(self.collection, entity_id)
        try:
            if not self._write_through(entity_id, ChangeType.DELETE, {"id": entity_id}):
                self._enqueue(entity_id, ChangeType.DELETE, {"id": entity_id})
        except (LocalStoreError, RemoteRejectedError):
            self.cache.rollback(self.collection, entity_id, previous, was_pending)
            raise
        self.store.add_tombstone(self.collection, entity_id, self.tombstone_ttl)

    def _validate(self, entity: E) -> None:
        """Raise DataValidationError for invalid entities."""

    def _commit(self, entity: E, change_type: ChangeType) -> E:
        was_pending = self.cache.is_pending(self.collection, entity.id)
        previous = self.cache.apply_local(self.collection, entity)
        payload = entity.to_document()
        try:
            if not self._write_through(entity.id, change_type, payload):
                self._enqueue(entity.id, change_type, payload)
        except (LocalStoreError, RemoteRejectedError):
            self.cache.rollback(self.collection, entity.id, previous, was_pending)
            raise
        return entity

    def _enqueue(self, entity_id: str, change_type: ChangeType, payload: Dict) -> None:
        self.store.enqueue(self.collection, entity_id, change_type, payload)
        if self.engine is not None and self.connection is not None and self.connection.is_connected:
            self.engine.request_sync(reason="local_change")

    def _write_through(self, entity_id: str, change_type: ChangeType, payload: Dict) -> bool:
        """
        Try the remote write directly.

        Returns:
            True when the remote store has the change; False when it must be
            journaled instead
        """
        if self.connection is None or not self.connection.is_connected:
            return False
        # Queued older changes for this entity must replay first.
        if self.store.has_pending(entity_id):
            return False

        result = self.client.apply(
            Mutation(
                collection=self.collection,
                entity_id=entity_id,
                change_type=change_type,
                payload=payload,
                enqueued_at=self._clock(),
            )
        )
        if result:
            # older escalated rows are now stale
            self.store.mark_synced(entity_id)
            self.cache.mark_synced(self.collection, entity_id)
            return True

        if result.error_code == SyncErrorKind.REMOTE_REJECTED.value:
            raise RemoteRejectedError(
                result.error or "Remote store rejected the change",
                collection=self.collection,
                document_id=entity_id,
            )
        self.logger.info(
            f"Direct write of {self.collection}/{entity_id} failed ({result.error_code}), queued"
        )
        return False

    def _require(self, entity_id: str) -> E:
        entity = self.get(entity_id)
        if entity is None:
            raise DataValidationError(
                f"{self.entity_cls.__name__} {entity_id} not found", field="id"
            )
        return copy.deepcopy(entity)


# =============================================================================
# WORK ORDERS
# =============================================================================

class WorkOrderService(EntityService[WorkOrder]):
    """Work order check-in, notes, item status and images."""

    entity_cls = WorkOrder

    def _validate(self, entity: WorkOrder) -> None:
        self.validator.validate_work_order(entity).raise_if_invalid()

    def next_work_order_number(self, when: Optional[datetime] = None) -> str:
        numbers = [wo.work_order_number for wo in self.list()]
        return next_work_order_number(numbers, when or self._clock())

    def check_in(self, work_order: WorkOrder, by: str) -> WorkOrder:
        """
        Create a new work order: number it, stamp it, seed item status history.
        """
        now = self._clock()
        work_order = copy.deepcopy(work_order)
        if not work_order.work_order_number:
            work_order.work_order_number = self.next_work_order_number(now)
        work_order.created_by = work_order.created_by or by
        work_order.last_modified_by = by
        work_order.timestamp = now
        work_order.last_modified = now
        for item in work_order.items:
            if not item.status_history:
                item.status_history.append(
                    StatusEntry(status=ItemStatus.CHECKED_IN.value, user=by, timestamp=now)
                )
        return self.create(work_order)

    def active_work_orders(self) -> List[WorkOrder]:
        """
        Work orders that are not soft deleted, one per work order number
        (latest modification wins), newest first.
        """
        by_number: Dict[str, WorkOrder] = {}
        for wo in self.list():
            if wo.is_deleted:
                continue
            key = wo.work_order_number or wo.id
            current = by_number.get(key)
            if current is None or wo.last_modified > current.last_modified:
                by_number[key] = wo
        return sorted(by_number.values(), key=lambda wo: wo.timestamp, reverse=True)

    def add_note(
        self,
        work_order_id: str,
        text: str,
        user: str,
        item_id: Optional[str] = None,
    ) -> WorkOrder:
        self.validator.validate_note(text).raise_if_invalid(field_name="text")
        work_order = self._require(work_order_id)
        note = Note(user=user, text=text.strip(), timestamp=self._clock())
        if item_id is None:
            work_order.notes.append(note)
        else:
            self._require_item(work_order, item_id).notes.append(note)
        return self.update(work_order, by=user)

    def change_item_status(
        self,
        work_order_id: str,
        item_id: str,
        status: str,
        user: str,
        notes: Optional[str] = None,
        parts_used: Optional[str] = None,
        hours_worked: Optional[str] = None,
        cost: Optional[str] = None,
    ) -> WorkOrder:
        """
        Move an item along its lifecycle.

        Completion details default to what the item already carries; given
        values are trimmed and written onto the item.

        Raises:
            StatusTransitionError: if the transition is not allowed
            DataValidationError: moving to Complete without the required details
        """
        work_order = self._require(work_order_id)
        item = self._require_item(work_order, item_id)
        new_status = self.validator.check_status_transition(item.resolved_status, status)

        parts_used = item.parts_used if parts_used is None else parts_used.strip()
        hours_worked = item.hours_worked if hours_worked is None else hours_worked.strip()
        cost = item.cost if cost is None else cost.strip()
        if new_status == ItemStatus.COMPLETE:
            self.validator.validate_completion(
                parts_used, hours_worked, cost
            ).raise_if_invalid(field_name="completion")
        item.parts_used = parts_used or None
        item.hours_worked = hours_worked or None
        item.cost = cost or None

        now = self._clock()
        item.status_history.append(
            StatusEntry(status=new_status.value, user=user, timestamp=now, notes=notes)
        )
        work_order.notes.append(
            Note(user=user, text=f"Status changed to {new_status.value}", timestamp=now)
        )
        return self.update(work_order, by=user)

    def update_item(self, work_order_id: str, item: WorkOrderItem, by: str) -> WorkOrder:
        """Replace an item; refused when its dropdown schema is too old to edit."""
        mismatch = check_version(item.dropdown_schema_version)
        if mismatch is not None and not mismatch.can_edit:
            raise DataValidationError(mismatch.message, field="dropdownSchemaVersion")

        work_order = self._require(work_order_id)
        for index, existing in enumerate(work_order.items):
            if existing.id == item.id:
                work_order.items[index] = copy.deepcopy(item)
                break
        else:
            raise DataValidationError(f"Item {item.id} not found", field="items")
        return self.update(work_order, by=by)

    def attach_image(
        self,
        work_order_id: str,
        item_id: str,
        image_url: str,
        by: str,
        thumb_url: Optional[str] = None,
    ) -> WorkOrder:
        """Record an uploaded image URL (upload itself happens elsewhere)."""
        work_order = self._require(work_order_id)
        item = self._require_item(work_order, item_id)
        item.image_urls.append(image_url)
        if thumb_url:
            item.thumb_urls.append(thumb_url)
        if not work_order.primary_image_url:
            work_order.primary_image_url = image_url
        return self.update(work_order, by=by)

    def soft_delete(self, work_order_id: str, by: str) -> WorkOrder:
        work_order = self._require(work_order_id)
        return self.update(replace(work_order, is_deleted=True), by=by)

    @staticmethod
    def _require_item(work_order: WorkOrder, item_id: str) -> WorkOrderItem:
        item = work_order.item(item_id)
        if item is None:
            raise DataValidationError(f"Item {item_id} not found", field="items")
        return item


# =============================================================================
# CUSTOMERS
# =============================================================================

class CustomerService(EntityService[Customer]):
    entity_cls = Customer

    def _validate(self, entity: Customer) -> None:
        self.validator.validate_customer(entity).raise_if_invalid()

    def search(self, query: str) -> List[Customer]:
        """Match name, company, email, or phone digits (case-insensitive)."""
        text = (query or "").strip().lower()
        if not text:
            return sorted(self.list(), key=lambda c: c.name.lower())
        digits = digits_only(text)
        matches = []
        for customer in self.list():
            haystack = " ".join(
                filter(None, [customer.name, customer.company, customer.email])
            ).lower()
            if text in haystack or (digits and digits in digits_only(customer.phone_number)):
                matches.append(customer)
        return sorted(matches, key=lambda c: c.name.lower())


# =============================================================================
# USERS
# =============================================================================

class UserService(EntityService[User]):
    entity_cls = User

    def _validate(self, entity: User) -> None:
        name = entity.display_name.strip()
        if not 2 <= len(name) <= 80:
            raise DataValidationError(
                "Display name must be 2-80 characters", field="displayName"
            )

    def search(self, query: str) -> List[User]:
        text = (query or "").strip().lower()
        users = self.list()
        if text:
            digits = digits_only(text)
            users = [
                u for u in users
                if text in u.display_name.lower()
                or (digits and digits in digits_only(u.phone_e164 or ""))
            ]
        return sorted(users, key=lambda u: u.display_name.lower())

    def deactivate(self, user_id: str, by: str) -> User:
        user = self._require(user_id)
        return self.update(replace(user, is_active=False), by=by)
