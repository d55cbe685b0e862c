# =============================================================================
# hydraulics_core/models/entities.py
# Synchronized entities: work orders, customers, users
# =============================================================================
"""
Domain dataclasses with document (de)serialization.

Every synchronized entity carries a client-generated string id, reused as the
remote document id, and a modification timestamp used for last-write-wins
merging (`updated_at`). `to_document()` writes the current field names;
`from_document()` also reads the names used by older app versions and fills
defaults for anything missing.
"""

from __future__ import annotations
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Type, TypeVar

from hydraulics_core.errors import DocumentDecodeError
from hydraulics_core.models.decoding import (
    EPOCH,
    as_bool,
    as_bool_dict,
    as_float,
    as_int,
    as_mapping_list,
    as_optional_str,
    as_str,
    as_str_dict,
    as_str_list,
    first_present,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from hydraulics_core.models.dropdown_schema import CURRENT_VERSION
from hydraulics_core.models.status import ItemStatus

E = TypeVar("E", bound="Entity")


def new_id() -> str:
    return str(uuid.uuid4())


class Entity:
    """Mixin for synchronized dataclasses."""

    COLLECTION: ClassVar[str] = ""
    id: str

    @property
    def updated_at(self) -> datetime:
        raise NotImplementedError

    def touched(self: E, when: datetime, by: Optional[str] = None) -> E:
        """Copy with the modification timestamp (and author) restamped."""
        raise NotImplementedError

    def to_document(self) -> Dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def from_document(cls: Type[E], doc: Mapping[str, Any], doc_id: Optional[str] = None) -> E:
        raise NotImplementedError


def _require_mapping(doc: Any, collection: str, doc_id: Optional[str]) -> Mapping[str, Any]:
    if not isinstance(doc, Mapping):
        raise DocumentDecodeError(
            f"Expected a document mapping, got {type(doc).__name__}",
            collection=collection,
            document_id=doc_id,
        )
    return doc


def _require_id(doc: Mapping[str, Any], collection: str, doc_id: Optional[str]) -> str:
    entity_id = as_optional_str(first_present(doc, ("id",), doc_id))
    if not entity_id:
        raise DocumentDecodeError("Document has no id", collection=collection)
    return entity_id


# =============================================================================
# WORK ORDER PARTS
# =============================================================================

@dataclass
class Note:
    """A free-text note on a work order or item."""
    user: str
    text: str
    timestamp: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=new_id)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user": self.user,
            "text": self.text,
            "timestamp": format_timestamp(self.timestamp),
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Note:
        return cls(
            id=as_str(doc.get("id")) or new_id(),
            user=as_str(doc.get("user")),
            text=as_str(doc.get("text")),
            timestamp=parse_timestamp(doc.get("timestamp"), EPOCH),
        )


@dataclass
class StatusEntry:
    """One step in an item's status history."""
    status: str
    user: str
    timestamp: datetime = field(default_factory=utc_now)
    notes: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "user": self.user,
            "timestamp": format_timestamp(self.timestamp),
            "notes": self.notes,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> StatusEntry:
        return cls(
            status=as_str(doc.get("status")),
            user=as_str(doc.get("user")),
            timestamp=parse_timestamp(doc.get("timestamp"), EPOCH),
            notes=as_optional_str(doc.get("notes")),
        )


@dataclass
class WorkOrderItem:
    """A single piece of equipment checked in on a work order."""
    type: str = ""
    id: str = field(default_factory=new_id)
    tag_id: Optional[str] = None
    image_urls: List[str] = field(default_factory=list)
    thumb_urls: List[str] = field(default_factory=list)
    dropdowns: Dict[str, str] = field(default_factory=dict)
    dropdown_schema_version: int = CURRENT_VERSION
    reasons_for_service: List[str] = field(default_factory=list)
    reason_notes: Optional[str] = None
    status_history: List[StatusEntry] = field(default_factory=list)
    test_result: Optional[str] = None
    parts_used: Optional[str] = None
    hours_worked: Optional[str] = None
    estimated_cost: Optional[str] = None
    cost: Optional[str] = None
    assigned_to: str = ""
    is_flagged: bool = False
    notes: List[Note] = field(default_factory=list)

    @property
    def resolved_status(self) -> str:
        """Latest status by timestamp, or Checked In for a fresh item."""
        if not self.status_history:
            return ItemStatus.CHECKED_IN.value
        latest = max(self.status_history, key=lambda entry: entry.timestamp)
        return latest.status

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tagId": self.tag_id,
            "imageUrls": list(self.image_urls),
            "thumbUrls": list(self.thumb_urls),
            "type": self.type,
            "dropdowns": dict(self.dropdowns),
            "dropdownSchemaVersion": self.dropdown_schema_version,
            "reasonsForService": list(self.reasons_for_service),
            "reasonNotes": self.reason_notes,
            "statusHistory": [entry.to_document() for entry in self.status_history],
            "testResult": self.test_result,
            "partsUsed": self.parts_used,
            "hoursWorked": self.hours_worked,
            "estimatedCost": self.estimated_cost,
            "cost": self.cost,
            "assignedTo": self.assigned_to,
            "isFlagged": self.is_flagged,
            "notes": [note.to_document() for note in self.notes],
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> WorkOrderItem:
        return cls(
            id=as_str(doc.get("id")) or new_id(),
            tag_id=as_optional_str(doc.get("tagId")),
            image_urls=as_str_list(first_present(doc, ("imageUrls", "imageURLs"))),
            thumb_urls=as_str_list(first_present(doc, ("thumbUrls", "thumbURLs"))),
            type=as_str(doc.get("type")),
            dropdowns=as_str_dict(doc.get("dropdowns")),
            dropdown_schema_version=as_int(doc.get("dropdownSchemaVersion"), CURRENT_VERSION),
            reasons_for_service=as_str_list(doc.get("reasonsForService")),
            reason_notes=as_optional_str(doc.get("reasonNotes")),
            status_history=[
                StatusEntry.from_document(d) for d in as_mapping_list(doc.get("statusHistory"))
            ],
            test_result=as_optional_str(doc.get("testResult")),
            parts_used=as_optional_str(doc.get("partsUsed")),
            hours_worked=as_optional_str(doc.get("hoursWorked")),
            estimated_cost=as_optional_str(doc.get("estimatedCost")),
            cost=as_optional_str(doc.get("cost")),
            assigned_to=as_str(doc.get("assignedTo")),
            is_flagged=as_bool(doc.get("isFlagged")),
            notes=[Note.from_document(d) for d in as_mapping_list(doc.get("notes"))],
        )


# =============================================================================
# WORK ORDER
# =============================================================================

@dataclass
class WorkOrder(Entity):
    """A customer check-in holding one or more serviceable items."""

    COLLECTION: ClassVar[str] = "workOrders"

    id: str = field(default_factory=new_id)
    created_by: str = ""
    customer_id: str = ""
    customer_name: str = ""
    customer_company: Optional[str] = None
    customer_email: Optional[str] = None
    customer_tax_exempt: bool = False
    customer_phone: str = ""
    customer_emoji_tag: Optional[str] = None
    work_order_type: str = ""
    primary_image_url: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)
    status: str = ItemStatus.CHECKED_IN.value
    work_order_number: str = ""
    flagged: bool = False
    asset_tag_id: Optional[str] = None
    estimated_cost: Optional[str] = None
    final_cost: Optional[str] = None
    dropdowns: Dict[str, str] = field(default_factory=dict)
    dropdown_schema_version: int = CURRENT_VERSION
    last_modified: datetime = field(default_factory=utc_now)
    last_modified_by: str = ""
    tag_bypass_reason: Optional[str] = None
    is_deleted: bool = False
    notes: List[Note] = field(default_factory=list)
    items: List[WorkOrderItem] = field(default_factory=list)

    @property
    def updated_at(self) -> datetime:
        return self.last_modified

    def touched(self, when: datetime, by: Optional[str] = None) -> WorkOrder:
        return replace(self, last_modified=when, last_modified_by=by or self.last_modified_by)

    def item(self, item_id: str) -> Optional[WorkOrderItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @property
    def total_estimated_cost(self) -> float:
        return sum(as_float(item.estimated_cost) or 0.0 for item in self.items)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "createdBy": self.created_by,
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "customerCompany": self.customer_company,
            "customerEmail": self.customer_email,
            "customerTaxExempt": self.customer_tax_exempt,
            "customerPhone": self.customer_phone,
            "customerEmojiTag": self.customer_emoji_tag,
            "workOrderType": self.work_order_type,
            "primaryImageURL": self.primary_image_url,
            "timestamp": format_timestamp(self.timestamp),
            "status": self.status,
            "workOrderNumber": self.work_order_number,
            "flagged": self.flagged,
            "assetTagId": self.asset_tag_id,
            "estimatedCost": self.estimated_cost,
            "finalCost": self.final_cost,
            "dropdowns": dict(self.dropdowns),
            "dropdownSchemaVersion": self.dropdown_schema_version,
            "lastModified": format_timestamp(self.last_modified),
            "lastModifiedBy": self.last_modified_by,
            "tagBypassReason": self.tag_bypass_reason,
            "isDeleted": self.is_deleted,
            "notes": [note.to_document() for note in self.notes],
            "items": [item.to_document() for item in self.items],
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any], doc_id: Optional[str] = None) -> WorkOrder:
        doc = _require_mapping(doc, cls.COLLECTION, doc_id)
        timestamp = parse_timestamp(first_present(doc, ("timestamp", "createdAt")), EPOCH)
        return cls(
            id=_require_id(doc, cls.COLLECTION, doc_id),
            created_by=as_str(doc.get("createdBy")),
            customer_id=as_str(doc.get("customerId")),
            customer_name=as_str(doc.get("customerName")),
            customer_company=as_optional_str(doc.get("customerCompany")),
            customer_email=as_optional_str(doc.get("customerEmail")),
            customer_tax_exempt=as_bool(doc.get("customerTaxExempt")),
            customer_phone=as_str(first_present(doc, ("customerPhone", "phone"))),
            customer_emoji_tag=as_optional_str(doc.get("customerEmojiTag")),
            work_order_type=as_str(first_present(doc, ("workOrderType", "WO_Type"))),
            primary_image_url=as_optional_str(first_present(doc, ("primaryImageURL", "imageURL"))),
            timestamp=timestamp,
            status=as_str(doc.get("status"), ItemStatus.CHECKED_IN.value),
            work_order_number=as_str(first_present(doc, ("workOrderNumber", "WO_Number"))),
            flagged=as_bool(doc.get("flagged")),
            asset_tag_id=as_optional_str(doc.get("assetTagId")),
            estimated_cost=as_optional_str(doc.get("estimatedCost")),
            final_cost=as_optional_str(doc.get("finalCost")),
            dropdowns=as_str_dict(doc.get("dropdowns")),
            dropdown_schema_version=as_int(doc.get("dropdownSchemaVersion"), CURRENT_VERSION),
            last_modified=parse_timestamp(
                first_present(doc, ("lastModified", "updatedAt")), timestamp
            ),
            last_modified_by=as_str(doc.get("lastModifiedBy")),
            tag_bypass_reason=as_optional_str(doc.get("tagBypassReason")),
            is_deleted=as_bool(first_present(doc, ("isDeleted", "deleted"))),
            notes=[Note.from_document(d) for d in as_mapping_list(doc.get("notes"))],
            items=[WorkOrderItem.from_document(d) for d in as_mapping_list(doc.get("items"))],
        )


# =============================================================================
# CUSTOMER
# =============================================================================

@dataclass
class Customer(Entity):
    """A shop customer; work orders keep a snapshot of these fields."""

    COLLECTION: ClassVar[str] = "customers"

    name: str = ""
    phone_number: str = ""
    id: str = field(default_factory=new_id)
    company: Optional[str] = None
    email: Optional[str] = None
    tax_exempt: bool = False
    emoji_tag: Optional[str] = None
    last_modified: datetime = field(default_factory=utc_now)

    @property
    def updated_at(self) -> datetime:
        return self.last_modified

    def touched(self, when: datetime, by: Optional[str] = None) -> Customer:
        return replace(self, last_modified=when)

    @property
    def display_name(self) -> str:
        label = f"{self.name} ({self.company})" if self.company else self.name
        if self.emoji_tag:
            label = f"{self.emoji_tag} {label}"
        return label

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phoneNumber": self.phone_number,
            "company": self.company,
            "email": self.email,
            "taxExempt": self.tax_exempt,
            "emojiTag": self.emoji_tag,
            "lastModified": format_timestamp(self.last_modified),
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any], doc_id: Optional[str] = None) -> Customer:
        doc = _require_mapping(doc, cls.COLLECTION, doc_id)
        return cls(
            id=_require_id(doc, cls.COLLECTION, doc_id),
            name=as_str(doc.get("name")),
            phone_number=as_str(first_present(doc, ("phoneNumber", "phone"))),
            company=as_optional_str(doc.get("company")),
            email=as_optional_str(doc.get("email")),
            tax_exempt=as_bool(doc.get("taxExempt")),
            emoji_tag=as_optional_str(doc.get("emojiTag")),
            last_modified=parse_timestamp(first_present(doc, ("lastModified", "updatedAt")), EPOCH),
        )


# =============================================================================
# USER
# =============================================================================

class UserRole(str, Enum):
    TECH = "tech"
    MANAGER = "manager"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"

    @classmethod
    def parse(cls, value: Any) -> UserRole:
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.TECH


@dataclass
class User(Entity):
    """A shop staff account."""

    COLLECTION: ClassVar[str] = "users"

    display_name: str = ""
    id: str = field(default_factory=new_id)
    phone_e164: Optional[str] = None
    role: UserRole = UserRole.TECH
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    modified_at: datetime = field(default_factory=utc_now)
    created_by_user_id: Optional[str] = None
    updated_by_user_id: Optional[str] = None

    @property
    def updated_at(self) -> datetime:
        return self.modified_at

    def touched(self, when: datetime, by: Optional[str] = None) -> User:
        return replace(self, modified_at=when, updated_by_user_id=by or self.updated_by_user_id)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "phoneE164": self.phone_e164,
            "role": self.role.value,
            "isActive": self.is_active,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.modified_at),
            "createdByUserId": self.created_by_user_id,
            "updatedByUserId": self.updated_by_user_id,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any], doc_id: Optional[str] = None) -> User:
        doc = _require_mapping(doc, cls.COLLECTION, doc_id)
        created_at = parse_timestamp(doc.get("createdAt"), EPOCH)
        return cls(
            id=_require_id(doc, cls.COLLECTION, doc_id),
            display_name=as_str(first_present(doc, ("displayName", "name"))),
            phone_e164=as_optional_str(first_present(doc, ("phoneE164", "phone"))),
            role=UserRole.parse(doc.get("role")),
            is_active=as_bool(doc.get("isActive"), default=True),
            created_at=created_at,
            modified_at=parse_timestamp(
                first_present(doc, ("updatedAt", "lastModified")), created_at
            ),
            created_by_user_id=as_optional_str(doc.get("createdByUserId")),
            updated_by_user_id=as_optional_str(doc.get("updatedByUserId")),
        )


ENTITY_TYPES: Dict[str, Type[Entity]] = {
    WorkOrder.COLLECTION: WorkOrder,
    Customer.COLLECTION: Customer,
    User.COLLECTION: User,
}


def entity_class_for(collection: str) -> Type[Entity]:
    try:
        return ENTITY_TYPES[collection]
    except KeyError:
        raise DocumentDecodeError(
            f"Unknown collection '{collection}'", collection=collection
        ) from None
