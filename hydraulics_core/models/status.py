# =============================================================================
# hydraulics_core/models/status.py
# Work order item status lifecycle
# =============================================================================

from __future__ import annotations
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional


class ItemStatus(str, Enum):
    """Service status of a single work order item."""
    CHECKED_IN = "Checked In"
    DISASSEMBLY = "Disassembly"
    IN_PROGRESS = "In Progress"
    TEST_FAILED = "Test Failed"
    COMPLETE = "Complete"
    CLOSED = "Closed"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional[ItemStatus]:
        """Match a stored label, ignoring case, spaces and underscores."""
        if value is None:
            return None
        wanted = str(value).replace(" ", "").replace("_", "").lower()
        for status in cls:
            if status.value.replace(" ", "").lower() == wanted:
                return status
        return None


ALLOWED_TRANSITIONS: Dict[ItemStatus, FrozenSet[ItemStatus]] = {
    ItemStatus.CHECKED_IN: frozenset(
        {ItemStatus.DISASSEMBLY, ItemStatus.IN_PROGRESS, ItemStatus.CLOSED}
    ),
    ItemStatus.DISASSEMBLY: frozenset(
        {ItemStatus.IN_PROGRESS, ItemStatus.TEST_FAILED, ItemStatus.CLOSED}
    ),
    ItemStatus.IN_PROGRESS: frozenset(
        {ItemStatus.TEST_FAILED, ItemStatus.COMPLETE, ItemStatus.CLOSED}
    ),
    ItemStatus.TEST_FAILED: frozenset(
        {ItemStatus.IN_PROGRESS, ItemStatus.COMPLETE, ItemStatus.CLOSED}
    ),
    ItemStatus.COMPLETE: frozenset({ItemStatus.CLOSED}),
    ItemStatus.CLOSED: frozenset(),
}


def can_transition(current: ItemStatus, requested: ItemStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


def allowed_next(current: ItemStatus) -> Iterable[ItemStatus]:
    """Statuses reachable from current, in lifecycle order."""
    targets = ALLOWED_TRANSITIONS.get(current, frozenset())
    return [status for status in ItemStatus if status in targets]
