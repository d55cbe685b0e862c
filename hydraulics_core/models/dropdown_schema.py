# =============================================================================
# hydraulics_core/models/dropdown_schema.py
# Dropdown schema versioning for work orders and items
# =============================================================================
"""
Dropdown choices (size, color, machine type, ...) are versioned. Records store
the schema version they were written with so older records can be flagged
before someone edits them with choices that no longer line up.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum

CURRENT_VERSION = 1


class MismatchSeverity(str, Enum):
    LOW = "low"          # record is newer than this app build
    MEDIUM = "medium"    # a little behind; editable
    HIGH = "high"        # too far behind; read only


@dataclass(frozen=True)
class VersionMismatch:
    record_version: int
    current_version: int = CURRENT_VERSION

    @property
    def difference(self) -> int:
        return self.current_version - self.record_version

    @property
    def severity(self) -> MismatchSeverity:
        if self.difference > 2:
            return MismatchSeverity.HIGH
        if self.difference > 0:
            return MismatchSeverity.MEDIUM
        return MismatchSeverity.LOW

    @property
    def can_edit(self) -> bool:
        return self.severity != MismatchSeverity.HIGH

    @property
    def message(self) -> str:
        return (
            f"This record uses dropdown schema v{self.record_version}, "
            f"the app uses v{self.current_version}"
        )


def check_version(record_version: int, current_version: int = CURRENT_VERSION):
    """Return a VersionMismatch, or None when the versions agree."""
    if record_version == current_version:
        return None
    return VersionMismatch(record_version=record_version, current_version=current_version)
