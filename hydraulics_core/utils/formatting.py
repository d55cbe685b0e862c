# =============================================================================
# hydraulics_core/utils/formatting.py
# Phone numbers and work order numbers
# =============================================================================

from __future__ import annotations
import re
from datetime import datetime, timezone
from typing import Iterable, Optional

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")
WORK_ORDER_NUMBER_PATTERN = re.compile(r"^(\d{6})-(\d{3,})$")


def digits_only(value: str) -> str:
    return "".join(ch for ch in value if ch.isdigit())


def strip_phone_formatting(value: str) -> str:
    """Drop spaces, dashes, dots and parentheses; keep a leading +."""
    return re.sub(r"[\s\-().]", "", value or "")


def is_valid_phone(value: str) -> bool:
    cleaned = strip_phone_formatting(value)
    if not PHONE_PATTERN.match(cleaned):
        return False
    return 7 <= len(digits_only(cleaned)) <= 15


def format_phone(value: str) -> str:
    """
    Display format for US numbers.

    2392467352  -> 239-246-7352
    12392467352 -> 1-239-246-7352
    2467352     -> 246-7352
    Anything else is returned unchanged.
    """
    digits = digits_only(value or "")
    if len(digits) == 10:
        return f"{digits[:3]}-{digits[3:6]}-{digits[6:]}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"1-{digits[1:4]}-{digits[4:7]}-{digits[7:]}"
    if len(digits) == 7:
        return f"{digits[:3]}-{digits[3:]}"
    return value


def work_order_prefix(when: Optional[datetime] = None) -> str:
    """YYMMDD prefix for the UTC day of `when`."""
    when = when or datetime.now(timezone.utc)
    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc)
    return when.strftime("%y%m%d")


def format_work_order_number(when: datetime, sequence: int) -> str:
    return f"{work_order_prefix(when)}-{max(sequence, 1):03d}"


def next_work_order_number(existing: Iterable[str], when: Optional[datetime] = None) -> str:
    """Next YYMMDD-### number for the day, after the highest one already used."""
    prefix = work_order_prefix(when)
    highest = 0
    for number in existing:
        match = WORK_ORDER_NUMBER_PATTERN.match(number or "")
        if match and match.group(1) == prefix:
            highest = max(highest, int(match.group(2)))
    return f"{prefix}-{highest + 1:03d}"
