from .formatting import (
    digits_only,
    format_phone,
    format_work_order_number,
    is_valid_phone,
    next_work_order_number,
    strip_phone_formatting,
    work_order_prefix,
)

__all__ = [
    "digits_only",
    "format_phone",
    "format_work_order_number",
    "is_valid_phone",
    "next_work_order_number",
    "strip_phone_formatting",
    "work_order_prefix",
]
