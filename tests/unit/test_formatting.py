# =============================================================================
# tests/unit/test_formatting.py
# Unit Tests for phone and work order number helpers
# =============================================================================

from datetime import datetime, timedelta, timezone

import pytest

from hydraulics_core.utils import format_phone, is_valid_phone, next_work_order_number
from hydraulics_core.utils.formatting import work_order_prefix


class TestPhone:
    @pytest.mark.parametrize("value", ["239-246-7352", "(239) 246.7352", "+12392467352", "2467352"])
    def test_valid_numbers(self, value):
        assert is_valid_phone(value)

    @pytest.mark.parametrize("value", ["", "abc", "123", "0239246735"])
    def test_invalid_numbers(self, value):
        assert not is_valid_phone(value)

    def test_format_phone(self):
        assert format_phone("2392467352") == "239-246-7352"
        assert format_phone("12392467352") == "1-239-246-7352"
        assert format_phone("2467352") == "246-7352"
        assert format_phone("+44 20 7946 0958") == "+44 20 7946 0958"


class TestWorkOrderNumbers:
    def test_prefix_uses_utc_day(self):
        late_evening = datetime(2025, 3, 13, 22, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert work_order_prefix(late_evening) == "250314"

    def test_first_number_of_the_day(self):
        when = datetime(2025, 3, 14, tzinfo=timezone.utc)
        assert next_work_order_number([], when) == "250314-001"

    def test_continues_after_highest_same_day(self):
        when = datetime(2025, 3, 14, tzinfo=timezone.utc)
        existing = ["250314-002", "250314-010", "250313-099", "garbage", ""]

        assert next_work_order_number(existing, when) == "250314-011"
