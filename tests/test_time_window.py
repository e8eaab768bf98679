"""Tests for src.core.time_window — due-window evaluation."""

import pytest

from src.core.time_window import is_due, is_valid_hhmm, minutes_to_hhmm, to_minutes


class TestToMinutes:
    def test_hhmm_format(self):
        assert to_minutes("17:30") == 17 * 60 + 30

    def test_midnight(self):
        assert to_minutes("00:00") == 0

    def test_last_minute(self):
        assert to_minutes("23:59") == 23 * 60 + 59

    def test_single_digit_hour(self):
        assert to_minutes("9:05") == 9 * 60 + 5

    @pytest.mark.parametrize("bad", ["", "24:00", "12:60", "noon", "12-30", "12:3", None, 1230])
    def test_malformed(self, bad):
        assert to_minutes(bad) is None
        assert is_valid_hhmm(bad) is False


class TestMinutesToHHMM:
    def test_zero_padded(self):
        assert minutes_to_hhmm(9 * 60 + 5) == "09:05"

    def test_out_of_range_raises(self):
        with pytest.raises(ValueError):
            minutes_to_hhmm(24 * 60)


class TestIsDue:
    def test_exact_match_is_due(self):
        assert is_due("09:00", "09:00", 5) is True

    def test_inside_window(self):
        assert is_due("09:03", "09:00", 5) is True

    def test_window_upper_bound_inclusive(self):
        assert is_due("09:05", "09:00", 5) is True

    def test_just_past_window(self):
        assert is_due("09:06", "09:00", 5) is False

    def test_before_target_never_due(self):
        assert is_due("08:59", "09:00", 5) is False

    def test_every_minute_of_window_is_due(self):
        target = to_minutes("13:40")
        for offset in range(-3, 6):
            now = minutes_to_hhmm(target + offset)
            assert is_due(now, "13:40", 2) is (0 <= offset <= 2)

    def test_zero_width_window(self):
        assert is_due("10:00", "10:00", 0) is True
        assert is_due("10:01", "10:00", 0) is False

    def test_malformed_now_fails_closed(self):
        assert is_due("xx:yy", "09:00", 5) is False

    def test_malformed_target_fails_closed(self):
        assert is_due("09:00", "25:00", 5) is False
        assert is_due("09:00", "", 5) is False
