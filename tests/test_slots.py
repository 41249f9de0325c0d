from datetime import date, timedelta

import pytest

from turfbook.domain.availability.slots import booking_blocks, parse_requested_slot
from turfbook.errors import ValidationError
from turfbook.models import WEEKLY_OCCURRENCE, Booking
from turfbook.shared.pagination import build_pagination, validate_page
from turfbook.shared.validators import (
    validate_hhmm,
    validate_slot_template,
    validate_slot_templates,
    validate_sports,
)

TODAY = date(2026, 10, 19)  # a Monday


class TestTimeAndTemplates:
    def test_single_digit_hour_is_normalized(self):
        assert validate_hhmm("9:30") == "09:30"
        assert validate_hhmm(" 18:00 ") == "18:00"

    @pytest.mark.parametrize("value", ["24:00", "9:5", "18-00", "", None, "noon"])
    def test_malformed_times_are_rejected(self, value):
        with pytest.raises(ValueError):
            validate_hhmm(value)

    def test_template_day_is_canonicalized(self):
        assert validate_slot_template("monday", "6:00", "7:00") == {
            "day": "Monday",
            "start_time": "06:00",
            "end_time": "07:00",
        }

    def test_start_must_precede_end(self):
        with pytest.raises(ValueError):
            validate_slot_template("Monday", "19:00", "19:00")
        with pytest.raises(ValueError):
            validate_slot_template("Monday", "20:00", "19:00")

    def test_unknown_day_is_rejected(self):
        with pytest.raises(ValueError):
            validate_slot_template("Funday", "18:00", "19:00")

    def test_duplicate_templates_are_rejected(self):
        slots = [
            {"day": "Monday", "start_time": "18:00", "end_time": "19:00"},
            {"day": "monday", "start_time": "18:00", "end_time": "19:00"},
        ]
        with pytest.raises(ValueError, match="Duplicate"):
            validate_slot_templates(slots)

    def test_at_least_one_template_is_required(self):
        with pytest.raises(ValueError):
            validate_slot_templates([])

    def test_other_sport_requires_a_name(self):
        with pytest.raises(ValueError):
            validate_sports(["Football", "Other"], None)
        assert validate_sports(["Other"], " Kabaddi ") == (["Other"], "Kabaddi")
        assert validate_sports(["Tennis"], "ignored") == (["Tennis"], None)


class TestRequestedSlot:
    def test_undated_slot_is_weekly(self):
        slot = parse_requested_slot({"day": "Monday", "start_time": "18:00", "end_time": "19:00"}, TODAY)
        assert slot.date is None
        assert slot.occurrence == WEEKLY_OCCURRENCE

    def test_date_derives_the_weekday(self):
        slot = parse_requested_slot(
            {"date": "2026-10-21", "start_time": "18:00", "end_time": "19:00"}, TODAY
        )
        assert slot.day == "Wednesday"
        assert slot.occurrence == "2026-10-21"

    def test_contradicting_day_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            parse_requested_slot(
                {"day": "Monday", "date": "2026-10-21", "start_time": "18:00", "end_time": "19:00"},
                TODAY,
            )
        assert exc.value.field == "slot.day"

    def test_past_date_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            parse_requested_slot(
                {"date": (TODAY - timedelta(days=1)).isoformat(), "start_time": "18:00", "end_time": "19:00"},
                TODAY,
            )
        assert exc.value.field == "slot.date"

    def test_bad_times_report_the_slot_field(self):
        with pytest.raises(ValidationError) as exc:
            parse_requested_slot({"day": "Monday", "start_time": "19:00", "end_time": "18:00"}, TODAY)
        assert exc.value.status_code == 400
        assert exc.value.field == "slot"

    def test_non_object_slot_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_requested_slot("Monday 18:00", TODAY)


class TestBookingBlocks:
    def _booking(self, day="Monday", on_date=None, start="18:00", end="19:00"):
        return Booking(slot_day=day, slot_date=on_date, start_time=start, end_time=end)

    def test_weekly_booking_blocks_the_template_and_every_occurrence(self):
        booking = self._booking()
        assert booking_blocks(booking, "Monday", "18:00", "19:00")
        assert booking_blocks(booking, "Monday", "18:00", "19:00", date(2026, 10, 26))

    def test_dated_booking_blocks_only_its_date(self):
        booking = self._booking(on_date=date(2026, 10, 26))
        assert booking_blocks(booking, "Monday", "18:00", "19:00", date(2026, 10, 26))
        assert not booking_blocks(booking, "Monday", "18:00", "19:00", date(2026, 11, 2))
        # The undated template view still shows it as taken
        assert booking_blocks(booking, "Monday", "18:00", "19:00")

    def test_different_times_never_block(self):
        booking = self._booking(start="17:00", end="18:00")
        assert not booking_blocks(booking, "Monday", "18:00", "19:00")


class TestPagination:
    def test_metadata(self):
        assert build_pagination(1, 2, 3) == {
            "current_page": 1,
            "total_pages": 2,
            "total_items": 3,
            "items_per_page": 2,
            "has_next_page": True,
            "has_prev_page": False,
        }

    def test_empty_result(self):
        meta = build_pagination(1, 10, 0)
        assert meta["total_pages"] == 0
        assert meta["has_next_page"] is False

    @pytest.mark.parametrize(
        "page,page_size,field", [(0, 10, "page"), (1, 0, "page_size"), (1, 101, "page_size")]
    )
    def test_bounds(self, page, page_size, field):
        with pytest.raises(ValidationError) as exc:
            validate_page(page, page_size)
        assert exc.value.field == field
