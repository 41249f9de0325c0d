"""Requested slot value object and the rule deciding which bookings block it"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from ...errors import ValidationError
from ...models import WEEKLY_OCCURRENCE, Booking
from ...shared.validators import validate_slot_template, validated, weekday_of


@dataclass(frozen=True)
class RequestedSlot:
    day: str
    start_time: str
    end_time: str
    date: Optional[date] = None

    @property
    def occurrence(self) -> str:
        return self.date.isoformat() if self.date else WEEKLY_OCCURRENCE

    def matches_template(self, template: dict) -> bool:
        return (
            template.get("day") == self.day
            and template.get("start_time") == self.start_time
            and template.get("end_time") == self.end_time
        )

    def as_dict(self) -> dict:
        return {
            "day": self.day,
            "date": self.date.isoformat() if self.date else None,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


def _parse_date(value) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as e:
        raise ValidationError(f"Invalid date '{value}'. Use YYYY-MM-DD", field="slot.date") from e


def parse_requested_slot(raw, today: Optional[date] = None) -> RequestedSlot:
    """
    Validate a slot descriptor ``{day?, date?, start_time, end_time}``.

    When a date is given the weekday is derived from it; an explicit day that
    disagrees is rejected, and past dates are rejected.
    """
    if not isinstance(raw, dict):
        raise ValidationError("Slot must contain day, start_time and end_time", field="slot")

    slot_date = None
    day = raw.get("day")
    if raw.get("date"):
        slot_date = _parse_date(raw["date"])
        derived = weekday_of(slot_date)
        if day and str(day).strip().lower() != derived.lower():
            raise ValidationError(
                f"Day '{day}' does not match {slot_date.isoformat()} ({derived})", field="slot.day"
            )
        day = derived
        if slot_date < (today or date.today()):
            raise ValidationError("Cannot book a slot in the past", field="slot.date")

    template = validated("slot", validate_slot_template, day, raw.get("start_time"), raw.get("end_time"))
    return RequestedSlot(
        day=template["day"],
        start_time=template["start_time"],
        end_time=template["end_time"],
        date=slot_date,
    )


def booking_blocks(booking: Booking, day: str, start_time: str, end_time: str, on_date: Optional[date] = None) -> bool:
    """
    Whether an active booking occupies the given slot.

    Without a date the slot is the weekly template, held by any booking with
    the same day and times. With a date it is one occurrence, held by a
    booking for that date or by a weekly booking on that weekday.
    """
    if booking.start_time != start_time or booking.end_time != end_time:
        return False
    if on_date is None:
        return booking.slot_day == day
    if booking.slot_date is None:
        return booking.slot_day == day
    return booking.slot_date == on_date
