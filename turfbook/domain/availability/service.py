"""Availability service - Derives slot occupancy from active bookings"""

import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import ConflictError, NotFoundError, ValidationError
from ...models import WEEKDAYS, Listing
from ..bookings.repository import BookingRepository
from ..listings.repository import ListingRepository
from .slots import RequestedSlot, booking_blocks

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 62


def validate_date_range(start_date: Optional[date], end_date: Optional[date]) -> None:
    if (start_date is None) != (end_date is None):
        raise ValidationError(
            "start_date and end_date must be provided together",
            field="start_date" if start_date is None else "end_date",
        )
    if start_date is None:
        return
    if start_date > end_date:
        raise ValidationError("start_date must be on or before end_date", field="start_date")
    if (end_date - start_date).days > MAX_RANGE_DAYS:
        raise ValidationError(
            f"Date range cannot exceed {MAX_RANGE_DAYS} days", field="end_date"
        )


def _dates_by_weekday(start_date: date, end_date: date) -> dict[str, list[date]]:
    dates = {day: [] for day in WEEKDAYS}
    current = start_date
    while current <= end_date:
        dates[WEEKDAYS[current.weekday()]].append(current)
        current += timedelta(days=1)
    return dates


class AvailabilityService:
    """Service layer for slot availability"""

    def __init__(self, db: Session):
        self.db = db
        self.listing_repo = ListingRepository()
        self.booking_repo = BookingRepository()

    def get_listing_availability(
        self,
        listing_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[dict]:
        """
        Slot templates of a listing annotated with ``is_booked``.

        Without a range each template appears once and is booked when any
        active booking holds its day and times. With a range each template is
        expanded to the matching dates, ordered by date then template order.
        """
        validate_date_range(start_date, end_date)

        listing = self.listing_repo.get_by_id(self.db, listing_id)
        if not listing:
            raise NotFoundError("Turf not found")

        return self.availability_for(listing, start_date, end_date)

    def availability_for(
        self,
        listing: Listing,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[dict]:
        templates = listing.available_slots or []
        if not templates:
            return []

        bookings = self.booking_repo.get_active_for_listing(
            self.db, listing.id, start_date, end_date
        )

        if start_date is None:
            return [
                {
                    "day": t["day"],
                    "start_time": t["start_time"],
                    "end_time": t["end_time"],
                    "is_booked": any(
                        booking_blocks(b, t["day"], t["start_time"], t["end_time"]) for b in bookings
                    ),
                }
                for t in templates
            ]

        dates = _dates_by_weekday(start_date, end_date)
        entries = []
        for position, t in enumerate(templates):
            for on_date in dates.get(t["day"], []):
                entries.append(
                    (
                        on_date,
                        position,
                        {
                            "day": t["day"],
                            "date": on_date.isoformat(),
                            "start_time": t["start_time"],
                            "end_time": t["end_time"],
                            "is_booked": any(
                                booking_blocks(b, t["day"], t["start_time"], t["end_time"], on_date)
                                for b in bookings
                            ),
                        },
                    )
                )
        entries.sort(key=lambda entry: (entry[0], entry[1]))
        return [entry[2] for entry in entries]

    def ensure_slot_available(self, listing_id: str, slot: RequestedSlot) -> None:
        """Raise ConflictError if an active booking already holds the slot"""
        blocking = self.booking_repo.find_blocking(
            self.db, listing_id, slot.day, slot.start_time, slot.end_time, slot.date
        )
        if blocking:
            logger.info(
                f"🚫 Slot {slot.day} {slot.start_time}-{slot.end_time} on listing {listing_id} "
                f"held by booking {blocking.id}"
            )
            raise ConflictError("This slot is no longer available", field="slot")
