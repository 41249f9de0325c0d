"""Booking repository - Database operations for bookings"""

from datetime import date
from typing import Optional

from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session, joinedload

from ...models import ACTIVE_BOOKING_STATUSES, BOOKING_PENDING, Booking, utcnow


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_by_id(db: Session, booking_id: str, with_details: bool = False) -> Optional[Booking]:
        query = db.query(Booking)
        if with_details:
            query = query.options(
                joinedload(Booking.customer), joinedload(Booking.owner), joinedload(Booking.listing)
            )
        return query.filter(Booking.id == booking_id).first()

    @staticmethod
    def get_active_for_listing(
        db: Session,
        listing_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[Booking]:
        """Pending and confirmed bookings; with a range, dated ones inside it plus weekly ones"""
        query = db.query(Booking).filter(
            Booking.listing_id == listing_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        if start_date and end_date:
            query = query.filter(
                or_(
                    Booking.slot_date.is_(None),
                    and_(Booking.slot_date >= start_date, Booking.slot_date <= end_date),
                )
            )
        return query.all()

    @staticmethod
    def find_blocking(
        db: Session,
        listing_id: str,
        day: str,
        start_time: str,
        end_time: str,
        on_date: Optional[date] = None,
    ) -> Optional[Booking]:
        """First active booking occupying the slot (see availability.slots.booking_blocks)"""
        query = db.query(Booking).filter(
            Booking.listing_id == listing_id,
            Booking.start_time == start_time,
            Booking.end_time == end_time,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        if on_date is None:
            query = query.filter(Booking.slot_day == day)
        else:
            query = query.filter(
                or_(
                    Booking.slot_date == on_date,
                    and_(Booking.slot_date.is_(None), Booking.slot_day == day),
                )
            )
        return query.first()

    @staticmethod
    def add(db: Session, **booking_data) -> Booking:
        """Stage a booking; the caller commits"""
        booking = Booking(**booking_data)
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def decide(db: Session, booking_id: str, status: str) -> bool:
        """
        Move a pending booking to a terminal status.

        The status guard is part of the UPDATE, so of two concurrent decisions
        only one can match the row. Returns whether a row was updated.
        """
        now = utcnow()
        result = db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == BOOKING_PENDING)
            .values(status=status, decided_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def list_for_actor(
        db: Session,
        actor_column,
        actor_id: str,
        status: Optional[str],
        offset: int,
        limit: int,
    ) -> tuple[list[Booking], int]:
        query = db.query(Booking).filter(actor_column == actor_id)
        if status:
            query = query.filter(Booking.status == status)

        total = query.count()
        bookings = (
            query.options(
                joinedload(Booking.customer), joinedload(Booking.owner), joinedload(Booking.listing)
            )
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return bookings, total
