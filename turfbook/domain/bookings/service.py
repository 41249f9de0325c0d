"""Booking service - Booking requests and the owner approval workflow"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ... import config
from ...errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StoreError,
    UpstreamError,
    ValidationError,
)
from ...media import FOLDER_PAYMENT_SCREENSHOTS, validate_image
from ...models import (
    BOOKING_CONFIRMED,
    BOOKING_PENDING,
    BOOKING_REJECTED,
    BOOKING_STATUSES,
    ROLE_CUSTOMER,
    ROLE_OWNER,
    Account,
    Booking,
    Listing,
)
from ...shared.pagination import build_pagination, page_offset, validate_page
from ..accounts.repository import AccountRepository
from ..availability.service import AvailabilityService
from ..availability.slots import parse_requested_slot
from ..listings.repository import ListingRepository
from .repository import BookingRepository

logger = logging.getLogger(__name__)

DECISIONS = (BOOKING_CONFIRMED, BOOKING_REJECTED)
ALREADY_PROCESSED = "This booking has already been processed"
SLOT_TAKEN = "This slot is no longer available"
ROLE_MISMATCH = {
    ROLE_CUSTOMER: "Account is not a customer",
    ROLE_OWNER: "Account is not a turf owner",
}


@dataclass
class PaymentProof:
    """Uploaded payment screenshot as received from the client"""

    content: bytes
    content_type: Optional[str]
    filename: Optional[str] = None


def _party(account: Optional[Account]) -> Optional[dict]:
    if account is None:
        return None
    return {
        "id": account.id,
        "name": account.name,
        "email": account.email,
        "phone": account.phone,
        "business_name": account.business_name,
    }


def _listing_brief(listing: Optional[Listing]) -> Optional[dict]:
    if listing is None:
        return None
    return {
        "id": listing.id,
        "name": listing.name,
        "featured_image": listing.featured_image,
        "location": listing.location or {},
        "pricing": listing.pricing,
    }


def serialize_booking(booking: Booking) -> dict:
    """Booking with customer, owner and listing summaries resolved"""
    return {
        "id": booking.id,
        "customer_id": booking.customer_id,
        "owner_id": booking.owner_id,
        "listing_id": booking.listing_id,
        "slot": booking.slot,
        "status": booking.status,
        "total_amount": booking.total_amount,
        "payment_screenshot": booking.payment_screenshot,
        "decided_at": booking.decided_at,
        "created_at": booking.created_at,
        "updated_at": booking.updated_at,
        "customer": _party(booking.customer),
        "owner": _party(booking.owner),
        "listing": _listing_brief(booking.listing),
    }


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()
        self.accounts = AccountRepository()
        self.listings = ListingRepository()

    def _load_party(self, account_id: str, role: str) -> Account:
        account = self.accounts.get_by_id(self.db, account_id)
        if not account:
            raise NotFoundError(f"{role.capitalize()} not found")
        if account.role != role:
            raise AuthorizationError(ROLE_MISMATCH[role])
        return account

    def create_booking(
        self,
        customer_id: str,
        owner_id: str,
        listing_id: str,
        slot,
        total_amount: Optional[float],
        proof: Optional[PaymentProof],
        media_store,
        today: Optional[date] = None,
    ) -> dict:
        """
        Request a slot on a listing.

        The listing row stays locked from the availability check until the
        insert commits. The payment screenshot is uploaded before the insert;
        if the upload fails nothing is stored.
        """
        requested = parse_requested_slot(slot, today)

        if total_amount is None or total_amount <= 0:
            raise ValidationError("Total amount must be greater than 0", field="total_amount")
        if proof is None or not proof.content:
            raise ValidationError("Payment screenshot is required", field="payment_screenshot")
        try:
            validate_image(proof.content, proof.content_type, proof.filename, config.MAX_UPLOAD_BYTES)
        except ValidationError as e:
            raise ValidationError(e.detail, field="payment_screenshot") from e

        self._load_party(customer_id, ROLE_CUSTOMER)
        self._load_party(owner_id, ROLE_OWNER)

        listing = self.listings.get_for_update(self.db, listing_id)
        if not listing:
            raise NotFoundError("Turf not found")
        if listing.owner_id != owner_id:
            raise ValidationError("This turf does not belong to the selected owner", field="owner_id")
        if not listing.is_active:
            raise ValidationError("This turf is not accepting bookings", field="listing_id")
        if not any(requested.matches_template(t) for t in listing.available_slots or []):
            raise ValidationError("This time slot is not offered by the turf", field="slot")

        try:
            AvailabilityService(self.db).ensure_slot_available(listing.id, requested)
        except ConflictError:
            self.db.rollback()
            raise

        try:
            stored = media_store.upload(
                proof.content, proof.content_type, FOLDER_PAYMENT_SCREENSHOTS, proof.filename
            )
        except (UpstreamError, ValidationError):
            self.db.rollback()
            raise

        try:
            booking = self.repo.add(
                self.db,
                customer_id=customer_id,
                owner_id=owner_id,
                listing_id=listing.id,
                slot_day=requested.day,
                slot_date=requested.date,
                start_time=requested.start_time,
                end_time=requested.end_time,
                occurrence=requested.occurrence,
                status=BOOKING_PENDING,
                total_amount=float(total_amount),
                payment_screenshot=stored.as_dict(),
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(
                f"⚠️ Slot {requested.occurrence} {requested.day} {requested.start_time} on listing "
                f"{listing.id} taken concurrently; screenshot {stored.object_id} orphaned"
            )
            raise ConflictError(SLOT_TAKEN, field="slot") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"❌ Failed to save booking (screenshot {stored.object_id} orphaned): {str(e)}"
            )
            raise StoreError("Failed to create booking. Please try again.") from e

        logger.info(
            f"✅ Booking {booking.id} requested by {customer_id} for listing {listing.id} "
            f"({requested.day} {requested.start_time}-{requested.end_time}, {requested.occurrence})"
        )
        return serialize_booking(self.repo.get_by_id(self.db, booking.id, with_details=True))

    def decide_booking(self, booking_id: str, acting_owner_id: str, decision: str) -> dict:
        """Confirm or reject a pending booking; terminal bookings never change"""
        if decision not in DECISIONS:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(DECISIONS)}", field="status"
            )

        booking = self.repo.get_by_id(self.db, booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        if booking.owner_id != acting_owner_id:
            raise AuthorizationError("You can only manage bookings for your own turf")
        if booking.status != BOOKING_PENDING:
            raise ValidationError(ALREADY_PROCESSED, field="status")

        try:
            updated = self.repo.decide(self.db, booking_id, decision)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to update booking {booking_id}: {str(e)}")
            raise StoreError("Failed to update booking. Please try again.") from e

        if not updated:
            # Another decision landed between the read and the update
            raise ValidationError(ALREADY_PROCESSED, field="status")

        self.db.refresh(booking)
        logger.info(f"📋 Booking {booking_id} {decision} by owner {acting_owner_id}")
        return serialize_booking(booking)

    def get_booking(self, booking_id: str, viewer_id: str) -> dict:
        booking = self.repo.get_by_id(self.db, booking_id, with_details=True)
        if not booking:
            raise NotFoundError("Booking not found")
        if viewer_id not in (booking.customer_id, booking.owner_id):
            raise AuthorizationError("You do not have access to this booking")
        return serialize_booking(booking)

    def list_bookings(
        self,
        actor_role: str,
        actor_id: str,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> dict:
        """Bookings of a customer or an owner, newest first"""
        page, page_size = validate_page(page, page_size)
        if status and status not in BOOKING_STATUSES:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(BOOKING_STATUSES)}", field="status"
            )

        self._load_party(actor_id, actor_role)
        column = Booking.owner_id if actor_role == ROLE_OWNER else Booking.customer_id

        try:
            bookings, total = self.repo.list_for_actor(
                self.db, column, actor_id, status, page_offset(page, page_size), page_size
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to list bookings for {actor_role} {actor_id}: {str(e)}")
            raise StoreError("Failed to load bookings. Please try again.") from e

        return {
            "items": [serialize_booking(booking) for booking in bookings],
            "pagination": build_pagination(page, page_size, total),
        }
