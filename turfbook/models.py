import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from .database import Base

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
SPORTS = ("Football", "Cricket", "Badminton", "Tennis", "Basketball", "Other")
AMENITIES = ("Floodlights", "Parking", "Washroom", "Equipment")

ROLE_CUSTOMER = "customer"
ROLE_OWNER = "owner"
ROLES = (ROLE_CUSTOMER, ROLE_OWNER)

BOOKING_PENDING = "pending"
BOOKING_CONFIRMED = "confirmed"
BOOKING_REJECTED = "rejected"
BOOKING_STATUSES = (BOOKING_PENDING, BOOKING_CONFIRMED, BOOKING_REJECTED)
# Statuses that hold a slot
ACTIVE_BOOKING_STATUSES = (BOOKING_PENDING, BOOKING_CONFIRMED)

# Occurrence key of bookings that claim the recurring weekly template
WEEKLY_OCCURRENCE = "weekly"


def generate_public_id():
    """Generate an opaque identifier for accounts, listings and bookings"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    firebase_uid = Column(String(128), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)  # stored lower-cased
    role = Column(String(20), nullable=False, default=ROLE_CUSTOMER, index=True)
    phone = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)

    # Owner-only attributes
    business_name = Column(String(255), nullable=True)
    sports_offered = Column(JSON, default=list, nullable=True)
    custom_sport = Column(String(100), nullable=True)  # Required when "Other" is offered
    amenities = Column(JSON, default=list, nullable=True)
    about = Column(Text, nullable=True)
    pricing = Column(Float, nullable=True)  # Price per hour
    available_slots = Column(JSON, default=list, nullable=True)  # [{day, start_time, end_time}]
    location = Column(JSON, default=dict, nullable=True)
    upi_qr_code = Column(JSON, nullable=True)  # {url, object_id}

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    listings = relationship("Listing", back_populates="owner")

    __table_args__ = (
        CheckConstraint("role IN ('customer', 'owner')", name="check_account_role"),
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, email={self.email}, role={self.role})>"


class Listing(Base):
    __tablename__ = "listings"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    # One listing per owner
    owner_id = Column(String(36), ForeignKey("accounts.id"), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    images = Column(JSON, default=list, nullable=False)  # [{url, object_id}]
    featured_image = Column(String(1000), nullable=True)
    sports_offered = Column(JSON, default=list, nullable=False)
    custom_sport = Column(String(100), nullable=True)
    amenities = Column(JSON, default=list, nullable=False)
    available_slots = Column(JSON, default=list, nullable=False)
    pricing = Column(Float, nullable=False, index=True)
    location = Column(JSON, default=dict, nullable=False)
    # Denormalized copies of nested fields for search, filters and facets
    city = Column(String(255), nullable=True, index=True)
    address = Column(String(500), nullable=True)
    business_name = Column(String(255), nullable=True)
    sports_tags = Column(String(255), nullable=False, default="")  # "|Football|Cricket|"
    contact_info = Column(JSON, default=dict, nullable=False)  # {phone, email, business_name}
    payment_qr_code = Column(JSON, nullable=False)  # {url, object_id}
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    rating = Column(Float, default=0.0, nullable=False)
    review_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("Account", back_populates="listings")
    bookings = relationship("Booking", back_populates="listing")

    __table_args__ = (
        CheckConstraint("pricing > 0", name="check_listing_pricing_positive"),
        CheckConstraint("rating >= 0 AND rating <= 5", name="check_listing_rating_range"),
    )

    def __repr__(self) -> str:
        return f"<Listing(id={self.id}, name={self.name}, owner={self.owner_id})>"


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    customer_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    owner_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    listing_id = Column(String(36), ForeignKey("listings.id"), nullable=False, index=True)
    slot_day = Column(String(10), nullable=False)
    slot_date = Column(Date, nullable=True)  # Null for bookings of the weekly template
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    # ISO date of the occurrence, or "weekly"
    occurrence = Column(String(10), nullable=False, default=WEEKLY_OCCURRENCE)
    status = Column(String(20), nullable=False, default=BOOKING_PENDING, index=True)
    total_amount = Column(Float, nullable=False)
    payment_screenshot = Column(JSON, nullable=False)  # {url, object_id}
    decided_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    customer = relationship("Account", foreign_keys=[customer_id])
    owner = relationship("Account", foreign_keys=[owner_id])
    listing = relationship("Listing", back_populates="bookings")

    __table_args__ = (
        CheckConstraint("total_amount > 0", name="check_booking_amount_positive"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'rejected')", name="check_booking_status"
        ),
        # At most one pending/confirmed booking per slot occurrence on a listing
        Index(
            "uq_bookings_active_slot",
            "listing_id",
            "slot_day",
            "start_time",
            "end_time",
            "occurrence",
            unique=True,
            sqlite_where=text("status IN ('pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
        Index("ix_bookings_listing_slot", "listing_id", "slot_day", "start_time"),
    )

    @property
    def slot(self) -> dict:
        return {
            "day": self.slot_day,
            "date": self.slot_date.isoformat() if self.slot_date else None,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, listing={self.listing_id}, status={self.status})>"
