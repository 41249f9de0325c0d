"""Booking router - FastAPI endpoints for booking requests and owner decisions"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from ... import config
from ...auth import get_current_customer, get_current_owner, get_current_user
from ...database import get_db
from ...errors import AuthorizationError, ValidationError
from ...media import get_media_store
from ...models import ROLE_CUSTOMER, ROLE_OWNER, Account
from ...rate_limiter import create_rate_limiter
from .schemas import BookingListResponse, BookingResponse, BookingStatusUpdate
from .service import BookingService, PaymentProof

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])

booking_rate_limit = create_rate_limiter(
    limit=config.BOOKING_RATE_LIMIT,
    window_seconds=config.BOOKING_RATE_WINDOW_SECONDS,
    key_prefix="booking",
)


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


def _parse_slot(raw: str) -> dict:
    try:
        slot = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError("Slot must be a JSON object", field="slot") from e
    if not isinstance(slot, dict):
        raise ValidationError("Slot must be a JSON object", field="slot")
    return slot


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    owner_id: str = Form(...),
    listing_id: str = Form(...),
    slot: str = Form(...),
    total_amount: Optional[float] = Form(None),
    payment_screenshot: Optional[UploadFile] = File(None),
    current_user: Account = Depends(get_current_customer),
    service: BookingService = Depends(get_booking_service),
    media_store=Depends(get_media_store),
    _: None = Depends(booking_rate_limit),
):
    """Request a slot; the payment screenshot is required and the booking starts pending"""
    proof = None
    if payment_screenshot is not None:
        proof = PaymentProof(
            content=await payment_screenshot.read(config.MAX_UPLOAD_BYTES + 1),
            content_type=payment_screenshot.content_type,
            filename=payment_screenshot.filename,
        )

    return service.create_booking(
        customer_id=current_user.id,
        owner_id=owner_id,
        listing_id=listing_id,
        slot=_parse_slot(slot),
        total_amount=total_amount,
        proof=proof,
        media_store=media_store,
    )


@router.get("/customer/{customer_id}", response_model=BookingListResponse)
async def get_customer_bookings(
    customer_id: str,
    status: Optional[str] = Query(None),
    page: int = Query(1),
    page_size: int = Query(10),
    current_user: Account = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Bookings made by a customer, newest first"""
    if current_user.id != customer_id:
        raise AuthorizationError("You can only view your own bookings")
    return service.list_bookings(ROLE_CUSTOMER, customer_id, status, page, page_size)


@router.get("/owner/{owner_id}", response_model=BookingListResponse)
async def get_owner_bookings(
    owner_id: str,
    status: Optional[str] = Query(None),
    page: int = Query(1),
    page_size: int = Query(10),
    current_user: Account = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Booking requests received by an owner, newest first"""
    if current_user.id != owner_id:
        raise AuthorizationError("You can only view bookings for your own turf")
    return service.list_bookings(ROLE_OWNER, owner_id, status, page, page_size)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    current_user: Account = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_booking(booking_id, current_user.id)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: str,
    data: BookingStatusUpdate,
    current_user: Account = Depends(get_current_owner),
    service: BookingService = Depends(get_booking_service),
):
    """Confirm or reject a pending booking"""
    return service.decide_booking(booking_id, current_user.id, data.status)
