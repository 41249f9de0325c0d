"""Listing service - Business logic for turf listings and browsing"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ServiceUnavailableError,
    StoreError,
    ValidationError,
)
from ...models import ROLE_OWNER, SPORTS, Account, Listing
from ...shared.pagination import build_pagination, page_offset, validate_page
from ...shared.validators import (
    validate_amenities,
    validate_slot_templates,
    validate_sports,
    validated,
)
from ...utils.sanitization import clean_text
from ..accounts.service import ensure_owner_complete
from ..availability.service import AvailabilityService
from .repository import SORT_COLUMNS, ListingRepository, sports_tags
from .schemas import ListingCreate, ListingUpdate

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 1000
DEFAULT_SORT = "newest"


def _validate_location(location: Optional[dict]) -> dict:
    location = dict(location or {})
    city = validated("location.city", clean_text, location.get("city"), 255)
    if not city:
        raise ValidationError("City is required", field="location.city")
    location["city"] = city
    if location.get("address"):
        location["address"] = validated("location.address", clean_text, location["address"], 500)
    return location


def _validate_images(images: Optional[list]) -> list[dict]:
    if not images:
        raise ValidationError("At least one image is required", field="images")
    return [dict(image) for image in images]


def _sync_denormalized(listing: Listing) -> None:
    """Copy nested fields into the flat columns used by search"""
    location = listing.location or {}
    listing.city = location.get("city")
    listing.address = location.get("address")
    listing.sports_tags = sports_tags(listing.sports_offered or [])
    listing.featured_image = listing.images[0]["url"] if listing.images else None


def listing_summary(listing: Listing) -> dict:
    """Public search item; the payment QR code is left out"""
    return {
        "id": listing.id,
        "owner_id": listing.owner_id,
        "name": listing.name,
        "description": listing.description,
        "featured_image": listing.featured_image,
        "images": listing.images or [],
        "sports_offered": listing.sports_offered or [],
        "custom_sport": listing.custom_sport,
        "amenities": listing.amenities or [],
        "pricing": listing.pricing,
        "location": listing.location or {},
        "business_name": listing.business_name or (listing.contact_info or {}).get("business_name"),
        "rating": listing.rating or 0.0,
        "review_count": listing.review_count or 0,
        "slot_count": len(listing.available_slots or []),
        "created_at": listing.created_at,
    }


class ListingService:
    """Service layer for listing business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ListingRepository()

    def _commit_failed(self, action: str, e: Exception):
        self.db.rollback()
        logger.error(f"❌ Failed to {action}: {str(e)}")
        return StoreError(f"Failed to {action}. Please try again.")

    def _get_owned(self, owner: Account, listing_id: str) -> Listing:
        listing = self.repo.get_by_id(self.db, listing_id)
        if not listing:
            raise NotFoundError("Turf not found")
        if listing.owner_id != owner.id:
            raise AuthorizationError("You can only manage your own turf")
        return listing

    def create_listing(self, owner: Account, data: ListingCreate) -> Listing:
        """Create the owner's single listing; omitted fields come from the owner profile"""
        ensure_owner_complete(owner)

        if self.repo.get_by_owner(self.db, owner.id):
            raise ConflictError("You already have a turf listing")

        name = validated("name", clean_text, data.name, NAME_MAX_LENGTH)
        if not name:
            raise ValidationError("Turf name is required", field="name")

        description = validated(
            "description",
            clean_text,
            data.description if data.description is not None else owner.about,
            DESCRIPTION_MAX_LENGTH,
        )
        if not description:
            raise ValidationError("Description is required", field="description")

        sports = data.sports_offered if data.sports_offered is not None else owner.sports_offered
        custom = data.custom_sport if data.custom_sport is not None else owner.custom_sport
        sports, custom = validated(
            "custom_sport" if sports and "Other" in sports else "sports_offered",
            validate_sports,
            sports,
            custom,
        )

        pricing = data.pricing if data.pricing is not None else owner.pricing
        if not pricing or pricing <= 0:
            raise ValidationError("Valid pricing is required", field="pricing")

        if data.available_slots is not None:
            slots = [slot.model_dump() for slot in data.available_slots]
        else:
            slots = owner.available_slots

        qr_code = data.payment_qr_code.model_dump() if data.payment_qr_code else owner.upi_qr_code
        if not qr_code or not qr_code.get("url"):
            raise ValidationError("Payment QR code is required", field="payment_qr_code")

        listing = Listing(
            owner_id=owner.id,
            name=name,
            description=description,
            images=_validate_images([image.model_dump() for image in data.images]),
            sports_offered=sports,
            custom_sport=custom,
            amenities=validated(
                "amenities",
                validate_amenities,
                data.amenities if data.amenities is not None else owner.amenities,
            ),
            available_slots=validated("available_slots", validate_slot_templates, slots),
            pricing=float(pricing),
            location=_validate_location(
                data.location.model_dump(exclude_none=True) if data.location else owner.location
            ),
            business_name=owner.business_name,
            contact_info={
                "phone": owner.phone,
                "email": owner.email,
                "business_name": owner.business_name,
            },
            payment_qr_code=qr_code,
            is_active=True,
        )
        _sync_denormalized(listing)

        try:
            self.db.add(listing)
            self.db.commit()
            self.db.refresh(listing)
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Duplicate listing for owner {owner.id} (race condition)")
            raise ConflictError("You already have a turf listing") from e
        except SQLAlchemyError as e:
            raise self._commit_failed("create turf", e) from e

        logger.info(f"✅ Created listing {listing.id} for owner {owner.id}")
        return listing

    def update_listing(self, owner: Account, listing_id: str, data: ListingUpdate) -> Listing:
        """Partial update; provided fields are validated against the merged record"""
        listing = self._get_owned(owner, listing_id)

        updates = {}
        if data.name is not None:
            updates["name"] = validated("name", clean_text, data.name, NAME_MAX_LENGTH)
            if not updates["name"]:
                raise ValidationError("Turf name is required", field="name")
        if data.description is not None:
            updates["description"] = validated(
                "description", clean_text, data.description, DESCRIPTION_MAX_LENGTH
            )
            if not updates["description"]:
                raise ValidationError("Description is required", field="description")
        if data.images is not None:
            updates["images"] = _validate_images([image.model_dump() for image in data.images])
        if data.sports_offered is not None or data.custom_sport is not None:
            sports = data.sports_offered if data.sports_offered is not None else listing.sports_offered
            custom = data.custom_sport if data.custom_sport is not None else listing.custom_sport
            updates["sports_offered"], updates["custom_sport"] = validated(
                "custom_sport" if sports and "Other" in sports else "sports_offered",
                validate_sports,
                sports,
                custom,
            )
        if data.amenities is not None:
            updates["amenities"] = validated("amenities", validate_amenities, data.amenities)
        if data.available_slots is not None:
            updates["available_slots"] = validated(
                "available_slots",
                validate_slot_templates,
                [slot.model_dump() for slot in data.available_slots],
            )
        if data.pricing is not None:
            if data.pricing <= 0:
                raise ValidationError("Valid pricing is required", field="pricing")
            updates["pricing"] = float(data.pricing)
        if data.location is not None:
            updates["location"] = _validate_location(data.location.model_dump(exclude_none=True))
        if data.payment_qr_code is not None:
            updates["payment_qr_code"] = data.payment_qr_code.model_dump()

        for key, value in updates.items():
            setattr(listing, key, value)
        _sync_denormalized(listing)

        try:
            self.db.commit()
            self.db.refresh(listing)
        except SQLAlchemyError as e:
            raise self._commit_failed("update turf", e) from e

        logger.info(f"📝 Updated listing {listing.id}: {', '.join(updates) or 'no changes'}")
        return listing

    def set_active(self, owner: Account, listing_id: str, is_active: bool) -> Listing:
        listing = self._get_owned(owner, listing_id)
        try:
            listing = self.repo.update(self.db, listing, is_active=is_active)
        except SQLAlchemyError as e:
            raise self._commit_failed("update turf status", e) from e

        logger.info(f"{'🟢' if is_active else '⚪'} Listing {listing.id} active={is_active}")
        return listing

    def get_owner_listings(self, owner: Account) -> list[Listing]:
        if owner.role != ROLE_OWNER:
            raise AuthorizationError("Only turf owners can manage listings")
        return self.repo.get_by_owner(self.db, owner.id)

    def get_listing_detail(self, listing_id: str) -> dict:
        """Active listing with its weekly availability and payment QR code"""
        listing = self.repo.get_by_id(self.db, listing_id)
        if not listing or not listing.is_active:
            raise NotFoundError("Turf not found")

        availability = AvailabilityService(self.db).availability_for(listing)
        return {
            "id": listing.id,
            "owner_id": listing.owner_id,
            "name": listing.name,
            "description": listing.description,
            "images": listing.images or [],
            "featured_image": listing.featured_image,
            "sports_offered": listing.sports_offered or [],
            "custom_sport": listing.custom_sport,
            "amenities": listing.amenities or [],
            "available_slots": listing.available_slots or [],
            "pricing": listing.pricing,
            "location": listing.location or {},
            "contact_info": listing.contact_info or {},
            "payment_qr_code": listing.payment_qr_code,
            "is_active": listing.is_active,
            "rating": listing.rating or 0.0,
            "review_count": listing.review_count or 0,
            "created_at": listing.created_at,
            "updated_at": listing.updated_at,
            "availability": availability,
        }

    def search_listings(
        self,
        search: Optional[str] = None,
        sport: Optional[str] = None,
        city: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        sort_by: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> dict:
        """
        Browse active listings.

        Cities and sport counts are computed over all active listings; the
        price range covers the filtered set.
        """
        page, page_size = validate_page(page, page_size)

        sort_by = sort_by or DEFAULT_SORT
        if sort_by not in SORT_COLUMNS:
            raise ValidationError(
                f"Invalid sort option. Must be one of: {', '.join(SORT_COLUMNS)}", field="sort_by"
            )
        if sport and sport != "all" and sport not in SPORTS:
            raise ValidationError(f"Invalid sport '{sport}'", field="sport")
        if min_price is not None and max_price is not None and min_price > max_price:
            raise ValidationError("min_price cannot exceed max_price", field="min_price")

        search = validated("search", clean_text, search, 200) if search else None
        city = validated("city", clean_text, city, 255) if city else None

        try:
            query = self.repo.filtered_query(self.db, search, sport, city, min_price, max_price)
            total = query.count()
            listings = self.repo.page(query, sort_by, page_offset(page, page_size), page_size)
            low, high = self.repo.price_range(query)
            cities = self.repo.active_cities(self.db)
            sport_counts = self.repo.active_sport_counts(self.db)
        except SQLAlchemyError as e:
            logger.error(f"❌ Turf search failed: {str(e)}")
            raise ServiceUnavailableError(
                "Turf search is temporarily unavailable. Please try again."
            ) from e

        return {
            "items": [listing_summary(listing) for listing in listings],
            "pagination": build_pagination(page, page_size, total),
            "facets": {
                "cities": cities,
                "sports": [
                    {"sport": name, "count": count}
                    for name, count in sport_counts.items()
                    if name != "Other"
                ],
                "price_range": {"min": low or 0, "max": high or 0},
            },
        }
