"""Account service - Business logic for customer and owner profiles"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import AuthorizationError, ConflictError, NotFoundError, StoreError, ValidationError
from ...models import ROLE_CUSTOMER, ROLE_OWNER, Account
from ...shared.validators import (
    validate_amenities,
    validate_phone,
    validate_slot_templates,
    validate_sports,
    validated,
)
from ...utils.sanitization import clean_text
from .repository import AccountRepository
from .schemas import AccountUpdate, OwnerProfileUpdate

logger = logging.getLogger(__name__)

ABOUT_MAX_LENGTH = 1000


def missing_owner_fields(account: Account) -> list[str]:
    """Owner-only attributes that are absent or empty, in form order"""
    missing = []
    if not (account.business_name or "").strip():
        missing.append("business_name")
    if not account.sports_offered:
        missing.append("sports_offered")
    elif "Other" in account.sports_offered and not (account.custom_sport or "").strip():
        missing.append("custom_sport")
    if not account.amenities:
        missing.append("amenities")
    if not (account.about or "").strip():
        missing.append("about")
    if not account.pricing or account.pricing <= 0:
        missing.append("pricing")
    if not account.available_slots:
        missing.append("available_slots")
    if not (account.location or {}).get("city"):
        missing.append("location")
    if not account.upi_qr_code or not account.upi_qr_code.get("url"):
        missing.append("upi_qr_code")
    return missing


def ensure_owner_complete(account: Account) -> None:
    """Raise a field-specific ValidationError unless the owner profile is complete"""
    if account.role != ROLE_OWNER:
        raise AuthorizationError("Only turf owners can perform this action")

    missing = missing_owner_fields(account)
    if missing:
        field = missing[0]
        raise ValidationError(f"Owner profile is incomplete: '{field}' is required", field=field)


class AccountService:
    """Service layer for account business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AccountRepository()

    def _commit_failed(self, action: str, e: Exception):
        self.db.rollback()
        logger.error(f"❌ Failed to {action}: {str(e)}")
        return StoreError(f"Failed to {action}. Please try again.")

    def get_account(self, account_id: str) -> Account:
        account = self.repo.get_by_id(self.db, account_id)
        if not account:
            raise NotFoundError("Account not found")
        return account

    def get_or_create(self, claims) -> Account:
        """Find the account for verified identity claims, creating a customer on first contact"""
        account = self.repo.get_by_firebase_uid(self.db, claims.subject_id)
        if account:
            return account

        email = claims.email.strip().lower()
        existing = self.repo.get_by_email(self.db, email)
        if existing:
            # Same person signing in through another provider (e.g. password -> Google)
            logger.info(
                f"🔄 Relinking account {existing.id} from UID {existing.firebase_uid} to {claims.subject_id}"
            )
            try:
                return self.repo.update(
                    self.db,
                    existing,
                    firebase_uid=claims.subject_id,
                    email_verified=existing.email_verified or claims.email_verified,
                )
            except SQLAlchemyError as e:
                raise self._commit_failed("update user authentication method", e) from e

        logger.info(f"🆕 Creating new account: {email}")
        try:
            return self.repo.create(
                self.db,
                firebase_uid=claims.subject_id,
                name=claims.name or email.split("@")[0],
                email=email,
                role=ROLE_CUSTOMER,
                email_verified=claims.email_verified,
                is_active=True,
            )
        except IntegrityError as e:
            self.db.rollback()
            # Another request created the account between the lookup and the insert
            account = self.repo.get_by_firebase_uid(self.db, claims.subject_id)
            if account:
                return account
            logger.warning(f"⚠️ Email {email} was taken by another account (race condition)")
            raise ConflictError(
                "This email is already registered. Please sign in with your existing account."
            ) from e
        except SQLAlchemyError as e:
            raise self._commit_failed("create account", e) from e

    def update_profile(self, account: Account, data: AccountUpdate) -> Account:
        updates = {}
        if data.name is not None:
            updates["name"] = validated("name", clean_text, data.name, 255)
            if not updates["name"]:
                raise ValidationError("Name cannot be empty", field="name")
        if data.phone is not None:
            updates["phone"] = data.phone or None

        try:
            return self.repo.update(self.db, account, **updates)
        except SQLAlchemyError as e:
            raise self._commit_failed("update profile", e) from e

    def promote_to_owner(self, account: Account, business_name: Optional[str] = None) -> Account:
        """One-way role change; owner attributes are filled in afterwards"""
        if account.role == ROLE_OWNER:
            raise ConflictError("Account is already a turf owner")

        updates = {"role": ROLE_OWNER}
        if business_name:
            updates["business_name"] = validated("business_name", clean_text, business_name, 255)

        logger.info(f"⬆️ Promoting account {account.id} to owner")
        try:
            return self.repo.update(self.db, account, **updates)
        except SQLAlchemyError as e:
            raise self._commit_failed("update role", e) from e

    def update_owner_profile(self, account: Account, data: OwnerProfileUpdate) -> Account:
        """
        Save owner-only attributes.

        Provided fields are validated individually; the merged profile must then
        be complete, otherwise the first missing field is reported.
        """
        if account.role != ROLE_OWNER:
            raise AuthorizationError("Only turf owners can edit an owner profile")

        updates = {}
        if data.business_name is not None:
            updates["business_name"] = validated("business_name", clean_text, data.business_name, 255)
        if data.phone is not None:
            updates["phone"] = validated("phone", validate_phone, data.phone) or None
        if data.sports_offered is not None or data.custom_sport is not None:
            sports = data.sports_offered if data.sports_offered is not None else account.sports_offered
            custom = data.custom_sport if data.custom_sport is not None else account.custom_sport
            field = "custom_sport" if sports and "Other" in sports else "sports_offered"
            updates["sports_offered"], updates["custom_sport"] = validated(
                field, validate_sports, sports, custom
            )
        if data.amenities is not None:
            updates["amenities"] = validated("amenities", validate_amenities, data.amenities)
        if data.about is not None:
            updates["about"] = validated("about", clean_text, data.about, ABOUT_MAX_LENGTH)
        if data.pricing is not None:
            if data.pricing <= 0:
                raise ValidationError("Valid pricing is required", field="pricing")
            updates["pricing"] = float(data.pricing)
        if data.available_slots is not None:
            updates["available_slots"] = validated(
                "available_slots",
                validate_slot_templates,
                [slot.model_dump() for slot in data.available_slots],
            )
        if data.location is not None:
            updates["location"] = data.location.model_dump(exclude_none=True)
        if data.upi_qr_code is not None:
            updates["upi_qr_code"] = data.upi_qr_code.model_dump()

        for key, value in updates.items():
            setattr(account, key, value)

        try:
            ensure_owner_complete(account)
        except ValidationError:
            # Leave the stored profile untouched
            self.db.rollback()
            self.db.refresh(account)
            raise

        try:
            self.db.commit()
            self.db.refresh(account)
        except SQLAlchemyError as e:
            raise self._commit_failed("update owner profile", e) from e

        logger.info(f"✅ Owner profile updated for account {account.id}")
        return account

    def completeness(self, account: Account) -> dict:
        if account.role != ROLE_OWNER:
            return {"complete": True, "missing_fields": []}
        missing = missing_owner_fields(account)
        return {"complete": not missing, "missing_fields": missing}
