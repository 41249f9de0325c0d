"""Account router - FastAPI endpoints for the signed-in user's profile"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import Account
from .schemas import (
    AccountResponse,
    AccountUpdate,
    CompletenessResponse,
    OwnerProfileUpdate,
    PromoteRequest,
)
from .service import AccountService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounts", tags=["Accounts"])


def get_account_service(db: Session = Depends(get_db)) -> AccountService:
    """Dependency injection for AccountService"""
    return AccountService(db)


@router.get("/me", response_model=AccountResponse)
async def get_me(current_user: Account = Depends(get_current_user)):
    """Get the signed-in account (created on first contact)"""
    return current_user


@router.patch("/me", response_model=AccountResponse)
async def update_me(
    data: AccountUpdate,
    current_user: Account = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
):
    """Update name and phone"""
    return service.update_profile(current_user, data)


@router.post("/me/promote", response_model=AccountResponse)
async def promote_me(
    data: PromoteRequest,
    current_user: Account = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
):
    """Become a turf owner"""
    return service.promote_to_owner(current_user, data.business_name)


@router.put("/me/owner-profile", response_model=AccountResponse)
async def update_owner_profile(
    data: OwnerProfileUpdate,
    current_user: Account = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
):
    """Save owner-only attributes; the result must be a complete owner profile"""
    return service.update_owner_profile(current_user, data)


@router.get("/me/completeness", response_model=CompletenessResponse)
async def get_completeness(
    current_user: Account = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
):
    return service.completeness(current_user)
