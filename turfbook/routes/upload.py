import logging

from fastapi import APIRouter, Depends, File, Query, UploadFile

from .. import config
from ..auth import get_current_owner
from ..domain.accounts.schemas import ImageRef
from ..errors import ValidationError
from ..media import FOLDER_QR_CODES, FOLDER_TURF_IMAGES, get_media_store
from ..models import Account
from ..rate_limiter import create_rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["Upload"])

OWNER_UPLOAD_FOLDERS = (FOLDER_TURF_IMAGES, FOLDER_QR_CODES)

upload_rate_limit = create_rate_limiter(
    limit=config.UPLOAD_RATE_LIMIT,
    window_seconds=config.UPLOAD_RATE_WINDOW_SECONDS,
    key_prefix="upload",
)


@router.post("/images", response_model=ImageRef, status_code=201)
async def upload_image(
    file: UploadFile = File(...),
    folder: str = Query(FOLDER_TURF_IMAGES),
    current_user: Account = Depends(get_current_owner),
    media_store=Depends(get_media_store),
    _: None = Depends(upload_rate_limit),
):
    """Upload a turf photo or UPI QR code; returns the URL and object id to save on the profile"""
    if folder not in OWNER_UPLOAD_FOLDERS:
        raise ValidationError(
            f"Invalid folder. Must be one of: {', '.join(OWNER_UPLOAD_FOLDERS)}", field="folder"
        )

    # Read at most one byte past the limit so oversize files are rejected without buffering them
    content = await file.read(config.MAX_UPLOAD_BYTES + 1)
    logger.info(f"📤 Uploading {file.filename} to {folder} for owner {current_user.id}")
    stored = media_store.upload(content, file.content_type, folder, file.filename)
    return stored.as_dict()
