"""Image storage on Cloudflare R2 (S3-compatible)."""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request

from .errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

# Presigned URL expiration time (7 days, the S3 v4 maximum)
PRESIGNED_URL_EXPIRATION = 7 * 24 * 3600

ALLOWED_IMAGE_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/heic": "heic",
    "image/heif": "heif",
    "image/avif": "avif",
}

DANGEROUS_FILENAME_CHARS = ["..", "/", "\\", "<", ">", ":", '"', "|", "?", "*"]

# Logical folders images may be stored under
FOLDER_PAYMENT_SCREENSHOTS = "payment-screenshots"
FOLDER_TURF_IMAGES = "turf-images"
FOLDER_QR_CODES = "upi-qr-codes"
UPLOAD_FOLDERS = (FOLDER_PAYMENT_SCREENSHOTS, FOLDER_TURF_IMAGES, FOLDER_QR_CODES)


@dataclass(frozen=True)
class StoredMedia:
    url: str
    object_id: str

    def as_dict(self) -> dict:
        return {"url": self.url, "object_id": self.object_id}


def validate_image(
    content: bytes, content_type: Optional[str], filename: Optional[str], max_bytes: int
) -> str:
    """
    Check an image upload before it leaves the process.

    Returns:
        File extension to store the object under

    Raises:
        ValidationError: For empty files, disallowed types, bad names or oversize files
    """
    if not content:
        raise ValidationError("Uploaded file is empty", field="file")

    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(
            "Invalid file type. Only PNG, JPEG, WebP, GIF, HEIC and AVIF images are allowed.",
            field="file",
        )

    if filename:
        for char in DANGEROUS_FILENAME_CHARS:
            if char in filename:
                logger.warning(f"❌ Dangerous character '{char}' detected in filename: '{filename}'")
                raise ValidationError(
                    f"Invalid filename - contains dangerous character '{char}'", field="file"
                )
        if len(filename) > 255:
            raise ValidationError("Filename too long - maximum 255 characters", field="file")

    if len(content) > max_bytes:
        raise ValidationError(
            f"File size exceeds {max_bytes / (1024 * 1024):.0f}MB limit. "
            f"Your file is {len(content) / (1024 * 1024):.2f}MB.",
            field="file",
        )

    return ALLOWED_IMAGE_TYPES[content_type]


class R2MediaStore:
    """Stores images in an R2 bucket and hands back a URL and the object key."""

    def __init__(
        self,
        account_id: Optional[str],
        access_key_id: Optional[str],
        secret_access_key: Optional[str],
        bucket: str,
        public_base_url: Optional[str] = None,
        timeout: float = 10.0,
        max_bytes: int = 5 * 1024 * 1024,
    ):
        self.account_id = account_id
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.timeout = timeout
        self.max_bytes = max_bytes
        self._client = None

    def _get_client(self):
        if self._client is None:
            if not self.account_id:
                logger.error("❌ R2_ACCOUNT_ID not configured")
                raise UpstreamError("Image storage is not configured")
            self._client = boto3.client(
                "s3",
                endpoint_url=f"https://{self.account_id}.r2.cloudflarestorage.com",
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
                config=Config(
                    signature_version="s3v4",
                    connect_timeout=self.timeout,
                    read_timeout=self.timeout,
                    retries={"max_attempts": 2, "mode": "standard"},
                ),
            )
        return self._client

    def _url_for(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return self._get_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key, "ResponseContentDisposition": "inline"},
            ExpiresIn=PRESIGNED_URL_EXPIRATION,
        )

    def upload(
        self, content: bytes, content_type: Optional[str], folder: str, filename: Optional[str] = None
    ) -> StoredMedia:
        ext = validate_image(content, content_type, filename, self.max_bytes)
        key = f"{folder}/{uuid.uuid4()}.{ext}"

        try:
            self._get_client().put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
            )
            url = self._url_for(key)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"❌ Upload to {folder} failed: {str(e)}")
            raise UpstreamError("Image upload failed. Please try again.") from e

        logger.info(f"✅ Uploaded {len(content)} bytes to {key}")
        return StoredMedia(url=url, object_id=key)


def get_media_store(request: Request):
    return request.app.state.media_store
