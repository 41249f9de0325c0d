import base64
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.x509 import load_pem_x509_certificate
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .domain.accounts.service import AccountService
from .errors import AuthorizationError, InvalidCredentialError, UpstreamError
from .models import ROLE_CUSTOMER, ROLE_OWNER, Account

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

GOOGLE_CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)
DEFAULT_CERT_TTL = 3600
CLOCK_SKEW_SECONDS = 60


@dataclass(frozen=True)
class IdentityClaims:
    subject_id: str
    email: str
    name: str = ""
    email_verified: bool = False


def _b64decode(segment: str) -> bytes:
    padding_len = 4 - len(segment) % 4
    return base64.urlsafe_b64decode(segment + ("=" * padding_len if padding_len != 4 else ""))


class FirebaseTokenVerifier:
    """
    Verify Firebase ID tokens with full cryptographic signature verification.
    Uses Google's public x509 certificates to verify the RS256 JWT signature.
    """

    def __init__(self, project_id: Optional[str], timeout: float = 5.0):
        self.project_id = project_id
        self.timeout = timeout
        self._cached_keys: Optional[dict] = None
        self._keys_expire_at = 0.0

    async def _get_public_keys(self, force_refresh: bool = False) -> dict:
        """Fetch Google's public keys, cached for the Cache-Control max-age"""
        if self._cached_keys and not force_refresh and time.time() < self._keys_expire_at:
            logger.debug("✅ Using cached Google public keys")
            return self._cached_keys

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(GOOGLE_CERTS_URL)
        except httpx.HTTPError as e:
            logger.error(f"❌ Error fetching Google public keys: {str(e)}")
            raise UpstreamError("Identity provider is unavailable. Please retry.") from e

        if response.status_code != 200:
            logger.error(f"❌ Failed to fetch Google public keys: HTTP {response.status_code}")
            raise UpstreamError("Identity provider is unavailable. Please retry.")

        ttl = DEFAULT_CERT_TTL
        match = re.search(r"max-age=(\d+)", response.headers.get("cache-control", ""))
        if match:
            ttl = int(match.group(1))

        self._cached_keys = response.json()
        self._keys_expire_at = time.time() + ttl
        logger.info(f"✅ Fetched {len(self._cached_keys)} Google public keys (ttl {ttl}s)")
        return self._cached_keys

    async def verify(self, token: str) -> IdentityClaims:
        if not self.project_id:
            logger.error("❌ FIREBASE_PROJECT_ID not configured")
            raise UpstreamError("Identity verification is not configured")

        parts = token.split(".")
        if len(parts) != 3:
            raise InvalidCredentialError("Invalid token format. Expected a valid JWT token.")
        header_b64, payload_b64, signature_b64 = parts

        try:
            header = json.loads(_b64decode(header_b64))
        except (ValueError, TypeError) as e:
            raise InvalidCredentialError("Invalid token header") from e

        kid = header.get("kid")
        alg = header.get("alg")
        if alg != "RS256":
            logger.warning(f"⚠️ Invalid token algorithm: {alg}")
            raise InvalidCredentialError("Invalid token algorithm")
        if not kid:
            raise InvalidCredentialError("Token missing key ID")

        public_keys = await self._get_public_keys()
        if kid not in public_keys:
            logger.warning(f"⚠️ Key ID {kid} not found in public keys, refreshing")
            public_keys = await self._get_public_keys(force_refresh=True)
            if kid not in public_keys:
                raise InvalidCredentialError("Unable to verify token signature")

        try:
            cert = load_pem_x509_certificate(public_keys[kid].encode(), default_backend())
            signature = _b64decode(signature_b64)
            message = f"{header_b64}.{payload_b64}".encode()
            cert.public_key().verify(signature, message, padding.PKCS1v15(), hashes.SHA256())
        except Exception as e:
            logger.warning(f"⚠️ Token signature verification failed: {type(e).__name__}")
            raise InvalidCredentialError("Invalid token signature") from e

        try:
            claims = json.loads(_b64decode(payload_b64))
        except (ValueError, TypeError) as e:
            raise InvalidCredentialError("Invalid token payload") from e

        return self._check_claims(claims)

    def _check_claims(self, claims: dict) -> IdentityClaims:
        if claims.get("aud") != self.project_id:
            raise InvalidCredentialError("Invalid token audience")

        if claims.get("iss") != f"https://securetoken.google.com/{self.project_id}":
            raise InvalidCredentialError("Invalid token issuer")

        now = time.time()
        if claims.get("exp", 0) < now:
            raise InvalidCredentialError(
                "Token has expired. Please refresh your session.",
                headers={"X-Token-Expired": "true"},
            )

        if claims.get("iat", 0) > now + CLOCK_SKEW_SECONDS:
            raise InvalidCredentialError("Invalid token")

        if "auth_time" not in claims:
            raise InvalidCredentialError("Invalid token claims")

        # Firebase ID tokens use 'sub' as the user ID claim, not 'uid'
        subject_id = claims.get("sub") or claims.get("user_id")
        email = claims.get("email")
        if not subject_id or not email:
            raise InvalidCredentialError("Token missing subject or email claim")

        logger.debug(f"✅ Token cryptographically verified for user: {email}")
        return IdentityClaims(
            subject_id=subject_id,
            email=email,
            name=claims.get("name", ""),
            email_verified=bool(claims.get("email_verified", False)),
        )


def get_identity_verifier(request: Request):
    return request.app.state.identity_verifier


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    verifier=Depends(get_identity_verifier),
    db: Session = Depends(get_db),
) -> Account:
    """Resolve the bearer token to an account, creating it on first contact"""
    if not credentials or not credentials.credentials:
        raise InvalidCredentialError(
            "Not authenticated. Please provide a valid Bearer token in the Authorization header.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = await verifier.verify(credentials.credentials)

    account = AccountService(db).get_or_create(claims)
    if not account.is_active:
        logger.warning(f"🚫 Inactive account {account.id} attempted access")
        raise AuthorizationError("This account has been deactivated")

    return account


async def get_current_owner(user: Account = Depends(get_current_user)) -> Account:
    if user.role != ROLE_OWNER:
        raise AuthorizationError("Only turf owners can perform this action")
    return user


async def get_current_customer(user: Account = Depends(get_current_user)) -> Account:
    if user.role != ROLE_CUSTOMER:
        raise AuthorizationError("Only customers can perform this action")
    return user
