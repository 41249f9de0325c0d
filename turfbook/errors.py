"""Typed errors raised by the domain services.

Every error is an ``HTTPException`` so FastAPI renders it without extra
plumbing; the exception handler in ``main`` adds ``code`` and ``field`` to
the response body.
"""

from typing import Optional

from fastapi import HTTPException


class DomainError(HTTPException):
    status_code = 500
    code = "error"

    def __init__(self, detail: str, field: Optional[str] = None, headers: Optional[dict] = None):
        super().__init__(status_code=self.status_code, detail=detail, headers=headers)
        self.field = field

    @property
    def message(self) -> str:
        return self.detail


class ValidationError(DomainError):
    status_code = 400
    code = "validation_error"


class AuthorizationError(DomainError):
    status_code = 403
    code = "forbidden"


class InvalidCredentialError(AuthorizationError):
    status_code = 401
    code = "invalid_credential"


class NotFoundError(DomainError):
    status_code = 404
    code = "not_found"


class ConflictError(DomainError):
    status_code = 409
    code = "conflict"


class StoreError(DomainError):
    status_code = 500
    code = "store_error"


class ServiceUnavailableError(StoreError):
    status_code = 503
    code = "service_unavailable"


class UpstreamError(DomainError):
    status_code = 502
    code = "upstream_error"


class RateLimitError(DomainError):
    status_code = 429
    code = "rate_limited"


# Errors that are a normal outcome of user input and never logged as incidents
EXPECTED_ERRORS = (
    ValidationError,
    AuthorizationError,
    NotFoundError,
    ConflictError,
    RateLimitError,
)
