import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from . import config
from . import models  # noqa: F401  (registers tables on Base)
from .auth import FirebaseTokenVerifier
from .database import Base, build_engine, build_session_factory
from .domain.accounts.router import router as accounts_router
from .domain.availability.router import router as availability_router
from .domain.bookings.router import router as bookings_router
from .domain.listings.router import router as listings_router
from .errors import EXPECTED_ERRORS, DomainError
from .media import R2MediaStore
from .routes.upload import router as upload_router
from .security_headers import SecurityHeadersMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("botocore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=app.state.engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        # Another worker may have created the tables first
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")
            raise

    if app.state.rate_limit_enabled:
        from .rate_limiter import get_redis_client

        if get_redis_client() is None:
            logger.warning("Redis unavailable - rate limiting will count in memory only")

    yield

    app.state.engine.dispose()
    logger.info("Application shutting down...")


def create_app(
    database_url: Optional[str] = None,
    identity_verifier=None,
    media_store=None,
    rate_limit_enabled: Optional[bool] = None,
    security_headers_enabled: Optional[bool] = None,
) -> FastAPI:
    """Build the API with its store, identity verifier and media store wired onto app.state"""
    app = FastAPI(title="Turfbook API", version="1.0.0", lifespan=lifespan)

    app.state.engine = build_engine(database_url or config.DATABASE_URL)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.state.identity_verifier = identity_verifier or FirebaseTokenVerifier(
        config.FIREBASE_PROJECT_ID, timeout=config.IDENTITY_TIMEOUT_SECONDS
    )
    app.state.media_store = media_store or R2MediaStore(
        account_id=config.R2_ACCOUNT_ID,
        access_key_id=config.R2_ACCESS_KEY_ID,
        secret_access_key=config.R2_SECRET_ACCESS_KEY,
        bucket=config.R2_BUCKET_NAME,
        public_base_url=config.R2_PUBLIC_BASE_URL,
        timeout=config.MEDIA_TIMEOUT_SECONDS,
        max_bytes=config.MAX_UPLOAD_BYTES,
    )
    app.state.rate_limit_enabled = (
        config.RATE_LIMIT_ENABLED if rate_limit_enabled is None else rate_limit_enabled
    )

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        """Render typed errors as {detail, code, field}"""
        if isinstance(exc, EXPECTED_ERRORS):
            logger.info(
                f"{request.method} {request.url.path} - {exc.status_code} {exc.code}: {exc.detail}"
            )
        else:
            logger.error(
                f"❌ {request.method} {request.url.path} - {exc.status_code} {exc.code}: {exc.detail}",
                exc_info=exc.__cause__ or exc,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "code": exc.code, "field": exc.field},
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """
        Convert 422 validation errors on the Authorization header to 401
        authentication errors; other validation errors stay 422
        """
        for error in exc.errors():
            if error.get("loc") and "authorization" in str(error.get("loc")).lower():
                logger.warning(
                    f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
                )
                return JSONResponse(
                    status_code=401,
                    content={
                        "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header.",
                        "code": "invalid_credential",
                        "field": None,
                    },
                    headers={"WWW-Authenticate": "Bearer"},
                )

        logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        try:
            response = await call_next(request)
            return response
        except Exception as e:
            logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
            raise

    headers_enabled = (
        config.SECURITY_HEADERS_ENABLED if security_headers_enabled is None else security_headers_enabled
    )
    if headers_enabled:
        app.add_middleware(
            SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"]
        )
        logger.info("Security headers enabled")
    else:
        logger.warning("Security headers DISABLED - only use in development!")

    logger.info(f"CORS allowed origins: {config.ALLOWED_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(accounts_router)
    app.include_router(upload_router)
    app.include_router(listings_router)
    app.include_router(availability_router)
    app.include_router(bookings_router)

    @app.get("/")
    def root():
        return {"message": "Turfbook API is running"}

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    @app.get("/health/redis")
    async def redis_health_check():
        """Report whether rate limit counters are shared through Redis"""
        from .rate_limiter import get_redis_client

        client = get_redis_client()
        if client is None:
            return {"status": "degraded", "redis": {"connected": False, "mode": "memory"}}
        return {"status": "healthy", "redis": {"connected": True, "mode": "redis"}}

    return app


app = create_app()
