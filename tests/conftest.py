import uuid
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from turfbook.auth import IdentityClaims
from turfbook.database import Base, build_engine, build_session_factory
from turfbook.domain.bookings.service import PaymentProof
from turfbook.domain.listings.schemas import ListingCreate
from turfbook.domain.listings.service import ListingService
from turfbook.errors import InvalidCredentialError, UpstreamError
from turfbook.main import create_app
from turfbook.media import StoredMedia, validate_image
from turfbook.models import ROLE_CUSTOMER, ROLE_OWNER, Account

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class FakeVerifier:
    """Maps opaque test tokens to identity claims"""

    def __init__(self):
        self.tokens = {}

    def register(self, token, subject_id, email, name=""):
        self.tokens[token] = IdentityClaims(
            subject_id=subject_id, email=email, name=name, email_verified=True
        )

    async def verify(self, token):
        claims = self.tokens.get(token)
        if claims is None:
            raise InvalidCredentialError("Invalid authentication token")
        return claims


class InMemoryMediaStore:
    def __init__(self, max_bytes=5 * 1024 * 1024):
        self.max_bytes = max_bytes
        self.objects = {}
        self.fail = False

    def upload(self, content, content_type, folder, filename=None):
        ext = validate_image(content, content_type, filename, self.max_bytes)
        if self.fail:
            raise UpstreamError("Image upload failed. Please try again.")
        key = f"{folder}/{uuid.uuid4()}.{ext}"
        self.objects[key] = content
        return StoredMedia(url=f"https://media.test/{key}", object_id=key)


def owner_profile(**overrides):
    profile = {
        "business_name": "Green Arena",
        "phone": "9876543210",
        "sports_offered": ["Football", "Cricket"],
        "amenities": ["Floodlights", "Parking"],
        "about": "Five-a-side turf with floodlights",
        "pricing": 800.0,
        "available_slots": [{"day": "Monday", "start_time": "18:00", "end_time": "19:00"}],
        "location": {"address": "12 Lake Road", "city": "Pune", "state": "MH", "pincode": "411001"},
        "upi_qr_code": {"url": "https://media.test/upi-qr-codes/qr.png", "object_id": "upi-qr-codes/qr.png"},
    }
    profile.update(overrides)
    return profile


def next_weekday(day_index, today=None):
    """Next date (after today) falling on the given weekday index, Monday = 0"""
    today = today or date.today()
    ahead = (day_index - today.weekday()) % 7 or 7
    return today + timedelta(days=ahead)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = build_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def media_store():
    return InMemoryMediaStore()


@pytest.fixture
def proof():
    return PaymentProof(content=PNG_BYTES, content_type="image/png", filename="paid.png")


@pytest.fixture
def make_customer(db):
    def _make(name="Customer", email=None):
        account = Account(
            firebase_uid=f"uid-{uuid.uuid4()}",
            name=name,
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            role=ROLE_CUSTOMER,
        )
        db.add(account)
        db.commit()
        return account

    return _make


@pytest.fixture
def make_owner(db):
    def _make(complete=True, **overrides):
        fields = owner_profile(**overrides) if complete else {}
        account = Account(
            firebase_uid=f"uid-{uuid.uuid4()}",
            name="Owner",
            email=f"{uuid.uuid4().hex[:8]}@example.com",
            role=ROLE_OWNER,
            **fields,
        )
        db.add(account)
        db.commit()
        return account

    return _make


@pytest.fixture
def make_listing(db):
    def _make(owner, **fields):
        data = {
            "name": f"{owner.business_name} Turf",
            "images": [{"url": "https://media.test/turf-images/a.png", "object_id": "turf-images/a.png"}],
        }
        data.update(fields)
        return ListingService(db).create_listing(owner, ListingCreate(**data))

    return _make


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def app(verifier, media_store):
    return create_app(
        database_url="sqlite://",
        identity_verifier=verifier,
        media_store=media_store,
        rate_limit_enabled=False,
        security_headers_enabled=True,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def app_db(app, client):
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def login(client, verifier):
    """Register a token and return auth headers; the account is created on first request"""

    def _login(name="user", email=None):
        token = f"token-{uuid.uuid4()}"
        suffix = uuid.uuid4().hex[:6]
        verifier.register(token, f"uid-{name}-{suffix}", email or f"{name}-{suffix}@example.com", name)
        headers = {"Authorization": f"Bearer {token}"}
        me = client.get("/accounts/me", headers=headers).json()
        return headers, me

    return _login
