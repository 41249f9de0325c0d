from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from conftest import PNG_BYTES, InMemoryMediaStore, next_weekday, owner_profile
from sqlalchemy.exc import IntegrityError

from turfbook.database import Base, build_engine, build_session_factory
from turfbook.domain.availability.service import AvailabilityService
from turfbook.domain.bookings.repository import BookingRepository
from turfbook.domain.bookings.service import BookingService, PaymentProof
from turfbook.domain.listings.schemas import ListingCreate
from turfbook.domain.listings.service import ListingService
from turfbook.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from turfbook.models import (
    BOOKING_CONFIRMED,
    BOOKING_PENDING,
    BOOKING_REJECTED,
    ROLE_CUSTOMER,
    ROLE_OWNER,
    WEEKLY_OCCURRENCE,
    Account,
    Booking,
)

MONDAY_EVENING = {"day": "Monday", "start_time": "18:00", "end_time": "19:00"}


@pytest.fixture
def turf(make_owner, make_listing):
    owner = make_owner()
    return owner, make_listing(owner)


@pytest.fixture
def book(db, media_store, proof):
    def _book(customer, owner, listing, slot=None, amount=800, proof_override=None):
        return BookingService(db).create_booking(
            customer_id=customer.id,
            owner_id=owner.id,
            listing_id=listing.id,
            slot=slot or dict(MONDAY_EVENING),
            total_amount=amount,
            proof=proof_override or proof,
            media_store=media_store,
        )

    return _book


def availability(db, listing, start=None, end=None):
    return AvailabilityService(db).get_listing_availability(listing.id, start, end)


class TestApprovalWorkflow:
    def test_fresh_listing_has_free_template(self, db, turf):
        _, listing = turf
        assert availability(db, listing) == [
            {"day": "Monday", "start_time": "18:00", "end_time": "19:00", "is_booked": False}
        ]

    def test_request_reject_retry_confirm(self, db, turf, make_customer, book):
        owner, listing = turf
        c1, c2 = make_customer("C1"), make_customer("C2")
        service = BookingService(db)

        first = book(c1, owner, listing)
        assert first["status"] == BOOKING_PENDING
        assert first["slot"] == {**MONDAY_EVENING, "date": None}
        assert first["customer"]["name"] == "C1"
        assert first["listing"]["name"] == listing.name
        assert first["payment_screenshot"]["object_id"].startswith("payment-screenshots/")
        assert availability(db, listing)[0]["is_booked"] is True

        with pytest.raises(ConflictError, match="no longer available"):
            book(c2, owner, listing)

        rejected = service.decide_booking(first["id"], owner.id, BOOKING_REJECTED)
        assert rejected["status"] == BOOKING_REJECTED
        assert rejected["decided_at"] is not None
        assert availability(db, listing)[0]["is_booked"] is False

        second = book(c2, owner, listing)
        assert second["status"] == BOOKING_PENDING
        assert availability(db, listing)[0]["is_booked"] is True

        confirmed = service.decide_booking(second["id"], owner.id, BOOKING_CONFIRMED)
        assert confirmed["status"] == BOOKING_CONFIRMED

        with pytest.raises(ValidationError, match="already been processed") as exc:
            service.decide_booking(second["id"], owner.id, BOOKING_REJECTED)
        assert exc.value.status_code == 400
        assert exc.value.field == "status"
        assert db.get(Booking, second["id"]).status == BOOKING_CONFIRMED
        assert availability(db, listing)[0]["is_booked"] is True

    @pytest.mark.parametrize("decision", [BOOKING_CONFIRMED, BOOKING_REJECTED])
    def test_terminal_bookings_never_change(self, db, turf, make_customer, book, decision):
        owner, listing = turf
        booking = book(make_customer(), owner, listing)
        BookingService(db).decide_booking(booking["id"], owner.id, BOOKING_REJECTED)
        with pytest.raises(ValidationError):
            BookingService(db).decide_booking(booking["id"], owner.id, decision)
        assert db.get(Booking, booking["id"]).status == BOOKING_REJECTED

    def test_decision_lost_to_a_concurrent_one(self, db, turf, make_customer, book, monkeypatch):
        owner, listing = turf
        booking = book(make_customer(), owner, listing)

        # The pending pre-check passes but the guarded update matches no row
        monkeypatch.setattr(BookingRepository, "decide", staticmethod(lambda *args: False))
        with pytest.raises(ValidationError, match="already been processed") as exc:
            BookingService(db).decide_booking(booking["id"], owner.id, BOOKING_CONFIRMED)
        assert exc.value.status_code == 400

    @pytest.mark.parametrize("decision", [BOOKING_CONFIRMED, BOOKING_REJECTED, "cancelled"])
    def test_other_owner_is_refused_before_anything_else(self, db, turf, make_owner, make_customer, book, decision):
        owner, listing = turf
        booking = book(make_customer(), owner, listing)
        stranger = make_owner()
        expected = AuthorizationError if decision != "cancelled" else ValidationError
        with pytest.raises(expected):
            BookingService(db).decide_booking(booking["id"], stranger.id, decision)
        assert db.get(Booking, booking["id"]).status == BOOKING_PENDING

    def test_other_owner_is_refused_on_processed_booking(self, db, turf, make_owner, make_customer, book):
        owner, listing = turf
        booking = book(make_customer(), owner, listing)
        BookingService(db).decide_booking(booking["id"], owner.id, BOOKING_CONFIRMED)
        with pytest.raises(AuthorizationError):
            BookingService(db).decide_booking(booking["id"], make_owner().id, BOOKING_REJECTED)

    def test_unknown_booking(self, db, turf):
        owner, _ = turf
        with pytest.raises(NotFoundError):
            BookingService(db).decide_booking("missing", owner.id, BOOKING_CONFIRMED)


class TestCreateValidation:
    def test_amount_must_be_positive(self, turf, make_customer, book):
        owner, listing = turf
        with pytest.raises(ValidationError) as exc:
            book(make_customer(), owner, listing, amount=0)
        assert exc.value.field == "total_amount"

    def test_proof_must_be_an_image(self, turf, make_customer, book):
        owner, listing = turf
        pdf = PaymentProof(content=b"%PDF-1.4", content_type="application/pdf", filename="paid.pdf")
        with pytest.raises(ValidationError) as exc:
            book(make_customer(), owner, listing, proof_override=pdf)
        assert exc.value.field == "payment_screenshot"

    def test_slot_must_be_a_listing_template(self, turf, make_customer, book):
        owner, listing = turf
        with pytest.raises(ValidationError) as exc:
            book(make_customer(), owner, listing, slot={"day": "Tuesday", "start_time": "18:00", "end_time": "19:00"})
        assert exc.value.field == "slot"

    def test_roles_are_checked(self, turf, make_customer, make_owner, book):
        owner, listing = turf
        with pytest.raises(AuthorizationError):
            book(make_owner(), owner, listing)
        with pytest.raises(AuthorizationError):
            book(make_customer(), make_customer(), listing)

    def test_listing_must_belong_to_owner(self, turf, make_customer, make_owner, book):
        _, listing = turf
        with pytest.raises(ValidationError) as exc:
            book(make_customer(), make_owner(), listing)
        assert exc.value.field == "owner_id"

    def test_missing_listing(self, turf, make_customer, book):
        owner, _ = turf
        with pytest.raises(NotFoundError):
            book(make_customer(), owner, SimpleNamespace(id="missing"))

    def test_failed_upload_stores_nothing(self, db, turf, make_customer, book, media_store):
        owner, listing = turf
        media_store.fail = True
        with pytest.raises(UpstreamError):
            book(make_customer(), owner, listing)
        assert db.query(Booking).count() == 0
        assert availability(db, listing)[0]["is_booked"] is False


class TestStoreLevelUniqueness:
    def test_unique_index_rejects_second_active_booking(self, db, turf, make_customer):
        owner, listing = turf
        fields = dict(
            owner_id=owner.id,
            listing_id=listing.id,
            slot_day="Monday",
            start_time="18:00",
            end_time="19:00",
            occurrence=WEEKLY_OCCURRENCE,
            total_amount=800,
            payment_screenshot={"url": "u", "object_id": "o"},
        )
        db.add(Booking(customer_id=make_customer().id, status=BOOKING_PENDING, **fields))
        db.commit()

        db.add(Booking(customer_id=make_customer().id, status=BOOKING_CONFIRMED, **fields))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

        # Rejected bookings are outside the index
        db.add(Booking(customer_id=make_customer().id, status=BOOKING_REJECTED, **fields))
        db.commit()

    def test_insert_race_is_reported_as_conflict(self, db, turf, make_customer, book, monkeypatch):
        owner, listing = turf
        book(make_customer(), owner, listing)

        # Simulate a competitor whose availability check ran before our insert
        monkeypatch.setattr(AvailabilityService, "ensure_slot_available", lambda *args: None)
        with pytest.raises(ConflictError):
            book(make_customer(), owner, listing)
        assert db.query(Booking).count() == 1


class CompetingUploadStore(InMemoryMediaStore):
    """Runs a competing request once, after the availability check and before the insert"""

    def __init__(self, competitor):
        super().__init__()
        self.competitor = competitor

    def upload(self, *args, **kwargs):
        if self.competitor is not None:
            competitor, self.competitor = self.competitor, None
            competitor()
        return super().upload(*args, **kwargs)


@pytest.fixture
def file_sessions(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'turfbook.db'}")
    Base.metadata.create_all(bind=engine)
    yield build_session_factory(engine)
    engine.dispose()


class TestConcurrentCreation:
    def _seed(self, session_factory):
        session = session_factory()
        try:
            owner = Account(
                firebase_uid="uid-owner",
                name="Owner",
                email="owner@example.com",
                role=ROLE_OWNER,
                **owner_profile(),
            )
            c1 = Account(firebase_uid="uid-c1", name="C1", email="c1@example.com", role=ROLE_CUSTOMER)
            c2 = Account(firebase_uid="uid-c2", name="C2", email="c2@example.com", role=ROLE_CUSTOMER)
            session.add_all([owner, c1, c2])
            session.commit()
            listing = ListingService(session).create_listing(
                owner,
                ListingCreate(
                    name="Race Turf",
                    images=[{"url": "https://media.test/turf-images/a.png", "object_id": "turf-images/a.png"}],
                ),
            )
            return owner.id, listing.id, c1.id, c2.id
        finally:
            session.close()

    def _request(self, session, customer_id, owner_id, listing_id, store):
        return BookingService(session).create_booking(
            customer_id=customer_id,
            owner_id=owner_id,
            listing_id=listing_id,
            slot=dict(MONDAY_EVENING),
            total_amount=800,
            proof=PaymentProof(content=PNG_BYTES, content_type="image/png", filename="paid.png"),
            media_store=store,
        )

    def test_interleaved_sessions_book_the_slot_once(self, file_sessions):
        owner_id, listing_id, c1_id, c2_id = self._seed(file_sessions)
        first, second = file_sessions(), file_sessions()
        won = {}

        def competitor():
            won.update(self._request(second, c2_id, owner_id, listing_id, InMemoryMediaStore()))

        try:
            with pytest.raises(ConflictError, match="no longer available"):
                self._request(first, c1_id, owner_id, listing_id, CompetingUploadStore(competitor))
        finally:
            first.close()
            second.close()

        assert won["customer_id"] == c2_id
        check = file_sessions()
        try:
            assert [b.customer_id for b in check.query(Booking).all()] == [c2_id]
        finally:
            check.close()


class TestDatedBookings:
    def test_dated_booking_holds_one_occurrence(self, db, turf, make_customer, book):
        owner, listing = turf
        monday = next_weekday(0)
        following = monday + timedelta(days=7)

        booking = book(
            make_customer(), owner, listing,
            slot={"date": monday.isoformat(), "start_time": "18:00", "end_time": "19:00"},
        )
        assert booking["slot"]["day"] == "Monday"
        assert booking["slot"]["date"] == monday.isoformat()

        entries = availability(db, listing, monday, following)
        assert [(e["date"], e["is_booked"]) for e in entries] == [
            (monday.isoformat(), True),
            (following.isoformat(), False),
        ]

        # Another customer can still take the following week
        book(
            make_customer(), owner, listing,
            slot={"date": following.isoformat(), "start_time": "18:00", "end_time": "19:00"},
        )
        with pytest.raises(ConflictError):
            book(
                make_customer(), owner, listing,
                slot={"date": monday.isoformat(), "start_time": "18:00", "end_time": "19:00"},
            )

    def test_weekly_booking_blocks_dated_requests(self, db, turf, make_customer, book):
        owner, listing = turf
        book(make_customer(), owner, listing)
        monday = next_weekday(0)
        with pytest.raises(ConflictError):
            book(
                make_customer(), owner, listing,
                slot={"date": monday.isoformat(), "start_time": "18:00", "end_time": "19:00"},
            )
        entries = availability(db, listing, monday, monday + timedelta(days=13))
        assert [e["is_booked"] for e in entries] == [True, True]

    def test_dated_booking_blocks_weekly_request(self, turf, make_customer, book):
        owner, listing = turf
        monday = next_weekday(0)
        book(
            make_customer(), owner, listing,
            slot={"date": monday.isoformat(), "start_time": "18:00", "end_time": "19:00"},
        )
        with pytest.raises(ConflictError):
            book(make_customer(), owner, listing)

    def test_range_is_ordered_by_date_then_template(self, db, make_owner, make_listing):
        owner = make_owner(
            available_slots=[
                {"day": "Tuesday", "start_time": "07:00", "end_time": "08:00"},
                {"day": "Monday", "start_time": "18:00", "end_time": "19:00"},
                {"day": "Monday", "start_time": "06:00", "end_time": "07:00"},
            ]
        )
        listing = make_listing(owner)
        start = date(2026, 10, 19)  # Monday
        entries = availability(db, listing, start, start + timedelta(days=1))
        assert [(e["date"], e["start_time"]) for e in entries] == [
            ("2026-10-19", "18:00"),
            ("2026-10-19", "06:00"),
            ("2026-10-20", "07:00"),
        ]

    @pytest.mark.parametrize(
        "start,end",
        [
            (date(2026, 10, 19), None),
            (date(2026, 10, 20), date(2026, 10, 19)),
            (date(2026, 10, 1), date(2026, 12, 31)),
        ],
    )
    def test_invalid_ranges(self, db, turf, start, end):
        _, listing = turf
        with pytest.raises(ValidationError):
            availability(db, listing, start, end)

    def test_listing_without_templates_has_no_availability(self, db, turf):
        _, listing = turf
        listing.available_slots = []
        db.commit()
        assert availability(db, listing) == []

    def test_unknown_listing(self, db):
        with pytest.raises(NotFoundError):
            AvailabilityService(db).get_listing_availability("missing")


class TestListBookings:
    def test_lists_newest_first_with_status_filter(self, db, make_owner, make_listing, make_customer, book):
        owner = make_owner(
            available_slots=[
                {"day": "Monday", "start_time": "18:00", "end_time": "19:00"},
                {"day": "Monday", "start_time": "19:00", "end_time": "20:00"},
                {"day": "Friday", "start_time": "18:00", "end_time": "19:00"},
            ]
        )
        listing = make_listing(owner)
        customer = make_customer()
        ids = [
            book(customer, owner, listing, slot={"day": day, "start_time": s, "end_time": e})["id"]
            for day, s, e in [("Monday", "18:00", "19:00"), ("Monday", "19:00", "20:00"), ("Friday", "18:00", "19:00")]
        ]
        BookingService(db).decide_booking(ids[0], owner.id, BOOKING_CONFIRMED)

        service = BookingService(db)
        mine = service.list_bookings("customer", customer.id, page=1, page_size=2)
        assert mine["pagination"]["total_items"] == 3
        assert mine["pagination"]["total_pages"] == 2
        assert len(mine["items"]) == 2
        assert mine["items"][0]["owner"]["business_name"] == owner.business_name

        pending = service.list_bookings("owner", owner.id, status=BOOKING_PENDING)
        assert {item["id"] for item in pending["items"]} == set(ids[1:])

        with pytest.raises(ValidationError):
            service.list_bookings("owner", owner.id, status="cancelled")
        with pytest.raises(AuthorizationError):
            service.list_bookings("owner", customer.id)
        with pytest.raises(NotFoundError):
            service.list_bookings("customer", "missing")

    def test_get_booking_is_private(self, db, turf, make_customer, book):
        owner, listing = turf
        customer = make_customer()
        booking = book(customer, owner, listing)
        service = BookingService(db)
        assert service.get_booking(booking["id"], customer.id)["id"] == booking["id"]
        assert service.get_booking(booking["id"], owner.id)["id"] == booking["id"]
        with pytest.raises(AuthorizationError):
            service.get_booking(booking["id"], make_customer().id)


def test_png_fixture_is_accepted(media_store):
    stored = media_store.upload(PNG_BYTES, "image/png", "payment-screenshots", "ok.png")
    assert stored.url.startswith("https://media.test/payment-screenshots/")
