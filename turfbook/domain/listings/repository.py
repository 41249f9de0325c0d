"""Listing repository - Database operations for turf listings"""

from typing import Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Query, Session, joinedload

from ...models import SPORTS, Listing
from ...utils.sanitization import escape_like

SORT_COLUMNS = {
    "price_low": (Listing.pricing.asc(), Listing.created_at.desc()),
    "price_high": (Listing.pricing.desc(), Listing.created_at.desc()),
    "rating": (Listing.rating.desc(), Listing.review_count.desc(), Listing.created_at.desc()),
    "newest": (Listing.created_at.desc(),),
}


def sports_tags(sports: list[str]) -> str:
    """Encode sports so a single sport can be matched with LIKE '%|Sport|%'"""
    return f"|{'|'.join(sports)}|" if sports else ""


class ListingRepository:
    """Repository for listing database operations"""

    @staticmethod
    def get_by_id(db: Session, listing_id: str) -> Optional[Listing]:
        return db.query(Listing).filter(Listing.id == listing_id).first()

    @staticmethod
    def get_for_update(db: Session, listing_id: str) -> Optional[Listing]:
        """Load a listing holding a row lock until the transaction ends"""
        # SQLite ignores FOR UPDATE. There, a weekly and a dated request for the same
        # template have different index keys, so only PostgreSQL keeps them exclusive.
        return db.query(Listing).filter(Listing.id == listing_id).with_for_update().first()

    @staticmethod
    def get_by_owner(db: Session, owner_id: str) -> list[Listing]:
        return (
            db.query(Listing)
            .filter(Listing.owner_id == owner_id)
            .order_by(Listing.created_at.desc())
            .all()
        )

    @staticmethod
    def update(db: Session, listing: Listing, **updates) -> Listing:
        for key, value in updates.items():
            if hasattr(listing, key):
                setattr(listing, key, value)

        db.commit()
        db.refresh(listing)
        return listing

    # Search and Filter Methods
    @staticmethod
    def filtered_query(
        db: Session,
        search: Optional[str] = None,
        sport: Optional[str] = None,
        city: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
    ) -> Query:
        """Active listings matching the browse filters"""
        query = db.query(Listing).filter(Listing.is_active.is_(True))

        if search:
            term = f"%{escape_like(search.lower())}%"
            query = query.filter(
                or_(
                    func.lower(Listing.name).like(term, escape="\\"),
                    func.lower(Listing.description).like(term, escape="\\"),
                    func.lower(Listing.city).like(term, escape="\\"),
                    func.lower(Listing.address).like(term, escape="\\"),
                    func.lower(Listing.business_name).like(term, escape="\\"),
                )
            )

        if sport and sport != "all":
            query = query.filter(Listing.sports_tags.like(f"%|{sport}|%"))

        if city and city != "all":
            query = query.filter(
                func.lower(Listing.city).like(f"%{escape_like(city.lower())}%", escape="\\")
            )

        if min_price is not None:
            query = query.filter(Listing.pricing >= min_price)

        if max_price is not None:
            query = query.filter(Listing.pricing <= max_price)

        return query

    @staticmethod
    def page(query: Query, sort_by: str, offset: int, limit: int) -> list[Listing]:
        return (
            query.options(joinedload(Listing.owner))
            .order_by(*SORT_COLUMNS[sort_by])
            .offset(offset)
            .limit(limit)
            .all()
        )

    @staticmethod
    def price_range(query: Query) -> tuple[Optional[float], Optional[float]]:
        low, high = query.with_entities(func.min(Listing.pricing), func.max(Listing.pricing)).one()
        return low, high

    @staticmethod
    def active_cities(db: Session) -> list[str]:
        rows = (
            db.query(Listing.city)
            .filter(Listing.is_active.is_(True), Listing.city.isnot(None), Listing.city != "")
            .distinct()
            .order_by(Listing.city)
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def active_sport_counts(db: Session) -> dict[str, int]:
        """Sports offered by active listings with their counts, most common first"""
        columns = [
            func.coalesce(
                func.sum(case((Listing.sports_tags.like(f"%|{sport}|%"), 1), else_=0)), 0
            )
            for sport in SPORTS
        ]
        row = db.query(*columns).filter(Listing.is_active.is_(True)).one()
        counts = [(sport, int(count)) for sport, count in zip(SPORTS, row) if count]
        return dict(sorted(counts, key=lambda item: item[1], reverse=True))
