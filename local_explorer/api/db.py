"""SQLAlchemy persistence for places, saved places, itineraries and the
durable cache table.

``Store`` is the only object the services talk to. Every public method runs
in its own session and commits on success, so ``replace_items`` is one
transaction: readers see either the old item list or the new one.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Dict, Iterator, List, Optional

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from local_explorer.api.config import get_database_url, get_itinerary_config
from local_explorer.api.errors import (
    ConflictError,
    NotFoundError,
    TransactionError,
    ValidationError,
)
from local_explorer.api.models import Itinerary, ItineraryItem, Place

logger = logging.getLogger(__name__)

Base = declarative_base()


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PlaceRow(Base):
    __tablename__ = "places"
    __table_args__ = (UniqueConstraint("provider", "provider_id", name="uq_place_provider"),)

    id = Column(String(32), primary_key=True, default=_new_id)
    provider = Column(String(32), nullable=False)
    provider_id = Column(String(128), nullable=False)
    name = Column(String(512), nullable=False)
    address = Column(String(1024))
    category = Column(String(128))
    lat = Column(Float)
    lon = Column(Float)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class SavedPlaceRow(Base):
    __tablename__ = "saved_places"
    __table_args__ = (UniqueConstraint("saved_by", "place_id", name="uq_saved_place"),)

    # Integer key keeps "most recently saved" ordering stable within a clock tick
    id = Column(Integer, primary_key=True, autoincrement=True)
    saved_by = Column(String(128), nullable=False, index=True)
    place_id = Column(String(32), ForeignKey("places.id"), nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    place = relationship(PlaceRow, lazy="joined")


class ItineraryRow(Base):
    __tablename__ = "itineraries"
    __table_args__ = (UniqueConstraint("user_id", "title", name="uq_itinerary_title"),)

    id = Column(String(32), primary_key=True, default=_new_id)
    user_id = Column(String(128), nullable=False, index=True)
    title = Column(String(256), nullable=False)
    days_count = Column(Integer, nullable=False)
    start_date = Column(Date)
    created_at = Column(DateTime, default=_utcnow)


class ItineraryItemRow(Base):
    __tablename__ = "itinerary_items"

    id = Column(String(32), primary_key=True, default=_new_id)
    itinerary_id = Column(String(32), ForeignKey("itineraries.id"), nullable=False, index=True)
    place_id = Column(String(32), ForeignKey("places.id"), nullable=False)
    day_index = Column(Integer, nullable=False)
    order = Column("sort_order", Integer, nullable=False)
    note = Column(Text)
    created_at = Column(DateTime, default=_utcnow)

    place = relationship(PlaceRow, lazy="joined")


class CacheEntryRow(Base):
    __tablename__ = "cache_entries"

    key = Column(String(512), primary_key=True)
    payload = Column(Text, nullable=False)
    expires_at = Column(Float, nullable=False)  # unix seconds


# ---------------------------------------------------------------------------
# Row conversion helpers
# ---------------------------------------------------------------------------

def _place_from_row(row: PlaceRow) -> Place:
    return Place(
        id=row.id,
        provider=row.provider,
        provider_id=row.provider_id,
        name=row.name,
        address=row.address or "",
        category=row.category,
        lat=row.lat,
        lon=row.lon,
    )


def _item_from_row(row: ItineraryItemRow) -> ItineraryItem:
    return ItineraryItem(
        id=row.id,
        itinerary_id=row.itinerary_id,
        place_id=row.place_id,
        day_index=row.day_index,
        order=row.order,
        note=row.note,
        place=_place_from_row(row.place) if row.place is not None else None,
    )


def _itinerary_from_row(row: ItineraryRow) -> Itinerary:
    return Itinerary(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        days_count=row.days_count,
        start_date=row.start_date,
        created_at=row.created_at,
    )


def _apply_place(row: PlaceRow, place: Place) -> None:
    row.name = place.name
    row.address = place.address or None
    row.category = place.category
    # Keep known coordinates when a refresh arrives without them
    if place.lat is not None:
        row.lat = place.lat
    if place.lon is not None:
        row.lon = place.lon


def create_db_engine(database_url: Optional[str] = None):
    """Create an engine; in-memory SQLite shares one connection across threads."""
    url = database_url or get_database_url()
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


class Store:
    """Transactional access to the relational schema."""

    def __init__(self, engine=None, database_url: Optional[str] = None):
        self.engine = engine or create_db_engine(database_url)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.max_days = get_itinerary_config()["max_days"]

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Places
    # ------------------------------------------------------------------

    def upsert_place(self, place: Place) -> Place:
        """Insert or refresh a place by (provider, provider_id)."""
        if not place.provider or not place.provider_id or not place.name:
            raise ValidationError("provider, providerId, name required")

        with self.session_scope() as session:
            row = self._find_place(session, place)
            if row is not None:
                _apply_place(row, place)
                session.flush()
                return _place_from_row(row)

        try:
            with self.session_scope() as session:
                row = PlaceRow(provider=place.provider, provider_id=place.provider_id)
                _apply_place(row, place)
                session.add(row)
                session.flush()
                return _place_from_row(row)
        except IntegrityError:
            # Another request inserted the same identity first
            logger.info(f"Place {place.provider}/{place.provider_id} exists, updating instead")

        with self.session_scope() as session:
            row = self._find_place(session, place)
            _apply_place(row, place)
            session.flush()
            return _place_from_row(row)

    @staticmethod
    def _find_place(session: Session, place: Place) -> Optional[PlaceRow]:
        return (
            session.query(PlaceRow)
            .filter_by(provider=place.provider, provider_id=place.provider_id)
            .one_or_none()
        )

    # ------------------------------------------------------------------
    # Saved places
    # ------------------------------------------------------------------

    def save_place(self, user_id: str, place: Place) -> Place:
        stored = self.upsert_place(place)
        try:
            with self.session_scope() as session:
                exists = (
                    session.query(SavedPlaceRow)
                    .filter_by(saved_by=user_id, place_id=stored.id)
                    .one_or_none()
                )
                if exists is None:
                    session.add(SavedPlaceRow(saved_by=user_id, place_id=stored.id))
        except IntegrityError:
            logger.debug(f"Place {stored.id} already saved by {user_id}")
        return stored

    def list_saved(self, user_id: str) -> List[Dict]:
        with self.session_scope() as session:
            rows = self._saved_rows(session, user_id)
            return [
                {
                    "placeId": row.place_id,
                    "savedId": row.id,
                    "provider": row.place.provider,
                    "providerId": row.place.provider_id,
                    "name": row.place.name,
                    "address": row.place.address,
                    "category": row.place.category,
                    "lat": row.place.lat,
                    "lon": row.place.lon,
                    "createdAt": row.created_at.isoformat() if row.created_at else None,
                }
                for row in rows
            ]

    def saved_places(self, user_id: str) -> List[Place]:
        """Saved places as Place objects, most recently saved first."""
        with self.session_scope() as session:
            return [_place_from_row(row.place) for row in self._saved_rows(session, user_id)]

    @staticmethod
    def _saved_rows(session: Session, user_id: str) -> List[SavedPlaceRow]:
        return (
            session.query(SavedPlaceRow)
            .filter_by(saved_by=user_id)
            .order_by(SavedPlaceRow.created_at.desc(), SavedPlaceRow.id.desc())
            .all()
        )

    def unsave_place(self, user_id: str, place_id: str) -> int:
        with self.session_scope() as session:
            return (
                session.query(SavedPlaceRow)
                .filter_by(saved_by=user_id, place_id=place_id)
                .delete(synchronize_session=False)
            )

    # ------------------------------------------------------------------
    # Itineraries
    # ------------------------------------------------------------------

    def create_itinerary(self, user_id: str, title: str = "My Trip", days_count: int = 3,
                         start_date: Optional[date] = None) -> Itinerary:
        days_count = max(1, min(int(days_count), self.max_days))
        try:
            with self.session_scope() as session:
                row = ItineraryRow(
                    user_id=user_id, title=title, days_count=days_count, start_date=start_date
                )
                session.add(row)
                session.flush()
                return _itinerary_from_row(row)
        except IntegrityError as e:
            raise ConflictError("Itinerary with this name already exists") from e

    def list_itineraries(self, user_id: str) -> List[Itinerary]:
        with self.session_scope() as session:
            rows = (
                session.query(ItineraryRow)
                .filter_by(user_id=user_id)
                .order_by(ItineraryRow.created_at.desc())
                .all()
            )
            return [_itinerary_from_row(row) for row in rows]

    def get_itinerary(self, user_id: str, itinerary_id: str) -> Itinerary:
        with self.session_scope() as session:
            row = (
                session.query(ItineraryRow)
                .filter_by(id=itinerary_id, user_id=user_id)
                .one_or_none()
            )
            if row is None:
                raise NotFoundError("Not found")
            return _itinerary_from_row(row)

    # ------------------------------------------------------------------
    # Itinerary items
    # ------------------------------------------------------------------

    def list_items(self, itinerary_id: str) -> List[ItineraryItem]:
        with self.session_scope() as session:
            rows = (
                session.query(ItineraryItemRow)
                .filter_by(itinerary_id=itinerary_id)
                .order_by(ItineraryItemRow.day_index.asc(), ItineraryItemRow.order.asc())
                .all()
            )
            return [_item_from_row(row) for row in rows]

    def replace_items(self, itinerary_id: str, items: List[ItineraryItem]) -> None:
        """Delete every item of the itinerary and insert ``items`` atomically."""
        try:
            with self.session_scope() as session:
                session.query(ItineraryItemRow).filter_by(
                    itinerary_id=itinerary_id
                ).delete(synchronize_session=False)
                session.add_all([
                    ItineraryItemRow(
                        itinerary_id=itinerary_id,
                        place_id=item.place_id,
                        day_index=item.day_index,
                        order=item.order,
                        note=item.note,
                    )
                    for item in items
                ])
        except SQLAlchemyError as e:
            logger.error(f"Replacing items of itinerary {itinerary_id} failed: {e}")
            raise TransactionError("Could not replace itinerary items") from e

    def add_item(self, itinerary: Itinerary, place_id: str, day_index: int,
                 note: Optional[str] = None) -> ItineraryItem:
        """Append a place to the end of one day."""
        if not place_id:
            raise ValidationError("placeId required")
        if not 0 <= day_index < itinerary.days_count:
            raise ValidationError("Invalid dayIndex")

        note = note.strip() if isinstance(note, str) and note.strip() else None

        with self.session_scope() as session:
            if session.get(PlaceRow, place_id) is None:
                raise ValidationError("Unknown placeId")

            last = (
                session.query(func.max(ItineraryItemRow.order))
                .filter(
                    ItineraryItemRow.itinerary_id == itinerary.id,
                    ItineraryItemRow.day_index == day_index,
                )
                .scalar()
            )
            row = ItineraryItemRow(
                itinerary_id=itinerary.id,
                place_id=place_id,
                day_index=day_index,
                order=(last if last is not None else -1) + 1,
                note=note,
            )
            session.add(row)
            session.flush()
            session.refresh(row)
            return _item_from_row(row)

    def delete_item(self, itinerary_id: str, item_id: str) -> int:
        with self.session_scope() as session:
            return (
                session.query(ItineraryItemRow)
                .filter_by(id=item_id, itinerary_id=itinerary_id)
                .delete(synchronize_session=False)
            )


__all__ = [
    "Base",
    "PlaceRow",
    "SavedPlaceRow",
    "ItineraryRow",
    "ItineraryItemRow",
    "CacheEntryRow",
    "Store",
    "create_db_engine",
]
