import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from models.booking import Booking, BookingRecord, STATUS_ACTIVE, STATUS_CANCELLED

logger = logging.getLogger(__name__)


def owner_lock_statement(owner_id: str):
    # Every caller locks an owner's rows in the same (primary key) order
    return (
        select(Booking.id)
        .where(Booking.user_id == owner_id)
        .order_by(Booking.id.asc())
        .with_for_update()
    )


class BookingRepository:
    """
    Data access for bookings.

    The session passed in is the transactional scope: the repository
    flushes but never commits, so callers can compose several calls into
    one unit of work (see models.db.transaction).
    """

    def __init__(self, session: Session):
        self.session = session

    def _owned(self, booking_id: str, owner_id: str, for_update: bool = False) -> Optional[Booking]:
        stmt = select(Booking).where(Booking.id == booking_id, Booking.user_id == owner_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def lock_owner(self, owner_id: str) -> None:
        # Row locks on every booking of this owner; other owners are untouched
        self.session.execute(owner_lock_statement(owner_id)).all()

    def list_by_owner(self, owner_id: str) -> List[BookingRecord]:
        stmt = (
            select(Booking)
            .where(Booking.user_id == owner_id)
            .order_by(Booking.scheduled_at.asc(), Booking.created_at.asc(), Booking.id.asc())
        )
        return [row.to_record() for row in self.session.execute(stmt).scalars()]

    def find_owned(self, booking_id: str, owner_id: str, for_update: bool = False) -> Optional[BookingRecord]:
        row = self._owned(booking_id, owner_id, for_update=for_update)
        return row.to_record() if row else None

    def list_upcoming_active(self, owner_id: str, since: datetime, limit: int = 5) -> List[BookingRecord]:
        stmt = (
            select(Booking)
            .where(
                Booking.user_id == owner_id,
                Booking.status == STATUS_ACTIVE,
                Booking.scheduled_at >= since,
            )
            .order_by(Booking.scheduled_at.asc(), Booking.id.asc())
            .limit(limit)
        )
        return [row.to_record() for row in self.session.execute(stmt).scalars()]

    def list_cancelled(self, owner_id: str) -> List[BookingRecord]:
        # created_at (microsecond UTC, set at insert) is the insertion order for
        # identical cancellation timestamps; id only makes the order total
        stmt = (
            select(Booking)
            .where(Booking.user_id == owner_id, Booking.status == STATUS_CANCELLED)
            .order_by(Booking.cancelled_at.asc(), Booking.created_at.asc(), Booking.id.asc())
        )
        return [row.to_record() for row in self.session.execute(stmt).scalars()]

    def insert(self, owner_id: str, scheduled_at: datetime, service_type: str) -> BookingRecord:
        row = Booking(
            user_id=owner_id,
            scheduled_at=scheduled_at,
            service_type=service_type,
            status=STATUS_ACTIVE,
            cancelled_at=None,
        )
        self.session.add(row)
        self.session.flush()
        return row.to_record()

    def mark_cancelled(self, booking_id: str, owner_id: str, cancelled_at: datetime) -> Optional[BookingRecord]:
        """
        Cancel an ACTIVE booking. Returns None when the booking is unknown,
        foreign or already cancelled; the row is then left as it was.
        """
        stmt = (
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.user_id == owner_id,
                Booking.status == STATUS_ACTIVE,
            )
            .values(status=STATUS_CANCELLED, cancelled_at=cancelled_at, updated_at=cancelled_at)
            .execution_options(synchronize_session=False)
        )
        if self.session.execute(stmt).rowcount != 1:
            return None

        row = self.session.execute(
            select(Booking)
            .where(Booking.id == booking_id, Booking.user_id == owner_id)
            .execution_options(populate_existing=True)
        ).scalar_one()
        return row.to_record()

    def delete_owned(self, booking_id: str, owner_id: str) -> Optional[BookingRecord]:
        row = self._owned(booking_id, owner_id, for_update=True)
        if not row:
            return None

        record = row.to_record()
        self.session.delete(row)
        self.session.flush()
        return record

    def delete_many(self, ids: Iterable[str]) -> int:
        ids = set(ids)
        if not ids:
            return 0
        deleted = (
            self.session.query(Booking)
            .filter(Booking.id.in_(ids))
            .delete(synchronize_session=False)
        )
        logger.debug("Deleted %d of %d requested bookings", deleted, len(ids))
        return deleted

    def count_cancelled(self, owner_id: str) -> int:
        stmt = (
            select(func.count(Booking.id))
            .where(Booking.user_id == owner_id, Booking.status == STATUS_CANCELLED)
        )
        return self.session.execute(stmt).scalar_one()

    def owners_over_limit(self, limit: int) -> List[str]:
        stmt = (
            select(Booking.user_id)
            .where(Booking.status == STATUS_CANCELLED)
            .group_by(Booking.user_id)
            .having(func.count(Booking.id) > limit)
            .order_by(Booking.user_id.asc())
        )
        return list(self.session.execute(stmt).scalars())
