import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from models.db import db

STATUS_ACTIVE = "ACTIVE"
STATUS_CANCELLED = "CANCELLED"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value):
    # SQLite hands timestamps back without tzinfo; they are always stored as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id = db.Column(db.String(64), nullable=False, index=True)
    scheduled_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    service_type = db.Column(db.String(120), nullable=False)

    status = db.Column(db.String(20), nullable=False, default=STATUS_ACTIVE, index=True)
    # status values: ACTIVE, CANCELLED
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        db.CheckConstraint("status IN ('ACTIVE', 'CANCELLED')", name="ck_booking_status"),
        db.CheckConstraint(
            "(status = 'CANCELLED') = (cancelled_at IS NOT NULL)",
            name="ck_booking_cancelled_at",
        ),
    )

    def to_record(self) -> "BookingRecord":
        return BookingRecord(
            id=self.id,
            user_id=self.user_id,
            scheduled_at=_as_utc(self.scheduled_at),
            service_type=self.service_type,
            status=self.status,
            cancelled_at=_as_utc(self.cancelled_at),
            created_at=_as_utc(self.created_at),
            updated_at=_as_utc(self.updated_at),
        )


@dataclass(frozen=True)
class BookingRecord:
    """Detached, read-only view of a booking row."""

    id: str
    user_id: str
    scheduled_at: datetime
    service_type: str
    status: str = STATUS_ACTIVE
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == STATUS_CANCELLED
