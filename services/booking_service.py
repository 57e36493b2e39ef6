"""
Booking use cases.

Store work runs inside a single transaction per operation. Notices go out
only after that transaction has committed, so no row lock is ever held
across a network call and a failed notice can never undo a booking change.
"""

import logging
from typing import Callable, List, NamedTuple, Optional

from clients.notification_client import NotificationResult
from models.booking import Booking, BookingRecord, utc_now
from models.db import transaction
from repositories.booking_repository import BookingRepository
from services.exceptions import InvalidState, NotFound, NotificationFailure, ValidationError
from services.retention import DEFAULT_RETENTION_LIMIT, select_for_purge
from utils.audit import log_event
from utils.dates import format_absolute_in_zone, parse_local_to_absolute, start_of_today

logger = logging.getLogger(__name__)


class BookingOutcome(NamedTuple):
    booking: BookingRecord
    # None when there was nobody to notify
    notice: Optional[NotificationResult] = None


class BookingService:
    def __init__(
        self,
        session_factory: Callable,
        notifier,
        zone: str,
        retention_limit: int = DEFAULT_RETENTION_LIMIT,
        upcoming_limit: int = 5,
        clock: Callable = utc_now,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.zone = zone
        self.retention_limit = retention_limit
        self.upcoming_limit = upcoming_limit
        self.clock = clock

    def format_date(self, booking: BookingRecord) -> str:
        return format_absolute_in_zone(booking.scheduled_at, self.zone)

    # ---------- reads ----------

    def list_bookings(self, owner_id: str) -> List[BookingRecord]:
        with transaction(self.session_factory) as session:
            return BookingRepository(session).list_by_owner(owner_id)

    def list_upcoming(self, owner_id: str) -> List[BookingRecord]:
        since = start_of_today(self.zone, self.clock())
        with transaction(self.session_factory) as session:
            return BookingRepository(session).list_upcoming_active(owner_id, since, limit=self.upcoming_limit)

    def get_booking(self, booking_id: str, owner_id: str) -> Optional[BookingRecord]:
        with transaction(self.session_factory) as session:
            return BookingRepository(session).find_owned(booking_id, owner_id)

    def list_cancelled(self, owner_id: str) -> List[BookingRecord]:
        with transaction(self.session_factory) as session:
            return BookingRepository(session).list_cancelled(owner_id)

    # ---------- mutations ----------

    def create_booking(self, owner_id: str, scheduled_at_iso: str, service_type: str, notify_target=None) -> BookingOutcome:
        if not isinstance(service_type, str) or not service_type.strip():
            raise ValidationError("service_type is required", details={"field": "service_type"})
        service_type = service_type.strip()
        max_len = Booking.__table__.c.service_type.type.length
        if len(service_type) > max_len:
            raise ValidationError(
                f"service_type must be at most {max_len} characters",
                details={"field": "service_type", "max_length": max_len},
            )
        scheduled_at = parse_local_to_absolute(scheduled_at_iso, self.zone)

        with transaction(self.session_factory) as session:
            booking = BookingRepository(session).insert(owner_id, scheduled_at, service_type)

        log_event("BOOKING_CREATE", user_id=owner_id, entity="booking", entity_id=booking.id,
                  metadata={"service_type": service_type, "scheduled_at": scheduled_at.isoformat()})

        notice = self._notify(self.notifier.notify_created if self.notifier else None, booking, notify_target)
        return BookingOutcome(booking, notice)

    def cancel_booking(self, booking_id: str, owner_id: str, notify_target=None) -> BookingOutcome:
        """
        Cancel a booking and purge the owner's oldest cancellations beyond
        the retention limit, all in one transaction.

        Raises NotFound for unknown/foreign ids and InvalidState when the
        booking is already cancelled; neither leaves any change behind.
        """
        with transaction(self.session_factory) as session:
            repo = BookingRepository(session)
            # Serialises concurrent cancellations of the same owner
            repo.lock_owner(owner_id)

            # Only an ACTIVE row is updated, so a concurrent second cancel finds nothing to change
            booking = repo.mark_cancelled(booking_id, owner_id, self.clock())
            if booking is None:
                current = repo.find_owned(booking_id, owner_id)
                if current is None:
                    raise NotFound("Booking not found", details={"id": booking_id})
                raise InvalidState(
                    "Booking already cancelled",
                    details={"id": booking_id, "cancelled_at": current.cancelled_at.isoformat()},
                )

            expired = select_for_purge(repo.list_cancelled(owner_id), self.retention_limit)
            purged = repo.delete_many(b.id for b in expired) if expired else 0

        log_event("BOOKING_CANCEL", user_id=owner_id, entity="booking", entity_id=booking.id)
        if purged:
            log_event("BOOKING_RETENTION_PURGE", user_id=owner_id, entity="booking",
                      metadata={"deleted": purged, "ids": [b.id for b in expired]})

        notice = self._notify(self.notifier.notify_cancelled if self.notifier else None, booking, notify_target)
        return BookingOutcome(booking, notice)

    def delete_booking(self, booking_id: str, owner_id: str) -> BookingRecord:
        with transaction(self.session_factory) as session:
            booking = BookingRepository(session).delete_owned(booking_id, owner_id)
            if booking is None:
                raise NotFound("Booking not found", details={"id": booking_id})

        log_event("BOOKING_DELETE", user_id=owner_id, entity="booking", entity_id=booking.id)
        return booking

    def enforce_retention(self, owner_id: Optional[str] = None) -> int:
        """
        Re-apply the retention limit outside of a cancellation. With no
        owner, every owner currently over the limit is processed, each in
        its own transaction.
        """
        if owner_id is None:
            with transaction(self.session_factory) as session:
                owners = BookingRepository(session).owners_over_limit(self.retention_limit)
        else:
            owners = [owner_id]

        total = 0
        for owner in owners:
            with transaction(self.session_factory) as session:
                repo = BookingRepository(session)
                repo.lock_owner(owner)
                expired = select_for_purge(repo.list_cancelled(owner), self.retention_limit)
                purged = repo.delete_many(b.id for b in expired) if expired else 0
            if purged:
                log_event("BOOKING_RETENTION_PURGE", user_id=owner, entity="booking",
                          metadata={"deleted": purged, "ids": [b.id for b in expired]})
            total += purged
        return total

    # ---------- notices ----------

    def _notify(self, send, booking: BookingRecord, target) -> Optional[NotificationResult]:
        """
        ``target`` is an identity, or a callable returning one. A callable is
        only invoked here, once the booking change has been committed.
        """
        if send is None or target is None:
            return None
        if callable(target):
            target = target()
        if target is None or not getattr(target, "email", None):
            return None

        try:
            result = send(target.email, target.display_name, booking.service_type, self.format_date(booking))
        except Exception as exc:
            # Collaborators report failure in their result; anything raised is treated the same way
            logger.exception("Notifier raised for booking %s", booking.id)
            result = NotificationResult(False, str(exc))

        if not result.delivered:
            failure = NotificationFailure("Notification not delivered", details={"reason": result.error})
            log_event("NOTIFICATION_FAILED", user_id=booking.user_id, entity="booking", entity_id=booking.id,
                      metadata={"code": failure.code, **failure.details}, level=logging.WARNING)
        return result
