import random
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from models import STATUS_ACTIVE, STATUS_CANCELLED, transaction
from repositories.booking_repository import BookingRepository
from services.exceptions import DependencyFailure, InvalidState, NotFound, ValidationError


def _create(service, owner="U1", day=10, hour=9, service_type="hotel", target=None):
    outcome = service.create_booking(owner, f"2025-03-{day:02d}T{hour:02d}:00:00", service_type, notify_target=target)
    return outcome.booking


def _count_cancelled(session_factory, owner):
    with transaction(session_factory) as session:
        return BookingRepository(session).count_cancelled(owner)


# ---------- create ----------

def test_create_stores_utc_and_formats_in_target_zone(service, notifier, identity):
    outcome = service.create_booking("U1", "2025-03-10T09:00:00", "hotel", notify_target=identity)

    assert outcome.booking.scheduled_at == datetime(2025, 3, 10, 14, 0, tzinfo=timezone.utc)
    assert outcome.booking.status == STATUS_ACTIVE
    assert service.format_date(outcome.booking) == "10/03/2025 09:00:00"
    assert outcome.notice.delivered is True
    assert notifier.calls == [("created", "u1@example.com", "Ana", "hotel", "10/03/2025 09:00:00")]


@pytest.mark.parametrize("scheduled_at, service_type", [
    (None, "hotel"),
    ("not-a-date", "hotel"),
    ("2025-03-10T09:00:00", ""),
    ("2025-03-10T09:00:00", None),
    ("2025-03-10T09:00:00", "   "),
])
def test_create_rejects_missing_or_malformed_input(service, scheduled_at, service_type):
    with pytest.raises(ValidationError):
        service.create_booking("U1", scheduled_at, service_type)
    assert service.list_bookings("U1") == []


def test_create_enforces_service_type_column_length(service):
    with pytest.raises(ValidationError) as excinfo:
        service.create_booking("U1", "2025-03-10T09:00:00", "x" * 121)
    assert excinfo.value.details == {"field": "service_type", "max_length": 120}
    assert service.list_bookings("U1") == []

    booking = service.create_booking("U1", "2025-03-10T09:00:00", "x" * 120).booking
    assert len(booking.service_type) == 120


def test_callable_target_resolved_only_after_commit(service, notifier, identity):
    calls = []

    def target():
        calls.append(len(service.list_bookings("U1")))
        return identity

    with pytest.raises(ValidationError):
        service.create_booking("U1", "bad-date", "hotel", notify_target=target)
    with pytest.raises(NotFound):
        service.cancel_booking("missing", "U1", notify_target=target)
    assert calls == []

    outcome = service.create_booking("U1", "2025-03-10T09:00:00", "hotel", notify_target=target)
    # the booking was already visible when the target was looked up
    assert calls == [1]
    assert outcome.notice.delivered is True
    assert notifier.calls[0][1] == "u1@example.com"


def test_create_without_target_skips_notice(service, notifier):
    outcome = service.create_booking("U1", "2025-03-10T09:00:00", "flight")
    assert outcome.notice is None
    assert notifier.calls == []


def test_create_survives_notification_failure(service, notifier, identity):
    notifier.fail = True
    outcome = service.create_booking("U1", "2025-03-10T09:00:00", "hotel", notify_target=identity)
    assert outcome.notice.delivered is False
    assert service.get_booking(outcome.booking.id, "U1") == outcome.booking


# ---------- reads ----------

def test_reads_are_scoped_by_owner(service):
    mine = _create(service, "U1", day=12)
    _create(service, "U2", day=11)

    assert [b.id for b in service.list_bookings("U1")] == [mine.id]
    assert service.get_booking(mine.id, "U1") == mine
    assert service.get_booking(mine.id, "U2") is None


def test_list_upcoming_skips_past_and_cancelled(service):
    # the test clock starts at 2025-03-01 12:00 UTC
    # local midnight today still counts as upcoming
    _create(service, day=1, hour=0)
    past = service.create_booking("U1", "2025-02-20T10:00:00", "tour").booking
    cancelled = _create(service, day=3)
    service.cancel_booking(cancelled.id, "U1")
    for day in range(4, 10):
        _create(service, day=day)

    upcoming = service.list_upcoming("U1")
    assert len(upcoming) == 5
    assert past.id not in {b.id for b in upcoming}
    assert cancelled.id not in {b.id for b in upcoming}
    assert upcoming[0].scheduled_at == datetime(2025, 3, 1, 5, 0, tzinfo=timezone.utc)
    assert upcoming == sorted(upcoming, key=lambda b: b.scheduled_at)


# ---------- cancel ----------

def test_cancel_sets_status_and_timestamp(service, notifier, identity, clock):
    booking = _create(service)
    expected_at = clock.current

    outcome = service.cancel_booking(booking.id, "U1", notify_target=identity)

    assert outcome.booking.status == STATUS_CANCELLED
    assert outcome.booking.cancelled_at == expected_at
    assert outcome.notice.delivered is True
    assert notifier.calls[-1] == ("cancelled", "u1@example.com", "Ana", "hotel", "10/03/2025 09:00:00")
    assert service.get_booking(booking.id, "U1").status == STATUS_CANCELLED


def test_cancel_unknown_or_foreign_booking_is_not_found(service, session_factory):
    booking = _create(service, "U1")

    with pytest.raises(NotFound):
        service.cancel_booking("missing", "U1")
    with pytest.raises(NotFound):
        service.cancel_booking(booking.id, "U2")

    assert service.get_booking(booking.id, "U1") == booking
    assert _count_cancelled(session_factory, "U1") == 0


def test_second_cancel_is_invalid_state_and_keeps_first_timestamp(service, notifier, identity):
    booking = _create(service)
    first = service.cancel_booking(booking.id, "U1", notify_target=identity).booking
    sent = len(notifier.calls)

    with pytest.raises(InvalidState):
        service.cancel_booking(booking.id, "U1", notify_target=identity)

    assert service.get_booking(booking.id, "U1").cancelled_at == first.cancelled_at
    assert len(notifier.calls) == sent


def test_cancel_keeps_only_five_most_recent(service, session_factory):
    bookings = [_create(service, day=10 + i) for i in range(7)]
    for b in bookings:
        service.cancel_booking(b.id, "U1")

    remaining = service.list_cancelled("U1")
    assert [b.id for b in remaining] == [b.id for b in bookings[2:]]
    assert _count_cancelled(session_factory, "U1") == 5
    assert service.get_booking(bookings[0].id, "U1") is None
    assert service.get_booking(bookings[1].id, "U1") is None


def test_retention_does_not_touch_other_owners(service):
    others = [_create(service, "U2", day=10 + i) for i in range(3)]
    for b in others:
        service.cancel_booking(b.id, "U2")
    for b in [_create(service, "U1", day=10 + i) for i in range(7)]:
        service.cancel_booking(b.id, "U1")

    assert len(service.list_cancelled("U2")) == 3
    assert len(service.list_cancelled("U1")) == 5


def test_purge_failure_rolls_back_the_cancellation(service, monkeypatch):
    bookings = [_create(service, day=10 + i) for i in range(6)]
    for b in bookings[:5]:
        service.cancel_booking(b.id, "U1")

    def broken_delete(self, ids):
        raise OperationalError("DELETE FROM bookings", {}, Exception("disk I/O error"))

    monkeypatch.setattr(BookingRepository, "delete_many", broken_delete)

    with pytest.raises(DependencyFailure):
        service.cancel_booking(bookings[5].id, "U1")

    last = service.get_booking(bookings[5].id, "U1")
    assert last.status == STATUS_ACTIVE
    assert last.cancelled_at is None
    assert len(service.list_cancelled("U1")) == 5


def test_cancel_survives_notification_failure(service, notifier, identity):
    notifier.fail = True
    booking = _create(service)

    outcome = service.cancel_booking(booking.id, "U1", notify_target=identity)

    assert outcome.booking.status == STATUS_CANCELLED
    assert outcome.notice.delivered is False
    assert outcome.notice.error == "notification-service down"
    assert service.get_booking(booking.id, "U1").status == STATUS_CANCELLED


def test_cancel_survives_notifier_raising(service, notifier, identity, monkeypatch):
    def explode(*args):
        raise ConnectionError("socket closed")

    monkeypatch.setattr(notifier, "notify_cancelled", explode)
    booking = _create(service)

    outcome = service.cancel_booking(booking.id, "U1", notify_target=identity)
    assert outcome.notice.delivered is False
    assert service.get_booking(booking.id, "U1").status == STATUS_CANCELLED


@pytest.mark.parametrize("seed", range(8))
def test_cancelled_count_never_exceeds_limit(service, session_factory, seed):
    rng = random.Random(seed)
    owners = ["U1", "U2", "U3"]
    created = {owner: [] for owner in owners}

    for _ in range(rng.randint(10, 25)):
        owner = rng.choice(owners)
        created[owner].append(_create(service, owner, day=rng.randint(1, 28), hour=rng.randint(0, 23)).id)

    for _ in range(rng.randint(10, 40)):
        owner = rng.choice(owners)
        if not created[owner]:
            continue
        booking_id = rng.choice(created[owner])
        try:
            service.cancel_booking(booking_id, owner)
        except (InvalidState, NotFound):
            pass
        for o in owners:
            assert _count_cancelled(session_factory, o) <= 5


# ---------- delete ----------

def test_delete_booking(service):
    booking = _create(service)
    with pytest.raises(NotFound):
        service.delete_booking(booking.id, "U2")

    assert service.delete_booking(booking.id, "U1") == booking
    assert service.get_booking(booking.id, "U1") is None
    with pytest.raises(NotFound):
        service.delete_booking(booking.id, "U1")


# ---------- maintenance ----------

def test_enforce_retention_purges_owners_over_limit(service, session_factory):
    at = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
    bookings = [_create(service, day=10 + i) for i in range(8)]
    # cancelled straight in the store, bypassing the workflow purge
    with transaction(session_factory) as session:
        repo = BookingRepository(session)
        for i, b in enumerate(bookings):
            repo.mark_cancelled(b.id, "U1", at + timedelta(minutes=i))

    assert service.enforce_retention() == 3
    assert [b.id for b in service.list_cancelled("U1")] == [b.id for b in bookings[3:]]
    assert service.enforce_retention("U1") == 0
