from typing import List, Sequence

from models.booking import BookingRecord

DEFAULT_RETENTION_LIMIT = 5


def select_for_purge(cancelled: Sequence[BookingRecord], limit: int = DEFAULT_RETENTION_LIMIT) -> List[BookingRecord]:
    """
    Return the cancelled bookings that exceed the retention limit.

    The oldest cancellations go first. sorted() is stable, so bookings with
    the same cancelled_at keep the order they arrived in (the store hands
    them over by creation time, then id).
    """
    if limit < 0:
        raise ValueError("Retention limit must be >= 0")

    excess = len(cancelled) - limit
    if excess <= 0:
        return []

    ordered = sorted(cancelled, key=lambda b: b.cancelled_at)
    return ordered[:excess]
