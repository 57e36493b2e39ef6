from .db import db, serialize_sqlite_writes, transaction
from .booking import Booking, BookingRecord, STATUS_ACTIVE, STATUS_CANCELLED
