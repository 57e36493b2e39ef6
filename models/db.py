from contextlib import contextmanager

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError

from services.exceptions import DependencyFailure

db = SQLAlchemy()


def serialize_sqlite_writes(engine):
    """
    Make every SQLite transaction take the write lock when it begins.

    pysqlite defers BEGIN until the first write and SQLite ignores
    FOR UPDATE, so two transactions could both read a row as ACTIVE before
    either writes. BEGIN IMMEDIATE makes the second one wait instead.
    Other dialects are left alone.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@contextmanager
def transaction(session_factory):
    """
    Yields a session inside one database transaction.
    Commits when the block exits normally, rolls back on any exception.
    """
    session = session_factory()
    try:
        with session.begin():
            yield session
    except SQLAlchemyError as exc:
        raise DependencyFailure("Booking store unavailable", details={"reason": str(exc)}) from exc
    finally:
        session.close()
