import logging

import click
from flask import Flask, jsonify
from flask_migrate import Migrate
from sqlalchemy.orm import sessionmaker

from config import Config
from routes import health_bp, booking_bp

from models import db, serialize_sqlite_writes
from clients.notification_client import NotificationClient
from clients.user_client import UserClient
from services.booking_service import BookingService
from services.exceptions import BookingError
from utils.auth_context import load_current_user
from utils.dates import get_zone

logger = logging.getLogger(__name__)


def create_app(config_object=Config, notifier=None, user_client=None, clock=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Fail fast on a misconfigured zone
    get_zone(app.config["TARGET_TIMEZONE"])

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(booking_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    timeout = app.config.get("SERVICE_TIMEOUT_SECONDS", 5)
    if notifier is None:
        notifier = NotificationClient(app.config["NOTIFICATION_SERVICE_URL"], timeout=timeout)
    if user_client is None:
        user_client = UserClient(app.config["USER_SERVICE_URL"], timeout=timeout)

    with app.app_context():
        serialize_sqlite_writes(db.engine)
        session_factory = sessionmaker(bind=db.engine, expire_on_commit=False)

    service_kwargs = {}
    if clock is not None:
        service_kwargs["clock"] = clock
    app.extensions["booking_service"] = BookingService(
        session_factory,
        notifier,
        app.config["TARGET_TIMEZONE"],
        retention_limit=app.config.get("CANCELLED_RETENTION_LIMIT", 5),
        upcoming_limit=app.config.get("UPCOMING_LIMIT", 5),
        **service_kwargs,
    )
    app.extensions["user_client"] = user_client

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        if exc.status_code >= 500:
            logger.error("%s: %s %s", exc.code, exc.message, exc.details, exc_info=exc.__cause__)
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("init-db")
    def init_db():
        """Create the bookings table without running migrations (local dev)."""
        db.create_all()
        click.echo("Database initialised")

    @app.cli.command("enforce-retention")
    @click.option("--owner", "owner_id", default=None, help="Only purge this owner's cancelled bookings.")
    def enforce_retention(owner_id):
        """Delete cancelled bookings beyond the retention limit."""
        service = app.extensions["booking_service"]
        deleted = service.enforce_retention(owner_id)
        click.echo(f"Deleted {deleted} cancelled booking(s)")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=4000)
