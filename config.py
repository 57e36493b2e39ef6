import os

from sqlalchemy.pool import StaticPool

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as bookings.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "bookings.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens issued by the user service
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-only-change-me")
    JWT_ALGORITHMS = os.getenv("JWT_ALGORITHMS", "HS256").split(",")

    # All dates are entered and displayed in this zone
    TARGET_TIMEZONE = os.getenv("TARGET_TIMEZONE", "America/Guayaquil")

    # Booking policy
    CANCELLED_RETENTION_LIMIT = int(os.getenv("CANCELLED_RETENTION_LIMIT", "5"))
    UPCOMING_LIMIT = int(os.getenv("UPCOMING_LIMIT", "5"))

    # Collaborating services
    NOTIFICATION_SERVICE_URL = os.getenv("NOTIFICATION_SERVICE_URL", "http://notification-service:5002")
    USER_SERVICE_URL = os.getenv("USER_SERVICE_URL", "http://user-service:5001")
    SERVICE_TIMEOUT_SECONDS = float(os.getenv("SERVICE_TIMEOUT_SECONDS", "5"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    # one shared in-memory connection for every session
    SQLALCHEMY_ENGINE_OPTIONS = {
        "poolclass": StaticPool,
        "connect_args": {"check_same_thread": False},
    }
    JWT_SECRET = "test-only-jwt-secret-0123456789abcdef"
    LOG_LEVEL = "DEBUG"
