import logging
from typing import NamedTuple, Optional

import requests

logger = logging.getLogger(__name__)

CREATED_PATH = "/notify/reserva"
CANCELLED_PATH = "/notify/cancelacion"


class NotificationResult(NamedTuple):
    delivered: bool
    error: Optional[str] = None


class NotificationClient:
    """Posts booking notices to the notification service."""

    def __init__(self, base_url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, path: str, email: str, display_name: str, service_type: str, formatted_date: str) -> NotificationResult:
        payload = {
            "email": email,
            "nombre": display_name,
            "servicio": service_type,
            "fecha": formatted_date,
        }
        try:
            resp = self.session.post(self.base_url + path, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Notification %s to %s failed: %s", path, email, exc)
            return NotificationResult(False, str(exc))

        logger.info("Notification %s sent to %s", path, email)
        return NotificationResult(True)

    def notify_created(self, email: str, display_name: str, service_type: str, formatted_date: str) -> NotificationResult:
        return self._post(CREATED_PATH, email, display_name, service_type, formatted_date)

    def notify_cancelled(self, email: str, display_name: str, service_type: str, formatted_date: str) -> NotificationResult:
        return self._post(CANCELLED_PATH, email, display_name, service_type, formatted_date)
