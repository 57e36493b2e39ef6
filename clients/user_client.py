import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class UserClient:
    """Read-only lookups against the user service."""

    def __init__(self, base_url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def get_user(self, user_id: str, token: str) -> Optional[dict]:
        """
        Returns the user's profile, or None when the service refuses or
        cannot be reached.
        """
        try:
            resp = self.session.get(
                f"{self.base_url}/users/{user_id}",
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("User lookup for %s failed: %s", user_id, exc)
            return None

        return data if isinstance(data, dict) else None
