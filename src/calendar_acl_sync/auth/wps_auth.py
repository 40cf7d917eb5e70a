"""Client-credentials authentication for the WPS open platform."""

import logging
import threading
import time
from typing import Optional

import requests

from ..config import WpsConfig
from ..utils.exceptions import AuthenticationError
from .base import AuthProvider

logger = logging.getLogger(__name__)

# Refresh this many seconds before the token actually expires
EXPIRY_MARGIN_SECONDS = 60


class WpsAuthProvider(AuthProvider):
    """App-only token provider for the WPS calendar API."""

    def __init__(self, config: WpsConfig, session: Optional[requests.Session] = None):
        """
        Initialize WPS authentication provider.

        Args:
            config: WPS open platform configuration
            session: HTTP session to reuse (a new one is created otherwise)

        Raises:
            AuthenticationError: If client id or secret is missing
        """
        if not config.client_id or not config.client_secret:
            raise AuthenticationError("WPS_CLIENT_ID and WPS_CLIENT_SECRET are required")

        self.config = config
        self.session = session or requests.Session()
        self.token_url = f"{config.base_url.rstrip('/')}/oauth2/token"
        self._token: Optional[str] = None
        self._expires_at = 0.0
        # Adapter calls run in worker threads
        self._lock = threading.Lock()

    def get_access_token(self) -> str:
        with self._lock:
            if self._token and time.monotonic() < self._expires_at:
                return self._token
            return self._acquire_token()

    def _acquire_token(self) -> str:
        try:
            resp = self.session.post(
                self.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                },
                timeout=self.config.timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise AuthenticationError(f"WPS token request failed: {e}") from e

        token = payload.get("access_token")
        if not token:
            error_desc = payload.get("error_description") or payload.get("msg") or "Unknown error"
            raise AuthenticationError(f"WPS token request failed: {error_desc}")

        expires_in = int(payload.get("expires_in", 7200))
        self._token = token
        self._expires_at = time.monotonic() + max(0, expires_in - EXPIRY_MARGIN_SECONDS)
        logger.debug("WPS access token acquired")
        return token

    def clear_cache(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = 0.0
