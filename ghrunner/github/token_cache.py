from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable

from ghrunner.github.registration import RegistrationToken, fetch_registration_token

if TYPE_CHECKING:
    from ghrunner.config.load_config import ProvisionerConfig


logger = logging.getLogger(__name__)

REFRESH_MARGIN = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RegistrationTokenCache:
    """Holds the current runner registration token and refreshes it on demand.

    The lock is held for the whole check-or-refresh sequence, so concurrent callers
    that find the token expired wait for a single upstream fetch and then share
    its result.
    """

    def __init__(
        self,
        fetch: Callable[[], RegistrationToken],
        *,
        now: Callable[[], datetime] | None = None,
        margin: timedelta = REFRESH_MARGIN,
    ) -> None:
        self._fetch = fetch
        self._now = now or _utcnow
        self._margin = margin
        self._lock = threading.Lock()
        self._token: RegistrationToken | None = None
        self._refresh_count = 0

    @classmethod
    def for_repository(cls, config: ProvisionerConfig) -> RegistrationTokenCache:
        def fetch() -> RegistrationToken:
            return fetch_registration_token(
                config.repo_path,
                config.repo_access_token,
                api_url=config.api_url,
                timeout_s=config.api_timeout_s,
            )

        return cls(fetch)

    def _needs_refresh(self) -> bool:
        token = self._token
        if token is None or not token.value:
            return True
        return token.expires_at - self._now() < self._margin

    def get_token(self) -> str:
        with self._lock:
            if not self._needs_refresh():
                return self._token.value  # type: ignore[union-attr]
            # A failed fetch raises RegistrationError and keeps the previous token.
            token = self._fetch()
            self._token = token
            self._refresh_count += 1
            logger.info("Successfully fetched runner registration token (expires at %s).", token.expires_at.isoformat())
            return token.value

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            token = self._token
            return {
                "has_token": token is not None,
                "expires_at": token.expires_at.isoformat() if token is not None else None,
                "refresh_count": self._refresh_count,
            }
