"""Bearer-token session state shared by every API call."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionUser:
    id: str
    email: str
    full_name: str = ""
    is_admin: bool = False
    is_active: bool = True

    @property
    def username(self) -> str:
        return self.email.split("@", 1)[0] if self.email else ""

    @classmethod
    def from_api(cls, data: dict) -> "SessionUser":
        return cls(
            id=str(data.get("id") or ""),
            email=str(data.get("email") or ""),
            full_name=str(data.get("full_name") or ""),
            is_admin=bool(data.get("is_admin")),
            is_active=bool(data.get("is_active", True)),
        )


class Session:
    """Holds the access token; a 401 anywhere tears it down."""

    def __init__(self, token: Optional[str] = None):
        self._token = token or None
        self.user: Optional[SessionUser] = None
        self._listeners: List[Callable[[], None]] = []

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token)

    def store(self, token: str, user: Optional[SessionUser] = None) -> None:
        self._token = token or None
        self.user = user

    def on_invalidate(self, callback: Callable[[], None]) -> None:
        """Register a callback fired when the session is torn down."""
        self._listeners.append(callback)

    def invalidate(self) -> None:
        """Clear all local session state and notify listeners."""
        had_token = self._token is not None
        self._token = None
        self.user = None
        if had_token:
            logger.info("Session invalidated")
        for callback in list(self._listeners):
            try:
                callback()
            except Exception as e:  # pragma: no cover - listener bug
                logger.warning("Session invalidation listener failed: %s", e)
