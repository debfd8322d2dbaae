"""Exception types shared across JudolWatch."""

from __future__ import annotations

from typing import Optional


class JudolWatchError(Exception):
    """Base exception for JudolWatch errors."""

    pass


class NetworkError(JudolWatchError):
    """Transport failure or timeout talking to the backend."""

    pass


class ServerError(JudolWatchError):
    """Backend answered with a non-2xx status or an explicit failure."""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: str = ""):
        self.status_code = status_code
        self.detail = detail or message
        self.message = message
        super().__init__(message)


class AuthError(JudolWatchError):
    """Credential rejected or expired (HTTP 401)."""

    pass


class ValidationError(JudolWatchError):
    """Client-side precondition failed; raised before any network call."""

    pass


class ConfigError(JudolWatchError):
    """Programming or configuration error (e.g. unmapped schedule label)."""

    pass
