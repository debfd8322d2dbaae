"""HTTP client for the JudolWatch backend.

Wraps a shared httpx.AsyncClient and maps transport/status failures onto
the JudolWatch error types:
- Timeouts and connection failures -> NetworkError
- 401 -> AuthError (session is invalidated first)
- Other non-2xx -> ServerError carrying the server's detail message
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..errors import AuthError, NetworkError, ServerError
from .session import Session, SessionUser

logger = logging.getLogger(__name__)


def extract_error_detail(response: httpx.Response) -> str:
    """Best-effort human-readable error message from an error response."""
    fallback = f"HTTP error {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return fallback
    if not isinstance(body, dict):
        return fallback

    detail = body.get("detail", body.get("message"))
    if isinstance(detail, str) and detail.strip():
        return detail.strip()
    if isinstance(detail, list):
        # FastAPI validation errors: [{"loc": [...], "msg": "...", "type": "..."}]
        messages = []
        for item in detail:
            if isinstance(item, dict) and item.get("msg"):
                loc = ".".join(str(p) for p in item.get("loc") or [] if p != "body")
                messages.append(f"{loc}: {item['msg']}" if loc else str(item["msg"]))
            elif isinstance(item, str):
                messages.append(item)
        if messages:
            return "; ".join(messages)
    return fallback


class ApiClient:
    """
    Authenticated JSON client.

    Usage:
        client = ApiClient("https://judol.example/api", session)
        data = await client.request("GET", "/domains", params={"page": 1})
        await client.close()
    """

    timeout_seconds: float = 30.0
    user_agent: str = "JudolWatch/1.0"

    def __init__(
        self,
        base_url: str,
        session: Optional[Session] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or Session()
        if timeout_seconds is not None:
            self.timeout_seconds = float(timeout_seconds)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout_seconds),
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"
        if extra:
            headers.update(extra)
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        data: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(
                method,
                path,
                params=params,
                json=json,
                data=data,
                headers=self._headers(headers),
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {method} {path}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Network error on {method} {path}: {e}") from e

        if response.status_code == 401:
            self.session.invalidate()
            raise AuthError(extract_error_detail(response) if response.content else "Unauthorized")

        if response.is_error:
            detail = extract_error_detail(response)
            logger.debug("%s %s failed with %s: %s", method, path, response.status_code, detail)
            raise ServerError(detail, status_code=response.status_code, detail=detail)

        return response

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        data: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Issue a request and decode the JSON body."""
        response = await self._send(method, path, params=params, json=json, data=data)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ServerError(
                f"Invalid JSON from {method} {path}", status_code=response.status_code
            ) from e

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def patch(self, path: str, json: Any = None) -> Any:
        return await self.request("PATCH", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def login(self, username: str, password: str) -> SessionUser:
        """
        OAuth2 password-grant login followed by a profile fetch.

        Stores the token on the session. A rejected login raises AuthError.
        """
        try:
            token_data = await self.request(
                "POST",
                "/auth/login",
                data={"username": username, "password": password},
            )
        except ServerError as e:
            raise AuthError(e.detail or "Invalid email or password") from e

        token = str((token_data or {}).get("access_token") or "")
        if not token:
            raise AuthError("Login response did not include an access token")

        self.session.store(token)
        profile = await self.get("/users/me")
        user = SessionUser.from_api(profile if isinstance(profile, dict) else {})
        self.session.store(token, user)
        logger.info("Logged in as %s", user.username or username)
        return user
