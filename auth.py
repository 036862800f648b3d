import logging
from typing import Any, Dict, Optional

import httpx

from schemas import AuthSession

logger = logging.getLogger(__name__)


class AuthError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _provider_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"Authentication failed (HTTP {response.status_code})"
    for key in ("error_description", "msg", "message", "error"):
        if isinstance(payload, dict) and payload.get(key):
            return str(payload[key])
    return f"Authentication failed (HTTP {response.status_code})"


def _session_from_payload(payload: Dict[str, Any]) -> AuthSession:
    # Sign-up returns the bare user when email confirmation is pending.
    user = payload.get("user") or (payload if "access_token" not in payload else {})
    return AuthSession(
        access_token=payload.get("access_token"),
        refresh_token=payload.get("refresh_token"),
        user_id=user.get("id"),
        email=user.get("email"),
        confirmation_required=payload.get("access_token") is None,
    )


class AuthClient:
    """Email + password auth against a GoTrue-compatible identity provider."""

    def __init__(self, auth_url: str, api_key: str = "", http_client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 15.0):
        self.auth_url = auth_url.rstrip("/")
        self.api_key = api_key
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {"apikey": self.api_key} if self.api_key else {}
        token = access_token or self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(self, method: str, path: str, access_token: Optional[str] = None,
                       **kwargs: Any) -> Dict[str, Any]:
        if not self.auth_url:
            raise AuthError("Backend is not fully configured yet. Please try again in a moment.", 503)
        try:
            response = await self._http.request(
                method, f"{self.auth_url}{path}", headers=self._headers(access_token), **kwargs
            )
        except httpx.HTTPError as e:
            logger.warning("Identity provider unreachable: %s", e)
            raise AuthError("Authentication service is unavailable", 503) from e

        if response.is_error:
            status = response.status_code if response.status_code < 500 else 502
            raise AuthError(_provider_message(response), status)
        return response.json()

    async def sign_in(self, email: str, password: str) -> AuthSession:
        payload = await self._request(
            "POST", "/token", params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return _session_from_payload(payload)

    async def sign_up(self, email: str, password: str) -> AuthSession:
        payload = await self._request("POST", "/signup", json={"email": email, "password": password})
        return _session_from_payload(payload)

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        return await self._request("GET", "/user", access_token=access_token)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
