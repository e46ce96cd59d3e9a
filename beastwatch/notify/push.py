"""Firebase Cloud Messaging (HTTP v1) push client.

Uses httpx.AsyncClient for async HTTP with connection pooling. The bearer
token comes from a TokenSource and is fetched per request, so refreshed
credentials are picked up without rebuilding the client.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from beastwatch.errors import DispatchFailed, DispatchFailureKind
from beastwatch.notify.credentials import TokenSource

logger = logging.getLogger(__name__)

_INVALID_TOKEN_CODES = {"UNREGISTERED", "INVALID_ARGUMENT", "SENDER_ID_MISMATCH"}
_AUTH_CODES = {"UNAUTHENTICATED", "PERMISSION_DENIED", "THIRD_PARTY_AUTH_ERROR"}
_QUOTA_CODES = {"QUOTA_EXCEEDED"}
_TRANSIENT_CODES = {"UNAVAILABLE", "INTERNAL"}


def _fcm_error_code(response: httpx.Response) -> str | None:
    """Pull the FCM errorCode out of an error body, if present."""
    try:
        body = response.json()
    except ValueError:
        return None
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return None
    for detail in error.get("details", []) or []:
        code = detail.get("errorCode") if isinstance(detail, dict) else None
        if code:
            return code
    return error.get("status")


def classify_failure(response: httpx.Response) -> DispatchFailureKind:
    code = _fcm_error_code(response)
    if code in _INVALID_TOKEN_CODES or response.status_code == 404:
        return "invalid_token"
    if code in _AUTH_CODES or response.status_code in (401, 403):
        return "auth"
    if code in _QUOTA_CODES or response.status_code == 429:
        return "quota_exceeded"
    if code in _TRANSIENT_CODES or response.status_code >= 500:
        return "transient"
    return "unknown"


class FcmPushClient:
    """Sends one notification per call to a single device token.

    A 401 invalidates the cached access token and the send is retried once
    with a fresh one.
    """

    def __init__(
        self,
        project_id: str,
        tokens: TokenSource,
        base_url: str = "https://fcm.googleapis.com/v1",
        timeout: float = 30.0,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._project_id = project_id
        self._tokens = tokens
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    def _path(self) -> str:
        project_id = self._project_id or self._tokens.project_id
        if not project_id:
            raise DispatchFailed("auth", "no FCM project id configured or found in credentials")
        return f"/projects/{project_id}/messages:send"

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        access_token = await self._tokens.token()
        try:
            return await self._http.post(
                self._path(),
                json=payload,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            raise DispatchFailed("transient", str(e)) from e

    async def send(self, token: str, title: str, body: str) -> str:
        """Send a notification. Returns the provider message name.

        Raises DispatchFailed with the failure kind on any error.
        """
        payload: dict[str, Any] = {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
            }
        }
        response = await self._post(payload)
        if response.status_code == 401:
            logger.info("FCM rejected the access token, refreshing and retrying once")
            self._tokens.invalidate()
            response = await self._post(payload)

        if response.is_success:
            return response.json().get("name", "")

        kind = classify_failure(response)
        raise DispatchFailed(kind, f"HTTP {response.status_code}: {response.text[:200]}")

    async def close(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._owns_http:
            await self._http.aclose()
