"""OAuth2 access tokens for the FCM HTTP v1 API.

GoogleTokenSource wraps google-auth credentials (a service-account key file,
or application default credentials when no file is configured) and refreshes
the token whenever it is missing or about to expire. Credentials are loaded
on first use so the service can start without them.

StaticTokenSource serves a fixed token and never refreshes. It is meant for
emulators and short-lived manual runs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import google.auth
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from beastwatch.errors import DispatchFailed

logger = logging.getLogger(__name__)

FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"


class TokenSource(Protocol):
    project_id: str | None

    async def token(self) -> str: ...

    def invalidate(self) -> None: ...


class StaticTokenSource:
    """A fixed bearer token."""

    def __init__(self, access_token: str, project_id: str | None = None) -> None:
        self._access_token = access_token
        self.project_id = project_id

    async def token(self) -> str:
        if not self._access_token:
            raise DispatchFailed("auth", "no FCM access token configured")
        return self._access_token

    def invalidate(self) -> None:
        pass


class GoogleTokenSource:
    """Refreshing token source backed by google-auth credentials."""

    def __init__(self, credentials_file: str = "", credentials: Any = None) -> None:
        self._credentials_file = credentials_file
        self._credentials = credentials
        self.project_id: str | None = getattr(credentials, "project_id", None)
        self._lock = asyncio.Lock()

    def _load(self) -> None:
        if self._credentials_file:
            self._credentials = service_account.Credentials.from_service_account_file(
                self._credentials_file, scopes=[FCM_SCOPE]
            )
            self.project_id = self._credentials.project_id
            logger.info("Loaded FCM service account from %s", self._credentials_file)
        else:
            self._credentials, self.project_id = google.auth.default(scopes=[FCM_SCOPE])
            logger.info("Using application default credentials for FCM")

    async def token(self) -> str:
        """Return a valid access token, refreshing it first when needed.

        Raises DispatchFailed("auth") when credentials cannot be loaded or
        refreshed.
        """
        async with self._lock:
            try:
                if self._credentials is None:
                    await asyncio.to_thread(self._load)
                if not self._credentials.valid:
                    await asyncio.to_thread(self._credentials.refresh, Request())
                    logger.debug("Refreshed FCM access token (expires %s)", self._credentials.expiry)
            except (GoogleAuthError, OSError, ValueError) as e:
                raise DispatchFailed("auth", f"could not obtain FCM access token: {e}") from e
            return self._credentials.token

    def invalidate(self) -> None:
        """Force a refresh on the next token() call."""
        if self._credentials is not None:
            self._credentials.token = None
