"""Minimal GraphQL-over-HTTP client for the Torii indexer.

Uses httpx.AsyncClient for async HTTP with connection pooling.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from beastwatch.errors import GraphQLError

logger = logging.getLogger(__name__)


class GraphQLClient:
    """POSTs queries to a single GraphQL endpoint and returns ``data``."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10),
            headers={"Content-Type": "application/json"},
        )

    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run one query. Raises httpx.HTTPError or GraphQLError."""
        response = await self._http.post(
            self.url,
            json={"query": query, "variables": variables or {}},
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise GraphQLError(
                [{"message": f"response body is not an object: {type(payload).__name__}"}]
            )
        if payload.get("errors"):
            raise GraphQLError(payload["errors"])
        data = payload.get("data")
        if not isinstance(data, dict):
            raise GraphQLError([{"message": "response has no data object"}])
        return data

    async def close(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._owns_http:
            await self._http.aclose()
