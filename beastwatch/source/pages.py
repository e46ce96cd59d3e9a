"""Cursor pagination over the combined beast/token query.

One GraphQL document serves all three entity types. Each has its own
cursor variable and an ``@include`` flag, so draining one entity type only
asks the indexer for that connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ValidationError

from beastwatch.care.schemas import OwnershipRecord, TokenRecord, VitalsSnapshot
from beastwatch.errors import FetchFailed, GraphQLError
from beastwatch.source.client import GraphQLClient

logger = logging.getLogger(__name__)

EntityType = Literal["vitals", "ownership", "tokens"]

BEAST_AND_TOKEN_QUERY = """
query GetBeastAndTokenData(
  $first: Int!,
  $beastStatusAfter: String, $withBeastStatus: Boolean!,
  $beastAfter: String, $withBeast: Boolean!,
  $tokenAfter: String, $withToken: Boolean!
) {
  tamagotchiBeastStatusModels(first: $first, after: $beastStatusAfter) @include(if: $withBeastStatus) {
    edges {
      node {
        beast_id
        is_alive
        is_awake
        hunger
        energy
        happiness
        hygiene
        clean_status
        last_timestamp
      }
    }
    pageInfo {
      endCursor
      hasNextPage
    }
  }
  tamagotchiBeastModels(first: $first, after: $beastAfter) @include(if: $withBeast) {
    edges {
      node {
        beast_id
        player
      }
    }
    pageInfo {
      endCursor
      hasNextPage
    }
  }
  tamagotchiPushTokenModels(first: $first, after: $tokenAfter) @include(if: $withToken) {
    edges {
      node {
        player_address
        token
      }
    }
    pageInfo {
      endCursor
      hasNextPage
    }
  }
}
"""


@dataclass(frozen=True)
class _Connection:
    field: str
    cursor_var: str
    include_var: str
    model: type[BaseModel]


CONNECTIONS: dict[str, _Connection] = {
    "vitals": _Connection(
        "tamagotchiBeastStatusModels", "beastStatusAfter", "withBeastStatus", VitalsSnapshot
    ),
    "ownership": _Connection(
        "tamagotchiBeastModels", "beastAfter", "withBeast", OwnershipRecord
    ),
    "tokens": _Connection(
        "tamagotchiPushTokenModels", "tokenAfter", "withToken", TokenRecord
    ),
}


class PageFetcher:
    """Drains one entity type's connection into a list of validated records."""

    def __init__(
        self,
        client: GraphQLClient,
        page_size: int = 100,
        max_pages: int = 10000,
        timestamp_unit: Literal["s", "ms"] = "ms",
    ) -> None:
        self._client = client
        self._page_size = page_size
        self._max_pages = max_pages
        self._timestamp_unit = timestamp_unit

    def _variables(self, entity_type: str, after: str | None) -> dict[str, Any]:
        variables: dict[str, Any] = {"first": self._page_size}
        for name, conn in CONNECTIONS.items():
            variables[conn.cursor_var] = after if name == entity_type else None
            variables[conn.include_var] = name == entity_type
        return variables

    def _to_record(self, entity_type: str, node: dict[str, Any]) -> BaseModel:
        if entity_type == "vitals" and self._timestamp_unit == "s":
            node = {**node, "last_timestamp": _seconds_to_ms(node.get("last_timestamp"))}
        return CONNECTIONS[entity_type].model.model_validate(node)

    async def fetch_all(self, entity_type: EntityType) -> list[Any]:
        """Return every record of ``entity_type`` across all pages, in source order.

        Raises FetchFailed on any transport, GraphQL or payload error; no
        partial results are returned.
        """
        if entity_type not in CONNECTIONS:
            raise ValueError(f"Unknown entity type: {entity_type}")
        conn = CONNECTIONS[entity_type]

        records: list[Any] = []
        after: str | None = None
        seen_cursors: set[str] = set()
        pages = 0

        try:
            while True:
                if pages >= self._max_pages:
                    raise FetchFailed(entity_type, f"exceeded max_pages ({self._max_pages})")

                data = await self._client.execute(
                    BEAST_AND_TOKEN_QUERY, self._variables(entity_type, after)
                )
                pages += 1

                connection = data.get(conn.field)
                if not isinstance(connection, dict):
                    raise FetchFailed(entity_type, f"missing '{conn.field}' in response")

                edges = connection.get("edges")
                if edges is None:
                    edges = []
                if not isinstance(edges, list):
                    raise FetchFailed(entity_type, f"'{conn.field}.edges' is not a list")
                for edge in edges:
                    if not isinstance(edge, dict) or not isinstance(edge.get("node"), dict):
                        raise FetchFailed(entity_type, f"malformed edge in '{conn.field}': {edge!r}")
                    records.append(self._to_record(entity_type, edge["node"]))

                page_info = connection.get("pageInfo")
                if page_info is None:
                    page_info = {}
                if not isinstance(page_info, dict):
                    raise FetchFailed(entity_type, f"'{conn.field}.pageInfo' is not an object")
                if not page_info.get("hasNextPage"):
                    break

                after = page_info.get("endCursor")
                if not after or after in seen_cursors:
                    raise FetchFailed(
                        entity_type, f"source reported more pages but cursor did not advance ({after!r})"
                    )
                seen_cursors.add(after)
        except FetchFailed:
            raise
        except (httpx.HTTPError, GraphQLError, ValidationError, KeyError, TypeError, ValueError) as e:
            raise FetchFailed(entity_type, e) from e

        logger.info("Fetched %d %s record(s) in %d page(s)", len(records), entity_type, pages)
        return records


def _seconds_to_ms(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        value = int(text, 16) if text.lower().startswith("0x") else int(text)
    if isinstance(value, int):
        return value * 1000
    return value
