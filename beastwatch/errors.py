"""Error taxonomy for a check run.

Only FetchFailed aborts a run. Every other error is contained to the
subject or alert it concerns and is logged by the JobRunner. Push sends
rejected with kind "auth" still mark the finished run as failed.
"""

from __future__ import annotations

from typing import Literal

DispatchFailureKind = Literal["invalid_token", "auth", "transient", "quota_exceeded", "unknown"]


class BeastwatchError(Exception):
    """Base class for all Beastwatch errors."""


class GraphQLError(BeastwatchError):
    """The data source answered with a GraphQL ``errors`` payload."""

    def __init__(self, errors: list) -> None:
        self.errors = errors
        messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
        super().__init__(f"GraphQL errors: {messages}")


class FetchFailed(BeastwatchError):
    """Paging one entity type failed. Aborts the whole run."""

    def __init__(self, entity_type: str, cause: BaseException | str) -> None:
        self.entity_type = entity_type
        self.cause = cause
        super().__init__(f"Fetching {entity_type} failed: {cause}")


class InvalidTimeOrder(BeastwatchError):
    """The evaluation clock is behind the snapshot timestamp."""

    def __init__(self, snapshot_ts: int, now_ms: int) -> None:
        self.snapshot_ts = snapshot_ts
        self.now_ms = now_ms
        super().__init__(
            f"now_ms ({now_ms}) is earlier than snapshot last_timestamp ({snapshot_ts})"
        )


class CooldownStoreError(BeastwatchError):
    """Reading or writing one owner's cooldown record failed."""

    def __init__(self, owner_id: str, cause: BaseException) -> None:
        self.owner_id = owner_id
        self.cause = cause
        super().__init__(f"Cooldown store failed for owner {owner_id}: {cause}")


class DispatchFailed(BeastwatchError):
    """One push send failed."""

    def __init__(self, kind: DispatchFailureKind, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind}: {detail}" if detail else kind)
