"""Per-owner cooldown gate.

The gate is consulted once per subject, not per alert: all of a subject's
alerts go out together or are suppressed together.

Two overlapping processes may both pass admit() before either calls
record(). The store's read-then-write is not locked; that race is
accepted.
"""

from __future__ import annotations

import logging
from typing import Protocol

from beastwatch.errors import CooldownStoreError

logger = logging.getLogger(__name__)


class CooldownBackend(Protocol):
    async def get(self, owner_id: str) -> int | None: ...

    async def set(self, owner_id: str, timestamp: int) -> None: ...


class CooldownGate:
    def __init__(self, store: CooldownBackend, window_ms: int) -> None:
        self._store = store
        self.window_ms = window_ms

    async def admit(self, owner_id: str, now_ms: int) -> bool:
        """True iff the owner was last notified at least window_ms ago.

        Raises CooldownStoreError if the store cannot be read.
        """
        try:
            last = await self._store.get(owner_id)
        except Exception as e:
            raise CooldownStoreError(owner_id, e) from e

        last_notified_at = last or 0
        admitted = now_ms - last_notified_at >= self.window_ms
        if not admitted:
            logger.info(
                "Skipping notification for %s due to cooldown (%ds left)",
                owner_id,
                (self.window_ms - (now_ms - last_notified_at)) // 1000,
            )
        return admitted

    async def record(self, owner_id: str, now_ms: int) -> None:
        """Mark the owner as notified at now_ms. Raises CooldownStoreError."""
        try:
            await self._store.set(owner_id, now_ms)
        except Exception as e:
            raise CooldownStoreError(owner_id, e) from e
