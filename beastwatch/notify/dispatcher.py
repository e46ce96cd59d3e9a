"""Sends approved alerts and records each outcome."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from beastwatch.care.schemas import Alert
from beastwatch.errors import DispatchFailed

logger = logging.getLogger(__name__)


class PushSender(Protocol):
    async def send(self, token: str, title: str, body: str) -> str: ...


@dataclass(frozen=True)
class DispatchResult:
    alert: Alert
    ok: bool
    error: DispatchFailed | None = None


class Dispatcher:
    """One provider call per alert. Failures are returned, never raised."""

    def __init__(self, push: PushSender) -> None:
        self._push = push

    async def send(self, token: str, alert: Alert) -> DispatchResult:
        try:
            await self._push.send(token, alert.title, alert.body)
        except DispatchFailed as e:
            logger.warning("Push send failed (%s alert): %s", alert.kind, e)
            return DispatchResult(alert=alert, ok=False, error=e)
        except Exception as e:
            logger.exception("Unexpected push error (%s alert)", alert.kind)
            return DispatchResult(alert=alert, ok=False, error=DispatchFailed("unknown", str(e)))

        logger.debug("Sent %s alert", alert.kind)
        return DispatchResult(alert=alert, ok=True)
