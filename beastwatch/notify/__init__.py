"""Notify module -- cooldown gating and push delivery.

Public API:
    CooldownGate      - Per-owner admit/record against the cooldown store
    Dispatcher        - One push per alert, failures returned as results
    FcmPushClient     - Firebase Cloud Messaging HTTP v1 adapter
    GoogleTokenSource - Refreshing OAuth2 access tokens for FCM
"""

from beastwatch.notify.credentials import GoogleTokenSource, StaticTokenSource
from beastwatch.notify.dispatcher import DispatchResult, Dispatcher
from beastwatch.notify.gate import CooldownGate
from beastwatch.notify.push import FcmPushClient

__all__ = [
    "CooldownGate",
    "DispatchResult",
    "Dispatcher",
    "FcmPushClient",
    "GoogleTokenSource",
    "StaticTokenSource",
]
