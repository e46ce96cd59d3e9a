"""Care module -- decay, reconciliation and notification rules for beasts.

Public API:
    compute_current_vitals - Decay a snapshot to the present
    Reconciler             - Join vitals, ownership and tokens into subjects
    RuleEngine             - Alerts warranted by a subject's vitals

Schemas:
    VitalsSnapshot, OwnershipRecord, TokenRecord, NotifiableSubject, Alert
"""

from beastwatch.care.decay import compute_current_vitals
from beastwatch.care.reconciler import Reconciler, UnresolvedSubject
from beastwatch.care.rules import RuleEngine
from beastwatch.care.schemas import (
    Alert,
    AlertKind,
    NotifiableSubject,
    OwnershipRecord,
    TokenRecord,
    VitalsSnapshot,
)

__all__ = [
    "compute_current_vitals",
    "Reconciler",
    "RuleEngine",
    "UnresolvedSubject",
    # Schemas
    "Alert",
    "AlertKind",
    "NotifiableSubject",
    "OwnershipRecord",
    "TokenRecord",
    "VitalsSnapshot",
]
