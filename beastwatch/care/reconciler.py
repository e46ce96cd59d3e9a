"""Three-way join of vitals, ownership and token records.

Every vitals record is resolved to its owner, then to the owner's device
token. Missing links are silent drops: a pet that cannot be resolved is
recorded as an UnresolvedSubject and skipped, never aborting the run.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

from beastwatch.care.schemas import (
    NotifiableSubject,
    OwnershipRecord,
    TokenRecord,
    VitalsSnapshot,
)

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

UnresolvedReason = Literal["no_owner", "no_token"]


@dataclass(frozen=True)
class Resolved(Generic[V]):
    value: V


@dataclass(frozen=True)
class Unresolved:
    reason: UnresolvedReason


Lookup = Resolved[V] | Unresolved


@dataclass(frozen=True)
class UnresolvedSubject:
    """A vitals record that could not be turned into a subject."""

    pet_id: int
    reason: UnresolvedReason
    owner_id: str | None = None


def lookup(index: Mapping[K, V], key: K, reason: UnresolvedReason) -> Lookup[V]:
    """Look ``key`` up in ``index``, returning an explicit absent marker on a miss."""
    if key in index:
        return Resolved(index[key])
    return Unresolved(reason)


def _index_owners(ownership: Iterable[OwnershipRecord]) -> dict[int, str]:
    owners: dict[int, str] = {}
    for record in ownership:
        previous = owners.get(record.pet_id)
        if previous is not None and previous != record.owner_id:
            logger.debug(
                "Pet %s ownership replaced: %s -> %s (last row wins)",
                record.pet_id, previous, record.owner_id,
            )
        owners[record.pet_id] = record.owner_id
    return owners


def _index_tokens(tokens: Iterable[TokenRecord]) -> dict[str, str]:
    by_owner: dict[str, str] = {}
    for record in tokens:
        if not record.device_token:
            continue
        previous = by_owner.get(record.owner_id)
        if previous is not None and previous != record.device_token:
            logger.debug(
                "Owner %s has several push tokens, using the last one seen",
                record.owner_id,
            )
        by_owner[record.owner_id] = record.device_token
    return by_owner


class Reconciler:
    """Joins the three datasets into notifiable subjects.

    Duplicate rows resolve to the last row in source (pagination) order,
    for both ownership and tokens. Output order follows the vitals input.
    """

    def __init__(self) -> None:
        self.unresolved: list[UnresolvedSubject] = []

    def reconcile(
        self,
        vitals: Iterable[VitalsSnapshot],
        ownership: Iterable[OwnershipRecord],
        tokens: Iterable[TokenRecord],
    ) -> list[NotifiableSubject]:
        owners = _index_owners(ownership)
        device_tokens = _index_tokens(tokens)

        subjects: list[NotifiableSubject] = []
        self.unresolved = []

        for snapshot in vitals:
            owner = lookup(owners, snapshot.pet_id, "no_owner")
            if isinstance(owner, Unresolved):
                logger.info("No owner found for pet %s", snapshot.pet_id)
                self.unresolved.append(UnresolvedSubject(snapshot.pet_id, owner.reason))
                continue

            token = lookup(device_tokens, owner.value, "no_token")
            if isinstance(token, Unresolved):
                logger.info(
                    "No push token found for owner %s (pet %s)",
                    owner.value, snapshot.pet_id,
                )
                self.unresolved.append(
                    UnresolvedSubject(snapshot.pet_id, token.reason, owner.value)
                )
                continue

            subjects.append(
                NotifiableSubject(
                    snapshot=snapshot,
                    owner_id=owner.value,
                    device_token=token.value,
                )
            )

        if self.unresolved:
            logger.info(
                "Reconciled %d subject(s), %d pet(s) unresolvable",
                len(subjects), len(self.unresolved),
            )
        return subjects
