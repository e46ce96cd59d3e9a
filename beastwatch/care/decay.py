"""Time-based vitals decay.

Reconstructs a pet's present vitals from its last authoritative snapshot
without background ticking. One care point accrues per 3 minutes of
neglect, one energy point per 6 minutes. A pet left alone for 100 energy
points (10 hours) is lapsed: all vitals drop to 0 and it dies.
"""

from __future__ import annotations

import logging

from beastwatch.care.schemas import VitalsSnapshot
from beastwatch.errors import InvalidTimeOrder

logger = logging.getLogger(__name__)

CARE_POINT_SECONDS = 180
ENERGY_POINT_SECONDS = 360
LAPSE_ENERGY_POINTS = 100
LOW_ENERGY = 50


def _sub(value: int, amount: int) -> int:
    return max(0, value - amount)


def compute_current_vitals(
    snapshot: VitalsSnapshot,
    now_ms: int,
    *,
    strict: bool = False,
) -> VitalsSnapshot:
    """Return the snapshot's vitals as of ``now_ms``.

    Pure: the input snapshot is never modified. When ``now_ms`` is earlier
    than ``snapshot.last_timestamp`` the elapsed time is clamped to zero,
    unless ``strict`` is set, in which case InvalidTimeOrder is raised.
    """
    if now_ms < snapshot.last_timestamp:
        if strict:
            raise InvalidTimeOrder(snapshot.last_timestamp, now_ms)
        logger.warning(
            "Pet %s snapshot is %dms in the future, treating as no elapsed time",
            snapshot.pet_id,
            snapshot.last_timestamp - now_ms,
        )
        elapsed_seconds = 0
    else:
        elapsed_seconds = (now_ms - snapshot.last_timestamp) // 1000

    care_points = elapsed_seconds // CARE_POINT_SECONDS
    energy_points = elapsed_seconds // ENERGY_POINT_SECONDS

    if energy_points >= LAPSE_ENERGY_POINTS:
        return snapshot.model_copy(
            update={
                "hunger": 0,
                "energy": 0,
                "happiness": 0,
                "hygiene": 0,
                "is_alive": False,
                "last_timestamp": max(now_ms, snapshot.last_timestamp),
            }
        )

    if not snapshot.is_alive or (care_points == 0 and energy_points == 0):
        # Dead pets stay frozen; under 3 minutes nothing has decayed yet
        return snapshot.model_copy(
            update={"last_timestamp": max(now_ms, snapshot.last_timestamp)}
        )

    if snapshot.energy < LOW_ENERGY:
        hunger_loss = happiness_loss = hygiene_loss = care_points * 3 // 2
    else:
        hunger_loss = happiness_loss = care_points + 2 if care_points != 0 else 0
        hygiene_loss = care_points * 2

    hunger = _sub(snapshot.hunger, hunger_loss)
    energy = _sub(snapshot.energy, energy_points)
    happiness = _sub(snapshot.happiness, happiness_loss)
    hygiene = _sub(snapshot.hygiene, hygiene_loss)
    is_alive = not (hunger == 0 and energy == 0 and happiness == 0 and hygiene == 0)

    return snapshot.model_copy(
        update={
            "hunger": hunger,
            "energy": energy,
            "happiness": happiness,
            "hygiene": hygiene,
            "is_alive": is_alive,
            "last_timestamp": max(now_ms, snapshot.last_timestamp),
        }
    )
