"""Durable per-owner cooldown timestamps."""

import logging

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert

from beastwatch.storage.database import Database
from beastwatch.storage.models import CooldownRecord

logger = logging.getLogger(__name__)


class CooldownStore:
    """get/set of last-notified timestamps (epoch ms) keyed by owner."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def get(self, owner_id: str) -> int | None:
        """Return the owner's last notification time, or None if never notified."""
        async with self._db.session() as session:
            result = await session.execute(
                select(CooldownRecord.last_notified_at).where(
                    CooldownRecord.owner_id == owner_id
                )
            )
            return result.scalar_one_or_none()

    async def set(self, owner_id: str, timestamp: int) -> None:
        """Upsert the owner's last notification time."""
        stmt = insert(CooldownRecord).values(owner_id=owner_id, last_notified_at=timestamp)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CooldownRecord.owner_id],
            set_={"last_notified_at": stmt.excluded.last_notified_at, "updated_at": func.now()},
        )
        async with self._db.session() as session:
            await session.execute(stmt)
            await session.commit()
        logger.debug("Recorded cooldown for owner %s at %d", owner_id, timestamp)
