"""SQLAlchemy ORM models for the beastwatch schema."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Single declarative base for all schemas."""

    pass


class CooldownRecord(Base):
    """Last time an owner was notified. The only state that outlives a run."""

    __tablename__ = "cooldowns"
    __table_args__ = {"schema": "beastwatch"}

    owner_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    last_notified_at: Mapped[int] = mapped_column(BigInteger, nullable=False)  # epoch ms
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
