"""Giveaway, requirement, entry and linked casino account tables."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from streamcore.models.base import Base, TimestampMixin


class GiveawayRecord(Base):
    """A prize draw."""

    __tablename__ = "giveaways"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    prize: Mapped[str] = mapped_column(String(200), nullable=False)
    max_entries: Mapped[int | None] = mapped_column(Integer, nullable=True)
    casino_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Tied casino; implies a linked_account requirement",
    )
    ends_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Draw result, written once by compare-and-swap on winner_id IS NULL
    winner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    winner_seed: Mapped[str | None] = mapped_column(String(128), nullable=True)
    seed_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entries_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    winner_entry_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    winner_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    winner_picked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    winner_picked_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_giveaways_due", "is_active", "ends_at"),
    )

    def __repr__(self) -> str:
        return f"<Giveaway {self.id} active={self.is_active} winner={self.winner_id}>"


class GiveawayRequirementRecord(Base):
    """Stored (type, casino_id, value) row of a requirement."""

    __tablename__ = "giveaway_requirements"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    giveaway_id: Mapped[int] = mapped_column(
        ForeignKey("giveaways.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="discord | wager | vip | linked_account",
    )
    casino_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="NULL = any casino",
    )
    value: Mapped[str | None] = mapped_column(String(100), nullable=True)


class GiveawayEntryRecord(Base):
    """One user's entry into a giveaway."""

    __tablename__ = "giveaway_entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    giveaway_id: Mapped[int] = mapped_column(
        ForeignKey("giveaways.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        # One entry per user per giveaway
        UniqueConstraint("giveaway_id", "user_id", name="uq_giveaway_entry_user"),
        # Draw order
        Index("ix_giveaway_entries_order", "giveaway_id", "created_at", "id"),
    )


class UserCasinoAccountRecord(Base, TimestampMixin):
    """A user's linked casino account, maintained by the account-linking flow."""

    __tablename__ = "user_casino_accounts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    casino_id: Mapped[int] = mapped_column(Integer, nullable=False)
    username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "casino_id", name="uq_user_casino_account"),
    )
