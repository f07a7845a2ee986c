"""Stream event, entry and bracket match tables."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from streamcore.models.base import Base, TimestampMixin


class StreamEventRecord(Base, TimestampMixin):
    """Tournament, bonus hunt or guess-the-balance event."""

    __tablename__ = "stream_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="tournament | bonus_hunt | guess_balance",
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default="draft",
        nullable=False,
        index=True,
        comment="draft | open | locked | in_progress | completed",
    )
    max_players: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Bracket size (tournament only): 4, 8, 16 or 32",
    )
    starting_balance: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 2),
        nullable=True,
        comment="Bonus hunt starting balance",
    )
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Shuffle audit, written at lock
    seed: Mapped[str | None] = mapped_column(String(128), nullable=True)
    seed_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<StreamEvent {self.id} {self.type} status={self.status}>"


class StreamEventEntryRecord(Base):
    """One entrant of a stream event."""

    __tablename__ = "stream_event_entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("stream_events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Set for self-service entries",
    )
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    slot_choice: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default="pending",
        nullable=False,
        comment="pending | selected | waiting | current | bonused | no_bonus",
    )
    position: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Shuffled order assigned at lock",
    )
    payout: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_stream_event_entries_event_status", "event_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<StreamEventEntry {self.id} event={self.event_id} status={self.status}>"


class TournamentMatchRecord(Base):
    """One node of a single-elimination bracket."""

    __tablename__ = "tournament_matches"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("stream_events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    round: Mapped[int] = mapped_column(Integer, nullable=False, comment="1-based")
    match_index: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="0-based within the round",
    )
    player_a_id: Mapped[int | None] = mapped_column(
        ForeignKey("stream_event_entries.id", ondelete="SET NULL"),
        nullable=True,
    )
    player_b_id: Mapped[int | None] = mapped_column(
        ForeignKey("stream_event_entries.id", ondelete="SET NULL"),
        nullable=True,
    )
    winner_id: Mapped[int | None] = mapped_column(
        ForeignKey("stream_event_entries.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default="pending",
        nullable=False,
        comment="pending | resolved",
    )

    __table_args__ = (
        UniqueConstraint("event_id", "round", "match_index", name="uq_match_position"),
    )

    def __repr__(self) -> str:
        return f"<TournamentMatch {self.id} r{self.round}#{self.match_index} {self.status}>"
