"""Audit log model."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from streamcore.models.base import Base


class AuditLog(Base):
    """Actor-attributed record of every admin and system mutation."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Actor (who performed the action)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    actor_role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="admin | user | system",
    )

    # Action type
    action: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    """
    Action examples:
    - stream_event.lock
    - bracket.submit_winner
    - bonus_hunt.bonused
    - giveaway.pick_winner
    - giveaway.auto_end_no_entries
    """

    # Target
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    # Ids, hashes, amounts
    details: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.entity_type}={self.entity_id} by={self.actor_id}>"
