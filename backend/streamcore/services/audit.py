"""Actor-attributed audit trail.

Every admin or system mutation records who did it, what it touched and the
relevant ids/hashes. The record is written inside the same unit of work as
the mutation, so it commits or rolls back together with it. The matching log
line is only written after the commit succeeds.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from streamcore.events.models import utcnow
from streamcore.logging_config import get_logger

if TYPE_CHECKING:
    from streamcore.repositories.base import UnitOfWork

logger = get_logger(__name__)


class ActorRole(str, Enum):
    """Who is acting."""

    ADMIN = "admin"
    USER = "user"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Explicit caller identity passed into every mutating operation."""

    user_id: str
    role: ActorRole = ActorRole.ADMIN
    label: str | None = None

    @classmethod
    def admin(cls, user_id: str, label: str | None = None) -> "Actor":
        return cls(user_id=user_id, role=ActorRole.ADMIN, label=label)

    @classmethod
    def user(cls, user_id: str) -> "Actor":
        return cls(user_id=user_id, role=ActorRole.USER)

    @classmethod
    def system(cls, name: str) -> "Actor":
        """System actor, e.g. ``Actor.system("auto")`` -> ``system:auto``."""
        return cls(user_id=f"system:{name}", role=ActorRole.SYSTEM, label=name)


@dataclass(frozen=True)
class AuditRecord:
    """One audit line.

    Action examples:
    - stream_event.lock
    - bracket.submit_winner
    - bonus_hunt.bonused
    - giveaway.pick_winner
    - giveaway.auto_end_no_entries
    """

    action: str
    entity_type: str
    entity_id: int | None
    actor_id: str
    actor_role: str
    details: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "details": self.details,
            "created_at": self.created_at.isoformat(),
        }


async def record_audit(
    uow: "UnitOfWork",
    actor: Actor,
    action: str,
    entity_type: str,
    entity_id: int | None,
    **details: Any,
) -> AuditRecord:
    """Stage an audit record in the current unit of work.

    The log line is emitted by the repository after commit, so a rolled
    back mutation leaves neither a record nor a log line.
    """
    record = AuditRecord(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor.user_id,
        actor_role=actor.role.value,
        details=details,
    )
    await uow.add_audit_record(record)
    return record


def log_committed(records: list[AuditRecord]) -> None:
    """Log audit records once their unit of work has committed."""
    for record in records:
        logger.info(
            record.action,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            actor_id=record.actor_id,
            actor_role=record.actor_role,
            **record.details,
        )
