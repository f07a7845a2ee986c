"""Database models."""

from streamcore.models.audit import AuditLog
from streamcore.models.base import Base, TimestampMixin
from streamcore.models.giveaway import (
    GiveawayEntryRecord,
    GiveawayRecord,
    GiveawayRequirementRecord,
    UserCasinoAccountRecord,
)
from streamcore.models.stream_event import (
    StreamEventEntryRecord,
    StreamEventRecord,
    TournamentMatchRecord,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Stream events
    "StreamEventRecord",
    "StreamEventEntryRecord",
    "TournamentMatchRecord",
    # Giveaways
    "GiveawayRecord",
    "GiveawayRequirementRecord",
    "GiveawayEntryRecord",
    "UserCasinoAccountRecord",
    # Audit
    "AuditLog",
]
