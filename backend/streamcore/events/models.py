"""
Stream Event Data Models.

Plain records for events, entries and bracket matches. Repositories hand
out copies; mutations go through EventLifecycle, BracketEngine and
BonusHuntQueue inside a unit of work.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Money columns are Numeric(18, 2)
MONEY_STEP = Decimal("0.01")
MONEY_LIMIT = Decimal(10) ** 16


def is_money(amount: Decimal) -> bool:
    """Finite, below the column limit and without sub-cent digits."""
    if not amount.is_finite() or abs(amount) >= MONEY_LIMIT:
        return False
    return amount == amount.quantize(MONEY_STEP)


def _money(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


class EventType(str, Enum):
    """Kinds of stream events."""

    TOURNAMENT = "tournament"
    BONUS_HUNT = "bonus_hunt"
    GUESS_BALANCE = "guess_balance"


class EventStatus(str, Enum):
    """Event lifecycle states."""

    DRAFT = "draft"
    OPEN = "open"  # entries accepted
    LOCKED = "locked"  # entries closed, bracket/queue built
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class EntryStatus(str, Enum):
    """Entry states."""

    PENDING = "pending"  # before lock
    SELECTED = "selected"  # tournament: seeded into the bracket

    # Bonus hunt queue
    WAITING = "waiting"
    CURRENT = "current"
    BONUSED = "bonused"
    NO_BONUS = "no_bonus"


TERMINAL_ENTRY_STATUSES = frozenset({EntryStatus.BONUSED, EntryStatus.NO_BONUS})


class MatchStatus(str, Enum):
    """Bracket match states."""

    PENDING = "pending"
    RESOLVED = "resolved"


@dataclass
class StreamEvent:
    """A tournament, bonus hunt or guess-the-balance event."""

    type: EventType
    title: str
    id: Optional[int] = None
    status: EventStatus = EventStatus.DRAFT
    max_players: Optional[int] = None  # tournament only
    starting_balance: Optional[Decimal] = None  # bonus hunt only
    is_public: bool = True

    # Recorded at lock
    seed: Optional[str] = None
    seed_hash: Optional[str] = None
    locked_at: Optional[datetime] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_play_phase(self) -> bool:
        return self.status in (EventStatus.LOCKED, EventStatus.IN_PROGRESS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "status": self.status.value,
            "max_players": self.max_players,
            "starting_balance": _money(self.starting_balance),
            "is_public": self.is_public,
            "seed": self.seed,
            "seed_hash": self.seed_hash,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class StreamEventEntry:
    """One player's entry into an event."""

    event_id: int
    display_name: str
    slot_choice: str
    id: Optional[int] = None
    user_id: Optional[str] = None
    category: Optional[str] = None  # tournament seeding tag
    status: EntryStatus = EntryStatus.PENDING
    position: Optional[int] = None  # shuffled index assigned at lock
    payout: Optional[Decimal] = None  # bonus hunt, set when bonused
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "user_id": self.user_id,
            "display_name": self.display_name,
            "slot_choice": self.slot_choice,
            "category": self.category,
            "status": self.status.value,
            "position": self.position,
            "payout": _money(self.payout),
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class TournamentMatch:
    """
    One bracket node.

    Player and winner ids are entry ids. ``winner_id`` is always one of
    the two players when set.
    """

    event_id: int
    round: int  # 1-based
    match_index: int  # 0-based within the round
    id: Optional[int] = None
    player_a_id: Optional[int] = None
    player_b_id: Optional[int] = None
    winner_id: Optional[int] = None
    status: MatchStatus = MatchStatus.PENDING

    @property
    def position(self) -> tuple:
        return (self.round, self.match_index)

    @property
    def is_resolved(self) -> bool:
        return self.status == MatchStatus.RESOLVED

    @property
    def is_dead(self) -> bool:
        """Resolved without a winner: no entrant can ever reach it."""
        return self.is_resolved and self.winner_id is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "round": self.round,
            "match_index": self.match_index,
            "player_a_id": self.player_a_id,
            "player_b_id": self.player_b_id,
            "winner_id": self.winner_id,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class BonusHuntSummary:
    """Financial rollup computed from entries on every read."""

    starting_balance: Decimal
    total_payout: Decimal
    profit: Decimal
    bonused_count: int
    no_bonus_count: int
    waiting_count: int
    current_entry_id: Optional[int]

    @property
    def is_exhausted(self) -> bool:
        return self.current_entry_id is None and self.waiting_count == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "starting_balance": str(self.starting_balance),
            "total_payout": str(self.total_payout),
            "profit": str(self.profit),
            "bonused_count": self.bonused_count,
            "no_bonus_count": self.no_bonus_count,
            "waiting_count": self.waiting_count,
            "current_entry_id": self.current_entry_id,
            "is_exhausted": self.is_exhausted,
        }


@dataclass
class EventSnapshot:
    """Full current state of one event, returned after every mutation."""

    event: StreamEvent
    entries: List[StreamEventEntry]
    matches: List[TournamentMatch] = field(default_factory=list)
    bonus_hunt: Optional[BonusHuntSummary] = None

    @property
    def champion_id(self) -> Optional[int]:
        if not self.matches:
            return None
        final = max(self.matches, key=lambda m: m.round)
        return final.winner_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.event.to_dict(),
            "entries": [e.to_dict() for e in self.entries],
            "matches": [m.to_dict() for m in self.matches],
            "champion_id": self.champion_id,
            "bonus_hunt": self.bonus_hunt.to_dict() if self.bonus_hunt else None,
        }


@dataclass(frozen=True)
class PublicEventView:
    """Event as shown to a (possibly anonymous) viewer."""

    event: StreamEvent
    entries_count: int
    has_entered: bool
    can_enter: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.event.to_dict(),
            "entries_count": self.entries_count,
            "has_entered": self.has_entered,
            "can_enter": self.can_enter,
        }
