"""
Giveaway Data Models.

Requirement values are modelled as one record type per requirement kind
instead of a free-form string, so eligibility checks are exhaustive.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from streamcore.events.models import utcnow
from streamcore.utils.errors import EventCoreError


class RequirementType(str, Enum):
    """Requirement kinds a giveaway can carry."""

    DISCORD = "discord"
    WAGER = "wager"
    VIP = "vip"
    LINKED_ACCOUNT = "linked_account"


# Stored values that mean "the linked account must be verified"
VERIFIED_VALUES = frozenset({"verified", "true", "1", "yes"})


@dataclass(frozen=True)
class DiscordRequirement:
    """Entrant must be signed in (the entry endpoint already requires it)."""

    type: ClassVar[RequirementType] = RequirementType.DISCORD
    casino_id: Optional[int] = None

    @property
    def value(self) -> Optional[str]:
        return None


@dataclass(frozen=True)
class LinkedAccountRequirement:
    """Entrant must have a linked casino account."""

    type: ClassVar[RequirementType] = RequirementType.LINKED_ACCOUNT
    casino_id: Optional[int] = None  # None = any casino
    require_verified: bool = False
    implicit: bool = False  # added because the giveaway is tied to a casino

    @property
    def value(self) -> Optional[str]:
        return "verified" if self.require_verified else "linked"


@dataclass(frozen=True)
class WagerRequirement:
    """Entrant must have wagered at least ``min_wager``."""

    type: ClassVar[RequirementType] = RequirementType.WAGER
    casino_id: Optional[int] = None
    min_wager: Optional[Decimal] = None

    @property
    def value(self) -> Optional[str]:
        return str(self.min_wager) if self.min_wager is not None else None


@dataclass(frozen=True)
class VipRequirement:
    """Entrant must hold a VIP tier."""

    type: ClassVar[RequirementType] = RequirementType.VIP
    casino_id: Optional[int] = None
    tier: Optional[str] = None

    @property
    def value(self) -> Optional[str]:
        return self.tier


GiveawayRequirement = Union[
    DiscordRequirement,
    LinkedAccountRequirement,
    WagerRequirement,
    VipRequirement,
]


def parse_requirement(
    type_: str,
    casino_id: Optional[int] = None,
    value: Optional[str] = None,
) -> GiveawayRequirement:
    """Build a requirement record from its stored (type, casino_id, value) row.

    Raises:
        ValueError: unknown type or malformed value
    """
    req_type = RequirementType(str(type_).strip().lower())
    raw = (value or "").strip()

    if req_type == RequirementType.DISCORD:
        return DiscordRequirement(casino_id=casino_id)

    if req_type == RequirementType.LINKED_ACCOUNT:
        return LinkedAccountRequirement(
            casino_id=casino_id,
            require_verified=raw.lower() in VERIFIED_VALUES,
        )

    if req_type == RequirementType.WAGER:
        if not raw:
            return WagerRequirement(casino_id=casino_id)
        try:
            min_wager = Decimal(raw)
        except InvalidOperation as e:
            raise ValueError(f"Invalid wager threshold: {raw!r}") from e
        if min_wager < 0:
            raise ValueError(f"Wager threshold must be >= 0: {raw!r}")
        return WagerRequirement(casino_id=casino_id, min_wager=min_wager)

    return VipRequirement(casino_id=casino_id, tier=raw or None)


def requirement_to_row(req: GiveawayRequirement) -> Tuple[str, Optional[int], Optional[str]]:
    """Inverse of ``parse_requirement``."""
    return req.type.value, req.casino_id, req.value


def requirement_to_dict(req: GiveawayRequirement) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "type": req.type.value,
        "casino_id": req.casino_id,
        "value": req.value,
    }
    if isinstance(req, LinkedAccountRequirement):
        data["verified"] = req.require_verified
        data["implicit"] = req.implicit
    return data


@dataclass
class Giveaway:
    """A prize draw with entry gates and a provably-fair winner."""

    title: str
    prize: str
    ends_at: datetime
    id: Optional[int] = None
    description: Optional[str] = None
    max_entries: Optional[int] = None
    casino_id: Optional[int] = None
    is_active: bool = True

    # Draw result, immutable once winner_id is set
    winner_id: Optional[str] = None
    winner_seed: Optional[str] = None
    seed_hash: Optional[str] = None
    entries_hash: Optional[str] = None
    winner_entry_id: Optional[int] = None
    winner_index: Optional[int] = None
    winner_picked_at: Optional[datetime] = None
    winner_picked_by: Optional[str] = None

    created_at: datetime = field(default_factory=utcnow)

    def has_ended(self, now: datetime) -> bool:
        return now >= self.ends_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "prize": self.prize,
            "max_entries": self.max_entries,
            "casino_id": self.casino_id,
            "ends_at": self.ends_at.isoformat(),
            "is_active": self.is_active,
            "winner_id": self.winner_id,
            "winner_seed": self.winner_seed,
            "seed_hash": self.seed_hash,
            "entries_hash": self.entries_hash,
            "winner_entry_id": self.winner_entry_id,
            "winner_index": self.winner_index,
            "winner_picked_at": (
                self.winner_picked_at.isoformat() if self.winner_picked_at else None
            ),
            "winner_picked_by": self.winner_picked_by,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class GiveawayEntry:
    """One user's entry. Unique per (giveaway_id, user_id)."""

    giveaway_id: int
    user_id: str
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "giveaway_id": self.giveaway_id,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class WinnerDraw:
    """Fields written by the winner compare-and-swap."""

    winner_id: str
    winner_seed: str
    seed_hash: str
    entries_hash: str
    winner_entry_id: int
    winner_index: int
    picked_at: datetime
    picked_by: str


@dataclass(frozen=True)
class LinkedCasinoAccount:
    """A user's casino account link, as reported by the identity service."""

    casino_id: int
    verified: bool = False


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of an entry check; ``reason`` is set when not eligible."""

    eligible: bool
    reason: Optional[EventCoreError] = None

    @classmethod
    def ok(cls) -> "EligibilityResult":
        return cls(eligible=True)

    @classmethod
    def rejected(cls, reason: EventCoreError) -> "EligibilityResult":
        return cls(eligible=False, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eligible": self.eligible,
            "reason": self.reason.to_dict() if self.reason else None,
        }


@dataclass
class GiveawayView:
    """Giveaway plus its effective requirements and entry stats."""

    giveaway: Giveaway
    requirements: List[GiveawayRequirement]
    entry_count: int
    has_entered: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.giveaway.to_dict(),
            "requirements": [requirement_to_dict(r) for r in self.requirements],
            "entries": self.entry_count,
            "has_entered": self.has_entered,
        }


@dataclass(frozen=True)
class DrawVerification:
    """Result of recomputing a stored draw."""

    giveaway_id: int
    valid: bool
    error: Optional[str]
    stored_winner_id: Optional[str]
    recomputed_winner_id: Optional[str]
    winner_index: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "giveaway_id": self.giveaway_id,
            "valid": self.valid,
            "error": self.error,
            "stored_winner_id": self.stored_winner_id,
            "recomputed_winner_id": self.recomputed_winner_id,
            "winner_index": self.winner_index,
        }


def effective_requirements(
    giveaway: Giveaway,
    requirements: List[GiveawayRequirement],
) -> List[GiveawayRequirement]:
    """Stored requirements plus the implicit one for a casino-tied giveaway.

    A giveaway tied to a casino always requires a linked account at that
    casino, unless an explicit linked_account requirement already names it.
    """
    result = list(requirements)
    if giveaway.casino_id is None:
        return result

    has_specific = any(
        isinstance(r, LinkedAccountRequirement) and r.casino_id == giveaway.casino_id
        for r in result
    )
    if not has_specific:
        result.append(
            LinkedAccountRequirement(casino_id=giveaway.casino_id, implicit=True)
        )
    return result
