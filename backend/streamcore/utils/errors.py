"""Typed error taxonomy for live-event operations.

Every business-rule violation raised by the core is an ``EventCoreError``
subclass carrying a stable error code, so the API layer can translate it to
an HTTP status without inspecting messages.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for live-event errors."""

    # Lifecycle
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NOT_FOUND = "NOT_FOUND"

    # Bracket
    ALREADY_RESOLVED = "ALREADY_RESOLVED"
    INVALID_WINNER = "INVALID_WINNER"
    BRACKET_INTEGRITY = "BRACKET_INTEGRITY"

    # Bonus hunt
    QUEUE_EMPTY = "QUEUE_EMPTY"
    INVALID_PAYOUT = "INVALID_PAYOUT"

    # Entries
    INVALID_ENTRY = "INVALID_ENTRY"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    ENTRY_LIMIT_REACHED = "ENTRY_LIMIT_REACHED"
    REQUIREMENT_NOT_MET = "REQUIREMENT_NOT_MET"
    EVENT_ENDED = "EVENT_ENDED"

    # Giveaway draw
    WINNER_ALREADY_PICKED = "WINNER_ALREADY_PICKED"
    NO_ENTRIES = "NO_ENTRIES"
    NOT_ENDED = "NOT_ENDED"

    # Infrastructure
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    LOCK_UNAVAILABLE = "LOCK_UNAVAILABLE"


class EventCoreError(Exception):
    """Base exception for live-event errors.

    Attributes:
        code: Error code for programmatic handling
        message: Developer-facing error message
        details: Additional error details
        recoverable: Whether the caller may retry or correct the request
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
    ):
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Lifecycle Errors
# =============================================================================


class InvalidTransitionError(EventCoreError):
    """Raised when an operation is not legal in the aggregate's current state."""

    def __init__(
        self,
        event_id: int | None,
        current: str,
        target: str,
        reason: str | None = None,
    ):
        message = f"Cannot move event {event_id} from {current} to {target}"
        if reason:
            message += f": {reason}"
        super().__init__(
            code=ErrorCode.INVALID_TRANSITION,
            message=message,
            details={
                "eventId": event_id,
                "current": current,
                "target": target,
                "reason": reason,
            },
        )


class NotFoundError(EventCoreError):
    """Raised when an event, entry, match or giveaway does not exist."""

    def __init__(self, kind: str, entity_id: Any):
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{kind} not found: {entity_id}",
            details={"kind": kind, "id": entity_id},
        )


# =============================================================================
# Bracket Errors
# =============================================================================


class AlreadyResolvedError(EventCoreError):
    """Raised when a winner is submitted for a match that is already resolved."""

    def __init__(self, match_id: int, winner_id: int | None):
        super().__init__(
            code=ErrorCode.ALREADY_RESOLVED,
            message=f"Match {match_id} is already resolved",
            details={"matchId": match_id, "winnerId": winner_id},
        )


class InvalidWinnerError(EventCoreError):
    """Raised when the submitted winner is not one of the match's two players."""

    def __init__(
        self,
        match_id: int,
        winner_id: int,
        player_a_id: int | None,
        player_b_id: int | None,
    ):
        if player_a_id is None or player_b_id is None:
            message = f"Match {match_id} does not have both players yet"
        else:
            message = f"Entry {winner_id} is not playing in match {match_id}"
        super().__init__(
            code=ErrorCode.INVALID_WINNER,
            message=message,
            details={
                "matchId": match_id,
                "winnerId": winner_id,
                "playerAId": player_a_id,
                "playerBId": player_b_id,
            },
        )


class BracketIntegrityError(EventCoreError):
    """Raised when a generated bracket violates its structural invariants."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.BRACKET_INTEGRITY,
            message=message,
            details=details,
            recoverable=False,
        )


# =============================================================================
# Bonus Hunt Errors
# =============================================================================


class QueueEmptyError(EventCoreError):
    """Raised when there is no current entry to resolve."""

    def __init__(self, event_id: int):
        super().__init__(
            code=ErrorCode.QUEUE_EMPTY,
            message=f"Bonus hunt {event_id} has no current entry",
            details={"eventId": event_id},
        )


class InvalidPayoutError(EventCoreError):
    """Raised when a payout is negative or set on an entry that did not bonus."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.INVALID_PAYOUT,
            message=message,
            details=details,
        )


# =============================================================================
# Entry Errors
# =============================================================================


class InvalidEntryError(EventCoreError):
    """Raised when an entry request fails validation."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.INVALID_ENTRY,
            message=message,
            details=details,
        )


class DuplicateEntryError(EventCoreError):
    """Raised when a user tries to enter the same aggregate twice."""

    def __init__(self, kind: str, aggregate_id: int, user_id: str):
        super().__init__(
            code=ErrorCode.DUPLICATE_ENTRY,
            message=f"User already entered this {kind}",
            details={"kind": kind, "id": aggregate_id, "userId": user_id},
        )


class EntryLimitReachedError(EventCoreError):
    """Raised when a giveaway has reached its maximum number of entries."""

    def __init__(self, giveaway_id: int, max_entries: int):
        super().__init__(
            code=ErrorCode.ENTRY_LIMIT_REACHED,
            message=f"Giveaway {giveaway_id} is full ({max_entries} entries)",
            details={"giveawayId": giveaway_id, "maxEntries": max_entries},
        )


class RequirementNotMetError(EventCoreError):
    """Raised when a giveaway requirement is not satisfied."""

    def __init__(
        self,
        requirement_type: str,
        details: dict[str, Any] | None = None,
    ):
        self.requirement_type = requirement_type
        super().__init__(
            code=ErrorCode.REQUIREMENT_NOT_MET,
            message=f"Requirement not met: {requirement_type}",
            details={"requirementType": requirement_type, **(details or {})},
        )


class EventEndedError(EventCoreError):
    """Raised when a giveaway is inactive or past its end time."""

    def __init__(self, giveaway_id: int):
        super().__init__(
            code=ErrorCode.EVENT_ENDED,
            message=f"Giveaway {giveaway_id} is not active",
            details={"giveawayId": giveaway_id},
        )


# =============================================================================
# Giveaway Draw Errors
# =============================================================================


class WinnerAlreadyPickedError(EventCoreError):
    """Raised when a winner has already been drawn for a giveaway."""

    def __init__(self, giveaway_id: int, winner_id: str | None):
        super().__init__(
            code=ErrorCode.WINNER_ALREADY_PICKED,
            message=f"Giveaway {giveaway_id} already has a winner",
            details={"giveawayId": giveaway_id, "winnerId": winner_id},
        )


class NoEntriesError(EventCoreError):
    """Raised when drawing a winner from a giveaway without entries."""

    def __init__(self, giveaway_id: int):
        super().__init__(
            code=ErrorCode.NO_ENTRIES,
            message=f"Giveaway {giveaway_id} has no entries",
            details={"giveawayId": giveaway_id},
        )


class NotEndedError(EventCoreError):
    """Raised when drawing a winner before the giveaway has ended."""

    def __init__(self, giveaway_id: int, ends_at: str):
        super().__init__(
            code=ErrorCode.NOT_ENDED,
            message=f"Giveaway {giveaway_id} has not ended yet",
            details={"giveawayId": giveaway_id, "endsAt": ends_at},
        )


# =============================================================================
# Infrastructure Errors
# =============================================================================


class StorageUnavailableError(EventCoreError):
    """Raised on transient storage failures. Safe for the caller to retry."""

    def __init__(self, message: str = "Storage temporarily unavailable"):
        super().__init__(
            code=ErrorCode.STORAGE_UNAVAILABLE,
            message=message,
            recoverable=True,
        )


class LockUnavailableError(EventCoreError):
    """Raised when an aggregate lock could not be acquired in time."""

    def __init__(self, lock_key: str, timeout_ms: int):
        super().__init__(
            code=ErrorCode.LOCK_UNAVAILABLE,
            message=f"Failed to acquire lock {lock_key} within {timeout_ms}ms",
            details={"lockKey": lock_key, "timeoutMs": timeout_ms},
            recoverable=True,
        )
