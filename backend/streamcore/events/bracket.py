"""
Single-elimination bracket engine.

Bracket layout for max_players = 8 (3 rounds, 7 matches):

    round 1        round 2        round 3
    (1,0) ─┐
           ├─ (2,0) ─┐
    (1,1) ─┘         │
                     ├─ (3,0)
    (1,2) ─┐         │
           ├─ (2,1) ─┘
    (1,3) ─┘

The winner of (r, i) goes to (r+1, i // 2): slot A when i is even, slot B
when i is odd.

Byes:
- a match whose two slots are final and hold exactly one entrant resolves
  to that entrant without admin input, then propagates
- a match whose two slots are final and empty resolves with no winner
  ("dead"); its slot in the next round is final and empty
- a match with two entrants always waits for an admin decision

A slot is final in round 1 once the shuffled order is laid out, and in
later rounds once its feeder match is resolved.
"""

from typing import Optional

from streamcore.engine.provably_fair import FairSelector
from streamcore.events.models import (
    EntryStatus,
    EventSnapshot,
    EventStatus,
    EventType,
    MatchStatus,
    StreamEvent,
    StreamEventEntry,
    TournamentMatch,
)
from streamcore.events.state import load_snapshot
from streamcore.logging_config import aggregate_context, get_logger
from streamcore.repositories.base import Repository, UnitOfWork
from streamcore.services.audit import Actor, record_audit
from streamcore.utils.distributed_lock import AggregateGuard, AggregateLockManager
from streamcore.utils.errors import (
    AlreadyResolvedError,
    BracketIntegrityError,
    InvalidEntryError,
    InvalidTransitionError,
    InvalidWinnerError,
    NotFoundError,
)

logger = get_logger(__name__)

ALLOWED_BRACKET_SIZES = (4, 8, 16, 32)

Position = tuple[int, int]


def total_rounds(max_players: int) -> int:
    """log2(max_players) for an allowed bracket size."""
    if max_players not in ALLOWED_BRACKET_SIZES:
        raise InvalidEntryError(
            f"Bracket size must be one of {ALLOWED_BRACKET_SIZES}",
            details={"maxPlayers": max_players},
        )
    return max_players.bit_length() - 1


def matches_in_round(max_players: int, round_number: int) -> int:
    return max_players >> round_number


def _apply_bye_rule(match: TournamentMatch, slot_a_final: bool, slot_b_final: bool) -> bool:
    """Auto-resolve a match whose outcome needs no admin. Returns True if resolved."""
    if match.player_a_id is not None and match.player_b_id is not None:
        return False
    if not (slot_a_final and slot_b_final):
        return False

    match.winner_id = match.player_a_id if match.player_a_id is not None else match.player_b_id
    match.status = MatchStatus.RESOLVED
    return True


def _feeders(
    by_position: dict[Position, TournamentMatch],
    match: TournamentMatch,
) -> tuple[TournamentMatch, TournamentMatch]:
    prev = match.round - 1
    return (
        by_position[(prev, match.match_index * 2)],
        by_position[(prev, match.match_index * 2 + 1)],
    )


def propagate(
    by_position: dict[Position, TournamentMatch],
    resolved: TournamentMatch,
    rounds: int,
) -> list[TournamentMatch]:
    """
    Carry a resolved match's outcome forward.

    Writes the winner into the next round's slot, then keeps going while
    the next match auto-resolves as a bye. Returns the matches it changed.
    """
    changed: list[TournamentMatch] = []
    current = resolved

    while current.is_resolved and current.round < rounds:
        next_match = by_position[(current.round + 1, current.match_index // 2)]
        if next_match.is_resolved:
            raise BracketIntegrityError(
                "Next-round match resolved before its feeder",
                details={"matchId": next_match.id, "feederId": current.id},
            )

        if current.match_index % 2 == 0:
            next_match.player_a_id = current.winner_id
        else:
            next_match.player_b_id = current.winner_id
        changed.append(next_match)

        feeder_a, feeder_b = _feeders(by_position, next_match)
        if not _apply_bye_rule(next_match, feeder_a.is_resolved, feeder_b.is_resolved):
            break
        current = next_match

    return changed


def build_bracket(
    event_id: int,
    max_players: int,
    order: list[StreamEventEntry],
) -> list[TournamentMatch]:
    """
    Lay out every match for a shuffled entrant order.

    Pure: no storage, no randomness. Round 1 pairs order[2i] with
    order[2i+1]; byes are resolved and propagated before returning.
    """
    rounds = total_rounds(max_players)
    if not 1 <= len(order) <= max_players:
        raise InvalidEntryError(
            f"Tournament needs between 1 and {max_players} entries",
            details={"entries": len(order), "maxPlayers": max_players},
        )

    by_position: dict[Position, TournamentMatch] = {}
    for round_number in range(1, rounds + 1):
        for index in range(matches_in_round(max_players, round_number)):
            by_position[(round_number, index)] = TournamentMatch(
                event_id=event_id,
                round=round_number,
                match_index=index,
            )

    for index in range(matches_in_round(max_players, 1)):
        match = by_position[(1, index)]
        if 2 * index < len(order):
            match.player_a_id = order[2 * index].id
        if 2 * index + 1 < len(order):
            match.player_b_id = order[2 * index + 1].id

    for index in range(matches_in_round(max_players, 1)):
        match = by_position[(1, index)]
        if _apply_bye_rule(match, True, True):
            propagate(by_position, match, rounds)

    matches = sorted(by_position.values(), key=lambda m: m.position)
    check_integrity(matches, max_players)
    return matches


def check_integrity(matches: list[TournamentMatch], max_players: int) -> None:
    """Structural invariants of a single-elimination bracket."""
    expected = max_players - 1
    if len(matches) != expected:
        raise BracketIntegrityError(
            f"Bracket has {len(matches)} matches, expected {expected}",
            details={"matches": len(matches), "expected": expected},
        )

    rounds = total_rounds(max_players)
    for round_number in range(1, rounds + 1):
        count = sum(1 for m in matches if m.round == round_number)
        if count != matches_in_round(max_players, round_number):
            raise BracketIntegrityError(
                f"Round {round_number} has {count} matches",
                details={"round": round_number, "matches": count},
            )

    for match in matches:
        if match.winner_id is not None and match.winner_id not in (
            match.player_a_id,
            match.player_b_id,
        ):
            raise BracketIntegrityError(
                "Match winner is not one of its players",
                details={"round": match.round, "matchIndex": match.match_index},
            )


class BracketEngine:
    """Generates tournament brackets and records match results."""

    def __init__(
        self,
        repository: Repository,
        lock_manager: Optional[AggregateLockManager] = None,
    ):
        self.repository = repository
        self.guard = AggregateGuard(repository, lock_manager)

    async def generate(
        self,
        uow: UnitOfWork,
        event: StreamEvent,
        entries: list[StreamEventEntry],
        seed: str,
    ) -> list[TournamentMatch]:
        """
        Shuffle entrants and persist the full bracket.

        Runs inside the caller's lock transaction. Entries must be in
        stored order (created_at, id), which is part of the shuffle input.
        """
        if event.max_players is None:
            raise InvalidEntryError(
                "Tournament has no bracket size",
                details={"eventId": event.id},
            )

        await uow.delete_matches(event.id)

        order = FairSelector.shuffle(seed, entries)
        for position, entry in enumerate(order):
            entry.status = EntryStatus.SELECTED
            entry.position = position
            await uow.put_entry(entry)

        stored = []
        for match in build_bracket(event.id, event.max_players, order):
            stored.append(await uow.put_match(match))

        logger.info(
            "bracket_generated",
            event_id=event.id,
            entries=len(entries),
            max_players=event.max_players,
            matches=len(stored),
            byes=sum(1 for m in stored if m.round == 1 and m.is_resolved),
        )
        return stored

    async def submit_winner(
        self,
        actor: Actor,
        match_id: int,
        winner_id: int,
    ) -> EventSnapshot:
        """
        Record a match winner and propagate it.

        Raises:
            NotFoundError: unknown match
            InvalidTransitionError: event not in a play phase
            AlreadyResolvedError: match already has a result
            InvalidWinnerError: winner is not one of the two players
        """
        event_id = await self.repository.locate_match(match_id)
        if event_id is None:
            raise NotFoundError("match", match_id)

        with aggregate_context(event_id=event_id, match_id=match_id):
            async with self.guard.event(event_id) as uow:
                event = await uow.get_event(event_id)
                if event is None:
                    raise NotFoundError("event", event_id)
                if event.type != EventType.TOURNAMENT or not event.is_play_phase:
                    raise InvalidTransitionError(
                        event_id,
                        event.status.value,
                        "resolve_match",
                        reason="matches can only be resolved while the event is locked or in progress",
                    )

                match = await uow.get_match(match_id)
                if match is None:
                    raise NotFoundError("match", match_id)
                if match.is_resolved:
                    raise AlreadyResolvedError(match_id, match.winner_id)
                if (
                    match.player_a_id is None
                    or match.player_b_id is None
                    or winner_id not in (match.player_a_id, match.player_b_id)
                ):
                    raise InvalidWinnerError(
                        match_id, winner_id, match.player_a_id, match.player_b_id
                    )

                matches = await uow.list_matches(event_id)
                by_position = {m.position: m for m in matches}
                resolved = by_position[match.position]
                resolved.winner_id = winner_id
                resolved.status = MatchStatus.RESOLVED

                changed = [resolved]
                changed.extend(
                    propagate(by_position, resolved, total_rounds(event.max_players))
                )
                for changed_match in changed:
                    await uow.put_match(changed_match)

                await record_audit(
                    uow,
                    actor,
                    "bracket.submit_winner",
                    "tournament_match",
                    match_id,
                    event_id=event_id,
                    round=resolved.round,
                    match_index=resolved.match_index,
                    winner_id=winner_id,
                )
                return await load_snapshot(uow, event_id)
