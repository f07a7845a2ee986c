"""Read-side projections of an event.

Nothing here is stored: the bonus-hunt rollup and the snapshot are computed
from the current rows every time they are read.
"""

from decimal import Decimal

from streamcore.events.models import (
    EntryStatus,
    EventSnapshot,
    EventType,
    StreamEvent,
    StreamEventEntry,
    BonusHuntSummary,
)
from streamcore.repositories.base import UnitOfWork
from streamcore.utils.errors import NotFoundError

ZERO = Decimal("0")


def summarize_bonus_hunt(
    event: StreamEvent,
    entries: list[StreamEventEntry],
) -> BonusHuntSummary:
    """totalPayout = sum of bonused payouts; profit = totalPayout - startingBalance."""
    starting_balance = event.starting_balance if event.starting_balance is not None else ZERO

    total_payout = ZERO
    bonused = no_bonus = waiting = 0
    current_entry_id = None

    for entry in entries:
        if entry.status == EntryStatus.BONUSED:
            bonused += 1
            total_payout += entry.payout or ZERO
        elif entry.status == EntryStatus.NO_BONUS:
            no_bonus += 1
        elif entry.status == EntryStatus.WAITING:
            waiting += 1
        elif entry.status == EntryStatus.CURRENT:
            current_entry_id = entry.id

    return BonusHuntSummary(
        starting_balance=starting_balance,
        total_payout=total_payout,
        profit=total_payout - starting_balance,
        bonused_count=bonused,
        no_bonus_count=no_bonus,
        waiting_count=waiting,
        current_entry_id=current_entry_id,
    )


async def load_snapshot(uow: UnitOfWork, event_id: int) -> EventSnapshot:
    """Full current state of an event as seen inside ``uow``."""
    event = await uow.get_event(event_id)
    if event is None:
        raise NotFoundError("event", event_id)

    entries = await uow.list_entries(event_id)
    snapshot = EventSnapshot(event=event, entries=entries)

    if event.type == EventType.TOURNAMENT:
        snapshot.matches = await uow.list_matches(event_id)
    elif event.type == EventType.BONUS_HUNT:
        snapshot.entries = sorted(
            entries,
            key=lambda e: (e.position is None, e.position or 0, e.id),
        )
        snapshot.bonus_hunt = summarize_bonus_hunt(event, entries)

    return snapshot
