"""
Bonus hunt queue.

After lock every entry holds a shuffled ``position``. Exactly one entry is
``current`` until the queue is exhausted; the others are ``waiting`` and are
promoted lowest position first. Each step is two compare-and-swaps in one
transaction:

    current -> bonused | no_bonus
    waiting -> current   (lowest position)
"""

from decimal import Decimal
from typing import Optional

from streamcore.engine.provably_fair import FairSelector
from streamcore.events.models import (
    BonusHuntSummary,
    EntryStatus,
    EventSnapshot,
    EventStatus,
    EventType,
    StreamEvent,
    StreamEventEntry,
    is_money,
)
from streamcore.events.state import load_snapshot, summarize_bonus_hunt
from streamcore.logging_config import aggregate_context, get_logger
from streamcore.repositories.base import Repository, UnitOfWork
from streamcore.services.audit import Actor, record_audit
from streamcore.utils.distributed_lock import AggregateGuard, AggregateLockManager
from streamcore.utils.errors import (
    InvalidEntryError,
    InvalidPayoutError,
    InvalidTransitionError,
    NotFoundError,
    QueueEmptyError,
    StorageUnavailableError,
)

logger = get_logger(__name__)


def _validate_payout(payout: Decimal) -> Decimal:
    payout = Decimal(payout)
    if not is_money(payout) or payout < 0:
        raise InvalidPayoutError(
            "Payout must be a non-negative amount in whole cents",
            details={"payout": str(payout)},
        )
    return payout


class BonusHuntQueue:
    """FIFO "current slot" workflow for bonus-hunt events."""

    def __init__(
        self,
        repository: Repository,
        lock_manager: Optional[AggregateLockManager] = None,
    ):
        self.repository = repository
        self.guard = AggregateGuard(repository, lock_manager)

    async def arrange(
        self,
        uow: UnitOfWork,
        event: StreamEvent,
        entries: list[StreamEventEntry],
        seed: str,
    ) -> list[StreamEventEntry]:
        """Shuffle entries into queue order inside the lock transaction."""
        order = FairSelector.shuffle(seed, entries)
        arranged = []
        for position, entry in enumerate(order):
            entry.position = position
            entry.status = EntryStatus.CURRENT if position == 0 else EntryStatus.WAITING
            entry.payout = None
            arranged.append(await uow.put_entry(entry))

        logger.info(
            "bonus_hunt_arranged",
            event_id=event.id,
            entries=len(arranged),
            current_entry_id=arranged[0].id if arranged else None,
        )
        return arranged

    async def mark_bonused(
        self,
        actor: Actor,
        event_id: int,
        payout: Decimal,
    ) -> EventSnapshot:
        """Current entry hit its bonus with ``payout``; advance the queue."""
        payout = _validate_payout(payout)
        return await self._advance(actor, event_id, EntryStatus.BONUSED, payout)

    async def mark_no_bonus(self, actor: Actor, event_id: int) -> EventSnapshot:
        """Current entry did not bonus; advance the queue."""
        return await self._advance(actor, event_id, EntryStatus.NO_BONUS, None)

    async def _advance(
        self,
        actor: Actor,
        event_id: int,
        outcome: EntryStatus,
        payout: Optional[Decimal],
    ) -> EventSnapshot:
        with aggregate_context(event_id=event_id):
            async with self.guard.event(event_id) as uow:
                await self._load_play_phase_event(uow, event_id, "advance_queue")

                entries = await uow.list_entries(event_id)
                current = next((e for e in entries if e.status == EntryStatus.CURRENT), None)
                if current is None:
                    raise QueueEmptyError(event_id)

                if not await uow.compare_and_set_entry_status(
                    current.id, EntryStatus.CURRENT, outcome, payout
                ):
                    raise QueueEmptyError(event_id)

                waiting = sorted(
                    (e for e in entries if e.status == EntryStatus.WAITING),
                    key=lambda e: (e.position if e.position is not None else 0, e.id),
                )
                promoted = None
                if waiting:
                    promoted = waiting[0]
                    if not await uow.compare_and_set_entry_status(
                        promoted.id, EntryStatus.WAITING, EntryStatus.CURRENT
                    ):
                        # Rolls back the terminal status set above
                        raise StorageUnavailableError(
                            f"Queue changed concurrently for event {event_id}"
                        )

                await record_audit(
                    uow,
                    actor,
                    f"bonus_hunt.{outcome.value}",
                    "stream_event_entry",
                    current.id,
                    event_id=event_id,
                    payout=str(payout) if payout is not None else None,
                    promoted_entry_id=promoted.id if promoted else None,
                )
                return await load_snapshot(uow, event_id)

    async def update_payout(
        self,
        actor: Actor,
        entry_id: int,
        payout: Decimal,
    ) -> EventSnapshot:
        """Correct the payout of an entry that already bonused."""
        payout = _validate_payout(payout)

        event_id = await self.repository.locate_entry(entry_id)
        if event_id is None:
            raise NotFoundError("entry", entry_id)

        with aggregate_context(event_id=event_id, entry_id=entry_id):
            async with self.guard.event(event_id) as uow:
                await self._load_play_phase_event(
                    uow, event_id, "update_payout", allow_completed=True
                )

                entry = await uow.get_entry(entry_id)
                if entry is None:
                    raise NotFoundError("entry", entry_id)
                if entry.status != EntryStatus.BONUSED:
                    raise InvalidPayoutError(
                        "Only bonused entries carry a payout",
                        details={"entryId": entry_id, "status": entry.status.value},
                    )

                previous = entry.payout
                await uow.compare_and_set_entry_status(
                    entry_id, EntryStatus.BONUSED, EntryStatus.BONUSED, payout
                )
                await record_audit(
                    uow,
                    actor,
                    "bonus_hunt.update_payout",
                    "stream_event_entry",
                    entry_id,
                    event_id=entry.event_id,
                    previous_payout=str(previous) if previous is not None else None,
                    payout=str(payout),
                )
                return await load_snapshot(uow, entry.event_id)

    async def summary(self, event_id: int) -> BonusHuntSummary:
        """Totals computed from the entries as they are now."""
        async with self.repository.event_scope(None) as uow:
            event = await uow.get_event(event_id)
            if event is None:
                raise NotFoundError("event", event_id)
            if event.type != EventType.BONUS_HUNT:
                raise InvalidEntryError(
                    "Event is not a bonus hunt",
                    details={"eventId": event_id, "type": event.type.value},
                )
            entries = await uow.list_entries(event_id)
        return summarize_bonus_hunt(event, entries)

    @staticmethod
    async def _load_play_phase_event(
        uow: UnitOfWork,
        event_id: int,
        operation: str,
        allow_completed: bool = False,
    ) -> StreamEvent:
        event = await uow.get_event(event_id)
        if event is None:
            raise NotFoundError("event", event_id)
        if event.type != EventType.BONUS_HUNT:
            raise InvalidEntryError(
                "Event is not a bonus hunt",
                details={"eventId": event_id, "type": event.type.value},
            )
        allowed = event.is_play_phase or (
            allow_completed and event.status == EventStatus.COMPLETED
        )
        if not allowed:
            raise InvalidTransitionError(
                event_id,
                event.status.value,
                operation,
                reason="bonus hunt is not in a play phase",
            )
        return event
