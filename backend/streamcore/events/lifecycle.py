"""
Stream event lifecycle.

    draft ──> open ──> locked ──> in_progress ──> completed
                          │                           ^
                          └───────────────────────────┘

Every transition reads the current status, validates it and writes the new
status plus its side-effect rows (bracket matches, queue order) in one unit
of work serialized on the event. A second concurrent ``lock`` therefore sees
``locked`` and fails with InvalidTransitionError.
"""

from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import Optional

from streamcore.engine.provably_fair import FairSelector, SeedFactory
from streamcore.events.bonus_hunt import BonusHuntQueue
from streamcore.events.bracket import ALLOWED_BRACKET_SIZES, BracketEngine
from streamcore.events.models import (
    EventSnapshot,
    EventStatus,
    EventType,
    PublicEventView,
    StreamEvent,
    StreamEventEntry,
    is_money,
    utcnow,
)
from streamcore.events.state import load_snapshot
from streamcore.logging_config import aggregate_context
from streamcore.repositories.base import Repository, UnitOfWork
from streamcore.services.audit import Actor, record_audit
from streamcore.utils.distributed_lock import AggregateGuard, AggregateLockManager
from streamcore.utils.errors import (
    DuplicateEntryError,
    InvalidEntryError,
    InvalidTransitionError,
    NotFoundError,
)

TRANSITIONS: dict[EventStatus, frozenset[EventStatus]] = {
    EventStatus.DRAFT: frozenset({EventStatus.OPEN}),
    EventStatus.OPEN: frozenset({EventStatus.LOCKED}),
    EventStatus.LOCKED: frozenset({EventStatus.IN_PROGRESS, EventStatus.COMPLETED}),
    EventStatus.IN_PROGRESS: frozenset({EventStatus.COMPLETED}),
    EventStatus.COMPLETED: frozenset(),
}

EDITABLE_STATUSES = frozenset({EventStatus.DRAFT, EventStatus.OPEN})

Clock = Callable[[], datetime]


def can_transition(current: EventStatus, target: EventStatus) -> bool:
    return target in TRANSITIONS[current]


def _require_transition(event: StreamEvent, target: EventStatus) -> None:
    if not can_transition(event.status, target):
        raise InvalidTransitionError(event.id, event.status.value, target.value)


def _validate_settings(
    event_type: EventType,
    max_players: Optional[int],
    starting_balance: Optional[Decimal],
) -> None:
    if event_type == EventType.TOURNAMENT and max_players not in ALLOWED_BRACKET_SIZES:
        raise InvalidEntryError(
            f"Tournament size must be one of {ALLOWED_BRACKET_SIZES}",
            details={"maxPlayers": max_players},
        )
    if starting_balance is not None and (
        not is_money(Decimal(starting_balance)) or starting_balance < 0
    ):
        raise InvalidEntryError(
            "Starting balance must be a non-negative amount in whole cents",
            details={"startingBalance": str(starting_balance)},
        )


class EventLifecycle:
    """
    Admin and user operations on stream events.

    Structural work at lock is delegated to BracketEngine (tournaments) and
    BonusHuntQueue (bonus hunts), both sharing this object's repository.
    """

    def __init__(
        self,
        repository: Repository,
        lock_manager: Optional[AggregateLockManager] = None,
        seed_factory: SeedFactory = FairSelector.generate_seed,
        clock: Clock = utcnow,
    ):
        self.repository = repository
        self.guard = AggregateGuard(repository, lock_manager)
        self.bracket = BracketEngine(repository, lock_manager)
        self.bonus_hunt = BonusHuntQueue(repository, lock_manager)
        self._seed_factory = seed_factory
        self._clock = clock

    # =========================================================================
    # Setup
    # =========================================================================

    async def create_event(
        self,
        actor: Actor,
        event_type: EventType,
        title: str,
        max_players: Optional[int] = None,
        starting_balance: Optional[Decimal] = None,
        is_public: bool = True,
    ) -> EventSnapshot:
        title = (title or "").strip()
        if not title:
            raise InvalidEntryError("Title is required")
        _validate_settings(event_type, max_players, starting_balance)

        now = self._clock()
        event = StreamEvent(
            type=event_type,
            title=title,
            max_players=max_players if event_type == EventType.TOURNAMENT else None,
            starting_balance=starting_balance if event_type == EventType.BONUS_HUNT else None,
            is_public=is_public,
            created_at=now,
            updated_at=now,
        )

        async with self.guard.event(None) as uow:
            event = await uow.put_event(event)
            await record_audit(
                uow,
                actor,
                "stream_event.create",
                "stream_event",
                event.id,
                type=event.type.value,
                title=event.title,
            )
            return await load_snapshot(uow, event.id)

    async def update_event(
        self,
        actor: Actor,
        event_id: int,
        title: Optional[str] = None,
        max_players: Optional[int] = None,
        starting_balance: Optional[Decimal] = None,
        is_public: Optional[bool] = None,
    ) -> EventSnapshot:
        """Edit settings while the event is still draft or open."""
        with aggregate_context(event_id=event_id):
            async with self.guard.event(event_id) as uow:
                event = await self._get_event(uow, event_id)
                if event.status not in EDITABLE_STATUSES:
                    raise InvalidTransitionError(
                        event_id,
                        event.status.value,
                        "update",
                        reason="settings are frozen after lock",
                    )

                changes = {}
                if title is not None:
                    if not title.strip():
                        raise InvalidEntryError("Title is required")
                    event.title = title.strip()
                    changes["title"] = event.title
                if max_players is not None and event.type == EventType.TOURNAMENT:
                    _validate_settings(event.type, max_players, None)
                    entries = await uow.list_entries(event_id)
                    if len(entries) > max_players:
                        raise InvalidEntryError(
                            "Event already has more entries than the new size",
                            details={"entries": len(entries), "maxPlayers": max_players},
                        )
                    event.max_players = max_players
                    changes["max_players"] = max_players
                if starting_balance is not None and event.type == EventType.BONUS_HUNT:
                    _validate_settings(event.type, None, starting_balance)
                    event.starting_balance = starting_balance
                    changes["starting_balance"] = str(starting_balance)
                if is_public is not None:
                    event.is_public = is_public
                    changes["is_public"] = is_public

                event.updated_at = self._clock()
                await uow.put_event(event)
                await record_audit(
                    uow, actor, "stream_event.update", "stream_event", event_id, **changes
                )
                return await load_snapshot(uow, event_id)

    # =========================================================================
    # Entries
    # =========================================================================

    async def add_entry(
        self,
        actor: Actor,
        event_id: int,
        display_name: str,
        slot_choice: str,
        category: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> EventSnapshot:
        """Admin adds an entry on behalf of a viewer."""
        with aggregate_context(event_id=event_id):
            async with self.guard.event(event_id) as uow:
                event = await self._get_event(uow, event_id)
                entry = await self._insert_entry(
                    uow, event, display_name, slot_choice, category, user_id
                )
                await record_audit(
                    uow,
                    actor,
                    "stream_event.add_entry",
                    "stream_event_entry",
                    entry.id,
                    event_id=event_id,
                    display_name=entry.display_name,
                )
                return await load_snapshot(uow, event_id)

    async def enter_event(
        self,
        actor: Actor,
        event_id: int,
        display_name: str,
        slot_choice: str,
    ) -> EventSnapshot:
        """Authenticated user enters a public, open event."""
        with aggregate_context(event_id=event_id, user_id=actor.user_id):
            async with self.guard.event(event_id) as uow:
                event = await self._get_event(uow, event_id)
                if not event.is_public:
                    raise NotFoundError("event", event_id)
                if event.type == EventType.GUESS_BALANCE:
                    raise InvalidEntryError(
                        "Guess-the-balance entries are not supported",
                        details={"eventId": event_id},
                    )

                entries = await uow.list_entries(event_id)
                if any(e.user_id == actor.user_id for e in entries):
                    raise DuplicateEntryError("event", event_id, actor.user_id)

                entry = await self._insert_entry(
                    uow, event, display_name, slot_choice, None, actor.user_id
                )
                await record_audit(
                    uow,
                    actor,
                    "stream_event.enter",
                    "stream_event_entry",
                    entry.id,
                    event_id=event_id,
                )
                return await load_snapshot(uow, event_id)

    async def remove_entry(self, actor: Actor, entry_id: int) -> EventSnapshot:
        """Remove an entry while entries are still open."""
        event_id = await self.repository.locate_entry(entry_id)
        if event_id is None:
            raise NotFoundError("entry", entry_id)

        with aggregate_context(event_id=event_id, entry_id=entry_id):
            async with self.guard.event(event_id) as uow:
                event = await self._get_event(uow, event_id)
                if event.status not in EDITABLE_STATUSES:
                    raise InvalidTransitionError(
                        event_id,
                        event.status.value,
                        "remove_entry",
                        reason="entries are fixed after lock",
                    )
                if await uow.get_entry(entry_id) is None:
                    raise NotFoundError("entry", entry_id)

                await uow.delete_entry(entry_id)
                await record_audit(
                    uow,
                    actor,
                    "stream_event.remove_entry",
                    "stream_event_entry",
                    entry_id,
                    event_id=event_id,
                )
                return await load_snapshot(uow, event_id)

    async def _insert_entry(
        self,
        uow: UnitOfWork,
        event: StreamEvent,
        display_name: str,
        slot_choice: str,
        category: Optional[str],
        user_id: Optional[str],
    ) -> StreamEventEntry:
        if event.status != EventStatus.OPEN:
            raise InvalidTransitionError(
                event.id,
                event.status.value,
                "add_entry",
                reason="entries are only accepted while open",
            )

        display_name = (display_name or "").strip()
        slot_choice = (slot_choice or "").strip()
        if not display_name:
            raise InvalidEntryError("Display name is required")
        if not slot_choice:
            raise InvalidEntryError("Slot choice is required")

        if event.type == EventType.TOURNAMENT:
            entries = await uow.list_entries(event.id)
            if len(entries) >= event.max_players:
                raise InvalidEntryError(
                    "Tournament is full",
                    details={"eventId": event.id, "maxPlayers": event.max_players},
                )

        return await uow.put_entry(
            StreamEventEntry(
                event_id=event.id,
                display_name=display_name,
                slot_choice=slot_choice,
                category=(category or "").strip() or None,
                user_id=user_id,
                created_at=self._clock(),
            )
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    async def open_entries(self, actor: Actor, event_id: int) -> EventSnapshot:
        return await self._simple_transition(actor, event_id, EventStatus.OPEN, "stream_event.open")

    async def lock(self, actor: Actor, event_id: int) -> EventSnapshot:
        """
        Close entries and build the bracket or the bonus-hunt queue.

        A fresh seed is drawn at this moment and stored on the event with
        its sha256, so the shuffle can be recomputed afterwards.
        """
        with aggregate_context(event_id=event_id):
            async with self.guard.event(event_id) as uow:
                event = await self._get_event(uow, event_id)
                _require_transition(event, EventStatus.LOCKED)

                entries = await uow.list_entries(event_id)
                if not entries:
                    raise InvalidTransitionError(
                        event_id,
                        event.status.value,
                        EventStatus.LOCKED.value,
                        reason="at least one entry is required",
                    )
                if event.type == EventType.TOURNAMENT and len(entries) > event.max_players:
                    raise InvalidTransitionError(
                        event_id,
                        event.status.value,
                        EventStatus.LOCKED.value,
                        reason=f"{len(entries)} entries exceed {event.max_players} players",
                    )

                seed = None
                if event.type in (EventType.TOURNAMENT, EventType.BONUS_HUNT):
                    seed = self._seed_factory()
                    event.seed = seed
                    event.seed_hash = FairSelector.hash_seed(seed)

                if event.type == EventType.TOURNAMENT:
                    await self.bracket.generate(uow, event, entries, seed)
                elif event.type == EventType.BONUS_HUNT:
                    await self.bonus_hunt.arrange(uow, event, entries, seed)

                now = self._clock()
                event.status = EventStatus.LOCKED
                event.locked_at = now
                event.updated_at = now
                await uow.put_event(event)

                await record_audit(
                    uow,
                    actor,
                    "stream_event.lock",
                    "stream_event",
                    event_id,
                    type=event.type.value,
                    entries=len(entries),
                    seed_hash=event.seed_hash,
                )
                return await load_snapshot(uow, event_id)

    async def start(self, actor: Actor, event_id: int) -> EventSnapshot:
        return await self._simple_transition(
            actor, event_id, EventStatus.IN_PROGRESS, "stream_event.start"
        )

    async def complete(self, actor: Actor, event_id: int) -> EventSnapshot:
        return await self._simple_transition(
            actor, event_id, EventStatus.COMPLETED, "stream_event.complete"
        )

    async def delete(self, actor: Actor, event_id: int) -> None:
        """Hard delete with entries and matches. Completed events are kept."""
        with aggregate_context(event_id=event_id):
            async with self.guard.event(event_id) as uow:
                event = await self._get_event(uow, event_id)
                if event.status == EventStatus.COMPLETED:
                    raise InvalidTransitionError(
                        event_id,
                        event.status.value,
                        "deleted",
                        reason="completed events are kept for the record",
                    )
                await uow.delete_event(event_id)
                await record_audit(
                    uow,
                    actor,
                    "stream_event.delete",
                    "stream_event",
                    event_id,
                    status=event.status.value,
                )

    async def _simple_transition(
        self,
        actor: Actor,
        event_id: int,
        target: EventStatus,
        action: str,
    ) -> EventSnapshot:
        with aggregate_context(event_id=event_id):
            async with self.guard.event(event_id) as uow:
                event = await self._get_event(uow, event_id)
                _require_transition(event, target)

                previous = event.status
                event.status = target
                event.updated_at = self._clock()
                await uow.put_event(event)
                await record_audit(
                    uow,
                    actor,
                    action,
                    "stream_event",
                    event_id,
                    previous=previous.value,
                    status=target.value,
                )
                return await load_snapshot(uow, event_id)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_event_state(self, event_id: int) -> EventSnapshot:
        async with self.repository.event_scope(None) as uow:
            return await load_snapshot(uow, event_id)

    async def list_public_events(
        self,
        user_id: Optional[str] = None,
        event_type: Optional[EventType] = None,
    ) -> list[PublicEventView]:
        """Non-draft public events as a viewer sees them."""
        events = await self.repository.list_events(event_type)
        views = []
        async with self.repository.event_scope(None) as uow:
            for event in events:
                if not event.is_public or event.status == EventStatus.DRAFT:
                    continue
                entries = await uow.list_entries(event.id)
                has_entered = user_id is not None and any(
                    e.user_id == user_id for e in entries
                )
                is_full = (
                    event.type == EventType.TOURNAMENT
                    and len(entries) >= (event.max_players or 0)
                )
                can_enter = (
                    user_id is not None
                    and event.status == EventStatus.OPEN
                    and event.type != EventType.GUESS_BALANCE
                    and not has_entered
                    and not is_full
                )
                views.append(
                    PublicEventView(
                        event=event,
                        entries_count=len(entries),
                        has_entered=has_entered,
                        can_enter=can_enter,
                    )
                )
        return views

    @staticmethod
    async def _get_event(uow: UnitOfWork, event_id: int) -> StreamEvent:
        event = await uow.get_event(event_id)
        if event is None:
            raise NotFoundError("event", event_id)
        return event
