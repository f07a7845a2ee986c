"""Repository contract for the live-event core.

The core never talks to storage directly. Every mutating operation opens a
unit of work scoped to one aggregate (an event or a giveaway); all writes in
that scope commit together on clean exit and roll back on any exception.
Two scopes on the same aggregate never run concurrently.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from decimal import Decimal
from typing import Optional

from streamcore.events.models import (
    EntryStatus,
    EventType,
    StreamEvent,
    StreamEventEntry,
    TournamentMatch,
)
from streamcore.giveaways.models import (
    Giveaway,
    GiveawayEntry,
    GiveawayRequirement,
    LinkedCasinoAccount,
    WinnerDraw,
)
from streamcore.services.audit import AuditRecord


class UnitOfWork(ABC):
    """Transactional view of one aggregate."""

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_event(self, event_id: int) -> Optional[StreamEvent]:
        ...

    @abstractmethod
    async def put_event(self, event: StreamEvent) -> StreamEvent:
        """Insert (id is None) or update. Returns the stored event with its id."""

    @abstractmethod
    async def delete_event(self, event_id: int) -> None:
        """Hard delete, cascading entries and matches."""

    @abstractmethod
    async def list_entries(self, event_id: int) -> list[StreamEventEntry]:
        """Entries ordered by created_at, then id."""

    @abstractmethod
    async def get_entry(self, entry_id: int) -> Optional[StreamEventEntry]:
        ...

    @abstractmethod
    async def put_entry(self, entry: StreamEventEntry) -> StreamEventEntry:
        ...

    @abstractmethod
    async def delete_entry(self, entry_id: int) -> None:
        ...

    @abstractmethod
    async def compare_and_set_entry_status(
        self,
        entry_id: int,
        expected: EntryStatus,
        new: EntryStatus,
        payout: Optional[Decimal] = None,
    ) -> bool:
        """Set status (and payout) only if the stored status is ``expected``.

        Returns:
            True if the row was updated
        """

    @abstractmethod
    async def get_match(self, match_id: int) -> Optional[TournamentMatch]:
        ...

    @abstractmethod
    async def put_match(self, match: TournamentMatch) -> TournamentMatch:
        ...

    @abstractmethod
    async def list_matches(self, event_id: int) -> list[TournamentMatch]:
        """Matches ordered by (round, match_index)."""

    @abstractmethod
    async def delete_matches(self, event_id: int) -> None:
        ...

    # ------------------------------------------------------------------
    # Giveaways
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_giveaway(self, giveaway_id: int) -> Optional[Giveaway]:
        ...

    @abstractmethod
    async def put_giveaway(self, giveaway: Giveaway) -> Giveaway:
        ...

    @abstractmethod
    async def list_requirements(self, giveaway_id: int) -> list[GiveawayRequirement]:
        ...

    @abstractmethod
    async def replace_requirements(
        self,
        giveaway_id: int,
        requirements: list[GiveawayRequirement],
    ) -> None:
        ...

    @abstractmethod
    async def list_giveaway_entries(self, giveaway_id: int) -> list[GiveawayEntry]:
        """Entries ordered by created_at ascending, then id.

        This ordering is part of the draw's verification contract.
        """

    @abstractmethod
    async def count_giveaway_entries(self, giveaway_id: int) -> int:
        ...

    @abstractmethod
    async def has_giveaway_entry(self, giveaway_id: int, user_id: str) -> bool:
        ...

    @abstractmethod
    async def put_giveaway_entry(self, entry: GiveawayEntry) -> GiveawayEntry:
        """Insert an entry.

        Raises:
            DuplicateEntryError: (giveaway_id, user_id) already exists
        """

    @abstractmethod
    async def compare_and_set_winner(self, giveaway_id: int, draw: WinnerDraw) -> bool:
        """Write the draw only if no winner is set yet. Also deactivates the giveaway.

        Returns:
            True if this call recorded the winner
        """

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_audit_record(self, record: AuditRecord) -> None:
        ...


class Repository(ABC):
    """Entry point to storage: transactional scopes plus a few plain reads."""

    @abstractmethod
    def event_scope(
        self, event_id: Optional[int]
    ) -> AbstractAsyncContextManager[UnitOfWork]:
        """Open a unit of work serialized on one event (None: new event)."""

    @abstractmethod
    def giveaway_scope(
        self, giveaway_id: Optional[int]
    ) -> AbstractAsyncContextManager[UnitOfWork]:
        """Open a unit of work serialized on one giveaway (None: new giveaway)."""

    @abstractmethod
    async def list_events(self, event_type: Optional[EventType] = None) -> list[StreamEvent]:
        ...

    @abstractmethod
    async def locate_match(self, match_id: int) -> Optional[int]:
        """Event id owning a match, or None."""

    @abstractmethod
    async def locate_entry(self, entry_id: int) -> Optional[int]:
        """Event id owning an entry, or None."""

    @abstractmethod
    async def list_giveaways(self, active_only: bool = False) -> list[Giveaway]:
        ...

    @abstractmethod
    async def list_due_giveaways(self, now: datetime, limit: int) -> list[Giveaway]:
        """Active giveaways past ends_at without a winner, oldest first."""


class IdentityProvider(ABC):
    """Identity collaborator: a user's linked casino accounts."""

    @abstractmethod
    async def linked_accounts(self, user_id: str) -> list[LinkedCasinoAccount]:
        ...
