"""In-memory repository.

Used by the test suite and for local runs without PostgreSQL. Behaves like
the SQL store where it matters to the core:

- one ``asyncio.Lock`` per aggregate serializes scopes on the same event or
  giveaway (the equivalent of ``SELECT ... FOR UPDATE`` on the root row)
- writes are staged and applied on clean exit, dropped on exception
- reads return copies, so callers cannot mutate stored state by accident
- every operation yields to the event loop, so concurrent tasks interleave
"""

import asyncio
import copy
import itertools
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

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
from streamcore.repositories.base import IdentityProvider, Repository, UnitOfWork
from streamcore.services.audit import AuditRecord, log_committed
from streamcore.utils.errors import DuplicateEntryError

_DELETED = object()

EVENTS = "events"
ENTRIES = "entries"
MATCHES = "matches"
GIVEAWAYS = "giveaways"
GIVEAWAY_ENTRIES = "giveaway_entries"
REQUIREMENTS = "requirements"


class _Store:
    """Committed state, one dict per table."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[int, Any]] = defaultdict(dict)
        self.sequences: dict[str, itertools.count] = defaultdict(lambda: itertools.count(1))
        self.audit_log: list[AuditRecord] = []

    def next_id(self, table: str) -> int:
        return next(self.sequences[table])


class InMemoryUnitOfWork(UnitOfWork):
    """Staged writes over a shared store."""

    def __init__(self, store: _Store):
        self._store = store
        self._staged: dict[tuple[str, int], Any] = {}
        self._audit: list[AuditRecord] = []

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def _get(self, table: str, row_id: int) -> Any:
        key = (table, row_id)
        if key in self._staged:
            value = self._staged[key]
            return None if value is _DELETED else copy.deepcopy(value)
        value = self._store.tables[table].get(row_id)
        return copy.deepcopy(value)

    def _put(self, table: str, row: Any) -> Any:
        if row.id is None:
            row.id = self._store.next_id(table)
        self._staged[(table, row.id)] = copy.deepcopy(row)
        return copy.deepcopy(row)

    def _delete(self, table: str, row_id: int) -> None:
        self._staged[(table, row_id)] = _DELETED

    def _rows(self, table: str) -> list[Any]:
        merged = dict(self._store.tables[table])
        for (staged_table, row_id), value in self._staged.items():
            if staged_table != table:
                continue
            if value is _DELETED:
                merged.pop(row_id, None)
            else:
                merged[row_id] = value
        return [copy.deepcopy(row) for row in merged.values()]

    def commit(self) -> None:
        for (table, row_id), value in self._staged.items():
            if value is _DELETED:
                self._store.tables[table].pop(row_id, None)
            else:
                self._store.tables[table][row_id] = value
        committed = list(self._audit)
        self._store.audit_log.extend(committed)
        self._staged.clear()
        self._audit.clear()
        log_committed(committed)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def get_event(self, event_id: int) -> Optional[StreamEvent]:
        await asyncio.sleep(0)
        return self._get(EVENTS, event_id)

    async def put_event(self, event: StreamEvent) -> StreamEvent:
        await asyncio.sleep(0)
        return self._put(EVENTS, event)

    async def delete_event(self, event_id: int) -> None:
        await asyncio.sleep(0)
        for entry in self._rows(ENTRIES):
            if entry.event_id == event_id:
                self._delete(ENTRIES, entry.id)
        await self.delete_matches(event_id)
        self._delete(EVENTS, event_id)

    async def list_entries(self, event_id: int) -> list[StreamEventEntry]:
        await asyncio.sleep(0)
        entries = [e for e in self._rows(ENTRIES) if e.event_id == event_id]
        return sorted(entries, key=lambda e: (e.created_at, e.id))

    async def get_entry(self, entry_id: int) -> Optional[StreamEventEntry]:
        await asyncio.sleep(0)
        return self._get(ENTRIES, entry_id)

    async def put_entry(self, entry: StreamEventEntry) -> StreamEventEntry:
        await asyncio.sleep(0)
        return self._put(ENTRIES, entry)

    async def delete_entry(self, entry_id: int) -> None:
        await asyncio.sleep(0)
        self._delete(ENTRIES, entry_id)

    async def compare_and_set_entry_status(
        self,
        entry_id: int,
        expected: EntryStatus,
        new: EntryStatus,
        payout: Optional[Decimal] = None,
    ) -> bool:
        await asyncio.sleep(0)
        entry = self._get(ENTRIES, entry_id)
        if entry is None or entry.status != expected:
            return False
        entry.status = new
        entry.payout = payout
        self._put(ENTRIES, entry)
        return True

    async def get_match(self, match_id: int) -> Optional[TournamentMatch]:
        await asyncio.sleep(0)
        return self._get(MATCHES, match_id)

    async def put_match(self, match: TournamentMatch) -> TournamentMatch:
        await asyncio.sleep(0)
        return self._put(MATCHES, match)

    async def list_matches(self, event_id: int) -> list[TournamentMatch]:
        await asyncio.sleep(0)
        matches = [m for m in self._rows(MATCHES) if m.event_id == event_id]
        return sorted(matches, key=lambda m: m.position)

    async def delete_matches(self, event_id: int) -> None:
        await asyncio.sleep(0)
        for match in self._rows(MATCHES):
            if match.event_id == event_id:
                self._delete(MATCHES, match.id)

    # ------------------------------------------------------------------
    # Giveaways
    # ------------------------------------------------------------------

    async def get_giveaway(self, giveaway_id: int) -> Optional[Giveaway]:
        await asyncio.sleep(0)
        return self._get(GIVEAWAYS, giveaway_id)

    async def put_giveaway(self, giveaway: Giveaway) -> Giveaway:
        await asyncio.sleep(0)
        return self._put(GIVEAWAYS, giveaway)

    async def list_requirements(self, giveaway_id: int) -> list[GiveawayRequirement]:
        await asyncio.sleep(0)
        key = (REQUIREMENTS, giveaway_id)
        if key in self._staged:
            return list(self._staged[key])
        return list(self._store.tables[REQUIREMENTS].get(giveaway_id, []))

    async def replace_requirements(
        self,
        giveaway_id: int,
        requirements: list[GiveawayRequirement],
    ) -> None:
        await asyncio.sleep(0)
        # Requirement records are frozen, no copy needed
        self._staged[(REQUIREMENTS, giveaway_id)] = list(requirements)

    async def list_giveaway_entries(self, giveaway_id: int) -> list[GiveawayEntry]:
        await asyncio.sleep(0)
        entries = [e for e in self._rows(GIVEAWAY_ENTRIES) if e.giveaway_id == giveaway_id]
        return sorted(entries, key=lambda e: (e.created_at, e.id))

    async def count_giveaway_entries(self, giveaway_id: int) -> int:
        return len(await self.list_giveaway_entries(giveaway_id))

    async def has_giveaway_entry(self, giveaway_id: int, user_id: str) -> bool:
        entries = await self.list_giveaway_entries(giveaway_id)
        return any(e.user_id == user_id for e in entries)

    async def put_giveaway_entry(self, entry: GiveawayEntry) -> GiveawayEntry:
        if await self.has_giveaway_entry(entry.giveaway_id, entry.user_id):
            raise DuplicateEntryError("giveaway", entry.giveaway_id, entry.user_id)
        return self._put(GIVEAWAY_ENTRIES, entry)

    async def compare_and_set_winner(self, giveaway_id: int, draw: WinnerDraw) -> bool:
        await asyncio.sleep(0)
        giveaway = self._get(GIVEAWAYS, giveaway_id)
        if giveaway is None or giveaway.winner_id is not None:
            return False

        giveaway.winner_id = draw.winner_id
        giveaway.winner_seed = draw.winner_seed
        giveaway.seed_hash = draw.seed_hash
        giveaway.entries_hash = draw.entries_hash
        giveaway.winner_entry_id = draw.winner_entry_id
        giveaway.winner_index = draw.winner_index
        giveaway.winner_picked_at = draw.picked_at
        giveaway.winner_picked_by = draw.picked_by
        giveaway.is_active = False
        self._put(GIVEAWAYS, giveaway)
        return True

    async def add_audit_record(self, record: AuditRecord) -> None:
        self._audit.append(record)


class InMemoryRepository(Repository):
    """Process-local repository with per-aggregate serialization."""

    def __init__(self) -> None:
        self._store = _Store()
        self._locks: dict[tuple[str, int], asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def audit_log(self) -> list[AuditRecord]:
        return list(self._store.audit_log)

    @asynccontextmanager
    async def _scope(self, kind: str, aggregate_id: Optional[int]) -> AsyncIterator[UnitOfWork]:
        uow = InMemoryUnitOfWork(self._store)
        if aggregate_id is None:
            yield uow
            uow.commit()
            return

        async with self._locks[(kind, aggregate_id)]:
            yield uow
            uow.commit()

    def event_scope(self, event_id: Optional[int]):
        return self._scope(EVENTS, event_id)

    def giveaway_scope(self, giveaway_id: Optional[int]):
        return self._scope(GIVEAWAYS, giveaway_id)

    def _committed(self, table: str) -> list[Any]:
        return [copy.deepcopy(row) for row in self._store.tables[table].values()]

    async def list_events(self, event_type: Optional[EventType] = None) -> list[StreamEvent]:
        events = self._committed(EVENTS)
        if event_type is not None:
            events = [e for e in events if e.type == event_type]
        return sorted(events, key=lambda e: (e.created_at, e.id), reverse=True)

    async def locate_match(self, match_id: int) -> Optional[int]:
        match = self._store.tables[MATCHES].get(match_id)
        return match.event_id if match else None

    async def locate_entry(self, entry_id: int) -> Optional[int]:
        entry = self._store.tables[ENTRIES].get(entry_id)
        return entry.event_id if entry else None

    async def list_giveaways(self, active_only: bool = False) -> list[Giveaway]:
        giveaways = self._committed(GIVEAWAYS)
        if active_only:
            giveaways = [g for g in giveaways if g.is_active]
        return sorted(giveaways, key=lambda g: (g.created_at, g.id), reverse=True)

    async def list_due_giveaways(self, now: datetime, limit: int) -> list[Giveaway]:
        due = [
            g
            for g in self._committed(GIVEAWAYS)
            if g.is_active and g.winner_id is None and g.ends_at <= now
        ]
        return sorted(due, key=lambda g: (g.ends_at, g.id))[:limit]


class InMemoryIdentityProvider(IdentityProvider):
    """Linked casino accounts held in a dict."""

    def __init__(self) -> None:
        self._accounts: dict[str, list[LinkedCasinoAccount]] = defaultdict(list)

    def link(self, user_id: str, casino_id: int, verified: bool = False) -> None:
        self._accounts[user_id].append(
            LinkedCasinoAccount(casino_id=casino_id, verified=verified)
        )

    async def linked_accounts(self, user_id: str) -> list[LinkedCasinoAccount]:
        return list(self._accounts.get(user_id, []))
