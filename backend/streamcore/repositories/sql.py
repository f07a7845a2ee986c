"""
SQLAlchemy repository (PostgreSQL via asyncpg).

Each scope is one ``session.begin()`` transaction. Scopes on an existing
aggregate start with ``SELECT ... FOR UPDATE`` on the aggregate root row,
which serializes concurrent operations on the same event or giveaway.
Compare-and-swap writes are conditional UPDATEs checked via ``rowcount``.

Connection and operational failures surface as StorageUnavailableError so
callers can tell them apart from business-rule errors and retry.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from streamcore.events.models import (
    EntryStatus,
    EventStatus,
    EventType,
    MatchStatus,
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
    parse_requirement,
    requirement_to_row,
)
from streamcore.logging_config import get_logger
from streamcore.models.audit import AuditLog
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
from streamcore.repositories.base import IdentityProvider, Repository, UnitOfWork
from streamcore.services.audit import AuditRecord, log_committed
from streamcore.utils.errors import DuplicateEntryError, StorageUnavailableError

logger = get_logger(__name__)

TRANSIENT_ERRORS = (OperationalError, InterfaceError, ConnectionError, TimeoutError)


# =============================================================================
# Row <-> record conversion
# =============================================================================


def _event_from_row(row: StreamEventRecord) -> StreamEvent:
    return StreamEvent(
        id=row.id,
        type=EventType(row.type),
        title=row.title,
        status=EventStatus(row.status),
        max_players=row.max_players,
        starting_balance=row.starting_balance,
        is_public=row.is_public,
        seed=row.seed,
        seed_hash=row.seed_hash,
        locked_at=row.locked_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _apply_event(row: StreamEventRecord, event: StreamEvent) -> None:
    row.type = event.type.value
    row.title = event.title
    row.status = event.status.value
    row.max_players = event.max_players
    row.starting_balance = event.starting_balance
    row.is_public = event.is_public
    row.seed = event.seed
    row.seed_hash = event.seed_hash
    row.locked_at = event.locked_at
    row.created_at = event.created_at
    row.updated_at = event.updated_at


def _entry_from_row(row: StreamEventEntryRecord) -> StreamEventEntry:
    return StreamEventEntry(
        id=row.id,
        event_id=row.event_id,
        user_id=row.user_id,
        display_name=row.display_name,
        slot_choice=row.slot_choice,
        category=row.category,
        status=EntryStatus(row.status),
        position=row.position,
        payout=row.payout,
        created_at=row.created_at,
    )


def _apply_entry(row: StreamEventEntryRecord, entry: StreamEventEntry) -> None:
    row.event_id = entry.event_id
    row.user_id = entry.user_id
    row.display_name = entry.display_name
    row.slot_choice = entry.slot_choice
    row.category = entry.category
    row.status = entry.status.value
    row.position = entry.position
    row.payout = entry.payout
    row.created_at = entry.created_at


def _match_from_row(row: TournamentMatchRecord) -> TournamentMatch:
    return TournamentMatch(
        id=row.id,
        event_id=row.event_id,
        round=row.round,
        match_index=row.match_index,
        player_a_id=row.player_a_id,
        player_b_id=row.player_b_id,
        winner_id=row.winner_id,
        status=MatchStatus(row.status),
    )


def _apply_match(row: TournamentMatchRecord, match: TournamentMatch) -> None:
    row.event_id = match.event_id
    row.round = match.round
    row.match_index = match.match_index
    row.player_a_id = match.player_a_id
    row.player_b_id = match.player_b_id
    row.winner_id = match.winner_id
    row.status = match.status.value


def _giveaway_from_row(row: GiveawayRecord) -> Giveaway:
    return Giveaway(
        id=row.id,
        title=row.title,
        description=row.description,
        prize=row.prize,
        max_entries=row.max_entries,
        casino_id=row.casino_id,
        ends_at=row.ends_at,
        is_active=row.is_active,
        winner_id=row.winner_id,
        winner_seed=row.winner_seed,
        seed_hash=row.seed_hash,
        entries_hash=row.entries_hash,
        winner_entry_id=row.winner_entry_id,
        winner_index=row.winner_index,
        winner_picked_at=row.winner_picked_at,
        winner_picked_by=row.winner_picked_by,
        created_at=row.created_at,
    )


def _apply_giveaway(row: GiveawayRecord, giveaway: Giveaway) -> None:
    # Draw fields are only written by compare_and_set_winner
    row.title = giveaway.title
    row.description = giveaway.description
    row.prize = giveaway.prize
    row.max_entries = giveaway.max_entries
    row.casino_id = giveaway.casino_id
    row.ends_at = giveaway.ends_at
    row.is_active = giveaway.is_active
    row.created_at = giveaway.created_at


# =============================================================================
# Unit of work
# =============================================================================


class SqlUnitOfWork(UnitOfWork):
    """Unit of work bound to one open transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit_records: list[AuditRecord] = []

    # Events

    async def get_event(self, event_id: int) -> Optional[StreamEvent]:
        row = await self.session.get(StreamEventRecord, event_id)
        return _event_from_row(row) if row else None

    async def put_event(self, event: StreamEvent) -> StreamEvent:
        row = None
        if event.id is not None:
            row = await self.session.get(StreamEventRecord, event.id)
        if row is None:
            row = StreamEventRecord()
            self.session.add(row)
        _apply_event(row, event)
        await self.session.flush()
        return _event_from_row(row)

    async def delete_event(self, event_id: int) -> None:
        await self.delete_matches(event_id)
        await self.session.execute(
            delete(StreamEventEntryRecord).where(StreamEventEntryRecord.event_id == event_id)
        )
        await self.session.execute(
            delete(StreamEventRecord).where(StreamEventRecord.id == event_id)
        )

    async def list_entries(self, event_id: int) -> list[StreamEventEntry]:
        result = await self.session.execute(
            select(StreamEventEntryRecord)
            .where(StreamEventEntryRecord.event_id == event_id)
            .order_by(StreamEventEntryRecord.created_at, StreamEventEntryRecord.id)
        )
        return [_entry_from_row(row) for row in result.scalars()]

    async def get_entry(self, entry_id: int) -> Optional[StreamEventEntry]:
        row = await self.session.get(StreamEventEntryRecord, entry_id)
        return _entry_from_row(row) if row else None

    async def put_entry(self, entry: StreamEventEntry) -> StreamEventEntry:
        row = None
        if entry.id is not None:
            row = await self.session.get(StreamEventEntryRecord, entry.id)
        if row is None:
            row = StreamEventEntryRecord()
            self.session.add(row)
        _apply_entry(row, entry)
        await self.session.flush()
        return _entry_from_row(row)

    async def delete_entry(self, entry_id: int) -> None:
        await self.session.execute(
            delete(StreamEventEntryRecord).where(StreamEventEntryRecord.id == entry_id)
        )

    async def compare_and_set_entry_status(
        self,
        entry_id: int,
        expected: EntryStatus,
        new: EntryStatus,
        payout: Optional[Decimal] = None,
    ) -> bool:
        result = await self.session.execute(
            update(StreamEventEntryRecord)
            .where(
                StreamEventEntryRecord.id == entry_id,
                StreamEventEntryRecord.status == expected.value,
            )
            .values(status=new.value, payout=payout)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def get_match(self, match_id: int) -> Optional[TournamentMatch]:
        row = await self.session.get(TournamentMatchRecord, match_id)
        return _match_from_row(row) if row else None

    async def put_match(self, match: TournamentMatch) -> TournamentMatch:
        row = None
        if match.id is not None:
            row = await self.session.get(TournamentMatchRecord, match.id)
        if row is None:
            row = TournamentMatchRecord()
            self.session.add(row)
        _apply_match(row, match)
        await self.session.flush()
        return _match_from_row(row)

    async def list_matches(self, event_id: int) -> list[TournamentMatch]:
        result = await self.session.execute(
            select(TournamentMatchRecord)
            .where(TournamentMatchRecord.event_id == event_id)
            .order_by(TournamentMatchRecord.round, TournamentMatchRecord.match_index)
        )
        return [_match_from_row(row) for row in result.scalars()]

    async def delete_matches(self, event_id: int) -> None:
        await self.session.execute(
            delete(TournamentMatchRecord).where(TournamentMatchRecord.event_id == event_id)
        )

    # Giveaways

    async def get_giveaway(self, giveaway_id: int) -> Optional[Giveaway]:
        row = await self.session.get(GiveawayRecord, giveaway_id)
        return _giveaway_from_row(row) if row else None

    async def put_giveaway(self, giveaway: Giveaway) -> Giveaway:
        row = None
        if giveaway.id is not None:
            row = await self.session.get(GiveawayRecord, giveaway.id)
        if row is None:
            row = GiveawayRecord()
            self.session.add(row)
        _apply_giveaway(row, giveaway)
        await self.session.flush()
        return _giveaway_from_row(row)

    async def list_requirements(self, giveaway_id: int) -> list[GiveawayRequirement]:
        result = await self.session.execute(
            select(GiveawayRequirementRecord)
            .where(GiveawayRequirementRecord.giveaway_id == giveaway_id)
            .order_by(GiveawayRequirementRecord.id)
        )
        return [
            parse_requirement(row.type, row.casino_id, row.value)
            for row in result.scalars()
        ]

    async def replace_requirements(
        self,
        giveaway_id: int,
        requirements: list[GiveawayRequirement],
    ) -> None:
        await self.session.execute(
            delete(GiveawayRequirementRecord).where(
                GiveawayRequirementRecord.giveaway_id == giveaway_id
            )
        )
        for requirement in requirements:
            type_, casino_id, value = requirement_to_row(requirement)
            self.session.add(
                GiveawayRequirementRecord(
                    giveaway_id=giveaway_id,
                    type=type_,
                    casino_id=casino_id,
                    value=value,
                )
            )
        await self.session.flush()

    async def list_giveaway_entries(self, giveaway_id: int) -> list[GiveawayEntry]:
        result = await self.session.execute(
            select(GiveawayEntryRecord)
            .where(GiveawayEntryRecord.giveaway_id == giveaway_id)
            .order_by(GiveawayEntryRecord.created_at, GiveawayEntryRecord.id)
        )
        return [
            GiveawayEntry(
                id=row.id,
                giveaway_id=row.giveaway_id,
                user_id=row.user_id,
                created_at=row.created_at,
            )
            for row in result.scalars()
        ]

    async def count_giveaway_entries(self, giveaway_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(GiveawayEntryRecord)
            .where(GiveawayEntryRecord.giveaway_id == giveaway_id)
        )
        return result.scalar_one()

    async def has_giveaway_entry(self, giveaway_id: int, user_id: str) -> bool:
        result = await self.session.execute(
            select(GiveawayEntryRecord.id).where(
                GiveawayEntryRecord.giveaway_id == giveaway_id,
                GiveawayEntryRecord.user_id == user_id,
            )
        )
        return result.first() is not None

    async def put_giveaway_entry(self, entry: GiveawayEntry) -> GiveawayEntry:
        row = GiveawayEntryRecord(
            giveaway_id=entry.giveaway_id,
            user_id=entry.user_id,
            created_at=entry.created_at,
        )
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicateEntryError("giveaway", entry.giveaway_id, entry.user_id) from e
        return GiveawayEntry(
            id=row.id,
            giveaway_id=row.giveaway_id,
            user_id=row.user_id,
            created_at=row.created_at,
        )

    async def compare_and_set_winner(self, giveaway_id: int, draw: WinnerDraw) -> bool:
        result = await self.session.execute(
            update(GiveawayRecord)
            .where(
                GiveawayRecord.id == giveaway_id,
                GiveawayRecord.winner_id.is_(None),
            )
            .values(
                winner_id=draw.winner_id,
                winner_seed=draw.winner_seed,
                seed_hash=draw.seed_hash,
                entries_hash=draw.entries_hash,
                winner_entry_id=draw.winner_entry_id,
                winner_index=draw.winner_index,
                winner_picked_at=draw.picked_at,
                winner_picked_by=draw.picked_by,
                is_active=False,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    # Audit

    async def add_audit_record(self, record: AuditRecord) -> None:
        self.audit_records.append(record)
        self.session.add(
            AuditLog(
                action=record.action,
                entity_type=record.entity_type,
                entity_id=record.entity_id,
                actor_id=record.actor_id,
                actor_role=record.actor_role,
                details=record.details,
                created_at=record.created_at,
            )
        )


# =============================================================================
# Repository
# =============================================================================


class SqlRepository(Repository):
    """Repository over an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _scope(self, root_model, aggregate_id: Optional[int]) -> AsyncIterator[UnitOfWork]:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    if aggregate_id is not None:
                        # Row lock on the aggregate root for the whole transaction
                        await session.execute(
                            select(root_model.id)
                            .where(root_model.id == aggregate_id)
                            .with_for_update()
                        )
                    uow = SqlUnitOfWork(session)
                    yield uow
                log_committed(uow.audit_records)
        except TRANSIENT_ERRORS as e:
            logger.warning(
                "storage_unavailable",
                aggregate=root_model.__tablename__,
                aggregate_id=aggregate_id,
                error_type=type(e).__name__,
            )
            raise StorageUnavailableError() from e

    def event_scope(self, event_id: Optional[int]):
        return self._scope(StreamEventRecord, event_id)

    def giveaway_scope(self, giveaway_id: Optional[int]):
        return self._scope(GiveawayRecord, giveaway_id)

    @asynccontextmanager
    async def _read(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                yield session
        except TRANSIENT_ERRORS as e:
            logger.warning("storage_unavailable", error_type=type(e).__name__)
            raise StorageUnavailableError() from e

    async def list_events(self, event_type: Optional[EventType] = None) -> list[StreamEvent]:
        query = select(StreamEventRecord).order_by(
            StreamEventRecord.created_at.desc(), StreamEventRecord.id.desc()
        )
        if event_type is not None:
            query = query.where(StreamEventRecord.type == event_type.value)
        async with self._read() as session:
            result = await session.execute(query)
            return [_event_from_row(row) for row in result.scalars()]

    async def locate_match(self, match_id: int) -> Optional[int]:
        async with self._read() as session:
            result = await session.execute(
                select(TournamentMatchRecord.event_id).where(TournamentMatchRecord.id == match_id)
            )
            return result.scalar_one_or_none()

    async def locate_entry(self, entry_id: int) -> Optional[int]:
        async with self._read() as session:
            result = await session.execute(
                select(StreamEventEntryRecord.event_id).where(
                    StreamEventEntryRecord.id == entry_id
                )
            )
            return result.scalar_one_or_none()

    async def list_giveaways(self, active_only: bool = False) -> list[Giveaway]:
        query = select(GiveawayRecord).order_by(
            GiveawayRecord.created_at.desc(), GiveawayRecord.id.desc()
        )
        if active_only:
            query = query.where(GiveawayRecord.is_active.is_(True))
        async with self._read() as session:
            result = await session.execute(query)
            return [_giveaway_from_row(row) for row in result.scalars()]

    async def list_due_giveaways(self, now: datetime, limit: int) -> list[Giveaway]:
        query = (
            select(GiveawayRecord)
            .where(
                GiveawayRecord.is_active.is_(True),
                GiveawayRecord.winner_id.is_(None),
                GiveawayRecord.ends_at <= now,
            )
            .order_by(GiveawayRecord.ends_at, GiveawayRecord.id)
            .limit(limit)
        )
        async with self._read() as session:
            result = await session.execute(query)
            return [_giveaway_from_row(row) for row in result.scalars()]


class SqlIdentityProvider(IdentityProvider):
    """Linked casino accounts from the ``user_casino_accounts`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def linked_accounts(self, user_id: str) -> list[LinkedCasinoAccount]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(UserCasinoAccountRecord).where(
                        UserCasinoAccountRecord.user_id == user_id
                    )
                )
                return [
                    LinkedCasinoAccount(casino_id=row.casino_id, verified=row.verified)
                    for row in result.scalars()
                ]
        except TRANSIENT_ERRORS as e:
            raise StorageUnavailableError() from e
