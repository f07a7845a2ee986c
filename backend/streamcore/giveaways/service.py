"""
Giveaway Service.

Entry under eligibility gates and provably-fair winner selection.

Draw (recomputable by anyone from the stored fields):
    entries  = giveaway entries ordered by (created_at, id)
    keys     = [str(entry.id) for entry in entries]
    index    = int(sha256(seed|giveaway_id|k1,k2,...), 16) mod len(keys)
    winner   = entries[index].user_id

The winner is written with a compare-and-swap on ``winner_id IS NULL``, so
of two concurrent draws at most one is recorded.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from streamcore.engine.provably_fair import FairSelector, SeedFactory
from streamcore.events.models import utcnow
from streamcore.giveaways.eligibility import EligibilityEvaluator
from streamcore.giveaways.models import (
    DrawVerification,
    EligibilityResult,
    Giveaway,
    GiveawayEntry,
    GiveawayRequirement,
    GiveawayView,
    WinnerDraw,
    effective_requirements,
)
from streamcore.logging_config import aggregate_context, get_logger
from streamcore.repositories.base import Repository, UnitOfWork
from streamcore.services.audit import Actor, record_audit
from streamcore.utils.distributed_lock import AggregateGuard, AggregateLockManager
from streamcore.utils.errors import (
    EventCoreError,
    InvalidEntryError,
    NoEntriesError,
    NotEndedError,
    NotFoundError,
    StorageUnavailableError,
    WinnerAlreadyPickedError,
)

logger = get_logger(__name__)

AUTO_PICK_ACTOR = Actor.system("auto")


@dataclass
class DueGiveawayReport:
    """Outcome of one auto-draw pass."""

    picked: list[int] = field(default_factory=list)
    ended_without_entries: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    # subset of failed that hit a transient storage error
    retryable: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "picked": self.picked,
            "ended_without_entries": self.ended_without_entries,
            "failed": self.failed,
        }


class GiveawayService:
    """Giveaway setup, entry and winner selection."""

    def __init__(
        self,
        repository: Repository,
        evaluator: EligibilityEvaluator,
        lock_manager: Optional[AggregateLockManager] = None,
        seed_factory: SeedFactory = FairSelector.generate_seed,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.evaluator = evaluator
        self.guard = AggregateGuard(repository, lock_manager)
        self._seed_factory = seed_factory
        self._clock = clock

    # =========================================================================
    # Setup
    # =========================================================================

    async def create_giveaway(
        self,
        actor: Actor,
        title: str,
        prize: str,
        ends_at: datetime,
        description: Optional[str] = None,
        max_entries: Optional[int] = None,
        casino_id: Optional[int] = None,
        requirements: Optional[list[GiveawayRequirement]] = None,
    ) -> GiveawayView:
        title = (title or "").strip()
        prize = (prize or "").strip()
        if not title or not prize:
            raise InvalidEntryError("Title and prize are required")
        if max_entries is not None and max_entries < 1:
            raise InvalidEntryError(
                "max_entries must be at least 1",
                details={"maxEntries": max_entries},
            )

        giveaway = Giveaway(
            title=title,
            prize=prize,
            ends_at=ends_at,
            description=description,
            max_entries=max_entries,
            casino_id=casino_id,
            created_at=self._clock(),
        )

        async with self.guard.giveaway(None) as uow:
            giveaway = await uow.put_giveaway(giveaway)
            await uow.replace_requirements(giveaway.id, list(requirements or []))
            await record_audit(
                uow,
                actor,
                "giveaway.create",
                "giveaway",
                giveaway.id,
                title=giveaway.title,
                ends_at=giveaway.ends_at.isoformat(),
                requirements=[r.type.value for r in requirements or []],
            )
            return await self._view(uow, giveaway, None)

    async def set_requirements(
        self,
        actor: Actor,
        giveaway_id: int,
        requirements: list[GiveawayRequirement],
    ) -> GiveawayView:
        """Replace the stored requirements. Not allowed once drawn."""
        with aggregate_context(giveaway_id=giveaway_id):
            async with self.guard.giveaway(giveaway_id) as uow:
                giveaway = await self._get_giveaway(uow, giveaway_id)
                if giveaway.winner_id is not None:
                    raise WinnerAlreadyPickedError(giveaway_id, giveaway.winner_id)

                await uow.replace_requirements(giveaway_id, list(requirements))
                await record_audit(
                    uow,
                    actor,
                    "giveaway.set_requirements",
                    "giveaway",
                    giveaway_id,
                    requirements=[r.type.value for r in requirements],
                )
                return await self._view(uow, giveaway, None)

    # =========================================================================
    # Entry
    # =========================================================================

    async def can_enter(self, giveaway_id: int, user_id: str) -> EligibilityResult:
        """Dry-run of ``enter``: same gates, nothing written."""
        async with self.repository.giveaway_scope(None) as uow:
            giveaway = await self._get_giveaway(uow, giveaway_id)
            requirements = effective_requirements(
                giveaway, await uow.list_requirements(giveaway_id)
            )
            return await self.evaluator.can_enter(
                uow, giveaway, requirements, user_id, self._clock()
            )

    async def enter(self, actor: Actor, giveaway_id: int) -> GiveawayEntry:
        """
        Enter ``actor`` into a giveaway.

        Raises:
            NotFoundError, EventEndedError, DuplicateEntryError,
            EntryLimitReachedError, RequirementNotMetError
        """
        user_id = actor.user_id
        with aggregate_context(giveaway_id=giveaway_id, user_id=user_id):
            async with self.guard.giveaway(giveaway_id) as uow:
                giveaway = await self._get_giveaway(uow, giveaway_id)
                requirements = effective_requirements(
                    giveaway, await uow.list_requirements(giveaway_id)
                )

                now = self._clock()
                result = await self.evaluator.can_enter(
                    uow, giveaway, requirements, user_id, now
                )
                if not result.eligible:
                    logger.info(
                        "giveaway_entry_rejected",
                        code=result.reason.code,
                    )
                    raise result.reason

                entry = await uow.put_giveaway_entry(
                    GiveawayEntry(giveaway_id=giveaway_id, user_id=user_id, created_at=now)
                )
                await record_audit(
                    uow,
                    actor,
                    "giveaway.enter",
                    "giveaway_entry",
                    entry.id,
                    giveaway_id=giveaway_id,
                )
                return entry

    # =========================================================================
    # Winner selection
    # =========================================================================

    async def pick_winner(self, actor: Actor, giveaway_id: int) -> Giveaway:
        """
        Draw the winner of an ended giveaway, exactly once.

        Raises:
            WinnerAlreadyPickedError: a winner is already recorded
            NoEntriesError: nobody entered
            NotEndedError: ends_at is still in the future
        """
        with aggregate_context(giveaway_id=giveaway_id):
            async with self.guard.giveaway(giveaway_id) as uow:
                giveaway = await self._get_giveaway(uow, giveaway_id)
                return await self._draw(uow, actor, giveaway, self._clock())

    async def _draw(
        self,
        uow: UnitOfWork,
        actor: Actor,
        giveaway: Giveaway,
        now: datetime,
    ) -> Giveaway:
        if giveaway.winner_id is not None:
            raise WinnerAlreadyPickedError(giveaway.id, giveaway.winner_id)

        entries = await uow.list_giveaway_entries(giveaway.id)
        if not entries:
            raise NoEntriesError(giveaway.id)
        if not giveaway.has_ended(now):
            raise NotEndedError(giveaway.id, giveaway.ends_at.isoformat())

        keys = [str(entry.id) for entry in entries]
        seed = self._seed_factory()
        proof = FairSelector.prove_draw(seed, keys, context=str(giveaway.id))
        winner = entries[proof.index]

        draw = WinnerDraw(
            winner_id=winner.user_id,
            winner_seed=seed,
            seed_hash=proof.seed_hash,
            entries_hash=proof.entries_hash,
            winner_entry_id=winner.id,
            winner_index=proof.index,
            picked_at=now,
            picked_by=actor.user_id,
        )
        if not await uow.compare_and_set_winner(giveaway.id, draw):
            current = await self._get_giveaway(uow, giveaway.id)
            raise WinnerAlreadyPickedError(giveaway.id, current.winner_id)

        await record_audit(
            uow,
            actor,
            "giveaway.pick_winner",
            "giveaway",
            giveaway.id,
            winner_id=winner.user_id,
            winner_entry_id=winner.id,
            winner_index=proof.index,
            entry_count=proof.entry_count,
            seed_hash=proof.seed_hash,
            entries_hash=proof.entries_hash,
        )
        return await self._get_giveaway(uow, giveaway.id)

    async def verify_winner(self, giveaway_id: int) -> DrawVerification:
        """Recompute the stored draw from the seed and the entry snapshot."""
        async with self.repository.giveaway_scope(None) as uow:
            giveaway = await self._get_giveaway(uow, giveaway_id)
            entries = await uow.list_giveaway_entries(giveaway_id)

        if giveaway.winner_id is None or giveaway.winner_seed is None:
            return DrawVerification(
                giveaway_id=giveaway_id,
                valid=False,
                error="No winner has been picked",
                stored_winner_id=None,
                recomputed_winner_id=None,
                winner_index=None,
            )

        keys = [str(entry.id) for entry in entries]
        context = str(giveaway_id)
        valid, error = FairSelector.verify_draw(
            giveaway.winner_seed,
            giveaway.seed_hash,
            keys,
            giveaway.winner_index,
            context=context,
            expected_entries_hash=giveaway.entries_hash,
        )

        recomputed = None
        if keys:
            recomputed = entries[FairSelector.draw_index(giveaway.winner_seed, keys, context)].user_id
        if valid and recomputed != giveaway.winner_id:
            valid, error = False, "Winner mismatch"

        return DrawVerification(
            giveaway_id=giveaway_id,
            valid=valid,
            error=error,
            stored_winner_id=giveaway.winner_id,
            recomputed_winner_id=recomputed,
            winner_index=giveaway.winner_index,
        )

    async def process_due_giveaways(
        self,
        now: Optional[datetime] = None,
        limit: int = 25,
    ) -> DueGiveawayReport:
        """
        Draw winners for ended giveaways that have none.

        Ended giveaways without entries are closed instead. A failure on one
        giveaway is logged and the batch continues; storage failures are
        also listed in ``retryable``.
        """
        now = now or self._clock()
        report = DueGiveawayReport()

        for due in await self.repository.list_due_giveaways(now, limit):
            with aggregate_context(giveaway_id=due.id):
                try:
                    async with self.guard.giveaway(due.id) as uow:
                        giveaway = await uow.get_giveaway(due.id)
                        if (
                            giveaway is None
                            or giveaway.winner_id is not None
                            or not giveaway.is_active
                        ):
                            continue

                        if await uow.count_giveaway_entries(due.id) == 0:
                            giveaway.is_active = False
                            await uow.put_giveaway(giveaway)
                            await record_audit(
                                uow,
                                AUTO_PICK_ACTOR,
                                "giveaway.auto_end_no_entries",
                                "giveaway",
                                due.id,
                            )
                            report.ended_without_entries.append(due.id)
                            continue

                        await self._draw(uow, AUTO_PICK_ACTOR, giveaway, now)
                        report.picked.append(due.id)
                except EventCoreError as e:
                    logger.warning("giveaway_auto_pick_failed", code=e.code, error=e.message)
                    report.failed.append(due.id)
                    if isinstance(e, StorageUnavailableError):
                        report.retryable.append(due.id)
                except Exception:
                    logger.exception("giveaway_auto_pick_crashed")
                    report.failed.append(due.id)

        if report.picked or report.ended_without_entries or report.failed:
            logger.info("giveaway_auto_pick_finished", **report.to_dict())
        return report

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_giveaway_state(
        self,
        giveaway_id: int,
        user_id: Optional[str] = None,
    ) -> GiveawayView:
        async with self.repository.giveaway_scope(None) as uow:
            giveaway = await self._get_giveaway(uow, giveaway_id)
            return await self._view(uow, giveaway, user_id)

    async def list_giveaways(
        self,
        active_only: bool = False,
        user_id: Optional[str] = None,
    ) -> list[GiveawayView]:
        giveaways = await self.repository.list_giveaways(active_only)
        async with self.repository.giveaway_scope(None) as uow:
            return [await self._view(uow, g, user_id) for g in giveaways]

    @staticmethod
    async def _view(
        uow: UnitOfWork,
        giveaway: Giveaway,
        user_id: Optional[str],
    ) -> GiveawayView:
        requirements = effective_requirements(
            giveaway, await uow.list_requirements(giveaway.id)
        )
        has_entered = (
            user_id is not None and await uow.has_giveaway_entry(giveaway.id, user_id)
        )
        return GiveawayView(
            giveaway=giveaway,
            requirements=requirements,
            entry_count=await uow.count_giveaway_entries(giveaway.id),
            has_entered=has_entered,
        )

    @staticmethod
    async def _get_giveaway(uow: UnitOfWork, giveaway_id: int) -> Giveaway:
        giveaway = await uow.get_giveaway(giveaway_id)
        if giveaway is None:
            raise NotFoundError("giveaway", giveaway_id)
        return giveaway
