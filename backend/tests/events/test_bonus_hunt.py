"""Bonus hunt queue tests.

Properties:
- exactly one current entry after lock
- at most one current entry after any sequence of outcomes, and none
  only when every entry is terminal
- totals are recomputed from entries on every read
"""

import asyncio
from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st

from streamcore.engine.provably_fair import FairSelector
from streamcore.events.lifecycle import EventLifecycle
from streamcore.events.models import TERMINAL_ENTRY_STATUSES, EntryStatus, EventType
from streamcore.repositories.memory import InMemoryRepository
from streamcore.services.audit import Actor
from streamcore.utils.errors import (
    InvalidEntryError,
    InvalidPayoutError,
    InvalidTransitionError,
    NotFoundError,
    QueueEmptyError,
)

from conftest import FIXED_SEED


async def locked_hunt(lifecycle, admin, players=3, starting_balance=Decimal("100")):
    snapshot = await lifecycle.create_event(
        admin, EventType.BONUS_HUNT, "Sunday Hunt", starting_balance=starting_balance
    )
    event_id = snapshot.event.id
    await lifecycle.open_entries(admin, event_id)
    for i in range(players):
        await lifecycle.add_entry(admin, event_id, f"viewer{i}", f"Slot {i}")
    return await lifecycle.lock(admin, event_id)


def statuses(snapshot) -> list[EntryStatus]:
    return [e.status for e in snapshot.entries]


class TestArrange:
    @pytest.mark.asyncio
    async def test_one_current_rest_waiting(self, lifecycle, admin):
        snapshot = await locked_hunt(lifecycle, admin, players=5)

        assert statuses(snapshot).count(EntryStatus.CURRENT) == 1
        assert statuses(snapshot).count(EntryStatus.WAITING) == 4
        current = next(e for e in snapshot.entries if e.status == EntryStatus.CURRENT)
        assert current.position == 0

    @pytest.mark.asyncio
    async def test_queue_order_reproducible_from_seed(self, lifecycle, admin, repository):
        snapshot = await locked_hunt(lifecycle, admin, players=6)

        async with repository.event_scope(None) as uow:
            stored_order = await uow.list_entries(snapshot.event.id)
        expected = [e.id for e in FairSelector.shuffle(FIXED_SEED, stored_order)]
        by_position = [e.id for e in sorted(snapshot.entries, key=lambda e: e.position)]

        assert by_position == expected
        assert snapshot.event.seed_hash == FairSelector.hash_seed(FIXED_SEED)


class TestAdvance:
    @pytest.mark.asyncio
    async def test_three_entry_scenario(self, lifecycle, admin):
        snapshot = await locked_hunt(lifecycle, admin, players=3)
        event_id = snapshot.event.id
        order = [e.id for e in snapshot.entries]  # sorted by position

        snapshot = await lifecycle.bonus_hunt.mark_bonused(admin, event_id, Decimal("50"))
        by_id = {e.id: e for e in snapshot.entries}
        assert by_id[order[0]].status == EntryStatus.BONUSED
        assert by_id[order[0]].payout == Decimal("50")
        assert by_id[order[1]].status == EntryStatus.CURRENT

        snapshot = await lifecycle.bonus_hunt.mark_no_bonus(admin, event_id)
        by_id = {e.id: e for e in snapshot.entries}
        assert by_id[order[1]].status == EntryStatus.NO_BONUS
        assert by_id[order[1]].payout is None
        assert by_id[order[2]].status == EntryStatus.CURRENT

        snapshot = await lifecycle.bonus_hunt.mark_bonused(admin, event_id, Decimal("30"))
        assert EntryStatus.CURRENT not in statuses(snapshot)
        assert snapshot.bonus_hunt.total_payout == Decimal("80")
        assert snapshot.bonus_hunt.profit == Decimal("-20")
        assert snapshot.bonus_hunt.is_exhausted

    @pytest.mark.asyncio
    async def test_exhausted_queue_rejects(self, lifecycle, admin):
        snapshot = await locked_hunt(lifecycle, admin, players=1)
        event_id = snapshot.event.id
        await lifecycle.bonus_hunt.mark_no_bonus(admin, event_id)

        with pytest.raises(QueueEmptyError):
            await lifecycle.bonus_hunt.mark_bonused(admin, event_id, Decimal("10"))
        with pytest.raises(QueueEmptyError):
            await lifecycle.bonus_hunt.mark_no_bonus(admin, event_id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payout",
        [Decimal("-1"), Decimal("NaN"), Decimal("Infinity"), Decimal("10.005"), Decimal("1E+20")],
    )
    async def test_invalid_payout_changes_nothing(self, lifecycle, admin, payout):
        snapshot = await locked_hunt(lifecycle, admin)

        with pytest.raises(InvalidPayoutError):
            await lifecycle.bonus_hunt.mark_bonused(admin, snapshot.event.id, payout)

        after = await lifecycle.get_event_state(snapshot.event.id)
        assert statuses(after) == statuses(snapshot)

    @pytest.mark.asyncio
    async def test_zero_payout_allowed(self, lifecycle, admin):
        snapshot = await locked_hunt(lifecycle, admin)
        snapshot = await lifecycle.bonus_hunt.mark_bonused(admin, snapshot.event.id, Decimal("0"))
        assert snapshot.bonus_hunt.bonused_count == 1

    @pytest.mark.asyncio
    async def test_trailing_zero_payout_accepted(self, lifecycle, admin):
        snapshot = await locked_hunt(lifecycle, admin)
        snapshot = await lifecycle.bonus_hunt.mark_bonused(
            admin, snapshot.event.id, Decimal("12.30")
        )
        assert snapshot.bonus_hunt.total_payout == Decimal("12.3")

    @pytest.mark.asyncio
    async def test_open_event_is_not_playable(self, lifecycle, admin):
        snapshot = await lifecycle.create_event(admin, EventType.BONUS_HUNT, "Hunt")
        await lifecycle.open_entries(admin, snapshot.event.id)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.bonus_hunt.mark_no_bonus(admin, snapshot.event.id)

    @pytest.mark.asyncio
    async def test_tournament_is_not_a_queue(self, lifecycle, admin):
        snapshot = await lifecycle.create_event(admin, EventType.TOURNAMENT, "Cup", max_players=4)
        with pytest.raises(InvalidEntryError):
            await lifecycle.bonus_hunt.mark_no_bonus(admin, snapshot.event.id)

    @pytest.mark.asyncio
    async def test_in_progress_is_a_play_phase(self, lifecycle, admin):
        snapshot = await locked_hunt(lifecycle, admin)
        await lifecycle.start(admin, snapshot.event.id)

        snapshot = await lifecycle.bonus_hunt.mark_no_bonus(admin, snapshot.event.id)
        assert snapshot.bonus_hunt.no_bonus_count == 1

    @pytest.mark.asyncio
    async def test_outcomes_are_audited(self, lifecycle, admin, repository):
        snapshot = await locked_hunt(lifecycle, admin)
        await lifecycle.bonus_hunt.mark_bonused(admin, snapshot.event.id, Decimal("12.50"))

        record = repository.audit_log[-1]
        assert record.action == "bonus_hunt.bonused"
        assert record.details["payout"] == "12.50"
        assert record.details["promoted_entry_id"] == snapshot.entries[1].id


class TestPayoutCorrection:
    @pytest.mark.asyncio
    async def test_update_payout(self, lifecycle, admin):
        snapshot = await locked_hunt(lifecycle, admin)
        entry_id = snapshot.entries[0].id
        await lifecycle.bonus_hunt.mark_bonused(admin, snapshot.event.id, Decimal("50"))

        snapshot = await lifecycle.bonus_hunt.update_payout(admin, entry_id, Decimal("75"))
        assert snapshot.bonus_hunt.total_payout == Decimal("75")

    @pytest.mark.asyncio
    async def test_allowed_after_completion(self, lifecycle, admin):
        snapshot = await locked_hunt(lifecycle, admin)
        entry_id = snapshot.entries[0].id
        await lifecycle.bonus_hunt.mark_bonused(admin, snapshot.event.id, Decimal("50"))
        await lifecycle.complete(admin, snapshot.event.id)

        snapshot = await lifecycle.bonus_hunt.update_payout(admin, entry_id, Decimal("40"))
        assert snapshot.bonus_hunt.total_payout == Decimal("40")

    @pytest.mark.asyncio
    async def test_only_bonused_entries(self, lifecycle, admin):
        snapshot = await locked_hunt(lifecycle, admin)
        entry_id = snapshot.entries[0].id
        await lifecycle.bonus_hunt.mark_no_bonus(admin, snapshot.event.id)

        with pytest.raises(InvalidPayoutError):
            await lifecycle.bonus_hunt.update_payout(admin, entry_id, Decimal("10"))

    @pytest.mark.asyncio
    async def test_unknown_entry(self, lifecycle, admin):
        with pytest.raises(NotFoundError):
            await lifecycle.bonus_hunt.update_payout(admin, 404, Decimal("10"))


class TestSummary:
    @pytest.mark.asyncio
    async def test_missing_starting_balance_counts_as_zero(self, lifecycle, admin):
        snapshot = await locked_hunt(lifecycle, admin, starting_balance=None)
        await lifecycle.bonus_hunt.mark_bonused(admin, snapshot.event.id, Decimal("25"))

        summary = await lifecycle.bonus_hunt.summary(snapshot.event.id)
        assert summary.profit == Decimal("25")
        assert summary.waiting_count == 1

    @pytest.mark.asyncio
    async def test_summary_of_non_hunt_rejected(self, lifecycle, admin):
        snapshot = await lifecycle.create_event(admin, EventType.GUESS_BALANCE, "Guess")
        with pytest.raises(InvalidEntryError):
            await lifecycle.bonus_hunt.summary(snapshot.event.id)


class TestQueueInvariant:
    @given(
        players=st.integers(min_value=1, max_value=8),
        outcomes=st.lists(st.one_of(st.none(), st.integers(min_value=0, max_value=500)), max_size=12),
    )
    @settings(max_examples=40, deadline=None)
    def test_single_current_after_any_sequence(self, players, outcomes):
        async def scenario():
            lifecycle = EventLifecycle(InMemoryRepository(), seed_factory=lambda: FIXED_SEED)
            admin = Actor.admin("admin-1")
            snapshot = await locked_hunt(lifecycle, admin, players=players)
            event_id = snapshot.event.id
            expected_total = Decimal("0")

            for outcome in outcomes:
                try:
                    if outcome is None:
                        snapshot = await lifecycle.bonus_hunt.mark_no_bonus(admin, event_id)
                    else:
                        snapshot = await lifecycle.bonus_hunt.mark_bonused(
                            admin, event_id, Decimal(outcome)
                        )
                        expected_total += Decimal(outcome)
                except QueueEmptyError:
                    snapshot = await lifecycle.get_event_state(event_id)

                current = [e for e in snapshot.entries if e.status == EntryStatus.CURRENT]
                assert len(current) <= 1
                all_terminal = all(e.status in TERMINAL_ENTRY_STATUSES for e in snapshot.entries)
                assert (len(current) == 0) == all_terminal

            assert snapshot.bonus_hunt.total_payout == expected_total

        asyncio.run(scenario())
