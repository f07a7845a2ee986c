"""Event lifecycle tests: transitions, entries, lock side effects, queries."""

from decimal import Decimal

import pytest

from streamcore.engine.provably_fair import FairSelector
from streamcore.events.lifecycle import TRANSITIONS, can_transition
from streamcore.events.models import EntryStatus, EventStatus, EventType
from streamcore.services.audit import Actor
from streamcore.utils.errors import (
    DuplicateEntryError,
    InvalidEntryError,
    InvalidTransitionError,
    NotFoundError,
)

from conftest import FIXED_SEED


async def open_event(lifecycle, admin, event_type=EventType.TOURNAMENT, **kwargs):
    if event_type == EventType.TOURNAMENT:
        kwargs.setdefault("max_players", 4)
    snapshot = await lifecycle.create_event(admin, event_type, "Stream Night", **kwargs)
    return await lifecycle.open_entries(admin, snapshot.event.id)


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,target",
        [
            (EventStatus.DRAFT, EventStatus.OPEN),
            (EventStatus.OPEN, EventStatus.LOCKED),
            (EventStatus.LOCKED, EventStatus.IN_PROGRESS),
            (EventStatus.LOCKED, EventStatus.COMPLETED),
            (EventStatus.IN_PROGRESS, EventStatus.COMPLETED),
        ],
    )
    def test_legal(self, current, target):
        assert can_transition(current, target)

    def test_everything_else_illegal(self):
        legal = {(c, t) for c, targets in TRANSITIONS.items() for t in targets}
        for current in EventStatus:
            for target in EventStatus:
                if (current, target) not in legal:
                    assert not can_transition(current, target)


class TestSetup:
    @pytest.mark.asyncio
    async def test_create_starts_in_draft(self, lifecycle, admin):
        snapshot = await lifecycle.create_event(admin, EventType.TOURNAMENT, "Cup", max_players=8)
        assert snapshot.event.status == EventStatus.DRAFT
        assert snapshot.event.max_players == 8
        assert snapshot.matches == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [None, 2, 6, 64])
    async def test_tournament_size_validated(self, lifecycle, admin, size):
        with pytest.raises(InvalidEntryError):
            await lifecycle.create_event(admin, EventType.TOURNAMENT, "Cup", max_players=size)

    @pytest.mark.asyncio
    async def test_title_required(self, lifecycle, admin):
        with pytest.raises(InvalidEntryError):
            await lifecycle.create_event(admin, EventType.BONUS_HUNT, "   ")

    @pytest.mark.asyncio
    async def test_settings_only_kept_for_their_type(self, lifecycle, admin):
        snapshot = await lifecycle.create_event(
            admin, EventType.BONUS_HUNT, "Hunt", max_players=8, starting_balance=Decimal("250")
        )
        assert snapshot.event.max_players is None
        assert snapshot.event.starting_balance == Decimal("250")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("balance", [Decimal("-5"), Decimal("99.999"), Decimal("NaN")])
    async def test_starting_balance_validated(self, lifecycle, admin, balance):
        with pytest.raises(InvalidEntryError):
            await lifecycle.create_event(
                admin, EventType.BONUS_HUNT, "Hunt", starting_balance=balance
            )

    @pytest.mark.asyncio
    async def test_update_while_open(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin)
        snapshot = await lifecycle.update_event(
            admin, snapshot.event.id, title="Renamed", max_players=8, is_public=False
        )
        assert snapshot.event.title == "Renamed"
        assert snapshot.event.max_players == 8
        assert snapshot.event.is_public is False

    @pytest.mark.asyncio
    async def test_cannot_shrink_below_entries(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin, max_players=8)
        for i in range(5):
            await lifecycle.add_entry(admin, snapshot.event.id, f"P{i}", "slot")

        with pytest.raises(InvalidEntryError):
            await lifecycle.update_event(admin, snapshot.event.id, max_players=4)

    @pytest.mark.asyncio
    async def test_settings_frozen_after_lock(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin)
        await lifecycle.add_entry(admin, snapshot.event.id, "P1", "slot")
        await lifecycle.lock(admin, snapshot.event.id)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.update_event(admin, snapshot.event.id, title="Late")


class TestEntries:
    @pytest.mark.asyncio
    async def test_entries_only_while_open(self, lifecycle, admin):
        snapshot = await lifecycle.create_event(admin, EventType.BONUS_HUNT, "Hunt")
        with pytest.raises(InvalidTransitionError):
            await lifecycle.add_entry(admin, snapshot.event.id, "P1", "slot")

    @pytest.mark.asyncio
    async def test_slot_choice_required(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin)
        with pytest.raises(InvalidEntryError):
            await lifecycle.add_entry(admin, snapshot.event.id, "P1", "  ")

    @pytest.mark.asyncio
    async def test_full_tournament_rejects(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin, max_players=4)
        for i in range(4):
            await lifecycle.add_entry(admin, snapshot.event.id, f"P{i}", "slot")

        with pytest.raises(InvalidEntryError):
            await lifecycle.add_entry(admin, snapshot.event.id, "P5", "slot")

    @pytest.mark.asyncio
    async def test_user_enters_once(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin, EventType.BONUS_HUNT)
        viewer = Actor.user("user-7")

        snapshot = await lifecycle.enter_event(viewer, snapshot.event.id, "Seven", "Gates of Olympus")
        assert snapshot.entries[0].user_id == "user-7"

        with pytest.raises(DuplicateEntryError):
            await lifecycle.enter_event(viewer, snapshot.event.id, "Seven", "Sweet Bonanza")
        after = await lifecycle.get_event_state(snapshot.event.id)
        assert len(after.entries) == 1

    @pytest.mark.asyncio
    async def test_private_event_hidden_from_viewers(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin, EventType.BONUS_HUNT, is_public=False)
        with pytest.raises(NotFoundError):
            await lifecycle.enter_event(Actor.user("u1"), snapshot.event.id, "U", "slot")

    @pytest.mark.asyncio
    async def test_guess_balance_self_entry_unsupported(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin, EventType.GUESS_BALANCE)
        with pytest.raises(InvalidEntryError):
            await lifecycle.enter_event(Actor.user("u1"), snapshot.event.id, "U", "1234")

    @pytest.mark.asyncio
    async def test_remove_entry_while_open(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin)
        snapshot = await lifecycle.add_entry(admin, snapshot.event.id, "P1", "slot")

        snapshot = await lifecycle.remove_entry(admin, snapshot.entries[0].id)
        assert snapshot.entries == []

    @pytest.mark.asyncio
    async def test_entries_fixed_after_lock(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin)
        snapshot = await lifecycle.add_entry(admin, snapshot.event.id, "P1", "slot")
        await lifecycle.lock(admin, snapshot.event.id)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.remove_entry(admin, snapshot.entries[0].id)

    @pytest.mark.asyncio
    async def test_remove_unknown_entry(self, lifecycle, admin):
        with pytest.raises(NotFoundError):
            await lifecycle.remove_entry(admin, 12345)


class TestLock:
    @pytest.mark.asyncio
    async def test_requires_an_entry(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin)
        with pytest.raises(InvalidTransitionError):
            await lifecycle.lock(admin, snapshot.event.id)

        after = await lifecycle.get_event_state(snapshot.event.id)
        assert after.event.status == EventStatus.OPEN

    @pytest.mark.asyncio
    async def test_draft_cannot_lock(self, lifecycle, admin):
        snapshot = await lifecycle.create_event(admin, EventType.BONUS_HUNT, "Hunt")
        with pytest.raises(InvalidTransitionError):
            await lifecycle.lock(admin, snapshot.event.id)

    @pytest.mark.asyncio
    async def test_records_seed_and_bracket_order(self, lifecycle, admin, repository):
        snapshot = await open_event(lifecycle, admin, max_players=8)
        for i in range(6):
            await lifecycle.add_entry(admin, snapshot.event.id, f"P{i}", f"Slot {i}")
        async with repository.event_scope(None) as uow:
            stored_order = await uow.list_entries(snapshot.event.id)

        snapshot = await lifecycle.lock(admin, snapshot.event.id)

        assert snapshot.event.status == EventStatus.LOCKED
        assert snapshot.event.seed == FIXED_SEED
        assert snapshot.event.seed_hash == FairSelector.hash_seed(FIXED_SEED)
        assert snapshot.event.locked_at is not None

        expected = [e.id for e in FairSelector.shuffle(FIXED_SEED, stored_order)]
        by_position = [e.id for e in sorted(snapshot.entries, key=lambda e: e.position)]
        assert by_position == expected

        first_round = [m for m in snapshot.matches if m.round == 1]
        assert first_round[0].player_a_id == expected[0]
        assert first_round[0].player_b_id == expected[1]

    @pytest.mark.asyncio
    async def test_guess_balance_lock_has_no_seed(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin, EventType.GUESS_BALANCE)
        await lifecycle.add_entry(admin, snapshot.event.id, "P1", "12000")

        snapshot = await lifecycle.lock(admin, snapshot.event.id)
        assert snapshot.event.seed is None
        assert snapshot.entries[0].status == EntryStatus.PENDING

    @pytest.mark.asyncio
    async def test_lock_is_audited_with_seed_hash(self, lifecycle, admin, repository):
        snapshot = await open_event(lifecycle, admin)
        await lifecycle.add_entry(admin, snapshot.event.id, "P1", "slot")
        await lifecycle.lock(admin, snapshot.event.id)

        record = repository.audit_log[-1]
        assert record.action == "stream_event.lock"
        assert record.actor_id == admin.user_id
        assert record.details["seed_hash"] == FairSelector.hash_seed(FIXED_SEED)
        assert "seed" not in record.details


class TestCompleteAndDelete:
    @pytest.mark.asyncio
    async def test_full_path(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin)
        await lifecycle.add_entry(admin, snapshot.event.id, "P1", "slot")
        await lifecycle.lock(admin, snapshot.event.id)
        await lifecycle.start(admin, snapshot.event.id)
        snapshot = await lifecycle.complete(admin, snapshot.event.id)

        assert snapshot.event.status == EventStatus.COMPLETED
        with pytest.raises(InvalidTransitionError):
            await lifecycle.start(admin, snapshot.event.id)

    @pytest.mark.asyncio
    async def test_complete_straight_from_locked(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin, EventType.BONUS_HUNT)
        await lifecycle.add_entry(admin, snapshot.event.id, "P1", "slot")
        await lifecycle.lock(admin, snapshot.event.id)

        snapshot = await lifecycle.complete(admin, snapshot.event.id)
        assert snapshot.event.status == EventStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_delete_cascades(self, lifecycle, admin, repository):
        snapshot = await open_event(lifecycle, admin)
        await lifecycle.add_entry(admin, snapshot.event.id, "P1", "slot")
        snapshot = await lifecycle.lock(admin, snapshot.event.id)

        await lifecycle.delete(admin, snapshot.event.id)

        with pytest.raises(NotFoundError):
            await lifecycle.get_event_state(snapshot.event.id)
        assert await repository.locate_match(snapshot.matches[0].id) is None
        assert await repository.locate_entry(snapshot.entries[0].id) is None

    @pytest.mark.asyncio
    async def test_completed_event_kept(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin)
        await lifecycle.add_entry(admin, snapshot.event.id, "P1", "slot")
        await lifecycle.lock(admin, snapshot.event.id)
        await lifecycle.complete(admin, snapshot.event.id)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.delete(admin, snapshot.event.id)


class TestPublicListing:
    @pytest.mark.asyncio
    async def test_hides_drafts_and_private(self, lifecycle, admin):
        await lifecycle.create_event(admin, EventType.BONUS_HUNT, "Draft")
        await open_event(lifecycle, admin, EventType.BONUS_HUNT, is_public=False)
        visible = await open_event(lifecycle, admin, EventType.BONUS_HUNT)

        views = await lifecycle.list_public_events()
        assert [v.event.id for v in views] == [visible.event.id]

    @pytest.mark.asyncio
    async def test_viewer_flags(self, lifecycle, admin):
        snapshot = await open_event(lifecycle, admin, max_players=4)
        await lifecycle.enter_event(Actor.user("u1"), snapshot.event.id, "U1", "slot")

        anonymous = (await lifecycle.list_public_events())[0]
        entered = (await lifecycle.list_public_events(user_id="u1"))[0]
        newcomer = (await lifecycle.list_public_events(user_id="u2"))[0]

        assert anonymous.entries_count == 1 and not anonymous.can_enter
        assert entered.has_entered and not entered.can_enter
        assert not newcomer.has_entered and newcomer.can_enter

    @pytest.mark.asyncio
    async def test_filter_by_type(self, lifecycle, admin):
        await open_event(lifecycle, admin, EventType.BONUS_HUNT)
        tournament = await open_event(lifecycle, admin, EventType.TOURNAMENT)

        views = await lifecycle.list_public_events(event_type=EventType.TOURNAMENT)
        assert [v.event.id for v in views] == [tournament.event.id]
