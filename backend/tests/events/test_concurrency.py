"""Concurrent mutations on one aggregate.

Two admins (or the auto-draw job and an admin) acting at the same moment
must see a consistent outcome: one succeeds, the other gets a typed error.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from streamcore.events.models import EventType
from streamcore.services.audit import Actor
from streamcore.utils.errors import (
    DuplicateEntryError,
    InvalidTransitionError,
    QueueEmptyError,
    WinnerAlreadyPickedError,
)


async def open_with_entries(lifecycle, admin, event_type, players, **kwargs):
    snapshot = await lifecycle.create_event(admin, event_type, "Race", **kwargs)
    await lifecycle.open_entries(admin, snapshot.event.id)
    for i in range(players):
        snapshot = await lifecycle.add_entry(admin, snapshot.event.id, f"P{i}", "slot")
    return snapshot


def split(results):
    ok = [r for r in results if not isinstance(r, BaseException)]
    errors = [r for r in results if isinstance(r, BaseException)]
    return ok, errors


@pytest.mark.asyncio
async def test_concurrent_lock_builds_one_bracket(lifecycle, admin):
    snapshot = await open_with_entries(lifecycle, admin, EventType.TOURNAMENT, 8, max_players=8)
    other_admin = Actor.admin("admin-2")

    results = await asyncio.gather(
        lifecycle.lock(admin, snapshot.event.id),
        lifecycle.lock(other_admin, snapshot.event.id),
        return_exceptions=True,
    )
    ok, errors = split(results)

    assert len(ok) == 1
    assert len(errors) == 1 and isinstance(errors[0], InvalidTransitionError)
    state = await lifecycle.get_event_state(snapshot.event.id)
    assert len(state.matches) == 7


@pytest.mark.asyncio
async def test_sibling_results_both_reach_next_round(lifecycle, admin):
    snapshot = await open_with_entries(lifecycle, admin, EventType.TOURNAMENT, 4, max_players=4)
    snapshot = await lifecycle.lock(admin, snapshot.event.id)
    left, right = [m for m in snapshot.matches if m.round == 1]

    await asyncio.gather(
        lifecycle.bracket.submit_winner(admin, left.id, left.player_a_id),
        lifecycle.bracket.submit_winner(Actor.admin("admin-2"), right.id, right.player_b_id),
    )

    state = await lifecycle.get_event_state(snapshot.event.id)
    final = next(m for m in state.matches if m.round == 2)
    assert final.player_a_id == left.player_a_id
    assert final.player_b_id == right.player_b_id


@pytest.mark.asyncio
async def test_concurrent_outcomes_on_last_entry(lifecycle, admin):
    snapshot = await open_with_entries(
        lifecycle, admin, EventType.BONUS_HUNT, 1, starting_balance=Decimal("100")
    )
    snapshot = await lifecycle.lock(admin, snapshot.event.id)

    results = await asyncio.gather(
        lifecycle.bonus_hunt.mark_bonused(admin, snapshot.event.id, Decimal("40")),
        lifecycle.bonus_hunt.mark_bonused(admin, snapshot.event.id, Decimal("90")),
        return_exceptions=True,
    )
    ok, errors = split(results)

    assert len(ok) == 1
    assert len(errors) == 1 and isinstance(errors[0], QueueEmptyError)
    state = await lifecycle.get_event_state(snapshot.event.id)
    assert state.bonus_hunt.bonused_count == 1


@pytest.mark.asyncio
async def test_same_user_enters_event_once(lifecycle, admin):
    snapshot = await lifecycle.create_event(admin, EventType.BONUS_HUNT, "Hunt")
    await lifecycle.open_entries(admin, snapshot.event.id)
    viewer = Actor.user("user-1")

    results = await asyncio.gather(
        *(lifecycle.enter_event(viewer, snapshot.event.id, "One", "slot") for _ in range(3)),
        return_exceptions=True,
    )
    ok, errors = split(results)

    assert len(ok) == 1
    assert all(isinstance(e, DuplicateEntryError) for e in errors)
    state = await lifecycle.get_event_state(snapshot.event.id)
    assert len(state.entries) == 1


@pytest.mark.asyncio
async def test_concurrent_draws_record_one_winner(giveaway_service, admin, clock, repository):
    view = await giveaway_service.create_giveaway(
        admin, "Weekly", "$100", ends_at=clock.now + timedelta(hours=1)
    )
    giveaway_id = view.giveaway.id
    for i in range(5):
        await giveaway_service.enter(Actor.user(f"user-{i}"), giveaway_id)
    clock.advance(hours=2)

    results = await asyncio.gather(
        giveaway_service.pick_winner(admin, giveaway_id),
        giveaway_service.process_due_giveaways(),
        return_exceptions=True,
    )

    draws = [r for r in repository.audit_log if r.action == "giveaway.pick_winner"]
    assert len(draws) == 1
    if isinstance(results[0], BaseException):
        assert isinstance(results[0], WinnerAlreadyPickedError)
        assert results[1].picked == [giveaway_id]
    else:
        assert results[1].picked == []


@pytest.mark.asyncio
async def test_same_user_enters_giveaway_once(giveaway_service, admin, clock):
    view = await giveaway_service.create_giveaway(
        admin, "Weekly", "$100", ends_at=clock.now + timedelta(days=1)
    )
    viewer = Actor.user("user-1")

    results = await asyncio.gather(
        *(giveaway_service.enter(viewer, view.giveaway.id) for _ in range(4)),
        return_exceptions=True,
    )
    ok, errors = split(results)

    assert len(ok) == 1
    assert all(isinstance(e, DuplicateEntryError) for e in errors)
    state = await giveaway_service.get_giveaway_state(view.giveaway.id)
    assert state.entry_count == 1
