"""Stream event endpoints.

Admin routes (X-API-Key + X-Admin-User-Id) drive the lifecycle, the bracket
and the bonus-hunt queue. Viewer routes list public events and let an
authenticated user enter one. Every mutation returns the full event state.
"""

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from streamcore.api.deps import AdminActor, CurrentUserId, Lifecycle, OptionalUserId, TraceId
from streamcore.events.models import EventStatus, EventType
from streamcore.services.audit import Actor

router = APIRouter(prefix="/api/v1/events", tags=["Events"])
admin_router = APIRouter(prefix="/api/v1/admin/events", tags=["Admin Events"])


# ============================================================================
# Request Models
# ============================================================================


class CreateEventRequest(BaseModel):
    type: EventType
    title: str = Field(..., min_length=1, max_length=200)
    max_players: int | None = None
    starting_balance: Decimal | None = None
    is_public: bool = True


class UpdateEventRequest(BaseModel):
    title: str | None = Field(None, max_length=200)
    max_players: int | None = None
    starting_balance: Decimal | None = None
    is_public: bool | None = None


class AddEntryRequest(BaseModel):
    display_name: str = Field(..., max_length=100)
    slot_choice: str = Field(..., max_length=200)
    category: str | None = Field(None, max_length=50)
    user_id: str | None = None


class EnterEventRequest(BaseModel):
    display_name: str = Field(..., max_length=100)
    slot_choice: str = Field(..., max_length=200)


class SubmitWinnerRequest(BaseModel):
    winner_id: int


class PayoutRequest(BaseModel):
    payout: Decimal


# ============================================================================
# Viewer Endpoints
# ============================================================================


@router.get("")
async def list_events(
    lifecycle: Lifecycle,
    user_id: OptionalUserId,
    _trace_id: TraceId,
    event_type: EventType | None = Query(None, alias="type"),
) -> list[dict[str, Any]]:
    """Public, non-draft events with entry stats for the caller."""
    views = await lifecycle.list_public_events(user_id=user_id, event_type=event_type)
    return [view.to_dict() for view in views]


@router.get("/{event_id}")
async def get_event(event_id: int, lifecycle: Lifecycle, _trace_id: TraceId) -> dict[str, Any]:
    snapshot = await lifecycle.get_event_state(event_id)
    if not snapshot.event.is_public or snapshot.event.status == EventStatus.DRAFT:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return snapshot.to_dict()


@router.post("/{event_id}/enter", status_code=status.HTTP_201_CREATED)
async def enter_event(
    event_id: int,
    request: EnterEventRequest,
    lifecycle: Lifecycle,
    user_id: CurrentUserId,
    _trace_id: TraceId,
) -> dict[str, Any]:
    snapshot = await lifecycle.enter_event(
        Actor.user(user_id),
        event_id,
        display_name=request.display_name,
        slot_choice=request.slot_choice,
    )
    return snapshot.to_dict()


# ============================================================================
# Admin Endpoints
# ============================================================================


@admin_router.get("")
async def admin_list_events(
    lifecycle: Lifecycle,
    actor: AdminActor,
    event_type: EventType | None = Query(None, alias="type"),
) -> list[dict[str, Any]]:
    events = await lifecycle.repository.list_events(event_type)
    return [event.to_dict() for event in events]


@admin_router.post("", status_code=status.HTTP_201_CREATED)
async def create_event(
    request: CreateEventRequest,
    lifecycle: Lifecycle,
    actor: AdminActor,
    _trace_id: TraceId,
) -> dict[str, Any]:
    snapshot = await lifecycle.create_event(
        actor,
        request.type,
        request.title,
        max_players=request.max_players,
        starting_balance=request.starting_balance,
        is_public=request.is_public,
    )
    return snapshot.to_dict()


@admin_router.get("/{event_id}")
async def admin_get_event(event_id: int, lifecycle: Lifecycle, actor: AdminActor) -> dict[str, Any]:
    return (await lifecycle.get_event_state(event_id)).to_dict()


@admin_router.patch("/{event_id}")
async def update_event(
    event_id: int,
    request: UpdateEventRequest,
    lifecycle: Lifecycle,
    actor: AdminActor,
    _trace_id: TraceId,
) -> dict[str, Any]:
    snapshot = await lifecycle.update_event(
        actor,
        event_id,
        title=request.title,
        max_players=request.max_players,
        starting_balance=request.starting_balance,
        is_public=request.is_public,
    )
    return snapshot.to_dict()


@admin_router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(
    event_id: int,
    lifecycle: Lifecycle,
    actor: AdminActor,
    _trace_id: TraceId,
) -> None:
    await lifecycle.delete(actor, event_id)


@admin_router.post("/{event_id}/open")
async def open_event(event_id: int, lifecycle: Lifecycle, actor: AdminActor, _trace_id: TraceId) -> dict[str, Any]:
    return (await lifecycle.open_entries(actor, event_id)).to_dict()


@admin_router.post("/{event_id}/lock")
async def lock_event(event_id: int, lifecycle: Lifecycle, actor: AdminActor, _trace_id: TraceId) -> dict[str, Any]:
    return (await lifecycle.lock(actor, event_id)).to_dict()


@admin_router.post("/{event_id}/start")
async def start_event(event_id: int, lifecycle: Lifecycle, actor: AdminActor, _trace_id: TraceId) -> dict[str, Any]:
    return (await lifecycle.start(actor, event_id)).to_dict()


@admin_router.post("/{event_id}/complete")
async def complete_event(event_id: int, lifecycle: Lifecycle, actor: AdminActor, _trace_id: TraceId) -> dict[str, Any]:
    return (await lifecycle.complete(actor, event_id)).to_dict()


@admin_router.post("/{event_id}/entries", status_code=status.HTTP_201_CREATED)
async def add_entry(
    event_id: int,
    request: AddEntryRequest,
    lifecycle: Lifecycle,
    actor: AdminActor,
    _trace_id: TraceId,
) -> dict[str, Any]:
    snapshot = await lifecycle.add_entry(
        actor,
        event_id,
        display_name=request.display_name,
        slot_choice=request.slot_choice,
        category=request.category,
        user_id=request.user_id,
    )
    return snapshot.to_dict()


@admin_router.delete("/entries/{entry_id}")
async def remove_entry(entry_id: int, lifecycle: Lifecycle, actor: AdminActor, _trace_id: TraceId) -> dict[str, Any]:
    return (await lifecycle.remove_entry(actor, entry_id)).to_dict()


@admin_router.post("/matches/{match_id}/winner")
async def submit_match_winner(
    match_id: int,
    request: SubmitWinnerRequest,
    lifecycle: Lifecycle,
    actor: AdminActor,
    _trace_id: TraceId,
) -> dict[str, Any]:
    snapshot = await lifecycle.bracket.submit_winner(actor, match_id, request.winner_id)
    return snapshot.to_dict()


@admin_router.post("/{event_id}/bonus-hunt/bonused")
async def mark_bonused(
    event_id: int,
    request: PayoutRequest,
    lifecycle: Lifecycle,
    actor: AdminActor,
    _trace_id: TraceId,
) -> dict[str, Any]:
    return (await lifecycle.bonus_hunt.mark_bonused(actor, event_id, request.payout)).to_dict()


@admin_router.post("/{event_id}/bonus-hunt/no-bonus")
async def mark_no_bonus(event_id: int, lifecycle: Lifecycle, actor: AdminActor, _trace_id: TraceId) -> dict[str, Any]:
    return (await lifecycle.bonus_hunt.mark_no_bonus(actor, event_id)).to_dict()


@admin_router.patch("/entries/{entry_id}/payout")
async def update_payout(
    entry_id: int,
    request: PayoutRequest,
    lifecycle: Lifecycle,
    actor: AdminActor,
    _trace_id: TraceId,
) -> dict[str, Any]:
    return (await lifecycle.bonus_hunt.update_payout(actor, entry_id, request.payout)).to_dict()
