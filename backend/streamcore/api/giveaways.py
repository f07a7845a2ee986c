"""Giveaway endpoints."""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field, field_validator

from streamcore.api.deps import AdminActor, CurrentUserId, Giveaways, OptionalUserId, TraceId
from streamcore.giveaways.models import GiveawayRequirement, parse_requirement
from streamcore.services.audit import Actor
from streamcore.utils.errors import InvalidEntryError

router = APIRouter(prefix="/api/v1/giveaways", tags=["Giveaways"])
admin_router = APIRouter(prefix="/api/v1/admin/giveaways", tags=["Admin Giveaways"])


class RequirementIn(BaseModel):
    type: str
    casino_id: int | None = None
    value: str | None = None


class CreateGiveawayRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    prize: str = Field(..., min_length=1, max_length=200)
    ends_at: datetime
    description: str | None = None
    max_entries: int | None = None
    casino_id: int | None = None
    requirements: list[RequirementIn] = Field(default_factory=list)

    @field_validator("ends_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class SetRequirementsRequest(BaseModel):
    requirements: list[RequirementIn]


def _parse_requirements(items: list[RequirementIn]) -> list[GiveawayRequirement]:
    parsed = []
    for item in items:
        try:
            parsed.append(parse_requirement(item.type, item.casino_id, item.value))
        except ValueError as e:
            raise InvalidEntryError(
                f"Invalid requirement: {e}",
                details={"type": item.type, "value": item.value},
            )
    return parsed


# ============================================================================
# Viewer Endpoints
# ============================================================================


@router.get("")
async def list_giveaways(
    service: Giveaways,
    user_id: OptionalUserId,
    _trace_id: TraceId,
    active_only: bool = Query(True),
) -> list[dict[str, Any]]:
    views = await service.list_giveaways(active_only=active_only, user_id=user_id)
    return [view.to_dict() for view in views]


@router.get("/{giveaway_id}")
async def get_giveaway(
    giveaway_id: int,
    service: Giveaways,
    user_id: OptionalUserId,
    _trace_id: TraceId,
) -> dict[str, Any]:
    return (await service.get_giveaway_state(giveaway_id, user_id)).to_dict()


@router.get("/{giveaway_id}/verify")
async def verify_giveaway(giveaway_id: int, service: Giveaways, _trace_id: TraceId) -> dict[str, Any]:
    """Anyone can recompute the recorded draw."""
    return (await service.verify_winner(giveaway_id)).to_dict()


@router.get("/{giveaway_id}/eligibility")
async def check_eligibility(
    giveaway_id: int,
    service: Giveaways,
    user_id: CurrentUserId,
    _trace_id: TraceId,
) -> dict[str, Any]:
    return (await service.can_enter(giveaway_id, user_id)).to_dict()


@router.post("/{giveaway_id}/enter", status_code=status.HTTP_201_CREATED)
async def enter_giveaway(
    giveaway_id: int,
    service: Giveaways,
    user_id: CurrentUserId,
    _trace_id: TraceId,
) -> dict[str, Any]:
    entry = await service.enter(Actor.user(user_id), giveaway_id)
    return entry.to_dict()


# ============================================================================
# Admin Endpoints
# ============================================================================


@admin_router.get("")
async def admin_list_giveaways(
    service: Giveaways,
    actor: AdminActor,
    active_only: bool = Query(False),
) -> list[dict[str, Any]]:
    views = await service.list_giveaways(active_only=active_only)
    return [view.to_dict() for view in views]


@admin_router.post("", status_code=status.HTTP_201_CREATED)
async def create_giveaway(
    request: CreateGiveawayRequest,
    service: Giveaways,
    actor: AdminActor,
    _trace_id: TraceId,
) -> dict[str, Any]:
    view = await service.create_giveaway(
        actor,
        title=request.title,
        prize=request.prize,
        ends_at=request.ends_at,
        description=request.description,
        max_entries=request.max_entries,
        casino_id=request.casino_id,
        requirements=_parse_requirements(request.requirements),
    )
    return view.to_dict()


@admin_router.put("/{giveaway_id}/requirements")
async def set_requirements(
    giveaway_id: int,
    request: SetRequirementsRequest,
    service: Giveaways,
    actor: AdminActor,
    _trace_id: TraceId,
) -> dict[str, Any]:
    view = await service.set_requirements(
        actor, giveaway_id, _parse_requirements(request.requirements)
    )
    return view.to_dict()


@admin_router.post("/{giveaway_id}/pick-winner")
async def pick_winner(
    giveaway_id: int,
    service: Giveaways,
    actor: AdminActor,
    _trace_id: TraceId,
) -> dict[str, Any]:
    giveaway = await service.pick_winner(actor, giveaway_id)
    return giveaway.to_dict()
