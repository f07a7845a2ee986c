"""API dependencies: services, caller identity and tracing."""

import uuid
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from streamcore.config import get_settings
from streamcore.events.lifecycle import EventLifecycle
from streamcore.giveaways.eligibility import EligibilityEvaluator
from streamcore.giveaways.service import GiveawayService
from streamcore.logging_config import bind_context, get_logger
from streamcore.repositories.base import IdentityProvider, Repository
from streamcore.services.audit import Actor
from streamcore.utils.distributed_lock import AggregateLockManager
from streamcore.utils.security import TokenError, verify_access_token

logger = get_logger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


def _auth_error(code: str, message: str, status_code: int = status.HTTP_401_UNAUTHORIZED):
    return HTTPException(
        status_code=status_code,
        detail={
            "error": {
                "code": code,
                "message": message,
                "details": {},
            }
        },
        headers={"WWW-Authenticate": "Bearer"} if status_code == 401 else None,
    )


def get_trace_id(x_trace_id: Annotated[str | None, Header()] = None) -> str:
    """Get or generate trace ID for request tracking."""
    trace_id = x_trace_id or str(uuid.uuid4())
    bind_context(trace_id=trace_id)
    return trace_id


# =============================================================================
# Collaborators (set on app.state at startup, overridable in tests)
# =============================================================================


def get_repository(request: Request) -> Repository:
    return request.app.state.repository


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


def get_lock_manager(request: Request) -> AggregateLockManager | None:
    return getattr(request.app.state, "lock_manager", None)


def get_event_lifecycle(
    repository: Annotated[Repository, Depends(get_repository)],
    lock_manager: Annotated[AggregateLockManager | None, Depends(get_lock_manager)],
) -> EventLifecycle:
    return EventLifecycle(repository, lock_manager=lock_manager)


def get_giveaway_service(
    repository: Annotated[Repository, Depends(get_repository)],
    identity: Annotated[IdentityProvider, Depends(get_identity_provider)],
    lock_manager: Annotated[AggregateLockManager | None, Depends(get_lock_manager)],
) -> GiveawayService:
    return GiveawayService(
        repository,
        EligibilityEvaluator(identity),
        lock_manager=lock_manager,
    )


# =============================================================================
# Caller identity
# =============================================================================


def verify_api_key(x_api_key: Annotated[str, Header()]) -> bool:
    """Verify the admin API key."""
    if x_api_key != get_settings().admin_api_key:
        logger.warning("admin_api_key_rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
    return True


def get_admin_actor(
    _: Annotated[bool, Depends(verify_api_key)],
    x_admin_user_id: Annotated[str, Header()],
) -> Actor:
    """The admin performing the request, named by the admin panel."""
    admin_id = x_admin_user_id.strip()
    if not admin_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Admin-User-Id header is required",
        )
    bind_context(actor_id=admin_id)
    return Actor.admin(admin_id)


def _user_id_from_token(token: str) -> str:
    try:
        payload = verify_access_token(token)
    except TokenError as e:
        raise _auth_error(e.code, e.message)

    if not payload or not payload.get("sub"):
        raise _auth_error("AUTH_INVALID_TOKEN", "Invalid or expired token")
    return str(payload["sub"])


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """User id from the bearer token (required auth)."""
    if not credentials:
        raise _auth_error("AUTH_REQUIRED", "Authentication required")
    user_id = _user_id_from_token(credentials.credentials)
    bind_context(actor_id=user_id)
    return user_id


async def get_current_user_id_optional(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str | None:
    """User id if a valid token is present (optional auth)."""
    if not credentials:
        return None
    try:
        return _user_id_from_token(credentials.credentials)
    except HTTPException:
        return None


# Type aliases for cleaner annotations
AdminActor = Annotated[Actor, Depends(get_admin_actor)]
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
OptionalUserId = Annotated[str | None, Depends(get_current_user_id_optional)]
Lifecycle = Annotated[EventLifecycle, Depends(get_event_lifecycle)]
Giveaways = Annotated[GiveawayService, Depends(get_giveaway_service)]
TraceId = Annotated[str, Depends(get_trace_id)]
