"""API routers."""

from streamcore.api.events import admin_router as events_admin_router
from streamcore.api.events import router as events_router
from streamcore.api.giveaways import admin_router as giveaways_admin_router
from streamcore.api.giveaways import router as giveaways_router

__all__ = [
    "events_router",
    "events_admin_router",
    "giveaways_router",
    "giveaways_admin_router",
]
