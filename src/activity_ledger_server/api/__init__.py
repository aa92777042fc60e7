"""API routes."""

from litestar import Router
from litestar.di import Provide

from activity_ledger_server.api.config import config_router
from activity_ledger_server.api.health import health_router
from activity_ledger_server.api.ledger import ledger_router
from activity_ledger_server.api.submissions import submissions_router
from activity_ledger_server.api.summary import summary_router
from activity_ledger_server.core.auth import provide_identity
from activity_ledger_server.core.cache import provide_cache
from activity_ledger_server.core.config import settings

# Versioned API routers
# These get the /api/v1 prefix
_v1_routers = [
    submissions_router,
    summary_router,  # Streaks, weekly/today/history summaries, goals
    config_router,  # Activity catalog and streak settings
    ledger_router,  # Export, activity log, back-fill, clear
]

api_v1_router = Router(
    path=settings.api_prefix,
    route_handlers=_v1_routers,
    dependencies={
        "cache": Provide(provide_cache),
        "identity": Provide(provide_identity),
    },
)

# Export: health (root), v1 (prefixed)
# - health_router: /health - no auth needed, no version prefix
# - api_v1_router: /api/v1/* - ledger endpoints
api_routers = [health_router, api_v1_router]

__all__ = ["api_routers"]
