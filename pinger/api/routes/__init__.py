"""
API routes module.
"""

from pinger.api.routes.dashboard import router as dashboard_router
from pinger.api.routes.health import router as health_router
from pinger.api.routes.jobs import router as jobs_router
from pinger.api.routes.recurring import router as recurring_router

__all__ = ["jobs_router", "recurring_router", "dashboard_router", "health_router"]
