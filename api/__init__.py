"""
API Module
FastAPI routers for the DoseKeeper application
"""

from api.doses import router as doses_router
from api.reports import router as reports_router
from api.rewards import router as rewards_router
from api.notifications import router as notifications_router

from api.deps import (
    get_db,
    get_current_patient_id,
    pagination_params,
    services,
)


__all__ = [
    # Routers
    "doses_router",
    "reports_router",
    "rewards_router",
    "notifications_router",
    # Dependencies
    "get_db",
    "get_current_patient_id",
    "pagination_params",
    "services",
]


def include_routers(app, prefix: str = "/api/v1"):
    """
    Include all API routers in the FastAPI app

    Usage:
        from api import include_routers
        include_routers(app)
    """
    app.include_router(doses_router, prefix=prefix)
    app.include_router(reports_router, prefix=prefix)
    app.include_router(rewards_router, prefix=prefix)
    app.include_router(notifications_router, prefix=prefix)
