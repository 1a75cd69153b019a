"""
API routes module.
"""

from cmdqueue.api.routes.health import router as health_router
from cmdqueue.api.routes.jobs import router as jobs_router

__all__ = ["jobs_router", "health_router"]
