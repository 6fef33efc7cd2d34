"""
API routes module.
"""

from entryflow.api.routes.entries import router as entries_router
from entryflow.api.routes.health import router as health_router

__all__ = ["entries_router", "health_router"]
