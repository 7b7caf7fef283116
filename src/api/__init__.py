"""
API Package

Health, admin and job-submission routes of the worker engine.
"""

from .admin_routes import router as admin_router
from .health_routes import router as health_router

__all__ = [
    "health_router",
    "admin_router",
]
