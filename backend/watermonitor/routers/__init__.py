"""
Routers Package
===============

Routers are like the reception desk - they direct incoming requests
to the right place.
"""

from .readings import router as readings_router, set_store
from .auth import router as auth_router, users_router, set_auth_service
from .ussd import router as ussd_router

__all__ = [
    "readings_router",
    "auth_router",
    "users_router",
    "ussd_router",
    "set_store",
    "set_auth_service",
]
