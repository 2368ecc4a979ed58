"""API endpoints package for the guard."""

from guard.app.api.security import router as security_router

__all__ = [
    "security_router",
]
