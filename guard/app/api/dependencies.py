"""Security guard dependencies for FastAPI dependency injection.

Usage:
    from guard.app.api.dependencies import GuardDep

    @router.get("/security/status")
    async def status(guard: GuardDep):
        return {"status": guard.security_status.value}
"""

from typing import Annotated

from fastapi import Depends, Request

from guard.app.services.guard_context import SecurityGuardContext


def get_guard(request: Request) -> SecurityGuardContext:
    """Return the guard context installed by the application lifespan."""
    return request.app.state.guard


GuardDep = Annotated[SecurityGuardContext, Depends(get_guard)]

__all__ = ["GuardDep", "get_guard"]
