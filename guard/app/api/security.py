"""Secure authentication and session security endpoints.

Login and registration go through the guard's secure auth flow, so rate
limiting and credential validation happen before the identity provider is
contacted. Errors surface as ``GuardException`` and are rendered by the
application exception handler.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from guard.app.api.dependencies import GuardDep
from guard.app.services.identity import Identity
from guard.app.services.session_monitor import INTERACTION_KINDS

router = APIRouter(tags=["security"])


class LoginRequest(BaseModel):
    email: str = Field(default="", max_length=320)
    password: str = Field(default="", max_length=256)


class RegisterRequest(BaseModel):
    name: str = Field(default="", max_length=200)
    email: str = Field(default="", max_length=320)
    password: str = Field(default="", max_length=256)


class IdentityPublic(BaseModel):
    id: str
    email: str
    name: Optional[str] = None

    @classmethod
    def from_identity(cls, identity: Optional[Identity]) -> Optional["IdentityPublic"]:
        if identity is None:
            return None
        return cls(id=identity.id, email=identity.email, name=identity.name)


class AuthResponse(BaseModel):
    identity: Optional[IdentityPublic] = None
    status: str


class ActivityRequest(BaseModel):
    kind: str = Field(default="mousedown", description=f"One of {', '.join(INTERACTION_KINDS)}")


class ActivityResponse(BaseModel):
    recorded: bool
    status: str


class SecurityStatusResponse(BaseModel):
    status: str
    identity_id: Optional[str] = None
    authenticated: bool


class SecurityEventRequest(BaseModel):
    event_name: str = Field(..., min_length=1, max_length=100)
    details: Optional[Dict[str, Any]] = None


@router.post("/auth/login", response_model=AuthResponse)
async def login(data: LoginRequest, guard: GuardDep) -> AuthResponse:
    identity = await guard.secure_login(data.email, data.password)
    return AuthResponse(
        identity=IdentityPublic.from_identity(identity),
        status=guard.security_status.value,
    )


@router.post(
    "/auth/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(data: RegisterRequest, guard: GuardDep) -> AuthResponse:
    identity = await guard.secure_register(data.name, data.email, data.password)
    return AuthResponse(
        identity=IdentityPublic.from_identity(identity),
        status=guard.security_status.value,
    )


@router.get("/security/status", response_model=SecurityStatusResponse)
async def security_status(guard: GuardDep) -> SecurityStatusResponse:
    """Report the last computed security status."""
    identity = guard.current_identity
    return SecurityStatusResponse(
        status=guard.security_status.value,
        identity_id=identity.id if identity else None,
        authenticated=identity is not None,
    )


@router.post("/security/activity", response_model=ActivityResponse)
async def record_activity(data: ActivityRequest, guard: GuardDep) -> ActivityResponse:
    """Record a user interaction as the latest activity signal."""
    recorded = await guard.record_activity(data.kind)
    return ActivityResponse(recorded=recorded, status=guard.security_status.value)


@router.post("/security/events", status_code=status.HTTP_202_ACCEPTED)
async def report_event(data: SecurityEventRequest, guard: GuardDep) -> Dict[str, Any]:
    guard.report_security_event(data.event_name, data.details)
    return {"accepted": True, "event_name": data.event_name}
