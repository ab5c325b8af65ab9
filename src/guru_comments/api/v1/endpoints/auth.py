# src/guru_comments/api/v1/endpoints/auth.py
"""Session endpoints for the Guru comment API."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Request, Response, status

from guru_comments.api.v1.dependencies import CurrentUserDep, SessionStoreDep, WriteLimit
from guru_comments.core.settings import settings
from guru_comments.models import User
from guru_comments.schemas.user import SessionResponse, UserResponse

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/login", response_model=SessionResponse, dependencies=[WriteLimit])
async def login(
    response: Response,
    current_user: CurrentUserDep,
    sessions: SessionStoreDep,
) -> SessionResponse:
    """Open a cookie session for the already-resolved caller.

    With authentication enabled the caller presents an identity-provider
    bearer token once and receives a session cookie for later requests.
    """
    issued = sessions.create(current_user.id)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=issued.session_id,
        max_age=sessions.ttl_seconds,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="strict",
    )
    return SessionResponse(
        session_id=issued.session_id,
        expires_at=datetime.fromtimestamp(issued.expires_at, UTC),
        user=UserResponse.model_validate(current_user),
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(request: Request, response: Response, sessions: SessionStoreDep) -> None:
    """Drop the caller's session, if any, and clear the cookie."""
    session_id = request.cookies.get(settings.session_cookie_name)
    if session_id:
        sessions.delete(session_id)
    response.delete_cookie(settings.session_cookie_name, path="/")


@router.get("/me", response_model=UserResponse)
async def me(current_user: CurrentUserDep) -> User:
    """Return the authenticated caller."""
    return current_user
