"""User-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UserResponse(BaseModel):
    """Public user information returned by the API."""

    id: str
    username: str
    kind: str
    email: str | None = None
    is_admin: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdminStatusUpdate(BaseModel):
    """Body for granting or revoking admin rights."""

    is_admin: bool = Field(..., description="New admin flag")


class SessionResponse(BaseModel):
    session_id: str
    expires_at: datetime
    user: UserResponse
