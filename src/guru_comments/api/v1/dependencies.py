"""Shared API dependencies for identity, throttling and the comment store."""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from guru_comments.core.errors import Forbidden, RateLimitExceeded, Unauthorized
from guru_comments.core.settings import settings
from guru_comments.db.session import get_db
from guru_comments.models import User
from guru_comments.services.comment_store import CommentTreeStore, ContentLimits
from guru_comments.services.identity import (
    Credentials,
    IdentityResolver,
    build_identity_resolver,
)
from guru_comments.services.kv import KVStore, build_kv_store
from guru_comments.services.rate_limiter import RateLimitAction, RateLimiter, RateLimitResult
from guru_comments.services.sessions import SessionStore

logger = logging.getLogger(__name__)

# Missing credentials are not an error here; anonymous reads are allowed.
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


@lru_cache
def get_kv_store() -> KVStore:
    """Return the process-wide key-value store."""
    return build_kv_store(settings.kv_backend, settings.redis_url)


@lru_cache
def get_session_store() -> SessionStore:
    return SessionStore(get_kv_store(), ttl_seconds=settings.session_ttl_seconds)


@lru_cache
def get_identity_resolver() -> IdentityResolver:
    """Return the resolver chosen once from configuration."""
    return build_identity_resolver(settings, get_session_store())


@lru_cache
def get_rate_limiter() -> RateLimiter | None:
    """Return the shared limiter, or None when throttling is disabled."""
    if not settings.rate_limit_enabled:
        return None
    return RateLimiter(get_kv_store(), settings.rate_limit_policy)


def get_comment_store(db: SessionDep) -> CommentTreeStore:
    return CommentTreeStore(db, ContentLimits.from_settings(settings))


SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]
IdentityResolverDep = Annotated[IdentityResolver, Depends(get_identity_resolver)]
RateLimiterDep = Annotated[RateLimiter | None, Depends(get_rate_limiter)]
StoreDep = Annotated[CommentTreeStore, Depends(get_comment_store)]


def get_optional_user(
    request: Request,
    db: SessionDep,
    resolver: IdentityResolverDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> User | None:
    """Resolve the caller, returning None for anonymous requests."""
    creds = Credentials(
        bearer_token=credentials.credentials if credentials else None,
        session_id=request.cookies.get(settings.session_cookie_name),
    )
    return resolver.resolve(db, creds)


OptionalUserDep = Annotated[User | None, Depends(get_optional_user)]


def get_current_user(user: OptionalUserDep) -> User:
    """Require an authenticated caller."""
    if user is None:
        raise Unauthorized()
    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]


def get_admin_user(user: CurrentUserDep) -> User:
    """Require an authenticated admin."""
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user


AdminUserDep = Annotated[User, Depends(get_admin_user)]


def _client_identity(request: Request, user: User | None) -> str:
    if user is not None:
        return user.id
    host = request.client.host if request.client else "unknown"
    return f"anonymous:{host}"


def enforce_rate_limit(
    action: RateLimitAction,
    *,
    authenticated_only: bool = False,
) -> Callable[..., RateLimitResult | None]:
    """Build a dependency that throttles the route under ``action``'s quota.

    With ``authenticated_only`` an anonymous caller is rejected with 401
    before any quota is consulted.
    """

    def dependency(
        request: Request,
        response: Response,
        user: OptionalUserDep,
        limiter: RateLimiterDep,
    ) -> RateLimitResult | None:
        if authenticated_only and user is None:
            raise Unauthorized()
        if limiter is None:
            return None
        result = limiter.check_limit(
            _client_identity(request, user),
            action,
            is_authenticated=user is not None,
        )
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(result.reset_time)
        if not result.allowed:
            raise RateLimitExceeded(reset_time=result.reset_time, remaining=result.remaining)
        return result

    return dependency


ReadLimit = Depends(enforce_rate_limit(RateLimitAction.READ))
WriteLimit = Depends(enforce_rate_limit(RateLimitAction.WRITE, authenticated_only=True))
