"""Resolve the acting user of a request.

Exactly one resolver is built at startup from configuration:

* :class:`FixedIdentityResolver` returns a configured development identity for
  every request (``AUTH_ENABLED=false``).
* :class:`TokenIdentityResolver` validates bearer tokens issued by the
  external identity provider, falling back to a session cookie.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from jose import JWTError, jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from guru_comments.core.errors import Unauthorized
from guru_comments.core.settings import Settings
from guru_comments.models import User, UserKind
from guru_comments.repositories import user_repo
from guru_comments.services.sessions import SessionStore

logger = logging.getLogger(__name__)

_USERNAME_UNSAFE = re.compile(r"[^a-zA-Z0-9_.-]+")


@dataclass(frozen=True)
class Credentials:
    """Raw credential material extracted from a request."""

    bearer_token: str | None = None
    session_id: str | None = None


class IdentityResolver(Protocol):
    def resolve(self, db: Session, credentials: Credentials) -> User | None:
        """Return the authenticated user, or None for an anonymous caller."""
        ...


@dataclass(frozen=True)
class FixedIdentity:
    user_id: str
    username: str
    email: str | None = None
    is_admin: bool = True


class FixedIdentityResolver:
    """Treat every request as the configured development user."""

    def __init__(self, identity: FixedIdentity) -> None:
        self.identity = identity

    def ensure_user(self, db: Session) -> User:
        """Return the dev user row, creating it on first use.

        An existing row keeps whatever ``is_admin`` value it already has.
        """
        user = user_repo.get_user(db, self.identity.user_id)
        if user is not None:
            return user
        return user_repo.create_user(
            db,
            user_id=self.identity.user_id,
            username=self.identity.username,
            kind=UserKind.LOCAL,
            email=self.identity.email,
            is_admin=self.identity.is_admin,
        )

    def resolve(self, db: Session, credentials: Credentials) -> User | None:
        return self.ensure_user(db)


class TokenIdentityResolver:
    """Validate identity-provider JWTs and session cookies."""

    def __init__(
        self,
        *,
        secret_key: str,
        algorithms: list[str],
        sessions: SessionStore | None = None,
        audience: str | None = None,
        issuer: str | None = None,
    ) -> None:
        self._secret_key = secret_key
        self._algorithms = algorithms
        self._sessions = sessions
        self._audience = audience
        self._issuer = issuer

    def decode(self, token: str) -> dict[str, object] | None:
        """Return verified claims, or None for any invalid token."""
        options = {"verify_aud": self._audience is not None}
        try:
            claims: dict[str, object] = jwt.decode(
                token,
                self._secret_key,
                algorithms=self._algorithms,
                audience=self._audience,
                issuer=self._issuer,
                options=options,
            )
        except JWTError as exc:
            logger.debug("Rejected bearer token: %s", exc)
            return None
        return claims

    def _provision(self, db: Session, subject: str, claims: dict[str, object]) -> User:
        """Create the federated user for a subject seen for the first time."""
        email = claims.get("email")
        preferred = claims.get("preferred_username") or claims.get("nickname") or subject
        base = _USERNAME_UNSAFE.sub("-", str(preferred)).strip("-")[:48] or "user"
        username = base
        suffix = 1
        while user_repo.get_user_by_username(db, username) is not None:
            suffix += 1
            username = f"{base}-{suffix}"
        logger.info("Provisioning federated user %s for subject %s", username, subject)
        try:
            return user_repo.create_user(
                db,
                username=username,
                kind=UserKind.FEDERATED,
                email=str(email) if email else None,
                auth_subject=subject,
            )
        except IntegrityError:
            # A concurrent request provisioned the same subject first.
            db.rollback()
            user = user_repo.get_user_by_subject(db, subject)
            if user is None:
                raise
            return user

    def resolve(self, db: Session, credentials: Credentials) -> User | None:
        """Return the bearer token's user, else the session's user, else None.

        Raises:
            Unauthorized: A bearer token was presented but is invalid, expired
                or carries no subject.
        """
        if credentials.bearer_token:
            claims = self.decode(credentials.bearer_token)
            subject = claims.get("sub") if claims is not None else None
            if claims is None or not isinstance(subject, str) or not subject:
                raise Unauthorized("Could not validate credentials")
            user = user_repo.get_user_by_subject(db, subject)
            return user if user is not None else self._provision(db, subject, claims)

        if credentials.session_id and self._sessions is not None:
            user_id = self._sessions.get_user_id(credentials.session_id)
            if user_id:
                return user_repo.get_user(db, user_id)
        return None


def build_identity_resolver(settings: Settings, sessions: SessionStore) -> IdentityResolver:
    """Select the resolver for this process from configuration."""
    if not settings.auth_enabled:
        logger.warning("AUTH_ENABLED is false; all requests act as %s", settings.dev_username)
        return FixedIdentityResolver(
            FixedIdentity(
                user_id=settings.dev_user_id,
                username=settings.dev_username,
                email=settings.dev_user_email,
                is_admin=settings.dev_user_is_admin,
            )
        )
    return TokenIdentityResolver(
        secret_key=settings.secret_key,
        algorithms=[settings.jwt_algorithm],
        sessions=sessions,
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
    )
