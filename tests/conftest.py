# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("KV_BACKEND", "memory")
os.environ.setdefault("AUTH_ENABLED", "true")
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from guru_comments.api.v1 import dependencies as deps
from guru_comments.core.settings import settings
from guru_comments.db.session import Base, get_db
from guru_comments.main import app as fastapi_app
from guru_comments.models import User, UserKind
from guru_comments.repositories import user_repo
from guru_comments.services.comment_store import CommentTreeStore, ContentLimits
from guru_comments.services.identity import TokenIdentityResolver
from guru_comments.services.kv import MemoryKVStore
from guru_comments.services.rate_limiter import RateLimiter, RateLimitPolicy, RateLimitRule
from guru_comments.services.sessions import SessionStore

TEST_DB_URL = "sqlite://"


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_080.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def released_blobs() -> list[list[str]]:
    """Collects object keys handed to the blob-release hook."""
    return []


@pytest.fixture()
def store(db_session: Session, released_blobs: list[list[str]]) -> CommentTreeStore:
    return CommentTreeStore(
        db_session,
        ContentLimits(max_title_length=50, max_comment_length=200, max_attachment_size=1024),
        on_blobs_released=released_blobs.append,
    )


def _make_user(db: Session, username: str, *, is_admin: bool = False) -> User:
    return user_repo.create_user(
        db,
        user_id=f"{username}-id",
        username=username,
        kind=UserKind.FEDERATED,
        email=f"{username}@example.test",
        auth_subject=f"idp|{username}",
        is_admin=is_admin,
    )


@pytest.fixture()
def alice(db_session: Session) -> User:
    return _make_user(db_session, "alice")


@pytest.fixture()
def bob(db_session: Session) -> User:
    return _make_user(db_session, "bob")


@pytest.fixture()
def admin(db_session: Session) -> User:
    return _make_user(db_session, "root", is_admin=True)


def make_token(subject: str, **claims: Any) -> str:
    payload: dict[str, Any] = {"sub": subject, "exp": datetime.now(UTC) + timedelta(hours=1)}
    payload.update(claims)
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


@pytest.fixture()
def auth_headers() -> Callable[[User], dict[str, str]]:
    """Return a factory building bearer headers for a persisted user."""

    def _headers(user: User) -> dict[str, str]:
        assert user.auth_subject is not None
        return {"Authorization": f"Bearer {make_token(user.auth_subject)}"}

    return _headers


@pytest.fixture()
def kv_store() -> MemoryKVStore:
    return MemoryKVStore()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def session_store(kv_store: MemoryKVStore) -> SessionStore:
    return SessionStore(kv_store, ttl_seconds=3600)


@pytest.fixture()
def app(
    db_session: Session,
    kv_store: MemoryKVStore,
    session_store: SessionStore,
    released_blobs: list[list[str]],
) -> Iterator[FastAPI]:
    resolver = TokenIdentityResolver(
        secret_key=settings.secret_key,
        algorithms=[settings.jwt_algorithm],
        sessions=session_store,
    )

    def _get_db_override() -> Iterator[Session]:
        yield db_session

    overrides: dict[Callable[..., Any], Callable[..., Any]] = {
        get_db: _get_db_override,
        deps.get_kv_store: lambda: kv_store,
        deps.get_session_store: lambda: session_store,
        deps.get_identity_resolver: lambda: resolver,
        deps.get_rate_limiter: lambda: None,
        deps.get_comment_store: lambda: CommentTreeStore(
            db_session, ContentLimits.from_settings(settings), on_blobs_released=released_blobs.append
        ),
    }
    fastapi_app.dependency_overrides.update(overrides)
    try:
        yield fastapi_app
    finally:
        for dependency in overrides:
            fastapi_app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def limiter(app: FastAPI, kv_store: MemoryKVStore, clock: FakeClock) -> RateLimiter:
    """Enable throttling for API tests with small quotas."""
    limiter = RateLimiter(
        kv_store,
        RateLimitPolicy(
            authenticated_read=RateLimitRule(5),
            authenticated_write=RateLimitRule(2),
            anonymous_read=RateLimitRule(1),
            anonymous_write=RateLimitRule(0),
        ),
        clock=clock,
    )
    app.dependency_overrides[deps.get_rate_limiter] = lambda: limiter
    return limiter
