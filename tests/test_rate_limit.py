from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from subtracker.core.config import get_settings
from subtracker.core.database import Base, get_db
from subtracker.main import app
from subtracker.middleware.rate_limit import RateDecision, TokenBucketLimiter, reset_rate_limiter


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def configure_rate_limiter_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "false")
    monkeypatch.setenv("RATE_LIMIT_SUBSCRIPTION_MUTATIONS_PER_MINUTE", "3")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    reset_rate_limiter()
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _auth(sub: str) -> dict[str, str]:
    settings = get_settings()
    token = jwt.encode({"sub": sub, "roles": ["user"]}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}


def _payload(index: int) -> dict[str, object]:
    return {
        "name": f"Rate Limit Subscription {index}",
        "price": 1,
        "frequency": "weekly",
        "category": "other",
        "payment_method": "Card",
        "start_date": "2020-01-01",
    }


def test_mutating_subscription_endpoints_are_rate_limited(client: TestClient) -> None:
    responses = [client.post("/api/v1/subscriptions", json=_payload(index), headers=_auth("user-1")) for index in range(5)]

    limited = [response for response in responses if response.status_code == 429]
    assert limited
    assert [response.status_code for response in responses[:3]] == [201, 201, 201]

    first_limited = limited[0]
    body = first_limited.json()
    assert body["code"] == "subscription_rate_limited"
    assert body["correlation_id"] == first_limited.headers["x-correlation-id"]
    assert body["details"]["retry_after_seconds"] >= 1
    assert first_limited.headers["Retry-After"] == str(body["details"]["retry_after_seconds"])


def test_rate_limit_buckets_are_per_user(client: TestClient) -> None:
    for index in range(3):
        assert client.post("/api/v1/subscriptions", json=_payload(index), headers=_auth("user-1")).status_code == 201

    assert client.post("/api/v1/subscriptions", json=_payload(9), headers=_auth("user-1")).status_code == 429
    assert client.post("/api/v1/subscriptions", json=_payload(9), headers=_auth("user-2")).status_code == 201


def test_get_endpoints_are_not_rate_limited(client: TestClient) -> None:
    create = client.post("/api/v1/subscriptions", json=_payload(0), headers=_auth("user-1"))
    assert create.status_code == 201

    responses = [client.get("/api/v1/subscriptions/user/user-1", headers=_auth("user-1")) for _ in range(10)]
    assert all(response.status_code == 200 for response in responses)


def test_token_bucket_refills_over_the_window() -> None:
    now = [0.0]
    limiter = TokenBucketLimiter(clock=lambda: now[0])

    assert [limiter.take("user-1", capacity=2, window_seconds=4).allowed for _ in range(3)] == [True, True, False]
    assert limiter.take("user-1", capacity=2, window_seconds=4).retry_after == 2

    now[0] = 2.0
    assert limiter.take("user-1", capacity=2, window_seconds=4).allowed
    assert not limiter.take("user-1", capacity=2, window_seconds=4).allowed


def test_token_bucket_with_zero_capacity_always_rejects() -> None:
    decision = TokenBucketLimiter().take("user-1", capacity=0, window_seconds=60)
    assert decision == RateDecision(allowed=False, retry_after=60)
