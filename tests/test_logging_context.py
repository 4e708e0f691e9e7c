from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from subtracker.context import reset_correlation_id, set_correlation_id
from subtracker.core.config import get_settings
from subtracker.core.database import Base, get_db
from subtracker.logging import CorrelationIdFilter, JsonLogFormatter
from subtracker.main import app
from subtracker.middleware.rate_limit import reset_rate_limiter


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
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _auth(sub: str = "user-1") -> dict[str, str]:
    settings = get_settings()
    token = jwt.encode({"sub": sub, "roles": ["user"]}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}


def test_logs_include_correlation_id_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    subscription_id = uuid.uuid4()
    response = client.get(
        f"/api/v1/subscriptions/{subscription_id}",
        headers={"X-Correlation-Id": "abc-123", **_auth()},
    )
    assert response.status_code == 404

    records = [record for record in caplog.records if record.name == "subtracker.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/v1/subscriptions/{subscription_id}"
        and getattr(record, "status_code", None) == 404
        and getattr(record, "user_id", None) == "user-1"
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_subscription_mutations_are_logged_with_context(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.post(
        "/api/v1/subscriptions",
        json={
            "name": "Log Subscription",
            "price": 12,
            "frequency": "monthly",
            "category": "technology",
            "payment_method": "PayPal",
            "start_date": "2020-01-01",
        },
        headers={"X-Correlation-Id": "log-corr-1", **_auth()},
    )
    assert response.status_code == 201
    subscription_id = response.json()["id"]

    service_records = [record for record in caplog.records if record.name == "subtracker.subscription"]
    assert any(
        record.getMessage() == "subscription.created"
        and getattr(record, "subscription_id", None) == subscription_id
        and getattr(record, "frequency", None) == "monthly"
        and getattr(record, "status", None) == "expired"
        and getattr(record, "correlation_id", None) == "log-corr-1"
        for record in service_records
    )

    lifecycle_records = [record for record in caplog.records if record.name == "subtracker.lifecycle"]
    assert any(
        record.levelno == logging.WARNING
        and getattr(record, "event_name", None) == "subscription.expired"
        and getattr(record, "subscription_id", None) == subscription_id
        for record in lifecycle_records
    )


def test_json_formatter_emits_known_fields_only() -> None:
    token = set_correlation_id("fmt-corr")
    try:
        record = logging.makeLogRecord(
            {
                "name": "subtracker.subscription",
                "levelname": "INFO",
                "levelno": logging.INFO,
                "msg": "subscription.updated",
                "subscription_id": "sub-1",
                "window_days": 30,
                "secret_token": "do-not-log",
            }
        )
        CorrelationIdFilter().filter(record)
        payload = json.loads(JsonLogFormatter().format(record))
    finally:
        reset_correlation_id(token)

    assert payload["msg"] == "subscription.updated"
    assert payload["logger"] == "subtracker.subscription"
    assert payload["correlation_id"] == "fmt-corr"
    assert payload["fields"] == {"subscription_id": "sub-1", "window_days": 30}
