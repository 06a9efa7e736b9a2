"""JSON log lines and request correlation ids."""

import json
import logging
import os
import sys
from datetime import timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from timeclock import create_app
from timeclock.core.config import AppSettings
from timeclock.core.logging import JsonLogFormatter
from timeclock.core.security import REFRESH, InvalidToken, TokenIssuer
from timeclock.db.session import make_engine
from timeclock.middlewares import request_id_ctx_var


@pytest.fixture()
def client():
    settings = AppSettings(DB_URL="sqlite://", BCRYPT_ROUNDS=4)
    app = create_app(settings=settings, engine=make_engine("sqlite://"))
    with TestClient(app) as test_client:
        yield test_client


def test_formatter_merges_extra_data_and_request_id():
    record = logging.LogRecord("timeclock.test", logging.INFO, __file__, 1, "clock.in", None, None)
    record.extra_data = {"project_id": "p1"}
    token = request_id_ctx_var.set("abc123")
    try:
        line = json.loads(JsonLogFormatter().format(record))
    finally:
        request_id_ctx_var.reset(token)
    assert line["message"] == "clock.in"
    assert line["project_id"] == "p1"
    assert line["request_id"] == "abc123"
    assert line["timestamp"].endswith("Z")


def test_supplied_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "trace-42"})
    assert response.headers["X-Request-ID"] == "trace-42"


def test_malformed_request_id_is_replaced(client):
    response = client.get("/health", headers={"X-Request-ID": "bad id\nwith newline"})
    assert response.headers["X-Request-ID"] != "bad id\nwith newline"
    assert len(response.headers["X-Request-ID"]) == 32


def test_request_completed_is_logged(client, caplog):
    with caplog.at_level(logging.INFO, logger="timeclock.request"):
        client.get("/health")
    records = [record for record in caplog.records if record.getMessage() == "request.completed"]
    assert records
    assert records[-1].extra_data["path"] == "/health"
    assert records[-1].extra_data["status"] == 200


def test_token_kinds_are_not_interchangeable():
    issuer = TokenIssuer("secret", access_ttl=timedelta(minutes=5), refresh_ttl=timedelta(days=1))
    pair = issuer.issue("uid-1", email="ada@example.com")
    assert issuer.verify(pair.access_token).sub == "uid-1"
    assert issuer.verify(pair.refresh_token, kind=REFRESH).email == "ada@example.com"
    with pytest.raises(InvalidToken):
        issuer.verify(pair.refresh_token)
    other = TokenIssuer("other", access_ttl=timedelta(minutes=5), refresh_ttl=timedelta(days=1))
    with pytest.raises(InvalidToken):
        other.verify(pair.access_token)


def test_expired_token_is_rejected():
    issuer = TokenIssuer("secret", access_ttl=timedelta(seconds=-10), refresh_ttl=timedelta(days=1))
    with pytest.raises(InvalidToken):
        issuer.verify(issuer.issue("uid-1").access_token)
