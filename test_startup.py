"""
Tests for startup housekeeping: secret key check, stale flow cleanup, entry point.
Run with: pytest test_startup.py
"""
import logging
from datetime import timedelta

import pytest

import run as entrypoint
from authcode.config import DEFAULT_SECRET_KEY, Settings, check_secret_key
from authcode.models.flow_session import FlowSession, FlowStep
from authcode.models.verification_code import Purpose
from authcode.services.flow_service import purge_stale_flows


def _flow(db_session, clock, expires_in, completed=False):
    now = clock.now()
    flow = FlowSession(
        purpose=Purpose.PASSWORD_RESET.value,
        step=FlowStep.COLLECT_IDENTIFIER.value,
        created_at=now,
        expires_at=now + expires_in,
        completed_at=now if completed else None,
    )
    db_session.add(flow)
    db_session.commit()
    return flow.id


def test_default_secret_key_refused_outside_debug():
    with pytest.raises(RuntimeError):
        check_secret_key(Settings(SECRET_KEY=DEFAULT_SECRET_KEY, DEBUG=False))


def test_default_secret_key_warns_in_debug(caplog):
    caplog.set_level(logging.WARNING, logger="authcode")
    check_secret_key(Settings(SECRET_KEY=DEFAULT_SECRET_KEY, DEBUG=True))
    assert "SECRET_KEY" in caplog.text


def test_configured_secret_key_passes():
    check_secret_key(Settings(SECRET_KEY="a-real-secret", DEBUG=False))


def test_purge_removes_completed_and_expired_flows(db_session, clock):
    live = _flow(db_session, clock, timedelta(minutes=30))
    _flow(db_session, clock, timedelta(minutes=30), completed=True)
    _flow(db_session, clock, timedelta(minutes=-1))

    assert purge_stale_flows(db_session, clock.now()) == 2
    assert [f.id for f in db_session.query(FlowSession).all()] == [live]


def test_entrypoint_serves_the_app(monkeypatch):
    calls = []
    monkeypatch.setattr(entrypoint.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.setenv("PORT", "9123")

    entrypoint.main()

    app, kwargs = calls[0]
    assert app == "authcode.main:app"
    assert kwargs["port"] == 9123
