"""
Pytest configuration and shared fixtures.

Every test gets its own JSON file store under tmp_path, a controllable clock,
and an emitter that records events instead of sending them.
"""

from datetime import datetime, timedelta, timezone

import pytest

from server_init import build_services, create_app
from storage import JsonFileStore


class FakeClock:
    def __init__(self, start=None):
        self.current = start or datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)


class RecordingEmitter:
    """Stand-in for SocketIO.emit: keeps (event, payload, to) tuples."""

    def __init__(self):
        self.events = []

    def __call__(self, event, payload, to=None):
        self.events.append((event, payload, to))

    def to(self, sid, event=None):
        return [p for (e, p, t) in self.events if t == sid and (event is None or e == event)]

    def named(self, event):
        return [(p, t) for (e, p, t) in self.events if e == event]

    def clear(self):
        self.events.clear()


TEST_SETTINGS = {
    "secret_key": "test-secret-key-" + "x" * 48,
    "jwt_secret": "test-jwt-secret-" + "y" * 48,
    "ratelimit_enabled": False,
}


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(tmp_path / "data")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def services(store, emitter, clock):
    return build_services(store, emitter, dict(TEST_SETTINGS), now=clock)


@pytest.fixture
def make_user(services):
    """Register a user directly through the account service; returns its id."""

    def _make(username, first_name="", last_name="", password="pw-" + "secret"):
        return services.accounts.register(username, password, first_name=first_name, last_name=last_name)["id"]

    return _make


@pytest.fixture
def app_bundle(store, clock):
    app, socketio = create_app(dict(TEST_SETTINGS), store=store, now=clock)
    app.config["TESTING"] = True
    return app, socketio


@pytest.fixture
def app(app_bundle):
    return app_bundle[0]


@pytest.fixture
def socketio(app_bundle):
    return app_bundle[1]


@pytest.fixture
def client(app):
    return app.test_client()
