"""Tests for the presence registry."""

import pytest

from realtime.presence import PresenceRegistry


@pytest.fixture
def changes():
    return []


@pytest.fixture
def registry(changes):
    return PresenceRegistry(broadcaster=lambda uid, online: changes.append((uid, online)))


def _assert_inverse(registry):
    for uid in registry.online_users():
        sid = registry.connection_for(uid)
        assert registry.user_for(sid) == uid


def test_authenticate_and_disconnect(registry, changes):
    assert registry.authenticate("alice", "sid-1") is None
    assert registry.is_online("alice")
    assert registry.connection_for("alice") == "sid-1"
    assert registry.user_for("sid-1") == "alice"

    assert registry.disconnect("sid-1") == "alice"
    assert not registry.is_online("alice")
    assert registry.connection_for("alice") is None
    assert registry.user_for("sid-1") is None
    assert changes == [("alice", True), ("alice", False)]


def test_disconnect_of_unauthenticated_connection_is_noop(registry, changes):
    assert registry.disconnect("never-seen") is None
    assert changes == []


def test_new_connection_replaces_old_one(registry, changes):
    registry.authenticate("alice", "sid-1")
    assert registry.authenticate("alice", "sid-2") == "sid-1"

    assert registry.connection_for("alice") == "sid-2"
    assert registry.user_for("sid-1") is None
    _assert_inverse(registry)

    # The orphaned connection closing later must not take alice offline.
    assert registry.disconnect("sid-1") is None
    assert registry.is_online("alice")
    assert changes == [("alice", True), ("alice", True)]


def test_reauthenticating_same_connection_as_another_user(registry, changes):
    registry.authenticate("alice", "sid-1")
    registry.authenticate("bob", "sid-1")

    assert not registry.is_online("alice")
    assert registry.user_for("sid-1") == "bob"
    _assert_inverse(registry)
    assert ("alice", False) in changes


def test_same_connection_same_user_is_not_a_replacement(registry):
    registry.authenticate("alice", "sid-1")
    assert registry.authenticate("alice", "sid-1") is None
    assert registry.online_users() == ["alice"]


def test_instances_are_isolated():
    one, two = PresenceRegistry(), PresenceRegistry()
    one.authenticate("alice", "sid-1")
    assert not two.is_online("alice")
