"""accounts.py

Users and profiles: registration, login, profile edits, handle search and the
per-profile block list.

A user record keeps a session nonce (``token``) that login rotates. Access
tokens carry that nonce, so logging in again invalidates older tokens.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from errors import AuthError, ConflictError, NotFoundError, ValidationError, clean_text
from security import hash_password, log_audit_event, verify_password_and_upgrade

log = logging.getLogger(__name__)


def _new_nonce() -> str:
    return uuid.uuid4().hex


class AccountService:
    def __init__(self, store):
        self.store = store

    # ───── lookups ─────

    def find_user(self, user_id: str) -> Optional[dict]:
        return next((u for u in self.store.load("users") if u.get("id") == user_id), None)

    def find_by_username(self, username: str) -> Optional[dict]:
        return next((u for u in self.store.load("users") if u.get("username") == username), None)

    def require_user(self, user_id: str) -> dict:
        user = self.find_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def get_profile(self, user_id: str) -> dict:
        return dict(self.store.load("profiles").get(user_id) or {})

    def display_name(self, user_id: str) -> Optional[str]:
        profile = self.store.load("profiles").get(user_id)
        if not profile:
            return None
        name = f"{profile.get('firstName') or ''} {profile.get('lastName') or ''}".strip()
        return name or profile.get("username") or None

    # ───── registration / login ─────

    def register(self, username: str, password: str, first_name: str = "", last_name: str = "") -> dict:
        username = clean_text(username, "username")
        if not username or not password:
            raise ValidationError("username and password are required")
        if not isinstance(password, str):
            raise ValidationError("password must be a string")

        users = self.store.load("users")
        if any(u.get("username") == username for u in users):
            raise ConflictError("Username already taken")

        user = {
            "id": str(uuid.uuid4()),
            "firstName": first_name or "",
            "lastName": last_name or "",
            "username": username,
            "password": hash_password(password),
            "token": _new_nonce(),
        }
        users.append(user)
        self.store.save("users", users)

        profiles = self.store.load("profiles")
        profiles[user["id"]] = {
            "firstName": user["firstName"],
            "lastName": user["lastName"],
            "username": username,
            "avatar": None,
            "bio": "",
            "blockedUsers": [],
        }
        self.store.save("profiles", profiles)

        log_audit_event(user["id"], "register", details=username)
        return user

    def login(self, username: str, password: str) -> dict:
        users = self.store.load("users")
        user = next((u for u in users if u.get("username") == username), None)
        if user is None:
            raise AuthError("Wrong username or password")

        if not isinstance(password, str):
            raise AuthError("Wrong username or password")
        ok, upgraded = verify_password_and_upgrade(password, user.get("password") or "")
        if not ok:
            raise AuthError("Wrong username or password")
        if upgraded:
            user["password"] = upgraded

        user["token"] = _new_nonce()
        self.store.save("users", users)
        log_audit_event(user["id"], "login")
        return user

    def check_session(self, user_id: str, nonce: str | None) -> dict:
        user = self.find_user(user_id) if user_id else None
        if user is None or not nonce or user.get("token") != nonce:
            raise AuthError("Invalid token")
        return user

    # ───── profile ─────

    def update_profile(self, user_id: str, **changes) -> dict:
        users = self.store.load("users")
        user = next((u for u in users if u.get("id") == user_id), None)
        if user is None:
            raise NotFoundError("User not found")

        new_username = clean_text(changes.get("username"), "username")
        if new_username and new_username != user["username"]:
            if any(u.get("username") == new_username for u in users):
                raise ConflictError("Username already taken")

        if new_username:
            user["username"] = new_username
        for field in ("firstName", "lastName"):
            value = changes.get(field)
            if value:
                user[field] = value
        self.store.save("users", users)

        profiles = self.store.load("profiles")
        profile = profiles.get(user_id) or {}
        for field in ("firstName", "lastName", "username"):
            profile[field] = user.get(field) or ""
        # avatar/bio: an explicit null clears, an absent key keeps
        for field, empty in (("avatar", None), ("bio", "")):
            if field in changes:
                profile[field] = changes[field] if changes[field] is not None else empty
            else:
                profile.setdefault(field, empty)
        profile.setdefault("blockedUsers", [])
        profiles[user_id] = profile
        self.store.save("profiles", profiles)
        return dict(profile)

    def search(self, username: str, exclude: str | None = None) -> Optional[dict]:
        if not username:
            return None
        found = next(
            (u for u in self.store.load("users") if u.get("username") == username and u.get("id") != exclude),
            None,
        )
        if found is None:
            return None
        profile = self.get_profile(found["id"])
        return {
            "id": found["id"],
            "username": found["username"],
            "firstName": found.get("firstName"),
            "lastName": found.get("lastName"),
            "avatar": profile.get("avatar"),
        }

    # ───── block list ─────

    def is_blocked_by(self, user_id: str, blocker_id: str) -> bool:
        """True if ``blocker_id`` has blocked ``user_id``."""
        return user_id in (self.get_profile(blocker_id).get("blockedUsers") or [])

    def _set_blocked(self, user_id: str, target_id: str, blocked: bool) -> list:
        if target_id == user_id:
            raise ValidationError("Cannot block yourself")
        self.require_user(target_id)
        profiles = self.store.load("profiles")
        profile = profiles.setdefault(user_id, {})
        current = [b for b in (profile.get("blockedUsers") or []) if b != target_id]
        if blocked:
            current.append(target_id)
        profile["blockedUsers"] = current
        self.store.save("profiles", profiles)
        return list(current)

    def block(self, user_id: str, target_id: str) -> list:
        return self._set_blocked(user_id, target_id, True)

    def unblock(self, user_id: str, target_id: str) -> list:
        return self._set_blocked(user_id, target_id, False)
