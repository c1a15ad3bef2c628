"""Presence registry: which Socket.IO session belongs to which user.

One live session per user. The two maps are kept inverse of each other under a
single lock; a newer authentication for the same user replaces the older sid.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

log = logging.getLogger(__name__)


class PresenceRegistry:
    def __init__(self, broadcaster: Optional[Callable[[str, bool], None]] = None):
        self._by_user: dict[str, str] = {}
        self._by_sid: dict[str, str] = {}
        self._lock = threading.Lock()
        self.broadcaster = broadcaster

    def _broadcast(self, user_id: str, online: bool) -> None:
        if self.broadcaster is not None:
            self.broadcaster(user_id, online)

    def authenticate(self, user_id: str, sid: str) -> Optional[str]:
        """Bind ``user_id`` to ``sid``; return the sid it replaced, if any.

        The replaced connection stays open. Closing it is up to the caller.
        """
        displaced_user = None
        with self._lock:
            old_sid = self._by_user.get(user_id)
            if old_sid is not None and old_sid != sid:
                self._by_sid.pop(old_sid, None)

            previous_owner = self._by_sid.get(sid)
            if previous_owner is not None and previous_owner != user_id:
                self._by_user.pop(previous_owner, None)
                displaced_user = previous_owner

            self._by_user[user_id] = sid
            self._by_sid[sid] = user_id

        if displaced_user is not None:
            log.info("User offline (session re-authenticated): %s", displaced_user)
            self._broadcast(displaced_user, False)

        log.info("User online: %s (sid=%s)", user_id, sid)
        self._broadcast(user_id, True)
        return old_sid if old_sid != sid else None

    def disconnect(self, sid: str) -> Optional[str]:
        """Drop the session; return its user id, or None if it was not bound."""
        with self._lock:
            user_id = self._by_sid.pop(sid, None)
            if user_id is None:
                return None
            if self._by_user.get(user_id) == sid:
                del self._by_user[user_id]

        log.info("User offline: %s", user_id)
        self._broadcast(user_id, False)
        return user_id

    def is_online(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._by_user

    def connection_for(self, user_id: str) -> Optional[str]:
        with self._lock:
            return self._by_user.get(user_id)

    def user_for(self, sid: str) -> Optional[str]:
        with self._lock:
            return self._by_sid.get(sid)

    def online_users(self) -> list[str]:
        with self._lock:
            return list(self._by_user)
