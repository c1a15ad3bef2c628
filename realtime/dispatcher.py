"""Real-time dispatcher: best-effort pushes to online users.

Delivery to a user without a live session is dropped silently. There is no
queue and no retry; the persisted log is the source of truth for offline users.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from realtime.presence import PresenceRegistry

log = logging.getLogger(__name__)


class RealtimeDispatcher:
    def __init__(self, emit: Callable, presence: PresenceRegistry):
        # emit(event, payload, to=None) -- SocketIO.emit; to=None reaches every client
        self.emit = emit
        self.presence = presence

    def notify(self, target: str, event: str, payload: dict) -> bool:
        """Emit to target's session. Returns True if it was online."""
        sid = self.presence.connection_for(target)
        if sid is None:
            log.debug("Dropped %s for offline user %s", event, target)
            return False
        self.emit(event, payload, to=sid)
        return True

    def notify_group(self, member_ids: Iterable[str], event: str, payload_factory: Callable[[str], dict]) -> list[str]:
        """Emit a per-member payload to every online member; return who got it."""
        delivered = []
        for member in member_ids:
            sid = self.presence.connection_for(member)
            if sid is None:
                continue
            self.emit(event, payload_factory(member), to=sid)
            delivered.append(member)
        return delivered

    def broadcast_presence(self, user_id: str, online: bool) -> None:
        # Everyone connected hears every status change; no contact filtering.
        self.emit("user-status", {"userId": user_id, "online": bool(online)})

    def relay_typing(self, sender_sid: str, target: str, typing: bool = True) -> bool:
        sender = self.presence.user_for(sender_sid)
        if sender is None or not target:
            return False
        event = "user-typing" if typing else "user-stop-typing"
        return self.notify(target, event, {"userId": sender, "chatId": sender})
