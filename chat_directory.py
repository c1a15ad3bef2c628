"""chat_directory.py

Per-user chat lists (the ``chats`` collection): who appears in a user's
sidebar, 1:1 peers and groups alike.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from errors import ForbiddenError, NotFoundError, clean_text
from routing import key_for

log = logging.getLogger(__name__)


def _peer_entry(user: dict, profile: dict) -> dict:
    return {
        "id": user["id"],
        "username": user.get("username"),
        "firstName": user.get("firstName"),
        "lastName": user.get("lastName"),
        "avatar": profile.get("avatar"),
        "isGroup": False,
    }


def _group_entry(group: dict) -> dict:
    return {"id": group["id"], "name": group.get("name"), "avatar": group.get("avatar"), "isGroup": True}


class ChatDirectory:
    def __init__(self, store, accounts, conversations):
        self.store = store
        self.accounts = accounts
        self.conversations = conversations

    def add_chat(self, user_id: str, target_username: str) -> dict:
        """Link two users both ways and open their shared log."""
        target = self.accounts.find_by_username(clean_text(target_username, "username"))
        if target is None:
            raise NotFoundError("User not found")
        if target["id"] == user_id:
            raise ForbiddenError("Cannot start a chat with yourself")
        if self.accounts.is_blocked_by(user_id, target["id"]):
            raise ForbiddenError("blocked")

        me = self.accounts.require_user(user_id)
        chats = self.store.load("chats")
        mine = chats.setdefault(user_id, [])
        if not any(c.get("id") == target["id"] for c in mine):
            mine.append(_peer_entry(target, self.accounts.get_profile(target["id"])))
        theirs = chats.setdefault(target["id"], [])
        if not any(c.get("id") == user_id for c in theirs):
            theirs.append(_peer_entry(me, self.accounts.get_profile(user_id)))
        self.store.save("chats", chats)

        self.conversations.ensure(key_for(user_id, target["id"]))
        log.info("Chat opened: %s <-> %s", user_id, target["id"])
        return _peer_entry(target, self.accounts.get_profile(target["id"]))

    def list_chats(self, user_id: str, is_online: Callable[[str], bool]) -> list:
        return [dict(c, online=is_online(c.get("id"))) for c in self.store.load("chats").get(user_id) or []]

    # ───── group entries ─────

    def add_group(self, member_ids: Iterable[str], group: dict) -> None:
        chats = self.store.load("chats")
        for mid in member_ids:
            entries = chats.setdefault(mid, [])
            if not any(c.get("id") == group["id"] for c in entries):
                entries.append(_group_entry(group))
        self.store.save("chats", chats)

    def remove_group(self, member_id: str, group_id: str) -> None:
        chats = self.store.load("chats")
        if member_id in chats:
            chats[member_id] = [c for c in chats[member_id] if c.get("id") != group_id]
            self.store.save("chats", chats)

    def refresh_group(self, member_ids: Iterable[str], group: dict) -> None:
        chats = self.store.load("chats")
        for mid in member_ids:
            entries = chats.get(mid) or []
            for i, c in enumerate(entries):
                if c.get("id") == group["id"]:
                    entries[i] = _group_entry(group)
        self.store.save("chats", chats)
