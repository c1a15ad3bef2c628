"""groups.py

Group chats: metadata, membership, and the directory entries that follow them.

Only the creator may change members or metadata; any member may leave. The
group's messages live under ``routing.key_for_group(group_id)``.
"""

from __future__ import annotations

import logging
import uuid

from errors import ForbiddenError, NotFoundError, ValidationError, clean_text
from messages import format_ts, utcnow
from routing import key_for_group
from security import log_audit_event

log = logging.getLogger(__name__)


class GroupService:
    def __init__(self, store, accounts, directory, conversations, now=utcnow):
        self.store = store
        self.accounts = accounts
        self.directory = directory
        self.conversations = conversations
        self.now = now

    def _load(self, group_id: str) -> tuple[dict, dict]:
        groups = self.store.load("groups")
        group = groups.get(group_id)
        if group is None:
            raise NotFoundError("Group not found")
        return groups, group

    @staticmethod
    def _require_creator(group: dict, actor: str) -> None:
        if group.get("creator") != actor:
            raise ForbiddenError("Only the group creator can do that")

    def find(self, group_id: str) -> dict | None:
        return self.store.load("groups").get(group_id)

    def members(self, group_id: str) -> list:
        _, group = self._load(group_id)
        return list(group.get("members") or [])

    def is_member(self, group_id: str, user_id: str) -> bool:
        group = self.find(group_id)
        return bool(group) and user_id in (group.get("members") or [])

    def create(self, creator: str, name: str, description: str = "", avatar: str | None = None, members=None) -> dict:
        name = clean_text(name, "name")
        if not name:
            raise ValidationError("Group name is required")

        ordered = [creator]
        for mid in members or []:
            if not isinstance(mid, str) or not mid:
                raise ValidationError("members must be user ids")
            self.accounts.require_user(mid)
            if mid not in ordered:
                ordered.append(mid)

        group = {
            "id": str(uuid.uuid4()),
            "name": name,
            "description": description or "",
            "avatar": avatar or None,
            "creator": creator,
            "members": ordered,
            "createdAt": format_ts(self.now()),
        }
        groups = self.store.load("groups")
        groups[group["id"]] = group
        self.store.save("groups", groups)

        self.directory.add_group(ordered, group)
        self.conversations.ensure(key_for_group(group["id"]))
        log_audit_event(creator, "group_create", target=group["id"], details=name)
        return group

    def add_member(self, actor: str, group_id: str, user_id: str) -> dict:
        groups, group = self._load(group_id)
        self._require_creator(group, actor)
        if not user_id:
            raise ValidationError("userId is required")
        self.accounts.require_user(user_id)
        if user_id not in group["members"]:
            group["members"].append(user_id)
            self.store.save("groups", groups)
            self.directory.add_group([user_id], group)
            log_audit_event(actor, "group_add_member", target=group_id, details=user_id)
        return group

    def remove_member(self, actor: str, group_id: str, user_id: str) -> dict:
        groups, group = self._load(group_id)
        self._require_creator(group, actor)
        if user_id == group["creator"]:
            raise ForbiddenError("The creator cannot be removed")
        group["members"] = [m for m in group["members"] if m != user_id]
        self.store.save("groups", groups)
        self.directory.remove_group(user_id, group_id)
        log_audit_event(actor, "group_remove_member", target=group_id, details=user_id)
        return group

    def leave(self, user_id: str, group_id: str) -> str:
        """Remove the caller from the group; return their username for the UI notice."""
        groups, group = self._load(group_id)
        group["members"] = [m for m in group["members"] if m != user_id]
        self.store.save("groups", groups)
        self.directory.remove_group(user_id, group_id)
        log_audit_event(user_id, "group_leave", target=group_id)
        user = self.accounts.find_user(user_id)
        return (user or {}).get("username") or "User"

    def update(self, actor: str, group_id: str, **changes) -> dict:
        groups, group = self._load(group_id)
        self._require_creator(group, actor)
        name = clean_text(changes.get("name"), "name")
        if name:
            group["name"] = name
        for field in ("description", "avatar"):
            if field in changes and changes[field] is not None:
                group[field] = changes[field]
        self.store.save("groups", groups)
        self.directory.refresh_group(group["members"], group)
        return group

    def get(self, group_id: str) -> dict:
        """The group with member ids resolved to profiles; unknown users are omitted."""
        _, group = self._load(group_id)
        members = []
        for mid in group.get("members") or []:
            user = self.accounts.find_user(mid)
            if user is None:
                continue
            profile = self.accounts.get_profile(mid)
            members.append({
                "id": mid,
                "username": user.get("username"),
                "firstName": profile.get("firstName"),
                "lastName": profile.get("lastName"),
                "avatar": profile.get("avatar"),
            })
        return dict(group, members=members)
