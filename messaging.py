"""messaging.py

Client actions on conversations: mutate the log, persist it, then push the
change to whichever participants are online.

``chat_id`` is what the client has open: the peer's user id for a 1:1 chat or
the group id for a group chat. Events carry the ``chatId`` as the receiving
client sees it (the actor's id for 1:1, the group id for groups).
"""

from __future__ import annotations

import logging

from errors import ForbiddenError, NotFoundError, ValidationError
from routing import key_for, key_for_group

log = logging.getLogger(__name__)


class MessagingService:
    def __init__(self, conversations, groups, accounts, dispatcher):
        self.conversations = conversations
        self.groups = groups
        self.accounts = accounts
        self.dispatcher = dispatcher

    # ───── addressing ─────

    def _group_for(self, actor: str, group_id: str) -> dict:
        group = self.groups.find(group_id)
        if group is None:
            raise NotFoundError("Group not found")
        if not self.groups.is_member(group_id, actor):
            raise ForbiddenError("Not a member of this group")
        return group

    def _resolve(self, actor: str, chat_id: str) -> tuple[str, dict | None]:
        if not chat_id:
            raise ValidationError("chatId is required")
        group = self.groups.find(chat_id)
        if group is not None:
            return key_for_group(chat_id), self._group_for(actor, chat_id)
        return key_for(actor, chat_id), None

    def _push_update(self, actor: str, chat_id: str, group: dict | None, changes: dict) -> None:
        if group is None:
            self.dispatcher.notify(chat_id, "message-updated", dict(changes, chatId=actor))
            return
        others = [m for m in group["members"] if m != actor]
        self.dispatcher.notify_group(others, "message-updated", lambda _m: dict(changes, chatId=chat_id))

    # ───── send ─────

    def send_direct(self, sender: str, peer: str, **content) -> dict:
        if not peer:
            raise ValidationError("chatId is required")
        self.accounts.require_user(peer)
        msg = self.conversations.append(key_for(sender, peer), sender, **content)

        # Peer sees the chat under the sender's id; the sender's own echo under the peer's.
        self.dispatcher.notify(peer, "new-message", {"chatId": sender, "message": dict(msg, sent=False)})
        if peer != sender:
            self.dispatcher.notify(sender, "new-message", {"chatId": peer, "message": dict(msg, sent=True)})
        log.info("Message %s: %s -> %s", msg["id"], sender, peer)
        return msg

    def send_group(self, sender: str, group_id: str, **content) -> dict:
        self._group_for(sender, group_id)
        msg = self.conversations.append(key_for_group(group_id), sender, **content)
        self.dispatcher.notify_group(
            self.groups.members(group_id),
            "new-message",
            lambda member: {"chatId": group_id, "message": dict(msg, sent=member == sender)},
        )
        log.info("Group message %s: %s -> group %s", msg["id"], sender, group_id)
        return msg

    # ───── read ─────

    def list_direct(self, viewer: str, peer: str) -> list:
        return self.conversations.list(key_for(viewer, peer), viewer, self.accounts.display_name)

    def list_group(self, viewer: str, group_id: str) -> list:
        self._group_for(viewer, group_id)
        return self.conversations.list(key_for_group(group_id), viewer, self.accounts.display_name)

    # ───── mutate ─────

    def react(self, actor: str, chat_id: str, message_id: str, emoji: str) -> list:
        key, group = self._resolve(actor, chat_id)
        reactions = self.conversations.react(key, message_id, actor, emoji)
        self._push_update(actor, chat_id, group, {"messageId": message_id, "reactions": reactions})
        return reactions

    def edit(self, actor: str, chat_id: str, message_id: str, text: str) -> dict:
        key, group = self._resolve(actor, chat_id)
        msg = self.conversations.edit(key, message_id, actor, text)
        self._push_update(
            actor, chat_id, group,
            {"messageId": message_id, "text": msg["text"], "edited": True, "editTime": msg["editTime"]},
        )
        return msg

    def delete(self, actor: str, chat_id: str, message_id: str) -> dict:
        key, group = self._resolve(actor, chat_id)
        msg = self.conversations.delete(key, message_id, actor)
        self._push_update(actor, chat_id, group, {"messageId": message_id, "deleted": True})
        return msg

    def mark_read(self, reader: str, peer: str) -> int:
        if not peer:
            raise ValidationError("chatId is required")
        changed = self.conversations.mark_read(key_for(reader, peer), reader)
        if changed:
            self.dispatcher.notify(peer, "message-read", {"chatId": reader})
        return changed
