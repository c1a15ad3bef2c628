"""messages.py

The conversation log: the ordered message sequence stored under each
conversation key, and the in-place mutations clients may apply to it.

Every operation is a read-modify-write of the whole ``messages`` collection.
Nothing serializes two writers on the same key unless the log was built with
``serialize_writes=True``; without it, a writer that loads before another one
saves will overwrite that save.
"""

from __future__ import annotations

import contextlib
import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from constants import EDIT_WINDOW_MINUTES, UNKNOWN_USER_NAME
from errors import ForbiddenError, NotFoundError, ValidationError, clean_text
from routing import is_group_key

log = logging.getLogger(__name__)

REPLY_SNIPPET_CHARS = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_ts(value: str) -> datetime:
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class KeyedLocks:
    """One lock per conversation key, created on first use."""

    def __init__(self):
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def hold(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
        return lock


class ConversationLog:
    def __init__(
        self,
        store,
        now: Callable[[], datetime] = utcnow,
        edit_window_minutes: int = EDIT_WINDOW_MINUTES,
        serialize_writes: bool = False,
    ):
        self.store = store
        self.now = now
        self.edit_window = timedelta(minutes=int(edit_window_minutes))
        self._locks = KeyedLocks() if serialize_writes else None

    # ───── internals ─────

    def _guard(self, key: str):
        if self._locks is None:
            return contextlib.nullcontext()
        return self._locks.hold(key)

    def _mutate(self, key: str, fn):
        """Load all logs, let ``fn(sequence)`` change one, save when it reports a change.

        ``fn`` returns ``(result, changed)``.
        """
        with self._guard(key):
            logs = self.store.load("messages")
            sequence = logs.setdefault(key, [])
            result, changed = fn(sequence)
            if changed:
                self.store.save("messages", logs)
            return result

    @staticmethod
    def _find(sequence: list, message_id: str) -> dict:
        for msg in sequence:
            if msg.get("id") == message_id:
                return msg
        raise NotFoundError("Message not found")

    @staticmethod
    def _check_owner(msg: dict, actor_id: str) -> None:
        if msg.get("sender") != actor_id:
            raise ForbiddenError("Not the author of this message")

    # ───── reads ─────

    def sequence(self, key: str) -> list:
        return list(self.store.load("messages").get(key) or [])

    def get(self, key: str, message_id: str) -> dict:
        return self._find(self.sequence(key), message_id)

    def ensure(self, key: str) -> None:
        """Create an empty log for key if there is none yet."""
        with self._guard(key):
            logs = self.store.load("messages")
            if key not in logs:
                logs[key] = []
                self.store.save("messages", logs)

    def list(self, key: str, viewer_id: str, resolve_name: Optional[Callable[[str], Optional[str]]] = None) -> list:
        """All messages in display order, as seen by ``viewer_id``.

        ``sent`` and ``replyTo.senderName`` are derived here and never stored.
        """
        sequence = self.sequence(key)
        by_id = {m.get("id"): m for m in sequence}
        out = []
        for msg in sequence:
            data = dict(msg, sent=msg.get("sender") == viewer_id)
            reply = msg.get("replyTo")
            if reply:
                target = by_id.get(reply.get("id"))
                if target is not None:
                    name = resolve_name(target.get("sender")) if resolve_name else None
                    data["replyTo"] = dict(reply, senderName=name or UNKNOWN_USER_NAME)
            out.append(data)
        return out

    # ───── writes ─────

    def append(
        self,
        key: str,
        sender: str,
        text: str | None = None,
        image: str | None = None,
        voice: str | None = None,
        voice_duration: float | None = None,
        reply_to=None,
        is_sticker: bool = False,
        direct: bool | None = None,
    ) -> dict:
        """Append a message. 1:1 messages (``direct``, by default any non-group key) carry receipts."""
        text = clean_text(text)
        if not text and not image and not voice:
            raise ValidationError("Message is empty")
        if direct is None:
            direct = not is_group_key(key)

        def _append(sequence):
            msg = {
                "id": str(uuid.uuid4()),
                "sender": sender,
                "text": text,
                "image": image or None,
                "voice": voice or None,
                "voiceDuration": voice_duration or None,
                "isSticker": bool(is_sticker),
                "time": format_ts(self.now()),
                "reactions": [],
                "edited": False,
                "deleted": False,
                "replyTo": self._reply_ref(sequence, reply_to),
            }
            if direct:
                msg["delivered"] = True
                msg["read"] = False
            sequence.append(msg)
            return msg, True

        msg = self._mutate(key, _append)
        log.debug("Appended message %s to %s", msg["id"], key)
        return msg

    def _reply_ref(self, sequence: list, reply_to) -> dict | None:
        if not reply_to:
            return None
        ref_id = reply_to.get("id") if isinstance(reply_to, dict) else reply_to
        if not ref_id:
            return None
        for target in sequence:
            if target.get("id") == ref_id:
                return {"id": ref_id, "text": (target.get("text") or "")[:REPLY_SNIPPET_CHARS]}
        raise ValidationError("Reply target is not in this conversation")

    def edit(self, key: str, message_id: str, actor_id: str, new_text: str | None) -> dict:
        def _edit(sequence):
            msg = self._find(sequence, message_id)
            self._check_owner(msg, actor_id)
            if msg.get("deleted"):
                raise ForbiddenError("Message was deleted")
            now = self.now()
            if now - parse_ts(msg["time"]) > self.edit_window:
                raise ForbiddenError("Too late to edit this message")
            text = clean_text(new_text)
            if not text:
                raise ValidationError("Message is empty")
            msg["text"] = text
            msg["edited"] = True
            msg["editTime"] = format_ts(now)
            return dict(msg), True

        return self._mutate(key, _edit)

    def delete(self, key: str, message_id: str, actor_id: str) -> dict:
        def _delete(sequence):
            msg = self._find(sequence, message_id)
            self._check_owner(msg, actor_id)
            msg["deleted"] = True
            msg["text"] = ""
            return dict(msg), True

        return self._mutate(key, _delete)

    def react(self, key: str, message_id: str, actor_id: str, emoji: str) -> list:
        if not emoji:
            raise ValidationError("Missing emoji")

        def _react(sequence):
            msg = self._find(sequence, message_id)
            reactions = msg.setdefault("reactions", [])
            group = next((r for r in reactions if r.get("emoji") == emoji), None)
            if group is not None and actor_id in group["users"]:
                group["users"] = [u for u in group["users"] if u != actor_id]
                if not group["users"]:
                    reactions.remove(group)
            elif group is not None:
                group["users"].append(actor_id)
            else:
                reactions.append({"emoji": emoji, "users": [actor_id]})
            return [dict(r, users=list(r["users"])) for r in reactions], True

        return self._mutate(key, _react)

    def mark_read(self, key: str, reader_id: str) -> int:
        """Flip ``read`` on the other participant's unread messages; return how many changed."""

        def _mark(sequence):
            changed = 0
            for msg in sequence:
                if msg.get("sender") != reader_id and msg.get("read") is False:
                    msg["read"] = True
                    changed += 1
            return changed, changed > 0

        return self._mutate(key, _mark)
