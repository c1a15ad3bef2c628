"""routing.py

Canonical conversation keys.

A 1:1 log is addressed by both participants, so its key is built from the
sorted pair. Group logs live under a ``group:`` namespace; user ids are uuid4
strings and never contain ':' so the two key spaces cannot overlap.
"""

from __future__ import annotations

from constants import DIRECT_KEY_SEPARATOR, GROUP_KEY_PREFIX


def key_for(a: str, b: str) -> str:
    return DIRECT_KEY_SEPARATOR.join(sorted([str(a), str(b)]))


def key_for_group(group_id: str) -> str:
    return f"{GROUP_KEY_PREFIX}{group_id}"


def is_group_key(key: str) -> bool:
    return str(key).startswith(GROUP_KEY_PREFIX)
