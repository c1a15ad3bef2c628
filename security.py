#!/usr/bin/env python3
"""security.py

Password hashing and audit logging.

  - Hashes: Argon2id (argon2-cffi)
  - verify_password_and_upgrade() returns a fresh hash when parameters changed
  - Audit lines go to the ``mimigram.audit`` logger
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

_audit_log = logging.getLogger("mimigram.audit")

# ────────────────────────────────────────────────────────────
# Audit logging
# ────────────────────────────────────────────────────────────

def log_audit_event(actor: str, action: str, target: str | None = None, details: str | None = None) -> None:
    """Write one audit line (actor, action, target, details)."""
    _audit_log.info("actor=%s action=%s target=%s details=%s", actor, action, target or "-", details or "-")


# ────────────────────────────────────────────────────────────
# Password hashing utilities
# ────────────────────────────────────────────────────────────

_PWH = PasswordHasher(
    time_cost=3,
    memory_cost=65536,  # KiB (64 MiB)
    parallelism=1,
    hash_len=32,
    salt_len=16,
)


def hash_password(password: str) -> str:
    """Hash plaintext password using Argon2id."""
    return _PWH.hash(password)


def verify_password_and_upgrade(password: str, stored_hash: str) -> Tuple[bool, Optional[str]]:
    """Verify password; when the stored hash needs rehashing, also return a new one.

    Returns: (ok, upgraded_hash_or_None)
    """
    if not stored_hash or not stored_hash.startswith("$argon2"):
        return False, None
    try:
        _PWH.verify(stored_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHash):
        return False, None
    if _PWH.check_needs_rehash(stored_hash):
        return True, _PWH.hash(password)
    return True, None
