#!/usr/bin/env python3

from __future__ import annotations

import os


# Application version (semantic-ish). Used for /health + logging.
APP_VERSION = "0.3.0"

# Path to the JSON server configuration file
CONFIG_FILE = "server_config.json"

# Default directory for the JSON file store
DEFAULT_DATA_DIR = "data"

# Persisted collections and the value each one starts as.
COLLECTION_DEFAULTS = {
    "users": list,
    "profiles": dict,
    "chats": dict,
    "messages": dict,
    "groups": dict,
    "stickers": dict,
}

# Messages may be edited for this long after they were sent.
EDIT_WINDOW_MINUTES = 30

# 1:1 keys are "<a>-<b>" (sorted); group keys carry a prefix user ids never contain.
DIRECT_KEY_SEPARATOR = "-"
GROUP_KEY_PREFIX = "group:"

# Name shown for a reply target whose author has no profile
UNKNOWN_USER_NAME = "User"


def get_default_settings() -> dict:
    """Built-in defaults; server_config.json and env vars are layered on top."""
    return {
        "host": "0.0.0.0",
        "port": 3000,
        "debug": False,
        "data_dir": DEFAULT_DATA_DIR,
        "database_url": None,
        "log_level": "INFO",
        "log_format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        "log_file_path": "logs/server.log",
        "async_mode": "threading",
        "cors_allowed_origins": None,
        "rate_limit_auth": "30 per minute",
        "rate_limit_storage_uri": "memory://",
        "ratelimit_enabled": True,
        "max_json_bytes": 10 * 1024 * 1024,
        "edit_window_minutes": EDIT_WINDOW_MINUTES,
        "serialize_conversation_writes": False,
    }


def sanitize_postgres_dsn(dsn: str | None) -> str | None:
    """Best-effort sanitiser for Postgres DSNs.

    Strips whitespace, '<' / '>' placeholder delimiters and surrounding quotes.
    """
    if dsn is None:
        return None
    s = str(dsn).strip()
    if not s:
        return s
    if "<" in s or ">" in s:
        s = s.replace("<", "").replace(">", "")
    if (s.startswith('"') and s.endswith('"')) or (s.startswith("'") and s.endswith("'")):
        s = s[1:-1].strip()
    return s


def get_db_connection_string(settings: dict | None = None) -> str | None:
    """Return the PostgreSQL DSN, or None when the JSON file store should be used.

    Priority:
      1) settings['database_url']
      2) environment variables DB_CONNECTION_STRING / DATABASE_URL
    """
    if settings and settings.get("database_url"):
        return sanitize_postgres_dsn(settings["database_url"])

    env = os.getenv("DB_CONNECTION_STRING") or os.getenv("DATABASE_URL")
    if env:
        return sanitize_postgres_dsn(env)
    return None


def redact_postgres_dsn(dsn: str | None) -> str:
    """Hide the password part of a DSN for logging."""
    if not dsn:
        return "<none>"
    if "://" not in dsn or "@" not in dsn:
        return dsn
    scheme, rest = dsn.split("://", 1)
    creds, host = rest.rsplit("@", 1)
    user = creds.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"
