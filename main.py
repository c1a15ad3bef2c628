#!/usr/bin/env python3
"""main.py

Mimigram server entrypoint.

Settings come from ``server_config.json`` (plain JSON, optional) layered over
the built-in defaults, then environment variables. Secrets are best kept in
the environment (``SECRET_KEY``, ``JWT_SECRET_KEY``, ``DATABASE_URL``).
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from constants import CONFIG_FILE, get_default_settings, sanitize_postgres_dsn
from server_init import run_web_server


def configure_logging(settings: dict) -> None:
    """Configure root logging: stdout always, plus a log file when one is set."""
    log_level_str = str(settings.get("log_level", "INFO")).upper()
    log_format = settings.get(
        "log_format",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    log_level = getattr(logging, log_level_str, logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    log_file_path = settings.get("log_file_path")
    if log_file_path:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file_path, mode="a", encoding="utf-8"))

    logging.basicConfig(level=log_level, format=log_format, handlers=handlers, force=True)
    logging.info("Logging configured (level=%s)", log_level_str)


def load_settings(path: Path) -> dict:
    """Load settings from JSON over the defaults. Returns defaults if missing or unreadable."""
    settings = get_default_settings()
    if not path.exists():
        return settings

    try:
        with path.open("r", encoding="utf-8") as fp:
            loaded = json.load(fp)
    except (OSError, ValueError) as exc:
        print(f"⚠️  Could not parse {path} as JSON: {exc}")
        print("⚠️  Falling back to defaults.")
        return settings

    if not isinstance(loaded, dict):
        print(f"⚠️  {path} is not a JSON object; falling back to defaults.")
        return settings
    settings.update(loaded)
    return settings


def apply_env_overrides(settings: dict) -> None:
    """Apply env overrides for secrets and runtime deployment."""

    def _bool_env(*names: str) -> bool | None:
        for n in names:
            v = os.getenv(n)
            if v is None:
                continue
            v = v.strip().lower()
            if v in ("1", "true", "yes", "y", "on"):
                return True
            if v in ("0", "false", "no", "n", "off"):
                return False
        return None

    def _str_env(*names: str) -> str | None:
        for n in names:
            v = os.getenv(n)
            if v is not None and v.strip() != "":
                return v.strip()
        return None

    def _int_env(*names: str) -> int | None:
        v = _str_env(*names)
        if v is None:
            return None
        try:
            return int(v)
        except ValueError:
            return None

    db = _str_env("DB_CONNECTION_STRING", "DATABASE_URL")
    if db:
        settings["database_url"] = str(sanitize_postgres_dsn(db))

    secret = _str_env("SECRET_KEY")
    if secret:
        settings["secret_key"] = secret

    jwt_secret = _str_env("JWT_SECRET_KEY", "MIMIGRAM_JWT_SECRET")
    if jwt_secret:
        settings["jwt_secret"] = jwt_secret

    data_dir = _str_env("MIMIGRAM_DATA_DIR")
    if data_dir:
        settings["data_dir"] = data_dir

    host = _str_env("MIMIGRAM_HOST")
    if host:
        settings["host"] = host

    port = _int_env("MIMIGRAM_PORT", "PORT")
    if port:
        settings["port"] = port

    level = _str_env("MIMIGRAM_LOG_LEVEL")
    if level:
        settings["log_level"] = level

    async_mode = _str_env("MIMIGRAM_SOCKETIO_ASYNC")
    if async_mode:
        settings["async_mode"] = async_mode

    serialize = _bool_env("MIMIGRAM_SERIALIZE_WRITES")
    if serialize is not None:
        settings["serialize_conversation_writes"] = serialize

    cors = _str_env("MIMIGRAM_CORS_ORIGINS")
    if cors:
        settings["cors_allowed_origins"] = cors


def resolve_config_path(cli_value: str | None = None) -> Path:
    return Path(cli_value or os.environ.get("MIMIGRAM_CONFIG") or CONFIG_FILE)


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Mimigram chat server")
    p.add_argument("--config", default=None, help="path to server config JSON")
    p.add_argument("--host", default=None, help="bind address (overrides config)")
    p.add_argument("--port", type=int, default=None, help="port (overrides config)")
    return p.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    settings_path = resolve_config_path(args.config)

    settings = load_settings(settings_path)
    apply_env_overrides(settings)
    if args.host:
        settings["host"] = args.host
    if args.port:
        settings["port"] = args.port

    configure_logging(settings)
    run_web_server(settings, settings_file=settings_path)


if __name__ == "__main__":
    main()
