#!/usr/bin/env python3
"""
server_init.py
Builds and runs the Mimigram Flask + Socket.IO application.

create_app() wires one set of services (store, conversation log, presence,
dispatcher, ...) per app instance so tests can build isolated servers.
"""

from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_socketio import SocketIO

from accounts import AccountService
from chat_directory import ChatDirectory
from constants import APP_VERSION, get_default_settings
from errors import AuthError, ChatError
from groups import GroupService
from messages import ConversationLog, utcnow
from messaging import MessagingService
from realtime.dispatcher import RealtimeDispatcher
from realtime.presence import PresenceRegistry
from routes_auth import register_auth_routes
from routes_chat import chat_bp
from routes_groups import register_group_routes
from socket_handlers import register_socketio_handlers
from stickers import StickerService
from storage import open_store

log = logging.getLogger(__name__)


@dataclass
class ChatServices:
    store: Any
    conversations: ConversationLog
    presence: PresenceRegistry
    dispatcher: RealtimeDispatcher
    accounts: AccountService
    directory: ChatDirectory
    groups: GroupService
    messaging: MessagingService
    stickers: StickerService


def build_services(store, emit, settings: Dict[str, Any], now=utcnow) -> ChatServices:
    """Wire the chat services around one store and one ``emit`` callable."""
    conversations = ConversationLog(
        store,
        now=now,
        edit_window_minutes=int(settings.get("edit_window_minutes") or 30),
        serialize_writes=bool(settings.get("serialize_conversation_writes", False)),
    )
    presence = PresenceRegistry()
    dispatcher = RealtimeDispatcher(emit, presence)
    presence.broadcaster = dispatcher.broadcast_presence

    accounts = AccountService(store)
    directory = ChatDirectory(store, accounts, conversations)
    groups = GroupService(store, accounts, directory, conversations, now=now)
    return ChatServices(
        store=store,
        conversations=conversations,
        presence=presence,
        dispatcher=dispatcher,
        accounts=accounts,
        directory=directory,
        groups=groups,
        messaging=MessagingService(conversations, groups, accounts, dispatcher),
        stickers=StickerService(store),
    )


def _normalize_cors_origins(val):
    if val is None:
        return None
    if isinstance(val, str):
        items = [x.strip() for x in val.split(",") if x.strip()]
        return items or None
    if isinstance(val, (list, tuple, set)):
        items = [str(x).strip() for x in val if str(x).strip()]
        return items or None
    return None


def create_app(
    settings: Optional[Dict[str, Any]] = None,
    store=None,
    limiter: Optional[Limiter] = None,
    now=utcnow,
) -> tuple[Flask, SocketIO]:
    """Create and configure the Flask + Socket.IO application.

    This function does **not** start a server. It is safe to import from
    ``wsgi.py``.
    """
    merged = get_default_settings()
    merged.update(settings or {})
    settings = merged

    app = Flask(__name__)
    app.config["MIMIGRAM_SETTINGS"] = settings
    app.config.update(
        SECRET_KEY=_ensure_secret(settings, "secret_key", "SECRET_KEY"),
        JWT_SECRET_KEY=_ensure_secret(settings, "jwt_secret", "JWT_SECRET_KEY"),
        JWT_TOKEN_LOCATION=["headers"],
        # Clients send the raw token: "Authorization: <token>"
        JWT_HEADER_TYPE="",
        JWT_ACCESS_TOKEN_EXPIRES=False,
        MAX_CONTENT_LENGTH=int(settings.get("max_json_bytes") or 10 * 1024 * 1024),
        RATELIMIT_ENABLED=bool(settings.get("ratelimit_enabled", True)),
    )

    cors_origins = _normalize_cors_origins(settings.get("cors_allowed_origins"))
    if cors_origins:
        CORS(app, origins=cors_origins)

    socketio = SocketIO(
        app,
        async_mode=settings.get("async_mode") or "threading",
        cors_allowed_origins=cors_origins,
        logger=False,
        engineio_logger=False,
    )
    app.config["MIMIGRAM_SOCKETIO"] = socketio

    if store is None:
        store = open_store(settings)
    services = build_services(store, socketio.emit, settings, now=now)
    app.config["MIMIGRAM_SERVICES"] = services

    # ------------------------------------------------------------------
    # JWT: tokens are only valid while their nonce matches the user's
    # ------------------------------------------------------------------
    jwt = JWTManager(app)

    @jwt.token_in_blocklist_loader
    def _token_in_blocklist(jwt_header, jwt_payload):
        try:
            services.accounts.check_session(jwt_payload.get("sub"), jwt_payload.get("tok"))
        except AuthError:
            return True
        return False

    def _auth_failure(message: str):
        return jsonify(AuthError(message).to_dict()), 401

    @jwt.unauthorized_loader
    def _missing_token(reason):
        return _auth_failure("Missing token")

    @jwt.invalid_token_loader
    def _invalid_token(reason):
        return _auth_failure("Invalid token")

    @jwt.revoked_token_loader
    def _revoked_token(jwt_header, jwt_payload):
        return _auth_failure("Invalid token")

    @app.errorhandler(ChatError)
    def _chat_error(exc: ChatError):
        log.debug("%s: %s", exc.kind, exc.message)
        return jsonify(exc.to_dict()), exc.status

    if limiter is None:
        limiter = Limiter(
            key_func=get_remote_address,
            storage_uri=settings.get("rate_limit_storage_uri") or "memory://",
        )
    limiter.init_app(app)
    # Decorated routes only hold a weakref; init_app skips registration when disabled.
    app.extensions["mimigram_limiter"] = limiter

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok", "version": APP_VERSION, "online": len(services.presence.online_users())})

    register_auth_routes(app, settings, services, limiter=limiter)
    register_group_routes(app, settings, services)
    app.register_blueprint(chat_bp)
    register_socketio_handlers(socketio, settings, services)

    return app, socketio


def run_web_server(settings: Dict[str, Any], settings_file: Optional[Path] = None) -> None:
    """Bootstrap the Flask-SocketIO app and run it (dev / single-process)."""
    app, socketio = create_app(settings)

    host = settings.get("host") or "0.0.0.0"
    port = int(settings.get("port") or 3000)
    debug = bool(settings.get("debug") or False)

    log.info("==================== Mimigram Boot ====================")
    log.info("Mimigram version: %s", APP_VERSION)
    log.info("Settings file: %s", str(settings_file) if settings_file else "<none>")
    log.info("Listening on http://%s:%s (debug=%s)", host, port, debug)
    log.info("========================================================")

    # Long-polling floods the access log; drop /socket.io/ lines.
    class _SocketIOAccessFilter(logging.Filter):
        def filter(self, record: logging.LogRecord) -> bool:
            return "/socket.io/" not in record.getMessage()

    logging.getLogger("werkzeug").addFilter(_SocketIOAccessFilter())

    socketio.run(
        app,
        host=host,
        port=port,
        debug=debug,
        use_reloader=False,
        log_output=debug,
        allow_unsafe_werkzeug=True,
    )


# ───── Helpers ─────
def _ensure_secret(settings: Dict[str, Any], key: str, env_name: str) -> str:
    value = settings.get(key) or os.getenv(env_name)
    if value:
        return str(value)

    value = secrets.token_hex(32)
    settings[key] = value
    log.warning("Generated a one-off %s (NOT saved). Tokens will break on restart.", key)
    return value
