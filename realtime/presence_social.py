"""Socket.IO handlers: authentication, presence and typing indicators."""

from __future__ import annotations

import logging

from flask import request
from flask_jwt_extended import decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from errors import AuthError

log = logging.getLogger(__name__)


def _token_from(data) -> str | None:
    if isinstance(data, str):
        return data.strip() or None
    if isinstance(data, dict):
        token = data.get("token")
        return str(token).strip() if token else None
    return None


def _chat_id(data) -> str | None:
    return data.get("chatId") if isinstance(data, dict) else None


def register(socketio, settings, services):
    """Register Socket.IO event handlers for this module."""
    presence = services.presence
    dispatcher = services.dispatcher
    accounts = services.accounts

    def _identity_from_token(token: str | None) -> str:
        if not token:
            raise AuthError("Missing token")
        try:
            claims = decode_token(token)
        except (JWTExtendedException, PyJWTError) as exc:
            raise AuthError("Invalid token") from exc
        user = accounts.check_session(claims.get("sub"), claims.get("tok"))
        return user["id"]

    @socketio.on("connect")
    def handle_connect(auth=None):
        log.debug("Socket connected: %s", request.sid)

    @socketio.on("authenticate")
    def handle_authenticate(data=None):
        sid = request.sid
        try:
            user_id = _identity_from_token(_token_from(data))
        except AuthError as exc:
            log.info("Socket auth failed for %s: %s", sid, exc.message)
            return {"success": False, "error": exc.kind}

        replaced = presence.authenticate(user_id, sid)
        if replaced:
            log.info("Session %s for %s replaced by %s", replaced, user_id, sid)
        return {"success": True, "userId": user_id}

    @socketio.on("typing")
    def handle_typing(data=None):
        dispatcher.relay_typing(request.sid, _chat_id(data), typing=True)

    @socketio.on("stop-typing")
    def handle_stop_typing(data=None):
        dispatcher.relay_typing(request.sid, _chat_id(data), typing=False)

    @socketio.on("disconnect")
    def handle_disconnect(*args, **kwargs):
        # Socket.IO may pass a reason depending on version.
        sid = request.sid
        if presence.disconnect(sid) is None:
            log.debug("Disconnect from unauthenticated SID: %s", sid)
