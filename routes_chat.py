#!/usr/bin/env python3
"""routes_chat.py

Chat-related HTTP endpoints: the chat directory, 1:1 messages (also used for
reacting/editing/deleting group messages, addressed by group id), read
receipts and stickers.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from errors import ValidationError


chat_bp = Blueprint("chat", __name__)


def _services():
    return current_app.config["MIMIGRAM_SERVICES"]


def _body() -> dict:
    return request.get_json(silent=True) or {}


def message_content(data: dict) -> dict:
    """Message fields accepted from a send request."""
    return {
        "text": data.get("text"),
        "image": data.get("image"),
        "voice": data.get("voice"),
        "voice_duration": data.get("voiceDuration"),
        "reply_to": data.get("replyTo"),
        "is_sticker": bool(data.get("isSticker")),
    }


def _require(data: dict, *fields: str) -> None:
    missing = [f for f in fields if not data.get(f)]
    if missing:
        raise ValidationError(f"Missing field(s): {', '.join(missing)}")


@chat_bp.route("/addChat", methods=["POST"])
@jwt_required()
def add_chat():
    data = _body()
    _require(data, "username")
    chat = _services().directory.add_chat(get_jwt_identity(), data["username"])
    return jsonify({"success": True, "chat": chat})


@chat_bp.route("/chats", methods=["GET"])
@jwt_required()
def list_chats():
    svc = _services()
    return jsonify(svc.directory.list_chats(get_jwt_identity(), svc.presence.is_online))


@chat_bp.route("/sendMessage", methods=["POST"])
@jwt_required()
def send_message():
    data = _body()
    _require(data, "chatId")
    msg = _services().messaging.send_direct(get_jwt_identity(), data["chatId"], **message_content(data))
    return jsonify({"success": True, "message": msg})


@chat_bp.route("/messages/<chat_id>", methods=["GET"])
@jwt_required()
def list_messages(chat_id):
    return jsonify(_services().messaging.list_direct(get_jwt_identity(), chat_id))


@chat_bp.route("/react", methods=["POST"])
@jwt_required()
def react():
    data = _body()
    _require(data, "messageId", "chatId", "emoji")
    reactions = _services().messaging.react(get_jwt_identity(), data["chatId"], data["messageId"], data["emoji"])
    return jsonify({"success": True, "reactions": reactions})


@chat_bp.route("/message/<message_id>", methods=["PATCH"])
@jwt_required()
def edit_message(message_id):
    data = _body()
    _require(data, "chatId")
    msg = _services().messaging.edit(get_jwt_identity(), data["chatId"], message_id, data.get("text"))
    return jsonify({"success": True, "message": msg})


@chat_bp.route("/message/<message_id>", methods=["DELETE"])
@jwt_required()
def delete_message(message_id):
    data = _body()
    _require(data, "chatId")
    _services().messaging.delete(get_jwt_identity(), data["chatId"], message_id)
    return jsonify({"success": True})


@chat_bp.route("/mark-read", methods=["POST"])
@jwt_required()
def mark_read():
    data = _body()
    _require(data, "chatId")
    updated = _services().messaging.mark_read(get_jwt_identity(), data["chatId"])
    return jsonify({"success": True, "updated": updated})


@chat_bp.route("/add-sticker", methods=["POST"])
@jwt_required()
def add_sticker():
    stickers = _services().stickers.add(get_jwt_identity(), _body().get("sticker"))
    return jsonify({"success": True, "count": len(stickers)})


@chat_bp.route("/get-stickers", methods=["GET"])
@jwt_required()
def get_stickers():
    return jsonify(_services().stickers.list(get_jwt_identity()))
