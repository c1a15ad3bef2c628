#!/usr/bin/env python3
"""routes_groups.py

Group chats (creator-managed membership).

Implements:
  - POST   /createGroup
  - GET    /group/<group_id>
  - PATCH  /group/<group_id>/update          (creator only)
  - POST   /group/<group_id>/addMember       (creator only)
  - DELETE /group/<group_id>/removeMember    (creator only)
  - POST   /group/<group_id>/leave
  - GET    /group/<group_id>/messages        (members only)
  - POST   /group/<group_id>/sendMessage     (members only)

NOTE:
  - Group messages are stored under the "group:<group_id>" conversation key.
  - React/edit/delete on group messages go through /react and /message/<id>
    with chatId=<group_id>.
"""

from __future__ import annotations

from typing import Any

from flask import jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from errors import ValidationError
from routes_chat import message_content


def register_group_routes(app, settings: dict[str, Any], services) -> None:
    groups = services.groups
    messaging = services.messaging

    def _body() -> dict:
        return request.get_json(silent=True) or {}

    @app.route("/createGroup", methods=["POST"])
    @jwt_required()
    def create_group():
        data = _body()
        members = data.get("members") or []
        if not isinstance(members, list):
            raise ValidationError("members must be a list")
        group = groups.create(
            get_jwt_identity(),
            data.get("name"),
            description=data.get("description") or "",
            avatar=data.get("avatar"),
            members=members,
        )
        return jsonify({"success": True, "groupId": group["id"]})

    @app.route("/group/<group_id>", methods=["GET"])
    @jwt_required()
    def get_group(group_id):
        return jsonify(groups.get(group_id))

    @app.route("/group/<group_id>/update", methods=["PATCH"])
    @jwt_required()
    def update_group(group_id):
        data = _body()
        changes = {k: data[k] for k in ("name", "description", "avatar") if k in data}
        group = groups.update(get_jwt_identity(), group_id, **changes)
        return jsonify({"success": True, "group": group})

    @app.route("/group/<group_id>/addMember", methods=["POST"])
    @jwt_required()
    def add_member(group_id):
        groups.add_member(get_jwt_identity(), group_id, _body().get("userId"))
        return jsonify({"success": True})

    @app.route("/group/<group_id>/removeMember", methods=["DELETE"])
    @jwt_required()
    def remove_member(group_id):
        groups.remove_member(get_jwt_identity(), group_id, _body().get("userId"))
        return jsonify({"success": True})

    @app.route("/group/<group_id>/leave", methods=["POST"])
    @jwt_required()
    def leave_group(group_id):
        username = groups.leave(get_jwt_identity(), group_id)
        return jsonify({"success": True, "username": username})

    @app.route("/group/<group_id>/messages", methods=["GET"])
    @jwt_required()
    def group_messages(group_id):
        return jsonify(messaging.list_group(get_jwt_identity(), group_id))

    @app.route("/group/<group_id>/sendMessage", methods=["POST"])
    @jwt_required()
    def send_group_message(group_id):
        msg = messaging.send_group(get_jwt_identity(), group_id, **message_content(_body()))
        return jsonify({"success": True, "message": msg})
