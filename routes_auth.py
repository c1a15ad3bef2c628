#!/usr/bin/env python3
"""
routes_auth.py

Registration, login, profiles, handle search and block list.

Tokens are Flask-JWT-Extended access tokens sent raw in the Authorization
header (no "Bearer" prefix). Each token carries the user's session nonce as
the ``tok`` claim; server_init rejects tokens whose nonce is no longer current.
"""

from __future__ import annotations

from flask import jsonify, request
from flask_jwt_extended import create_access_token, get_jwt_identity, jwt_required

from errors import ValidationError


def _body() -> dict:
    return request.get_json(silent=True) or {}


def issue_token(user: dict) -> str:
    return create_access_token(identity=user["id"], additional_claims={"tok": user["token"]})


def register_auth_routes(app, settings, services, limiter=None):
    def _limit(rule, **kwargs):
        """Apply Flask-Limiter rule if available."""
        if limiter is None or not rule:
            return lambda f: f
        return limiter.limit(rule, **kwargs)

    accounts = services.accounts
    presence = services.presence
    auth_rule = settings.get("rate_limit_auth")

    @app.route("/register", methods=["POST"])
    @_limit(auth_rule)
    def register():
        data = _body()
        user = accounts.register(
            data.get("username"),
            data.get("password"),
            first_name=data.get("firstName") or "",
            last_name=data.get("lastName") or "",
        )
        return jsonify({"success": True, "id": user["id"]})

    @app.route("/login", methods=["POST"])
    @_limit(auth_rule)
    def login():
        data = _body()
        user = accounts.login(data.get("username"), data.get("password"))
        return jsonify({"success": True, "token": issue_token(user), "id": user["id"]})

    @app.route("/profile", methods=["GET"])
    @jwt_required()
    def my_profile():
        return jsonify(accounts.get_profile(get_jwt_identity()))

    @app.route("/profile/<user_id>", methods=["GET"])
    @jwt_required()
    def user_profile(user_id):
        profile = accounts.get_profile(user_id)
        profile.pop("blockedUsers", None)
        return jsonify(dict(profile, online=presence.is_online(user_id)))

    @app.route("/updateProfile", methods=["POST"])
    @jwt_required()
    def update_profile():
        data = _body()
        allowed = {k: data[k] for k in ("firstName", "lastName", "username", "avatar", "bio") if k in data}
        profile = accounts.update_profile(get_jwt_identity(), **allowed)
        return jsonify({"success": True, "profile": profile})

    @app.route("/search", methods=["GET"])
    @jwt_required()
    def search():
        return jsonify(accounts.search(request.args.get("username", "").strip(), exclude=get_jwt_identity()))

    @app.route("/block", methods=["POST"])
    @jwt_required()
    def block():
        target = _body().get("userId")
        if not target:
            raise ValidationError("userId is required")
        return jsonify({"success": True, "blockedUsers": accounts.block(get_jwt_identity(), target)})

    @app.route("/unblock", methods=["POST"])
    @jwt_required()
    def unblock():
        target = _body().get("userId")
        if not target:
            raise ValidationError("userId is required")
        return jsonify({"success": True, "blockedUsers": accounts.unblock(get_jwt_identity(), target)})
