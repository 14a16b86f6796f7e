from __future__ import annotations

from flask import Blueprint, jsonify, session

from storefront.auth import require_principal
from storefront.database import get_db
from storefront.serializers import serialize_user
from storefront.services.user_service import UserService
from storefront.validators import (
    get_json_body,
    validate_login,
    validate_profile_update,
    validate_registration,
)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _get_user_service() -> UserService:
    return UserService(get_db())


@auth_bp.route("/register", methods=["POST"])
def register():
    data = validate_registration(get_json_body())
    user = _get_user_service().register(**data)
    session.clear()
    session["user_id"] = user.userID
    return jsonify({"success": True, "user": serialize_user(user)}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    data = validate_login(get_json_body())
    user = _get_user_service().authenticate(data["email"], data["password"])
    session.clear()
    session["user_id"] = user.userID
    return jsonify({"success": True, "user": serialize_user(user)})


@auth_bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"success": True, "message": "Logged out successfully"})


@auth_bp.route("/profile", methods=["GET"])
def get_profile():
    principal = require_principal()
    user = _get_user_service().get_user(principal.id)
    return jsonify({"success": True, "user": serialize_user(user)})


@auth_bp.route("/profile", methods=["PUT"])
def update_profile():
    principal = require_principal()
    data = validate_profile_update(get_json_body())
    user = _get_user_service().update_profile(principal.id, data)
    return jsonify({"success": True, "user": serialize_user(user)})
