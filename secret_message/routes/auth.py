# -*- coding: utf-8 -*-
# secret_message/routes/auth.py
from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify, request, make_response
from flask_jwt_extended import unset_jwt_cookies

from secret_message.errors import Conflict, Unauthorized
from secret_message.infra.db import db
from secret_message.infra.log import get_logger
from secret_message.models.user import User
from secret_message.schemas.account_schemas import LoginSchema, PayoutUpdateSchema, SignupSchema
from secret_message.services.auth import (
    current_user,
    login_required,
    session_response,
    user_payload,
)

auth_bp = Blueprint("auth", __name__)  # mounted at /api in factory.py
logger = get_logger(__name__)


def _json() -> Dict[str, Any]:
    return (request.get_json(silent=True) or {}) if request.data else {}


# --------------------------------------------------------------------------- #
# Password signup / login
# --------------------------------------------------------------------------- #
@auth_bp.route("/auth/signup", methods=["POST"])
def signup():
    data = SignupSchema().load(_json())

    if User.query.filter_by(email=data["email"]).first():
        raise Conflict("An account with this email already exists")

    user = User(email=data["email"])
    user.set_password(data["password"])
    db.session.add(user)
    db.session.commit()

    logger.info("User signed up", user_id=user.id)
    return session_response(user, status=201)


@auth_bp.route("/auth/login", methods=["POST"])
def login():
    data = LoginSchema().load(_json())

    user = User.query.filter_by(email=data["email"]).first()
    if not user or not user.check_password(data["password"]):
        raise Unauthorized("Invalid email or password")

    logger.info("User logged in", user_id=user.id)
    return session_response(user)


@auth_bp.route("/auth/logout", methods=["POST"])
def logout():
    resp = make_response(jsonify({"ok": True}), 200)
    unset_jwt_cookies(resp)
    return resp


# --------------------------------------------------------------------------- #
# Who am I?
# --------------------------------------------------------------------------- #
@auth_bp.route("/auth/user", methods=["GET"])
@login_required
def auth_user():
    return jsonify(user_payload(current_user())), 200


@auth_bp.route("/auth/payout", methods=["PATCH"])
@login_required
def update_payout():
    data = PayoutUpdateSchema().load(_json())

    user = current_user()
    user.payout_method = data["payout_method"]
    user.payout_address = data["payout_address"]
    db.session.commit()

    logger.info("Payout details updated", user_id=user.id, payout_method=user.payout_method)
    return jsonify({"success": True, "user": user_payload(user)}), 200
