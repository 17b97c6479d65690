# -*- coding: utf-8 -*-
"""
Session helpers on top of Flask-JWT-Extended cookies.

The JWT identity is the user id. ``login_required`` resolves it to a User
(401 otherwise); ``admin_required`` additionally demands the admin flag or
the ADMIN_EMAIL address.
"""
import os
from functools import wraps
from typing import Optional

from flask import g, make_response, jsonify
from flask_jwt_extended import (
    create_access_token,
    create_refresh_token,
    get_jwt_identity,
    set_access_cookies,
    set_refresh_cookies,
    verify_jwt_in_request,
)

from secret_message.errors import Forbidden, Unauthorized
from secret_message.infra.db import db
from secret_message.models.user import User


def normalize_email(email) -> str:
    return (email or "").strip().lower()


def current_user() -> Optional[User]:
    """Return the signed-in user, or None. Never raises on a missing cookie."""
    verify_jwt_in_request(optional=True)
    ident = get_jwt_identity()
    user = db.session.get(User, str(ident)) if ident else None

    g.user_id = user.id if user else None
    return user


def is_admin(user: Optional[User]) -> bool:
    if user is None:
        return False
    admin_email = normalize_email(os.getenv("ADMIN_EMAIL"))
    return bool(user.is_admin) or (bool(admin_email) and user.email == admin_email)


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if current_user() is None:
            raise Unauthorized("Authentication required")
        return fn(*args, **kwargs)
    return wrapper


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = current_user()
        if user is None:
            raise Unauthorized("Authentication required")
        if not is_admin(user):
            raise Forbidden("Admin access required")
        return fn(*args, **kwargs)
    return wrapper


def session_response(user: User, status: int = 200, **extra):
    """JSON response for ``user`` with fresh access/refresh cookies attached."""
    claims = {"email": user.email, "is_admin": is_admin(user)}
    access = create_access_token(identity=user.id, additional_claims=claims)
    refresh = create_refresh_token(identity=user.id, additional_claims=claims)

    body = {"ok": True, "user": user_payload(user)}
    body.update(extra)
    resp = make_response(jsonify(body), status)
    set_access_cookies(resp, access)
    set_refresh_cookies(resp, refresh)
    return resp


def user_payload(user: User) -> dict:
    data = user.to_dict()
    data["is_admin"] = is_admin(user)
    return data
