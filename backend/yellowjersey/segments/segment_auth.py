from __future__ import annotations

import os
from datetime import datetime, timedelta

from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import IntegrityError

from yellowjersey.extensions import db
from yellowjersey.models import User
from yellowjersey.utils.auth import current_user
from yellowjersey.utils.jwt_utils import create_token
from yellowjersey.utils.rate_limit import rate_limit

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/auth")

ACCOUNT_TYPES = ("individual", "bicycle_store")


def _access_token_ttl_seconds() -> int:
    raw = (os.getenv("ACCESS_TOKEN_TTL_SECONDS") or "").strip()
    if raw:
        try:
            parsed = int(raw)
            if parsed > 0:
                return parsed
        except ValueError:
            current_app.logger.warning("invalid_access_token_ttl value=%s", raw)
    return 60 * 60 * 24 * 7


def _session_payload(user: User) -> dict:
    ttl = _access_token_ttl_seconds()
    expires_at = datetime.utcnow() + timedelta(seconds=ttl)
    return {
        "user": user.to_dict(),
        "token": create_token(int(user.id), ttl_seconds=ttl),
        "expires_at": expires_at.replace(microsecond=0).isoformat() + "Z",
    }


@auth_bp.post("/register")
@rate_limit("register", 600, 20)
def register():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    account_type = (data.get("account_type") or "individual").strip().lower()

    if not name or not email or not password:
        return jsonify({"ok": False, "error": "Name, email and password are required"}), 400
    if "@" not in email:
        return jsonify({"ok": False, "error": "Invalid email"}), 400
    if len(password) < 8:
        return jsonify({"ok": False, "error": "Password must be at least 8 characters"}), 400
    if account_type not in ACCOUNT_TYPES:
        return jsonify({"ok": False, "error": "Invalid account type"}), 400
    if User.query.filter_by(email=email).first():
        return jsonify({"ok": False, "error": "Email already in use"}), 409

    u = User(
        name=name[:120],
        email=email,
        phone=(data.get("phone") or "").strip() or None,
        role="buyer",
        account_type=account_type,
        # Store accounts start unverified; verification is an admin step.
        bicycle_store=False,
        business_name=(data.get("business_name") or "").strip() or None,
    )
    u.set_password(password)
    db.session.add(u)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"ok": False, "error": "Email already in use"}), 409

    current_app.logger.info("user_registered user_id=%s account_type=%s", u.id, account_type)
    return jsonify(_session_payload(u)), 201


@auth_bp.post("/login")
@rate_limit("login", 300, 30)
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify({"ok": False, "error": "Email and password are required"}), 400

    u = User.query.filter_by(email=email).first()
    if not u or not u.check_password(password):
        return jsonify({"ok": False, "error": "Invalid credentials"}), 401
    return jsonify(_session_payload(u)), 200


@auth_bp.get("/me")
def me():
    u = current_user()
    if not u:
        return jsonify({"ok": False, "error": "Unauthorized"}), 401
    payload = u.to_dict()
    if u.is_verified_store:
        payload["store"] = u.to_store_dict()
    return jsonify(payload), 200
