"""
Authentication routes for signup, login, and logout.

Handles:
- Email + password sign-up and sign-in through Supabase Auth
- Logout
- Current user info endpoint (user, profile, admin gate)
"""

from __future__ import annotations
import re
from flask import Blueprint, jsonify, current_app, session
from steamfamily.services import supabase_client
from steamfamily.utils.auth import (
    set_session,
    clear_session,
    get_current_user,
    get_current_profile,
    get_admin_gate,
    require_auth,
)
from steamfamily.extensions import limiter
from steamfamily.utils.validation import request_payload


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

# RFC 5322 simplified pattern
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
MIN_PASSWORD_LENGTH = 8


def _credentials(data):
    """Check email/password from the payload. Returns (email, password, error)."""
    email = str(data.get("email", "")).strip().lower()
    password = str(data.get("password", ""))

    if not email:
        return email, password, "Please enter your email address."
    if len(email) > 320:  # RFC 5321 max email length
        return email, password, "Email address is too long."
    if not EMAIL_PATTERN.match(email):
        return email, password, "Please enter a valid email address."
    if not password:
        return email, password, "Please enter your password."
    return email, password, None


def _user_json(user):
    return {"id": user.get("id"), "email": user.get("email")}


@auth_bp.route("/signup", methods=["POST"])
@limiter.limit(lambda: current_app.config["SIGNUP_RATE_LIMIT"])
def signup():
    """Create an account. Signs the user in when Supabase returns a session."""
    data = request_payload()
    email, password, error = _credentials(data)
    if not error and len(password) < MIN_PASSWORD_LENGTH:
        error = f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    if error:
        return jsonify({"success": False, "error": error}), 400

    display_name = str(data.get("display_name", "")).strip()[:80] or None

    result = supabase_client.sign_up(email, password, display_name)

    if result["access_token"]:
        set_session(result["user"], result["access_token"], result["refresh_token"])
        return jsonify({"success": True, "user": _user_json(result["user"]), "confirmation_required": False}), 201

    # Email confirmation is on: no session until the link is clicked
    return jsonify({
        "success": True,
        "user": _user_json(result["user"]),
        "confirmation_required": True,
        "message": f"Check {email} to confirm your account.",
    }), 201


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    email, password, error = _credentials(request_payload())
    if error:
        return jsonify({"success": False, "error": error}), 400

    result = supabase_client.sign_in(email, password)
    set_session(result["user"], result["access_token"], result["refresh_token"])
    return jsonify({"success": True, "user": _user_json(result["user"])})


@auth_bp.route("/logout", methods=["POST"])
@require_auth
def logout():
    access_token = session.get("access_token")

    if access_token:
        supabase_client.sign_out(access_token)

    clear_session()
    return jsonify({"success": True, "message": "You've been logged out successfully."})


@auth_bp.route("/me")
@require_auth
def me():
    """Current user, profile and admin gate state (for client-side use)."""
    user = get_current_user()
    profile = get_current_profile()

    return jsonify({
        "user": _user_json(user),
        "profile": profile.model_dump(mode="json") if profile else None,
        "admin": get_admin_gate().value,
    })
