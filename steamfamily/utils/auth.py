"""
Who is making the request, and may they do admin things.

The Supabase access and refresh tokens live in the signed Flask session.
The first call to current_user() in a request verifies them against Supabase
and caches the result on `g`; later calls (and the profile lookup) reuse it.

Route guards:
- @require_auth: 401 JSON unless signed in
- @require_admin: 401 / 503 / 403 JSON unless the admin gate is GRANTED
"""

from __future__ import annotations
from functools import wraps
from typing import Optional, Dict, Any
from flask import current_app, g, jsonify, session, url_for
from steamfamily.models import Profile
from steamfamily.services import supabase_client
from steamfamily.services.authorization import AdminGate, resolve_admin_gate

SESSION_KEYS = ("user", "access_token", "refresh_token")


# ============================================================================
# Session
# ============================================================================

def get_current_user() -> Optional[Dict[str, Any]]:
    """Verified Supabase user dict for this request, or None when signed out."""
    if "user" in g:
        return g.user

    user = None
    access_token = session.get("access_token")
    if access_token:
        user = supabase_client.verify_session(access_token, session.get("refresh_token"))
        if user is None:
            # Expired or revoked: forget the stale tokens
            clear_session()
        else:
            refreshed = supabase_client.refreshed_tokens()
            if refreshed:
                # Refresh tokens are single-use
                session["access_token"], session["refresh_token"] = refreshed

    g.user = user
    return user


def get_current_user_id() -> Optional[str]:
    user = get_current_user()
    return user.get("id") if user else None


def get_current_profile() -> Optional[Profile]:
    """Profile row of the signed-in user, or None (signed out or not resolved)."""
    if "profile" not in g:
        user_id = get_current_user_id()
        g.profile = supabase_client.get_user_profile(user_id) if user_id else None
    return g.profile


def get_admin_gate() -> AdminGate:
    return resolve_admin_gate(get_current_profile())


def set_session(user: Dict[str, Any], access_token: str, refresh_token: Optional[str] = None) -> None:
    """Start a fresh session for `user` (old contents are dropped first)."""
    session.clear()
    session["user"] = {"id": user.get("id"), "email": user.get("email")}
    session["access_token"] = access_token
    if refresh_token:
        session["refresh_token"] = refresh_token
    session.permanent = True


def clear_session() -> None:
    for key in SESSION_KEYS:
        session.pop(key, None)


def is_authenticated() -> bool:
    return get_current_user() is not None


# ============================================================================
# Decorators
# ============================================================================

def _unauthenticated():
    return jsonify({"success": False, "error": "Please sign in to continue.", "reason": "not authenticated"}), 401


def require_auth(f):
    """
    Decorator to require authentication for a route.

    Usage:
        @bp.route('/tools/<tool_id>/reviews', methods=['POST'])
        @require_auth
        def submit_review(tool_id):
            user = get_current_user()
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_authenticated():
            return _unauthenticated()
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """
    Decorator to require the admin gate to be GRANTED.

    - Not signed in: 401
    - UNKNOWN (profile not resolved): 503, the client should retry shortly
    - DENIED: 403 with a link back to the public catalog
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_authenticated():
            return _unauthenticated()

        gate = get_admin_gate()

        if gate is AdminGate.UNKNOWN:
            current_app.logger.warning(f"Admin gate unresolved for user {get_current_user_id()}")
            return jsonify({
                "success": False,
                "state": gate.value,
                "error": "Your profile is still loading. Please try again.",
            }), 503

        if gate is AdminGate.DENIED:
            return jsonify({
                "success": False,
                "state": gate.value,
                "error": "You do not have permission to access the admin panel.",
                "redirect": url_for("catalog.list_tools"),
            }), 403

        return f(*args, **kwargs)

    return decorated_function
