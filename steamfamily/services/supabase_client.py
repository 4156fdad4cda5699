"""
Supabase client initialization and data access.

Every call to the backend goes through this module:
- Authentication (email + password sign-up/sign-in, session verification)
- Profiles (admin flag lookup)
- Tools (public and admin listings, admin writes)
- Reviews (listing with author info, insert)
- Download log (append-only)

Only the anon key is used. The shared client never holds a user session: it
serves anonymous requests. A signed-in request gets its own client carrying
that user's JWT (kept on `g`), so row-level security judges the right person
and nothing leaks into the next request.

Read functions for listings are cached (see services/cache.py); writes drop
the cache keys they affect.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from flask import current_app, g, has_app_context
from postgrest.types import ReturnMethod
from pydantic import ValidationError as ModelValidationError
from supabase import create_client, Client
from supabase.lib.client_options import ClientOptions

from steamfamily.models import DownloadLog, Profile, Record, Review, ReviewWithUser, Tool
from steamfamily.services.cache import ADMIN_TOOLS_KEY, PUBLIC_TOOLS_KEY, QueryCache, reviews_key
from steamfamily.utils.errors import BackendError, ConfigurationError

RecordT = TypeVar("RecordT", bound=Record)

TOOLS_TABLE = "tools"
REVIEWS_TABLE = "reviews"
PROFILES_TABLE = "profiles"
DOWNLOADS_TABLE = "downloads_log"

# Minimal author fields joined onto each review
REVIEW_SELECT = "*, user:profiles(display_name, avatar_url, email)"


def _safe_log_error(message: str) -> None:
    """Log only when a Flask app context is available (tests may call without one)."""
    if has_app_context():
        current_app.logger.error(message)


def _safe_log_warning(message: str) -> None:
    if has_app_context():
        current_app.logger.warning(message)


def _safe_log_info(message: str) -> None:
    if has_app_context():
        current_app.logger.info(message)


# Shared anon client (initialized once per app); never given a user session
_supabase_client: Optional[Client] = None
_supabase_url: Optional[str] = None
_supabase_anon_key: Optional[str] = None
_query_cache = QueryCache()


def init_supabase(app) -> None:
    """
    Create the Supabase client from app config.

    Raises ConfigurationError when SUPABASE_URL or SUPABASE_ANON_KEY is
    missing: there is no degraded mode without a backend.
    """
    global _supabase_client, _supabase_url, _supabase_anon_key, _query_cache

    url = app.config.get("SUPABASE_URL", "")
    anon_key = app.config.get("SUPABASE_ANON_KEY", "")

    missing = [name for name, value in (("SUPABASE_URL", url), ("SUPABASE_ANON_KEY", anon_key)) if not value]
    if missing:
        raise ConfigurationError(
            f"Missing Supabase configuration: {', '.join(missing)}. "
            "Set these environment variables before starting the app."
        )

    try:
        _supabase_client = create_client(url, anon_key)
    except Exception as e:
        raise ConfigurationError(f"Failed to initialize Supabase client: {e}") from e

    _supabase_url, _supabase_anon_key = url, anon_key

    _query_cache = QueryCache(ttl_seconds=app.config.get("QUERY_CACHE_TTL_SECONDS", 300))
    app.logger.info("Supabase client initialized successfully")


# Keys on `g` for the signed-in user's client and any refreshed tokens
REQUEST_CLIENT_KEY = "supabase_user_client"
REFRESHED_TOKENS_KEY = "supabase_refreshed_tokens"


def _new_client(access_token: Optional[str] = None) -> Client:
    """
    A private client for one request or one auth call.

    With an access token its table calls run as that user. The session is
    kept in memory only and never auto-refreshed in the background.
    """
    if not _supabase_url or not _supabase_anon_key:
        raise BackendError("Supabase not configured")
    options = ClientOptions(auto_refresh_token=False, persist_session=False)
    if access_token:
        options.headers["Authorization"] = f"Bearer {access_token}"
    return create_client(_supabase_url, _supabase_anon_key, options)


def _request_client() -> Optional[Client]:
    return g.get(REQUEST_CLIENT_KEY) if has_app_context() else None


def get_client() -> Client:
    """
    Client for table calls: the signed-in user's client for this request if
    the session was verified, else the shared anon client. Raises
    BackendError if init_supabase() never ran.
    """
    client = _request_client()
    if client is not None:
        return client
    if _supabase_client is None:
        raise BackendError("Supabase not configured")
    return _supabase_client


def refreshed_tokens() -> Optional[Tuple[str, Optional[str]]]:
    """(access, refresh) when verify_session() had to refresh this request's session."""
    return g.get(REFRESHED_TOKENS_KEY) if has_app_context() else None


def get_cache() -> QueryCache:
    return _query_cache


def is_configured() -> bool:
    return _supabase_client is not None


# ============================================================================
# Row parsing
# ============================================================================

def _parse_row(model: Type[RecordT], row: Optional[Dict[str, Any]], what: str) -> RecordT:
    """Parse a single row or raise BackendError when the backend sent junk."""
    if not row:
        raise BackendError(f"Backend returned no {what}")
    try:
        return model.model_validate(row)
    except ModelValidationError as e:
        _safe_log_error(f"Malformed {what} row from backend: {e}")
        raise BackendError(f"Backend returned a malformed {what}") from e


def _parse_rows(model: Type[RecordT], rows: Optional[List[Dict[str, Any]]], what: str) -> List[RecordT]:
    """Parse a listing; malformed rows are dropped with a warning."""
    parsed = []
    for row in rows or []:
        try:
            parsed.append(model.model_validate(row))
        except ModelValidationError as e:
            _safe_log_warning(f"Skipping malformed {what} row {row.get('id') if isinstance(row, dict) else row!r}: {e}")
    return parsed


def _first(response) -> Optional[Dict[str, Any]]:
    data = response.data if response else None
    if isinstance(data, list):
        return data[0] if data else None
    return data


# ============================================================================
# Authentication Helpers
# ============================================================================

def _session_payload(auth_response) -> Dict[str, Any]:
    """Flatten a gotrue AuthResponse into user + tokens."""
    user = auth_response.user.model_dump() if auth_response and auth_response.user else None
    session = auth_response.session if auth_response else None
    return {
        "user": user,
        "access_token": session.access_token if session else None,
        "refresh_token": session.refresh_token if session else None,
    }


def sign_up(email: str, password: str, display_name: Optional[str] = None) -> Dict[str, Any]:
    """
    Register a new account. The profiles row is created by a database
    trigger on auth.users.

    Returns:
        Dict with 'user', 'access_token', 'refresh_token'. Tokens are None
        when the project requires email confirmation first.
    """
    options = {"data": {"display_name": display_name}} if display_name else {}
    try:
        response = _new_client().auth.sign_up({"email": email, "password": password, "options": options})
    except BackendError:
        raise
    except Exception as e:
        _safe_log_error(f"Error signing up: {e}")
        raise BackendError.from_exception(e) from e

    payload = _session_payload(response)
    if not payload["user"]:
        raise BackendError("Sign up failed")
    return payload


def sign_in(email: str, password: str) -> Dict[str, Any]:
    """Sign in with email and password. Raises BackendError on bad credentials."""
    try:
        response = _new_client().auth.sign_in_with_password({"email": email, "password": password})
    except BackendError:
        raise
    except Exception as e:
        _safe_log_info(f"Sign in rejected: {e}")
        raise BackendError.from_exception(e) from e

    payload = _session_payload(response)
    if not payload["user"] or not payload["access_token"]:
        raise BackendError("Sign in failed")
    return payload


def verify_session(access_token: str, refresh_token: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Verify a session token and return user data, or None if invalid.

    The session is set on a client of its own, which is then kept on `g` so
    the rest of the request runs its table calls as this user (that is what
    row-level security checks against). The shared client is never touched.
    An expired access token is refreshed; see refreshed_tokens().
    """
    if not is_configured() or not access_token:
        return None

    try:
        client = _new_client(access_token)
        session_response = client.auth.set_session(
            access_token=access_token,
            refresh_token=refresh_token or ""
        )
    except Exception as e:
        _safe_log_error(f"Error verifying session: {e}")
        return None

    if not session_response or not session_response.user:
        return None

    token = access_token
    new_session = session_response.session
    if new_session and new_session.access_token and new_session.access_token != access_token:
        token = new_session.access_token
        if has_app_context():
            setattr(g, REFRESHED_TOKENS_KEY, (token, new_session.refresh_token))

    client.postgrest.auth(token)
    if has_app_context():
        setattr(g, REQUEST_CLIENT_KEY, client)
    return session_response.user.model_dump()


def sign_out(access_token: str) -> bool:
    """Sign out the session belonging to access_token."""
    if not is_configured():
        return False

    try:
        client = _request_client()
        if client is None:
            if not access_token:
                return False
            client = _new_client(access_token)
            client.auth.set_session(access_token, "")
        client.auth.sign_out()
        return True
    except Exception as e:
        _safe_log_error(f"Error signing out: {e}")
        return False


# ============================================================================
# Profile Helpers
# ============================================================================

def get_user_profile(user_id: str) -> Optional[Profile]:
    """
    Fetch the profile row for a user.

    Returns None when the row does not exist yet or cannot be read; callers
    treat that as "not resolved" rather than "not an admin".
    """
    if not is_configured() or not user_id:
        return None

    try:
        response = (get_client()
                    .table(PROFILES_TABLE)
                    .select("*")
                    .eq("id", user_id)
                    .maybe_single()
                    .execute())
        row = _first(response)
        return Profile.model_validate(row) if row else None
    except ModelValidationError as e:
        _safe_log_error(f"Malformed profile row for {user_id}: {e}")
        return None
    except Exception as e:
        _safe_log_error(f"Error fetching user profile: {e}")
        return None


# ============================================================================
# Tools
# ============================================================================

def list_tools(include_hidden: bool = False, use_cache: bool = True) -> List[Tool]:
    """
    List tools newest first.

    Args:
        include_hidden: False for the public catalog (visible only), True
                        for the admin listing (everything)
        use_cache: Whether to serve from the read cache
    """
    cache_key = ADMIN_TOOLS_KEY if include_hidden else PUBLIC_TOOLS_KEY
    if use_cache:
        cached = _query_cache.get(cache_key)
        if cached is not None:
            return cached

    try:
        query = get_client().table(TOOLS_TABLE).select("*")
        if not include_hidden:
            query = query.eq("visible", True)
        response = query.order("created_at", desc=True).execute()
    except BackendError:
        raise
    except Exception as e:
        _safe_log_error(f"Error listing tools: {e}")
        raise BackendError.from_exception(e) from e

    tools = _parse_rows(Tool, response.data, "tool")
    if use_cache:
        _query_cache.set(cache_key, tools)
    return tools


def get_tool(tool_id: str) -> Optional[Tool]:
    """Fetch one tool by id regardless of visibility (RLS may still hide it)."""
    try:
        response = get_client().table(TOOLS_TABLE).select("*").eq("id", tool_id).limit(1).execute()
    except BackendError:
        raise
    except Exception as e:
        _safe_log_error(f"Error fetching tool {tool_id}: {e}")
        raise BackendError.from_exception(e) from e

    row = _first(response)
    return _parse_row(Tool, row, "tool") if row else None


def get_tool_by_slug(slug: str) -> Optional[Tool]:
    """Fetch one visible tool by slug."""
    try:
        response = (get_client()
                    .table(TOOLS_TABLE)
                    .select("*")
                    .eq("slug", slug)
                    .eq("visible", True)
                    .limit(1)
                    .execute())
    except BackendError:
        raise
    except Exception as e:
        _safe_log_error(f"Error fetching tool {slug}: {e}")
        raise BackendError.from_exception(e) from e

    row = _first(response)
    return _parse_row(Tool, row, "tool") if row else None


def invalidate_tool_listings() -> None:
    """Drop both the admin and the public tool listings."""
    _query_cache.invalidate(ADMIN_TOOLS_KEY, PUBLIC_TOOLS_KEY)


def insert_tool(data: Dict[str, Any]) -> Tool:
    """Insert one tool row. Duplicate slugs surface as a BackendError."""
    try:
        response = get_client().table(TOOLS_TABLE).insert(data).execute()
    except BackendError:
        raise
    except Exception as e:
        _safe_log_error(f"Error creating tool: {e}")
        raise BackendError.from_exception(e) from e

    invalidate_tool_listings()
    return _parse_row(Tool, _first(response), "tool")


def update_tool(tool_id: str, data: Dict[str, Any]) -> Tool:
    """Replace all editable fields of one tool."""
    try:
        response = get_client().table(TOOLS_TABLE).update(data).eq("id", tool_id).execute()
    except BackendError:
        raise
    except Exception as e:
        _safe_log_error(f"Error updating tool {tool_id}: {e}")
        raise BackendError.from_exception(e) from e

    invalidate_tool_listings()
    row = _first(response)
    if not row:
        # RLS filters rows the caller may not touch, so "no rows" is a rejection
        raise BackendError("Tool not found or not permitted")
    return _parse_row(Tool, row, "tool")


def delete_tool(tool_id: str) -> None:
    """Delete one tool. Reviews and download logs go with it (ON DELETE CASCADE)."""
    try:
        get_client().table(TOOLS_TABLE).delete().eq("id", tool_id).execute()
    except BackendError:
        raise
    except Exception as e:
        _safe_log_error(f"Error deleting tool {tool_id}: {e}")
        raise BackendError.from_exception(e) from e

    invalidate_tool_listings()
    _query_cache.invalidate(reviews_key(tool_id))


def count_tools() -> Dict[str, int]:
    """Total and visible tool counts (for the CLI)."""
    client = get_client()
    try:
        total = client.table(TOOLS_TABLE).select("id", count="exact").execute()
        visible = client.table(TOOLS_TABLE).select("id", count="exact").eq("visible", True).execute()
    except Exception as e:
        raise BackendError.from_exception(e) from e
    return {"total": total.count or 0, "visible": visible.count or 0}


# ============================================================================
# Reviews
# ============================================================================

def list_reviews(tool_id: str, use_cache: bool = True) -> List[ReviewWithUser]:
    """Reviews for one tool, newest first, each with its author's display fields."""
    cache_key = reviews_key(tool_id)
    if use_cache:
        cached = _query_cache.get(cache_key)
        if cached is not None:
            return cached

    try:
        response = (get_client()
                    .table(REVIEWS_TABLE)
                    .select(REVIEW_SELECT)
                    .eq("tool_id", tool_id)
                    .order("created_at", desc=True)
                    .execute())
    except BackendError:
        raise
    except Exception as e:
        _safe_log_error(f"Error listing reviews for tool {tool_id}: {e}")
        raise BackendError.from_exception(e) from e

    reviews = _parse_rows(ReviewWithUser, response.data, "review")
    if use_cache:
        _query_cache.set(cache_key, reviews)
    return reviews


def insert_review(tool_id: str, user_id: str, rating: int, body: str) -> Review:
    """Insert one review row. The body must already be filtered."""
    data = {
        "tool_id": tool_id,
        "user_id": user_id,
        "rating": rating,
        "body": body,
    }
    try:
        response = get_client().table(REVIEWS_TABLE).insert(data).execute()
    except BackendError:
        raise
    except Exception as e:
        _safe_log_error(f"Error creating review for tool {tool_id}: {e}")
        raise BackendError.from_exception(e) from e

    _query_cache.invalidate(reviews_key(tool_id))
    return _parse_row(Review, _first(response), "review")


# ============================================================================
# Download log
# ============================================================================

def insert_download_log(tool_id: str, user_id: Optional[str], ip_hash: Optional[str]) -> None:
    """
    Append one download record. The downloads counter is bumped by a trigger.

    Visitors may insert but not read downloads_log, so no row is returned.
    """
    data = {"tool_id": tool_id, "user_id": user_id, "ip_hash": ip_hash}
    try:
        get_client().table(DOWNLOADS_TABLE).insert(data, returning=ReturnMethod.minimal).execute()
    except BackendError:
        raise
    except Exception as e:
        _safe_log_error(f"Error logging download for tool {tool_id}: {e}")
        raise BackendError.from_exception(e) from e


def list_download_logs(tool_id: str, limit: int = 100) -> List[DownloadLog]:
    """Most recent download records for one tool (readable by admins only)."""
    try:
        response = (get_client()
                    .table(DOWNLOADS_TABLE)
                    .select("*")
                    .eq("tool_id", tool_id)
                    .order("created_at", desc=True)
                    .limit(limit)
                    .execute())
    except BackendError:
        raise
    except Exception as e:
        _safe_log_error(f"Error listing downloads for tool {tool_id}: {e}")
        raise BackendError.from_exception(e) from e

    return _parse_rows(DownloadLog, response.data, "download log")
