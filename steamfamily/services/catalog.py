"""
Tool catalog operations.

Public side: listings, tool detail with rating stats, download logging.
Admin side: create / update / delete tools. Each admin operation checks the
admin gate itself before touching the backend, and every completed write
drops both the admin and the public listing caches.
"""

from __future__ import annotations
import hashlib
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError as ModelValidationError

from steamfamily.models import Profile, Review, Tool, ToolInput, ToolWithStats
from steamfamily.services import supabase_client
from steamfamily.services.authorization import ensure_granted
from steamfamily.utils.errors import ValidationError

ProfileLike = Optional[Union[Profile, Mapping[str, Any]]]


# ============================================================================
# Public reads
# ============================================================================

def list_public_tools() -> List[Tool]:
    return supabase_client.list_tools(include_hidden=False)


def list_admin_tools(profile: ProfileLike) -> List[Tool]:
    ensure_granted(profile)
    return supabase_client.list_tools(include_hidden=True)


def tool_stats(reviews: Sequence[Review]) -> Tuple[Optional[float], int]:
    """(average rating rounded to one decimal, review count). Average is None without reviews."""
    if not reviews:
        return None, 0
    average = sum(r.rating for r in reviews) / len(reviews)
    return round(average, 1), len(reviews)


def get_tool_with_stats(slug: str) -> Optional[ToolWithStats]:
    tool = supabase_client.get_tool_by_slug(slug)
    if not tool:
        return None
    average, count = tool_stats(supabase_client.list_reviews(tool.id))
    return ToolWithStats(**tool.model_dump(), average_rating=average, review_count=count)


# ============================================================================
# Downloads
# ============================================================================

def hash_ip(remote_addr: Optional[str], salt: str) -> Optional[str]:
    """Salted SHA-256 of the client address; raw IPs are never stored."""
    if not remote_addr:
        return None
    return hashlib.sha256(f"{salt}:{remote_addr}".encode("utf-8")).hexdigest()


def record_download(tool: Tool, user_id: Optional[str], remote_addr: Optional[str], salt: str, mirror: bool = False) -> str:
    """
    Log one download and return the URL the visitor should be sent to.

    Raises ValidationError when the mirror is requested but the tool has none.
    """
    target = tool.mirror_url if mirror else tool.download_url
    if not target:
        raise ValidationError("no mirror", "This tool has no mirror download.")

    supabase_client.insert_download_log(tool.id, user_id, hash_ip(remote_addr, salt))
    return target


# ============================================================================
# Admin writes
# ============================================================================

def parse_tool_input(payload: Mapping[str, Any]) -> ToolInput:
    """Validate an admin form/JSON payload. Raises ValidationError listing bad fields."""
    try:
        return ToolInput.model_validate(dict(payload))
    except ModelValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) or "payload" for err in e.errors()})
        raise ValidationError("invalid tool", f"Invalid or missing fields: {', '.join(fields)}") from e


def create_tool(profile: ProfileLike, payload: Mapping[str, Any]) -> Tool:
    ensure_granted(profile)
    tool_input = parse_tool_input(payload)
    return supabase_client.insert_tool(tool_input.to_row())


def update_tool(profile: ProfileLike, tool_id: str, payload: Mapping[str, Any]) -> Tool:
    """Full replace of every editable field; the slug is normalized again."""
    ensure_granted(profile)
    tool_input = parse_tool_input(payload)
    return supabase_client.update_tool(tool_id, tool_input.to_row())


def delete_tool(profile: ProfileLike, tool_id: str) -> None:
    ensure_granted(profile)
    supabase_client.delete_tool(tool_id)
