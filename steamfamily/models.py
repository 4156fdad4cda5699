"""
Record types for rows exchanged with Supabase.

Supabase returns loosely typed JSON; every row is parsed into one of these
models before the rest of the app touches it. Field names follow the
database columns (snake_case).

Tables:
- profiles: identity + admin flag
- tools: catalog entries
- reviews: star ratings with a short text body
- downloads_log: append-only download analytics
"""

from __future__ import annotations
import re
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

REVIEW_MIN_LENGTH = 10
REVIEW_MAX_LENGTH = 2000

_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_slug(slug: str) -> str:
    """
    Lowercase a slug and replace whitespace runs with a single hyphen.

    Already-normalized slugs come back unchanged.
    """
    return _WHITESPACE_RUN.sub("-", (slug or "").strip().lower())


def split_list(value: Union[str, List[str], None]) -> List[str]:
    """Accept "a, b ,c" or ["a", " b"] and return ["a", "b", "c"] without empties."""
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else value
    return [str(item).strip() for item in items if str(item).strip()]


class Record(BaseModel):
    # Supabase may add columns; unknown keys are ignored
    model_config = ConfigDict(extra="ignore")


class Profile(Record):
    id: str
    email: str
    is_admin: bool = False
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None


class Tool(Record):
    id: str
    slug: str
    title: str
    short_description: str
    full_description: str
    images: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    download_url: str
    mirror_url: Optional[str] = None
    donate_url: Optional[str] = None
    telegram_url: Optional[str] = None
    version: str
    downloads: int = 0
    visible: bool = True
    created_at: Optional[datetime] = None

    @field_validator("images", "tags", mode="before")
    @classmethod
    def _null_to_list(cls, value):
        return value or []


class ToolWithStats(Tool):
    average_rating: Optional[float] = None
    review_count: int = 0


class ReviewAuthor(Record):
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    email: Optional[str] = None


class Review(Record):
    id: str
    tool_id: str
    user_id: str
    rating: int = Field(ge=1, le=5)
    body: str
    created_at: Optional[datetime] = None


class ReviewWithUser(Review):
    # Filled from the profiles join; absent when the author was deleted
    user: Optional[ReviewAuthor] = None


class DownloadLog(Record):
    id: str
    tool_id: str
    user_id: Optional[str] = None
    ip_hash: Optional[str] = None
    created_at: Optional[datetime] = None


class ToolInput(BaseModel):
    """
    Admin write payload for a tool (create or full replace).

    Images and tags may be given as lists or as comma-separated strings, the
    way the admin form sends them. Blank optional links are stored as null.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    slug: str = Field(min_length=1)
    title: str = Field(min_length=1)
    short_description: str = Field(min_length=1)
    full_description: str = Field(min_length=1)
    images: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    download_url: str = Field(min_length=1)
    mirror_url: Optional[str] = None
    donate_url: Optional[str] = None
    telegram_url: Optional[str] = None
    version: str = Field(min_length=1)
    downloads: int = Field(default=0, ge=0)
    visible: bool = True

    @field_validator("slug")
    @classmethod
    def _normalize_slug(cls, value: str) -> str:
        slug = normalize_slug(value)
        if not slug:
            raise ValueError("slug must not be blank")
        return slug

    @field_validator("images", "tags", mode="before")
    @classmethod
    def _split(cls, value):
        return split_list(value)

    @field_validator("mirror_url", "donate_url", "telegram_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def to_row(self) -> dict:
        return self.model_dump()
