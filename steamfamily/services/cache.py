"""
Short-lived in-memory cache for read queries.

Keys name the resource being read ("tools:public", "tools:admin",
"reviews:<tool_id>"). Mutations drop the keys they affect so the next read
goes back to Supabase. Entries also expire after a TTL.
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

PUBLIC_TOOLS_KEY = "tools:public"
ADMIN_TOOLS_KEY = "tools:admin"


def reviews_key(tool_id: str) -> str:
    return f"reviews:{tool_id}"


class QueryCache:
    """Dict-based cache of query results with a per-entry timestamp."""

    def __init__(self, ttl_seconds: int = 300):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, Tuple[Any, datetime]] = {}

    def get(self, key: str) -> Optional[Any]:
        """Cached value, or None on a miss or an expired entry."""
        # Single lookups only: another thread may invalidate at any point
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, cached_at = entry
        age_seconds = (datetime.now() - cached_at).total_seconds()
        if age_seconds > self.ttl_seconds:
            self._entries.pop(key, None)
            return None

        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (value, datetime.now())

    def invalidate(self, *keys: str) -> None:
        for key in keys:
            self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
