"""
Admin authorization gate.

Turns the signed-in user's profile into one of three states:
- UNKNOWN: profile not resolved yet (missing row, backend hiccup). Permit nothing.
- DENIED: profile resolved, is_admin is false.
- GRANTED: profile resolved, is_admin is true.

This gate only decides what the app offers. The database's row-level
security policies (supabase/policies.sql) enforce the same rule for every
write to tools, whatever client sends it.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, Mapping, Optional, Union

from steamfamily.models import Profile
from steamfamily.utils.errors import AccessDenied


class AdminGate(str, Enum):
    UNKNOWN = "unknown"
    DENIED = "denied"
    GRANTED = "granted"


def resolve_admin_gate(profile: Optional[Union[Profile, Mapping[str, Any]]]) -> AdminGate:
    """Map a profile (model, raw row, or None) to its gate state."""
    if profile is None:
        return AdminGate.UNKNOWN

    if isinstance(profile, Profile):
        is_admin = profile.is_admin
    else:
        is_admin = profile.get("is_admin", False)

    return AdminGate.GRANTED if is_admin is True else AdminGate.DENIED


def ensure_granted(profile: Optional[Union[Profile, Mapping[str, Any]]]) -> AdminGate:
    """Raise AccessDenied unless the profile resolves to GRANTED."""
    gate = resolve_admin_gate(profile)
    if gate is not AdminGate.GRANTED:
        raise AccessDenied(gate)
    return gate
