"""
Error types shared by services and routes.

Three families of failure reach the user:
- ValidationError: a local precondition failed before any network call.
  Always recoverable by correcting the input; logged at info level only.
- BackendError: Supabase (database or auth) rejected or failed a call. The
  backend message is surfaced as-is; nothing is retried.
- AccessDenied: a gated admin operation was invoked without admin rights.

ConfigurationError is raised by the app factory and stops startup.
"""

from __future__ import annotations
from typing import Any, Dict, Optional


class SteamFamilyError(Exception):
    """Base class for every error raised on purpose by this package."""

    status_code = 500

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": str(self)}


class ConfigurationError(SteamFamilyError, RuntimeError):
    """Required configuration is missing or insecure. Fatal at startup."""


class ValidationError(SteamFamilyError):
    """
    A local check failed.

    `reason` is a short stable tag ("rating required", "contains URL", ...)
    that callers and tests can match on; the message is what the user reads.
    """

    status_code = 400

    def __init__(self, reason: str, message: Optional[str] = None):
        super().__init__(message or reason)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class BackendError(SteamFamilyError):
    """Supabase returned an error or could not be reached."""

    status_code = 502

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code

    @classmethod
    def from_exception(cls, exc: Exception) -> "BackendError":
        """
        Wrap a postgrest/gotrue/httpx exception.

        postgrest's APIError carries `message` and `code` attributes; auth
        errors only carry `message`. Anything else falls back to str(exc).
        """
        message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
        code = getattr(exc, "code", None)
        return cls(str(message), code=str(code) if code else None)


class AccessDenied(SteamFamilyError):
    """A gated operation was called while the admin gate was not GRANTED."""

    status_code = 403

    def __init__(self, gate: Any, message: str = "Access denied. Admin privileges required."):
        super().__init__(message)
        self.gate = gate
        # Unresolved profile: the caller should try again, not give up
        if getattr(gate, "value", None) == "unknown":
            self.status_code = 503

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["state"] = getattr(self.gate, "value", str(self.gate))
        return data
