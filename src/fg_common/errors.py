from __future__ import annotations

from typing import Any

REDACT_TOKEN = "***redacted***"


class ErrorCode:
    """Error codes shared by tool results, HTTP envelopes and discovery outcomes."""

    # auth
    AUTH_FAILED = "AUTH_FAILED"
    UNAUTHORIZED = "UNAUTHORIZED"

    # store / onboarding
    CREDENTIALS_MISSING = "CREDENTIALS_MISSING"
    TEAM_ID_MISSING = "TEAM_ID_MISSING"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    LEAGUES_UNAVAILABLE = "LEAGUES_UNAVAILABLE"
    NO_LEAGUES = "NO_LEAGUES"

    # upstream
    ESPN_COOKIES_EXPIRED = "ESPN_COOKIES_EXPIRED"
    ESPN_ACCESS_DENIED = "ESPN_ACCESS_DENIED"
    ESPN_NOT_FOUND = "ESPN_NOT_FOUND"
    ESPN_RATE_LIMIT = "ESPN_RATE_LIMIT"
    ESPN_API_ERROR = "ESPN_API_ERROR"
    ESPN_INVALID_RESPONSE = "ESPN_INVALID_RESPONSE"
    ESPN_TIMEOUT = "ESPN_TIMEOUT"
    ESPN_CREDENTIALS_NOT_FOUND = "ESPN_CREDENTIALS_NOT_FOUND"
    ESPN_ERROR = "ESPN_ERROR"

    # tools
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    INVALID_ARGUMENTS = "INVALID_ARGUMENTS"


def typed_error(code: str, message: str, *, details: dict | None = None, **extra: Any) -> dict:
    """
    Standard error envelope:
      {"error": {"code": code, "message": message, "details": {...}}, ...extra}
    """
    err: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        err["error"]["details"] = details
    if extra:
        err.update(extra)
    return err
