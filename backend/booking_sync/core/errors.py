"""
Centralized error kinds for the remote login flow and their HTTP mapping.
Constants and a reusable helper so routes stay thin and new error types are easy to add.
"""
from __future__ import annotations

from enum import Enum

from fastapi import HTTPException


class AuthErrorKind(str, Enum):
    """Why a login step failed. Callers pick the recovery: re-request a code vs re-enter credentials."""

    REJECTED = "rejected"  # bad credentials; message is the portal's own
    NO_PENDING = "no_pending"  # confirm called without a live code request
    CODE_REJECTED = "code_rejected"
    CODE_TIMEOUT = "code_timeout"
    INBOX_UNAVAILABLE = "inbox_unavailable"
    NETWORK = "network"
    PROTOCOL = "protocol"  # portal answered with something we cannot interpret
    CANCELLED = "cancelled"  # logout landed while the login was in flight


# ---------------------------------------------------------------------------
# HTTP status codes for known error categories
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_UNAUTHORIZED = 401
STATUS_CONFLICT = 409
STATUS_BAD_GATEWAY = 502
STATUS_SERVICE_UNAVAILABLE = 503
STATUS_GATEWAY_TIMEOUT = 504

# First match wins; anything missing maps to 502 (the portal misbehaved).
AUTH_ERROR_STATUS: dict[AuthErrorKind, int] = {
    AuthErrorKind.REJECTED: STATUS_UNAUTHORIZED,
    AuthErrorKind.CODE_REJECTED: STATUS_UNAUTHORIZED,
    AuthErrorKind.NO_PENDING: STATUS_CONFLICT,
    AuthErrorKind.CANCELLED: STATUS_CONFLICT,
    AuthErrorKind.CODE_TIMEOUT: STATUS_GATEWAY_TIMEOUT,
    AuthErrorKind.INBOX_UNAVAILABLE: STATUS_SERVICE_UNAVAILABLE,
    AuthErrorKind.NETWORK: STATUS_BAD_GATEWAY,
}


def auth_error_to_http(kind: AuthErrorKind | None, message: str | None) -> HTTPException:
    """
    Map a failed AuthResult into an HTTPException.
    The detail keeps the kind so the client can tell a timed-out code from rejected credentials.
    """
    status_code = AUTH_ERROR_STATUS.get(kind, STATUS_BAD_GATEWAY) if kind else STATUS_BAD_GATEWAY
    return HTTPException(
        status_code=status_code,
        detail={"error": message or "login failed", "kind": kind.value if kind else None},
    )
