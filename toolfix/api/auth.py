"""Caller identity.

Tokens are verified by the gateway in front of this service, which forwards
the authenticated user id in a header. This module only reads it.
"""

import os

from fastapi import Request

from toolfix.core.errors import UnauthenticatedError


def _header_name() -> str:
    return os.environ.get("AUTH_USER_HEADER", "X-User-Id")


def get_caller_id(request: Request) -> str | None:
    """Authenticated user id, or None for anonymous calls."""
    value = request.headers.get(_header_name(), "").strip()
    return value or None


def require_caller_id(request: Request) -> str:
    """Authenticated user id.

    Raises:
        UnauthenticatedError: If the request carries no identity.
    """
    caller = get_caller_id(request)
    if caller is None:
        raise UnauthenticatedError("User must be signed in.")
    return caller
