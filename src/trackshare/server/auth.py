"""Bearer-token authentication for protected routes."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import structlog
from fastapi import Header, HTTPException

from trackshare.models import AuthUser

if TYPE_CHECKING:
    from trackshare.backend.adapter import BackendAdapter

log = structlog.get_logger(__name__)

_SCHEME = "Bearer "


def make_current_user(adapter: BackendAdapter) -> Callable[..., Awaitable[AuthUser]]:
    """Build the dependency that resolves the request's bearer token to a user.

    A missing or malformed ``Authorization`` header is rejected with 400
    before any handler runs.  An invalid token raises the backend's error,
    which is left for the framework to turn into a server error.
    """

    async def current_user(authorization: str | None = Header(default=None)) -> AuthUser:
        if not authorization or not authorization.startswith(_SCHEME):
            log.info("auth_header_rejected")
            raise HTTPException(status_code=400, detail="No Access Token Found!")
        user = await adapter.get_user_from_token(authorization[len(_SCHEME):])
        structlog.contextvars.bind_contextvars(user_id=user.id)
        return user

    return current_user
