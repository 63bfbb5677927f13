"""Sign-up, sign-in and session routes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from trackshare.schemas import UserCreate, UserOTPVerify, UserRefreshToken, UserSignIn
from trackshare.server.responses import error_status, json_result

if TYPE_CHECKING:
    from trackshare.backend.adapter import BackendAdapter


def create_users_router(adapter: BackendAdapter) -> APIRouter:
    """Build the router mounted under ``/users``."""
    router = APIRouter()

    @router.post("/signup")
    async def signup(body: UserCreate) -> JSONResponse:
        result = await adapter.create_user(body)
        return json_result(result, error_status(result))

    @router.post("/login")
    async def login(body: UserSignIn) -> JSONResponse:
        return json_result(await adapter.sign_in_to_user(body))

    @router.post("/otp/verify")
    async def verify_otp(body: UserOTPVerify) -> JSONResponse:
        result = await adapter.validate_otp(body)
        return json_result(result, error_status(result))

    # Historical path: the refresh route has always lived under /users/users.
    @router.post("/users/refresh")
    async def refresh(body: UserRefreshToken) -> JSONResponse:
        return json_result(await adapter.get_access_token_from_refresh(body))

    return router
