"""Async client for the hosted backend using httpx.

Three HTTP APIs share one base URL and one service key:

- ``/auth/v1``     — sign-up, sign-in, OTP, token refresh, user lookup
- ``/rest/v1``     — table reads and writes (PostgREST dialect)
- ``/storage/v1``  — object upload and signed URLs
"""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import quote

import httpx
import structlog

from trackshare.config import BackendConfig
from trackshare.models import AuthUser, Session

log = structlog.get_logger(__name__)

_AUTH = "/auth/v1"
_REST = "/rest/v1"
_STORAGE = "/storage/v1"
_SINGLE_OBJECT = "application/vnd.pgrst.object+json"
_UNIQUE_VIOLATION = "23505"


class BackendError(Exception):
    """Raised for any failed call to the backend."""

    def __init__(self, message: str, *, status: int = 500, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code

    @property
    def is_duplicate_key(self) -> bool:
        """True when the backend rejected a write on a unique constraint."""
        return self.code == _UNIQUE_VIOLATION or "duplicate key value" in self.message

    def to_dict(self) -> dict:
        error: dict = {"message": self.message, "status": self.status}
        if self.code is not None:
            error["code"] = self.code
        return error


# ---------------------------------------------------------------------------
# Filter helpers (PostgREST operator syntax)
# ---------------------------------------------------------------------------


def eq(value: object) -> str:
    if isinstance(value, bool):
        value = "true" if value else "false"
    return f"eq.{value}"


def contains(values: Iterable[str]) -> str:
    """Array containment filter: the column holds every one of *values*."""
    quoted = []
    for v in values:
        escaped = v.replace("\\", "\\\\").replace('"', '\\"')
        quoted.append(f'"{escaped}"')
    return "cs.{" + ",".join(quoted) + "}"


def text_search(query: str) -> str:
    return f"fts.{query}"


def _error_from_response(resp: httpx.Response) -> BackendError:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = (
        body.get("message")
        or body.get("msg")
        or body.get("error_description")
        or body.get("error")
        or resp.text
        or f"HTTP {resp.status_code}"
    )
    code = body.get("error_code") or body.get("code")
    return BackendError(
        str(message),
        status=resp.status_code,
        code=str(code) if code is not None else None,
    )


class BackendClient:
    """Async client for the backend's auth, table and storage APIs."""

    def __init__(
        self,
        config: BackendConfig,
        *,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = _transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> BackendClient:
        kw: dict = {"base_url": self._config.url.rstrip("/"), "timeout": 30.0}
        if self._transport is not None:
            kw["transport"] = self._transport
        self._client = httpx.AsyncClient(**kw)
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # -- request helper --

    def _headers(self, bearer: str | None = None) -> dict[str, str]:
        key = self._config.service_key.get_secret_value()
        return {"apikey": key, "Authorization": f"Bearer {bearer or key}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict | list | None = None,
        params: dict | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        bearer: str | None = None,
    ) -> httpx.Response:
        assert self._client is not None  # noqa: S101

        merged = self._headers(bearer)
        if headers:
            merged.update(headers)
        try:
            resp = await self._client.request(
                method,
                path,
                json=json,
                params=params,
                content=content,
                headers=merged,
            )
        except httpx.TransportError as exc:
            log.warning("backend_unreachable", method=method, path=path, error=str(exc))
            raise BackendError(f"Backend unreachable: {exc}", status=503) from exc

        if resp.status_code >= 400:
            err = _error_from_response(resp)
            log.warning(
                "backend_error",
                method=method,
                path=path,
                status=err.status,
                code=err.code,
                message=err.message,
            )
            raise err
        return resp

    # -- auth --

    async def sign_up(self, email: str, password: str) -> AuthUser | None:
        """Register a new auth user.

        Depending on project settings the backend answers with either the
        bare user or a full session; both are reduced to the user.
        """
        resp = await self._request("POST", f"{_AUTH}/signup", json={"email": email, "password": password})
        data = resp.json()
        if "access_token" in data:
            data = data.get("user") or {}
        if not data.get("id"):
            return None
        return AuthUser.model_validate(data)

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        resp = await self._request(
            "POST",
            f"{_AUTH}/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return Session.model_validate(resp.json())

    async def refresh_session(self, refresh_token: str) -> Session:
        resp = await self._request(
            "POST",
            f"{_AUTH}/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return Session.model_validate(resp.json())

    async def verify_otp(self, email: str, token: str, *, kind: str = "email") -> Session:
        resp = await self._request(
            "POST",
            f"{_AUTH}/verify",
            json={"type": kind, "email": email, "token": token},
        )
        return Session.model_validate(resp.json())

    async def get_user(self, access_token: str) -> AuthUser:
        """Resolve an end-user access token to its auth user."""
        resp = await self._request("GET", f"{_AUTH}/user", bearer=access_token)
        return AuthUser.model_validate(resp.json())

    async def delete_user(self, user_id: str) -> None:
        await self._request("DELETE", f"{_AUTH}/admin/users/{quote(user_id, safe='')}")

    # -- tables --

    async def select(
        self,
        table: str,
        columns: str = "*",
        *,
        filters: dict[str, str] | None = None,
        limit: int | None = None,
        single: bool = False,
    ) -> list[dict] | dict:
        """Read rows from *table*.

        With ``single=True`` exactly one row must match, otherwise the backend
        answers 406 and a :class:`BackendError` is raised.
        """
        params: dict = {"select": columns, **(filters or {})}
        if limit is not None:
            params["limit"] = limit
        headers = {"Accept": _SINGLE_OBJECT} if single else None
        resp = await self._request("GET", f"{_REST}/{table}", params=params, headers=headers)
        return resp.json()

    async def insert(self, table: str, row: dict, *, returning: str = "*") -> list[dict]:
        resp = await self._request(
            "POST",
            f"{_REST}/{table}",
            params={"select": returning},
            json=row,
            headers={"Prefer": "return=representation"},
        )
        return resp.json()

    async def update(
        self,
        table: str,
        values: dict,
        *,
        filters: dict[str, str],
        returning: str | None = None,
    ) -> list[dict]:
        """Update matching rows; returns them only when *returning* is given."""
        params = dict(filters)
        if returning is None:
            headers = {"Prefer": "return=minimal"}
        else:
            params["select"] = returning
            headers = {"Prefer": "return=representation"}
        resp = await self._request(
            "PATCH",
            f"{_REST}/{table}",
            params=params,
            json=values,
            headers=headers,
        )
        if returning is None:
            return []
        return resp.json()

    # -- storage --

    async def upload(
        self,
        bucket: str,
        name: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Store *data* as ``bucket/name`` and return the object path."""
        await self._request(
            "POST",
            f"{_STORAGE}/object/{bucket}/{quote(name)}",
            content=data,
            headers={"Content-Type": content_type, "x-upsert": "false"},
        )
        return name

    async def create_signed_url(self, bucket: str, name: str, expires_in: int) -> str:
        resp = await self._request(
            "POST",
            f"{_STORAGE}/object/sign/{bucket}/{quote(name)}",
            json={"expiresIn": expires_in},
        )
        signed = resp.json().get("signedURL")
        if not signed:
            raise BackendError("Signed URL missing from storage response", status=502)
        return f"{self._config.url.rstrip('/')}{_STORAGE}{signed}"
