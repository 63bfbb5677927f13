"""Shared fixtures for Trackshare tests."""

from __future__ import annotations

import copy
from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from trackshare.backend.adapter import BackendAdapter
from trackshare.backend.client import BackendError
from trackshare.config import AppConfig
from trackshare.models import AuthUser, Session
from trackshare.server.app import create_app

# ---------------------------------------------------------------------------
# In-memory stand-in for BackendClient
# ---------------------------------------------------------------------------


def _matches(row: dict, column: str, expr: str) -> bool:
    op, _, value = expr.partition(".")
    actual = row.get(column)
    if op == "eq":
        if isinstance(actual, bool):
            return value == ("true" if actual else "false")
        return str(actual) == value
    if op == "cs":
        wanted = [v.strip('"') for v in value.strip("{}").split(",") if v]
        return all(w in (actual or []) for w in wanted)
    if op == "fts":
        terms = {t.strip().lower() for t in value.split("|")}
        words = set((actual or "").lower().split())
        return bool(terms & words)
    raise AssertionError(f"unsupported filter {expr!r}")


def _project(row: dict, columns: str) -> dict:
    if columns == "*":
        return copy.deepcopy(row)
    return {c: copy.deepcopy(row.get(c)) for c in columns.split(",")}


class FakeBackend:
    """Implements the BackendClient surface against plain dicts."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict]] = {"tracks": {}, "profiles": {}}
        self.auth_users: dict[str, dict] = {}  # email -> {id, email, password}
        self.access_tokens: dict[str, str] = {}  # token -> user id
        self.refresh_tokens: dict[str, str] = {}
        self.objects: dict[tuple[str, str], bytes] = {}
        self.deleted_users: list[str] = []
        self.fail_on: dict[str, BackendError] = {}
        self._seq = 0

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}{self._seq}"

    def _maybe_fail(self, key: str) -> None:
        if key in self.fail_on:
            raise self.fail_on[key]

    def _session(self, user_id: str, email: str) -> Session:
        access, refresh = f"tok-{user_id}-{self._seq}", f"ref-{user_id}-{self._seq}"
        self._seq += 1
        self.access_tokens[access] = user_id
        self.refresh_tokens[refresh] = user_id
        return Session(
            access_token=access,
            refresh_token=refresh,
            expires_in=3600,
            user=AuthUser(id=user_id, email=email),
        )

    # -- test helpers --

    def register(self, email: str, password: str, username: str) -> str:
        """Create an auth user with profile and return an access token."""
        user_id = self._next_id("U")
        self.auth_users[email] = {"id": user_id, "email": email, "password": password}
        self.tables["profiles"][user_id] = {"id": user_id, "email": email, "username": username}
        token = f"tok-{user_id}"
        self.access_tokens[token] = user_id
        return token

    def add_track(self, **fields: object) -> str:
        track_id = self._next_id("T")
        row = {
            "id": track_id,
            "name": "Untitled",
            "tags": [],
            "uploaded_at": datetime.now(UTC).isoformat(),
            "length": None,
            "audio_path": None,
            "cover_path": None,
            "uploader_id": None,
            "fts": "",
            "exposed": False,
        }
        row.update(fields)
        self.tables["tracks"][track_id] = row
        return track_id

    # -- auth --

    async def sign_up(self, email: str, password: str) -> AuthUser | None:
        self._maybe_fail("sign_up")
        existing = self.auth_users.get(email)
        if existing:
            return AuthUser(id=existing["id"], email=email, identities=[])
        user_id = self._next_id("U")
        self.auth_users[email] = {"id": user_id, "email": email, "password": password}
        return AuthUser(id=user_id, email=email, identities=[{"provider": "email"}])

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        user = self.auth_users.get(email)
        if not user or user["password"] != password:
            raise BackendError("Invalid login credentials", status=400, code="invalid_credentials")
        return self._session(user["id"], email)

    async def refresh_session(self, refresh_token: str) -> Session:
        user_id = self.refresh_tokens.pop(refresh_token, None)
        if user_id is None:
            raise BackendError("Invalid Refresh Token", status=400, code="refresh_token_not_found")
        email = next(u["email"] for u in self.auth_users.values() if u["id"] == user_id)
        return self._session(user_id, email)

    async def verify_otp(self, email: str, token: str, *, kind: str = "email") -> Session:
        user = self.auth_users.get(email)
        if not user or token != "123456":
            raise BackendError("Token has expired or is invalid", status=403, code="otp_expired")
        return self._session(user["id"], email)

    async def get_user(self, access_token: str) -> AuthUser:
        user_id = self.access_tokens.get(access_token)
        if user_id is None:
            raise BackendError("invalid JWT", status=403, code="bad_jwt")
        return AuthUser(id=user_id)

    async def delete_user(self, user_id: str) -> None:
        self._maybe_fail("delete_user")
        self.deleted_users.append(user_id)
        for email, user in list(self.auth_users.items()):
            if user["id"] == user_id:
                del self.auth_users[email]

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
        self._maybe_fail(f"select:{table}")
        rows = [
            r
            for r in self.tables[table].values()
            if all(_matches(r, col, expr) for col, expr in (filters or {}).items())
        ]
        if limit is not None:
            rows = rows[:limit]
        if single:
            if len(rows) != 1:
                raise BackendError(
                    "JSON object requested, multiple (or no) rows returned",
                    status=406,
                    code="PGRST116",
                )
            return _project(rows[0], columns)
        return [_project(r, columns) for r in rows]

    async def insert(self, table: str, row: dict, *, returning: str = "*") -> list[dict]:
        self._maybe_fail(f"insert:{table}")
        if table == "tracks":
            track_id = self.add_track(**row)
            return [_project(self.tables[table][track_id], returning)]
        for other in self.tables[table].values():
            if other["username"] == row["username"] or other["email"] == row["email"]:
                raise BackendError(
                    'duplicate key value violates unique constraint "profiles_username_key"',
                    status=409,
                    code="23505",
                )
        self.tables[table][row["id"]] = dict(row)
        return [_project(row, returning)]

    async def update(
        self,
        table: str,
        values: dict,
        *,
        filters: dict[str, str],
        returning: str | None = None,
    ) -> list[dict]:
        self._maybe_fail(f"update:{table}")
        updated = []
        for r in self.tables[table].values():
            if all(_matches(r, col, expr) for col, expr in filters.items()):
                r.update(values)
                updated.append(r)
        if returning is None:
            return []
        return [_project(r, returning) for r in updated]

    # -- storage --

    async def upload(
        self,
        bucket: str,
        name: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
    ) -> str:
        self._maybe_fail(f"upload:{bucket}")
        self.objects[(bucket, name)] = data
        return name

    async def create_signed_url(self, bucket: str, name: str, expires_in: int) -> str:
        self._maybe_fail("create_signed_url")
        return f"https://backend.test/storage/v1/object/sign/{bucket}/{name}?token=t&ttl={expires_in}"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def app_config() -> AppConfig:
    return AppConfig()


@pytest.fixture()
def adapter(fake_backend: FakeBackend, app_config: AppConfig) -> BackendAdapter:
    return BackendAdapter(fake_backend, app_config)  # type: ignore[arg-type]


@pytest.fixture()
def api(adapter: BackendAdapter, app_config: AppConfig) -> TestClient:
    return TestClient(create_app(adapter, app_config))


@pytest.fixture()
def alice(fake_backend: FakeBackend) -> dict[str, str]:
    """A registered user and the headers that authenticate as them."""
    token = fake_backend.register("alice@example.com", "longpass1", "alice")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def wav_bytes():
    """Factory producing a silent mono WAV of the requested duration."""
    import io
    import wave

    def _make(seconds: float, rate: int = 8000) -> bytes:
        buf = io.BytesIO()
        with wave.open(buf, "wb") as w:
            w.setnchannels(1)
            w.setsampwidth(2)
            w.setframerate(rate)
            w.writeframes(b"\x00\x00" * int(rate * seconds))
        return buf.getvalue()

    return _make
