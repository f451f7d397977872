"""Shared test fixtures for silentflow.

Provides a pinned clock, an in-memory credential store, factories for id
tokens and cache records, config isolation, and output state management.
These fixtures are automatically discovered by pytest and available to
all test modules without explicit imports.
"""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from silentflow.cache import CredentialStore, MemoryBackend
from silentflow.models import (
    AccessTokenEntity,
    AccountEntity,
    AccountInfo,
    CacheRecord,
    ClientConfig,
    IdTokenEntity,
    RefreshTokenEntity,
)
from silentflow.output import OutputFormat, OutputManager, reset_output, set_output


NOW = 1_700_000_000
CLIENT_ID = "0f1e2d3c-client"
HOME_ACCOUNT_ID = "uid-1.utid-1"
ENVIRONMENT = "login.microsoftonline.com"
REALM = "utid-1"
AUTHORITY = f"https://{ENVIRONMENT}/{REALM}"


class FakeClock:
    """Callable clock returning a settable epoch-second time."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def encode_jwt(claims: dict[str, Any]) -> str:
    """Build an unsigned compact JWT carrying *claims*."""

    def _segment(data: dict[str, Any]) -> str:
        raw = json.dumps(data).encode("utf-8")
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    return f"{_segment({'alg': 'none', 'typ': 'JWT'})}.{_segment(claims)}.sig"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; CliRunner swaps those streams per invocation.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Clock, store and entity factories
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    """A clock pinned to ``NOW``."""
    return FakeClock()


@pytest.fixture
def store() -> CredentialStore:
    """An empty in-memory credential store."""
    return CredentialStore(MemoryBackend())


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(client_id=CLIENT_ID, authority=AUTHORITY)


@pytest.fixture
def account_info() -> AccountInfo:
    """The public view of the account seeded by ``record_factory``."""
    return AccountInfo(
        home_account_id=HOME_ACCOUNT_ID,
        environment=ENVIRONMENT,
        tenant_id=REALM,
        username="user@contoso.com",
        local_account_id="oid-1",
    )


@pytest.fixture
def jwt_factory() -> Callable[..., str]:
    """Return a function building an unsigned id token from keyword claims."""

    def _make(**claims: Any) -> str:
        defaults = {"oid": "oid-1", "tid": REALM, "preferred_username": "user@contoso.com"}
        return encode_jwt({**defaults, **claims})

    return _make


@pytest.fixture
def record_factory(jwt_factory: Callable[..., str]) -> Callable[..., CacheRecord]:
    """Return a function building a full cache record for the test account.

    Keyword arguments override the access-token fields; ``id_token_claims``
    sets extra id-token claims, and ``with_*`` flags drop entities.
    """

    def _make(
        target: str = "User.Read Mail.Read",
        cached_at: int = NOW - 60,
        expires_on: int = NOW + 3600,
        refresh_on: Optional[int] = None,
        secret: str = "cached-access-token",
        requested_claims_hash: Optional[str] = None,
        id_token_claims: Optional[dict[str, Any]] = None,
        with_access_token: bool = True,
        with_id_token: bool = True,
        with_refresh_token: bool = True,
        home_account_id: str = HOME_ACCOUNT_ID,
        realm: str = REALM,
        token_type: str = "Bearer",
    ) -> CacheRecord:
        common = dict(
            home_account_id=home_account_id,
            environment=ENVIRONMENT,
            client_id=CLIENT_ID,
            realm=realm,
        )
        return CacheRecord(
            account=AccountEntity(
                home_account_id=home_account_id,
                environment=ENVIRONMENT,
                realm=realm,
                local_account_id="oid-1",
                username="user@contoso.com",
            ),
            id_token=IdTokenEntity(**common, secret=jwt_factory(**(id_token_claims or {})))
            if with_id_token
            else None,
            access_token=AccessTokenEntity(
                **common,
                secret=secret,
                target=target,
                cached_at=cached_at,
                expires_on=expires_on,
                extended_expires_on=expires_on + 3600,
                refresh_on=refresh_on,
                token_type=token_type,
                requested_claims_hash=requested_claims_hash,
            )
            if with_access_token
            else None,
            refresh_token=RefreshTokenEntity(**common, secret="cached-refresh-token")
            if with_refresh_token
            else None,
        )

    return _make


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_CACHE_HOME to subdirectories of tmp_path,
    clears all SILENTFLOW_* environment variables and changes the working
    directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setattr("silentflow.config._is_xdg_platform", lambda: True)

    for var in ["SILENTFLOW_CLIENT_ID", "SILENTFLOW_AUTHORITY"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
