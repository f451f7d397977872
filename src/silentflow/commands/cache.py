"""Cache commands -- inspect the credential cache and run silent requests.

Registered directly on the root app:

* ``silentflow accounts`` -- list cached accounts.
* ``silentflow tokens`` -- list access-token metadata (never the secrets).
* ``silentflow acquire`` -- run a silent request for a cached account.

Typical workflow::

    silentflow accounts
    silentflow acquire 1234.5678 --scope user.read --offline
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import typer

from silentflow.cache import CredentialStore
from silentflow.client import HttpRefreshClient, SilentFlowClient
from silentflow.config import open_backend, resolve_config
from silentflow.exceptions import (
    ClientConfigurationError,
    SilentFlowError,
    TokenRefreshRequiredError,
)
from silentflow.models import (
    AccountInfo,
    AuthenticationResult,
    CacheOutcome,
    GlobalConfig,
    SilentFlowRequest,
)
from silentflow.output import get_output
from silentflow.timeutils import to_datetime


def _resolve(ctx: typer.Context, cli_authority: Optional[str] = None) -> GlobalConfig:
    obj = ctx.obj or {}
    return resolve_config(cli_client_id=obj.get("client_id"), cli_authority=cli_authority)


def _fail(exc: SilentFlowError) -> typer.Exit:
    """Report *exc* on stderr and return the matching exit."""
    output = get_output()
    output.error(str(exc))
    if isinstance(exc, TokenRefreshRequiredError):
        output.suggest("Run again without --offline to redeem the refresh token.")
    elif isinstance(exc, ClientConfigurationError) and "client_id" in str(exc):
        output.suggest("silentflow config set client.client_id <id>")
    return typer.Exit(code=exc.exit_code)


def _iso(epoch_seconds: Optional[int]) -> str:
    value = to_datetime(epoch_seconds)
    return value.isoformat() if value is not None else ""


def accounts_command(ctx: typer.Context) -> None:
    """List accounts in the credential cache.

    Example::

        silentflow accounts
        silentflow --json accounts
    """
    output = get_output()
    try:
        config = _resolve(ctx)
    except SilentFlowError as exc:
        raise _fail(exc) from None

    backend = open_backend(config)
    try:
        accounts = [account for _, account in CredentialStore(backend).iter_accounts()]
    finally:
        backend.close()

    if not accounts:
        output.info("No cached accounts.")
        return
    output.print_table(
        ["home_account_id", "environment", "tenant", "username", "name"],
        [
            [a.home_account_id, a.environment, a.realm, a.username, a.name or ""]
            for a in accounts
        ],
        title="Cached accounts",
    )


def tokens_command(
    ctx: typer.Context,
    account: Optional[str] = typer.Option(
        None, "--account", "-a", help="Only show tokens of this home account id."
    ),
) -> None:
    """List cached access tokens.

    Shows scopes, expiry and refresh thresholds.  Token secrets are never
    printed.

    Example::

        silentflow tokens --account 1234.5678
    """
    output = get_output()
    try:
        config = _resolve(ctx)
    except SilentFlowError as exc:
        raise _fail(exc) from None

    backend = open_backend(config)
    rows: list[list[str]] = []
    try:
        store = CredentialStore(backend)
        for _, entity in store.iter_accounts():
            if account is not None and entity.home_account_id.lower() != account.lower():
                continue
            for _, token in store.iter_access_tokens(entity.home_account_id, entity.environment):
                rows.append(
                    [
                        token.home_account_id,
                        token.realm,
                        token.client_id,
                        token.target,
                        token.token_type.value,
                        _iso(token.expires_on),
                        _iso(token.refresh_on),
                        "yes" if token.requested_claims_hash else "no",
                    ]
                )
    finally:
        backend.close()

    if not rows:
        output.info("No cached access tokens.")
        return
    output.print_table(
        ["home_account_id", "tenant", "client_id", "scopes", "type", "expires_on", "refresh_on", "claims"],
        rows,
        title="Cached access tokens",
    )


async def _run_silent(
    client: SilentFlowClient, request: SilentFlowRequest, offline: bool
) -> tuple[AuthenticationResult, Optional[CacheOutcome]]:
    try:
        if offline:
            return await client.acquire_cached_token(request)
        return await client.acquire_token(request), None
    finally:
        # The process exits after this command; let proactive refreshes land.
        await client.wait_for_background_refreshes()


def acquire_command(
    ctx: typer.Context,
    home_account_id: str = typer.Argument(help="Home account id (uid.utid) of a cached account."),
    scope: list[str] = typer.Option(..., "--scope", "-s", help="Scope to request (repeatable)."),
    environment: Optional[str] = typer.Option(
        None, "--environment", "-e", help="Account environment, when the id is cached for several."
    ),
    authority: Optional[str] = typer.Option(None, "--authority", help="Authority URL override."),
    claims: Optional[str] = typer.Option(None, "--claims", help="JSON claims request."),
    max_age: Optional[int] = typer.Option(
        None, "--max-age", min=0, help="Maximum authentication age in milliseconds."
    ),
    force_refresh: bool = typer.Option(False, "--force-refresh", help="Skip the cached access token."),
    offline: bool = typer.Option(False, "--offline", help="Never contact the token endpoint."),
    show_token: bool = typer.Option(False, "--show-token", help="Print the access token itself."),
) -> None:
    """Acquire a token silently for a cached account.

    Serves the request from the cache when possible and otherwise redeems
    the cached refresh token.  With ``--offline`` a request the cache cannot
    serve fails with exit code 5.

    Example::

        silentflow acquire 1234.5678 -s user.read
        silentflow acquire 1234.5678 -s user.read --offline --json
    """
    output = get_output()
    try:
        config = _resolve(ctx, cli_authority=authority)
    except SilentFlowError as exc:
        raise _fail(exc) from None

    backend = open_backend(config)
    try:
        store = CredentialStore(backend)
        account_info = _find_account(store, home_account_id, environment)
        request = SilentFlowRequest(
            scopes=scope,
            account=account_info,
            authority=config.client.authority,
            claims=claims,
            max_age=max_age,
            force_refresh=force_refresh,
        )
        client = SilentFlowClient(
            config.client,
            store,
            refresh_client=None if offline else HttpRefreshClient(),
        )
        output.debug(f"Silent request {request.correlation_id} for {home_account_id}")
        result, outcome = asyncio.run(_run_silent(client, request, offline))
    except SilentFlowError as exc:
        raise _fail(exc) from None
    finally:
        backend.close()

    record: dict[str, Any] = {
        "home_account_id": result.account.home_account_id,
        "username": result.account.username,
        "tenant_id": result.tenant_id,
        "scopes": result.scopes,
        "token_type": result.token_type.value,
        "expires_on": result.expires_on.isoformat() if result.expires_on else None,
        "from_cache": result.from_cache,
        "correlation_id": result.correlation_id,
    }
    if outcome is not None:
        record["cache_outcome"] = outcome.name.lower()
    if show_token:
        record["access_token"] = result.access_token
    output.print_record(record)
    if result.from_cache:
        output.success("Served from cache.")
    else:
        output.success("Refreshed and cached a new token.")


def _find_account(store: CredentialStore, home_account_id: str, environment: Optional[str]) -> AccountInfo:
    matches = [
        entity
        for _, entity in store.iter_accounts()
        if entity.home_account_id.lower() == home_account_id.lower()
        and (environment is None or entity.environment.lower() == environment.lower())
    ]
    if matches:
        return matches[0].to_account_info()
    if environment is None:
        raise ClientConfigurationError(
            f"Account '{home_account_id}' is not cached; pass --environment to query it anyway"
        )
    return AccountInfo(home_account_id=home_account_id, environment=environment)
