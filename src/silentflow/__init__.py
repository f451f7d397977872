"""silentflow -- silent OAuth2/OIDC token acquisition from a credential cache.

Given an account that has already signed in, silentflow answers token
requests from a local credential cache and falls back to redeeming the
cached refresh token when the cache cannot serve the request.

Typical use::

    store = CredentialStore(DiskBackend(get_cache_dir()))
    client = SilentFlowClient(ClientConfig(client_id="..."), store, HttpRefreshClient())
    result = await client.acquire_token(
        SilentFlowRequest(scopes=["user.read"], account=account)
    )

The ``silentflow`` command inspects a persisted cache and runs silent
requests against it from the shell.

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    cache: Credential store, storage backends and cache matcher.
    client: Silent-flow client and refresh collaborators.
    telemetry: Cache hit/miss counters and callbacks.
"""

__version__ = "0.1.0"
