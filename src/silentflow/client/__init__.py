"""Silent token acquisition for silentflow.

Classes:
    :class:`SilentFlowClient` -- serves requests from the cache and decides
        when a refresh is required.
    :class:`RefreshClient` -- contract for redeeming refresh tokens.
    :class:`HttpRefreshClient` -- default :mod:`httpx` implementation.

Example::

    from silentflow.client import HttpRefreshClient, SilentFlowClient

    client = SilentFlowClient(config, store, HttpRefreshClient())
    result, outcome = await client.acquire_cached_token(request)
"""

from silentflow.client.refresh import HttpRefreshClient, RefreshClient
from silentflow.client.silent_flow import (
    CacheHit,
    RefreshRequired,
    SilentFlowClient,
    SilentFlowDecision,
)

__all__ = [
    "CacheHit",
    "HttpRefreshClient",
    "RefreshClient",
    "RefreshRequired",
    "SilentFlowClient",
    "SilentFlowDecision",
]
