"""Refresh-token redemption.

:class:`RefreshClient` is the contract the silent-flow client depends on.
:class:`HttpRefreshClient` is the default implementation: it posts a
``refresh_token`` grant to the authority's v2.0 token endpoint with
:mod:`httpx` and turns the JSON response into a
:class:`~silentflow.models.CacheRecord` ready to be written to the cache.

Failures propagate to the caller unmodified; there is no retry.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from silentflow.exceptions import ConnectionError_, ServerError
from silentflow.models import (
    AccessTokenEntity,
    AccountEntity,
    AuthenticationScheme,
    CacheRecord,
    CcsCredential,
    CcsCredentialType,
    IdTokenEntity,
    RefreshTokenEntity,
    RefreshTokenRequest,
)
from silentflow.scopes import OIDC_DEFAULT_SCOPES, ScopeSet
from silentflow.timeutils import Clock
from silentflow.tokens import decode_client_info, extract_token_claims

logger = logging.getLogger(__name__)

TOKEN_ENDPOINT_PATH = "/oauth2/v2.0/token"


class RefreshClient(ABC):
    """Redeems a refresh token for a fresh group of cache entities."""

    @abstractmethod
    async def acquire_token_by_refresh_token(self, request: RefreshTokenRequest) -> CacheRecord:
        """Exchange ``request.refresh_token`` for new tokens.

        Returns:
            The entities to write to the cache.  ``access_token`` must be set.
        """


def ccs_header_value(ccs_credential: CcsCredential) -> str:
    """Format a routing hint as an ``X-AnchorMailbox`` header value."""
    if ccs_credential.type is CcsCredentialType.HOME_ACCOUNT_ID:
        uid, _, utid = ccs_credential.credential.partition(".")
        return f"Oid:{uid}@{utid}"
    return f"UPN:{ccs_credential.credential}"


def token_query_params(parameters: dict[str, str]) -> dict[str, str]:
    """Drop parameters with empty values."""
    return {name: value for name, value in parameters.items() if value}


class HttpRefreshClient(RefreshClient):
    """Refresh collaborator speaking to the token endpoint over HTTP.

    Args:
        http_client: Client to send requests with.  When ``None`` a
            short-lived :class:`httpx.AsyncClient` is created per call.
        timeout: Request timeout in seconds for the per-call client.
        clock: Time source used to stamp ``cached_at`` and expiries.

    Example::

        refresher = HttpRefreshClient()
        record = await refresher.acquire_token_by_refresh_token(request)
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        clock: Clock = time.time,
    ) -> None:
        self._http_client = http_client
        self._timeout = timeout
        self._clock = clock

    async def acquire_token_by_refresh_token(self, request: RefreshTokenRequest) -> CacheRecord:
        """POST a ``refresh_token`` grant and build the resulting cache record.

        Raises:
            ServerError: On an error status or a response without
                ``access_token``.
            ConnectionError_: On network or timeout errors.
        """
        url = request.authority.rstrip("/") + TOKEN_ENDPOINT_PATH
        scope = ScopeSet(request.scopes).union(OIDC_DEFAULT_SCOPES)
        data: dict[str, str] = {
            "client_id": request.client_id,
            "grant_type": "refresh_token",
            "refresh_token": request.refresh_token,
            "scope": scope.print_scopes(),
            "client_info": "1",
        }
        if request.claims:
            data["claims"] = request.claims
        if request.authentication_scheme is not AuthenticationScheme.BEARER:
            data["token_type"] = request.authentication_scheme.value

        headers = {
            "Accept": "application/json",
            "client-request-id": request.correlation_id,
        }
        if request.ccs_credential is not None:
            headers["X-AnchorMailbox"] = ccs_header_value(request.ccs_credential)

        logger.debug("Redeeming refresh token at %s", url)
        response = await self._post(url, token_query_params(request.token_query_parameters), data, headers)
        token_data = self._parse_response(response)
        return self._build_record(request, token_data)

    async def _post(
        self,
        url: str,
        params: dict[str, str],
        data: dict[str, str],
        headers: dict[str, str],
    ) -> httpx.Response:
        try:
            if self._http_client is not None:
                return await self._http_client.post(url, params=params, data=data, headers=headers)
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.post(url, params=params, data=data, headers=headers)
        except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
            raise ConnectionError_(f"Token request failed: {exc}") from exc

    def _parse_response(self, response: httpx.Response) -> dict[str, Any]:
        """Return the JSON body, raising :class:`ServerError` for failures."""
        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            error_code: Optional[str] = None
            msg = response.text[:200] if response.text else ""
            if isinstance(body, dict):
                error_code = body.get("error")
                msg = body.get("error_description") or error_code or msg
            prefix = f"HTTP {response.status_code}"
            raise ServerError(
                f"{prefix}: {msg}" if msg else prefix,
                status_code=response.status_code,
                server_error_code=error_code,
            )

        if not isinstance(body, dict) or "access_token" not in body:
            raise ServerError(
                "Token response missing 'access_token' field",
                status_code=response.status_code,
            )
        return body

    def _build_record(self, request: RefreshTokenRequest, token_data: dict[str, Any]) -> CacheRecord:
        now = int(self._clock())
        environment = request.account.environment or urlparse(request.authority).hostname or ""

        home_account_id = request.account.home_account_id
        if token_data.get("client_info"):
            uid, utid = decode_client_info(token_data["client_info"])
            home_account_id = f"{uid}.{utid}"

        raw_id_token = token_data.get("id_token")
        claims: dict[str, Any] = extract_token_claims(raw_id_token) if raw_id_token else {}
        realm = claims.get("tid") or request.account.tenant_id

        account = AccountEntity(
            home_account_id=home_account_id,
            environment=environment,
            realm=realm,
            local_account_id=claims.get("oid") or claims.get("sub") or request.account.local_account_id,
            username=claims.get("preferred_username") or claims.get("upn") or request.account.username,
            name=claims.get("name") or request.account.name,
        )
        id_token = None
        if raw_id_token:
            id_token = IdTokenEntity(
                home_account_id=home_account_id,
                environment=environment,
                client_id=request.client_id,
                realm=realm,
                secret=raw_id_token,
            )

        expires_in = int(token_data.get("expires_in", 3600))
        ext_expires_in = token_data.get("ext_expires_in")
        refresh_in = token_data.get("refresh_in")
        refresh_on = None
        if refresh_in is not None and int(refresh_in) < expires_in:
            refresh_on = now + int(refresh_in)
        granted = token_data.get("scope") or " ".join(request.scopes)

        access_token = AccessTokenEntity(
            home_account_id=home_account_id,
            environment=environment,
            client_id=request.client_id,
            realm=realm,
            secret=token_data["access_token"],
            target=granted,
            cached_at=now,
            expires_on=now + expires_in,
            extended_expires_on=now + int(ext_expires_in) if ext_expires_in is not None else None,
            refresh_on=refresh_on,
            token_type=token_data.get("token_type", request.authentication_scheme.value),
            requested_claims=request.claims,
        )
        refresh_token = RefreshTokenEntity(
            home_account_id=home_account_id,
            environment=environment,
            client_id=request.client_id,
            realm=realm,
            secret=token_data.get("refresh_token") or request.refresh_token,
            family_id=token_data.get("foci"),
        )
        return CacheRecord(
            account=account,
            id_token=id_token,
            access_token=access_token,
            refresh_token=refresh_token,
        )
