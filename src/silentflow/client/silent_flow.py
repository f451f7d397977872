"""Silent token acquisition.

:class:`SilentFlowClient` decides whether a silent request can be answered
from the cache.  Each request moves through ``Resolving`` into one of two
terminal decisions:

* :class:`CacheHit` -- the cached access token is served.  When its soft
  refresh threshold has passed it is still served, and a refresh runs in
  the background.
* :class:`RefreshRequired` -- the cache cannot serve the request; the
  refresh token (if any) is redeemed and the new tokens are written back.

Rules are applied in a fixed order and the first match wins:

1. no account on the request -- :class:`NoAccountInSilentRequestError`
2. no scopes -- :class:`EmptyInputScopesError`
3. ``force_refresh`` -- refresh (``FORCE_REFRESH_OR_CLAIMS``)
4. no usable access token -- refresh (``NO_CACHED_ACCESS_TOKEN``, or
   ``FORCE_REFRESH_OR_CLAIMS`` when a claims request ruled them out)
5. ``cached_at`` in the future -- refresh (``CACHED_ACCESS_TOKEN_EXPIRED``)
6. within the renewal offset of ``expires_on`` -- refresh
   (``CACHED_ACCESS_TOKEN_EXPIRED``)
7. ``max_age`` set -- :class:`AuthTimeNotFoundError` or
   :class:`MaxAgeTranspiredError` when authentication is too old
8. cache hit (``PROACTIVELY_REFRESHED`` past ``refresh_on``)

See Also:
    :class:`~silentflow.cache.matcher.CacheMatcher` -- entity resolution.
    :class:`~silentflow.client.refresh.RefreshClient` -- token redemption.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Union

from silentflow.cache.matcher import CacheMatcher, CacheQuery
from silentflow.cache.store import CredentialStore
from silentflow.client.refresh import RefreshClient, token_query_params
from silentflow.exceptions import (
    AuthTimeNotFoundError,
    ClientConfigurationError,
    EmptyInputScopesError,
    MaxAgeTranspiredError,
    NoAccountInSilentRequestError,
    NoTokensFoundError,
    ServerError,
    TokenParsingError,
    TokenRefreshRequiredError,
)
from silentflow.models import (
    AccountInfo,
    AuthenticationResult,
    CacheOutcome,
    CacheRecord,
    CcsCredential,
    CcsCredentialType,
    ClientConfig,
    RefreshTokenEntity,
    RefreshTokenRequest,
    SilentFlowRequest,
)
from silentflow.scopes import ScopeSet
from silentflow.telemetry import TelemetryHook
from silentflow.timeutils import (
    Clock,
    is_max_age_transpired,
    is_refresh_due,
    is_token_expired,
    now_seconds,
    to_datetime,
    was_clock_turned_back,
)
from silentflow.tokens import extract_token_claims, hash_claims_request, normalize_claims

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheHit:
    """The cache can serve the request."""

    result: AuthenticationResult
    record: CacheRecord
    outcome: CacheOutcome


@dataclass(frozen=True)
class RefreshRequired:
    """The cache cannot serve the request.

    ``record`` carries whatever was resolved, in particular the refresh
    token used for the fallback exchange.
    """

    outcome: CacheOutcome
    record: CacheRecord


SilentFlowDecision = Union[CacheHit, RefreshRequired]


class SilentFlowClient:
    """Serve silent token requests from the cache, refreshing when needed.

    Args:
        config: Client id and silent-flow policy.
        store: The shared credential store.
        refresh_client: Redeems refresh tokens.  Without one, requests that
            need a refresh fail with :class:`ClientConfigurationError`.
        telemetry: Receives cache hit/miss events.  A private hook is
            created when omitted.
        clock: Time source in epoch seconds.

    Raises:
        ClientConfigurationError: If ``config.client_id`` is empty.

    Example::

        client = SilentFlowClient(config, store, HttpRefreshClient())
        result = await client.acquire_token(
            SilentFlowRequest(scopes=["user.read"], account=account)
        )
    """

    def __init__(
        self,
        config: ClientConfig,
        store: CredentialStore,
        refresh_client: Optional[RefreshClient] = None,
        telemetry: Optional[TelemetryHook] = None,
        clock: Clock = time.time,
    ) -> None:
        if not config.client_id:
            raise ClientConfigurationError("client_id is not configured")
        self._config = config
        self._store = store
        self._matcher = CacheMatcher(store)
        self._refresh_client = refresh_client
        self._telemetry = telemetry or TelemetryHook()
        self._clock = clock
        self._background_tasks: set[asyncio.Task[None]] = set()

    @property
    def telemetry(self) -> TelemetryHook:
        return self._telemetry

    @property
    def pending_background_refreshes(self) -> int:
        """Number of background refreshes still running."""
        return len(self._background_tasks)

    # ------------------------------------------------------------------ #
    # Decision
    # ------------------------------------------------------------------ #

    def evaluate(self, request: SilentFlowRequest) -> SilentFlowDecision:
        """Apply the cache rules to *request* at the current instant.

        Returns:
            :class:`CacheHit` or :class:`RefreshRequired`.

        Raises:
            NoAccountInSilentRequestError: If the request names no account.
            EmptyInputScopesError: If the request names no scopes.
            InvalidClaimsError: If ``request.claims`` is not a JSON object.
            AuthTimeNotFoundError: If ``max_age`` is set but the id token
                carries no ``auth_time``.
            TokenParsingError: If the ``auth_time`` claim is not a number.
            MaxAgeTranspiredError: If ``max_age`` has elapsed since
                authentication.
        """
        account = request.account
        if account is None:
            raise NoAccountInSilentRequestError()
        scopes = ScopeSet(request.scopes or ())
        if not scopes:
            raise EmptyInputScopesError()

        match = self._matcher.match(
            CacheQuery(
                home_account_id=account.home_account_id,
                environment=account.environment,
                client_id=self._config.client_id,
                realm=account.tenant_id,
                scopes=scopes,
                claims=request.claims,
                claims_based_caching_enabled=self._config.claims_based_caching_enabled,
                authentication_scheme=request.authentication_scheme,
            )
        )
        record = match.record
        now = now_seconds(self._clock)

        if request.force_refresh:
            return self._refresh_required(CacheOutcome.FORCE_REFRESH_OR_CLAIMS, record, "force_refresh set")

        access_token = record.access_token
        if access_token is None:
            if match.claims_gated:
                return self._refresh_required(
                    CacheOutcome.FORCE_REFRESH_OR_CLAIMS, record, "claims request without claims-based caching"
                )
            return self._refresh_required(
                CacheOutcome.NO_CACHED_ACCESS_TOKEN, record, "no matching access token"
            )

        if was_clock_turned_back(access_token.cached_at, now):
            return self._refresh_required(
                CacheOutcome.CACHED_ACCESS_TOKEN_EXPIRED, record, "access token cached in the future"
            )
        if is_token_expired(access_token.expires_on, now, self._config.token_renewal_offset_seconds):
            return self._refresh_required(
                CacheOutcome.CACHED_ACCESS_TOKEN_EXPIRED, record, "access token expired"
            )

        id_token_claims = self._id_token_claims(record)
        if request.max_age is not None:
            auth_time = id_token_claims.get("auth_time")
            if auth_time is None:
                raise AuthTimeNotFoundError()
            if isinstance(auth_time, bool) or not isinstance(auth_time, (int, float)):
                raise TokenParsingError(f"auth_time claim is not a number: {auth_time!r}")
            if is_max_age_transpired(int(auth_time), request.max_age, now):
                raise MaxAgeTranspiredError()

        outcome = CacheOutcome.NOT_APPLICABLE
        if is_refresh_due(access_token.refresh_on, now):
            outcome = CacheOutcome.PROACTIVELY_REFRESHED
        logger.debug("Cache hit for %s (outcome %s)", account.home_account_id, outcome.value)
        result = self._build_result(request, record, id_token_claims, from_cache=True)
        return CacheHit(result=result, record=record, outcome=outcome)

    def _refresh_required(self, outcome: CacheOutcome, record: CacheRecord, reason: str) -> RefreshRequired:
        logger.debug("Refresh required (outcome %s): %s", outcome.value, reason)
        return RefreshRequired(outcome=outcome, record=record)

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    async def acquire_cached_token(
        self, request: SilentFlowRequest
    ) -> tuple[AuthenticationResult, CacheOutcome]:
        """Return the cached token for *request* without touching the network.

        A token past its soft refresh threshold is returned immediately and
        renewed by a background task.

        Raises:
            TokenRefreshRequiredError: If the cache cannot serve the request.
                ``outcome`` says why.
        """
        decision = self.evaluate(request)
        if isinstance(decision, RefreshRequired):
            self._telemetry.record_cache_miss(decision.outcome, request.correlation_id)
            raise TokenRefreshRequiredError(outcome=decision.outcome)
        return self._serve_cache_hit(request, decision), decision.outcome

    async def acquire_token(self, request: SilentFlowRequest) -> AuthenticationResult:
        """Return a token for *request*, redeeming the refresh token if needed.

        Cancelling the caller cancels an in-flight refresh; background
        refreshes started for cache hits are unaffected.

        Raises:
            NoTokensFoundError: If a refresh is needed but no refresh token
                is cached.
            ClientConfigurationError: If a refresh is needed but no refresh
                client was configured.
        """
        decision = self.evaluate(request)
        if isinstance(decision, CacheHit):
            return self._serve_cache_hit(request, decision)
        self._telemetry.record_cache_miss(decision.outcome, request.correlation_id)
        return await self._refresh(request, decision.record)

    async def wait_for_background_refreshes(self) -> None:
        """Wait until every background refresh has finished."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def _serve_cache_hit(self, request: SilentFlowRequest, decision: CacheHit) -> AuthenticationResult:
        self._telemetry.record_cache_hit(decision.outcome, request.correlation_id)
        if decision.outcome is CacheOutcome.PROACTIVELY_REFRESHED:
            self._schedule_background_refresh(request, decision.record)
        return decision.result

    # ------------------------------------------------------------------ #
    # Refresh
    # ------------------------------------------------------------------ #

    def build_refresh_request(
        self, request: SilentFlowRequest, refresh_token: RefreshTokenEntity
    ) -> RefreshTokenRequest:
        """Assemble the exchange request for the refresh collaborator."""
        account = _require_account(request)
        claims = request.claims if normalize_claims(request.claims) is not None else None
        return RefreshTokenRequest(
            client_id=self._config.client_id,
            refresh_token=refresh_token.secret,
            scopes=list(request.scopes or ()),
            authority=self._authority_for(request, account),
            correlation_id=request.correlation_id,
            account=account,
            claims=claims,
            ccs_credential=CcsCredential(
                credential=account.home_account_id,
                type=CcsCredentialType.HOME_ACCOUNT_ID,
            ),
            authentication_scheme=request.authentication_scheme,
            token_query_parameters=token_query_params(request.token_query_parameters),
        )

    async def _refresh(self, request: SilentFlowRequest, record: CacheRecord) -> AuthenticationResult:
        refresh_token = record.refresh_token
        if refresh_token is None:
            raise NoTokensFoundError()
        if self._refresh_client is None:
            raise ClientConfigurationError("No refresh client configured")

        refresh_request = self.build_refresh_request(request, refresh_token)
        new_record = await self._refresh_client.acquire_token_by_refresh_token(refresh_request)
        access_token = new_record.access_token
        if access_token is None:
            raise ServerError("Refresh response did not include an access token")

        claims_hash = hash_claims_request(request.claims)
        if claims_hash is not None and self._config.claims_based_caching_enabled:
            access_token = access_token.model_copy(
                update={"requested_claims": request.claims, "requested_claims_hash": claims_hash}
            )
            new_record = new_record.model_copy(update={"access_token": access_token})

        self._store.save_record(new_record)
        logger.info("Refreshed access token for %s", refresh_request.account.home_account_id)
        return self._build_result(request, new_record, self._id_token_claims(new_record), from_cache=False)

    def _schedule_background_refresh(self, request: SilentFlowRequest, record: CacheRecord) -> None:
        task = asyncio.get_running_loop().create_task(self._background_refresh(request, record))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        logger.debug("Scheduled background refresh for %s", _require_account(request).home_account_id)

    async def _background_refresh(self, request: SilentFlowRequest, record: CacheRecord) -> None:
        try:
            await self._refresh(request, record)
        except Exception as exc:
            logger.warning("Background token refresh failed: %s", exc)

    # ------------------------------------------------------------------ #
    # Results
    # ------------------------------------------------------------------ #

    def _id_token_claims(self, record: CacheRecord) -> dict[str, Any]:
        if record.id_token is None:
            return {}
        return extract_token_claims(record.id_token.secret)

    def _authority_for(self, request: SilentFlowRequest, account: AccountInfo) -> str:
        if request.authority:
            return request.authority
        if self._config.authority:
            return self._config.authority
        return f"https://{account.environment}/{account.tenant_id or 'common'}"

    def _build_result(
        self,
        request: SilentFlowRequest,
        record: CacheRecord,
        id_token_claims: dict[str, Any],
        from_cache: bool,
    ) -> AuthenticationResult:
        access_token = record.access_token
        assert access_token is not None
        request_account = _require_account(request)
        if record.account is not None:
            account = record.account.to_account_info(id_token_claims or None)
        else:
            account = request_account
        return AuthenticationResult(
            authority=self._authority_for(request, request_account),
            unique_id=id_token_claims.get("oid") or id_token_claims.get("sub") or "",
            tenant_id=id_token_claims.get("tid") or access_token.realm,
            scopes=access_token.target.split(),
            account=account,
            id_token=record.id_token.secret if record.id_token is not None else "",
            id_token_claims=id_token_claims,
            access_token=access_token.secret,
            from_cache=from_cache,
            expires_on=to_datetime(access_token.expires_on),
            ext_expires_on=to_datetime(access_token.extended_expires_on),
            refresh_on=to_datetime(access_token.refresh_on),
            token_type=access_token.token_type,
            correlation_id=request.correlation_id,
        )


def _require_account(request: SilentFlowRequest) -> AccountInfo:
    if request.account is None:
        raise NoAccountInSilentRequestError()
    return request.account
