"""Resolve the cache entities that can serve a silent request.

The matcher reads one :meth:`~silentflow.cache.store.CredentialStore.snapshot`
per lookup and reports what it found; it never compares times.  Whether an
access token is still fresh enough is decided by the silent-flow client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from silentflow.cache.store import CredentialStore
from silentflow.models import AccessTokenEntity, AuthenticationScheme, CacheRecord
from silentflow.scopes import ScopeSet
from silentflow.tokens import hash_claims_request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheQuery:
    """What to look up.

    Attributes:
        home_account_id: Owning account.
        environment: Issuer host.
        client_id: Client application.
        realm: Tenant id of the account.
        scopes: Requested scopes; a matching access token must grant all.
        claims: JSON claims request, if any.
        claims_based_caching_enabled: Whether a claims request may be served
            by a token stamped with the same claims hash.
        authentication_scheme: Token type to match.
    """

    home_account_id: str
    environment: str
    client_id: str
    realm: str
    scopes: ScopeSet
    claims: Optional[str] = None
    claims_based_caching_enabled: bool = False
    authentication_scheme: AuthenticationScheme = AuthenticationScheme.BEARER


@dataclass
class MatchResult:
    """Entities resolved for a :class:`CacheQuery`.

    Attributes:
        account_found: ``False`` when no account entity exists, in which case
            nothing else was resolved.
        record: The resolved entities; any of them may be ``None``.
        claims_gated: ``True`` when a claims request ruled out every access
            token because claims-based caching is disabled.
        access_token_key: Store key of the chosen access token.
    """

    account_found: bool
    record: CacheRecord = field(default_factory=CacheRecord)
    claims_gated: bool = False
    access_token_key: Optional[str] = None


class CacheMatcher:
    """Look up entities in a :class:`CredentialStore`.

    Args:
        store: The shared credential store.
    """

    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    def match(self, query: CacheQuery) -> MatchResult:
        """Resolve account, id token, access token and refresh token.

        Raises:
            InvalidClaimsError: If ``query.claims`` is not a JSON object.
        """
        # Hash up front so that malformed claims fail before any lookup.
        claims_hash = hash_claims_request(query.claims)
        view = self._store.snapshot()

        account = view.get_account(query.home_account_id, query.environment)
        if account is None:
            logger.debug("No cached account for %s", query.home_account_id)
            return MatchResult(account_found=False)

        id_token = view.get_id_token(
            query.home_account_id, query.environment, query.client_id, query.realm
        )
        refresh_token = view.get_refresh_token(
            query.home_account_id, query.environment, query.client_id, query.realm
        )

        claims_gated = claims_hash is not None and not query.claims_based_caching_enabled
        access_token_key: Optional[str] = None
        access_token: Optional[AccessTokenEntity] = None
        if not claims_gated:
            candidates = [
                (key, token)
                for key, token in view.iter_access_tokens(
                    query.home_account_id,
                    query.environment,
                    client_id=query.client_id,
                    realm=query.realm,
                    token_type=query.authentication_scheme,
                )
                if ScopeSet.from_target(token.target).contains(query.scopes)
                and (claims_hash is None or token.requested_claims_hash == claims_hash)
            ]
            if candidates:
                access_token_key, access_token = min(
                    candidates, key=lambda item: (len(ScopeSet.from_target(item[1].target)), item[0])
                )
                if len(candidates) > 1:
                    logger.debug(
                        "%d access tokens satisfy the request, using %s",
                        len(candidates),
                        access_token_key,
                    )

        return MatchResult(
            account_found=True,
            record=CacheRecord(
                account=account,
                id_token=id_token,
                access_token=access_token,
                refresh_token=refresh_token,
            ),
            claims_gated=claims_gated,
            access_token_key=access_token_key,
        )
