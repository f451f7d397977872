"""Deterministic cache key construction.

Keys are lower-cased and built from ``-``-joined components so the same
logical entity always lands under the same key:

* account: ``<home_account_id>-<environment>``
* credential: ``<home_account_id>-<environment>-<credential_type>-<client_id>-<realm>``
  followed, for access tokens, by ``-<target>`` and then the optional
  ``-<requested_claims_hash>`` and ``-<token_type>`` (non-bearer only).

The target component is the *sorted* scope list, so two tokens granted for
the same scopes in a different order share a key and the newer one replaces
the older.  Identifiers may themselves contain ``-``, so keys are never
parsed back into components; readers filter on entity fields instead.
"""

from __future__ import annotations

from typing import Optional, Union

from silentflow.models import (
    AccessTokenEntity,
    AccountEntity,
    AuthenticationScheme,
    CredentialType,
    IdTokenEntity,
    RefreshTokenEntity,
)
from silentflow.scopes import ScopeSet

SEPARATOR = "-"


def _join(*parts: str) -> str:
    return SEPARATOR.join(parts).lower()


def account_key(home_account_id: str, environment: str) -> str:
    """Key of the account entity for ``(home_account_id, environment)``."""
    return _join(home_account_id, environment)


def credential_prefix(
    home_account_id: str,
    environment: str,
    credential_type: CredentialType,
) -> str:
    """Leading key component shared by one account's credentials of a kind."""
    return _join(home_account_id, environment, credential_type.value) + SEPARATOR


def credential_key(
    home_account_id: str,
    environment: str,
    credential_type: CredentialType,
    client_id: str,
    realm: str = "",
    target: Optional[str] = None,
    requested_claims_hash: Optional[str] = None,
    token_type: Optional[AuthenticationScheme] = None,
) -> str:
    """Build the key of a credential entity.

    Args:
        home_account_id: Owning account.
        environment: Issuer host.
        credential_type: Kind of credential.
        client_id: Client application the credential was issued to.
        realm: Tenant id; empty for realm-less credentials.
        target: Space-joined scopes (access tokens only).  Normalized to
            sorted lower-case before use.
        requested_claims_hash: Claims binding of an access token.
        token_type: Token type of an access token.  Bearer is the default
            and is left out of the key.

    Returns:
        The lower-cased key string.
    """
    parts = [home_account_id, environment, credential_type.value, client_id, realm]
    if target is not None:
        parts.append(ScopeSet.from_target(target).cache_key())
    if requested_claims_hash:
        parts.append(requested_claims_hash)
    if token_type is not None and token_type is not AuthenticationScheme.BEARER:
        parts.append(token_type.value)
    return _join(*parts)


def entity_key(
    entity: Union[AccountEntity, IdTokenEntity, AccessTokenEntity, RefreshTokenEntity],
) -> str:
    """Return the key an entity is stored under."""
    if isinstance(entity, AccountEntity):
        return account_key(entity.home_account_id, entity.environment)
    if isinstance(entity, AccessTokenEntity):
        return credential_key(
            entity.home_account_id,
            entity.environment,
            entity.credential_type,
            entity.client_id,
            entity.realm,
            target=entity.target,
            requested_claims_hash=entity.requested_claims_hash,
            token_type=entity.token_type,
        )
    return credential_key(
        entity.home_account_id,
        entity.environment,
        entity.credential_type,
        entity.client_id,
        entity.realm,
    )
