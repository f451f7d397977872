"""Credential store: typed access to cache entities over a storage backend.

Entities are serialised to JSON with Pydantic and handed to a
:class:`~silentflow.cache.backends.StorageBackend` as strings.  On the way
back they are validated through the :data:`~silentflow.models.CacheEntity`
discriminated union; anything that fails validation is logged and treated
as absent so one corrupt entry never breaks a lookup.

See Also:
    :mod:`silentflow.cache.keys` -- how entities are keyed.
    :class:`~silentflow.cache.matcher.CacheMatcher` -- the main reader.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError

from silentflow.cache import keys
from silentflow.cache.backends import SnapshotBackend, StorageBackend
from silentflow.models import (
    AccessTokenEntity,
    AccountEntity,
    AuthenticationScheme,
    CacheEntity,
    CacheRecord,
    CredentialType,
    IdTokenEntity,
    RefreshTokenEntity,
)

logger = logging.getLogger(__name__)

_ENTITY_ADAPTER: TypeAdapter[CacheEntity] = TypeAdapter(CacheEntity)

_E = TypeVar("_E")


class CredentialStore:
    """Read and write cache entities.

    The store itself holds no state besides its backend, so any number of
    silent-flow clients may share one instance.

    Args:
        backend: Where serialised entities live.

    Example::

        store = CredentialStore(MemoryBackend())
        store.save_record(record)
        account = store.get_account("uid.utid", "login.microsoftonline.com")
    """

    def __init__(self, backend: StorageBackend) -> None:
        self._backend = backend

    @property
    def backend(self) -> StorageBackend:
        """The underlying storage backend."""
        return self._backend

    # ------------------------------------------------------------------ #
    # Raw key access
    # ------------------------------------------------------------------ #

    def get(self, key: str) -> Optional[CacheEntity]:
        """Return the entity stored under *key*.

        Returns:
            The entity, or ``None`` when the key is missing or its value
            does not validate.
        """
        raw = self._backend.get(key)
        if raw is None:
            return None
        try:
            return _ENTITY_ADAPTER.validate_json(raw)
        except ValidationError as exc:
            logger.warning("Ignoring unreadable cache entry %s: %s", key, exc.errors()[0]["msg"])
            return None

    def set(self, key: str, entity: CacheEntity) -> None:
        """Store *entity* under *key*."""
        self._backend.set(key, entity.model_dump_json(exclude_none=True))

    def list_keys(self) -> list[str]:
        """Return every key in the backend, sorted."""
        return sorted(self._backend.keys())

    # ------------------------------------------------------------------ #
    # Group writes and snapshots
    # ------------------------------------------------------------------ #

    def save_record(self, record: CacheRecord) -> list[str]:
        """Write every entity present in *record* in one atomic step.

        Returns:
            The keys written.
        """
        items = {
            keys.entity_key(entity): entity.model_dump_json(exclude_none=True)
            for entity in (
                record.account,
                record.id_token,
                record.access_token,
                record.refresh_token,
            )
            if entity is not None
        }
        if items:
            self._backend.set_many(items)
            logger.debug("Saved %d cache entities", len(items))
        return list(items)

    def snapshot(self) -> CredentialStore:
        """Return a read-only store over a consistent view of this one."""
        return CredentialStore(SnapshotBackend(self._backend.snapshot()))

    # ------------------------------------------------------------------ #
    # Typed readers
    # ------------------------------------------------------------------ #

    def _get_typed(self, key: str, kind: type[_E]) -> Optional[_E]:
        entity = self.get(key)
        if entity is None:
            return None
        if not isinstance(entity, kind):
            logger.warning("Cache entry %s is a %s, expected %s", key, type(entity).__name__, kind.__name__)
            return None
        return entity

    def get_account(self, home_account_id: str, environment: str) -> Optional[AccountEntity]:
        """Return the account for ``(home_account_id, environment)``."""
        return self._get_typed(keys.account_key(home_account_id, environment), AccountEntity)

    def get_id_token(
        self, home_account_id: str, environment: str, client_id: str, realm: str
    ) -> Optional[IdTokenEntity]:
        """Return the realm-scoped id token of an account."""
        key = keys.credential_key(
            home_account_id, environment, CredentialType.ID_TOKEN, client_id, realm
        )
        return self._get_typed(key, IdTokenEntity)

    def get_refresh_token(
        self, home_account_id: str, environment: str, client_id: str, realm: str
    ) -> Optional[RefreshTokenEntity]:
        """Return the refresh token of an account."""
        key = keys.credential_key(
            home_account_id, environment, CredentialType.REFRESH_TOKEN, client_id, realm
        )
        return self._get_typed(key, RefreshTokenEntity)

    def iter_accounts(self) -> Iterator[tuple[str, AccountEntity]]:
        """Yield ``(key, account)`` for every readable account entity."""
        for key in self.list_keys():
            entity = self.get(key)
            if isinstance(entity, AccountEntity):
                yield key, entity

    def iter_access_tokens(
        self,
        home_account_id: str,
        environment: str,
        client_id: Optional[str] = None,
        realm: Optional[str] = None,
        token_type: Optional[AuthenticationScheme] = None,
    ) -> Iterator[tuple[str, AccessTokenEntity]]:
        """Yield ``(key, token)`` for an account's access tokens.

        Args:
            home_account_id: Owning account.
            environment: Issuer host.
            client_id: Only tokens issued to this client, when given.
            realm: Only tokens for this tenant, when given.
            token_type: Only tokens of this type, when given.
        """
        credential_types = (
            CredentialType.ACCESS_TOKEN,
            CredentialType.ACCESS_TOKEN_WITH_AUTH_SCHEME,
        )
        prefixes = tuple(
            keys.credential_prefix(home_account_id, environment, ct) for ct in credential_types
        )
        for key in self.list_keys():
            if not key.startswith(prefixes):
                continue
            entity = self.get(key)
            if not isinstance(entity, AccessTokenEntity):
                continue
            if not _same(entity.home_account_id, home_account_id):
                continue
            if not _same(entity.environment, environment):
                continue
            if client_id is not None and not _same(entity.client_id, client_id):
                continue
            if realm is not None and not _same(entity.realm, realm):
                continue
            if token_type is not None and entity.token_type is not token_type:
                continue
            yield key, entity


def _same(left: str, right: str) -> bool:
    return left.lower() == right.lower()
