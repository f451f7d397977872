"""Canonical Pydantic models shared across all silentflow modules.

This is the single source of truth for data shapes in the project. The models
fall into four groups:

**Cache entities** -- serialised as JSON strings by the credential store:
    :class:`AccountEntity`, :class:`IdTokenEntity`, :class:`AccessTokenEntity`,
    :class:`RefreshTokenEntity`, the discriminated :data:`CacheEntity` union,
    and :class:`CacheRecord` (one group of entities written together).

**Requests** -- what callers hand to the silent flow:
    :class:`AccountInfo`, :class:`SilentFlowRequest`, :class:`CcsCredential`
    and :class:`RefreshTokenRequest`.

**Results** -- :class:`AuthenticationResult` and the :class:`CacheOutcome`
telemetry marker.

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`ClientConfig`, :class:`CacheConfig`, :class:`OutputConfig` and
    :class:`GlobalConfig`.

All models use Pydantic v2. Times on cache entities are integer epoch seconds.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, model_validator


# --- Enumerations ---


class _CaseInsensitiveEnum(str, enum.Enum):
    """String enum that accepts any casing of its values."""

    @classmethod
    def _missing_(cls, value: object) -> Any:
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        return None


class CredentialType(_CaseInsensitiveEnum):
    """Kinds of credential held in the cache."""

    ID_TOKEN = "IdToken"
    ACCESS_TOKEN = "AccessToken"
    ACCESS_TOKEN_WITH_AUTH_SCHEME = "AccessToken_With_AuthScheme"
    REFRESH_TOKEN = "RefreshToken"


class AuthenticationScheme(_CaseInsensitiveEnum):
    """Token type an access token was issued for."""

    BEARER = "Bearer"
    POP = "pop"


class CcsCredentialType(str, enum.Enum):
    """Kind of identifier carried by a :class:`CcsCredential` routing hint."""

    HOME_ACCOUNT_ID = "home_account_id"
    UPN = "UPN"


class CacheOutcome(str, enum.Enum):
    """Why a silent request was (or was not) served from the cache.

    Returned next to every cached result and attached to
    :class:`~silentflow.exceptions.TokenRefreshRequiredError`.  Values match
    the wire codes used by server-side telemetry.
    """

    NOT_APPLICABLE = "0"
    FORCE_REFRESH_OR_CLAIMS = "1"
    NO_CACHED_ACCESS_TOKEN = "2"
    CACHED_ACCESS_TOKEN_EXPIRED = "3"
    PROACTIVELY_REFRESHED = "4"


# --- Cache entities ---


class AccountEntity(BaseModel):
    """An authenticated end-user within one environment.

    Keyed by ``(home_account_id, environment)``.  ``home_account_id`` is the
    ``uid.utid`` pair taken from the token endpoint's ``client_info``.
    """

    home_account_id: str
    environment: str
    realm: str = ""
    local_account_id: str = ""
    username: str = ""
    authority_type: str = "MSSTS"
    name: Optional[str] = None

    def to_account_info(self, id_token_claims: Optional[dict[str, Any]] = None) -> AccountInfo:
        """Return the public :class:`AccountInfo` view of this account."""
        return AccountInfo(
            home_account_id=self.home_account_id,
            environment=self.environment,
            tenant_id=self.realm,
            username=self.username,
            local_account_id=self.local_account_id,
            name=self.name,
            id_token_claims=id_token_claims,
        )


class _CredentialBase(BaseModel):
    """Fields shared by every credential kind."""

    home_account_id: str
    environment: str
    client_id: str
    realm: str = ""
    secret: str


class IdTokenEntity(_CredentialBase):
    """A realm-scoped identity assertion.  ``secret`` is the signed JWT."""

    credential_type: CredentialType = CredentialType.ID_TOKEN


class AccessTokenEntity(_CredentialBase):
    """A cached access token.

    ``target`` is the space-joined set of granted scopes.  ``refresh_on`` is
    the soft threshold after which the token is still served but renewed in
    the background; it must fall strictly before ``expires_on``.
    ``requested_claims_hash`` binds the entry to the claims request that
    produced it.
    """

    credential_type: CredentialType = CredentialType.ACCESS_TOKEN
    target: str
    cached_at: int
    expires_on: int
    extended_expires_on: Optional[int] = None
    refresh_on: Optional[int] = None
    token_type: AuthenticationScheme = AuthenticationScheme.BEARER
    requested_claims: Optional[str] = None
    requested_claims_hash: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _default_credential_type(cls, data: Any) -> Any:
        # Non-bearer tokens live under their own credential type so a PoP
        # token can never be served to a bearer request by key collision.
        if isinstance(data, dict) and "credential_type" not in data:
            token_type = AuthenticationScheme(data.get("token_type", AuthenticationScheme.BEARER))
            if token_type is not AuthenticationScheme.BEARER:
                data = {**data, "credential_type": CredentialType.ACCESS_TOKEN_WITH_AUTH_SCHEME}
        return data

    @model_validator(mode="after")
    def _check_consistency(self) -> AccessTokenEntity:
        if self.credential_type not in (
            CredentialType.ACCESS_TOKEN,
            CredentialType.ACCESS_TOKEN_WITH_AUTH_SCHEME,
        ):
            raise ValueError(f"not an access token credential type: {self.credential_type.value}")
        if self.refresh_on is not None and self.refresh_on >= self.expires_on:
            raise ValueError("refresh_on must be earlier than expires_on")
        return self


class RefreshTokenEntity(_CredentialBase):
    """A long-lived refresh token.  Only used for network refresh."""

    credential_type: CredentialType = CredentialType.REFRESH_TOKEN
    family_id: Optional[str] = None


_TAGS = {
    CredentialType.ID_TOKEN.value.lower(): "id_token",
    CredentialType.ACCESS_TOKEN.value.lower(): "access_token",
    CredentialType.ACCESS_TOKEN_WITH_AUTH_SCHEME.value.lower(): "access_token",
    CredentialType.REFRESH_TOKEN.value.lower(): "refresh_token",
}


def _entity_tag(value: Any) -> Optional[str]:
    """Pick the union member for a raw or already-built cache entity."""
    if isinstance(value, dict):
        credential_type = value.get("credential_type")
    else:
        credential_type = getattr(value, "credential_type", None)
    if credential_type is None:
        return "account"
    return _TAGS.get(str(getattr(credential_type, "value", credential_type)).lower())


CacheEntity = Annotated[
    Union[
        Annotated[AccountEntity, Tag("account")],
        Annotated[IdTokenEntity, Tag("id_token")],
        Annotated[AccessTokenEntity, Tag("access_token")],
        Annotated[RefreshTokenEntity, Tag("refresh_token")],
    ],
    Discriminator(_entity_tag),
]
"""Any entity the credential store can hold."""


class CacheRecord(BaseModel):
    """A group of entities resolved together or written together.

    Token exchanges produce a full record; the matcher fills only the parts
    it found.
    """

    account: Optional[AccountEntity] = None
    id_token: Optional[IdTokenEntity] = None
    access_token: Optional[AccessTokenEntity] = None
    refresh_token: Optional[RefreshTokenEntity] = None


# --- Requests ---


class AccountInfo(BaseModel):
    """Public view of a signed-in account, as handed to and returned by callers."""

    home_account_id: str
    environment: str
    tenant_id: str = ""
    username: str = ""
    local_account_id: str = ""
    name: Optional[str] = None
    id_token_claims: Optional[dict[str, Any]] = None


class SilentFlowRequest(BaseModel):
    """A silent token request.

    ``account`` and ``scopes`` are optional at the type level so that the
    silent flow can reject their absence with its own error kinds instead of
    a validation error.  ``max_age`` is in milliseconds; ``claims`` is a JSON
    object encoded as a string.

    Example::

        SilentFlowRequest(
            scopes=["user.read"],
            account=account_info,
            authority="https://login.microsoftonline.com/common",
        )
    """

    scopes: Optional[list[str]] = None
    account: Optional[AccountInfo] = None
    authority: Optional[str] = None
    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    force_refresh: bool = False
    claims: Optional[str] = None
    max_age: Optional[int] = Field(default=None, ge=0)
    token_query_parameters: dict[str, str] = Field(default_factory=dict)
    authentication_scheme: AuthenticationScheme = AuthenticationScheme.BEARER


class CcsCredential(BaseModel):
    """Routing hint telling the token endpoint which account the call is for."""

    credential: str
    type: CcsCredentialType


class RefreshTokenRequest(BaseModel):
    """Everything the refresh collaborator needs to redeem a refresh token."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    refresh_token: str
    scopes: list[str]
    authority: str
    correlation_id: str
    account: AccountInfo
    claims: Optional[str] = None
    ccs_credential: Optional[CcsCredential] = None
    authentication_scheme: AuthenticationScheme = AuthenticationScheme.BEARER
    token_query_parameters: dict[str, str] = Field(default_factory=dict)


# --- Results ---


class AuthenticationResult(BaseModel):
    """The token handed back to callers, from the cache or from a refresh."""

    authority: str
    unique_id: str = ""
    tenant_id: str = ""
    scopes: list[str]
    account: AccountInfo
    id_token: str = ""
    id_token_claims: dict[str, Any] = Field(default_factory=dict)
    access_token: str
    from_cache: bool
    expires_on: Optional[datetime] = None
    ext_expires_on: Optional[datetime] = None
    refresh_on: Optional[datetime] = None
    token_type: AuthenticationScheme = AuthenticationScheme.BEARER
    correlation_id: str
    state: str = ""


# --- Configuration ---


class ClientConfig(BaseModel):
    """Identity of the client application and silent-flow policy knobs."""

    client_id: str = ""
    authority: Optional[str] = Field(
        default=None, description="Default authority, e.g. https://login.microsoftonline.com/common"
    )
    claims_based_caching_enabled: bool = Field(
        default=False,
        description="Serve cached tokens for claims requests when the claims hash matches",
    )
    token_renewal_offset_seconds: int = Field(
        default=300, ge=0, description="Treat tokens as expired this many seconds early"
    )


class CacheConfig(BaseModel):
    """Where the CLI keeps its credential cache."""

    backend: Literal["disk", "memory"] = Field(default="disk", description="disk or memory")
    directory: Optional[str] = Field(
        default=None, description="Cache directory (defaults to the XDG cache dir)"
    )


class OutputConfig(BaseModel):
    """Output formatting preferences."""

    format: str = Field(default="auto", description="Output format: auto, json, plain, rich")


class GlobalConfig(BaseModel):
    """Top-level configuration persisted to ``config.json``.

    Loaded by :func:`~silentflow.config.load_global_config` and saved by
    :func:`~silentflow.config.save_global_config`.
    """

    client: ClientConfig = Field(default_factory=ClientConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
