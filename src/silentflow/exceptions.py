"""Exception hierarchy for silentflow.

All exceptions inherit from :class:`SilentFlowError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`silentflow.exit_codes`
and a stable ``error_code`` string that callers can branch on without
matching exception types.  The CLI entry point catches ``SilentFlowError``
and exits with the appropriate code.

Subclass hierarchy::

    SilentFlowError (exit 1)
    +-- ClientConfigurationError       (exit 2)
    |   +-- EmptyInputScopesError
    |   +-- InvalidClaimsError
    +-- ConfigError                    (exit 1)
    +-- ClientAuthError                (exit 3)
    |   +-- NoAccountInSilentRequestError
    |   +-- TokenRefreshRequiredError  (exit 5)
    |   +-- AuthTimeNotFoundError
    |   +-- MaxAgeTranspiredError
    |   +-- TokenParsingError
    +-- InteractionRequiredError       (exit 3)
    |   +-- NoTokensFoundError
    +-- ServerError                    (exit 1)
    +-- ConnectionError_               (exit 6)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from silentflow.exit_codes import (
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INTERACTION_REQUIRED,
    EXIT_INVALID_USAGE,
    EXIT_REFRESH_REQUIRED,
)

if TYPE_CHECKING:
    from silentflow.models import CacheOutcome


class SilentFlowError(Exception):
    """Base exception for all silentflow errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE
    error_code: str = "unknown_error"

    def __init__(self, message: Optional[str] = None, exit_code: int | None = None):
        # Fall back to the first docstring line so bare raises stay readable.
        default = (type(self).__doc__ or self.error_code).strip().splitlines()[0]
        super().__init__(message or default)
        if exit_code is not None:
            self.exit_code = exit_code


# --- Configuration errors ---


class ClientConfigurationError(SilentFlowError):
    """The request or client configuration is invalid."""

    exit_code = EXIT_INVALID_USAGE
    error_code = "client_configuration_error"


class EmptyInputScopesError(ClientConfigurationError):
    """Scopes are required for silent token acquisition and none were given."""

    error_code = "empty_input_scopes_error"


class InvalidClaimsError(ClientConfigurationError):
    """The claims request is not a valid JSON object."""

    error_code = "invalid_claims"


class ConfigError(SilentFlowError):
    """Raised for configuration file problems (invalid JSON, unknown keys)."""

    error_code = "config_error"


# --- Client auth errors ---


class ClientAuthError(SilentFlowError):
    """Silent acquisition failed on the client side."""

    exit_code = EXIT_INTERACTION_REQUIRED
    error_code = "client_auth_error"


class NoAccountInSilentRequestError(ClientAuthError):
    """An account is required for silent token acquisition."""

    error_code = "no_account_in_silent_request"


class TokenRefreshRequiredError(ClientAuthError):
    """The cache cannot satisfy the request; a token refresh is required.

    Args:
        outcome: The :class:`~silentflow.models.CacheOutcome` explaining why
            the cached token was not usable.
    """

    exit_code = EXIT_REFRESH_REQUIRED
    error_code = "token_refresh_required"

    def __init__(
        self,
        message: Optional[str] = None,
        outcome: Optional["CacheOutcome"] = None,
    ):
        super().__init__(message)
        self.outcome = outcome


class AuthTimeNotFoundError(ClientAuthError):
    """max_age was requested but the id token carries no auth_time claim."""

    error_code = "auth_time_not_found"


class MaxAgeTranspiredError(ClientAuthError):
    """max_age has elapsed since the last end-user authentication."""

    error_code = "max_age_transpired"


class TokenParsingError(ClientAuthError):
    """A cached id token could not be decoded."""

    error_code = "token_parsing_error"


# --- Interaction required ---


class InteractionRequiredError(SilentFlowError):
    """The user must sign in interactively."""

    exit_code = EXIT_INTERACTION_REQUIRED
    error_code = "interaction_required"


class NoTokensFoundError(InteractionRequiredError):
    """No refresh token was found in the cache; interactive sign-in is required."""

    error_code = "no_tokens_found"


# --- Token endpoint failures (default refresh collaborator) ---


class ServerError(SilentFlowError):
    """The token endpoint rejected the refresh request."""

    error_code = "server_error"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        server_error_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.server_error_code = server_error_code


class ConnectionError_(SilentFlowError):
    """Network-level failure talking to the token endpoint.

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR
    error_code = "network_error"
