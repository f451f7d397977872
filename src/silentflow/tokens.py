"""Id-token claim extraction and claims-request normalization.

Two unrelated JSON payloads pass through the silent flow:

* The **id token** is a JWT whose payload carries identity claims
  (``oid``, ``tid``, ``auth_time``...).  :func:`extract_token_claims`
  decodes it without verifying the signature; the token came from the
  cache, which only ever holds tokens a successful exchange produced.
* The **claims request** is a JSON object the caller attaches to a request.
  :func:`normalize_claims` canonicalizes it and :func:`claims_hash` turns
  it into the stable digest stored on access tokens when claims-based
  caching is enabled, so equality is a string comparison.
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any, Optional

from silentflow.exceptions import InvalidClaimsError, TokenParsingError


def _b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def extract_token_claims(encoded_token: str) -> dict[str, Any]:
    """Decode the payload of a JWT.

    Args:
        encoded_token: A compact-serialized JWT (``header.payload.signature``).

    Returns:
        The payload claims as a dict.

    Raises:
        TokenParsingError: If the token is not a three-part JWT or its
            payload is not a base64url-encoded JSON object.
    """
    parts = encoded_token.split(".")
    if len(parts) != 3 or not parts[1]:
        raise TokenParsingError("Token is not a compact JWT")
    try:
        claims = json.loads(_b64url_decode(parts[1]))
    except (ValueError, UnicodeDecodeError) as exc:
        raise TokenParsingError(f"Token payload could not be decoded: {exc}") from exc
    if not isinstance(claims, dict):
        raise TokenParsingError("Token payload is not a JSON object")
    return claims


def decode_client_info(raw_client_info: str) -> tuple[str, str]:
    """Decode the token endpoint's ``client_info`` into ``(uid, utid)``.

    Raises:
        TokenParsingError: If the value is not base64url JSON with
            ``uid`` and ``utid``.
    """
    try:
        info = json.loads(_b64url_decode(raw_client_info))
        return str(info["uid"]), str(info["utid"])
    except (ValueError, UnicodeDecodeError, KeyError, TypeError) as exc:
        raise TokenParsingError(f"client_info could not be decoded: {exc}") from exc


def normalize_claims(claims: Optional[str]) -> Optional[dict[str, Any]]:
    """Parse a claims request, treating blank input and ``{}`` as no claims.

    Args:
        claims: The JSON-encoded claims request, or ``None``.

    Returns:
        The parsed object, or ``None`` when there is nothing to honor.

    Raises:
        InvalidClaimsError: If *claims* is not a JSON object.
    """
    if claims is None or not claims.strip():
        return None
    try:
        parsed = json.loads(claims)
    except ValueError as exc:
        raise InvalidClaimsError(f"Claims request is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise InvalidClaimsError("Claims request must be a JSON object")
    return parsed or None


def claims_hash(claims: dict[str, Any]) -> str:
    """Return the SHA-256 hex digest of the canonical form of *claims*.

    Key order and insignificant whitespace do not change the digest.
    """
    canonical = json.dumps(claims, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_claims_request(claims: Optional[str]) -> Optional[str]:
    """Normalize and hash a claims request in one step.

    Returns:
        The digest, or ``None`` when the request carries no claims.
    """
    normalized = normalize_claims(claims)
    if normalized is None:
        return None
    return claims_hash(normalized)
