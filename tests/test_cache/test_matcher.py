"""Tests for silentflow.cache.matcher.CacheMatcher."""

from __future__ import annotations

from typing import Callable

import pytest

from silentflow.cache import CacheMatcher, CacheQuery, CredentialStore
from silentflow.exceptions import InvalidClaimsError
from silentflow.models import AuthenticationScheme, CacheRecord
from silentflow.scopes import ScopeSet
from silentflow.tokens import hash_claims_request

HOME = "uid-1.utid-1"
ENV = "login.microsoftonline.com"
CLIENT = "0f1e2d3c-client"
REALM = "utid-1"
CLAIMS = '{"access_token": {"xms_cc": {"values": ["cp1"]}}}'


def _query(scopes: str = "User.Read", **overrides) -> CacheQuery:
    fields = dict(
        home_account_id=HOME,
        environment=ENV,
        client_id=CLIENT,
        realm=REALM,
        scopes=ScopeSet.from_target(scopes),
    )
    fields.update(overrides)
    return CacheQuery(**fields)


@pytest.fixture
def matcher(store: CredentialStore) -> CacheMatcher:
    return CacheMatcher(store)


# ---------------------------------------------------------------------------
# Account resolution
# ---------------------------------------------------------------------------


class TestAccount:
    def test_no_account_resolves_nothing(
        self, store: CredentialStore, matcher: CacheMatcher, record_factory: Callable[..., CacheRecord]
    ) -> None:
        record = record_factory()
        # Credentials without an account entity are not reachable.
        store.save_record(record.model_copy(update={"account": None}))
        result = matcher.match(_query())
        assert result.account_found is False
        assert result.record == CacheRecord()

    def test_account_found_with_all_entities(
        self, store: CredentialStore, matcher: CacheMatcher, record_factory
    ) -> None:
        store.save_record(record_factory())
        result = matcher.match(_query())
        assert result.account_found
        assert result.record.account is not None
        assert result.record.id_token is not None
        assert result.record.access_token is not None
        assert result.record.refresh_token is not None
        assert result.access_token_key is not None

    def test_missing_id_token_is_tolerated(self, store: CredentialStore, matcher: CacheMatcher, record_factory) -> None:
        store.save_record(record_factory(with_id_token=False))
        result = matcher.match(_query())
        assert result.record.id_token is None
        assert result.record.access_token is not None


# ---------------------------------------------------------------------------
# Scope matching
# ---------------------------------------------------------------------------


class TestScopes:
    def test_requested_subset_of_target_matches(self, store, matcher, record_factory) -> None:
        store.save_record(record_factory(target="User.Read Mail.Read Files.Read"))
        assert matcher.match(_query("mail.read USER.READ")).record.access_token is not None

    def test_requested_superset_of_target_does_not_match(self, store, matcher, record_factory) -> None:
        store.save_record(record_factory(target="User.Read"))
        result = matcher.match(_query("User.Read Mail.Send"))
        assert result.record.access_token is None
        assert result.record.refresh_token is not None

    def test_smallest_satisfying_target_wins(self, store, matcher, record_factory) -> None:
        store.save_record(record_factory(target="User.Read Mail.Read Files.Read", secret="wide"))
        store.save_record(record_factory(target="User.Read Mail.Read", secret="narrow"))
        store.save_record(record_factory(target="Calendars.Read", secret="other"))
        assert matcher.match(_query("User.Read")).record.access_token.secret == "narrow"

    def test_tie_break_is_deterministic(self, store, matcher, record_factory) -> None:
        store.save_record(record_factory(target="User.Read B.Read", secret="b"))
        store.save_record(record_factory(target="User.Read A.Read", secret="a"))
        picks = {matcher.match(_query("User.Read")).record.access_token.secret for _ in range(5)}
        assert picks == {"a"}

    def test_token_type_must_match(self, store, matcher, record_factory) -> None:
        store.save_record(record_factory(token_type="pop"))
        assert matcher.match(_query()).record.access_token is None
        pop = matcher.match(_query(authentication_scheme=AuthenticationScheme.POP))
        assert pop.record.access_token is not None

    def test_other_realm_token_is_ignored(self, store, matcher, record_factory) -> None:
        store.save_record(record_factory(realm="other-tenant"))
        result = matcher.match(_query())
        assert result.record.access_token is None


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------


class TestClaims:
    def test_claims_without_claims_caching_gate_all_tokens(self, store, matcher, record_factory) -> None:
        store.save_record(record_factory())
        result = matcher.match(_query(claims=CLAIMS))
        assert result.claims_gated
        assert result.record.access_token is None
        assert result.record.refresh_token is not None

    def test_empty_claims_object_does_not_gate(self, store, matcher, record_factory) -> None:
        store.save_record(record_factory())
        result = matcher.match(_query(claims="{}"))
        assert not result.claims_gated
        assert result.record.access_token is not None

    def test_matching_claims_hash_served_when_enabled(self, store, matcher, record_factory) -> None:
        store.save_record(record_factory(requested_claims_hash=hash_claims_request(CLAIMS)))
        result = matcher.match(_query(claims=CLAIMS, claims_based_caching_enabled=True))
        assert result.record.access_token is not None

    def test_different_claims_hash_not_served(self, store, matcher, record_factory) -> None:
        store.save_record(record_factory(requested_claims_hash=hash_claims_request('{"id_token": {}}')))
        result = matcher.match(_query(claims=CLAIMS, claims_based_caching_enabled=True))
        assert result.record.access_token is None

    def test_claims_bound_token_served_without_claims(self, store, matcher, record_factory) -> None:
        store.save_record(record_factory(requested_claims_hash=hash_claims_request(CLAIMS)))
        for enabled in (False, True):
            result = matcher.match(_query(claims_based_caching_enabled=enabled))
            assert result.record.access_token is not None
            assert result.record.access_token.requested_claims_hash == hash_claims_request(CLAIMS)

    def test_invalid_claims_raise(self, store, matcher, record_factory) -> None:
        store.save_record(record_factory())
        with pytest.raises(InvalidClaimsError):
            matcher.match(_query(claims="{oops"))
