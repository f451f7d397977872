"""Order- and case-insensitive scope sets.

A cached access token's ``target`` is a space-joined list of scopes.  Two
targets naming the same scopes in a different order or casing are the same
target, so every comparison goes through :class:`ScopeSet`, which trims and
lower-cases scopes while remembering the first-seen order for display.
"""

from __future__ import annotations

from typing import Iterable, Iterator

OPENID_SCOPE = "openid"
PROFILE_SCOPE = "profile"
OFFLINE_ACCESS_SCOPE = "offline_access"
OIDC_DEFAULT_SCOPES = (OPENID_SCOPE, PROFILE_SCOPE, OFFLINE_ACCESS_SCOPE)


class ScopeSet:
    """An immutable set of normalized scopes.

    Args:
        scopes: Scope strings.  Blank entries are dropped, duplicates
            (ignoring case) are collapsed.

    Example::

        granted = ScopeSet.from_target("openid profile User.Read")
        assert granted.contains(ScopeSet(["user.read"]))
    """

    __slots__ = ("_ordered",)

    def __init__(self, scopes: Iterable[str] = ()) -> None:
        ordered: dict[str, None] = {}
        for scope in scopes:
            normalized = scope.strip().lower()
            if normalized:
                ordered.setdefault(normalized, None)
        self._ordered = tuple(ordered)

    @classmethod
    def from_target(cls, target: str) -> ScopeSet:
        """Build a set from a space-joined ``target`` string."""
        return cls(target.split())

    def contains(self, other: ScopeSet) -> bool:
        """Return ``True`` if every scope in *other* is in this set."""
        return set(other._ordered) <= set(self._ordered)

    def union(self, other: Iterable[str]) -> ScopeSet:
        """Return a new set holding the scopes of both sets."""
        return ScopeSet((*self._ordered, *other))

    def as_list(self) -> list[str]:
        """Scopes in first-seen order."""
        return list(self._ordered)

    def print_scopes(self) -> str:
        """Space-joined scopes in first-seen order."""
        return " ".join(self._ordered)

    def cache_key(self) -> str:
        """Space-joined sorted scopes, identical for equal sets."""
        return " ".join(sorted(self._ordered))

    def __iter__(self) -> Iterator[str]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)

    def __bool__(self) -> bool:
        return bool(self._ordered)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScopeSet):
            return NotImplemented
        return set(self._ordered) == set(other._ordered)

    def __hash__(self) -> int:
        return hash(frozenset(self._ordered))

    def __repr__(self) -> str:
        return f"ScopeSet({self.as_list()!r})"
