"""Storage-agnostic selection predicates.

A predicate is a tree built from a closed set of clause kinds. The storage
adapter in ``store.feeds`` compiles it to SQL; :func:`matches` evaluates it
against an in-memory feed so selection rules can be checked without a
database.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from store.feeds import Feed


@dataclass(frozen=True)
class KeywordMatch:
    """Feed URL matches any of the patterns (case-insensitive search)."""

    patterns: tuple[str, ...]


@dataclass(frozen=True)
class IdIn:
    feed_ids: frozenset[str]


@dataclass(frozen=True)
class UserIn:
    user_ids: frozenset[str]


@dataclass(frozen=True)
class HealthOk:
    """Feed carries no disabled code and its health status is not failed."""


@dataclass(frozen=True)
class HasConnection:
    """At least one connection exists in the channel or webhook group."""


@dataclass(frozen=True)
class AllOf:
    clauses: tuple[Predicate, ...]


@dataclass(frozen=True)
class AnyOf:
    clauses: tuple[Predicate, ...]


@dataclass(frozen=True)
class Not:
    clause: Predicate


Predicate = Union[KeywordMatch, IdIn, UserIn, HealthOk, HasConnection, AllOf, AnyOf, Not]


def _search(pattern: str, value: str) -> bool:
    try:
        return re.search(pattern, value, re.IGNORECASE) is not None
    except re.error:
        return False


def matches(predicate: Predicate, feed: Feed) -> bool:
    if isinstance(predicate, KeywordMatch):
        return any(_search(p, feed.url) for p in predicate.patterns)
    if isinstance(predicate, IdIn):
        return feed.feed_id in predicate.feed_ids
    if isinstance(predicate, UserIn):
        return feed.user_id in predicate.user_ids
    if isinstance(predicate, HealthOk):
        return feed.is_healthy
    if isinstance(predicate, HasConnection):
        return feed.has_connections
    if isinstance(predicate, AllOf):
        return all(matches(c, feed) for c in predicate.clauses)
    if isinstance(predicate, AnyOf):
        return any(matches(c, feed) for c in predicate.clauses)
    if isinstance(predicate, Not):
        return not matches(predicate.clause, feed)
    raise TypeError(f"unknown predicate clause: {predicate!r}")
