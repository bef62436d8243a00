from __future__ import annotations

import logging
import re

from benefits.resolver import Benefit
from scheduling.predicates import (
    AllOf,
    AnyOf,
    HasConnection,
    HealthOk,
    IdIn,
    KeywordMatch,
    Not,
    Predicate,
    UserIn,
)
from scheduling.registry import CustomSchedule, ScheduleRegistry


logger = logging.getLogger(__name__)


def _valid_keywords(schedules: list[CustomSchedule]) -> list[str]:
    keywords: list[str] = []
    seen: set[str] = set()
    for schedule in schedules:
        for keyword in schedule.keywords:
            if keyword in seen:
                continue
            seen.add(keyword)
            try:
                re.compile(keyword, re.IGNORECASE)
            except re.error as e:
                logger.warning(
                    "Ignoring invalid keyword pattern in custom schedule",
                    extra={"schedule": schedule.name, "pattern": keyword, "error": str(e)},
                )
                continue
            keywords.append(keyword)
    return keywords


def _feed_ids(schedules: list[CustomSchedule]) -> frozenset[str]:
    return frozenset(feed_id for s in schedules for feed_id in s.feed_ids)


class TierSelector:
    """Builds the predicate selecting the feeds that belong to a refresh-rate tier.

    The default tier is an exclusion query: everything not claimed by a
    schedule at another rate and not owned by an entitled user whose override
    points elsewhere. Every other tier is an inclusion query. The two are only
    complementary across the whole partition, not per feed.
    """

    def __init__(self, registry: ScheduleRegistry, *, default_rate_seconds: int) -> None:
        self._registry = registry
        self.default_rate_seconds = default_rate_seconds

    def select(self, rate_seconds: int, benefits: list[Benefit]) -> Predicate:
        entitled = [b for b in benefits if b.is_entitled]
        if rate_seconds == self.default_rate_seconds:
            return self._default_tier(entitled)
        return self._tier(rate_seconds, entitled)

    def _default_tier(self, entitled: list[Benefit]) -> Predicate:
        excluded_users = frozenset(
            b.user_id
            for b in entitled
            if b.refresh_rate_seconds is not None
            and b.refresh_rate_seconds != self.default_rate_seconds
        )
        schedules = self._registry.schedules_excluding(self.default_rate_seconds)

        clauses: list[Predicate] = [HealthOk(), Not(UserIn(excluded_users))]
        clauses.extend(Not(KeywordMatch((k,))) for k in _valid_keywords(schedules))
        clauses.append(Not(IdIn(_feed_ids(schedules))))
        clauses.append(HasConnection())
        return AllOf(tuple(clauses))

    def _tier(self, rate_seconds: int, entitled: list[Benefit]) -> Predicate:
        included_users = frozenset(
            b.user_id for b in entitled if b.refresh_rate_seconds == rate_seconds
        )
        schedules = self._registry.schedules_matching_rate(rate_seconds)

        clauses: list[Predicate] = [
            AllOf((KeywordMatch((k,)), HealthOk(), HasConnection()))
            for k in _valid_keywords(schedules)
        ]
        clauses.append(AllOf((UserIn(included_users), HealthOk(), HasConnection())))
        clauses.append(AllOf((IdIn(_feed_ids(schedules)), HealthOk(), HasConnection())))
        return AnyOf(tuple(clauses))
