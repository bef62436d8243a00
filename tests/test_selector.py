from __future__ import annotations

from benefits.resolver import Benefit
from factories import make_feed
from scheduling.predicates import matches
from scheduling.registry import CustomSchedule, ScheduleRegistry, ensure_schedules
from scheduling.selector import TierSelector
from store.feeds import FeedCursor, FeedDisabledCode, FeedHealthStatus


DEFAULT = 600


def _select(db, selector, rate, benefits, feeds) -> set[str]:
    predicate = selector.select(rate, benefits)
    from_store = {f.feed_id for f in FeedCursor(db, predicate)}
    in_memory = {f.feed_id for f in feeds if matches(predicate, f)}
    assert from_store == in_memory
    return from_store


def test_scenario_keyword_and_benefit_override(db, add_feeds) -> None:
    ensure_schedules(db, [CustomSchedule(name="news", refresh_rate_seconds=60, keywords=("nyt",))])
    feeds = [
        make_feed("A", "https://nyt.com/feed", user_id="user-a"),
        make_feed("B", "https://other.com/feed", user_id="user-b"),
    ]
    add_feeds(*feeds)
    benefits = [Benefit(user_id="user-b", is_entitled=True, refresh_rate_seconds=60)]
    selector = TierSelector(ScheduleRegistry(db), default_rate_seconds=DEFAULT)

    assert _select(db, selector, 60, benefits, feeds) == {"A", "B"}
    assert _select(db, selector, DEFAULT, benefits, feeds) == set()


def test_default_tier_excludes_keyword_matches_without_benefit(db, add_feeds) -> None:
    ensure_schedules(db, [CustomSchedule(name="news", refresh_rate_seconds=60, keywords=("NYT",))])
    feeds = [
        make_feed("A", "https://www.nyt.com/rss"),
        make_feed("C", "https://example.org/rss"),
    ]
    add_feeds(*feeds)
    selector = TierSelector(ScheduleRegistry(db), default_rate_seconds=DEFAULT)

    assert _select(db, selector, DEFAULT, [], feeds) == {"C"}


def test_default_tier_excludes_every_feed_of_overridden_user(db, add_feeds) -> None:
    feeds = [
        make_feed("U1", "https://one.example/rss", user_id="user-u"),
        make_feed("U2", "https://two.example/rss", user_id="user-u"),
        make_feed("V1", "https://one.example/rss", user_id="user-v"),
    ]
    add_feeds(*feeds)
    benefits = [Benefit(user_id="user-u", is_entitled=True, refresh_rate_seconds=120)]
    selector = TierSelector(ScheduleRegistry(db), default_rate_seconds=DEFAULT)

    assert _select(db, selector, DEFAULT, benefits, feeds) == {"V1"}
    assert _select(db, selector, 120, benefits, feeds) == {"U1", "U2"}


def test_override_ignored_without_entitlement(db, add_feeds) -> None:
    feeds = [make_feed("N", "https://n.example/rss", user_id="user-n")]
    add_feeds(*feeds)
    benefits = [Benefit(user_id="user-n", is_entitled=False, refresh_rate_seconds=120)]
    selector = TierSelector(ScheduleRegistry(db), default_rate_seconds=DEFAULT)

    assert _select(db, selector, DEFAULT, benefits, feeds) == {"N"}
    assert _select(db, selector, 120, benefits, feeds) == set()


def test_partition_covers_each_eligible_feed_exactly_once(db, add_feeds) -> None:
    ensure_schedules(
        db,
        [
            CustomSchedule(name="news", refresh_rate_seconds=60, keywords=("nyt",)),
            CustomSchedule(name="news-upper", refresh_rate_seconds=60, keywords=("NYT\\.com",)),
            CustomSchedule(name="slow", refresh_rate_seconds=300, feed_ids=("f3",)),
            CustomSchedule(name="noop", refresh_rate_seconds=900),
        ],
    )
    feeds = [
        make_feed("f1", "https://plain.example/rss"),
        make_feed("f2", "https://nyt.com/world"),
        make_feed("f3", "https://slow.example/rss"),
        make_feed("f4", "https://b.example/rss", user_id="user-b"),
        make_feed("f5", "https://plain.example/rss", disabled_code=FeedDisabledCode.MANUAL),
        make_feed("f6", "https://plain.example/rss", health_status=FeedHealthStatus.FAILED),
        make_feed("f7", "https://plain.example/rss", connections={}),
        make_feed("f8", "https://c.example/rss", user_id="user-c"),
        make_feed("f9", "https://d.example/rss", user_id="user-d"),
        make_feed("f10", "https://www.NYT.com/tech"),
        make_feed("f11", "https://plain.example/rss", connections={"channels": [], "webhooks": []}),
    ]
    add_feeds(*feeds)
    benefits = [
        Benefit(user_id="user-b", is_entitled=True, refresh_rate_seconds=60),
        Benefit(user_id="user-c", is_entitled=False, refresh_rate_seconds=60),
        Benefit(user_id="user-d", is_entitled=True, refresh_rate_seconds=DEFAULT),
    ]
    registry = ScheduleRegistry(db)
    selector = TierSelector(registry, default_rate_seconds=DEFAULT)

    rates = {DEFAULT} | registry.refresh_rates() | {60}
    selections = {rate: _select(db, selector, rate, benefits, feeds) for rate in rates}

    assert selections[DEFAULT] == {"f1", "f8", "f9"}
    assert selections[60] == {"f2", "f4", "f10"}
    assert selections[300] == {"f3"}
    assert selections[900] == set()

    eligible = {f.feed_id for f in feeds if f.is_healthy and f.has_connections}
    claimed = [feed_id for selected in selections.values() for feed_id in selected]
    assert len(claimed) == len(set(claimed))
    assert set(claimed) == eligible


def test_invalid_keyword_pattern_matches_nothing(db, add_feeds) -> None:
    ensure_schedules(
        db,
        [CustomSchedule(name="broken", refresh_rate_seconds=60, keywords=("(unclosed", "nyt"))],
    )
    feeds = [
        make_feed("A", "https://nyt.com/feed"),
        make_feed("B", "https://(unclosed.example/feed"),
    ]
    add_feeds(*feeds)
    selector = TierSelector(ScheduleRegistry(db), default_rate_seconds=DEFAULT)

    assert _select(db, selector, 60, [], feeds) == {"A"}
    assert _select(db, selector, DEFAULT, [], feeds) == {"B"}
