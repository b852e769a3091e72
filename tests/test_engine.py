from datetime import date, datetime, timedelta, timezone

import pytest

import groupmatch.services.engine as engine_mod
from groupmatch.config import MatchingConfig, MatchingConfigError
from groupmatch.services.assembler import group_id_for
from groupmatch.services.engine import WeeklyMatchingEngine
from groupmatch.services.history import CooldownIndex
from groupmatch.services.matching import active_until
from groupmatch.services.partition import Partition
from groupmatch.services.profiles import EligibleUser, PastGroupMembership
from groupmatch.services.seeding import generate_profiles

NOW = datetime(2026, 3, 4, 9, 0, tzinfo=timezone.utc)
WEEK = date(2026, 3, 2)


def _row(user_id: str, **overrides):
    row = {
        "id": user_id,
        "first_name": user_id.title(),
        "medical_specialty": ["Emergency Medicine"],
        "city": "Riyadh",
        "availability_slots": ["fri_evening", "sat_evening"],
        "is_verified": True,
        "is_paid": True,
        "onboarding_completed": True,
    }
    row.update(overrides)
    return row


def _no_scoring(*args, **kwargs):
    raise AssertionError("scoring should not run")


def test_empty_pool_returns_empty_results_without_scoring(monkeypatch):
    monkeypatch.setattr(engine_mod, "build_score_table", _no_scoring)
    results = WeeklyMatchingEngine().run([], [], now=NOW)
    assert results.groups == ()
    assert results.unmatched == ()
    assert results.stats.eligible_users == 0
    assert results.run_key == WEEK.isoformat()


def test_pool_below_target_is_all_unmatched(monkeypatch):
    monkeypatch.setattr(engine_mod, "build_score_table", _no_scoring)
    results = WeeklyMatchingEngine().run([_row("a"), _row("b")], [], now=NOW, week_start=WEEK)
    assert results.groups_created == 0
    assert [u.user_id for u in results.unmatched] == ["a", "b"]
    assert results.stats.unmatched_users == 2


def test_three_eligible_users_make_one_group():
    rows = [_row("c"), _row("a"), _row("b"), _row("z", is_banned=True)]
    results = WeeklyMatchingEngine().run(rows, [], now=NOW, week_start=WEEK)
    assert results.partition_key() == [["a", "b", "c"]]
    group = results.groups[0]
    assert group.group_id == group_id_for(WEEK.isoformat(), ["a", "b", "c"])
    assert group.group_name == f"Week of {WEEK.isoformat()} #1"
    # interests and gender are unknown on both sides and score neutral
    assert group.average_score == pytest.approx(0.8)
    assert results.excluded == {"z": "banned"}


def test_past_memberships_block_repeat_groups():
    rows = [_row("a"), _row("b"), _row("c"), _row("d")]
    past = [
        PastGroupMembership(group_id="old", user_id=uid, week_start_date=date(2026, 2, 23))
        for uid in ("a", "b", "d")
    ]
    results = WeeklyMatchingEngine().run(rows, past, now=NOW, week_start=WEEK)
    assert results.groups_created == 0
    assert results.stats.cooldown_pairs == 3

    outside_window = [
        PastGroupMembership(group_id="older", user_id=uid, week_start_date=date(2025, 12, 1))
        for uid in ("a", "b", "d")
    ]
    results = WeeklyMatchingEngine().run(rows, outside_window, now=NOW, week_start=WEEK)
    assert results.groups_created == 1


def test_cooldown_off_skips_history():
    rows = [_row("a"), _row("b"), _row("c")]
    past = [PastGroupMembership(group_id="old", user_id=uid, week_start_date=date(2026, 2, 23)) for uid in "abc"]
    results = WeeklyMatchingEngine(MatchingConfig(cooldown_mode="off")).run(rows, past, now=NOW, week_start=WEEK)
    assert results.groups_created == 1


def test_repeated_runs_are_identical():
    rows = generate_profiles(45, seed=5, clustered=True)
    engine = WeeklyMatchingEngine()
    first = engine.run(rows, [], now=NOW, week_start=WEEK)
    second = engine.run(list(reversed(rows)), [], now=NOW, week_start=WEEK)
    assert first.partition_key() == second.partition_key()
    assert [g.group_id for g in first.groups] == [g.group_id for g in second.groups]
    assert first.stats.users_matched + first.stats.unmatched_users == first.stats.eligible_users


def test_threaded_scoring_gives_same_partition():
    rows = generate_profiles(30, seed=9)
    serial = WeeklyMatchingEngine().run(rows, [], now=NOW, week_start=WEEK)
    threaded = WeeklyMatchingEngine(MatchingConfig(score_workers=4)).run(rows, [], now=NOW, week_start=WEEK)
    assert serial.partition_key() == threaded.partition_key()


def test_match_pool_accepts_prefiltered_users():
    pool = [EligibleUser(user_id=uid, city="Jeddah") for uid in ("x", "y", "z")]
    results = WeeklyMatchingEngine().match_pool(pool, CooldownIndex.empty(), run_key="manual")
    assert results.run_key == "manual"
    assert results.partition_key() == [["x", "y", "z"]]


def test_custom_partitioner_is_used():
    class _NoGroups:
        def partition(self, pool, scores, history):
            return Partition(groups=[], unmatched=sorted(u.user_id for u in pool))

    results = WeeklyMatchingEngine(partitioner=_NoGroups()).run([_row("a"), _row("b"), _row("c")], [], now=NOW)
    assert results.groups_created == 0
    assert len(results.unmatched) == 3


def test_invalid_config_fails_before_any_work():
    with pytest.raises(MatchingConfigError):
        WeeklyMatchingEngine(MatchingConfig(target_size=1))


def test_last_weeks_cohort_is_back_in_the_pool_at_local_midnight(monkeypatch):
    monkeypatch.setattr(engine_mod, "MATCH_TIMEZONE", "Asia/Riyadh")
    last_week = date(2026, 10, 12)
    until = active_until(last_week, 7, "Asia/Riyadh")
    rows = [_row(uid, active_group_until=until) for uid in ("a", "b", "c")]

    # Monday 01:00 in Riyadh, still Sunday in UTC
    now = datetime(2026, 10, 18, 22, 0, tzinfo=timezone.utc)
    results = WeeklyMatchingEngine().run(rows, [], now=now)
    assert results.run_key == "2026-10-19"
    assert results.excluded == {}
    assert results.groups_created == 1

    earlier = WeeklyMatchingEngine().run(rows, [], now=now - timedelta(hours=2))
    assert earlier.excluded == {"a": "active_group", "b": "active_group", "c": "active_group"}


def test_naive_now_is_read_as_utc():
    rows = [
        _row("a", active_group_until="2026-10-12T00:00:00Z"),
        _row("b", active_group_until=datetime(2026, 10, 26, tzinfo=timezone.utc)),
        _row("c"),
        _row("d"),
    ]
    results = WeeklyMatchingEngine().run(rows, [], now=datetime(2026, 10, 19, 9, 0))
    assert results.excluded == {"b": "active_group"}
    assert results.partition_key() == [["a", "c", "d"]]
    assert results.run_key == "2026-10-19"


def test_default_week_follows_match_timezone(monkeypatch):
    monkeypatch.setattr(engine_mod, "MATCH_TIMEZONE", "Asia/Riyadh")
    sunday_night_utc = datetime(2026, 3, 8, 22, 0, tzinfo=timezone.utc)
    assert WeeklyMatchingEngine().run([], [], now=sunday_night_utc).run_key == "2026-03-09"

    monkeypatch.setattr(engine_mod, "MATCH_TIMEZONE", "UTC")
    assert WeeklyMatchingEngine().run([], [], now=sunday_night_utc).run_key == "2026-03-02"
