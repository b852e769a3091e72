from datetime import date

from groupmatch.services.history import CooldownIndex
from groupmatch.services.profiles import PastGroupMembership

WEEK = date(2026, 3, 2)


def _members(group_id: str, week: date, *user_ids: str):
    return [PastGroupMembership(group_id=group_id, user_id=uid, week_start_date=week) for uid in user_ids]


def test_pairs_inside_window_are_indexed():
    memberships = (
        _members("g1", date(2026, 2, 23), "a", "b", "c")
        + _members("g0", date(2026, 1, 26), "d", "e")
        + _members("g2", WEEK, "f", "g")
    )
    index = CooldownIndex.from_memberships(memberships, WEEK, cooldown_weeks=4)
    assert index.pairs == {("a", "b"), ("a", "c"), ("b", "c")}
    assert index.contains("b", "a")
    assert ("c", "a") in index
    assert not index.contains("d", "e")
    assert not index.contains("f", "g")


def test_window_start_is_inclusive():
    memberships = _members("g1", date(2026, 2, 2), "a", "b")
    assert CooldownIndex.from_memberships(memberships, WEEK, cooldown_weeks=4).contains("a", "b")
    assert not CooldownIndex.from_memberships(memberships, WEEK, cooldown_weeks=3).contains("a", "b")


def test_latest_week_is_kept_per_pair():
    memberships = _members("g1", date(2026, 2, 9), "a", "b") + _members("g2", date(2026, 2, 23), "b", "a")
    index = CooldownIndex.from_memberships(memberships, WEEK, cooldown_weeks=6)
    assert len(index) == 1
    assert index.last_grouped("a", "b") == date(2026, 2, 23)


def test_from_pairs_and_empty():
    index = CooldownIndex.from_pairs([("b", "a"), ("c", "c")])
    assert index.pairs == {("a", "b")}
    assert len(CooldownIndex.empty()) == 0


def test_membership_from_row_accepts_original_column_names():
    m = PastGroupMembership.from_row({"match_id": "m1", "user_id": "u1", "match_week": "2026-02-23"})
    assert m == PastGroupMembership(group_id="m1", user_id="u1", week_start_date=date(2026, 2, 23))
