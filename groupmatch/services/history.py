from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable

from .profiles import PastGroupMembership, canonical_pair


class CooldownIndex:
    """Pairs of users who shared a group inside the cooldown window.

    Keyed by canonical pair so the partitioner's per-pair check is a set lookup.
    The value kept for each pair is the most recent week they were grouped.
    """

    def __init__(self, last_grouped: dict[tuple[str, str], date] | None = None) -> None:
        self._last_grouped = dict(last_grouped or {})

    @classmethod
    def empty(cls) -> "CooldownIndex":
        return cls()

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]], week: date | None = None) -> "CooldownIndex":
        marker = week or date.min
        return cls({canonical_pair(a, b): marker for a, b in pairs if a != b})

    @classmethod
    def from_memberships(
        cls,
        memberships: Iterable[PastGroupMembership],
        week_start: date,
        cooldown_weeks: int,
    ) -> "CooldownIndex":
        since = week_start - timedelta(days=7 * cooldown_weeks)
        groups: dict[str, list[PastGroupMembership]] = defaultdict(list)
        for m in memberships:
            if since <= m.week_start_date < week_start:
                groups[m.group_id].append(m)

        last_grouped: dict[tuple[str, str], date] = {}
        for members in groups.values():
            for i in range(len(members)):
                for j in range(i + 1, len(members)):
                    a, b = members[i], members[j]
                    if a.user_id == b.user_id:
                        continue
                    key = canonical_pair(a.user_id, b.user_id)
                    week = max(a.week_start_date, b.week_start_date)
                    if key not in last_grouped or last_grouped[key] < week:
                        last_grouped[key] = week
        return cls(last_grouped)

    def contains(self, user_a: str, user_b: str) -> bool:
        return canonical_pair(user_a, user_b) in self._last_grouped

    def last_grouped(self, user_a: str, user_b: str) -> date | None:
        return self._last_grouped.get(canonical_pair(user_a, user_b))

    @property
    def pairs(self) -> set[tuple[str, str]]:
        return set(self._last_grouped)

    def __len__(self) -> int:
        return len(self._last_grouped)

    def __contains__(self, pair: tuple[str, str]) -> bool:
        return self.contains(*pair)
