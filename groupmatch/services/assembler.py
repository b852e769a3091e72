from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Mapping, Sequence

from .partition import Partition
from .profiles import EligibleUser
from .scoring import ScoreTable

GROUP_ID_NAMESPACE = uuid.UUID("5b0c8e0e-3f7a-4c39-9d52-7f1f2f0a9c41")


def group_id_for(run_key: str, member_ids: Sequence[str]) -> str:
    payload = f"{run_key}|{'|'.join(sorted(member_ids))}"
    return str(uuid.uuid5(GROUP_ID_NAMESPACE, payload))


@dataclass(frozen=True)
class MatchGroup:
    group_id: str
    members: tuple[EligibleUser, ...]
    average_score: float
    group_name: str = ""
    pair_scores: tuple[tuple[str, str, float], ...] = ()

    @property
    def member_ids(self) -> list[str]:
        return [m.user_id for m in self.members]

    def summary(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "group_name": self.group_name,
            "member_count": len(self.members),
            "average_score": self.average_score,
            "members": [m.summary() for m in self.members],
        }


@dataclass(frozen=True)
class RunStats:
    eligible_users: int = 0
    candidate_pairs: int = 0
    excluded_pairs: int = 0
    cooldown_pairs: int = 0
    groups_formed: int = 0
    users_matched: int = 0
    unmatched_users: int = 0
    average_score: float = 0.0
    swaps_applied: int = 0
    absorbed_users: int = 0
    duration_ms: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


@dataclass(frozen=True)
class MatchingResults:
    run_key: str
    groups: tuple[MatchGroup, ...] = ()
    unmatched: tuple[EligibleUser, ...] = ()
    excluded: Mapping[str, str] = field(default_factory=dict)
    stats: RunStats = field(default_factory=RunStats)
    pair_scores: tuple[tuple[str, str, float], ...] = field(default=(), compare=False)

    @property
    def groups_created(self) -> int:
        return len(self.groups)

    def partition_key(self) -> list[list[str]]:
        return [g.member_ids for g in self.groups]

    def summary(self) -> dict[str, Any]:
        return {
            "run_key": self.run_key,
            "groups_created": self.groups_created,
            "unmatched_user_ids": [u.user_id for u in self.unmatched],
            "excluded": dict(self.excluded),
            "stats": self.stats.as_dict(),
        }


def average_pair_score(member_ids: Sequence[str], scores: ScoreTable) -> tuple[float, tuple[tuple[str, str, float], ...]]:
    pairs = tuple((a, b, scores.score(a, b)) for a, b in combinations(member_ids, 2))
    if not pairs:
        return 0.0, pairs
    return round(sum(s for _, _, s in pairs) / len(pairs), 6), pairs


def assemble_results(
    partition: Partition,
    users_by_id: Mapping[str, EligibleUser],
    scores: ScoreTable,
    *,
    run_key: str,
    excluded: Mapping[str, str] | None = None,
    cooldown_pairs: int = 0,
    duration_ms: float = 0.0,
    group_name: str | None = None,
) -> MatchingResults:
    groups: list[MatchGroup] = []
    for idx, member_ids in enumerate(partition.groups, start=1):
        average, pairs = average_pair_score(member_ids, scores)
        groups.append(
            MatchGroup(
                group_id=group_id_for(run_key, member_ids),
                members=tuple(users_by_id[uid] for uid in member_ids),
                average_score=average,
                group_name=f"{group_name or run_key} #{idx}",
                pair_scores=pairs,
            )
        )

    matched = sum(len(g.members) for g in groups)
    overall = round(sum(g.average_score for g in groups) / len(groups), 6) if groups else 0.0
    stats = RunStats(
        eligible_users=len(users_by_id),
        candidate_pairs=len(scores),
        excluded_pairs=scores.excluded_count,
        cooldown_pairs=cooldown_pairs,
        groups_formed=len(groups),
        users_matched=matched,
        unmatched_users=len(partition.unmatched),
        average_score=overall,
        swaps_applied=partition.swaps,
        absorbed_users=partition.absorbed,
        duration_ms=round(duration_ms, 3),
    )
    return MatchingResults(
        run_key=run_key,
        groups=tuple(groups),
        unmatched=tuple(users_by_id[uid] for uid in partition.unmatched),
        excluded=dict(excluded or {}),
        stats=stats,
        pair_scores=tuple((p.user_a, p.user_b, p.score) for p in scores if not p.excluded),
    )
