from __future__ import annotations

import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import Protocol, Sequence

from ..config import MatchingConfig
from .history import CooldownIndex
from .profiles import EligibleUser, canonical_pair
from .scoring import ScoreTable, gender_mix_satisfied

logger = logging.getLogger(__name__)

# Swaps must beat the current average by more than float noise.
_EPS = 1e-12


@dataclass
class Partition:
    groups: list[list[str]] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)
    swaps: int = 0
    absorbed: int = 0
    passes: int = 0


class Partitioner(Protocol):
    def partition(self, pool: Sequence[EligibleUser], scores: ScoreTable, history: CooldownIndex) -> Partition:
        ...


class _PairView:
    """Effective pair weights and admissibility for one run."""

    def __init__(
        self,
        ids: list[str],
        scores: ScoreTable,
        history: CooldownIndex,
        config: MatchingConfig,
        users: dict[str, EligibleUser] | None = None,
    ) -> None:
        self.scores = scores
        self.users = users or {}
        self.allowed: set[tuple[str, str]] = set()
        self.weight: dict[tuple[str, str], float] = {}
        self.cooldown_blocked = 0
        for a, b in combinations(ids, 2):
            key = canonical_pair(a, b)
            pair = scores.get(a, b)
            if pair.excluded:
                continue
            weight = pair.score
            if history.contains(a, b):
                if config.cooldown_mode == "hard":
                    self.cooldown_blocked += 1
                    continue
                if config.cooldown_mode == "soft":
                    weight *= 1.0 - config.cooldown_penalty
            self.allowed.add(key)
            self.weight[key] = weight

    def is_allowed(self, a: str, b: str) -> bool:
        return canonical_pair(a, b) in self.allowed

    def fits(self, candidate: str, group: Sequence[str]) -> bool:
        return all(self.is_allowed(candidate, m) for m in group if m != candidate)

    def mix_ok(self, group: Sequence[str]) -> bool:
        return gender_mix_satisfied([self.users[m] for m in group if m in self.users])

    def average(self, group: Sequence[str]) -> float:
        pairs = list(combinations(group, 2))
        if not pairs:
            return 0.0
        return sum(self.weight[canonical_pair(a, b)] for a, b in pairs) / len(pairs)

    def raw_average(self, group: Sequence[str]) -> float:
        pairs = list(combinations(group, 2))
        if not pairs:
            return 0.0
        return sum(self.scores.score(a, b) for a, b in pairs) / len(pairs)

    def ranked_pairs(self) -> list[tuple[float, str, str]]:
        ranked = [(w, a, b) for (a, b), w in self.weight.items()]
        ranked.sort(key=lambda x: (-x[0], x[1], x[2]))
        return ranked


class GreedySwapPartitioner:
    """Greedy seed-and-extend grouping followed by a bounded swap search.

    1. rank admissible pairs by effective score (ties by user id);
    2. seed a group with the best pair whose members are both free and grow it
       to target_size with the member that maximises the group average;
    3. stop once fewer than target_size users are free;
    4. optionally let leftovers join a group that is still below max_size;
    5. swap single members between two groups when both averages rise.

    A group that reaches min_size must satisfy any member's "mixed" gender
    preference; growth, absorption and swaps all keep that true.
    """

    def __init__(self, config: MatchingConfig) -> None:
        self.config = config

    def partition(self, pool: Sequence[EligibleUser], scores: ScoreTable, history: CooldownIndex) -> Partition:
        ids = sorted({u.user_id for u in pool})
        if len(ids) < self.config.target_size:
            return Partition(groups=[], unmatched=ids)

        view = _PairView(ids, scores, history, self.config, users={u.user_id: u for u in pool})
        available = set(ids)
        groups: list[list[str]] = []

        for _, a, b in view.ranked_pairs():
            if len(available) < self.config.target_size:
                break
            if a not in available or b not in available:
                continue
            group = self._grow([a, b], available, view)
            if len(group) < self.config.min_size or not view.mix_ok(group):
                continue
            if view.raw_average(group) < self.config.min_group_score:
                continue
            groups.append(group)
            available.difference_update(group)

        absorbed = 0
        if self.config.absorb_remainder and self.config.max_size > self.config.target_size:
            absorbed = self._absorb(groups, available, view)

        swaps, passes = self._local_search(groups, view)

        result = Partition(groups=groups, unmatched=sorted(available), swaps=swaps, absorbed=absorbed, passes=passes)
        logger.debug(
            "[MATCHING] partition groups=%s unmatched=%s swaps=%s absorbed=%s cooldown_blocked=%s",
            len(result.groups),
            len(result.unmatched),
            swaps,
            absorbed,
            view.cooldown_blocked,
        )
        return result

    def _grow(self, seed: list[str], available: set[str], view: _PairView) -> list[str]:
        group = list(seed)
        while len(group) < self.config.target_size:
            best: tuple[float, str] | None = None
            for candidate in sorted(available.difference(group)):
                if not view.fits(candidate, group):
                    continue
                if len(group) + 1 >= self.config.min_size and not view.mix_ok(group + [candidate]):
                    continue
                key = (-view.average(group + [candidate]), candidate)
                if best is None or key < best:
                    best = key
            if best is None:
                break
            group.append(best[1])
        return group

    def _absorb(self, groups: list[list[str]], available: set[str], view: _PairView) -> int:
        absorbed = 0
        for uid in sorted(available):
            best: tuple[float, int] | None = None
            for idx, group in enumerate(groups):
                if len(group) >= self.config.max_size or not view.fits(uid, group) or not view.mix_ok(group + [uid]):
                    continue
                key = (-view.average(group + [uid]), idx)
                if best is None or key < best:
                    best = key
            if best is None:
                continue
            groups[best[1]].append(uid)
            available.discard(uid)
            absorbed += 1
        return absorbed

    def _local_search(self, groups: list[list[str]], view: _PairView) -> tuple[int, int]:
        swaps = 0
        passes = 0
        improved = True
        while improved and passes < self.config.local_search_max_passes:
            improved = False
            passes += 1
            for gi in range(len(groups)):
                for gj in range(gi + 1, len(groups)):
                    if self._try_swap(groups, gi, gj, view):
                        swaps += 1
                        improved = True
        return swaps, passes

    def _try_swap(self, groups: list[list[str]], gi: int, gj: int, view: _PairView) -> bool:
        left, right = groups[gi], groups[gj]
        left_avg = view.average(left)
        right_avg = view.average(right)
        for xi, x in enumerate(left):
            for yj, y in enumerate(right):
                new_left = left[:xi] + [y] + left[xi + 1:]
                new_right = right[:yj] + [x] + right[yj + 1:]
                if not view.fits(y, new_left) or not view.fits(x, new_right):
                    continue
                if not view.mix_ok(new_left) or not view.mix_ok(new_right):
                    continue
                if view.average(new_left) > left_avg + _EPS and view.average(new_right) > right_avg + _EPS:
                    groups[gi] = new_left
                    groups[gj] = new_right
                    return True
        return False


def partition_violations(
    partition: Partition,
    pool: Sequence[EligibleUser],
    scores: ScoreTable,
    history: CooldownIndex,
    config: MatchingConfig,
) -> list[str]:
    problems: list[str] = []
    users = {u.user_id: u for u in pool}
    pool_ids = {u.user_id for u in pool}
    seen: set[str] = set()
    for idx, group in enumerate(partition.groups):
        if not config.min_size <= len(group) <= config.max_size:
            problems.append(f"group {idx} has size {len(group)}")
        if len(set(group)) != len(group):
            problems.append(f"group {idx} repeats a member")
        for uid in group:
            if uid in seen:
                problems.append(f"user {uid} appears in more than one group")
            seen.add(uid)
        for a, b in combinations(group, 2):
            if scores.is_excluded(a, b):
                problems.append(f"group {idx} pairs hard-excluded users {a} and {b}")
            if config.cooldown_mode == "hard" and history.contains(a, b):
                problems.append(f"group {idx} repeats cooldown pair {a} and {b}")
        if not gender_mix_satisfied([users[m] for m in group if m in users]):
            problems.append(f"group {idx} is single-gender but a member asked for a mixed group")
    unmatched = set(partition.unmatched)
    if unmatched & seen:
        problems.append("unmatched users also appear in groups")
    if unmatched | seen != pool_ids:
        problems.append("groups and unmatched users do not cover the pool")
    return problems
