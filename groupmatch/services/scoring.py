from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Sequence

from ..config import MatchingConfig
from .profiles import EligibleUser, canonical_pair

HARD_EXCLUSION_SCORE = 0.0

_ENERGY_LEVELS = ["low-key-intimate", "moderate-energy-small-groups", "high-energy-big-groups"]
_ACTIVITY_LEVELS = ["prefer-non-physical", "occasionally-active", "moderately-active", "active", "very-active"]
# Share of the interests dimension per kind, renormalised over the kinds both users filled in.
INTEREST_KIND_WEIGHTS = {"sports": 0.30, "music": 0.25, "movies": 0.25, "other": 0.20}


class SelfPairingError(ValueError):
    pass


@dataclass(frozen=True)
class PairScore:
    user_a: str
    user_b: str
    score: float
    excluded: bool = False
    breakdown: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_a, self.user_b)


def _jaccard(a: frozenset[str] | set[str], b: frozenset[str] | set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def _rating_agreement(a: Mapping[str, float], b: Mapping[str, float]) -> float:
    common = sorted(set(a) & set(b))
    if not common:
        return 0.0
    total = 0.0
    for sport in common:
        r1, r2 = a[sport], b[sport]
        # high shared ratings score best, a 4-point gap scores 0
        total += max(0.0, ((r1 + r2) / 2 / 5) * (1 - abs(r1 - r2) / 4))
    return min(1.0, total / max(len(common), 3))


def _ordinal(values: list[str], x: str, y: str, steps: dict[int, float], default: float) -> float | None:
    if x == y:
        return 1.0
    if x not in values or y not in values:
        return None
    return steps.get(abs(values.index(x) - values.index(y)), default)


def gender_excludes(user: EligibleUser, other: EligibleUser) -> bool:
    """True when `user`'s stated preference rules out being grouped with `other`."""
    if user.gender_preference != "same-gender-only":
        return False
    if not user.gender or not other.gender:
        return False
    return user.gender != other.gender


def gender_compatible(a: EligibleUser, b: EligibleUser) -> bool:
    return not gender_excludes(a, b) and not gender_excludes(b, a)


def gender_mix_satisfied(members: Sequence[EligibleUser]) -> bool:
    """False when someone asked for a mixed group and every member is known to share one gender."""
    if not any(m.gender_preference == "mixed" for m in members):
        return True
    genders = {m.gender for m in members}
    if None in genders:
        return True
    return len(genders) >= 2


class CompatibilityScorer:
    """Weighted pairwise compatibility in [0, 1].

    Every dimension that cannot be computed because a field is missing on
    either side scores `config.neutral_score` instead of 0 or 1.
    """

    def __init__(self, config: MatchingConfig) -> None:
        self.config = config
        self.weights = config.weights

    def score(self, a: EligibleUser, b: EligibleUser) -> PairScore:
        if a.user_id == b.user_id:
            raise SelfPairingError(f"Cannot score user {a.user_id!r} against itself")
        user_a, user_b = canonical_pair(a.user_id, b.user_id)

        if not gender_compatible(a, b):
            return PairScore(
                user_a=user_a,
                user_b=user_b,
                score=HARD_EXCLUSION_SCORE,
                excluded=True,
                breakdown={"gates": ["gender_preference_exclusion"], "components": {}},
            )

        components = {
            "specialty": self.specialty_score(a, b),
            "location": self.location_score(a, b),
            "interests": self.interests_score(a, b),
            "availability": self.availability_score(a, b),
            "gender": self.gender_score(a, b),
            "social": self.social_score(a, b),
        }
        total = sum(self.weights[name] * value for name, value in components.items())
        total = max(0.0, min(1.0, total))
        return PairScore(
            user_a=user_a,
            user_b=user_b,
            score=round(total, 6),
            breakdown={
                "gates": [],
                "components": {name: round(value, 6) for name, value in components.items()},
                "specialty_policy": self.pair_specialty_policy(a, b),
            },
        )

    def pair_specialty_policy(self, a: EligibleUser, b: EligibleUser) -> str:
        stated = {p for p in (a.specialty_preference, b.specialty_preference) if p in {"same", "different"}}
        if stated == {"same"}:
            return "same"
        if stated == {"different"}:
            return "complementary"
        return self.config.specialty_policy

    def specialty_score(self, a: EligibleUser, b: EligibleUser) -> float:
        if not a.specialties or not b.specialties:
            return self.config.neutral_score
        overlap = _jaccard({s.lower() for s in a.specialties}, {s.lower() for s in b.specialties})
        if self.pair_specialty_policy(a, b) == "same":
            return overlap
        return 1.0 - overlap

    def location_score(self, a: EligibleUser, b: EligibleUser) -> float:
        if not a.city_key or not b.city_key:
            return self.config.neutral_score
        return 1.0 if a.city_key == b.city_key else 0.0

    def interests_score(self, a: EligibleUser, b: EligibleUser) -> float:
        weighted = 0.0
        total_weight = 0.0
        for kind, weight in INTEREST_KIND_WEIGHTS.items():
            tags_a = a.interests.get(kind)
            tags_b = b.interests.get(kind)
            if not tags_a or not tags_b:
                continue
            if kind == "sports" and a.sports_ratings and b.sports_ratings:
                value = _rating_agreement(a.sports_ratings, b.sports_ratings)
            else:
                value = _jaccard(tags_a, tags_b)
            weighted += weight * value
            total_weight += weight
        if not total_weight:
            return self.config.neutral_score
        return weighted / total_weight

    def availability_score(self, a: EligibleUser, b: EligibleUser) -> float:
        if not a.availability_slots or not b.availability_slots:
            return self.config.neutral_score
        common = len(a.availability_slots & b.availability_slots)
        return common / min(len(a.availability_slots), len(b.availability_slots))

    def gender_score(self, a: EligibleUser, b: EligibleUser) -> float:
        if not a.gender or not b.gender:
            return self.config.neutral_score
        return 1.0

    def social_score(self, a: EligibleUser, b: EligibleUser) -> float:
        factors: list[float] = []

        if a.social_energy_level and b.social_energy_level:
            if "varies-by-mood" in {a.social_energy_level, b.social_energy_level} and a.social_energy_level != b.social_energy_level:
                factors.append(0.8)
            else:
                energy = _ordinal(_ENERGY_LEVELS, a.social_energy_level, b.social_energy_level, {1: 0.7}, 0.3)
                factors.append(self.config.neutral_score if energy is None else energy)

        if a.conversation_style and b.conversation_style:
            if a.conversation_style == b.conversation_style:
                factors.append(1.0)
            elif "mix-everything" in {a.conversation_style, b.conversation_style}:
                factors.append(0.8)
            else:
                factors.append(0.5)

        if a.activity_level and b.activity_level:
            activity = _ordinal(_ACTIVITY_LEVELS, a.activity_level, b.activity_level, {1: 0.8, 2: 0.6}, 0.3)
            factors.append(self.config.neutral_score if activity is None else activity)

        if not factors:
            return self.config.neutral_score
        return sum(factors) / len(factors)


class ScoreTable:
    """Fully materialised pairwise scores keyed by canonical pair."""

    def __init__(self, pairs: dict[tuple[str, str], PairScore]) -> None:
        self._pairs = pairs

    def get(self, user_a: str, user_b: str) -> PairScore:
        if user_a == user_b:
            raise SelfPairingError(f"No score exists for user {user_a!r} with itself")
        return self._pairs[canonical_pair(user_a, user_b)]

    def score(self, user_a: str, user_b: str) -> float:
        return self.get(user_a, user_b).score

    def is_excluded(self, user_a: str, user_b: str) -> bool:
        return self.get(user_a, user_b).excluded

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self) -> Iterator[PairScore]:
        for key in sorted(self._pairs):
            yield self._pairs[key]

    def __contains__(self, pair: tuple[str, str]) -> bool:
        return canonical_pair(*pair) in self._pairs

    @property
    def excluded_count(self) -> int:
        return sum(1 for p in self._pairs.values() if p.excluded)


def build_score_table(users: Sequence[EligibleUser], scorer: CompatibilityScorer, workers: int = 1) -> ScoreTable:
    ordered = sorted(users, key=lambda u: u.user_id)
    jobs = [(ordered[i], ordered[j]) for i in range(len(ordered)) for j in range(i + 1, len(ordered))]

    if workers > 1 and len(jobs) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            scored = list(pool.map(lambda job: scorer.score(*job), jobs))
    else:
        scored = [scorer.score(a, b) for a, b in jobs]

    return ScoreTable({p.key: p for p in scored})
