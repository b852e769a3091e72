from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Mapping

INTEREST_KINDS = ("sports", "music", "movies", "other")

GENDERS = {"male", "female", "non-binary"}
GENDER_PREFERENCES = {"no-preference", "same-gender-only", "same-gender-preferred", "mixed"}
SPECIALTY_PREFERENCES = {"same", "different", "no-preference"}

# Older profile rows store these spellings.
_ENUM_ALIASES = {
    "mixed-preferred": "mixed",
    "same-specialty": "same",
    "different-specialties": "different",
    "same_specialty": "same",
    "different_specialties": "different",
    "no_preference": "no-preference",
    "man": "male",
    "woman": "female",
}

_INTEREST_COLUMNS = {
    "sports": "sports_activities",
    "music": "music_preferences",
    "movies": "movie_tv_preferences",
    "other": "other_interests",
}


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    v = str(value).strip()
    return v or None


def _enum(value: Any, allowed: set[str]) -> str | None:
    v = _clean(value)
    if v is None:
        return None
    v = v.lower()
    v = _ENUM_ALIASES.get(v, v)
    return v if v in allowed else None


def _tag_set(value: Any) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        raw = value.strip()
        if raw.startswith("[") or raw.startswith("{"):
            try:
                return _tag_set(json.loads(raw))
            except json.JSONDecodeError:
                pass
        items: Any = raw.split(",")
    elif isinstance(value, Mapping):
        # sports ratings: {"Running": 4, "Tennis": 0}
        items = [k for k, rating in value.items() if rating is None or _positive(rating)]
    else:
        items = value
    out = set()
    for item in items:
        tag = _clean(item)
        if tag:
            out.add(tag.lower())
    return frozenset(out)


def _positive(rating: Any) -> bool:
    try:
        return float(rating) > 0
    except (TypeError, ValueError):
        return True


def _ratings(value: Any) -> dict[str, float]:
    if isinstance(value, str):
        raw = value.strip()
        if not raw.startswith("{"):
            return {}
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            return {}
    if not isinstance(value, Mapping):
        return {}
    out: dict[str, float] = {}
    for sport, rating in value.items():
        tag = _clean(sport)
        try:
            r = float(rating)
        except (TypeError, ValueError):
            continue
        if tag and r > 0:
            out[tag.lower()] = min(r, 5.0)
    return out


def _to_int(value: Any) -> int | None:
    try:
        if value is None or value == "":
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


def as_utc(moment: datetime) -> datetime:
    """Naive timestamps are read as UTC, the same way stored profile timestamps are."""
    return moment.replace(tzinfo=timezone.utc) if moment.tzinfo is None else moment


def _to_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    return as_utc(dt)


@dataclass(frozen=True)
class EligibleUser:
    user_id: str
    first_name: str = ""
    last_name: str = ""
    specialties: tuple[str, ...] = ()
    specialty_preference: str | None = None
    city: str | None = None
    gender: str | None = None
    gender_preference: str | None = None
    age: int | None = None
    interests: Mapping[str, frozenset[str]] = field(default_factory=dict)
    # sport -> 1..5 rating, only when the profile stores ratings
    sports_ratings: Mapping[str, float] = field(default_factory=dict)
    availability_slots: frozenset[str] = frozenset()
    activity_level: str | None = None
    conversation_style: str | None = None
    social_energy_level: str | None = None
    is_verified: bool = False
    is_paid: bool = False
    is_banned: bool = False
    onboarding_completed: bool = False
    active_group_until: datetime | None = None

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip() or self.user_id

    @property
    def city_key(self) -> str | None:
        return self.city.lower() if self.city else None

    @property
    def interest_tokens(self) -> frozenset[str]:
        return frozenset(f"{kind}:{tag}" for kind, tags in self.interests.items() for tag in tags)

    @property
    def has_signal(self) -> bool:
        return bool(self.specialties or self.city or self.interest_tokens or self.availability_slots)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "EligibleUser":
        specialties: list[str] = []
        for value in _tag_list(row.get("medical_specialty")) + _tag_list(row.get("specialty")):
            if value not in specialties:
                specialties.append(value)

        interests: dict[str, frozenset[str]] = {}
        for kind, column in _INTEREST_COLUMNS.items():
            tags = _tag_set(row.get(column))
            if kind == "other":
                tags = tags | _tag_set(row.get("interests"))
            if tags:
                interests[kind] = tags

        return cls(
            user_id=str(row.get("id") or row.get("user_id") or "").strip(),
            first_name=_clean(row.get("first_name")) or "",
            last_name=_clean(row.get("last_name")) or "",
            specialties=tuple(specialties),
            specialty_preference=_enum(row.get("specialty_preference"), SPECIALTY_PREFERENCES),
            city=_clean(row.get("city")),
            gender=_enum(row.get("gender"), GENDERS),
            gender_preference=_enum(row.get("gender_preference"), GENDER_PREFERENCES),
            age=_to_int(row.get("age")),
            interests=interests,
            sports_ratings=_ratings(row.get("sports_activities")),
            availability_slots=_tag_set(row.get("availability_slots")),
            activity_level=_clean(row.get("activity_level")),
            conversation_style=_clean(row.get("conversation_style")),
            social_energy_level=_clean(row.get("social_energy_level")),
            is_verified=bool(row.get("is_verified")),
            is_paid=bool(row.get("is_paid")),
            is_banned=bool(row.get("is_banned")),
            onboarding_completed=bool(row.get("onboarding_completed")),
            active_group_until=_to_datetime(row.get("active_group_until")),
        )

    def summary(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "name": self.display_name,
            "specialty": ", ".join(self.specialties) or None,
            "city": self.city,
        }


def _tag_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if raw.startswith("["):
            try:
                return _tag_list(json.loads(raw))
            except json.JSONDecodeError:
                pass
        return [raw] if raw else []
    out = []
    for item in value:
        v = _clean(item)
        if v:
            out.append(v)
    return out


@dataclass(frozen=True)
class PastGroupMembership:
    group_id: str
    user_id: str
    week_start_date: date

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PastGroupMembership":
        week = row.get("week_start_date") or row.get("match_week")
        if isinstance(week, datetime):
            week = week.date()
        elif not isinstance(week, date):
            week = date.fromisoformat(str(week)[:10])
        return cls(group_id=str(row.get("group_id") or row.get("match_id")), user_id=str(row["user_id"]), week_start_date=week)
