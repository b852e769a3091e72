from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_default_migrations = Path(__file__).resolve().parents[1] / "migrations"
MIGRATIONS_DIR = Path(os.getenv("MIGRATIONS_DIR", str(_default_migrations)))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")
CRON_SECRET = os.getenv("CRON_SECRET", "")
DEV_MODE = os.getenv("DEV_MODE", "false").lower() == "true"
MATCH_TIMEZONE = os.getenv("MATCH_TIMEZONE", "Asia/Riyadh")
COOLDOWN_WEEKS = int(os.getenv("COOLDOWN_WEEKS", "4"))
RUN_LOG_HISTORY_LIMIT = int(os.getenv("RUN_LOG_HISTORY_LIMIT", "5"))

DEFAULT_MATCHING_CONFIG: dict[str, Any] = {
    "SPECIALTY_W": float(os.getenv("SPECIALTY_W", "0.25")),
    "LOCATION_W": float(os.getenv("LOCATION_W", "0.20")),
    "INTERESTS_W": float(os.getenv("INTERESTS_W", "0.25")),
    "AVAILABILITY_W": float(os.getenv("AVAILABILITY_W", "0.15")),
    "GENDER_W": float(os.getenv("GENDER_W", "0.15")),
    "SOCIAL_W": float(os.getenv("SOCIAL_W", "0.0")),
    "SPECIALTY_POLICY": os.getenv("SPECIALTY_POLICY", "same"),
    "NEUTRAL_SCORE": float(os.getenv("NEUTRAL_SCORE", "0.5")),
    "TARGET_GROUP_SIZE": int(os.getenv("TARGET_GROUP_SIZE", "3")),
    "MIN_GROUP_SIZE": int(os.getenv("MIN_GROUP_SIZE", "3")),
    "MAX_GROUP_SIZE": int(os.getenv("MAX_GROUP_SIZE", "4")),
    "ABSORB_REMAINDER": os.getenv("ABSORB_REMAINDER", "false").lower() == "true",
    "COOLDOWN_MODE": os.getenv("COOLDOWN_MODE", "hard"),
    "COOLDOWN_WEEKS": COOLDOWN_WEEKS,
    "COOLDOWN_PENALTY": float(os.getenv("COOLDOWN_PENALTY", "0.5")),
    "MIN_GROUP_SCORE": float(os.getenv("MIN_GROUP_SCORE", "0.0")),
    "LOCAL_SEARCH_MAX_PASSES": int(os.getenv("LOCAL_SEARCH_MAX_PASSES", "25")),
    "SCORE_WORKERS": int(os.getenv("SCORE_WORKERS", "1")),
}

if os.getenv("MATCHING_CONFIG_JSON"):
    try:
        DEFAULT_MATCHING_CONFIG.update(json.loads(os.getenv("MATCHING_CONFIG_JSON", "{}")))
    except json.JSONDecodeError:
        logger.warning("MATCHING_CONFIG_JSON is not valid JSON; using environment defaults.")


SPECIALTY_POLICIES = {"same", "complementary"}
COOLDOWN_MODES = {"hard", "soft", "off"}
WEIGHT_FIELDS = (
    "specialty_weight",
    "location_weight",
    "interests_weight",
    "availability_weight",
    "gender_weight",
    "social_weight",
)

# Upper-case keys accepted by MatchingConfig.from_mapping.
_MAPPING_KEYS = {
    "SPECIALTY_W": "specialty_weight",
    "LOCATION_W": "location_weight",
    "INTERESTS_W": "interests_weight",
    "AVAILABILITY_W": "availability_weight",
    "GENDER_W": "gender_weight",
    "SOCIAL_W": "social_weight",
    "SPECIALTY_POLICY": "specialty_policy",
    "NEUTRAL_SCORE": "neutral_score",
    "TARGET_GROUP_SIZE": "target_size",
    "MIN_GROUP_SIZE": "min_size",
    "MAX_GROUP_SIZE": "max_size",
    "ABSORB_REMAINDER": "absorb_remainder",
    "COOLDOWN_MODE": "cooldown_mode",
    "COOLDOWN_WEEKS": "cooldown_weeks",
    "COOLDOWN_PENALTY": "cooldown_penalty",
    "MIN_GROUP_SCORE": "min_group_score",
    "LOCAL_SEARCH_MAX_PASSES": "local_search_max_passes",
    "SCORE_WORKERS": "score_workers",
    "REQUIRE_VERIFIED": "require_verified",
    "REQUIRE_PAID": "require_paid",
    "REQUIRE_ONBOARDING": "require_onboarding",
}


# Annotation name -> accepted runtime types. bool is checked apart because it subclasses int.
_FIELD_TYPES: dict[str, tuple[type, ...]] = {"float": (int, float), "int": (int,), "bool": (bool,), "str": (str,)}


def _coerce(kind: str, value: Any) -> Any:
    """Turn string values from env or MATCHING_CONFIG_JSON into the field's type; leave anything else alone."""
    if not isinstance(value, str):
        return value
    raw = value.strip()
    if kind == "bool":
        if raw.lower() in {"true", "1", "yes", "on"}:
            return True
        if raw.lower() in {"false", "0", "no", "off"}:
            return False
        return value
    try:
        if kind == "int":
            return int(raw)
        if kind == "float":
            return float(raw)
    except ValueError:
        return value
    return value


class MatchingConfigError(ValueError):
    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("Invalid matching configuration: " + "; ".join(problems))


@dataclass(frozen=True)
class MatchingConfig:
    """Validated knobs for one matching deployment.

    Construction fails with MatchingConfigError before any scoring work when
    the weights do not sum to 1, the group sizes are inconsistent, or an enum
    field holds an unknown value.
    """

    specialty_weight: float = 0.25
    location_weight: float = 0.20
    interests_weight: float = 0.25
    availability_weight: float = 0.15
    gender_weight: float = 0.15
    social_weight: float = 0.0
    specialty_policy: str = "same"
    neutral_score: float = 0.5
    target_size: int = 3
    min_size: int = 3
    max_size: int = 4
    absorb_remainder: bool = False
    cooldown_mode: str = "hard"
    cooldown_weeks: int = 4
    cooldown_penalty: float = 0.5
    min_group_score: float = 0.0
    local_search_max_passes: int = 25
    score_workers: int = 1
    require_verified: bool = True
    require_paid: bool = True
    require_onboarding: bool = True

    def __post_init__(self) -> None:
        problems = self.validate()
        if problems:
            raise MatchingConfigError(problems)

    def validate(self) -> list[str]:
        problems: list[str] = []
        for f in fields(self):
            value = getattr(self, f.name)
            expected = _FIELD_TYPES.get(f.type)
            if expected is None:
                continue
            if not isinstance(value, expected) or (f.type != "bool" and isinstance(value, bool)):
                problems.append(f"{f.name} must be {f.type}, got {value!r}")
        if problems:
            return problems

        total = 0.0
        for name in WEIGHT_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not 0.0 <= float(value) <= 1.0:
                problems.append(f"{name} must be within [0, 1], got {value!r}")
                continue
            total += float(value)
        if not problems and abs(total - 1.0) > 1e-6:
            problems.append(f"weights must sum to 1.0, got {round(total, 6)}")

        if self.specialty_policy not in SPECIALTY_POLICIES:
            problems.append(f"specialty_policy must be one of {sorted(SPECIALTY_POLICIES)}, got {self.specialty_policy!r}")
        if self.cooldown_mode not in COOLDOWN_MODES:
            problems.append(f"cooldown_mode must be one of {sorted(COOLDOWN_MODES)}, got {self.cooldown_mode!r}")

        if self.target_size < 2:
            problems.append(f"target_size must be at least 2, got {self.target_size}")
        if not 2 <= self.min_size <= self.target_size:
            problems.append(f"min_size must be within [2, target_size], got {self.min_size}")
        if self.max_size < self.target_size:
            problems.append(f"max_size must be >= target_size, got {self.max_size}")

        for name in ("neutral_score", "cooldown_penalty", "min_group_score"):
            value = getattr(self, name)
            if not 0.0 <= float(value) <= 1.0:
                problems.append(f"{name} must be within [0, 1], got {value!r}")
        if self.cooldown_weeks < 0:
            problems.append(f"cooldown_weeks must be >= 0, got {self.cooldown_weeks}")
        if self.local_search_max_passes < 0:
            problems.append(f"local_search_max_passes must be >= 0, got {self.local_search_max_passes}")
        if self.score_workers < 1:
            problems.append(f"score_workers must be >= 1, got {self.score_workers}")
        return problems

    @property
    def weights(self) -> dict[str, float]:
        return {
            "specialty": float(self.specialty_weight),
            "location": float(self.location_weight),
            "interests": float(self.interests_weight),
            "availability": float(self.availability_weight),
            "gender": float(self.gender_weight),
            "social": float(self.social_weight),
        }

    @classmethod
    def from_mapping(cls, cfg: dict[str, Any] | None) -> "MatchingConfig":
        known = {f.name: f.type for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in (cfg or {}).items():
            name = _MAPPING_KEYS.get(key, key)
            if name in known:
                kwargs[name] = _coerce(known[name], value)
        return cls(**kwargs)

    def as_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def load_matching_config(cfg: dict[str, Any] | None = None) -> MatchingConfig:
    return MatchingConfig.from_mapping(DEFAULT_MATCHING_CONFIG if cfg is None else cfg)
