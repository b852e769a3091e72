from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping

from ..config import MatchingConfig
from .profiles import EligibleUser, as_utc

logger = logging.getLogger(__name__)


def _as_user(profile: EligibleUser | Mapping[str, Any]) -> EligibleUser:
    if isinstance(profile, EligibleUser):
        return profile
    return EligibleUser.from_row(profile)


def rejection_reason(user: EligibleUser, now: datetime, config: MatchingConfig) -> str | None:
    if not user.user_id:
        return "missing_id"
    if config.require_verified and not user.is_verified:
        return "not_verified"
    if config.require_paid and not user.is_paid:
        return "not_paid"
    if user.is_banned:
        return "banned"
    if config.require_onboarding and not user.onboarding_completed:
        return "onboarding_incomplete"
    if user.active_group_until is not None and user.active_group_until > as_utc(now):
        return "active_group"
    if not user.has_signal:
        return "no_usable_signal"
    return None


def filter_eligible_with_reasons(
    profiles: Iterable[EligibleUser | Mapping[str, Any]],
    now: datetime,
    config: MatchingConfig,
) -> tuple[list[EligibleUser], list[tuple[str, str]]]:
    eligible: dict[str, EligibleUser] = {}
    rejected: list[tuple[str, str]] = []
    for profile in profiles:
        user = _as_user(profile)
        reason = rejection_reason(user, now, config)
        if reason is None and user.user_id in eligible:
            reason = "duplicate_id"
        if reason is not None:
            rejected.append((user.user_id or "<missing>", reason))
            if reason in {"no_usable_signal", "duplicate_id", "missing_id"}:
                logger.warning("[MATCHING] excluding profile user_id=%s reason=%s", user.user_id or "<missing>", reason)
            continue
        eligible[user.user_id] = user
    pool = [eligible[uid] for uid in sorted(eligible)]
    return pool, rejected


def filter_eligible(
    profiles: Iterable[EligibleUser | Mapping[str, Any]],
    now: datetime,
    config: MatchingConfig,
) -> list[EligibleUser]:
    pool, _ = filter_eligible_with_reasons(profiles, now, config)
    return pool


def eligibility_breakdown(
    profiles: Iterable[EligibleUser | Mapping[str, Any]],
    now: datetime,
    config: MatchingConfig,
) -> dict[str, int]:
    profiles = list(profiles)
    pool, rejected = filter_eligible_with_reasons(profiles, now, config)
    counts = {
        "total_profiles": len(profiles),
        "eligible": len(pool),
        "not_verified": 0,
        "not_paid": 0,
        "banned": 0,
        "onboarding_incomplete": 0,
        "active_group": 0,
        "no_usable_signal": 0,
        "duplicate_id": 0,
        "missing_id": 0,
    }
    for _, reason in rejected:
        counts[reason] = counts.get(reason, 0) + 1
    return counts
