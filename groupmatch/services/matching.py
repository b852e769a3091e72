from __future__ import annotations

import json
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .assembler import MatchGroup, MatchingResults
from .explanations import build_welcome_message
from .profiles import EligibleUser, PastGroupMembership, as_utc

logger = logging.getLogger(__name__)


def get_week_start_date(now: datetime, tz: str = "Asia/Riyadh") -> date:
    local_now = as_utc(now).astimezone(ZoneInfo(tz))
    return local_now.date() - timedelta(days=local_now.weekday())


def fetch_profiles(db) -> list[EligibleUser]:
    rows = db.execute(
        text(
            """
            SELECT
              id,
              first_name,
              last_name,
              medical_specialty,
              specialty,
              specialty_preference,
              city,
              gender,
              gender_preference,
              age,
              sports_activities,
              music_preferences,
              movie_tv_preferences,
              other_interests,
              interests,
              availability_slots,
              activity_level,
              conversation_style,
              social_energy_level,
              is_verified,
              is_paid,
              is_banned,
              onboarding_completed,
              active_group_until
            FROM profiles
            ORDER BY id
            """
        )
    ).mappings().all()
    return [EligibleUser.from_row(dict(r)) for r in rows]


def fetch_past_memberships(db, week_start_date: date, cooldown_weeks: int) -> list[PastGroupMembership]:
    since = week_start_date - timedelta(days=7 * cooldown_weeks)
    rows = db.execute(
        text(
            """
            SELECT mm.match_id AS group_id, mm.user_id, m.match_week AS week_start_date
            FROM match_members mm
            JOIN matches m ON m.id = mm.match_id
            WHERE m.match_week < :week_start_date
              AND m.match_week >= :since
            """
        ),
        {"week_start_date": week_start_date, "since": since},
    ).mappings().all()
    return [PastGroupMembership.from_row(dict(r)) for r in rows]


def matches_exist_for_week(db, week_start_date: date) -> bool:
    row = db.execute(
        text("SELECT COUNT(1) AS c FROM matches WHERE match_week = :week_start_date"),
        {"week_start_date": week_start_date},
    ).mappings().first()
    return bool(row and int(row["c"]) > 0)


def active_until(week_start_date: date, active_days: int = 7, tz: str = "Asia/Riyadh") -> datetime:
    """Local midnight that ends the group's week, so next week's run sees its members again."""
    return datetime.combine(week_start_date + timedelta(days=active_days), time.min, tzinfo=ZoneInfo(tz))


def _insert_group(db, group: MatchGroup, week_start_date: date, now: datetime, active_days: int, tz: str) -> bool:
    res = db.execute(
        text(
            """
            INSERT INTO matches (id, group_name, status, match_week, average_score, created_at)
            VALUES (CAST(:id AS uuid), :group_name, 'active', :match_week, :average_score, :created_at)
            ON CONFLICT (id) DO NOTHING
            """
        ),
        {
            "id": group.group_id,
            "group_name": group.group_name,
            "match_week": week_start_date,
            "average_score": group.average_score,
            "created_at": now,
        },
    )
    if res.rowcount == 0:
        return False

    for member in group.members:
        best = max((s for a, b, s in group.pair_scores if member.user_id in (a, b)), default=0.0)
        db.execute(
            text(
                """
                INSERT INTO match_members (match_id, user_id, compatibility_score, joined_at)
                VALUES (CAST(:match_id AS uuid), CAST(:user_id AS uuid), :compatibility_score, :joined_at)
                ON CONFLICT (match_id, user_id) DO NOTHING
                """
            ),
            {
                "match_id": group.group_id,
                "user_id": member.user_id,
                "compatibility_score": best,
                "joined_at": now,
            },
        )

    db.execute(
        text(
            """
            INSERT INTO chat_messages (match_id, user_id, message_type, content, created_at)
            VALUES (CAST(:match_id AS uuid), NULL, 'system', :content, :created_at)
            """
        ),
        {"match_id": group.group_id, "content": build_welcome_message(group), "created_at": now},
    )

    db.execute(
        text(
            """
            UPDATE profiles
            SET active_group_until = :active_until
            WHERE id = ANY(CAST(:user_ids AS uuid[]))
            """
        ),
        {"active_until": active_until(week_start_date, active_days, tz), "user_ids": group.member_ids},
    )
    return True


def persist_match_groups(
    db,
    results: MatchingResults,
    week_start_date: date,
    now: datetime | None = None,
    active_days: int = 7,
    tz: str = "Asia/Riyadh",
) -> dict[str, Any]:
    """Write every group of a run, each inside its own savepoint.

    A group whose writes fail is rolled back alone and reported under
    "failed"; the other groups are kept. Group ids are deterministic, so a
    group that already exists is reported under "skipped" and left untouched.
    The caller commits.
    """
    now = now or datetime.now(timezone.utc)
    persisted: list[str] = []
    skipped: list[str] = []
    failed: list[dict[str, str]] = []

    for group in results.groups:
        try:
            with db.begin_nested():
                inserted = _insert_group(db, group, week_start_date, now, active_days, tz)
        except SQLAlchemyError as exc:
            logger.error("[MATCHING] failed to persist group %s: %s", group.group_id, exc)
            failed.append({"group_id": group.group_id, "error": str(exc)})
            continue
        if inserted:
            persisted.append(group.group_id)
        else:
            skipped.append(group.group_id)

    logger.info(
        "[MATCHING] week=%s persisted=%s skipped=%s failed=%s",
        week_start_date,
        len(persisted),
        len(skipped),
        len(failed),
    )
    return {"persisted": persisted, "skipped": skipped, "failed": failed}


def delete_week_groups(db, week_start_date: date) -> dict[str, int]:
    params = {"week_start_date": week_start_date}
    deleted_counts = {"profiles_released": 0, "chat_messages": 0, "match_members": 0, "matches": 0}

    res = db.execute(
        text(
            """
            UPDATE profiles
            SET active_group_until = NULL
            WHERE id IN (
              SELECT mm.user_id
              FROM match_members mm
              JOIN matches m ON m.id = mm.match_id
              WHERE m.match_week = :week_start_date
            )
            """
        ),
        params,
    )
    deleted_counts["profiles_released"] = int(res.rowcount or 0)

    res = db.execute(
        text(
            """
            DELETE FROM chat_messages
            WHERE match_id IN (SELECT id FROM matches WHERE match_week = :week_start_date)
            """
        ),
        params,
    )
    deleted_counts["chat_messages"] = int(res.rowcount or 0)

    res = db.execute(
        text(
            """
            DELETE FROM match_members
            WHERE match_id IN (SELECT id FROM matches WHERE match_week = :week_start_date)
            """
        ),
        params,
    )
    deleted_counts["match_members"] = int(res.rowcount or 0)

    res = db.execute(text("DELETE FROM matches WHERE match_week = :week_start_date"), params)
    deleted_counts["matches"] = int(res.rowcount or 0)

    logger.info("[MATCHING] cleared week=%s counts=%s", week_start_date, json.dumps(deleted_counts))
    return deleted_counts


def fetch_week_groups(db, week_start_date: date) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT
              m.id AS group_id,
              m.group_name,
              m.status,
              m.average_score,
              m.created_at,
              mm.user_id,
              mm.compatibility_score,
              p.first_name,
              p.last_name
            FROM matches m
            LEFT JOIN match_members mm ON mm.match_id = m.id
            LEFT JOIN profiles p ON p.id = mm.user_id
            WHERE m.match_week = :week_start_date
            ORDER BY m.group_name, mm.user_id
            """
        ),
        {"week_start_date": week_start_date},
    ).mappings().all()

    groups: dict[str, dict[str, Any]] = {}
    for row in rows:
        gid = str(row["group_id"])
        group = groups.setdefault(
            gid,
            {
                "group_id": gid,
                "group_name": row.get("group_name"),
                "status": row.get("status"),
                "average_score": float(row["average_score"]) if row.get("average_score") is not None else None,
                "created_at": str(row.get("created_at")) if row.get("created_at") else None,
                "members": [],
            },
        )
        if row.get("user_id") is None:
            continue
        name = " ".join(p for p in (row.get("first_name"), row.get("last_name")) if p)
        group["members"].append(
            {
                "user_id": str(row["user_id"]),
                "name": name or str(row["user_id"]),
                "compatibility_score": (
                    float(row["compatibility_score"]) if row.get("compatibility_score") is not None else None
                ),
            }
        )
    return list(groups.values())
