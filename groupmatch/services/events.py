import json
import uuid
from typing import Any

from sqlalchemy import text

ALGORITHM_VERSION = "2.0"


def log_match_event(
    db,
    user_id: str,
    week_start_date,
    event_type: str,
    payload: dict[str, Any] | None = None,
    match_id: str | None = None,
) -> None:
    payload = payload or {}
    db.execute(
        text(
            """
            INSERT INTO match_event (id, user_id, match_id, week_start_date, event_type, payload)
            VALUES (:id, CAST(:user_id AS uuid), CAST(NULLIF(:match_id, '') AS uuid), :week_start_date, :event_type, CAST(:payload AS jsonb))
            """
        ),
        {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "match_id": match_id or "",
            "week_start_date": week_start_date,
            "event_type": event_type,
            "payload": json.dumps(payload),
        },
    )


def log_matching_run(
    db,
    *,
    week_start_date,
    trigger: str,
    success: bool,
    groups_created: int = 0,
    eligible_users: int = 0,
    unmatched_users: int = 0,
    duration_ms: float = 0.0,
    reason: str | None = None,
    error_message: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    db.execute(
        text(
            """
            INSERT INTO matching_logs
            (id, week_start_date, trigger, algorithm_version, success, groups_created, eligible_users,
             unmatched_users, duration_ms, reason, error_message, details)
            VALUES (:id, :week_start_date, :trigger, :algorithm_version, :success, :groups_created, :eligible_users,
                    :unmatched_users, :duration_ms, :reason, :error_message, CAST(:details AS jsonb))
            """
        ),
        {
            "id": str(uuid.uuid4()),
            "week_start_date": week_start_date,
            "trigger": trigger,
            "algorithm_version": ALGORITHM_VERSION,
            "success": success,
            "groups_created": groups_created,
            "eligible_users": eligible_users,
            "unmatched_users": unmatched_users,
            "duration_ms": duration_ms,
            "reason": reason,
            "error_message": error_message,
            "details": json.dumps(details or {}),
        },
    )


def fetch_recent_runs(db, limit: int = 5) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT week_start_date, trigger, success, groups_created, eligible_users,
                   unmatched_users, duration_ms, reason, error_message, created_at
            FROM matching_logs
            ORDER BY created_at DESC
            LIMIT :limit
            """
        ),
        {"limit": limit},
    ).mappings().all()
    out = []
    for row in rows:
        item = dict(row)
        for key in ("week_start_date", "created_at"):
            if item.get(key) is not None:
                item[key] = str(item[key])
        out.append(item)
    return out
