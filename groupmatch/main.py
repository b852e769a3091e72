import logging
import time
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from .config import LOG_LEVEL, MATCH_TIMEZONE, MIGRATIONS_DIR, RUN_LOG_HISTORY_LIMIT, load_matching_config
from .database import SessionLocal
from .routes import include_modular_routers
from .services.assembler import MatchGroup, MatchingResults
from .services.calibration import compute_calibration_report
from .services.eligibility import eligibility_breakdown
from .services.engine import WeeklyMatchingEngine
from .services.events import fetch_recent_runs, log_match_event, log_matching_run
from .services.explanations import compatibility_description, compatibility_percentage
from .services.matching import (
    delete_week_groups,
    fetch_past_memberships,
    fetch_profiles,
    fetch_week_groups,
    get_week_start_date,
    matches_exist_for_week,
    persist_match_groups,
)

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Group Match API")
include_modular_routers(app)


def run_migrations() -> None:
    migrations_dir = Path(MIGRATIONS_DIR)
    if not migrations_dir.exists() or not migrations_dir.is_dir():
        raise FileNotFoundError(f"Migrations directory not found: {migrations_dir}")

    files = sorted([f.name for f in migrations_dir.iterdir() if f.is_file() and f.suffix == ".sql"])
    with SessionLocal() as db:
        for fname in files:
            sql = (migrations_dir / fname).read_text(encoding="utf-8")
            db.execute(text(sql))
        db.commit()
    logger.info("[STARTUP] applied %s migration file(s) from %s", len(files), migrations_dir)


def wait_for_db(max_attempts: int = 20, delay_seconds: float = 1.5) -> None:
    last_err: Exception | None = None
    for _ in range(max_attempts):
        try:
            with SessionLocal() as db:
                db.execute(text("SELECT 1"))
                db.commit()
            return
        except OperationalError as exc:
            last_err = exc
            time.sleep(delay_seconds)
    if last_err:
        raise last_err


@app.on_event("startup")
def on_startup() -> None:
    wait_for_db()
    run_migrations()


def group_out(group: MatchGroup) -> dict[str, Any]:
    pct = compatibility_percentage(group.average_score)
    return {
        "group_id": group.group_id,
        "group_name": group.group_name,
        "member_count": len(group.members),
        "average_score": group.average_score,
        "compatibility": compatibility_description(pct),
        "members": [m.summary() for m in group.members],
    }


def _compute_week(db, now: datetime, week_start: date) -> MatchingResults:
    config = load_matching_config()
    engine = WeeklyMatchingEngine(config)
    profiles = fetch_profiles(db)
    memberships = fetch_past_memberships(db, week_start, config.cooldown_weeks)
    return engine.run(profiles, memberships, now=now, week_start=week_start)


def _run_message(results: MatchingResults) -> str:
    if not results.groups:
        return "No matches created"
    return f"Created {results.groups_created} groups from {results.stats.eligible_users} eligible users"


def repo_run_weekly_matching(
    now: datetime,
    *,
    force: bool = False,
    persist: bool = True,
    trigger: str = "admin",
    week_start_override: date | None = None,
) -> dict[str, Any]:
    week_start = week_start_override or get_week_start_date(now, MATCH_TIMEZONE)
    deleted_counts: dict[str, int] = {}

    with SessionLocal() as db:
        if persist and matches_exist_for_week(db, week_start):
            if not force:
                logger.info("[MATCHING] week=%s already has groups, skipping (trigger=%s)", week_start, trigger)
                log_matching_run(
                    db,
                    week_start_date=week_start,
                    trigger=trigger,
                    success=True,
                    reason="already_matched",
                )
                db.commit()
                return {
                    "week_start_date": str(week_start),
                    "groups_created": 0,
                    "message": "Matches already exist for this week",
                    "skipped": True,
                    "persisted": False,
                }
            deleted_counts = delete_week_groups(db, week_start)

        results = _compute_week(db, now, week_start)

        persist_report: dict[str, Any] = {}
        if persist:
            persist_report = persist_match_groups(db, results, week_start, now=now, tz=MATCH_TIMEZONE)
            written = set(persist_report["persisted"])
            for group in results.groups:
                if group.group_id not in written:
                    continue
                for member in group.members:
                    log_match_event(
                        db,
                        user_id=member.user_id,
                        week_start_date=week_start,
                        event_type="group_created",
                        payload={"average_score": group.average_score, "member_count": len(group.members)},
                        match_id=group.group_id,
                    )
            for user in results.unmatched:
                log_match_event(
                    db,
                    user_id=user.user_id,
                    week_start_date=week_start,
                    event_type="no_match",
                    payload={"reason": "carried_forward"},
                )
            log_matching_run(
                db,
                week_start_date=week_start,
                trigger=trigger,
                success=not persist_report["failed"],
                groups_created=len(persist_report["persisted"]),
                eligible_users=results.stats.eligible_users,
                unmatched_users=results.stats.unmatched_users,
                duration_ms=results.stats.duration_ms,
                reason="forced_rerun" if force else None,
                error_message="; ".join(f["error"] for f in persist_report["failed"]) or None,
                details={"stats": results.stats.as_dict(), "deleted_counts": deleted_counts},
            )
            db.commit()

    return {
        "week_start_date": str(week_start),
        "groups_created": results.groups_created,
        "message": _run_message(results),
        "skipped": False,
        "persisted": persist,
        "eligible_users": results.stats.eligible_users,
        "unmatched_users": results.stats.unmatched_users,
        "stats": results.stats.as_dict(),
        "excluded": dict(results.excluded),
        "groups": [group_out(g) for g in results.groups],
        "persist_report": persist_report,
        "deleted_counts": deleted_counts,
    }


def repo_log_failed_run(now: datetime, trigger: str, error_message: str) -> None:
    week_start = get_week_start_date(now, MATCH_TIMEZONE)
    try:
        with SessionLocal() as db:
            log_matching_run(
                db,
                week_start_date=week_start,
                trigger=trigger,
                success=False,
                reason="error",
                error_message=error_message,
            )
            db.commit()
    except SQLAlchemyError as exc:
        logger.error("[MATCHING] could not record failed %s run for week=%s: %s", trigger, week_start, exc)


def repo_preview_matching(now: datetime) -> dict[str, Any]:
    week_start = get_week_start_date(now, MATCH_TIMEZONE)
    with SessionLocal() as db:
        results = _compute_week(db, now, week_start)
    return {
        "week_start_date": str(week_start),
        "groups_created": results.groups_created,
        "message": _run_message(results),
        "stats": results.stats.as_dict(),
        "excluded": dict(results.excluded),
        "unmatched_user_ids": [u.user_id for u in results.unmatched],
        "groups": [group_out(g) for g in results.groups],
        "calibration": compute_calibration_report(results),
    }


def repo_matching_stats(now: datetime) -> dict[str, Any]:
    week_start = get_week_start_date(now, MATCH_TIMEZONE)
    config = load_matching_config()
    with SessionLocal() as db:
        profiles = fetch_profiles(db)
        already = matches_exist_for_week(db, week_start)
        runs = fetch_recent_runs(db, RUN_LOG_HISTORY_LIMIT)
    return {
        "week_start_date": str(week_start),
        "week_already_matched": already,
        "eligibility": eligibility_breakdown(profiles, now, config),
        "config": config.as_dict(),
        "recent_runs": runs,
    }


def repo_week_summary(week_start_date: date) -> dict[str, Any]:
    with SessionLocal() as db:
        groups = fetch_week_groups(db, week_start_date)
    return {
        "week_start_date": str(week_start_date),
        "groups_created": len(groups),
        "users_matched": sum(len(g["members"]) for g in groups),
        "groups": groups,
    }


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
