import logging
from datetime import date, datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder

from ..deps import require_admin_token
from ..schemas import MatchingRunResponse

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin_token)])


def _json(data: Any) -> Any:
    return jsonable_encoder(data)


@router.post("/admin/matching/run", response_model=MatchingRunResponse)
def admin_run_matching(force: bool = False) -> dict[str, Any]:
    from .. import main as m

    now = datetime.now(timezone.utc)
    try:
        out = m.repo_run_weekly_matching(now, force=force, trigger="admin")
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("[ADMIN] matching run failed: %s", exc)
        m.repo_log_failed_run(now, "admin", str(exc))
        raise HTTPException(status_code=500, detail="Failed to run matching algorithm")
    logger.info("[ADMIN] matching run week=%s groups=%s force=%s", out["week_start_date"], out["groups_created"], force)
    return out


@router.get("/admin/matching/preview")
def admin_preview_matching() -> dict[str, Any]:
    from .. import main as m

    return _json(m.repo_preview_matching(datetime.now(timezone.utc)))


@router.get("/admin/matching/stats")
def admin_matching_stats() -> dict[str, Any]:
    from .. import main as m

    return _json(m.repo_matching_stats(datetime.now(timezone.utc)))


@router.get("/admin/matching/week/{week_start_date}")
def admin_week_summary(week_start_date: str) -> dict[str, Any]:
    from .. import main as m

    try:
        week = date.fromisoformat(week_start_date)
    except ValueError:
        raise HTTPException(status_code=400, detail="week_start_date must be YYYY-MM-DD")
    return _json(m.repo_week_summary(week))
