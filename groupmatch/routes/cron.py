import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import config as app_config
from ..deps import require_cron_secret
from ..schemas import MatchingRunResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/cron/weekly-matching", response_model=MatchingRunResponse, dependencies=[Depends(require_cron_secret)])
def cron_weekly_matching() -> dict[str, Any]:
    from .. import main as m

    now = datetime.now(timezone.utc)
    logger.info("[CRON] weekly matching started at %s", now.isoformat())
    try:
        out = m.repo_run_weekly_matching(now, trigger="cron")
    except Exception as exc:
        logger.exception("[CRON] weekly matching failed: %s", exc)
        m.repo_log_failed_run(now, "cron", str(exc))
        raise HTTPException(status_code=500, detail="Internal server error during matching")
    logger.info("[CRON] weekly matching finished week=%s groups=%s skipped=%s", out["week_start_date"], out["groups_created"], out["skipped"])
    return out


@router.get("/cron/weekly-matching", response_model=MatchingRunResponse)
def cron_weekly_matching_dry_run() -> dict[str, Any]:
    from .. import main as m

    if not app_config.DEV_MODE:
        raise HTTPException(status_code=403, detail="Test endpoint only available in development")
    return m.repo_run_weekly_matching(datetime.now(timezone.utc), persist=False, trigger="cron_test")
