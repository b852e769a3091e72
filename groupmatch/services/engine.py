from __future__ import annotations

import logging
import time
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence

from ..config import MATCH_TIMEZONE, MatchingConfig
from .assembler import MatchingResults, RunStats, assemble_results
from .eligibility import filter_eligible_with_reasons
from .history import CooldownIndex
from .matching import get_week_start_date
from .partition import GreedySwapPartitioner, Partition, Partitioner, partition_violations
from .profiles import EligibleUser, PastGroupMembership, as_utc
from .scoring import CompatibilityScorer, ScoreTable, build_score_table

logger = logging.getLogger(__name__)


class WeeklyMatchingEngine:
    """Eligibility -> scoring -> partition -> assembly, one synchronous call.

    Holds no state between runs. Identical inputs give identical results, so
    a repeated run against an unchanged pool only repeats work.
    """

    def __init__(self, config: MatchingConfig | None = None, partitioner: Partitioner | None = None) -> None:
        self.config = config or MatchingConfig()
        self.scorer = CompatibilityScorer(self.config)
        self.partitioner = partitioner or GreedySwapPartitioner(self.config)

    def run(
        self,
        profiles: Iterable[EligibleUser | Mapping[str, Any]],
        memberships: Iterable[PastGroupMembership],
        *,
        now: datetime,
        week_start: date | None = None,
    ) -> MatchingResults:
        now = as_utc(now)
        week_start = week_start or get_week_start_date(now, MATCH_TIMEZONE)
        started = time.perf_counter()

        pool, rejected = filter_eligible_with_reasons(profiles, now, self.config)
        excluded = dict(rejected)
        logger.info("[MATCHING] week=%s eligible=%s rejected=%s", week_start, len(pool), len(rejected))

        if self.config.cooldown_mode == "off":
            cooldown = CooldownIndex.empty()
        else:
            cooldown = CooldownIndex.from_memberships(memberships, week_start, self.config.cooldown_weeks)

        return self.match_pool(
            pool,
            cooldown,
            run_key=week_start.isoformat(),
            excluded=excluded,
            started=started,
        )

    def match_pool(
        self,
        pool: Sequence[EligibleUser],
        cooldown: CooldownIndex,
        *,
        run_key: str,
        excluded: Mapping[str, str] | None = None,
        started: float | None = None,
    ) -> MatchingResults:
        started = time.perf_counter() if started is None else started
        users_by_id = {u.user_id: u for u in sorted(pool, key=lambda u: u.user_id)}

        if not users_by_id:
            logger.info("[MATCHING] run=%s empty pool, nothing to score", run_key)
            return MatchingResults(
                run_key=run_key,
                excluded=dict(excluded or {}),
                stats=RunStats(duration_ms=round((time.perf_counter() - started) * 1000, 3)),
            )

        users = list(users_by_id.values())
        if len(users) < self.config.target_size:
            logger.info(
                "[MATCHING] run=%s pool=%s below target size %s, all users unmatched",
                run_key,
                len(users),
                self.config.target_size,
            )
            scores = ScoreTable({})
            partition = Partition(groups=[], unmatched=sorted(users_by_id))
        else:
            scores = build_score_table(users, self.scorer, workers=self.config.score_workers)
            logger.info("[MATCHING] run=%s scored pairs=%s excluded=%s", run_key, len(scores), scores.excluded_count)
            partition = self.partitioner.partition(users, scores, cooldown)
            problems = partition_violations(partition, users, scores, cooldown, self.config)
            if problems:
                logger.error("[MATCHING] run=%s partition constraints violated: %s", run_key, problems)
                raise RuntimeError(f"Partition violated constraints: {problems}")

        cooldown_pairs = sum(1 for a in users_by_id for b in users_by_id if a < b and cooldown.contains(a, b))
        results = assemble_results(
            partition,
            users_by_id,
            scores,
            run_key=run_key,
            excluded=excluded,
            cooldown_pairs=cooldown_pairs,
            duration_ms=(time.perf_counter() - started) * 1000,
            group_name=f"Week of {run_key}",
        )
        logger.info(
            "[MATCHING] run=%s groups=%s matched=%s unmatched=%s avg_score=%s duration_ms=%s",
            run_key,
            results.stats.groups_formed,
            results.stats.users_matched,
            results.stats.unmatched_users,
            results.stats.average_score,
            results.stats.duration_ms,
        )
        return results
