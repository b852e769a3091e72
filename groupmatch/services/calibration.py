from typing import Any

from .assembler import MatchingResults


def _percentile(values: list[float], p: float) -> float | None:
    if not values:
        return None
    vals = sorted(values)
    if len(vals) == 1:
        return round(vals[0], 6)
    pos = (len(vals) - 1) * p
    lo = int(pos)
    hi = min(lo + 1, len(vals) - 1)
    frac = pos - lo
    v = vals[lo] * (1 - frac) + vals[hi] * frac
    return round(v, 6)


def percentile_summary(values: list[float]) -> dict[str, float | None]:
    return {
        "p10": _percentile(values, 0.10),
        "p25": _percentile(values, 0.25),
        "p50": _percentile(values, 0.50),
        "p75": _percentile(values, 0.75),
        "p90": _percentile(values, 0.90),
    }


def compute_calibration_report(results: MatchingResults) -> dict[str, Any]:
    pair_scores = [float(s) for _, _, s in results.pair_scores]

    best_by_user: dict[str, float] = {}
    for a, b, s in results.pair_scores:
        best_by_user[a] = max(best_by_user.get(a, 0.0), float(s))
        best_by_user[b] = max(best_by_user.get(b, 0.0), float(s))
    best_scores = list(best_by_user.values())
    stability_proxy = {
        "best_score_p50": _percentile(best_scores, 0.50),
        "best_score_iqr": None,
        "best_score_std_approx": None,
    }
    p25 = _percentile(best_scores, 0.25)
    p75 = _percentile(best_scores, 0.75)
    if p25 is not None and p75 is not None:
        stability_proxy["best_score_iqr"] = round(p75 - p25, 6)
        # Robust std approximation from IQR under near-normal assumption.
        stability_proxy["best_score_std_approx"] = round((p75 - p25) / 1.349, 6)

    group_scores = [g.average_score for g in results.groups]
    eligible = results.stats.eligible_users
    unmatched = len(results.unmatched)

    return {
        "run_key": results.run_key,
        "eligible_users": eligible,
        "candidate_pair_count": len(pair_scores),
        "excluded_pair_count": results.stats.excluded_pairs,
        "pair_score_distribution": {
            "count": len(pair_scores),
            "percentiles": percentile_summary(pair_scores),
        },
        "per_user_best_distribution": {
            "count": len(best_scores),
            "percentiles": percentile_summary(best_scores),
        },
        "group_score_distribution": {
            "count": len(group_scores),
            "percentiles": percentile_summary(group_scores),
        },
        "assignment_counts": {
            "groups_created": results.groups_created,
            "users_matched": results.stats.users_matched,
            "unmatched_count": unmatched,
            "unmatched_rate": round(unmatched / eligible, 6) if eligible else 0.0,
        },
        "stability_proxy": stability_proxy,
    }
