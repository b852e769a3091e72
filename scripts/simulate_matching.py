import argparse
import json
import sys
from datetime import datetime, time, timedelta, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from groupmatch.config import MATCH_TIMEZONE, load_matching_config
from groupmatch.services.engine import WeeklyMatchingEngine
from groupmatch.services.matching import get_week_start_date
from groupmatch.services.profiles import PastGroupMembership
from groupmatch.services.seeding import generate_profiles


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate consecutive weekly matching runs on a synthetic pool")
    parser.add_argument("--n-users", type=int, default=60)
    parser.add_argument("--weeks", type=int, default=6)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--clustered", action="store_true")
    args = parser.parse_args()

    engine = WeeklyMatchingEngine(load_matching_config())
    profiles = generate_profiles(args.n_users, seed=args.seed, clustered=args.clustered)
    week_start = get_week_start_date(datetime.now(timezone.utc), MATCH_TIMEZONE)
    memberships: list[PastGroupMembership] = []

    for week in range(args.weeks):
        now = datetime.combine(week_start, time(9, 0), tzinfo=timezone.utc)
        results = engine.run(profiles, memberships, now=now, week_start=week_start)
        for group in results.groups:
            memberships.extend(
                PastGroupMembership(group_id=group.group_id, user_id=uid, week_start_date=week_start)
                for uid in group.member_ids
            )
        stats = results.stats
        print(
            json.dumps(
                {
                    "week": week + 1,
                    "week_start_date": str(week_start),
                    "groups": stats.groups_formed,
                    "unmatched": stats.unmatched_users,
                    "cooldown_pairs": stats.cooldown_pairs,
                    "average_score": stats.average_score,
                    "swaps": stats.swaps_applied,
                }
            )
        )
        week_start = week_start + timedelta(days=7)


if __name__ == "__main__":
    main()
