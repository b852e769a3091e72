import argparse
import json
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from groupmatch.config import MATCH_TIMEZONE, load_matching_config
from groupmatch.database import SessionLocal
from groupmatch.services.calibration import compute_calibration_report
from groupmatch.services.engine import WeeklyMatchingEngine
from groupmatch.services.matching import fetch_past_memberships, fetch_profiles, get_week_start_date
from groupmatch.services.seeding import generate_profiles


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate current week calibration report")
    parser.add_argument("--cooldown-weeks", type=int, default=None)
    parser.add_argument("--synthetic", type=int, default=0, help="score N generated profiles instead of the database")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--clustered", action="store_true")
    args = parser.parse_args()

    config = load_matching_config()
    if args.cooldown_weeks is not None:
        config = replace(config, cooldown_weeks=args.cooldown_weeks)
    engine = WeeklyMatchingEngine(config)

    now = datetime.now(timezone.utc)
    week_start = get_week_start_date(now, MATCH_TIMEZONE)

    if args.synthetic:
        profiles = generate_profiles(args.synthetic, seed=args.seed, clustered=args.clustered)
        results = engine.run(profiles, [], now=now, week_start=week_start)
    else:
        with SessionLocal() as db:
            profiles = fetch_profiles(db)
            memberships = fetch_past_memberships(db, week_start, config.cooldown_weeks)
        results = engine.run(profiles, memberships, now=now, week_start=week_start)

    report = compute_calibration_report(results)
    report["stats"] = results.stats.as_dict()
    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
