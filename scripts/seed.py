import argparse
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from groupmatch.database import SessionLocal
from groupmatch.services.seeding import seed_profiles


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed synthetic doctor profiles for weekly matching")
    parser.add_argument("--n-users", type=int, default=60)
    parser.add_argument("--reset", action="store_true")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--clustered", action="store_true")
    args = parser.parse_args()

    with SessionLocal() as db:
        summary = seed_profiles(db, n_users=args.n_users, reset=args.reset, seed=args.seed, clustered=args.clustered)

    print("Seed completed")
    for k, v in summary.items():
        print(f"- {k}: {v}")


if __name__ == "__main__":
    main()
