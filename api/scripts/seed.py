import argparse
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from rounds_match.database import Base, SessionLocal, engine
from rounds_match import models  # noqa: F401
from rounds_match.services.seeding import seed_member_profiles


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed synthetic member profiles")
    parser.add_argument("--n-members", type=int, default=60)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--reset", action="store_true")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        summary = seed_member_profiles(db, n_members=args.n_members, seed=args.seed, reset=args.reset)

    print("Seed completed")
    for k, v in summary.items():
        print(f"- {k}: {v}")


if __name__ == "__main__":
    main()
