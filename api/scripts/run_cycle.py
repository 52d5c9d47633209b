import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from rounds_match.database import SessionLocal
from rounds_match.errors import MatchingError
from rounds_match.repo import SqlMatchRepository, SqlRosterSource
from rounds_match.services.events import LoggingNotifier, OutboxNotifier
from rounds_match.services.in_memory import InMemoryMatchRepository, InMemoryRosterSource
from rounds_match.services.orchestrator import BatchOrchestrator


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one weekly matching cycle")
    parser.add_argument("--cycle-date", type=str, default="", help="ISO date or ISO week (2024-W10); defaults to this week")
    parser.add_argument("--dry-run", action="store_true", help="match an in-memory copy of the roster without writing")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s %(message)s")

    roster_source = SqlRosterSource(SessionLocal)
    if args.dry_run:
        roster = InMemoryRosterSource(roster_source.list_roster())
        orchestrator = BatchOrchestrator(InMemoryMatchRepository(roster), roster, LoggingNotifier())
    else:
        orchestrator = BatchOrchestrator(SqlMatchRepository(SessionLocal), roster_source, OutboxNotifier(SessionLocal))

    try:
        summary = orchestrator.run_cycle(args.cycle_date or None)
    except MatchingError as exc:
        print(json.dumps(exc.to_dict(), indent=2))
        return 1

    print(json.dumps(summary.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
