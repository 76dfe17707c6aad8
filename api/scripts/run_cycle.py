import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from studymatch.config import LOG_LEVEL
from studymatch.main import build_cycle_orchestrator


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one StudyMatch auto-matching cycle")
    parser.add_argument("--now", type=str, default="", help="ISO timestamp to run the cycle as of (default: current time)")
    parser.add_argument("--pool-limit", type=int, default=None, help="Cap the eligible pool size for this run")
    args = parser.parse_args()

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    now = datetime.fromisoformat(args.now) if args.now else datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    orchestrator = build_cycle_orchestrator()
    if args.pool_limit is not None:
        orchestrator.pool_limit = args.pool_limit
    result = orchestrator.run(now)
    print(json.dumps(result.to_dict(), indent=2))
    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
