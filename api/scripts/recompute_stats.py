import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from studymatch.config import LOG_LEVEL
from studymatch.main import build_stats_tracker


def main() -> None:
    parser = argparse.ArgumentParser(description="Recompute StudyMatch per-user match statistics")
    parser.add_argument("--user-id", action="append", default=[], help="Only recompute these users (repeatable)")
    args = parser.parse_args()

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    tracker = build_stats_tracker()
    summary = tracker.recompute_many(args.user_id) if args.user_id else tracker.recompute_all()
    print(json.dumps({"updated": summary["updated"], "errors": summary["errors"]}, indent=2))


if __name__ == "__main__":
    main()
