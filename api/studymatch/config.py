import json
import os
from typing import Any

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/studymatch")
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
MIGRATIONS_DIR = os.getenv("MIGRATIONS_DIR", "").strip()

MIN_MATCH_SCORE = int(os.getenv("MIN_MATCH_SCORE", "40"))
ELIGIBILITY_WINDOW_HOURS = int(os.getenv("ELIGIBILITY_WINDOW_HOURS", "24"))
# 0 disables the cap.
MATCH_POOL_LIMIT = int(os.getenv("MATCH_POOL_LIMIT", "0"))
SUCCESS_SCORE_THRESHOLD = float(os.getenv("SUCCESS_SCORE_THRESHOLD", "50"))
CYCLE_LOCK_KEY = int(os.getenv("CYCLE_LOCK_KEY", "724001"))

DEFAULT_SCORING_CONFIG: dict[str, Any] = {
    "FRESHNESS_MAX": float(os.getenv("FRESHNESS_MAX", "15")),
    "FRESHNESS_DECAY": float(os.getenv("FRESHNESS_DECAY", "0.3")),
    "PENALTY_FLOOR": float(os.getenv("PENALTY_FLOOR", "-15")),
    "LOW_ENGAGEMENT_MESSAGES": float(os.getenv("LOW_ENGAGEMENT_MESSAGES", "3")),
    "LOW_ENGAGEMENT_MIN_MATCHES": int(os.getenv("LOW_ENGAGEMENT_MIN_MATCHES", "2")),
    "LOW_ENGAGEMENT_PENALTY": float(os.getenv("LOW_ENGAGEMENT_PENALTY", "-5")),
}

if os.getenv("SCORING_CONFIG_JSON"):
    try:
        DEFAULT_SCORING_CONFIG.update(json.loads(os.getenv("SCORING_CONFIG_JSON", "{}")))
    except json.JSONDecodeError:
        pass
