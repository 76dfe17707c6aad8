import logging
import os
import time
from pathlib import Path

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from .config import (
    DEFAULT_SCORING_CONFIG,
    ELIGIBILITY_WINDOW_HOURS,
    MATCH_POOL_LIMIT,
    MIGRATIONS_DIR,
    MIN_MATCH_SCORE,
    SUCCESS_SCORE_THRESHOLD,
)
from .database import SessionLocal
from .repo import (
    AdvisoryCycleLock,
    SqlConversationService,
    SqlEngagementFeed,
    SqlEventLog,
    SqlMatchLedger,
    SqlProfileStore,
)
from .routes import include_modular_routers
from .services.cycle import CycleOrchestrator
from .services.eligibility import EligibilityFilter
from .services.locking import ChainedCycleLock, process_cycle_lock
from .services.matching import GreedyMatcher
from .services.stats import StatsTracker

logger = logging.getLogger(__name__)

app = FastAPI(title="StudyMatch API")
include_modular_routers(app)


def run_migrations() -> None:
    docker_dir = Path("/app/migrations")
    local_dir = Path(__file__).resolve().parents[1] / "migrations"

    if MIGRATIONS_DIR:
        migrations_dir = Path(MIGRATIONS_DIR)
    elif docker_dir.exists():
        migrations_dir = docker_dir
    else:
        migrations_dir = local_dir

    if not migrations_dir.exists() or not migrations_dir.is_dir():
        raise FileNotFoundError(
            "Migrations directory not found. Checked: "
            f"MIGRATIONS_DIR={MIGRATIONS_DIR or '<unset>'}, {docker_dir}, {local_dir}"
        )

    files = sorted([f.name for f in migrations_dir.iterdir() if f.is_file() and f.suffix == ".sql"])
    with SessionLocal() as db:
        for fname in files:
            sql = (migrations_dir / fname).read_text(encoding="utf-8")
            db.execute(text(sql))
        db.commit()
    logger.info("Applied %s migration files from %s", len(files), migrations_dir)


def wait_for_db(max_attempts: int = 20, delay_seconds: float = 1.5) -> None:
    last_err: Exception | None = None
    for _ in range(max_attempts):
        try:
            with SessionLocal() as db:
                db.execute(text("SELECT 1"))
                db.commit()
            return
        except OperationalError as exc:
            last_err = exc
            time.sleep(delay_seconds)
    if last_err:
        raise last_err


@app.on_event("startup")
def on_startup() -> None:
    if os.getenv("SKIP_STARTUP_MIGRATIONS", "false").lower() == "true":
        return
    wait_for_db()
    run_migrations()


def build_cycle_orchestrator() -> CycleOrchestrator:
    profiles = SqlProfileStore()
    ledger = SqlMatchLedger()
    return CycleOrchestrator(
        EligibilityFilter(profiles, window_hours=ELIGIBILITY_WINDOW_HOURS),
        GreedyMatcher(ledger, profiles, min_score=MIN_MATCH_SCORE, cfg=DEFAULT_SCORING_CONFIG),
        SqlConversationService(),
        lock=ChainedCycleLock(process_cycle_lock, AdvisoryCycleLock()),
        events=SqlEventLog(),
        pool_limit=MATCH_POOL_LIMIT,
    )


def build_stats_tracker() -> StatsTracker:
    return StatsTracker(SqlEngagementFeed(), SqlProfileStore(), threshold=SUCCESS_SCORE_THRESHOLD)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
