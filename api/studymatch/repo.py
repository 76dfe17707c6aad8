import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .config import CYCLE_LOCK_KEY
from .database import SessionLocal
from .records import PairingEngagement, PairingRecord, UserRecord, UserStats
from .services.events import log_match_event

logger = logging.getLogger(__name__)

USER_COLUMNS = """
    id, full_name, university, year, preferred_subjects, availability, study_style, study_goals,
    onboarding_completed, last_match_cycle_at, total_matches, successful_matches, avg_messages_per_match
"""


class PairingError(Exception):
    pass


class SqlProfileStore:
    def __init__(self, session_factory=SessionLocal) -> None:
        self.session_factory = session_factory

    def get_eligible_candidates(self, now: datetime, window_hours: int, limit: int | None = None) -> list[UserRecord]:
        cutoff = now - timedelta(hours=window_hours)
        with self.session_factory() as db:
            rows = db.execute(
                text(
                    f"""
                    SELECT {USER_COLUMNS}
                    FROM users
                    WHERE onboarding_completed = TRUE
                      AND (last_match_cycle_at IS NULL OR last_match_cycle_at <= :cutoff)
                    ORDER BY created_at ASC, id ASC
                    LIMIT :limit
                    """
                ),
                {"cutoff": cutoff, "limit": limit},
            ).mappings().all()
        return [UserRecord.from_row(dict(r)) for r in rows]

    def get_user(self, user_id: str) -> UserRecord | None:
        with self.session_factory() as db:
            row = db.execute(
                text(f"SELECT {USER_COLUMNS} FROM users WHERE id=CAST(:id AS uuid)"),
                {"id": user_id},
            ).mappings().first()
        return UserRecord.from_row(dict(row)) if row else None

    def update_last_cycle(self, user_id: str, timestamp: datetime) -> None:
        with self.session_factory() as db:
            res = db.execute(
                text("UPDATE users SET last_match_cycle_at=:ts WHERE id=CAST(:id AS uuid)"),
                {"id": user_id, "ts": timestamp},
            )
            db.commit()
        if not res.rowcount:
            raise PairingError(f"User {user_id} not found")

    def update_stats(self, stats: UserStats) -> None:
        with self.session_factory() as db:
            db.execute(
                text(
                    """
                    UPDATE users
                    SET total_matches=:total_matches,
                        successful_matches=:successful_matches,
                        avg_messages_per_match=:avg_messages_per_match
                    WHERE id=CAST(:user_id AS uuid)
                    """
                ),
                stats.to_dict(),
            )
            db.commit()


class SqlMatchLedger:
    def __init__(self, session_factory=SessionLocal) -> None:
        self.session_factory = session_factory

    def has_pair(self, id_a: str, id_b: str) -> bool:
        with self.session_factory() as db:
            row = db.execute(
                text(
                    """
                    SELECT 1
                    FROM matches
                    WHERE (user1_id=CAST(:a AS uuid) AND user2_id=CAST(:b AS uuid))
                       OR (user1_id=CAST(:b AS uuid) AND user2_id=CAST(:a AS uuid))
                    LIMIT 1
                    """
                ),
                {"a": id_a, "b": id_b},
            ).first()
        return row is not None

    def create(self, pairing: PairingRecord) -> str:
        """Write the pairing and its score breakdown in one transaction."""
        try:
            with self.session_factory() as db:
                db.execute(
                    text(
                        """
                        INSERT INTO matches (id, user1_id, user2_id, match_type, status, matched_at)
                        VALUES (CAST(:id AS uuid), CAST(:a AS uuid), CAST(:b AS uuid), :match_type, :status, :matched_at)
                        """
                    ),
                    {
                        "id": pairing.id,
                        "a": pairing.user_a_id,
                        "b": pairing.user_b_id,
                        "match_type": pairing.match_type,
                        "status": pairing.status,
                        "matched_at": pairing.created_at,
                    },
                )
                db.execute(
                    text(
                        """
                        INSERT INTO match_analytics (id, match_id, compatibility_score, score_breakdown)
                        VALUES (:id, CAST(:match_id AS uuid), :score, CAST(:breakdown AS jsonb))
                        """
                    ),
                    {
                        "id": str(uuid.uuid4()),
                        "match_id": pairing.id,
                        "score": pairing.adjusted_total,
                        "breakdown": json.dumps(pairing.score_breakdown),
                    },
                )
                db.commit()
        except IntegrityError as exc:
            raise PairingError(f"Pair {pairing.user_a_id}/{pairing.user_b_id} already exists") from exc
        return pairing.id


class SqlConversationService:
    def __init__(self, session_factory=SessionLocal) -> None:
        self.session_factory = session_factory

    def create_for_pairing(self, pairing_id: str) -> str:
        with self.session_factory() as db:
            row = db.execute(
                text(
                    """
                    INSERT INTO conversations (id, match_id)
                    VALUES (:id, CAST(:match_id AS uuid))
                    ON CONFLICT (match_id) DO UPDATE SET match_id = EXCLUDED.match_id
                    RETURNING id
                    """
                ),
                {"id": str(uuid.uuid4()), "match_id": pairing_id},
            ).mappings().first()
            db.commit()
        if not row:
            raise PairingError(f"Conversation for match {pairing_id} was not created")
        return str(row["id"])


class SqlEngagementFeed:
    def __init__(self, session_factory=SessionLocal) -> None:
        self.session_factory = session_factory

    def pairings_for_user(self, user_id: str) -> list[PairingEngagement]:
        with self.session_factory() as db:
            rows = db.execute(
                text(
                    """
                    SELECT id, matched_at, messages_exchanged, study_session_scheduled, unmatched_at
                    FROM matches
                    WHERE user1_id=CAST(:id AS uuid) OR user2_id=CAST(:id AS uuid)
                    ORDER BY matched_at ASC
                    """
                ),
                {"id": user_id},
            ).mappings().all()
        return [PairingEngagement.from_row(dict(r)) for r in rows]

    def users_with_pairings(self) -> list[str]:
        with self.session_factory() as db:
            rows = db.execute(
                text(
                    """
                    SELECT user1_id AS user_id FROM matches
                    UNION
                    SELECT user2_id AS user_id FROM matches
                    ORDER BY user_id
                    """
                )
            ).mappings().all()
        return [str(r["user_id"]) for r in rows]

    def record_success(self, pairing_id: str, score: float, factors: dict[str, Any]) -> None:
        with self.session_factory() as db:
            db.execute(
                text(
                    """
                    UPDATE match_analytics
                    SET success_score=:score, success_factors=CAST(:factors AS jsonb)
                    WHERE match_id=CAST(:match_id AS uuid)
                    """
                ),
                {"match_id": pairing_id, "score": score, "factors": json.dumps(factors)},
            )
            db.commit()

    def _update_match(self, pairing_id: str, sql: str, params: dict[str, Any]) -> dict[str, Any]:
        with self.session_factory() as db:
            row = db.execute(text(sql), {"id": pairing_id, **params}).mappings().first()
            db.commit()
        if not row:
            raise PairingError(f"Match {pairing_id} not found")
        return dict(row)

    def increment_messages(self, pairing_id: str, at: datetime) -> dict[str, Any]:
        return self._update_match(
            pairing_id,
            """
            UPDATE matches
            SET messages_exchanged = COALESCE(messages_exchanged, 0) + 1, last_message_at=:at
            WHERE id=CAST(:id AS uuid)
            RETURNING id, messages_exchanged, last_message_at
            """,
            {"at": at},
        )

    def mark_session_scheduled(self, pairing_id: str) -> dict[str, Any]:
        return self._update_match(
            pairing_id,
            """
            UPDATE matches SET study_session_scheduled = TRUE
            WHERE id=CAST(:id AS uuid)
            RETURNING id, study_session_scheduled
            """,
            {},
        )

    def mark_unmatched(self, pairing_id: str, at: datetime) -> dict[str, Any]:
        return self._update_match(
            pairing_id,
            """
            UPDATE matches
            SET unmatched_at = COALESCE(unmatched_at, :at), status = 'ended'
            WHERE id=CAST(:id AS uuid)
            RETURNING id, status, unmatched_at
            """,
            {"at": at},
        )


class SqlEventLog:
    def __init__(self, session_factory=SessionLocal) -> None:
        self.session_factory = session_factory

    def log(self, event_type: str, pairing: PairingRecord | None = None, payload: dict[str, Any] | None = None) -> None:
        with self.session_factory() as db:
            if pairing is None:
                log_match_event(db, event_type, payload=payload)
            else:
                for uid in (pairing.user_a_id, pairing.user_b_id):
                    log_match_event(db, event_type, match_id=pairing.id, user_id=uid, payload=payload)
            db.commit()


class AdvisoryCycleLock:
    """PostgreSQL session advisory lock, held on one session for the whole cycle."""

    def __init__(self, session_factory=SessionLocal, key: int = CYCLE_LOCK_KEY) -> None:
        self.session_factory = session_factory
        self.key = key
        self._db = None

    def acquire(self) -> bool:
        db = self.session_factory()
        try:
            got = db.execute(text("SELECT pg_try_advisory_lock(:key) AS locked"), {"key": self.key}).scalar()
        except SQLAlchemyError:
            db.close()
            raise
        if not got:
            logger.info("[CYCLE] advisory lock %s is held by another session", self.key)
            db.close()
            return False
        self._db = db
        return True

    def release(self) -> None:
        if self._db is None:
            return
        try:
            self._db.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": self.key})
        finally:
            self._db.close()
            self._db = None
