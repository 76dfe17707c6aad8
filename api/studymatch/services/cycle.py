from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from ..config import MATCH_POOL_LIMIT
from ..records import CycleResult, PairingRecord
from .eligibility import EligibilityFilter
from .locking import InMemoryCycleLock
from .matching import GreedyMatcher

logger = logging.getLogger(__name__)


class CycleOrchestrator:
    """Entry point for one scheduled matching cycle.

    Composition only: eligibility, the greedy pass, then one conversation per
    new pairing. Soft failures are collected into the result; only an
    unreadable pool, an unobtainable lock or a cycle already in progress
    fails the whole run.
    """

    def __init__(
        self,
        eligibility: EligibilityFilter,
        matcher: GreedyMatcher,
        conversations,
        *,
        lock=None,
        events=None,
        pool_limit: int = MATCH_POOL_LIMIT,
    ) -> None:
        self.eligibility = eligibility
        self.matcher = matcher
        self.conversations = conversations
        self.lock = lock or InMemoryCycleLock()
        self.events = events
        self.pool_limit = pool_limit

    def run(self, now: datetime | None = None) -> CycleResult:
        now = now or datetime.now(timezone.utc)
        try:
            acquired = self.lock.acquire()
        except Exception as exc:
            logger.exception("[CYCLE] could not acquire the cycle lock")
            return CycleResult(success=False, matches_created=0, errors=[f"Error acquiring cycle lock: {exc}"], started_at=now)
        if not acquired:
            logger.warning("[CYCLE] another matching cycle is in progress; skipping")
            return CycleResult(success=False, matches_created=0, errors=["Matching cycle already running"], started_at=now)
        try:
            result = self._run_locked(now)
        finally:
            self.lock.release()
        result.finished_at = datetime.now(timezone.utc)
        self._emit("cycle_completed", None, result.to_dict())
        return result

    def _run_locked(self, now: datetime) -> CycleResult:
        logger.info("[CYCLE] starting auto-match cycle at %s", now.isoformat())
        try:
            pool = self.eligibility.select_eligible(now, limit=self.pool_limit or None)
        except Exception as exc:
            logger.exception("[CYCLE] could not read eligible pool")
            return CycleResult(success=False, matches_created=0, errors=[f"Error fetching eligible users: {exc}"], started_at=now)

        logger.info("[CYCLE] found %s eligible users", len(pool))
        if len(pool) < 2:
            return CycleResult(success=True, matches_created=0, eligible_count=len(pool), started_at=now)

        try:
            pairings, errors = self.matcher.run_pass(pool, now)
        except Exception as exc:
            logger.exception("[CYCLE] matching pass aborted")
            pairings, errors = [], [f"Error running matching pass: {exc}"]
        for pairing in pairings:
            errors.extend(self._open_conversation(pairing))
            self._emit("pairing_created", pairing, {"score_breakdown": pairing.score_breakdown})

        logger.info("[CYCLE] auto-match cycle complete: created=%s errors=%s", len(pairings), len(errors))
        return CycleResult(
            success=True,
            matches_created=len(pairings),
            errors=errors,
            eligible_count=len(pool),
            started_at=now,
        )

    def _open_conversation(self, pairing: PairingRecord) -> list[str]:
        try:
            conversation_id = self.conversations.create_for_pairing(pairing.id)
        except Exception as exc:
            logger.warning("[CYCLE] conversation creation failed for match=%s: %s", pairing.id, exc)
            return [f"Failed to create conversation for match {pairing.id}: {exc}"]
        logger.info("[CYCLE] created conversation %s for match %s", conversation_id, pairing.id)
        return []

    def _emit(self, event_type: str, pairing: PairingRecord | None, payload: dict[str, Any]) -> None:
        if self.events is None:
            return
        try:
            self.events.log(event_type, pairing=pairing, payload=payload)
        except Exception:
            logger.exception("[CYCLE] failed to log %s event", event_type)
