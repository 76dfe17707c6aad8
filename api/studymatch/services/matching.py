from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..config import DEFAULT_SCORING_CONFIG, MIN_MATCH_SCORE
from ..records import MATCH_TYPE_AUTO, PairingRecord, UserRecord
from .history import HistoryGuard
from .scoring import ScoreBreakdown, score

logger = logging.getLogger(__name__)


@dataclass
class MatchCandidate:
    user: UserRecord
    breakdown: ScoreBreakdown


def _same_university(a: UserRecord, b: UserRecord) -> bool:
    if not a.university or not b.university:
        return False
    return a.university.strip().lower() == b.university.strip().lower()


class GreedyMatcher:
    """One greedy pairing pass over an eligible pool.

    Users are visited in input order and each takes its best remaining
    candidate. This is not an optimal assignment; ties go to the candidate
    seen first.
    """

    def __init__(
        self,
        ledger,
        profiles,
        *,
        history: HistoryGuard | None = None,
        min_score: int = MIN_MATCH_SCORE,
        cfg: dict[str, Any] | None = None,
    ) -> None:
        self.ledger = ledger
        self.profiles = profiles
        self.history = history or HistoryGuard(ledger)
        self.min_score = min_score
        self.cfg = cfg or DEFAULT_SCORING_CONFIG

    def candidates_for(self, user: UserRecord, pool: list[UserRecord], used: set[str]) -> list[UserRecord]:
        out: list[UserRecord] = []
        for c in pool:
            if c.id == user.id or c.id in used:
                continue
            if not _same_university(user, c):
                continue
            if self.history.has_prior_pairing(user.id, c.id):
                continue
            out.append(c)
        return out

    def find_best_match(self, user: UserRecord, pool: list[UserRecord], used: set[str]) -> MatchCandidate | None:
        best: MatchCandidate | None = None
        for candidate in self.candidates_for(user, pool, used):
            breakdown = score(user, candidate, self.cfg)
            if best is None or breakdown.adjusted_total > best.breakdown.adjusted_total:
                best = MatchCandidate(user=candidate, breakdown=breakdown)
        if best is None or best.breakdown.adjusted_total < self.min_score:
            return None
        return best

    def run_pass(self, pool: list[UserRecord], now: datetime) -> tuple[list[PairingRecord], list[str]]:
        used: set[str] = set()
        created: list[PairingRecord] = []
        errors: list[str] = []

        for user in pool:
            if user.id in used:
                continue

            try:
                best = self.find_best_match(user, pool, used)
            except Exception as exc:
                logger.warning("[MATCHING] candidate lookup failed for user=%s: %s", user.id, exc)
                errors.append(f"Failed to evaluate candidates for user {user.id}: {exc}")
                continue

            if best is None:
                logger.debug("[MATCHING] no suitable match for user=%s", user.id)
                continue

            pairing = PairingRecord(
                user_a_id=user.id,
                user_b_id=best.user.id,
                score_breakdown=best.breakdown.to_dict(),
                created_at=now,
                match_type=MATCH_TYPE_AUTO,
            )
            try:
                pairing.id = str(self.ledger.create(pairing) or pairing.id)
            except Exception as exc:
                logger.warning("[MATCHING] failed to create pairing %s/%s: %s", user.id, best.user.id, exc)
                errors.append(f"Failed to create match between {user.id} and {best.user.id}: {exc}")
                continue

            used.add(user.id)
            used.add(best.user.id)
            self.history.remember(user.id, best.user.id)
            created.append(pairing)
            logger.info(
                "[MATCHING] paired %s with %s (base=%s adjusted=%s)",
                user.full_name or user.id,
                best.user.full_name or best.user.id,
                best.breakdown.base_total,
                best.breakdown.adjusted_total,
            )

            for uid in (user.id, best.user.id):
                try:
                    self.profiles.update_last_cycle(uid, now)
                except Exception as exc:
                    logger.warning("[MATCHING] failed to stamp last cycle for user=%s: %s", uid, exc)
                    errors.append(f"Failed to update last match cycle for user {uid}: {exc}")

        return created, errors
