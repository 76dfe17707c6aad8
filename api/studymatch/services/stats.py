from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from ..config import SUCCESS_SCORE_THRESHOLD
from ..records import PairingEngagement, UserStats

logger = logging.getLogger(__name__)

# (minimum value, points), checked top-down.
MESSAGE_TIERS = ((30, 40), (16, 30), (6, 20), (1, 10))
DURATION_TIERS = ((30, 20), (14, 15), (7, 10))
SESSION_POINTS = 30
UNMATCH_PENALTY = -10


def _tier(value: int, tiers: tuple[tuple[int, int], ...]) -> int:
    for minimum, points in tiers:
        if value >= minimum:
            return points
    return 0


def success_factors(engagement: PairingEngagement, now: datetime | None = None) -> dict[str, Any]:
    end = engagement.unmatched_at or now or datetime.now(timezone.utc)
    days_active = max(0, (end - engagement.matched_at).days)
    return {
        "messages_exchanged": engagement.messages_exchanged,
        "study_session_scheduled": engagement.study_session_scheduled,
        "days_active": days_active,
        "unmatched": engagement.unmatched_at is not None,
    }


def success_score(engagement: PairingEngagement, now: datetime | None = None) -> float:
    """Engagement score for one pairing on a 0-100 scale.

    Messages are worth up to 40, a scheduled study session 30, staying
    active up to 20, and an unmatch costs 10.
    """
    factors = success_factors(engagement, now)
    total = _tier(factors["messages_exchanged"], MESSAGE_TIERS)
    if factors["study_session_scheduled"]:
        total += SESSION_POINTS
    total += _tier(factors["days_active"], DURATION_TIERS)
    if factors["unmatched"]:
        total += UNMATCH_PENALTY
    return float(max(0, min(100, total)))


def summarize(
    user_id: str,
    history: list[PairingEngagement],
    now: datetime | None = None,
    threshold: float = SUCCESS_SCORE_THRESHOLD,
) -> UserStats:
    if not history:
        return UserStats(user_id=user_id, total_matches=0, successful_matches=0, avg_messages_per_match=0.0)
    successful = sum(1 for e in history if success_score(e, now) >= threshold)
    avg_messages = sum(e.messages_exchanged for e in history) / len(history)
    return UserStats(
        user_id=user_id,
        total_matches=len(history),
        successful_matches=successful,
        avg_messages_per_match=round(avg_messages, 4),
    )


class StatsTracker:
    """Recomputes per-user match statistics from pairing history.

    Runs on its own schedule, after engagement has had time to accrue; the
    matching pass only reads the counters it leaves behind.
    """

    def __init__(self, feed, profiles, threshold: float = SUCCESS_SCORE_THRESHOLD) -> None:
        self.feed = feed
        self.profiles = profiles
        self.threshold = threshold

    def recompute(self, user_id: str, now: datetime | None = None) -> UserStats:
        now = now or datetime.now(timezone.utc)
        history = self.feed.pairings_for_user(user_id)
        for engagement in history:
            self.feed.record_success(
                engagement.pairing_id,
                success_score(engagement, now),
                success_factors(engagement, now),
            )
        stats = summarize(user_id, history, now=now, threshold=self.threshold)
        self.profiles.update_stats(stats)
        logger.info(
            "[STATS] user=%s total=%s successful=%s avg_messages=%s",
            user_id,
            stats.total_matches,
            stats.successful_matches,
            stats.avg_messages_per_match,
        )
        return stats

    def recompute_many(self, user_ids: list[str], now: datetime | None = None) -> dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        updated: list[UserStats] = []
        errors: list[str] = []
        for user_id in user_ids:
            try:
                updated.append(self.recompute(user_id, now=now))
            except Exception as exc:
                logger.exception("[STATS] recompute failed for user=%s", user_id)
                errors.append(f"Failed to recompute stats for user {user_id}: {exc}")
        return {"updated": len(updated), "errors": errors, "stats": [s.to_dict() for s in updated]}

    def recompute_all(self, now: datetime | None = None) -> dict[str, Any]:
        return self.recompute_many(self.feed.users_with_pairings(), now=now)
