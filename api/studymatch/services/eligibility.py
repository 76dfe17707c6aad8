from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..config import ELIGIBILITY_WINDOW_HOURS
from ..records import UserRecord

logger = logging.getLogger(__name__)


def is_eligible(user: UserRecord, now: datetime, window_hours: int = ELIGIBILITY_WINDOW_HOURS) -> bool:
    if not user.onboarding_completed:
        return False
    if user.last_match_cycle_at is None:
        return True
    return now - user.last_match_cycle_at >= timedelta(hours=window_hours)


class EligibilityFilter:
    """Selects the candidate pool for one cycle from the profile store."""

    def __init__(self, profiles, window_hours: int = ELIGIBILITY_WINDOW_HOURS) -> None:
        self.profiles = profiles
        self.window_hours = window_hours

    def select_eligible(self, now: datetime, limit: int | None = None) -> list[UserRecord]:
        rows = self.profiles.get_eligible_candidates(now=now, window_hours=self.window_hours, limit=limit)
        pool = [u for u in rows if is_eligible(u, now, self.window_hours)]
        if len(pool) != len(rows):
            logger.warning("[MATCHING] store returned %s ineligible users; dropped", len(rows) - len(pool))
        return pool
