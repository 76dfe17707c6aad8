from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..deps import require_admin_token
from ..repo import PairingError, SqlEngagementFeed, SqlProfileStore
from ..schemas import EngagementResponse, ScoreBreakdownResponse
from ..services.scoring import score

router = APIRouter()
scaffold_router = APIRouter()


@scaffold_router.get("/health")
def matching_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "matching"}


@router.get("/matching/score", response_model=ScoreBreakdownResponse)
def score_pair(user_a: str, user_b: str) -> dict[str, Any]:
    if user_a == user_b:
        raise HTTPException(status_code=400, detail="Cannot score a user against themselves")
    profiles = SqlProfileStore()
    a = profiles.get_user(user_a)
    b = profiles.get_user(user_b)
    if not a or not b:
        raise HTTPException(status_code=404, detail="User not found")
    return score(a, b).to_dict()


def _engagement(action, match_id: str) -> dict[str, Any]:
    try:
        row = action()
    except PairingError:
        raise HTTPException(status_code=404, detail="Match not found")
    row["match_id"] = str(row.pop("id", match_id))
    return row


@router.post("/matches/{match_id}/engagement/message", response_model=EngagementResponse)
def record_message(match_id: str, _: None = Depends(require_admin_token)) -> dict[str, Any]:
    feed = SqlEngagementFeed()
    return _engagement(lambda: feed.increment_messages(match_id, datetime.now(timezone.utc)), match_id)


@router.post("/matches/{match_id}/engagement/session", response_model=EngagementResponse)
def record_study_session(match_id: str, _: None = Depends(require_admin_token)) -> dict[str, Any]:
    feed = SqlEngagementFeed()
    return _engagement(lambda: feed.mark_session_scheduled(match_id), match_id)


@router.post("/matches/{match_id}/engagement/unmatch", response_model=EngagementResponse)
def record_unmatch(match_id: str, _: None = Depends(require_admin_token)) -> dict[str, Any]:
    feed = SqlEngagementFeed()
    return _engagement(lambda: feed.mark_unmatched(match_id, datetime.now(timezone.utc)), match_id)
