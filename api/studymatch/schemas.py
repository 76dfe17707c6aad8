from datetime import datetime
from pydantic import BaseModel, Field


class ScoreBreakdownResponse(BaseModel):
    university_match: int
    subject_overlap: int
    availability_overlap: int
    study_style_match: int
    study_goals_match: int
    year_proximity: int
    base_total: int
    freshness_bonus: int
    success_penalty: int
    adjusted_total: int


class CycleRunResponse(BaseModel):
    success: bool
    matches_created: int
    errors: list[str] = Field(default_factory=list)
    eligible_count: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None


class UserStatsResponse(BaseModel):
    user_id: str
    total_matches: int
    successful_matches: int
    avg_messages_per_match: float


class StatsRecomputeResponse(BaseModel):
    updated: int
    errors: list[str] = Field(default_factory=list)
    stats: list[UserStatsResponse] = Field(default_factory=list)


class EngagementResponse(BaseModel):
    match_id: str
    messages_exchanged: int | None = None
    last_message_at: datetime | None = None
    study_session_scheduled: bool | None = None
    status: str | None = None
    unmatched_at: datetime | None = None
