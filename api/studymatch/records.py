from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
AVAILABILITY_SLOTS = {"morning", "afternoon", "evening", "none"}
STUDY_STYLES = {"quiet", "with_music", "group_discussion", "teach_each_other"}
STUDY_GOALS = {"ace_exams", "understand_concepts", "just_pass", "make_friends"}
ACADEMIC_YEARS = ("freshman", "sophomore", "junior", "senior")

MATCH_TYPE_AUTO = "auto"
MATCH_TYPE_MANUAL = "manual"
STATUS_ACTIVE = "active"
STATUS_ENDED = "ended"


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    v = str(value).strip()
    return v or None


def _clean_enum(value: Any, allowed: set[str] | tuple[str, ...]) -> str | None:
    v = _clean_str(value)
    if v is None:
        return None
    v = v.lower()
    return v if v in allowed else None


def _clean_subjects(values: Any) -> tuple[str, ...]:
    if not isinstance(values, (list, tuple, set, frozenset)):
        return ()
    out: list[str] = []
    for value in values:
        v = _clean_str(value)
        if v and v not in out:
            out.append(v)
    return tuple(out)


def _clean_availability(value: Any) -> dict[str, str] | None:
    if not isinstance(value, Mapping):
        return None
    out: dict[str, str] = {}
    for day in WEEKDAYS:
        slot = _clean_enum(value.get(day), AVAILABILITY_SLOTS)
        if slot:
            out[day] = slot
    return out


def _non_negative_int(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _non_negative_float(value: Any) -> float:
    try:
        return max(0.0, float(value or 0.0))
    except (TypeError, ValueError):
        return 0.0


def _as_utc(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class UserRecord:
    """Read-only view of a profile row as the matching engine sees it.

    Optional preference fields are ``None`` when unset or unrecognised so the
    scorer can fall back to neutral values instead of treating them as a
    mismatch.
    """

    id: str
    university: str | None = None
    preferred_subjects: tuple[str, ...] = ()
    availability: dict[str, str] | None = None
    study_style: str | None = None
    study_goals: str | None = None
    year: str | None = None
    onboarding_completed: bool = False
    last_match_cycle_at: datetime | None = None
    total_matches: int = 0
    successful_matches: int = 0
    avg_messages_per_match: float = 0.0
    full_name: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "UserRecord":
        total = _non_negative_int(row.get("total_matches"))
        return cls(
            id=str(row["id"]),
            university=_clean_str(row.get("university")),
            preferred_subjects=_clean_subjects(row.get("preferred_subjects")),
            availability=_clean_availability(row.get("availability")),
            study_style=_clean_enum(row.get("study_style"), STUDY_STYLES),
            study_goals=_clean_enum(row.get("study_goals"), STUDY_GOALS),
            year=_clean_enum(row.get("year"), ACADEMIC_YEARS),
            onboarding_completed=bool(row.get("onboarding_completed")),
            last_match_cycle_at=_as_utc(row.get("last_match_cycle_at")),
            total_matches=total,
            successful_matches=min(total, _non_negative_int(row.get("successful_matches"))),
            avg_messages_per_match=_non_negative_float(row.get("avg_messages_per_match")),
            full_name=_clean_str(row.get("full_name")),
        )


@dataclass
class PairingRecord:
    user_a_id: str
    user_b_id: str
    score_breakdown: dict[str, Any]
    created_at: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    match_type: str = MATCH_TYPE_AUTO
    status: str = STATUS_ACTIVE

    def __post_init__(self) -> None:
        if self.user_a_id == self.user_b_id:
            raise ValueError("A user cannot be paired with themselves")

    @property
    def pair_key(self) -> tuple[str, str]:
        return canonical_pair(self.user_a_id, self.user_b_id)

    @property
    def adjusted_total(self) -> int:
        return int(self.score_breakdown.get("adjusted_total", 0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_a_id": self.user_a_id,
            "user_b_id": self.user_b_id,
            "match_type": self.match_type,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "score_breakdown": dict(self.score_breakdown),
        }


@dataclass(frozen=True)
class PairingEngagement:
    """Engagement signals for one pairing, supplied by the chat subsystem."""

    pairing_id: str
    matched_at: datetime
    messages_exchanged: int = 0
    study_session_scheduled: bool = False
    unmatched_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PairingEngagement":
        return cls(
            pairing_id=str(row["id"]),
            matched_at=_as_utc(row.get("matched_at")) or datetime.now(timezone.utc),
            messages_exchanged=_non_negative_int(row.get("messages_exchanged")),
            study_session_scheduled=bool(row.get("study_session_scheduled")),
            unmatched_at=_as_utc(row.get("unmatched_at")),
        )


@dataclass(frozen=True)
class UserStats:
    user_id: str
    total_matches: int
    successful_matches: int
    avg_messages_per_match: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "total_matches": self.total_matches,
            "successful_matches": self.successful_matches,
            "avg_messages_per_match": self.avg_messages_per_match,
        }


@dataclass
class CycleResult:
    success: bool
    matches_created: int
    errors: list[str] = field(default_factory=list)
    eligible_count: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "matches_created": self.matches_created,
            "errors": list(self.errors),
            "eligible_count": self.eligible_count,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    return tuple(sorted((str(user_a), str(user_b))))
