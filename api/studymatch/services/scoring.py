from __future__ import annotations

import math
from dataclasses import asdict, dataclass, replace
from typing import Any

from ..config import DEFAULT_SCORING_CONFIG
from ..records import ACADEMIC_YEARS, WEEKDAYS, UserRecord

UNIVERSITY_POINTS = 20
SUBJECT_POINTS = 30
AVAILABILITY_POINTS = 20
AVAILABILITY_NEUTRAL = 10
STYLE_NEUTRAL = 7
GOALS_NEUTRAL = 5
YEAR_NEUTRAL = 2

COMPATIBLE_STYLES = (
    frozenset({"quiet", "with_music"}),
    frozenset({"group_discussion", "teach_each_other"}),
)
COMPATIBLE_GOALS = (frozenset({"ace_exams", "understand_concepts"}),)
INCOMPATIBLE_GOALS = (frozenset({"ace_exams", "just_pass"}),)
YEAR_DISTANCE_POINTS = {0: 5, 1: 4, 2: 2}

# (minimum success rate, penalty), checked top-down.
SUCCESS_RATE_TIERS = ((0.8, 0), (0.5, -3), (0.2, -6))
LOW_SUCCESS_PENALTY = -10


@dataclass(frozen=True)
class ScoreBreakdown:
    university_match: int
    subject_overlap: int
    availability_overlap: int
    study_style_match: int
    study_goals_match: int
    year_proximity: int
    base_total: int
    freshness_bonus: int = 0
    success_penalty: int = 0
    adjusted_total: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def round_half_up(value: float) -> int:
    """Round .5 toward positive infinity (-7.5 -> -7, 7.5 -> 8)."""
    return int(math.floor(value + 0.5))


def _norm(value: str | None) -> str | None:
    if value is None:
        return None
    v = value.strip().lower()
    return v or None


def score_university_match(a: UserRecord, b: UserRecord) -> int:
    ua = _norm(a.university)
    ub = _norm(b.university)
    if not ua or not ub:
        return 0
    return UNIVERSITY_POINTS if ua == ub else 0


def score_subject_overlap(a: UserRecord, b: UserRecord) -> int:
    subjects_a = {s for s in (_norm(x) for x in a.preferred_subjects) if s}
    subjects_b = {s for s in (_norm(x) for x in b.preferred_subjects) if s}
    if not subjects_a or not subjects_b:
        return 0
    shared = len(subjects_a & subjects_b)
    return round_half_up(SUBJECT_POINTS * shared / min(len(subjects_a), len(subjects_b)))


def score_availability_overlap(a: UserRecord, b: UserRecord) -> int:
    if not a.availability or not b.availability:
        return AVAILABILITY_NEUTRAL

    overlapping = 0
    total_entries = 0
    for day in WEEKDAYS:
        slot_a = a.availability.get(day)
        slot_b = b.availability.get(day)
        if slot_a and slot_a != "none":
            total_entries += 1
        if slot_b and slot_b != "none":
            total_entries += 1
        if slot_a and slot_a != "none" and slot_a == slot_b:
            overlapping += 1

    if total_entries == 0:
        return AVAILABILITY_NEUTRAL
    ratio = overlapping / (total_entries / 2)
    return round_half_up(max(0.0, min(1.0, ratio)) * AVAILABILITY_POINTS)


def score_study_style_match(a: UserRecord, b: UserRecord) -> int:
    if not a.study_style or not b.study_style:
        return STYLE_NEUTRAL
    if a.study_style == b.study_style:
        return 15
    if frozenset({a.study_style, b.study_style}) in COMPATIBLE_STYLES:
        return 10
    return 5


def score_study_goals_match(a: UserRecord, b: UserRecord) -> int:
    if not a.study_goals or not b.study_goals:
        return GOALS_NEUTRAL
    if a.study_goals == b.study_goals:
        return 10
    pair = frozenset({a.study_goals, b.study_goals})
    if pair in COMPATIBLE_GOALS:
        return 8
    if pair in INCOMPATIBLE_GOALS:
        return 2
    return 5


def score_year_proximity(a: UserRecord, b: UserRecord) -> int:
    year_a = _norm(a.year)
    year_b = _norm(b.year)
    if year_a not in ACADEMIC_YEARS or year_b not in ACADEMIC_YEARS:
        return YEAR_NEUTRAL
    distance = abs(ACADEMIC_YEARS.index(year_a) - ACADEMIC_YEARS.index(year_b))
    return YEAR_DISTANCE_POINTS.get(distance, 1)


def freshness_bonus(user: UserRecord, cfg: dict[str, Any] | None = None) -> int:
    cfg = cfg or DEFAULT_SCORING_CONFIG
    max_bonus = float(cfg.get("FRESHNESS_MAX", 15))
    if user.total_matches == 0:
        return round_half_up(max_bonus)
    decay = float(cfg.get("FRESHNESS_DECAY", 0.3))
    return round_half_up(max_bonus * math.exp(-decay * user.total_matches))


def success_penalty(user: UserRecord, cfg: dict[str, Any] | None = None) -> int:
    cfg = cfg or DEFAULT_SCORING_CONFIG
    if user.total_matches == 0:
        return 0

    rate = user.successful_matches / user.total_matches
    penalty = LOW_SUCCESS_PENALTY
    for min_rate, tier_penalty in SUCCESS_RATE_TIERS:
        if rate >= min_rate:
            penalty = tier_penalty
            break

    if (
        user.avg_messages_per_match < float(cfg.get("LOW_ENGAGEMENT_MESSAGES", 3))
        and user.total_matches >= int(cfg.get("LOW_ENGAGEMENT_MIN_MATCHES", 2))
    ):
        penalty += float(cfg.get("LOW_ENGAGEMENT_PENALTY", -5))

    return round_half_up(max(float(cfg.get("PENALTY_FLOOR", -15)), penalty))


def score_base(a: UserRecord, b: UserRecord) -> ScoreBreakdown:
    components = {
        "university_match": score_university_match(a, b),
        "subject_overlap": score_subject_overlap(a, b),
        "availability_overlap": score_availability_overlap(a, b),
        "study_style_match": score_study_style_match(a, b),
        "study_goals_match": score_study_goals_match(a, b),
        "year_proximity": score_year_proximity(a, b),
    }
    base_total = sum(components.values())
    return ScoreBreakdown(**components, base_total=base_total, adjusted_total=base_total)


def score(a: UserRecord, b: UserRecord, cfg: dict[str, Any] | None = None) -> ScoreBreakdown:
    """Base compatibility plus the pair's freshness bonus and success penalty.

    The adjustments are kept as separate fields so a stored breakdown shows
    why a pair cleared (or missed) the matching threshold.
    """
    base = score_base(a, b)
    pair_bonus = round_half_up((freshness_bonus(a, cfg) + freshness_bonus(b, cfg)) / 2)
    pair_penalty = round_half_up((success_penalty(a, cfg) + success_penalty(b, cfg)) / 2)
    adjusted = max(0, base.base_total + pair_bonus + pair_penalty)
    return replace(base, freshness_bonus=pair_bonus, success_penalty=pair_penalty, adjusted_total=adjusted)
