from studymatch.records import UserRecord
from studymatch.services.scoring import (
    freshness_bonus,
    round_half_up,
    score,
    score_availability_overlap,
    score_base,
    score_study_goals_match,
    score_study_style_match,
    score_subject_overlap,
    score_university_match,
    score_year_proximity,
    success_penalty,
)


def _user(
    user_id: str,
    university: str | None = "State University",
    subjects: tuple[str, ...] = (),
    availability: dict[str, str] | None = None,
    style: str | None = None,
    goals: str | None = None,
    year: str | None = None,
    total: int = 0,
    successful: int = 0,
    avg_messages: float = 0.0,
) -> UserRecord:
    return UserRecord(
        id=user_id,
        university=university,
        preferred_subjects=subjects,
        availability=availability,
        study_style=style,
        study_goals=goals,
        year=year,
        onboarding_completed=True,
        total_matches=total,
        successful_matches=successful,
        avg_messages_per_match=avg_messages,
    )


def test_scenario_a_fresh_same_university_pair():
    a = _user("a", subjects=("Calculus", "Physics"), year="junior")
    b = _user("b", subjects=("calculus", "physics", "Chemistry"), year="junior")
    s = score(a, b)
    assert s.university_match == 20
    assert s.subject_overlap == 30
    assert s.availability_overlap == 10
    assert s.study_style_match == 7
    assert s.study_goals_match == 5
    assert s.year_proximity == 5
    assert s.base_total == 77
    assert s.freshness_bonus == 15
    assert s.success_penalty == 0
    assert s.adjusted_total == 92


def test_scenario_b_disengaged_user_adjustments():
    u = _user("u", total=5, successful=0, avg_messages=1)
    assert success_penalty(u) == -15
    assert freshness_bonus(u) == 3


def test_scenario_c_different_universities_lose_university_points():
    kwargs = dict(subjects=("Biology",), availability={"monday": "morning"}, style="quiet", goals="ace_exams", year="senior")
    same = score_base(_user("a", **kwargs), _user("b", **kwargs))
    other = score_base(_user("a", **kwargs), _user("b", university="Tech Institute", **kwargs))
    assert other.university_match == 0
    assert same.base_total - other.base_total == 20


def test_university_match_is_case_insensitive_and_zero_when_unset():
    assert score_university_match(_user("a", university="MIT"), _user("b", university=" mit ")) == 20
    assert score_university_match(_user("a", university=None), _user("b", university=None)) == 0


def test_subject_overlap_normalizes_and_rounds_half_up():
    a = _user("a", subjects=("Math", " math ", "Bio", "Chem"))
    b = _user("b", subjects=("MATH", "Art"))
    assert score_subject_overlap(a, b) == 15

    a = _user("a", subjects=("w", "x", "y", "z"))
    b = _user("b", subjects=("w", "p", "q", "r"))
    assert score_subject_overlap(a, b) == 8

    assert score_subject_overlap(_user("a"), _user("b", subjects=("Math",))) == 0


def test_availability_overlap_rules():
    neutral = score_availability_overlap(_user("a"), _user("b", availability={"monday": "morning"}))
    assert neutral == 10
    assert score_availability_overlap(_user("a", availability={}), _user("b", availability={"monday": "morning"})) == 10
    assert (
        score_availability_overlap(_user("a", availability={"monday": "none"}), _user("b", availability={"monday": "none"}))
        == 10
    )

    a = _user("a", availability={"monday": "morning", "tuesday": "evening"})
    b = _user("b", availability={"monday": "morning", "tuesday": "afternoon"})
    assert score_availability_overlap(a, b) == 10

    a = _user("a", availability={"monday": "morning"})
    b = _user("b", availability={"monday": "morning"})
    assert score_availability_overlap(a, b) == 20

    a = _user("a", availability={"monday": "morning"})
    b = _user("b", availability={"monday": "evening"})
    assert score_availability_overlap(a, b) == 0


def test_study_style_match():
    assert score_study_style_match(_user("a", style="quiet"), _user("b", style="quiet")) == 15
    assert score_study_style_match(_user("a", style="quiet"), _user("b", style="with_music")) == 10
    assert score_study_style_match(_user("a", style="teach_each_other"), _user("b", style="group_discussion")) == 10
    assert score_study_style_match(_user("a", style="quiet"), _user("b", style="group_discussion")) == 5
    assert score_study_style_match(_user("a", style=None), _user("b", style="quiet")) == 7


def test_study_goals_match():
    assert score_study_goals_match(_user("a", goals="just_pass"), _user("b", goals="just_pass")) == 10
    assert score_study_goals_match(_user("a", goals="understand_concepts"), _user("b", goals="ace_exams")) == 8
    assert score_study_goals_match(_user("a", goals="just_pass"), _user("b", goals="ace_exams")) == 2
    assert score_study_goals_match(_user("a", goals="just_pass"), _user("b", goals="make_friends")) == 5
    assert score_study_goals_match(_user("a"), _user("b", goals="ace_exams")) == 5


def test_year_proximity_steps():
    assert score_year_proximity(_user("a", year="junior"), _user("b", year="junior")) == 5
    assert score_year_proximity(_user("a", year="sophomore"), _user("b", year="junior")) == 4
    assert score_year_proximity(_user("a", year="freshman"), _user("b", year="junior")) == 2
    assert score_year_proximity(_user("a", year="freshman"), _user("b", year="senior")) == 1
    assert score_year_proximity(_user("a", year="graduate"), _user("b", year="senior")) == 2
    assert score_year_proximity(_user("a"), _user("b", year="senior")) == 2


def test_freshness_bonus_decays_with_match_count():
    assert freshness_bonus(_user("a", total=0)) == 15
    assert freshness_bonus(_user("a", total=1)) == 11
    assert freshness_bonus(_user("a", total=2)) == 8
    assert freshness_bonus(_user("a", total=3)) == 6


def test_success_penalty_tiers():
    assert success_penalty(_user("a", total=0)) == 0
    assert success_penalty(_user("a", total=10, successful=8, avg_messages=10)) == 0
    assert success_penalty(_user("a", total=10, successful=5, avg_messages=10)) == -3
    assert success_penalty(_user("a", total=10, successful=2, avg_messages=10)) == -6
    assert success_penalty(_user("a", total=10, successful=1, avg_messages=10)) == -10
    # low engagement only counts from the second match on
    assert success_penalty(_user("a", total=1, successful=0, avg_messages=0)) == -10
    assert success_penalty(_user("a", total=2, successful=2, avg_messages=1)) == -5


def test_pair_adjustments_use_rounded_means():
    disengaged = _user("a", subjects=("Math",), total=5, successful=0, avg_messages=1)
    fresh = _user("b", subjects=("Math",))
    s = score(disengaged, fresh)
    assert s.freshness_bonus == 9
    assert s.success_penalty == -7
    assert s.adjusted_total == s.base_total + 9 - 7
    assert round_half_up(-7.5) == -7
    assert round_half_up(7.5) == 8


def test_adjusted_total_is_floored_at_zero():
    a = _user("a", university="A", availability={"monday": "morning"}, style="quiet", goals="ace_exams", year="freshman", total=5, avg_messages=1)
    b = _user("b", university="B", availability={"monday": "evening"}, style="group_discussion", goals="just_pass", year="senior", total=5, avg_messages=1)
    s = score(a, b)
    assert s.base_total == 8
    assert s.base_total + s.freshness_bonus + s.success_penalty < 0
    assert s.adjusted_total == 0


def test_perfect_pair_hits_upper_bounds():
    kwargs = dict(subjects=("Math", "Physics"), availability={"monday": "morning"}, style="quiet", goals="ace_exams", year="junior")
    s = score(_user("a", **kwargs), _user("b", **kwargs))
    assert s.base_total == 100
    assert s.adjusted_total == 115


def test_score_bounds_hold_across_profiles():
    profiles = [
        _user("p1"),
        _user("p2", university=None, subjects=("Art",), style="quiet", total=7, successful=1, avg_messages=0.5),
        _user("p3", subjects=("Art", "Math"), availability={"friday": "evening"}, goals="just_pass", year="freshman", total=2, successful=2, avg_messages=20),
        _user("p4", university="Other", availability={"monday": "none"}, style="teach_each_other", goals="ace_exams", year="senior", total=40, successful=0),
    ]
    for a in profiles:
        for b in profiles:
            if a.id == b.id:
                continue
            s = score(a, b)
            assert 0 <= s.base_total <= 100
            assert s.base_total + s.freshness_bonus + s.success_penalty <= 115
            assert s.adjusted_total >= 0


def test_score_is_deterministic_and_symmetric():
    a = _user("a", subjects=("Math", "Bio"), availability={"monday": "morning", "friday": "evening"}, style="quiet", total=3, successful=1, avg_messages=2)
    b = _user("b", subjects=("bio",), availability={"monday": "morning"}, style="with_music", goals="ace_exams", year="junior")
    assert score(a, b) == score(a, b)
    assert score(a, b) == score(b, a)
