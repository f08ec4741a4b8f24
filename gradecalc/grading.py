"""Score to grade conversion and per-student averaging."""

from typing import Any

from .models import Evaluation, Highlight, Settings, Sheet, Student
from .normalize import parse_number


def calculate_grade(
    score: Any,
    max_score: Any,
    passing_percentage: Any,
    settings: Settings
) -> float | None:
    """
    Map a raw score onto the grade scale.

    The scale has two linear segments: from (0, min_grade) up to
    (passing_score, passing_grade), then from there up to
    (max_score, max_grade), where passing_score is max_score * passing_percentage / 100.
    Scores above max_score are clamped to it.

    Args:
        score: Raw score, numeric or numeric text.
        max_score: Maximum attainable score for the evaluation.
        passing_percentage: Exigency, the share of max_score needed to pass.
        settings: Grade scale bounds.

    Returns:
        The grade, or None when any input is not numeric, max_score <= 0,
        or the settings do not satisfy min_grade < passing_grade < max_grade.
    """
    score = parse_number(score)
    max_score = parse_number(max_score)
    passing_percentage = parse_number(passing_percentage)

    if score is None or max_score is None or passing_percentage is None:
        return None
    if max_score <= 0 or not settings.is_valid():
        return None

    min_grade = settings.min_grade
    passing_grade = settings.passing_grade
    max_grade = settings.max_grade

    score = min(score, max_score)
    passing_score = max_score * passing_percentage / 100

    if score <= passing_score:
        if passing_score == 0:
            return passing_grade
        return _interpolate(min_grade, passing_grade, score / passing_score)

    score_range = max_score - passing_score
    if score_range <= 0:
        return max_grade
    return _interpolate(passing_grade, max_grade, (score - passing_score) / score_range)


def _interpolate(start: float, end: float, ratio: float) -> float:
    # segment endpoints are returned exactly, free of rounding drift
    if ratio >= 1:
        return end
    return start + ratio * (end - start)


def effective_max_score(evaluation: Evaluation, highlight: Highlight) -> float:
    """Resolve the max score for a student, honoring differentiated scores for their highlight group."""
    differentiated = evaluation.differentiated_scores
    if differentiated.enabled and highlight is not Highlight.NONE:
        override = differentiated.max_score_for(highlight)
        if override is not None:
            return override
    return evaluation.max_score


def student_grades(sheet: Sheet, student: Student, settings: Settings) -> list[float | None]:
    """Return one grade per evaluation, in the sheet's display order."""
    return [
        calculate_grade(
            student.score_for(evaluation.id),
            effective_max_score(evaluation, student.highlight),
            evaluation.exigency,
            settings,
        )
        for evaluation in sheet.evaluations
    ]


def average_grade(grades: list[float | None]) -> float | None:
    """Mean of the valid grades; None entries count neither as value nor as weight."""
    valid = [grade for grade in grades if grade is not None]
    return sum(valid) / len(valid) if valid else None


def format_grade(grade: float | None) -> str:
    return "" if grade is None else f"{grade:.1f}"
