"""Validation utilities for configuration, grade settings and sheets."""

from typing import Any

from .models import Settings, Sheet
from .normalize import parse_number


def validate_settings(settings: Settings) -> list[dict[str, str]]:
    """
    Validate the grade scale.

    Returns:
        List of dicts with 'type' (error/warning) and 'message'.
    """
    issues = []

    if not settings.is_valid():
        issues.append({
            "type": "error",
            "message": (
                f"Grades must satisfy minimum < passing < maximum "
                f"(got {settings.min_grade} / {settings.passing_grade} / {settings.max_grade})"
            )
        })

    return issues


def validate_config(config: dict[str, Any]) -> list[dict[str, str]]:
    """
    Validate configuration and return list of issues.

    Returns:
        List of dicts with 'type' (error/warning) and 'message'.
    """
    issues = []

    settings = config.get("settings", {})
    try:
        issues.extend(validate_settings(Settings(
            min_grade=float(settings.get("min_grade", 1.0)),
            passing_grade=float(settings.get("passing_grade", 4.0)),
            max_grade=float(settings.get("max_grade", 7.0)),
        )))
    except (TypeError, ValueError):
        issues.append({
            "type": "error",
            "message": "Grade settings must be numbers"
        })

    # Check evaluation defaults
    evaluation = config.get("evaluation", {})
    max_score = parse_number(evaluation.get("max_score"))
    if max_score is None or max_score <= 0:
        issues.append({
            "type": "error",
            "message": "Default max score must be a positive number"
        })

    exigency = parse_number(evaluation.get("exigency"))
    if exigency is None or not 0 <= exigency <= 100:
        issues.append({
            "type": "error",
            "message": "Default exigency must be between 0 and 100"
        })

    # Check column width floor
    sheet = config.get("sheet", {})
    width = parse_number(sheet.get("student_column_width"))
    floor = parse_number(sheet.get("min_student_column_width"))
    if width is None or floor is None or width <= floor:
        issues.append({
            "type": "warning",
            "message": "Default student column width should exceed its minimum"
        })

    delay = parse_number(config.get("persistence", {}).get("debounce_seconds"))
    if delay is None or delay < 0:
        issues.append({
            "type": "error",
            "message": "Save debounce must be zero or more seconds"
        })

    if not config.get("output_file", "").endswith(".xlsx"):
        issues.append({
            "type": "warning",
            "message": "Output file should use the .xlsx extension"
        })

    return issues


def validate_sheet(sheet: Sheet) -> list[dict[str, str]]:
    """
    Check a sheet's records and return issues.

    Returns:
        List of dicts with 'type' and 'message'.
    """
    issues = []

    evaluation_ids = [evaluation.id for evaluation in sheet.evaluations]
    if len(set(evaluation_ids)) != len(evaluation_ids):
        issues.append({
            "type": "error",
            "message": "Duplicate evaluation ids"
        })

    student_ids = [student.id for student in sheet.students]
    if len(set(student_ids)) != len(student_ids):
        issues.append({
            "type": "error",
            "message": "Duplicate student ids"
        })

    # Every student needs exactly one score slot per evaluation
    expected = set(evaluation_ids)
    misaligned = [s.name for s in sheet.students if set(s.scores) != expected]
    if misaligned:
        issues.append({
            "type": "error",
            "message": f"Scores out of sync with evaluations: {', '.join(misaligned)}"
        })

    for evaluation in sheet.evaluations:
        if evaluation.max_score <= 0:
            issues.append({
                "type": "warning",
                "message": f"Evaluation '{evaluation.name}' has no positive max score; its grades are unavailable"
            })

    # Check for duplicates
    seen = set()
    duplicates = []
    for student in sheet.students:
        if student.name in seen:
            duplicates.append(student.name)
        seen.add(student.name)

    if duplicates:
        issues.append({
            "type": "warning",
            "message": f"Duplicate student names: {', '.join(duplicates)}"
        })

    # Check for empty names
    empty_count = sum(1 for s in sheet.students if not s.name.strip())
    if empty_count:
        issues.append({
            "type": "warning",
            "message": f"{empty_count} empty student name(s) found"
        })

    return issues
