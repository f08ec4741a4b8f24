"""Configuration schema and defaults for the grade calculator."""

from typing import Any
import copy

DEFAULT_CONFIG: dict[str, Any] = {
    "settings": {
        "min_grade": 1.0,
        "passing_grade": 4.0,
        "max_grade": 7.0
    },
    "sheet": {
        "name_prefix": "Hoja",
        "student_header": "Alumnos",
        "student_column_width": 200,
        "min_student_column_width": 100
    },
    "evaluation": {
        "name": "Nueva Evaluación",
        "max_score": 10,
        "exigency": 60
    },
    "student": {
        "name_prefix": "Estudiante"
    },
    "persistence": {
        "key": "gradeCalculatorState",
        "directory": ".gradecalc",
        "debounce_seconds": 0.5
    },
    "output_file": "calculadora_notas.xlsx"
}


def get_default_config() -> dict[str, Any]:
    """Return a deep copy of the default configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(user_config: dict[str, Any]) -> dict[str, Any]:
    """
    Merge user configuration with defaults.

    User config values override defaults. Missing keys use default values.
    """
    result = get_default_config()

    for section in ("settings", "sheet", "evaluation", "student", "persistence"):
        if section in user_config:
            result[section].update(user_config[section])

    if "output_file" in user_config:
        result["output_file"] = user_config["output_file"]

    return result
