"""
Records that make up a grading workspace.

A Workspace holds an ordered list of Sheets plus the global grading Settings.
Each Sheet has an ordered list of Evaluations and an ordered list of Students.
Student scores are keyed by evaluation id, so a score always travels with its
evaluation when columns are reordered; the positional row shown to users and
written to persisted blobs is derived from the sheet's evaluation order.

All records serialize to and from the camelCase dictionaries used by the
persisted state blob.
"""

from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from .normalize import parse_number

# "" is ungraded, str is text still being typed, float is a committed score
ScoreValue = Union[str, float]

_id_sequence = itertools.count(1)


def generate_id() -> str:
    """Return an id that is never handed out twice in this process."""
    return f"id_{next(_id_sequence)}_{uuid.uuid4().hex[:9]}"


def _with_unique_ids(records: list) -> list:
    # ids restored from disk must stay unique within their container
    seen: set[str] = set()
    for record in records:
        if record.id in seen:
            record.id = generate_id()
        seen.add(record.id)
    return records


class Highlight(str, Enum):
    NONE = "none"
    GREEN = "green"
    YELLOW = "yellow"
    BLUE = "blue"

    @classmethod
    def parse(cls, value: Any) -> Highlight:
        """Map any value outside the enum (None, "", unknown tags) to NONE."""
        if isinstance(value, Highlight):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NONE

    @classmethod
    def colors(cls) -> tuple[Highlight, ...]:
        return (cls.GREEN, cls.YELLOW, cls.BLUE)

    def next(self) -> Highlight:
        cycle = [Highlight.NONE, Highlight.GREEN, Highlight.YELLOW, Highlight.BLUE]
        return cycle[(cycle.index(self) + 1) % len(cycle)]

    def to_tag(self) -> str:
        return "" if self is Highlight.NONE else self.value


@dataclass
class Settings:
    min_grade: float = 1.0
    passing_grade: float = 4.0
    max_grade: float = 7.0

    def is_valid(self) -> bool:
        return self.min_grade < self.passing_grade < self.max_grade

    def to_dict(self) -> dict:
        return {
            "minGrade": self.min_grade,
            "passingGrade": self.passing_grade,
            "maxGrade": self.max_grade,
        }

    @classmethod
    def from_dict(cls, data: Any, defaults: Settings | None = None) -> Settings:
        """Build Settings field by field, keeping defaults for missing or non-numeric fields."""
        defaults = defaults or cls()
        data = data if isinstance(data, dict) else {}
        values = {}
        for attr, key in (
            ("min_grade", "minGrade"),
            ("passing_grade", "passingGrade"),
            ("max_grade", "maxGrade"),
        ):
            number = parse_number(data.get(key))
            values[attr] = number if number is not None else getattr(defaults, attr)
        return cls(**values)


@dataclass
class DifferentiatedScores:
    enabled: bool = False
    by_highlight: dict[Highlight, float] = field(default_factory=dict)

    @classmethod
    def default(cls, max_score: float) -> DifferentiatedScores:
        return cls(
            enabled=False,
            by_highlight={color: max_score for color in Highlight.colors()},
        )

    def max_score_for(self, highlight: Highlight) -> float | None:
        """Return the override for a highlight group, or None when it is absent or not positive."""
        value = parse_number(self.by_highlight.get(highlight))
        if value is None or value <= 0:
            return None
        return value

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"enabled": self.enabled}
        for color in Highlight.colors():
            data[color.value] = self.by_highlight.get(color)
        return data

    @classmethod
    def from_dict(cls, data: Any, max_score: float) -> DifferentiatedScores:
        data = data if isinstance(data, dict) else {}
        by_highlight = {}
        for color in Highlight.colors():
            value = parse_number(data.get(color.value))
            by_highlight[color] = value if value is not None and value > 0 else max_score
        return cls(enabled=bool(data.get("enabled", False)), by_highlight=by_highlight)


@dataclass
class Evaluation:
    id: str
    name: str
    max_score: float
    exigency: float
    differentiated_scores: DifferentiatedScores

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "maxScore": self.max_score,
            "exigency": self.exigency,
            "differentiatedScores": self.differentiated_scores.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict, defaults: dict[str, Any] | None = None) -> Evaluation:
        defaults = defaults or {}
        max_score = parse_number(data.get("maxScore"))
        if max_score is None:
            max_score = float(defaults.get("max_score", 10))
        exigency = parse_number(data.get("exigency"))
        if exigency is None:
            exigency = float(defaults.get("exigency", 60))
        return cls(
            id=str(data.get("id") or generate_id()),
            name=str(data.get("name", defaults.get("name", ""))),
            max_score=max_score,
            exigency=exigency,
            differentiated_scores=DifferentiatedScores.from_dict(
                data.get("differentiatedScores"), max_score
            ),
        )


@dataclass
class Student:
    id: str
    name: str
    scores: dict[str, ScoreValue] = field(default_factory=dict)
    highlight: Highlight = Highlight.NONE

    def score_for(self, evaluation_id: str) -> ScoreValue:
        return self.scores.get(evaluation_id, "")

    def score_row(self, evaluations: list[Evaluation]) -> list[ScoreValue]:
        """Return the scores in the display order of `evaluations`."""
        return [self.score_for(evaluation.id) for evaluation in evaluations]

    def to_dict(self, evaluations: list[Evaluation]) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "scores": self.score_row(evaluations),
            "highlight": None if self.highlight is Highlight.NONE else self.highlight.value,
        }

    @classmethod
    def from_dict(cls, data: dict, evaluations: list[Evaluation]) -> Student:
        raw_scores = data.get("scores")
        raw_scores = raw_scores if isinstance(raw_scores, list) else []
        scores: dict[str, ScoreValue] = {}
        for index, evaluation in enumerate(evaluations):
            value = raw_scores[index] if index < len(raw_scores) else ""
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                scores[evaluation.id] = float(value)
            else:
                scores[evaluation.id] = "" if value is None else str(value)
        return cls(
            id=str(data.get("id") or generate_id()),
            name=str(data.get("name", "")),
            scores=scores,
            highlight=Highlight.parse(data.get("highlight")),
        )


@dataclass
class Sheet:
    id: str
    name: str
    student_header: str = "Alumnos"
    evaluations: list[Evaluation] = field(default_factory=list)
    students: list[Student] = field(default_factory=list)
    student_column_width: float = 200

    def evaluation_index(self, evaluation_id: str) -> int:
        for index, evaluation in enumerate(self.evaluations):
            if evaluation.id == evaluation_id:
                return index
        raise KeyError(evaluation_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "studentHeader": self.student_header,
            "evaluations": [evaluation.to_dict() for evaluation in self.evaluations],
            "studentData": [student.to_dict(self.evaluations) for student in self.students],
            "studentColumnWidth": self.student_column_width,
        }

    @classmethod
    def from_dict(cls, data: dict, config: dict[str, Any] | None = None) -> Sheet:
        config = config or {}
        sheet_defaults = config.get("sheet", {})
        evaluation_defaults = config.get("evaluation", {})

        raw_evaluations = data.get("evaluations")
        raw_evaluations = raw_evaluations if isinstance(raw_evaluations, list) else []
        evaluations = _with_unique_ids([
            Evaluation.from_dict(item, evaluation_defaults)
            for item in raw_evaluations
            if isinstance(item, dict)
        ])

        raw_students = data.get("studentData")
        raw_students = raw_students if isinstance(raw_students, list) else []
        students = _with_unique_ids([
            Student.from_dict(item, evaluations)
            for item in raw_students
            if isinstance(item, dict)
        ])

        width = parse_number(data.get("studentColumnWidth"))
        if width is None or width <= sheet_defaults.get("min_student_column_width", 100):
            width = sheet_defaults.get("student_column_width", 200)
        return cls(
            id=str(data.get("id") or generate_id()),
            name=str(data.get("name", "")),
            student_header=str(
                data.get("studentHeader") or sheet_defaults.get("student_header", "Alumnos")
            ),
            evaluations=evaluations,
            students=students,
            student_column_width=width,
        )


@dataclass
class Workspace:
    sheets: list[Sheet] = field(default_factory=list)
    active_sheet_id: str | None = None
    global_settings: Settings = field(default_factory=Settings)

    def find_sheet(self, sheet_id: str | None) -> Sheet | None:
        for sheet in self.sheets:
            if sheet.id == sheet_id:
                return sheet
        return None

    @property
    def active_sheet(self) -> Sheet | None:
        return self.find_sheet(self.active_sheet_id)

    def to_dict(self) -> dict:
        return {
            "sheets": [sheet.to_dict() for sheet in self.sheets],
            "activeSheetId": self.active_sheet_id,
            "globalSettings": self.global_settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict, config: dict[str, Any] | None = None) -> Workspace:
        """
        Rebuild a Workspace from a persisted blob, applying defaults field by field.

        The caller is responsible for rejecting blobs whose `sheets` field is not a list.
        """
        config = config or {}
        default_settings = Settings(**config.get("settings", {}))
        sheets = _with_unique_ids([
            Sheet.from_dict(item, config)
            for item in data.get("sheets", [])
            if isinstance(item, dict)
        ])

        workspace = cls(
            sheets=sheets,
            active_sheet_id=data.get("activeSheetId"),
            global_settings=Settings.from_dict(data.get("globalSettings"), default_settings),
        )
        if workspace.active_sheet is None:
            workspace.active_sheet_id = sheets[0].id if sheets else None
        return workspace
