"""
The SheetStore owns the Workspace and applies every structural edit to it.

Each public mutator validates its arguments before touching any record, then
applies the whole edit in one step and notifies subscribers once. A rejected
edit (invalid numeric text, a width below the floor, settings that break
min < passing < max) leaves the workspace untouched and notifies nobody.

Unknown sheet ids raise SheetNotFoundError and out-of-range row/column indices
raise IndexError; both are programming errors on the caller's side rather
than user input problems.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from .config_schema import get_default_config
from .exceptions import SheetNotFoundError
from .grading import effective_max_score
from .models import (
    DifferentiatedScores,
    Evaluation,
    Highlight,
    Settings,
    Sheet,
    Student,
    Workspace,
    generate_id,
)
from .normalize import normalize_number_input, parse_number

logger = logging.getLogger(__name__)

Listener = Callable[["SheetStore"], None]

EVALUATION_FIELDS = {
    "max_score": "max_score",
    "maxScore": "max_score",
    "exigency": "exigency",
}

SETTING_FIELDS = {
    "min_grade": "min_grade",
    "minGrade": "min_grade",
    "passing_grade": "passing_grade",
    "passingGrade": "passing_grade",
    "max_grade": "max_grade",
    "maxGrade": "max_grade",
}


def _check_index(items: list, index: int, label: str) -> None:
    if not 0 <= index < len(items):
        raise IndexError(f"{label} index {index} out of range (0-{len(items) - 1})")


def _move(items: list, from_index: int, to_index: int) -> None:
    item = items.pop(from_index)
    items.insert(to_index, item)


def _parse_text(raw: Any) -> float | None:
    normalized = normalize_number_input(raw)
    if normalized is None:
        return None
    return parse_number(normalized)


class SheetStore:

    def __init__(self, workspace: Workspace | None = None, config: dict[str, Any] | None = None):
        self._config: dict[str, Any] = config or get_default_config()
        if workspace is None:
            workspace = Workspace(global_settings=Settings(**self._config["settings"]))
        self._workspace: Workspace = workspace
        self._listeners: list[Listener] = []

    # === properties ===

    @property
    def workspace(self) -> Workspace:
        return self._workspace

    @property
    def sheets(self) -> list[Sheet]:
        return self._workspace.sheets

    @property
    def active_sheet(self) -> Sheet | None:
        return self._workspace.active_sheet

    @property
    def settings(self) -> Settings:
        return self._workspace.global_settings

    # === observers ===

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback run after every applied edit; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # === lookups ===

    def sheet(self, sheet_id: str) -> Sheet:
        sheet = self._workspace.find_sheet(sheet_id)
        if sheet is None:
            raise SheetNotFoundError(sheet_id)
        return sheet

    def _student(self, sheet: Sheet, row: int) -> Student:
        _check_index(sheet.students, row, "Student")
        return sheet.students[row]

    def _evaluation(self, sheet: Sheet, col: int) -> Evaluation:
        _check_index(sheet.evaluations, col, "Evaluation")
        return sheet.evaluations[col]

    # === sheet operations ===

    def create_sheet(self, name: str | None = None) -> Sheet:
        """Append an empty sheet and make it the active one."""
        defaults = self._config["sheet"]
        if not name or not name.strip():
            name = f"{defaults['name_prefix']} {len(self.sheets) + 1}"

        sheet = Sheet(
            id=generate_id(),
            name=name.strip(),
            student_header=defaults["student_header"],
            student_column_width=defaults["student_column_width"],
        )
        self.sheets.append(sheet)
        self._workspace.active_sheet_id = sheet.id
        logger.debug(f"Created sheet {sheet.id} ({sheet.name})")
        self._changed()
        return sheet

    def select_sheet(self, sheet_id: str) -> None:
        sheet = self.sheet(sheet_id)
        if self._workspace.active_sheet_id == sheet.id:
            return
        self._workspace.active_sheet_id = sheet.id
        self._changed()

    def delete_sheet(self, sheet_id: str) -> None:
        sheet = self.sheet(sheet_id)
        self.sheets.remove(sheet)
        if self._workspace.active_sheet_id == sheet_id:
            self._workspace.active_sheet_id = self.sheets[0].id if self.sheets else None
        logger.debug(f"Deleted sheet {sheet_id}")
        self._changed()

    def rename_sheet(self, sheet_id: str, name: str) -> bool:
        sheet = self.sheet(sheet_id)
        if not name or not name.strip():
            return False
        sheet.name = name.strip()
        self._changed()
        return True

    def set_student_header(self, sheet_id: str, header: str) -> None:
        self.sheet(sheet_id).student_header = header
        self._changed()

    def resize_student_column(self, sheet_id: str, width: float) -> bool:
        sheet = self.sheet(sheet_id)
        floor = self._config["sheet"]["min_student_column_width"]
        value = parse_number(width)
        if value is None or value <= floor:
            return False
        sheet.student_column_width = value
        self._changed()
        return True

    def reorder_sheets(self, from_index: int, to_index: int) -> bool:
        _check_index(self.sheets, from_index, "Sheet")
        _check_index(self.sheets, to_index, "Sheet")
        if from_index == to_index:
            return False
        _move(self.sheets, from_index, to_index)
        self._changed()
        return True

    def replace_sheets(self, sheets: list[Sheet]) -> None:
        """Discard every current sheet in favor of `sheets`, activating the first one."""
        self._workspace.sheets = list(sheets)
        self._workspace.active_sheet_id = sheets[0].id if sheets else None
        logger.info(f"Replaced workspace with {len(sheets)} sheet(s)")
        self._changed()

    def append_sheets(self, sheets: list[Sheet]) -> None:
        """Add `sheets` after the current ones; the first becomes active only if none was."""
        taken = {sheet.id for sheet in self.sheets}
        for sheet in sheets:
            if sheet.id in taken:
                sheet.id = generate_id()
            taken.add(sheet.id)
        self.sheets.extend(sheets)
        if self._workspace.active_sheet is None:
            self._workspace.active_sheet_id = self.sheets[0].id if self.sheets else None
        logger.info(f"Appended {len(sheets)} sheet(s) to workspace")
        self._changed()

    # === evaluation operations ===

    def add_evaluation(
        self,
        sheet_id: str,
        name: str | None = None,
        max_score: Any = None,
        exigency: Any = None,
    ) -> Evaluation | None:
        """
        Append an evaluation and give every student an empty score slot for it.

        Args:
            sheet_id: Target sheet.
            name: Evaluation name; defaults to the configured name.
            max_score: Number or numeric text, must be > 0.
            exigency: Number or numeric text, must lie in 0-100.

        Returns:
            The new Evaluation, or None if the name is blank or a number is invalid.
        """
        sheet = self.sheet(sheet_id)
        defaults = self._config["evaluation"]

        name = defaults["name"] if name is None else name
        max_score = _parse_text(defaults["max_score"] if max_score is None else max_score)
        exigency = _parse_text(defaults["exigency"] if exigency is None else exigency)

        if not name.strip() or max_score is None or exigency is None:
            return None
        if max_score <= 0 or not 0 <= exigency <= 100:
            return None

        evaluation = Evaluation(
            id=generate_id(),
            name=name,
            max_score=max_score,
            exigency=exigency,
            differentiated_scores=DifferentiatedScores.default(max_score),
        )
        sheet.evaluations.append(evaluation)
        for student in sheet.students:
            student.scores[evaluation.id] = ""
        logger.debug(f"Added evaluation {evaluation.id} to sheet {sheet.id}")
        self._changed()
        return evaluation

    def remove_evaluation(self, sheet_id: str, index: int) -> Evaluation:
        sheet = self.sheet(sheet_id)
        evaluation = self._evaluation(sheet, index)

        del sheet.evaluations[index]
        for student in sheet.students:
            student.scores.pop(evaluation.id, None)
        logger.debug(f"Removed evaluation {evaluation.id} from sheet {sheet.id}")
        self._changed()
        return evaluation

    def reorder_evaluations(self, sheet_id: str, from_index: int, to_index: int) -> bool:
        """
        Move one evaluation column.

        Scores are keyed by evaluation id, so every student's score moves with
        its evaluation without any per-student bookkeeping.
        """
        sheet = self.sheet(sheet_id)
        _check_index(sheet.evaluations, from_index, "Evaluation")
        _check_index(sheet.evaluations, to_index, "Evaluation")
        if from_index == to_index:
            return False
        _move(sheet.evaluations, from_index, to_index)
        self._changed()
        return True

    def rename_evaluation(self, sheet_id: str, index: int, name: str) -> None:
        self._evaluation(self.sheet(sheet_id), index).name = name
        self._changed()

    def set_evaluation_field(self, sheet_id: str, index: int, field: str, raw_text: Any) -> bool:
        """
        Update max score or exigency from typed text.

        Empty text is stored as 0. Text that cannot be a number, or an
        exigency above 100, is rejected without touching the evaluation.
        """
        sheet = self.sheet(sheet_id)
        evaluation = self._evaluation(sheet, index)
        if field not in EVALUATION_FIELDS:
            raise ValueError(f"Unknown evaluation field: {field}")
        attr = EVALUATION_FIELDS[field]

        normalized = normalize_number_input(raw_text)
        if normalized is None:
            return False
        value = 0.0 if normalized == "" else parse_number(normalized)
        if value is None:
            return False
        if attr == "exigency" and value > 100:
            return False

        setattr(evaluation, attr, value)
        self._changed()
        return True

    def save_differentiated_scores(
        self,
        sheet_id: str,
        evaluation_id: str,
        new_config: DifferentiatedScores | dict,
    ) -> None:
        """Replace an evaluation's differentiated scores as a whole."""
        sheet = self.sheet(sheet_id)
        evaluation = sheet.evaluations[sheet.evaluation_index(evaluation_id)]

        if isinstance(new_config, DifferentiatedScores):
            new_config = new_config.to_dict()
        evaluation.differentiated_scores = DifferentiatedScores.from_dict(
            new_config, evaluation.max_score
        )
        self._changed()

    # === student operations ===

    def add_student(self, sheet_id: str, name: str | None = None) -> Student:
        sheet = self.sheet(sheet_id)
        if name is None:
            name = f"{self._config['student']['name_prefix']} {len(sheet.students) + 1}"

        student = Student(
            id=generate_id(),
            name=name,
            scores={evaluation.id: "" for evaluation in sheet.evaluations},
            highlight=Highlight.NONE,
        )
        sheet.students.append(student)
        logger.debug(f"Added student {student.id} to sheet {sheet.id}")
        self._changed()
        return student

    def remove_student(self, sheet_id: str, index: int) -> Student:
        sheet = self.sheet(sheet_id)
        student = self._student(sheet, index)
        del sheet.students[index]
        self._changed()
        return student

    def rename_student(self, sheet_id: str, index: int, name: str) -> None:
        self._student(self.sheet(sheet_id), index).name = name
        self._changed()

    def set_highlight(self, sheet_id: str, row: int) -> Highlight:
        """Advance a student's highlight: none, green, yellow, blue, then back to none."""
        student = self._student(self.sheet(sheet_id), row)
        student.highlight = student.highlight.next()
        self._changed()
        return student.highlight

    # === score operations ===

    def set_score(self, sheet_id: str, row: int, col: int, raw_text: Any) -> bool:
        """Store typed text as-is after normalization; invalid keystrokes change nothing."""
        sheet = self.sheet(sheet_id)
        student = self._student(sheet, row)
        evaluation = self._evaluation(sheet, col)

        normalized = normalize_number_input(raw_text)
        if normalized is None:
            return False
        student.scores[evaluation.id] = normalized
        self._changed()
        return True

    def commit_score(self, sheet_id: str, row: int, col: int) -> None:
        """Turn the stored text into a number clamped to the student's effective max score."""
        sheet = self.sheet(sheet_id)
        student = self._student(sheet, row)
        evaluation = self._evaluation(sheet, col)

        value = parse_number(student.score_for(evaluation.id))
        if value is None:
            student.scores[evaluation.id] = ""
        else:
            student.scores[evaluation.id] = min(
                value, effective_max_score(evaluation, student.highlight)
            )
        self._changed()

    # === settings ===

    def update_global_setting(self, key: str, value: Any) -> bool:
        """
        Change one bound of the grade scale.

        Typed text is normalized and parsed first. Empty or invalid text, or a
        value that would break min_grade < passing_grade < max_grade, is
        rejected and the previous settings are kept.
        """
        if key not in SETTING_FIELDS:
            raise ValueError(f"Unknown setting: {key}")
        attr = SETTING_FIELDS[key]

        number = parse_number(value) if isinstance(value, (int, float)) else _parse_text(value)
        if number is None:
            return False

        current = self.settings
        candidate = Settings(current.min_grade, current.passing_grade, current.max_grade)
        setattr(candidate, attr, number)
        if not candidate.is_valid():
            logger.info(f"Rejected {key}={number}: grade bounds must satisfy min < passing < max")
            return False

        self._workspace.global_settings = candidate
        self._changed()
        return True
