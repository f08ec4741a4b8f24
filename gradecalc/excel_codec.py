"""Excel workbook import and export for grading workspaces."""

import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, Alignment, PatternFill, Border, Side
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from .exceptions import WorkbookDecodeError
from .grading import average_grade, format_grade, student_grades
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
from .normalize import parse_number

logger = logging.getLogger(__name__)

# Fixed layout, 0-based rows and columns
ROW_NAMES = 0
ROW_MAX_SCORE = 1
ROW_EXIGENCY = 2
ROW_DIFFERENTIATED = 3
ROW_HEADER = 4
FIRST_STUDENT_ROW = 5
FIRST_EVALUATION_COL = 2
MIN_ROWS = 5

MAX_SCORE_LABEL = "P. Máx:"
EXIGENCY_LABEL = "Exig:"
DIFFERENTIATED_LABEL = "Diferenciados"
SCORE_LABEL = "Puntaje"
GRADE_LABEL = "Nota"
AVERAGE_LABEL = "Promedio Final"
HIGHLIGHT_LABEL = "Highlight"
ENABLED_FLAG = "SI"
DISABLED_FLAG = "NO"

DEFAULT_OUTPUT_FILE = "calculadora_notas.xlsx"
DEFAULT_STUDENT_HEADER = "Alumnos"

_INVALID_TITLE_CHARS = re.compile(r"[\\/*?:\[\]]")
_MAX_TITLE_LENGTH = 31


@dataclass
class DecodeResult:
    sheets: list[Sheet] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)


def col_letter(col_num: int) -> str:
    """Convert 1-based column number to Excel column letter."""
    return get_column_letter(col_num)


def score_col(position: int) -> int:
    """0-based column holding the raw score of the evaluation at `position`."""
    return FIRST_EVALUATION_COL + position * 2


def _format_number(value: Any) -> Any:
    number = parse_number(value)
    if number is None:
        return value
    return int(number) if number.is_integer() else number


def _join_numbers(values: list[Any]) -> str:
    return ",".join(str(_format_number(value)) for value in values)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _cell_name(value: Any) -> str:
    # names keep their exact text, surrounding whitespace included
    return "" if value is None else str(value)


def _cell_text(value: Any) -> str:
    if _is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def safe_sheet_title(name: str, taken: set[str]) -> str:
    """Turn a sheet name into a legal, unique worksheet title."""
    title = _INVALID_TITLE_CHARS.sub("_", name or "").strip()[:_MAX_TITLE_LENGTH] or "Hoja"
    candidate = title
    counter = 2
    while candidate.lower() in taken:
        suffix = f" ({counter})"
        candidate = f"{title[:_MAX_TITLE_LENGTH - len(suffix)]}{suffix}"
        counter += 1
    taken.add(candidate.lower())
    return candidate


# === encode ===


def student_row(index: int, sheet: Sheet, student: Student, settings: Settings) -> list[Any]:
    """Build the exported row of one student: index, name, score/grade pairs, average, highlight."""
    grades = student_grades(sheet, student, settings)
    row: list[Any] = [index + 1, student.name]
    for evaluation, grade in zip(sheet.evaluations, grades):
        score = student.score_for(evaluation.id)
        row.append(_format_number(score) if score != "" else "")
        row.append(format_grade(grade))
    row.append(format_grade(average_grade(grades)))
    row.append(student.highlight.to_tag())
    return row


def sheet_rows(sheet: Sheet, settings: Settings) -> list[list[Any]]:
    """Lay out a sheet as rows of cell values, grades computed with the current settings."""
    names: list[Any] = ["", ""]
    max_scores: list[Any] = ["", MAX_SCORE_LABEL]
    exigencies: list[Any] = ["", EXIGENCY_LABEL]
    differentiated: list[Any] = ["", DIFFERENTIATED_LABEL]
    header: list[Any] = ["#", sheet.student_header]

    for evaluation in sheet.evaluations:
        scores = evaluation.differentiated_scores
        names += [evaluation.name, ""]
        max_scores += [_format_number(evaluation.max_score), ""]
        exigencies += [_format_number(evaluation.exigency), ""]
        differentiated += [
            ENABLED_FLAG if scores.enabled else DISABLED_FLAG,
            _join_numbers([scores.by_highlight.get(color) for color in Highlight.colors()]),
        ]
        header += [SCORE_LABEL, GRADE_LABEL]
    header += [AVERAGE_LABEL, HIGHLIGHT_LABEL]

    rows = [names, max_scores, exigencies, differentiated, header]
    for index, student in enumerate(sheet.students):
        rows.append(student_row(index, sheet, student, settings))
    return rows


def create_grade_sheet(ws, sheet: Sheet, settings: Settings):
    """
    Populate a worksheet with a sheet's evaluations, students and computed grades.

    Args:
        ws: Worksheet to populate
        sheet: Sheet to export
        settings: Grade scale used to compute grades and averages
    """
    # Styles
    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    meta_fill = PatternFill(start_color="D9E1F2", end_color="D9E1F2", fill_type="solid")
    grade_fill = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
    avg_fill = PatternFill(start_color="F4B183", end_color="F4B183", fill_type="solid")
    center_align = Alignment(horizontal="center", vertical="center")
    thin_border = Border(
        left=Side(style="thin"),
        right=Side(style="thin"),
        top=Side(style="thin"),
        bottom=Side(style="thin")
    )

    rows = sheet_rows(sheet, settings)
    col_average = score_col(len(sheet.evaluations)) + 1

    for row_idx, values in enumerate(rows, 1):
        for col_idx, value in enumerate(values, 1):
            if _is_blank(value):
                continue
            cell = ws.cell(row=row_idx, column=col_idx, value=value)
            # text is never a formula or an error code, even when it starts with "=" or "#"
            if isinstance(value, str):
                cell.data_type = "s"

    # --- Rows 1-4: evaluation metadata ---
    for row_idx in range(ROW_NAMES + 1, ROW_DIFFERENTIATED + 2):
        for col_idx in range(1, col_average):
            cell = ws.cell(row=row_idx, column=col_idx)
            cell.fill = meta_fill
            cell.alignment = center_align
            cell.border = thin_border
            if row_idx == ROW_NAMES + 1:
                cell.font = Font(bold=True)

    # --- Row 5: column headers ---
    for col_idx in range(1, len(rows[ROW_HEADER]) + 1):
        cell = ws.cell(row=ROW_HEADER + 1, column=col_idx)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = center_align
        cell.border = thin_border

    # --- Student rows ---
    for row_idx in range(FIRST_STUDENT_ROW + 1, len(rows) + 1):
        for col_idx in range(1, len(rows[ROW_HEADER]) + 1):
            cell = ws.cell(row=row_idx, column=col_idx)
            cell.border = thin_border
            if col_idx > 2:
                cell.alignment = center_align
            if col_idx == col_average:
                cell.fill = avg_fill
            elif col_idx > 2 and col_idx < col_average and (col_idx - 1) % 2 == 1:
                cell.fill = grade_fill

    # Adjust column widths
    ws.column_dimensions[col_letter(1)].width = 6
    ws.column_dimensions[col_letter(2)].width = max(15, sheet.student_column_width / 7)
    for col_idx in range(3, col_average):
        ws.column_dimensions[col_letter(col_idx)].width = 12
    ws.column_dimensions[col_letter(col_average)].width = 16
    ws.column_dimensions[col_letter(col_average + 1)].width = 12


def encode_workspace(workspace: Workspace) -> Workbook:
    """
    Generate a workbook with one worksheet per sheet of the workspace.

    Grades and averages are recomputed from the workspace's current settings.

    Returns:
        openpyxl Workbook object
    """
    wb = Workbook()

    # Remove default sheet
    wb.remove(wb.active)

    taken: set[str] = set()
    for sheet in workspace.sheets:
        ws = wb.create_sheet(title=safe_sheet_title(sheet.name, taken))
        create_grade_sheet(ws, sheet, workspace.global_settings)

    # An xlsx file needs at least one worksheet
    if not workspace.sheets:
        wb.create_sheet(title="Hoja 1")

    return wb


def export_workbook(workspace: Workspace) -> bytes:
    """Encode the workspace and return the .xlsx file contents."""
    wb = encode_workspace(workspace)
    buffer = io.BytesIO()
    wb.save(buffer)
    logger.info(f"Exported {len(workspace.sheets)} sheet(s) to workbook")
    return buffer.getvalue()


# === decode ===


def _cell(rows: list[list[Any]], row: int, col: int) -> Any:
    if row >= len(rows) or col >= len(rows[row]):
        return None
    return rows[row][col]


def _decode_score(value: Any) -> float | str:
    if _is_blank(value):
        return ""
    number = parse_number(value)
    return "" if number is None else number


def _decode_evaluations(rows: list[list[Any]]) -> list[tuple[int, Evaluation]]:
    evaluations = []
    width = max(len(row) for row in rows)

    for col in range(FIRST_EVALUATION_COL, width, 2):
        name = _cell(rows, ROW_NAMES, col)
        if _is_blank(name):
            continue

        max_score = parse_number(_cell(rows, ROW_MAX_SCORE, col))
        exigency = parse_number(_cell(rows, ROW_EXIGENCY, col))
        if max_score is None or exigency is None:
            logger.debug(f"Skipping evaluation '{name}': max score or exigency is not a number")
            continue
        if max_score <= 0:
            logger.debug(f"Skipping evaluation '{name}': max score must be positive")
            continue
        if not 0 <= exigency <= 100:
            logger.debug(f"Skipping evaluation '{name}': exigency must be between 0 and 100")
            continue

        flag = _cell_text(_cell(rows, ROW_DIFFERENTIATED, col)).upper()
        raw_values = _cell_text(_cell(rows, ROW_DIFFERENTIATED, col + 1)).split(",")
        by_highlight = {}
        for index, color in enumerate(Highlight.colors()):
            value = parse_number(raw_values[index]) if index < len(raw_values) else None
            by_highlight[color] = value if value is not None and value > 0 else max_score

        evaluations.append((col, Evaluation(
            id=generate_id(),
            name=_cell_name(name),
            max_score=max_score,
            exigency=exigency,
            differentiated_scores=DifferentiatedScores(
                enabled=flag == ENABLED_FLAG,
                by_highlight=by_highlight,
            ),
        )))

    return evaluations


def decode_worksheet(title: str, rows: list[list[Any]]) -> Sheet:
    """
    Rebuild a Sheet from the cell values of one worksheet.

    Raises:
        ValueError: If the worksheet is too short or yields no evaluations or no students.
    """
    if len(rows) < MIN_ROWS:
        raise ValueError(f"expected at least {MIN_ROWS} rows, found {len(rows)}")

    evaluations = _decode_evaluations(rows)
    if not evaluations:
        raise ValueError("no evaluations found")

    header = [_cell_text(value) for value in rows[ROW_HEADER]]
    highlight_col = header.index(HIGHLIGHT_LABEL) if HIGHLIGHT_LABEL in header else None

    students = []
    for row in range(FIRST_STUDENT_ROW, len(rows)):
        name = _cell(rows, row, 1)
        if _is_blank(name):
            continue
        highlight = Highlight.NONE
        if highlight_col is not None:
            highlight = Highlight.parse(_cell(rows, row, highlight_col))
        students.append(Student(
            id=generate_id(),
            name=_cell_name(name),
            scores={
                evaluation.id: _decode_score(_cell(rows, row, col))
                for col, evaluation in evaluations
            },
            highlight=highlight,
        ))

    if not students:
        raise ValueError("no students found")

    return Sheet(
        id=generate_id(),
        name=title,
        student_header=_cell_name(_cell(rows, ROW_HEADER, 1)) or DEFAULT_STUDENT_HEADER,
        evaluations=[evaluation for _, evaluation in evaluations],
        students=students,
    )


def decode_workbook(data: bytes) -> DecodeResult:
    """
    Read every worksheet of an .xlsx file into Sheets.

    Worksheets that do not follow the layout are skipped and reported in
    `DecodeResult.skipped`; the import continues with the rest.

    Raises:
        WorkbookDecodeError: If the file cannot be read or no worksheet survives.
    """
    try:
        wb = load_workbook(io.BytesIO(data), data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        logger.error(f"Could not read workbook: {e}")
        raise WorkbookDecodeError(
            "The file could not be read. Make sure it is an .xlsx workbook."
        ) from e

    result = DecodeResult()
    for ws in wb.worksheets:
        rows = [
            list(row)
            for row in ws.iter_rows(
                min_row=1,
                min_col=1,
                max_row=ws.max_row,
                max_col=ws.max_column,
                values_only=True,
            )
        ]
        # An untouched worksheet still reports one empty row
        if all(_is_blank(value) for row in rows for value in row):
            rows = []

        try:
            result.sheets.append(decode_worksheet(ws.title, rows))
        except ValueError as e:
            logger.warning(f"Skipping worksheet '{ws.title}': {e}")
            result.skipped.append((ws.title, str(e)))

    if not result.sheets:
        raise WorkbookDecodeError(
            "No valid grade sheets were found in the workbook.", result.skipped
        )

    logger.info(
        f"Decoded {len(result.sheets)} sheet(s), skipped {len(result.skipped)} worksheet(s)"
    )
    return result
