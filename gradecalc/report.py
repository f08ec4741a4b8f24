"""Tabular views of a sheet for previews."""

import pandas as pd

from .excel_codec import AVERAGE_LABEL, GRADE_LABEL, HIGHLIGHT_LABEL, SCORE_LABEL, student_row
from .models import Settings, Sheet


def grade_columns(sheet: Sheet) -> list[str]:
    """Get list of column names for a sheet's grade table."""
    columns = ["#", sheet.student_header]
    for evaluation in sheet.evaluations:
        columns.append(f"{evaluation.name} {SCORE_LABEL}")
        columns.append(f"{evaluation.name} {GRADE_LABEL}")
    columns.extend([AVERAGE_LABEL, HIGHLIGHT_LABEL])
    return columns


def grade_table(sheet: Sheet, settings: Settings) -> pd.DataFrame:
    """
    Build a DataFrame with one row per student: raw scores, grades and final average.

    Rows carry the same values the workbook export writes, so a preview
    matches the exported file.
    """
    rows = [
        student_row(index, sheet, student, settings)
        for index, student in enumerate(sheet.students)
    ]
    return pd.DataFrame(rows, columns=grade_columns(sheet))
