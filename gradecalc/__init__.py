"""Grade calculator core: grading sheets, grade scale and workbook exchange."""

from .config_schema import DEFAULT_CONFIG, get_default_config, merge_config
from .exceptions import GradecalcError, SheetNotFoundError, WorkbookDecodeError
from .models import (
    DifferentiatedScores,
    Evaluation,
    Highlight,
    Settings,
    Sheet,
    Student,
    Workspace,
)
from .normalize import normalize_number_input, parse_number
from .grading import average_grade, calculate_grade, effective_max_score, student_grades
from .store import SheetStore
from .excel_codec import DecodeResult, decode_workbook, encode_workspace, export_workbook
from .persistence import DebouncedSaver, FileBlobStore, MemoryBlobStore, load_workspace
from .report import grade_table
from .session import DragState, GradebookSession
from .validators import validate_config, validate_settings, validate_sheet

__all__ = [
    "DEFAULT_CONFIG",
    "get_default_config",
    "merge_config",
    "GradecalcError",
    "SheetNotFoundError",
    "WorkbookDecodeError",
    "DifferentiatedScores",
    "Evaluation",
    "Highlight",
    "Settings",
    "Sheet",
    "Student",
    "Workspace",
    "normalize_number_input",
    "parse_number",
    "average_grade",
    "calculate_grade",
    "effective_max_score",
    "student_grades",
    "SheetStore",
    "DecodeResult",
    "decode_workbook",
    "encode_workspace",
    "export_workbook",
    "DebouncedSaver",
    "FileBlobStore",
    "MemoryBlobStore",
    "load_workspace",
    "grade_table",
    "DragState",
    "GradebookSession",
    "validate_config",
    "validate_settings",
    "validate_sheet",
]
