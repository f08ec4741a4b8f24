"""Exceptions raised by the grade calculator core."""


class GradecalcError(Exception):
    """Base class for grade calculator errors."""


class SheetNotFoundError(GradecalcError, KeyError):
    """Raised when an operation names a sheet id that is not in the workspace."""

    def __init__(self, sheet_id: str):
        super().__init__(sheet_id)
        self.sheet_id = sheet_id

    def __str__(self) -> str:
        return f"Sheet not found: {self.sheet_id}"


class WorkbookDecodeError(GradecalcError):
    """
    Raised when a workbook yields no usable worksheet.

    `skipped` lists (worksheet title, reason) pairs for every worksheet that
    was rejected while decoding.
    """

    def __init__(self, message: str, skipped: list[tuple[str, str]] | None = None):
        super().__init__(message)
        self.skipped = skipped or []
