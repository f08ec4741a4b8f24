"""
Command surface used by the presentation layer.

A GradebookSession wires the SheetStore to persistence (load at start, debounced
save after every applied edit), to the workbook codec for import and export,
and holds the staged result of the latest workbook import until the user picks
replace or append.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .config_schema import get_default_config
from .excel_codec import DecodeResult, decode_workbook, export_workbook
from .models import Evaluation, Highlight, Sheet, Student
from .normalize import parse_number
from .persistence import BlobStore, DebouncedSaver, MemoryBlobStore, load_workspace
from .store import SheetStore

logger = logging.getLogger(__name__)


class DragState:
    """
    Source and hover indices of an in-progress drag over tabs or columns.

    Any termination other than a drop onto a valid, distinct index discards
    the drag without reordering anything.
    """

    def __init__(self):
        self.source: int | None = None
        self.hover: int | None = None

    @property
    def active(self) -> bool:
        return self.source is not None

    def start(self, index: int) -> None:
        self.source = index
        self.hover = None

    def over(self, index: int) -> None:
        if self.active:
            self.hover = index

    def end(self) -> None:
        self.source = None
        self.hover = None

    def drop(self, target: int, count: int) -> tuple[int, int] | None:
        """Finish the drag; returns (source, target) only when a reorder should happen."""
        source = self.source
        self.end()
        if source is None or source == target:
            return None
        if not 0 <= source < count or not 0 <= target < count:
            return None
        return source, target


class GradebookSession:

    def __init__(
        self,
        blob_store: BlobStore | None = None,
        config: dict[str, Any] | None = None,
        store: SheetStore | None = None,
    ):
        self.config: dict[str, Any] = config or get_default_config()
        persistence = self.config["persistence"]
        self._blob_store = blob_store if blob_store is not None else MemoryBlobStore()

        if store is None:
            workspace = load_workspace(self._blob_store, persistence["key"], self.config)
            store = SheetStore(workspace, self.config)
        self.store = store

        self.saver = DebouncedSaver(
            self._blob_store, persistence["key"], persistence["debounce_seconds"]
        )
        self.store.subscribe(lambda store: self.saver.schedule(store.workspace))

        self.sheet_drag = DragState()
        self.evaluation_drag = DragState()

        self._pending_import: list[Sheet] | None = None
        self._import_generation = 0

    # === properties ===

    @property
    def active_sheet(self) -> Sheet | None:
        return self.store.active_sheet

    @property
    def pending_import(self) -> list[Sheet] | None:
        return self._pending_import

    def _active_sheet_id(self) -> str | None:
        sheet = self.store.active_sheet
        return sheet.id if sheet is not None else None

    # === sheet commands ===

    def create_sheet(self, name: str | None = None) -> Sheet:
        return self.store.create_sheet(name)

    def select_sheet(self, sheet_id: str) -> None:
        self.store.select_sheet(sheet_id)

    def delete_sheet(self, sheet_id: str) -> None:
        self.store.delete_sheet(sheet_id)

    def rename_sheet(self, sheet_id: str, name: str) -> bool:
        return self.store.rename_sheet(sheet_id, name)

    def reorder_sheets(self, from_index: int, to_index: int) -> bool:
        return self.store.reorder_sheets(from_index, to_index)

    def drop_sheet(self, target: int) -> bool:
        move = self.sheet_drag.drop(target, len(self.store.sheets))
        return move is not None and self.store.reorder_sheets(*move)

    # === active sheet commands ===

    def add_evaluation(
        self,
        name: str | None = None,
        max_score: Any = None,
        exigency: Any = None,
    ) -> Evaluation | None:
        sheet_id = self._active_sheet_id()
        if sheet_id is None:
            return None
        return self.store.add_evaluation(sheet_id, name, max_score, exigency)

    def add_student(self, name: str | None = None) -> Student | None:
        sheet_id = self._active_sheet_id()
        if sheet_id is None:
            return None
        return self.store.add_student(sheet_id, name)

    def reorder_evaluations(self, sheet_id: str, from_index: int, to_index: int) -> bool:
        return self.store.reorder_evaluations(sheet_id, from_index, to_index)

    def drop_evaluation(self, sheet_id: str, target: int) -> bool:
        sheet = self.store.sheet(sheet_id)
        move = self.evaluation_drag.drop(target, len(sheet.evaluations))
        return move is not None and self.store.reorder_evaluations(sheet_id, *move)

    def set_score(self, sheet_id: str, row: int, col: int, raw_text: Any) -> bool:
        return self.store.set_score(sheet_id, row, col, raw_text)

    def commit_score(self, sheet_id: str, row: int, col: int) -> None:
        self.store.commit_score(sheet_id, row, col)

    def edit_score(self, sheet_id: str, row: int, col: int, raw_text: Any) -> bool:
        """
        Store and commit a score typed into the grid.

        Text equal to the stored score, as text or as number, changes nothing,
        so replaying an editor's full edit history only applies real changes.
        """
        sheet = self.store.sheet(sheet_id)
        current = sheet.students[row].score_for(sheet.evaluations[col].id)
        raw_text = "" if raw_text is None else raw_text

        if str(raw_text) == str(current):
            return False
        number = parse_number(raw_text)
        if number is not None and number == parse_number(current):
            return False

        if not self.store.set_score(sheet_id, row, col, raw_text):
            return False
        self.store.commit_score(sheet_id, row, col)
        return True

    def set_highlight(self, sheet_id: str, row: int) -> Highlight:
        return self.store.set_highlight(sheet_id, row)

    def update_global_setting(self, key: str, value: Any) -> bool:
        return self.store.update_global_setting(key, value)

    # === import / export ===

    async def import_file(self, data: bytes) -> DecodeResult | None:
        """
        Decode a workbook off the event loop and stage its sheets.

        Edits keep flowing while the decode runs. When a newer import has been
        started in the meantime, this result is discarded and None is returned.

        Raises:
            WorkbookDecodeError: If no worksheet could be decoded.
        """
        self._import_generation += 1
        generation = self._import_generation

        result = await asyncio.to_thread(decode_workbook, data)

        if generation != self._import_generation:
            logger.info("Discarding import result superseded by a newer import")
            return None

        self._pending_import = result.sheets
        logger.info(f"Staged {len(result.sheets)} imported sheet(s)")
        return result

    def confirm_import_replace(self) -> bool:
        if self._pending_import is None:
            return False
        sheets, self._pending_import = self._pending_import, None
        self.store.replace_sheets(sheets)
        return True

    def confirm_import_append(self) -> bool:
        if self._pending_import is None:
            return False
        sheets, self._pending_import = self._pending_import, None
        self.store.append_sheets(sheets)
        return True

    def cancel_import(self) -> None:
        self._pending_import = None

    def export_file(self) -> bytes:
        return export_workbook(self.store.workspace)

    @property
    def export_filename(self) -> str:
        return self.config["output_file"]
