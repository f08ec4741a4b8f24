# tests/test_session.py

import asyncio
import json
import time

import pytest

from gradecalc.config_schema import get_default_config
from gradecalc.excel_codec import export_workbook
from gradecalc.exceptions import WorkbookDecodeError
from gradecalc.persistence import MemoryBlobStore
from gradecalc.session import DragState, GradebookSession
from gradecalc.store import SheetStore

KEY = "gradeCalculatorState"


def workbook_with(*sheet_names):
    store = SheetStore()
    for name in sheet_names:
        sheet = store.create_sheet(name)
        store.add_evaluation(sheet.id, "Prueba", 10, 60)
        store.add_student(sheet.id, "Ana")
    return export_workbook(store.workspace)


class TestDragState:

    def test_drop_on_other_index_reorders(self):
        drag = DragState()
        drag.start(0)
        drag.over(2)
        assert drag.hover == 2
        assert drag.drop(2, 3) == (0, 2)
        assert drag.active is False

    def test_drop_on_source_is_noop(self):
        drag = DragState()
        drag.start(1)
        assert drag.drop(1, 3) is None

    def test_drop_without_start_or_out_of_range(self):
        drag = DragState()
        assert drag.drop(1, 3) is None
        drag.start(0)
        assert drag.drop(5, 3) is None

    def test_end_discards_drag(self):
        drag = DragState()
        drag.start(0)
        drag.end()
        assert drag.drop(1, 3) is None

    def test_over_ignored_when_idle(self):
        drag = DragState()
        drag.over(1)
        assert drag.hover is None


class TestCommands:

    def test_active_sheet_commands_need_a_sheet(self, session):
        assert session.add_evaluation() is None
        assert session.add_student() is None

    def test_commands_target_active_sheet(self, session):
        first = session.create_sheet("Primero")
        second = session.create_sheet("Segundo")
        session.select_sheet(first.id)
        session.add_evaluation("Prueba", "10", "60")
        session.add_student("Ana")
        assert len(first.evaluations) == 1
        assert len(first.students) == 1
        assert second.evaluations == []

    def test_drop_sheet(self, session):
        for name in "ABC":
            session.create_sheet(name)
        session.sheet_drag.start(2)
        assert session.drop_sheet(0) is True
        assert [s.name for s in session.store.sheets] == ["C", "A", "B"]

    def test_drop_evaluation(self, session):
        sheet = session.create_sheet()
        session.add_evaluation("Uno")
        session.add_evaluation("Dos")
        session.evaluation_drag.start(1)
        assert session.drop_evaluation(sheet.id, 0) is True
        assert [e.name for e in sheet.evaluations] == ["Dos", "Uno"]
        assert session.drop_evaluation(sheet.id, 1) is False

    def test_edits_are_persisted(self, session, blob_store):
        sheet = session.create_sheet("Guardada")
        session.add_evaluation()
        session.add_student("Ana")
        session.set_score(sheet.id, 0, 0, "7")
        session.commit_score(sheet.id, 0, 0)
        session.saver.flush()

        saved = json.loads(blob_store.blobs[KEY])
        assert saved["sheets"][0]["name"] == "Guardada"
        assert saved["sheets"][0]["studentData"][0]["scores"] == [7.0]

        restored = GradebookSession(blob_store)
        assert restored.store.workspace.to_dict() == session.store.workspace.to_dict()

    def test_export_filename(self, session):
        assert session.export_filename == "calculadora_notas.xlsx"


class TestImport:

    def test_import_stages_without_touching_workspace(self, session):
        existing = session.create_sheet("Existente")
        result = asyncio.run(session.import_file(workbook_with("Nueva")))
        assert [s.name for s in result.sheets] == ["Nueva"]
        assert [s.name for s in session.pending_import] == ["Nueva"]
        assert session.store.sheets == [existing]

    def test_confirm_replace(self, session):
        session.create_sheet("Existente")
        asyncio.run(session.import_file(workbook_with("Nueva", "Otra")))
        assert session.confirm_import_replace() is True
        assert [s.name for s in session.store.sheets] == ["Nueva", "Otra"]
        assert session.active_sheet.name == "Nueva"
        assert session.pending_import is None

    def test_confirm_append_keeps_active_sheet(self, session):
        existing = session.create_sheet("Existente")
        asyncio.run(session.import_file(workbook_with("Nueva")))
        assert session.confirm_import_append() is True
        assert [s.name for s in session.store.sheets] == ["Existente", "Nueva"]
        assert session.active_sheet is existing

    def test_confirm_append_into_empty_workspace_activates_import(self, session):
        asyncio.run(session.import_file(workbook_with("Nueva")))
        session.confirm_import_append()
        assert session.active_sheet.name == "Nueva"

    def test_cancel_import(self, session):
        asyncio.run(session.import_file(workbook_with("Nueva")))
        session.cancel_import()
        assert session.pending_import is None
        assert session.confirm_import_replace() is False
        assert session.confirm_import_append() is False

    def test_newer_import_supersedes_older(self, session):
        async def scenario():
            return await asyncio.gather(
                session.import_file(workbook_with("Vieja")),
                session.import_file(workbook_with("Reciente")),
            )

        older, newer = asyncio.run(scenario())
        assert older is None
        assert [s.name for s in newer.sheets] == ["Reciente"]
        assert [s.name for s in session.pending_import] == ["Reciente"]

    def test_failed_import_keeps_previous_staging(self, session):
        asyncio.run(session.import_file(workbook_with("Nueva")))
        with pytest.raises(WorkbookDecodeError):
            asyncio.run(session.import_file(b"garbage"))
        assert [s.name for s in session.pending_import] == ["Nueva"]

    def test_edits_continue_while_staged(self, session):
        sheet = session.create_sheet("Existente")
        asyncio.run(session.import_file(workbook_with("Nueva")))
        session.add_student("Beto")
        session.confirm_import_append()
        assert sheet.students[0].name == "Beto"

    def test_export_then_import_round_trip(self, blob_store):
        source = GradebookSession(MemoryBlobStore())
        sheet = source.create_sheet("Curso")
        source.add_evaluation("Prueba", 10, 60)
        source.add_student("Ana")
        source.set_score(sheet.id, 0, 0, "8")
        source.commit_score(sheet.id, 0, 0)

        target = GradebookSession(blob_store)
        asyncio.run(target.import_file(source.export_file()))
        target.confirm_import_replace()
        [imported] = target.store.sheets
        assert imported.students[0].score_row(imported.evaluations) == [8.0]


class TestGridEdits:

    @pytest.fixture
    def graded(self, session):
        sheet = session.create_sheet("Curso")
        session.add_evaluation("Prueba", 10, 60)
        session.add_student("Ana")
        return sheet

    def test_edit_score_stores_and_commits(self, session, graded):
        assert session.edit_score(graded.id, 0, 0, "12") is True
        assert graded.students[0].score_row(graded.evaluations) == [10]

    def test_unchanged_values_are_not_applied_again(self, session, graded):
        session.edit_score(graded.id, 0, 0, "8")
        calls = []
        session.store.subscribe(calls.append)

        assert session.edit_score(graded.id, 0, 0, "8") is False
        assert session.edit_score(graded.id, 0, 0, "8.0") is False
        assert session.edit_score(graded.id, 0, 0, 8) is False
        assert calls == []

    def test_empty_cell_left_empty_is_a_noop(self, session, graded):
        calls = []
        session.store.subscribe(calls.append)
        assert session.edit_score(graded.id, 0, 0, None) is False
        assert session.edit_score(graded.id, 0, 0, "") is False
        assert calls == []

    def test_clearing_and_invalid_text(self, session, graded):
        session.edit_score(graded.id, 0, 0, "8")
        assert session.edit_score(graded.id, 0, 0, "abc") is False
        assert graded.students[0].score_row(graded.evaluations) == [8]
        assert session.edit_score(graded.id, 0, 0, "") is True
        assert graded.students[0].score_row(graded.evaluations) == [""]


class TestDebouncedPersistence:

    def test_burst_of_edits_outside_event_loop_writes_once(self):
        writes = []

        class RecordingBlobStore(MemoryBlobStore):
            def save(self, key, blob):
                writes.append(blob)
                super().save(key, blob)

        config = get_default_config()
        config["persistence"]["debounce_seconds"] = 0.05
        session = GradebookSession(RecordingBlobStore(), config)
        sheet = session.create_sheet("Curso")
        session.add_evaluation("Prueba", 10, 60)
        for name in ("Ana", "Beto", "Cami"):
            session.add_student(name)
        session.edit_score(sheet.id, 0, 0, "7")
        session.set_highlight(sheet.id, 1)
        assert writes == []

        time.sleep(0.5)
        assert len(writes) == 1
        assert len(json.loads(writes[0])["sheets"][0]["studentData"]) == 3
