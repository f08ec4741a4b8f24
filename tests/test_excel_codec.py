# tests/test_excel_codec.py

import io

import pytest
from openpyxl import Workbook, load_workbook

from gradecalc.excel_codec import (
    decode_workbook,
    decode_worksheet,
    encode_workspace,
    export_workbook,
    safe_sheet_title,
    sheet_rows,
)
from gradecalc.exceptions import WorkbookDecodeError
from gradecalc.models import Highlight, Workspace


def workbook_bytes(worksheets):
    """Build an .xlsx file from {title: rows}."""
    wb = Workbook()
    wb.remove(wb.active)
    for title, rows in worksheets.items():
        ws = wb.create_sheet(title=title)
        for row in rows:
            ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


VALID_ROWS = [
    ["", "", "Prueba 1", "", "Prueba 2", ""],
    ["", "P. Máx:", 10, "", 20, ""],
    ["", "Exig:", 60, "", 50, ""],
    ["", "Diferenciados", "SI", "8,10,12", "NO", "20,20,20"],
    ["#", "Alumnos", "Puntaje", "Nota", "Puntaje", "Nota", "Promedio Final", "Highlight"],
    [1, "Ana", 8, "5.5", 10, "4.0", "4.8", "green"],
    [2, "Benito", None, "", 15, "5.5", "5.5", None],
]


class TestEncode:

    def test_layout_of_exported_sheet(self, sample_sheet, default_settings):
        rows = sheet_rows(sample_sheet, default_settings)
        assert rows[0][2:] == ["Prueba 1", "", "Prueba 2", "", "Control", ""]
        assert rows[1][:3] == ["", "P. Máx:", 10]
        assert rows[2][1:3] == ["Exig:", 60]
        assert rows[3][1:4] == ["Diferenciados", "NO", "10,10,10"]
        assert rows[4] == ["#", "Alumnos", "Puntaje", "Nota", "Puntaje", "Nota",
                           "Puntaje", "Nota", "Promedio Final", "Highlight"]
        assert rows[5] == [1, "Ana", 8, "5.5", 10, "4.0", "", "", "4.8", ""]

    def test_grades_have_one_decimal(self, sample_sheet, default_settings):
        for row in sheet_rows(sample_sheet, default_settings)[5:]:
            for grade in row[3:-2:2] + [row[-2]]:
                assert grade == "" or len(grade.split(".")[1]) == 1

    def test_invalid_grade_is_an_empty_cell(self, store, sample_sheet):
        store.set_evaluation_field(sample_sheet.id, 0, "max_score", "0")
        ws = encode_workspace(store.workspace)[sample_sheet.name]
        assert ws.cell(row=6, column=3).value == 8
        assert ws.cell(row=6, column=4).value is None

    def test_highlight_is_exported_as_tag(self, store, sample_sheet):
        store.set_highlight(sample_sheet.id, 0)
        rows = sheet_rows(sample_sheet, store.settings)
        assert rows[5][-1] == "green"
        assert rows[6][-1] == ""

    def test_one_worksheet_per_sheet(self, store, sample_sheet):
        store.create_sheet("Historia")
        wb = encode_workspace(store.workspace)
        assert wb.sheetnames == ["Matemáticas", "Historia"]

    def test_empty_workspace_still_produces_a_workbook(self):
        wb = load_workbook(io.BytesIO(export_workbook(Workspace())))
        assert wb.sheetnames == ["Hoja 1"]

    def test_safe_sheet_title(self):
        taken = set()
        assert safe_sheet_title("1°A: Física/Química", taken) == "1°A_ Física_Química"
        assert safe_sheet_title("Notas", taken) == "Notas"
        assert safe_sheet_title("notas", taken) == "notas (2)"
        assert len(safe_sheet_title("x" * 40, taken)) == 31
        assert safe_sheet_title("", taken) == "Hoja"


class TestDecode:

    def test_round_trip_preserves_sheet_content(self, store, sample_sheet):
        store.set_highlight(sample_sheet.id, 2)
        store.set_highlight(sample_sheet.id, 2)
        evaluation = sample_sheet.evaluations[1]
        store.save_differentiated_scores(
            sample_sheet.id, evaluation.id, {"enabled": True, "green": 15, "yellow": 18, "blue": 20}
        )
        store.set_student_header(sample_sheet.id, "Estudiantes")

        result = decode_workbook(export_workbook(store.workspace))
        assert result.skipped == []
        [decoded] = result.sheets

        assert decoded.name == sample_sheet.name
        assert decoded.student_header == "Estudiantes"
        for original, restored in zip(sample_sheet.evaluations, decoded.evaluations):
            assert restored.name == original.name
            assert restored.max_score == original.max_score
            assert restored.exigency == original.exigency
            assert restored.differentiated_scores.to_dict() == original.differentiated_scores.to_dict()
        for original, restored in zip(sample_sheet.students, decoded.students):
            assert restored.name == original.name
            assert restored.highlight is original.highlight
            assert restored.score_row(decoded.evaluations) == original.score_row(sample_sheet.evaluations)

    def test_decoded_ids_are_fresh(self, store, sample_sheet):
        [decoded] = decode_workbook(export_workbook(store.workspace)).sheets
        assert decoded.id != sample_sheet.id
        assert {e.id for e in decoded.evaluations}.isdisjoint({e.id for e in sample_sheet.evaluations})

    def test_reads_handwritten_layout(self):
        [sheet] = decode_workbook(workbook_bytes({"Curso": VALID_ROWS})).sheets
        assert [e.name for e in sheet.evaluations] == ["Prueba 1", "Prueba 2"]
        first = sheet.evaluations[0]
        assert first.differentiated_scores.enabled is True
        assert first.differentiated_scores.by_highlight == {
            Highlight.GREEN: 8, Highlight.YELLOW: 10, Highlight.BLUE: 12,
        }
        ana, benito = sheet.students
        assert ana.highlight is Highlight.GREEN
        assert ana.score_row(sheet.evaluations) == [8, 10]
        assert benito.score_row(sheet.evaluations) == ["", 15]

    def test_short_worksheet_is_rejected(self):
        rows = VALID_ROWS[:4]
        with pytest.raises(WorkbookDecodeError) as excinfo:
            decode_workbook(workbook_bytes({"Corta": rows}))
        assert excinfo.value.skipped[0][0] == "Corta"

    def test_invalid_worksheets_are_skipped(self):
        data = workbook_bytes({
            "Buena": VALID_ROWS,
            "Corta": VALID_ROWS[:3],
            "Vacía": [],
        })
        result = decode_workbook(data)
        assert [s.name for s in result.sheets] == ["Buena"]
        assert [title for title, _ in result.skipped] == ["Corta", "Vacía"]

    def test_missing_highlight_column_means_none(self):
        rows = [row[:7] for row in VALID_ROWS]
        [sheet] = decode_workbook(workbook_bytes({"Curso": rows})).sheets
        assert all(s.highlight is Highlight.NONE for s in sheet.students)

    def test_unknown_highlight_tag_means_none(self):
        rows = [list(row) for row in VALID_ROWS]
        rows[5][7] = "purple"
        [sheet] = decode_workbook(workbook_bytes({"Curso": rows})).sheets
        assert sheet.students[0].highlight is Highlight.NONE

    def test_evaluation_without_valid_max_score_is_skipped(self):
        rows = [list(row) for row in VALID_ROWS]
        rows[1][2] = "abc"
        [sheet] = decode_workbook(workbook_bytes({"Curso": rows})).sheets
        assert [e.name for e in sheet.evaluations] == ["Prueba 2"]
        assert sheet.students[1].score_row(sheet.evaluations) == [15]

    def test_sheet_without_students_is_skipped(self):
        with pytest.raises(WorkbookDecodeError):
            decode_workbook(workbook_bytes({"Curso": VALID_ROWS[:5]}))

    def test_garbage_bytes_raise_decode_error(self):
        with pytest.raises(WorkbookDecodeError):
            decode_workbook(b"this is not a spreadsheet")

    def test_decode_worksheet_requires_five_rows(self):
        with pytest.raises(ValueError):
            decode_worksheet("x", [["a"], ["b"]])


class TestNamesAndBounds:

    def test_names_round_trip_verbatim(self, store):
        sheet = store.create_sheet("Curso")
        store.add_evaluation(sheet.id, "=Prueba", 10, 60)
        store.add_evaluation(sheet.id, "Control ", 5, 60)
        store.add_student(sheet.id, "=Ana")
        store.add_student(sheet.id, "Beto ")
        store.add_student(sheet.id, "#N/A")
        store.set_student_header(sheet.id, " Nómina")
        store.set_score(sheet.id, 0, 0, "9")
        store.commit_score(sheet.id, 0, 0)

        [decoded] = decode_workbook(export_workbook(store.workspace)).sheets
        assert [e.name for e in decoded.evaluations] == ["=Prueba", "Control "]
        assert [s.name for s in decoded.students] == ["=Ana", "Beto ", "#N/A"]
        assert decoded.student_header == " Nómina"
        assert decoded.students[0].score_row(decoded.evaluations) == [9, ""]

    def test_text_cells_are_not_written_as_formulas(self, store):
        sheet = store.create_sheet("Curso")
        store.add_evaluation(sheet.id, "=SUM(A1:A2)", 10, 60)
        store.add_student(sheet.id, "=Ana")
        ws = encode_workspace(store.workspace)["Curso"]
        assert ws.cell(row=1, column=3).data_type == "s"
        assert ws.cell(row=6, column=2).data_type == "s"
        assert ws.cell(row=6, column=2).value == "=Ana"

    @pytest.mark.parametrize("exigency", [150, -5])
    def test_evaluation_with_out_of_range_exigency_is_skipped(self, exigency):
        rows = [list(row) for row in VALID_ROWS]
        rows[2][2] = exigency
        [sheet] = decode_workbook(workbook_bytes({"Curso": rows})).sheets
        assert [e.name for e in sheet.evaluations] == ["Prueba 2"]
