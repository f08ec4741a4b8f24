"""
Streamlit Grade Calculator

Keeps grading sheets (evaluations x students), converts scores into grades
with a configurable scale, and imports/exports Excel workbooks.
"""

import asyncio
import json
import logging
from pathlib import Path

import streamlit as st

from gradecalc import (
    FileBlobStore,
    GradebookSession,
    Highlight,
    WorkbookDecodeError,
    get_default_config,
    grade_table,
    merge_config,
    validate_config,
    validate_sheet,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")


# Page configuration
st.set_page_config(
    page_title="Calculadora de Notas",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded"
)

HIGHLIGHT_ICONS = {
    Highlight.NONE: "⚪",
    Highlight.GREEN: "🟢",
    Highlight.YELLOW: "🟡",
    Highlight.BLUE: "🔵",
}

SETTING_LABELS = {
    "min_grade": "Nota Mínima",
    "passing_grade": "Nota Aprobación",
    "max_grade": "Nota Máxima",
}


CONFIG_FILE = Path("config.json")


def load_app_config() -> dict:
    """Defaults merged with config.json when one sits next to the app."""
    if not CONFIG_FILE.exists():
        return get_default_config()
    with open(CONFIG_FILE, "r", encoding="utf-8") as f:
        return merge_config(json.load(f))


def render_config_issues() -> bool:
    """Show configuration problems; returns False when an error blocks the app."""
    issues = validate_config(get_session().config)
    errors = [i for i in issues if i["type"] == "error"]
    warnings = [i for i in issues if i["type"] == "warning"]

    for issue in errors:
        st.error(f"❌ {issue['message']}")
    for issue in warnings:
        st.warning(f"⚠️ {issue['message']}")
    return not errors


def init_session_state():
    """Create the gradebook session once per browser session."""
    if "gradebook" not in st.session_state:
        config = load_app_config()
        blob_store = FileBlobStore(config["persistence"]["directory"])
        st.session_state.gradebook = GradebookSession(blob_store, config)


def get_session() -> GradebookSession:
    return st.session_state.gradebook


def on_setting_change(key: str):
    session = get_session()
    if not session.update_global_setting(key, st.session_state[f"setting_{key}"]):
        st.session_state[f"setting_{key}"] = f"{getattr(session.store.settings, key):.1f}"
        st.toast("La nota mínima debe ser menor que la de aprobación y ésta menor que la máxima")


def render_sidebar():
    """Render grade settings, import and export."""
    session = get_session()
    settings = session.store.settings

    st.sidebar.header("Configuración")
    for key, label in SETTING_LABELS.items():
        state_key = f"setting_{key}"
        if state_key not in st.session_state:
            st.session_state[state_key] = f"{getattr(settings, key):.1f}"
        st.sidebar.text_input(label, key=state_key, on_change=on_setting_change, args=(key,))

    st.sidebar.divider()
    st.sidebar.header("Excel")

    uploaded = st.sidebar.file_uploader("Importar archivo", type=["xlsx"], key="workbook_upload")
    if uploaded is not None and st.session_state.get("imported_name") != uploaded.name:
        st.session_state.imported_name = uploaded.name
        try:
            result = asyncio.run(session.import_file(uploaded.getvalue()))
            if result is not None and result.skipped:
                skipped = ", ".join(title for title, _ in result.skipped)
                st.sidebar.warning(f"Hojas omitidas: {skipped}")
        except WorkbookDecodeError as e:
            st.sidebar.error(str(e))

    if session.pending_import is not None:
        st.sidebar.info(f"{len(session.pending_import)} hoja(s) listas para importar")
        c1, c2, c3 = st.sidebar.columns(3)
        if c1.button("Reemplazar"):
            session.confirm_import_replace()
            st.rerun()
        if c2.button("Agregar"):
            session.confirm_import_append()
            st.rerun()
        if c3.button("Cancelar"):
            session.cancel_import()
            st.rerun()

    st.sidebar.download_button(
        "📥 Exportar a Excel",
        data=session.export_file(),
        file_name=session.export_filename,
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        disabled=not session.store.sheets,
    )

    if session.saver.last_error is not None:
        st.sidebar.error(f"No se pudo guardar: {session.saver.last_error}")
    elif session.saver.last_saved is not None:
        st.sidebar.caption(f"Guardado {session.saver.last_saved:%H:%M:%S}")


def render_tabs():
    """Render the sheet selector with rename, reorder and delete controls."""
    session = get_session()
    sheets = session.store.sheets
    active = session.active_sheet

    names = [sheet.name for sheet in sheets]
    index = sheets.index(active) if active in sheets else 0
    choice = st.radio("Hojas", options=range(len(sheets)), index=index,
                      format_func=lambda i: names[i], horizontal=True, label_visibility="collapsed")
    if sheets[choice].id != session.store.workspace.active_sheet_id:
        session.select_sheet(sheets[choice].id)
        st.rerun()

    sheet = session.active_sheet
    c1, c2, c3, c4, c5 = st.columns([3, 1, 1, 1, 1])
    with c1:
        new_name = st.text_input("Nombre de la hoja", value=sheet.name, key=f"name_{sheet.id}")
        if new_name != sheet.name:
            session.rename_sheet(sheet.id, new_name)
    if c2.button("◀", disabled=index == 0):
        session.reorder_sheets(index, index - 1)
        st.rerun()
    if c3.button("▶", disabled=index == len(sheets) - 1):
        session.reorder_sheets(index, index + 1)
        st.rerun()
    if c4.button("➕ Hoja"):
        session.create_sheet()
        st.rerun()
    if c5.button("🗑️ Hoja"):
        session.delete_sheet(sheet.id)
        st.rerun()


def render_evaluations(sheet):
    """Render one editor column per evaluation."""
    session = get_session()
    store = session.store

    with st.expander("Evaluaciones", expanded=not sheet.students):
        with st.form(f"add_eval_{sheet.id}", clear_on_submit=True):
            c1, c2, c3 = st.columns(3)
            name = c1.text_input("Nombre", value=session.config["evaluation"]["name"])
            max_score = c2.text_input("Puntaje Máximo", value=str(session.config["evaluation"]["max_score"]))
            exigency = c3.text_input("Exigencia (%)", value=str(session.config["evaluation"]["exigency"]))
            if st.form_submit_button("➕ Evaluación"):
                if session.add_evaluation(name, max_score, exigency) is None:
                    st.error("Revise el nombre, el puntaje máximo (> 0) y la exigencia (0-100)")
                else:
                    st.rerun()

        for index, evaluation in enumerate(sheet.evaluations):
            c1, c2, c3, c4, c5, c6 = st.columns([3, 2, 2, 1, 1, 1])
            new_name = c1.text_input("Nombre", value=evaluation.name, key=f"ev_name_{evaluation.id}")
            if new_name != evaluation.name:
                store.rename_evaluation(sheet.id, index, new_name)
            for column, field, label in ((c2, "max_score", "P. Máx"), (c3, "exigency", "Exig %")):
                current = f"{getattr(evaluation, field):g}"
                typed = column.text_input(label, value=current, key=f"ev_{field}_{evaluation.id}")
                if typed != current and not store.set_evaluation_field(sheet.id, index, field, typed):
                    column.caption("Valor inválido")
            if c4.button("◀", key=f"ev_left_{evaluation.id}", disabled=index == 0):
                session.reorder_evaluations(sheet.id, index, index - 1)
                st.rerun()
            if c5.button("▶", key=f"ev_right_{evaluation.id}", disabled=index == len(sheet.evaluations) - 1):
                session.reorder_evaluations(sheet.id, index, index + 1)
                st.rerun()
            if c6.button("🗑️", key=f"ev_del_{evaluation.id}"):
                store.remove_evaluation(sheet.id, index)
                st.rerun()

            differentiated = evaluation.differentiated_scores
            with st.popover("Puntajes diferenciados"):
                enabled = st.checkbox("Habilitar diferenciados", value=differentiated.enabled,
                                      key=f"diff_on_{evaluation.id}")
                values = {}
                for color in Highlight.colors():
                    values[color.value] = st.text_input(
                        f"P. Máx. {HIGHLIGHT_ICONS[color]}",
                        value=f"{differentiated.by_highlight[color]:g}",
                        key=f"diff_{color.value}_{evaluation.id}",
                    )
                if st.button("Guardar", key=f"diff_save_{evaluation.id}"):
                    store.save_differentiated_scores(sheet.id, evaluation.id, {"enabled": enabled, **values})
                    st.rerun()


def evaluation_labels(sheet) -> list[str]:
    """Column labels for the score editor, unique even when evaluation names repeat."""
    return [f"{index + 1}. {evaluation.name}" for index, evaluation in enumerate(sheet.evaluations)]


def on_scores_edited(sheet_id: str, editor_key: str):
    """Apply data editor changes; cells already matching the stored values are left alone."""
    session = get_session()
    sheet = session.store.sheet(sheet_id)
    edited_rows = st.session_state[editor_key].get("edited_rows", {})
    for row, changes in edited_rows.items():
        for column, value in changes.items():
            if column == sheet.student_header:
                if (value or "") != sheet.students[row].name:
                    session.store.rename_student(sheet_id, row, value or "")
                continue
            session.edit_score(sheet_id, row, evaluation_labels(sheet).index(column), value)


def render_students(sheet):
    """Render the score editor, highlight controls and grade preview."""
    session = get_session()
    store = session.store

    c1, c2 = st.columns([1, 5])
    if c1.button("➕ Estudiante"):
        session.add_student()
        st.rerun()
    header = c2.text_input("Encabezado", value=sheet.student_header, key=f"header_{sheet.id}")
    if header != sheet.student_header:
        store.set_student_header(sheet.id, header)

    if not sheet.students:
        st.info("Agregue estudiantes para comenzar a ingresar puntajes")
        return

    scores = {sheet.student_header: [student.name for student in sheet.students]}
    for label, evaluation in zip(evaluation_labels(sheet), sheet.evaluations):
        scores[label] = [
            str(student.score_for(evaluation.id)) for student in sheet.students
        ]

    editor_key = f"scores_{sheet.id}_{len(sheet.evaluations)}_{len(sheet.students)}"
    st.data_editor(
        scores,
        key=editor_key,
        hide_index=True,
        use_container_width=True,
        on_change=on_scores_edited,
        args=(sheet.id, editor_key),
    )

    st.subheader("📊 Notas")
    st.dataframe(grade_table(sheet, store.settings), hide_index=True, use_container_width=True)

    with st.expander("Resaltado y eliminación"):
        for row, student in enumerate(sheet.students):
            c1, c2, c3 = st.columns([4, 1, 1])
            c1.write(student.name)
            if c2.button(HIGHLIGHT_ICONS[student.highlight], key=f"hl_{student.id}"):
                session.set_highlight(sheet.id, row)
                st.rerun()
            if c3.button("🗑️", key=f"del_{student.id}"):
                store.remove_student(sheet.id, row)
                st.rerun()

    for issue in validate_sheet(sheet):
        if issue["type"] == "warning":
            st.warning(f"⚠️ {issue['message']}")
        else:
            st.error(f"❌ {issue['message']}")


def main():
    """Main application entry point."""
    init_session_state()

    st.title("📊 Calculadora de Notas")

    if not render_config_issues():
        st.stop()

    render_sidebar()

    session = get_session()
    if not session.store.sheets:
        st.markdown("Puedes importar un archivo de Excel o crear una tabla manualmente.")
        if st.button("Crear Tabla Manualmente", type="primary"):
            session.create_sheet()
            st.rerun()
        return

    render_tabs()

    st.divider()

    sheet = session.active_sheet
    render_evaluations(sheet)
    render_students(sheet)


if __name__ == "__main__":
    main()
