#!/usr/bin/env python3
from __future__ import annotations

import tempfile
from pathlib import Path

import pandas as pd
import streamlit as st

from datamerge.errors import DatamergeError
from datamerge.models import UnifiedColumn
from datamerge.session import Session, default_export_name
from datamerge.spreadsheet_io import ALL_FORMATS

UPLOAD_TYPES = sorted(ext.lstrip(".") for ext in ALL_FORMATS)


def ensure_state() -> None:
    if "session" not in st.session_state:
        st.session_state["session"] = Session()
    if "upload_dir" not in st.session_state:
        st.session_state["upload_dir"] = tempfile.mkdtemp(prefix="datamerge-")
    st.session_state.setdefault("preview_rows", None)
    st.session_state.setdefault("export_bytes", None)


def current_session() -> Session:
    return st.session_state["session"]


def save_uploads(uploads) -> list[Path]:
    folder = Path(st.session_state["upload_dir"])
    saved = []
    for upload in uploads:
        path = folder / upload.name
        if not path.exists():
            path.write_bytes(upload.getvalue())
        saved.append(path)
    return saved


def render_toolbar(session: Session) -> None:
    left, middle, right = st.columns(3)
    session.options.generate_periods = left.toggle("Generar periodos", value=session.options.generate_periods)
    session.options.clean_job_type = middle.toggle("Limpiar Tipo de Trabajo", value=session.options.clean_job_type)
    session.options.dayfirst = right.toggle("Día primero en fechas", value=session.options.dayfirst)

    buttons = st.columns(5)
    if buttons[0].button("Seleccionar todo", width="stretch"):
        session.select_all()
    if buttons[1].button("Deseleccionar todo", width="stretch"):
        session.deselect_all()
    if buttons[2].button("Nueva columna", width="stretch"):
        session.resolver.add_custom()
    if buttons[3].button("Inyectar vacías", width="stretch"):
        session.resolver.inject_standard_placeholders()
    if buttons[4].button("Limpiar todo", width="stretch"):
        session.clear_all()
        st.session_state["preview_rows"] = None
        st.session_state["export_bytes"] = None
        st.rerun()


def render_column(session: Session, column: UnifiedColumn) -> None:
    resolver = session.resolver
    key = f"col-{id(column)}"
    with st.container(border=True):
        check, name, info, actions = st.columns([1, 5, 2, 4])
        column.is_selected = check.checkbox("Incluir", value=column.is_selected, key=f"{key}-sel", label_visibility="collapsed")
        new_name = name.text_input("Encabezado", value=column.header_name, key=f"{key}-name", label_visibility="collapsed")
        if new_name != column.header_name:
            session.rename(column, new_name)
        info.caption(column.source_info)

        is_target = resolver.is_target(column)
        can_merge = resolver.can_merge_into_target(column)
        target_label = "Quitar destino" if is_target else "Destino"
        if actions.button(target_label, key=f"{key}-target"):
            resolver.set_target(column)
            st.rerun()
        if can_merge and actions.button("Unir al destino", key=f"{key}-merge"):
            resolver.merge(column)
            st.rerun()
        if not is_target and not can_merge and actions.button("Eliminar", key=f"{key}-remove"):
            resolver.remove(column)
            st.rerun()

        if column.is_custom:
            column.default_value = st.text_input("Valor fijo", value=column.default_value, key=f"{key}-value")
        elif column.file_mappings:
            with st.expander("Orígenes"):
                for index, (file_id, original) in enumerate(list(column.file_mappings.items())):
                    label, button = st.columns([8, 2])
                    label.write(f"{Path(file_id).name} → {original}")
                    if len(column.file_mappings) > 1 and button.button("Separar", key=f"{key}-detach-{index}"):
                        resolver.detach(file_id, original)
                        st.rerun()


def render_columns(session: Session) -> None:
    st.subheader("Columnas")
    st.caption(session.resolver.target_info)
    for column in session.columns:
        render_column(session, column)
    for warning in session.duplicate_header_warnings():
        st.warning(warning)


def render_outputs(session: Session) -> None:
    st.subheader("Vista previa")
    if st.button("Actualizar vista previa", disabled=not session.has_work):
        try:
            st.session_state["preview_rows"] = session.preview()
        except DatamergeError as exc:
            st.error(str(exc))
    rows = st.session_state.get("preview_rows")
    if rows:
        st.dataframe(pd.DataFrame(rows), width="stretch")
    elif rows is not None:
        st.info("No hay filas para mostrar.")

    st.subheader("Consolidar")
    output_format = st.radio("Formato", ["xlsx", "csv"], horizontal=True)
    file_name = f"{default_export_name()}.{output_format}"
    if st.button("Consolidar", type="primary", disabled=not session.has_work):
        output_path = Path(st.session_state["upload_dir"]) / "exports" / file_name
        try:
            with st.spinner("Consolidando..."):
                count = session.export(output_path)
            st.session_state["export_bytes"] = (file_name, output_path.read_bytes())
            st.success(f"{count} filas consolidadas.")
        except DatamergeError as exc:
            st.error(str(exc))
    exported = st.session_state.get("export_bytes")
    if exported:
        st.download_button("Descargar", data=exported[1], file_name=exported[0])


def main() -> None:
    st.set_page_config(page_title="datamerge", layout="wide")
    ensure_state()
    session = current_session()

    st.title("datamerge")
    st.caption("Carga varios archivos, unifica sus columnas y exporta un consolidado.")

    uploads = st.file_uploader("Archivos", type=UPLOAD_TYPES, accept_multiple_files=True)
    if uploads:
        session.add_files(save_uploads(uploads))

    if session.warnings:
        st.warning(" | ".join(session.warnings))
    if not session.files:
        st.info("Formatos admitidos: " + " ".join(sorted(ALL_FORMATS)))
        return

    render_toolbar(session)
    render_columns(session)
    render_outputs(session)


if __name__ == "__main__":
    main()
