import pandas as pd
import streamlit as st
from contextlib import contextmanager
from dataclasses import asdict
from typing import Dict, List, Optional

from deviations.config import get_settings
from deviations.data import normalize, read_workbook
from deviations.editor import EDITABLE_FIELDS, add_blank_row
from deviations.export import EXPORT_FILENAME, export_workbook
from deviations.filters import ALL, DeviationFilters, prepare_context
from deviations.metrics_drivers import compute_driver_treatment
from deviations.metrics_evolution import compute_evolution
from deviations.metrics_overview import compute_overview
from deviations.records import FIELD_COLUMNS, DeviationRecord, records_from_frame, records_to_frame
from deviations.slides import SLIDES_MIME, build_deck, slides_filename
from deviations.store import StoreNotConfiguredError, create_store
from deviations.sync import delete_record, pull_records, push_records

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #0e4b61;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(
        f"""
        <div class="card">
          <div class="card-header"><div class="card-title">{title}</div></div>
        """,
        unsafe_allow_html=True,
    )
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def format_filter_summary(filters: DeviationFilters) -> str:
    chips = [
        f"Motorista: {filters.driver_query or 'TODOS'}",
        f"Tipo: {filters.deviation_type if filters.deviation_type != ALL else 'TODOS'}",
        f"Mês: {filters.month if filters.month != ALL else 'TODOS'}",
        f"Status: {filters.status if filters.status != ALL else 'TODOS'}",
        f"Tratativa: {filters.treatment_action if filters.treatment_action != ALL else 'TODOS'}",
    ]
    return "".join([f"<span class='chip'>{txt}</span>" for txt in chips])


def render_page_header(title: str, breadcrumb: str, filter_summary_html: str = "", export_bytes: Optional[bytes] = None):
    inject_base_styles()
    c1, c2 = st.columns([8, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        if export_bytes is not None:
            st.download_button("Exportar filtrado", data=export_bytes, file_name=EXPORT_FILENAME, mime=XLSX_MIME)
    if filter_summary_html:
        st.markdown(f"<div class='chip-row'>{filter_summary_html}</div>", unsafe_allow_html=True)


def notify(ok: bool, message: str):
    st.session_state["notice"] = ("success" if ok else "error", message)


def replace_rows(records: List[DeviationRecord]):
    # A fresh editor key drops the grid's pending row deltas after the row set changes.
    st.session_state["records"] = records
    st.session_state["editor_version"] = st.session_state.get("editor_version", 0) + 1


def set_records(records: List[DeviationRecord], errors: Optional[list] = None):
    replace_rows(records)
    st.session_state["errors"] = errors or []


@st.cache_resource
def get_store():
    return create_store(get_settings())


@st.cache_data(show_spinner=False)
def dashboard_payloads(records_df: pd.DataFrame, filters: DeviationFilters) -> Dict[str, dict]:
    ctx = prepare_context(filters, records_df)
    return {
        "options": ctx["options"],
        "overview": compute_overview(filters, ctx),
        "drivers": compute_driver_treatment(filters, ctx),
        "evolution": compute_evolution(filters, ctx),
        "filtered": ctx["filtered"],
    }


@st.cache_data(show_spinner=False)
def deck_bytes(records_df: pd.DataFrame, filters: DeviationFilters) -> bytes:
    return build_deck(filters, prepare_context(filters, records_df))


# ---------- UI setup ----------
settings = get_settings()
st.set_page_config(page_title="Gestão de Desvios de Frota", layout="wide")
inject_base_styles()
st.title("Gestão de Desvios de Frota")
st.caption("Importe a planilha de desvios, corrija os registros e acompanhe os indicadores.")

store = get_store()
st.session_state.setdefault("records", [])
st.session_state.setdefault("errors", [])
st.session_state.setdefault("auth_session", None)

# ----- Sidebar: navigation, import/export, cloud -----
with st.sidebar:
    st.markdown("### Navegar")
    current_page = st.radio("Navegar", ["Editor", "Dashboard", "Motoristas", "Evolução por tipo"], index=0)

    st.markdown("---")
    st.markdown("### Planilha")
    upload = st.file_uploader("Upload Excel", type=["xlsx"])
    if upload is not None and st.session_state.get("_last_upload") != (upload.name, upload.size):
        cleaned, errors = normalize(read_workbook(upload.getvalue()))
        set_records(cleaned, errors)
        st.session_state["_last_upload"] = (upload.name, upload.size)
        notify(True, f"{len(cleaned)} registros importados de {upload.name}.")

    records: List[DeviationRecord] = st.session_state["records"]
    if st.button("Tratar Dados", disabled=not records):
        cleaned, errors = normalize(records)
        set_records(cleaned, errors)
        notify(True, "Dados tratados com sucesso!")
        st.rerun()
    if records:
        st.download_button(
            "Salvar e Exportar Geral",
            data=export_workbook(records),
            file_name=EXPORT_FILENAME,
            mime=XLSX_MIME,
        )

    st.markdown("---")
    st.markdown("### Nuvem")
    if not store.configured:
        st.caption("Modo local: Supabase não configurado.")
    elif st.session_state["auth_session"] is None:
        with st.form("login"):
            email = st.text_input("E-mail")
            password = st.text_input("Senha", type="password")
            c_in, c_up = st.columns(2)
            do_sign_in = c_in.form_submit_button("Entrar")
            do_sign_up = c_up.form_submit_button("Criar conta")
        if do_sign_in or do_sign_up:
            try:
                response = store.sign_in(email, password) if do_sign_in else store.sign_up(email, password)
                st.session_state["auth_session"] = getattr(response, "session", None) or response
                set_records(pull_records(store))
                notify(True, "Sessão iniciada.")
            except StoreNotConfiguredError as exc:
                notify(False, str(exc))
            except Exception as exc:
                notify(False, f"Erro de autenticação: {exc}")
            st.rerun()
    else:
        if st.button("Carregar da nuvem"):
            try:
                set_records(pull_records(store))
                notify(True, "Dados carregados da nuvem.")
            except Exception as exc:
                notify(False, f"Erro ao carregar: {exc}")
            st.rerun()
        if st.button("Salvar na nuvem", disabled=not records):
            result = push_records(store, records)
            notify(result.ok, result.message)
        if st.button("Sair"):
            store.sign_out()
            st.session_state["auth_session"] = None
            st.rerun()

    st.markdown("---")
    st.markdown("### Filtros do dashboard")
    options = prepare_context(DeviationFilters(valid_only=True), records)["options"]
    driver_query = st.text_input("Buscar motorista", "")
    deviation_type = st.selectbox("Tipo de desvio", options["deviation_types"])
    month = st.selectbox("Mês", options["months"])
    status = st.selectbox("Status", options["statuses"])
    treatment_action = st.selectbox("Tratativa", options["treatment_actions"])

filters = DeviationFilters(
    driver_query=driver_query,
    deviation_type=deviation_type,
    status=status,
    month=month,
    treatment_action=treatment_action,
    valid_only=True,
    top_n=settings.TOP_DRIVERS_RANKING,
    detail_limit=settings.TOP_DRIVERS_DETAIL,
)

notice = st.session_state.pop("notice", None)
if notice:
    (st.success if notice[0] == "success" else st.error)(notice[1])


def render_editor_page():
    render_page_header("Editor de dados", "Início / Editor")
    records: List[DeviationRecord] = st.session_state["records"]
    c1, c2 = st.columns([2, 8])
    if c1.button("Adicionar linha"):
        replace_rows(add_blank_row(records))
        st.rerun()
    invalid = sum(1 for r in records if not r.is_valid)
    c2.caption(f"{len(records)} registros, {invalid} inválidos. Linhas inválidas ficam visíveis para correção.")

    if not records:
        st.info("Nenhum registro. Faça o upload de uma planilha para começar.")
        return

    columns = ["id"] + list(EDITABLE_FIELDS) + ["year", "month_number", "week", "is_valid"]
    frame = records_to_frame(records)[columns]
    column_config = {col: FIELD_COLUMNS.get(col, col) for col in columns}
    column_config["id"] = None
    column_config["quantity"] = st.column_config.NumberColumn(FIELD_COLUMNS["quantity"], min_value=0, step=1)
    edited = st.data_editor(
        frame,
        column_config=column_config,
        disabled=["year", "month_number", "week", "is_valid"],
        num_rows="dynamic",
        hide_index=True,
        use_container_width=True,
        key=f"editor-{st.session_state.get('editor_version', 0)}",
    )

    edited_records = records_from_frame(edited)
    before = {r.id for r in records}
    after = {r.id for r in edited_records}
    if before == after:
        st.session_state["records"] = edited_records
    else:
        if store.configured and st.session_state["auth_session"] is not None:
            for record_id in before - after:
                edited_records, result = delete_record(store, edited_records, record_id)
                if not result.ok:
                    notify(False, result.message)
        replace_rows(edited_records)
        st.rerun()

    errors = st.session_state.get("errors") or []
    if errors:
        with st.expander(f"Erros de validação ({len(errors)})"):
            st.dataframe(pd.DataFrame([asdict(e) for e in errors]), hide_index=True, use_container_width=True)


def render_dashboard_page(payloads: Dict[str, dict]):
    overview = payloads["overview"]
    filtered = records_from_frame(payloads["filtered"])
    render_page_header(
        "Dashboard",
        "Início / Dashboard",
        format_filter_summary(filters),
        export_bytes=export_workbook(filtered, filtered) if filtered else None,
    )
    if filtered:
        st.download_button(
            "Exportar PPT (gráficos editáveis)",
            data=deck_bytes(records_to_frame(st.session_state["records"]), filters),
            file_name=slides_filename(),
            mime=SLIDES_MIME,
        )
    kpis = overview["kpis"]
    with card("Indicadores"):
        cols = st.columns(5)
        cols[0].metric("Registros", f"{kpis['total_records']:,}")
        cols[1].metric("Total de desvios", f"{kpis['total_deviations']:,}")
        cols[2].metric("% tratado", f"{kpis['percent_treated']:.1f}%")
        cols[3].metric("Motorista com mais desvios", kpis["top_driver"])
        cols[4].metric("Desvio mais frequente", kpis["top_deviation_type"])

    charts = overview["charts"]
    if not charts:
        st.info("Nenhum registro válido para os filtros selecionados.")
        return
    row1 = st.columns(2)
    with row1[0]:
        with card("Desvios por tipo"):
            st.vega_lite_chart(charts["totals_by_type"], use_container_width=True)
    with row1[1]:
        with card(f"Top {filters.top_n} motoristas"):
            st.vega_lite_chart(charts["top_drivers"], use_container_width=True)
    row2 = st.columns(2)
    with row2[0]:
        with card("Tratado x pendente"):
            st.vega_lite_chart(charts["treatment_status"], use_container_width=True)
    with row2[1]:
        with card("Tratativas aplicadas"):
            st.vega_lite_chart(charts["treatment_actions"], use_container_width=True)


def render_drivers_page(payloads: Dict[str, dict]):
    detail = payloads["drivers"]
    render_page_header("Motoristas e tratativas", "Início / Motoristas", format_filter_summary(filters))
    if not detail["rows"]:
        st.info("Nenhum registro válido para os filtros selecionados.")
        return
    with card(f"Top {filters.detail_limit} motoristas"):
        table = pd.DataFrame(detail["rows"])
        table["deviation_types"] = table["deviation_types"].apply(", ".join)
        table["treatment_actions"] = table["treatment_actions"].apply(", ".join)
        table = table.rename(
            columns={
                "driver": "Motorista",
                "treated": "Tratado",
                "pending": "Pendente",
                "total": "Total",
                "deviation_types": "Tipos de desvio",
                "treatment_actions": "Tratativas",
            }
        )
        st.dataframe(table, hide_index=True, use_container_width=True)
    with card("Tratado x pendente por motorista"):
        st.vega_lite_chart(detail["charts"]["treated_vs_pending"], use_container_width=True)


def render_evolution_page(payloads: Dict[str, dict]):
    evolution = payloads["evolution"]
    render_page_header("Evolução mensal por tipo", "Início / Evolução", format_filter_summary(filters))
    if not evolution["types"]:
        st.info("Nenhum registro válido para os filtros selecionados.")
        return
    cols = st.columns(2)
    for i, item in enumerate(evolution["types"]):
        with cols[i % 2]:
            with card(item["type"]):
                st.vega_lite_chart(evolution["charts"][item["type"]], use_container_width=True)
    with card("Detalhamento consolidado"):
        table = pd.DataFrame(evolution["consolidated"]).rename(
            columns={"type": "Tipo de desvio", "total": "Total QTD", "impact_pct": "Impacto %"}
        )
        st.dataframe(table, hide_index=True, use_container_width=True)


if current_page == "Editor":
    render_editor_page()
else:
    payloads = dashboard_payloads(records_to_frame(st.session_state["records"]), filters)
    if current_page == "Dashboard":
        render_dashboard_page(payloads)
    elif current_page == "Motoristas":
        render_drivers_page(payloads)
    else:
        render_evolution_page(payloads)
