from __future__ import annotations

import io
from datetime import date

import pytest
from pptx import Presentation

from deviations.filters import DeviationFilters, prepare_context
from deviations.slides import build_deck, slides_filename


def _open(content: bytes):
    return Presentation(io.BytesIO(content))


def _texts(slide):
    return [shape.text_frame.text for shape in slide.shapes if shape.has_text_frame]


def _charts(slide):
    return [shape.chart for shape in slide.shapes if shape.has_chart]


def _tables(slide):
    return [shape.table for shape in slide.shapes if shape.has_table]


@pytest.fixture()
def deck(sample_records):
    filters = DeviationFilters(valid_only=True, driver_query="", month="ALL")
    content = build_deck(filters, prepare_context(filters, sample_records), generated_on=date(2024, 5, 2))
    return _open(content)


def test_slide_order_and_titles(deck):
    titles = [_texts(slide)[0] for slide in deck.slides]
    assert titles == [
        "RELATÓRIO DE DESVIOS - EDITÁVEL",
        "TOP 10 MOTORISTAS (EDITÁVEL)",
        "ANÁLISE: EXCESSO DE VELOCIDADE",
        "ANÁLISE: FRENAGEM BRUSCA",
        "DETALHAMENTO CONSOLIDADO",
    ]


def test_cover_lists_date_and_filters(deck):
    texts = _texts(deck.slides[0])
    assert "Analíticos de Frota | 02/05/2024" in texts
    assert "Filtros Ativos: TODOS / TODOS" in texts


def test_ranking_chart_is_editable(deck):
    (chart,) = _charts(deck.slides[1])
    categories = list(chart.plots[0].categories)
    values = list(chart.plots[0].series[0].values)
    # Drawn bottom-up, so the leader is the last category.
    assert categories[-1] == "MARIA SOUZA"
    assert dict(zip(categories, values)) == {"MARIA SOUZA": 6, "JOÃO SILVA": 3, "ANA SILVA": 2}


def test_type_slide_has_chart_and_month_table(deck):
    slide = deck.slides[2]
    assert "Total Acumulado: 6" in _texts(slide)
    (chart,) = _charts(slide)
    assert list(chart.plots[0].categories) == ["JANEIRO", "FEVEREIRO"]
    assert list(chart.plots[0].series[0].values) == [4, 2]
    (table,) = _tables(slide)
    assert [table.cell(r, 1).text for r in range(3)] == ["QTD", "4", "2"]


def test_summary_table_has_impact(deck):
    (table,) = _tables(deck.slides[-1])
    rows = [[table.cell(r, c).text for c in range(3)] for r in range(3)]
    assert rows == [
        ["Tipo de Desvio", "Total QTD", "Impacto %"],
        ["EXCESSO DE VELOCIDADE", "6", "54.5%"],
        ["FRENAGEM BRUSCA", "5", "45.5%"],
    ]


def test_empty_selection_still_builds_cover_ranking_and_summary(valid_records):
    filters = DeviationFilters(driver_query="nobody")
    deck = _open(build_deck(filters, prepare_context(filters, valid_records)))
    assert len(deck.slides) == 3
    assert _charts(deck.slides[1]) == []


def test_slides_filename():
    assert slides_filename(date(2024, 5, 2)) == "Apresentacao_Editavel_Desvios_2024-05-02.pptx"
