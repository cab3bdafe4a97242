"""Editable slide deck of the dashboard.

Slides, in order: cover, top drivers ranking, one slide per deviation type
(monthly evolution chart plus a month/QTD table), consolidated detail table.
Charts are native PowerPoint charts so the numbers stay editable.
"""

from __future__ import annotations

import io
import logging
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd
from pptx import Presentation
from pptx.chart.data import CategoryChartData
from pptx.dml.color import RGBColor
from pptx.enum.chart import XL_CHART_TYPE, XL_LABEL_POSITION
from pptx.enum.text import PP_ALIGN
from pptx.util import Inches, Pt

from deviations.aggregations import impact_table, monthly_evolution, top_entries, total_quantity, totals_by_driver
from deviations.charts import PALETTE, palette_color
from deviations.filters import ALL, DeviationFilters

logger = logging.getLogger(__name__)

SLIDES_MIME = "application/vnd.openxmlformats-officedocument.presentationml.presentation"

COVER_TITLE = "RELATÓRIO DE DESVIOS - EDITÁVEL"
RANKING_TITLE = "TOP {n} MOTORISTAS (EDITÁVEL)"
TYPE_TITLE = "ANÁLISE: {type}"
SUMMARY_TITLE = "DETALHAMENTO CONSOLIDADO"

BRAND = RGBColor.from_string(PALETTE[0].lstrip("#").upper())
WHITE = RGBColor.from_string("FFFFFF")
MUTED = RGBColor.from_string("666666")

# 16:9 widescreen
SLIDE_WIDTH = Inches(13.333)
SLIDE_HEIGHT = Inches(7.5)


def slides_filename(day: Optional[date] = None) -> str:
    day = day or date.today()
    return f"Apresentacao_Editavel_Desvios_{day.isoformat()}.pptx"


def _rgb(hex_color: str) -> RGBColor:
    return RGBColor.from_string(hex_color.lstrip("#").upper())


def _add_text(slide, text: str, left, top, width, height, *, size: int, color: RGBColor,
              bold: bool = False, align=PP_ALIGN.LEFT):
    box = slide.shapes.add_textbox(left, top, width, height)
    para = box.text_frame.paragraphs[0]
    para.text = text
    para.alignment = align
    para.font.size = Pt(size)
    para.font.bold = bold
    para.font.color.rgb = color
    return box


def _add_bar_chart(slide, items: List[Dict[str, Any]], *, series_name: str, horizontal: bool,
                   color: str, top, height):
    chart_data = CategoryChartData()
    chart_data.categories = [i["name"] for i in items]
    chart_data.add_series(series_name, [i["value"] for i in items])
    chart_type = XL_CHART_TYPE.BAR_CLUSTERED if horizontal else XL_CHART_TYPE.COLUMN_CLUSTERED
    chart = slide.shapes.add_chart(chart_type, Inches(0.5), top, Inches(12.3), height, chart_data).chart

    chart.has_legend = False
    chart.value_axis.has_major_gridlines = not horizontal
    plot = chart.plots[0]
    plot.has_data_labels = True
    plot.data_labels.font.size = Pt(10)
    plot.data_labels.position = XL_LABEL_POSITION.OUTSIDE_END
    fill = plot.series[0].format.fill
    fill.solid()
    fill.fore_color.rgb = _rgb(color)
    return chart


def _add_table(slide, rows: List[List[str]], top, *, font_size: int):
    shape = slide.shapes.add_table(len(rows), len(rows[0]), Inches(0.5), top, Inches(12.3), Inches(0.3) * len(rows))
    table = shape.table
    for r, row in enumerate(rows):
        for c, value in enumerate(row):
            cell = table.cell(r, c)
            cell.text = value
            for para in cell.text_frame.paragraphs:
                para.font.size = Pt(font_size)
                para.font.bold = r == 0
    return table


def _cover(prs, filters: DeviationFilters, generated_on: date) -> None:
    slide = prs.slides.add_slide(prs.slide_layouts[6])
    slide.background.fill.solid()
    slide.background.fill.fore_color.rgb = BRAND
    full = prs.slide_width
    _add_text(slide, COVER_TITLE, 0, Inches(2), full, Inches(1), size=36, color=WHITE, bold=True, align=PP_ALIGN.CENTER)
    _add_text(
        slide,
        f"Analíticos de Frota | {generated_on.strftime('%d/%m/%Y')}",
        0, Inches(3), full, Inches(0.6),
        size=18, color=RGBColor.from_string("CCCCCC"), align=PP_ALIGN.CENTER,
    )
    driver = filters.driver_query or "TODOS"
    month = filters.month if filters.month != ALL else "TODOS"
    _add_text(slide, f"Filtros Ativos: {driver} / {month}", 0, Inches(5), full, Inches(0.5),
              size=12, color=WHITE, align=PP_ALIGN.CENTER)


def _ranking(prs, top_drivers: List[Dict[str, Any]], n: int) -> None:
    slide = prs.slides.add_slide(prs.slide_layouts[6])
    _add_text(slide, RANKING_TITLE.format(n=n), Inches(0.5), Inches(0.4), Inches(12), Inches(0.7),
              size=24, color=BRAND, bold=True)
    if not top_drivers:
        _add_text(slide, "Sem registros para os filtros.", Inches(0.5), Inches(1.4), Inches(12), Inches(0.5),
                  size=14, color=MUTED)
        return
    # Bar charts draw the first category at the bottom.
    _add_bar_chart(slide, list(reversed(top_drivers)), series_name="QTD Desvios", horizontal=True,
                   color=PALETTE[0], top=Inches(1.2), height=Inches(5.8))


def _type_slide(prs, item: Dict[str, Any], index: int) -> None:
    slide = prs.slides.add_slide(prs.slide_layouts[6])
    _add_text(slide, TYPE_TITLE.format(type=item["type"]), Inches(0.5), Inches(0.4), Inches(8.5), Inches(0.7),
              size=20, color=BRAND, bold=True)
    _add_text(slide, f"Total Acumulado: {item['total']}", Inches(9), Inches(0.4), Inches(3.8), Inches(0.7),
              size=14, color=MUTED, align=PP_ALIGN.RIGHT)
    if not item["evolution"]:
        return
    _add_bar_chart(slide, item["evolution"], series_name="Quantidade", horizontal=False,
                   color=palette_color(index), top=Inches(1.2), height=Inches(4))
    rows = [["Mês", "QTD"]] + [[e["name"], str(e["value"])] for e in item["evolution"]]
    _add_table(slide, rows, Inches(5.4), font_size=9)


def _summary(prs, consolidated: List[Dict[str, Any]]) -> None:
    slide = prs.slides.add_slide(prs.slide_layouts[6])
    _add_text(slide, SUMMARY_TITLE, Inches(0.5), Inches(0.5), Inches(12), Inches(0.7),
              size=24, color=BRAND, bold=True)
    rows = [["Tipo de Desvio", "Total QTD", "Impacto %"]] + [
        [row["type"], str(row["total"]), f"{row['impact_pct']:.1f}%"] for row in consolidated
    ]
    _add_table(slide, rows, Inches(1.2), font_size=10)


def build_deck(filters: DeviationFilters, ctx: Dict[str, Any], *, generated_on: Optional[date] = None) -> bytes:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    months: List[str] = ctx.get("months", []) or []

    top_drivers = top_entries(totals_by_driver(df), filters.top_n)
    per_type = monthly_evolution(df, months)
    consolidated = impact_table(per_type, total_quantity(df))

    prs = Presentation()
    prs.slide_width = SLIDE_WIDTH
    prs.slide_height = SLIDE_HEIGHT

    _cover(prs, filters, generated_on or date.today())
    _ranking(prs, top_drivers, filters.top_n)
    for i, item in enumerate(per_type):
        _type_slide(prs, item, i)
    _summary(prs, consolidated)

    buf = io.BytesIO()
    prs.save(buf)
    logger.info("built slide deck slides=%d types=%d", len(prs.slides), len(per_type))
    return buf.getvalue()
