from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import pandas as pd

from deviations.aggregations import (
    percent_treated,
    top_entries,
    total_quantity,
    totals_by_deviation_type,
    totals_by_driver,
    treatment_action_distribution,
    treatment_status_breakdown,
)
from deviations.charts import bar_chart, pie_chart, to_vega_spec
from deviations.filters import DeviationFilters


def compute_overview(filters: DeviationFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())

    by_type = totals_by_deviation_type(df)
    by_driver = totals_by_driver(df)
    top_drivers = top_entries(by_driver, filters.top_n)
    status = treatment_status_breakdown(df)
    actions = treatment_action_distribution(df)

    kpis = {
        "total_records": int(len(df)),
        "total_deviations": total_quantity(df),
        "percent_treated": percent_treated(df),
        "top_driver": by_driver[0]["name"] if by_driver else "-",
        "top_deviation_type": by_type[0]["name"] if by_type else "-",
    }

    charts: Dict[str, Any] = {}
    if not df.empty:
        charts = {
            "totals_by_type": to_vega_spec(bar_chart(by_type, title="Desvios por tipo")),
            "top_drivers": to_vega_spec(
                bar_chart(top_drivers, title=f"Top {filters.top_n} motoristas", horizontal=True, height=320)
            ),
            "treatment_status": to_vega_spec(pie_chart(status, title="Tratado x pendente")),
            "treatment_actions": to_vega_spec(pie_chart(actions, title="Tratativas aplicadas")),
        }

    return {
        "filters": asdict(filters),
        "kpis": kpis,
        "totals_by_type": by_type,
        "totals_by_driver": by_driver,
        "top_drivers": top_drivers,
        "treatment_status": status,
        "treatment_actions": actions,
        "charts": charts,
    }
