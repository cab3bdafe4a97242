from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import pandas as pd

from deviations.aggregations import impact_table, monthly_evolution, total_quantity
from deviations.charts import bar_chart, palette_color, to_vega_spec
from deviations.filters import DeviationFilters


def compute_evolution(filters: DeviationFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    months: List[str] = ctx.get("months", []) or []

    per_type = monthly_evolution(df, months)
    total = total_quantity(df)

    charts: Dict[str, Any] = {}
    for i, item in enumerate(per_type):
        chart = bar_chart(item["evolution"], title=f"{item['type']} (total {item['total']})", color=palette_color(i))
        charts[item["type"]] = to_vega_spec(chart)

    return {
        "filters": asdict(filters),
        "months": months,
        "types": per_type,
        "consolidated": impact_table(per_type, total),
        "total_deviations": total,
        "charts": charts,
    }
