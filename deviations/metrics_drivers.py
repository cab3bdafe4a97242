from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import altair as alt
import pandas as pd

from deviations.aggregations import driver_treatment_detail
from deviations.charts import PALETTE, to_vega_spec
from deviations.filters import DeviationFilters
from deviations.records import TREATED_NO, TREATED_YES


def compute_driver_treatment(filters: DeviationFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    rows = driver_treatment_detail(df, limit=filters.detail_limit)

    charts: Dict[str, Any] = {}
    if rows:
        long_df = pd.DataFrame(
            [{"driver": r["driver"], "status": TREATED_YES, "value": r["treated"]} for r in rows]
            + [{"driver": r["driver"], "status": TREATED_NO, "value": r["pending"]} for r in rows]
        )
        order = [r["driver"] for r in rows]
        stacked = (
            alt.Chart(long_df)
            .mark_bar()
            .encode(
                y=alt.Y("driver:N", sort=order, title=None),
                x=alt.X("value:Q", stack="zero", title="QTD", axis=alt.Axis(format="d")),
                color=alt.Color(
                    "status:N",
                    title="Tratado",
                    scale=alt.Scale(domain=[TREATED_YES, TREATED_NO], range=[PALETTE[1], PALETTE[3]]),
                ),
                tooltip=["driver", "status", alt.Tooltip("value:Q", format=",")],
            )
            .properties(height=max(200, 18 * len(rows)))
        )
        charts["treated_vs_pending"] = to_vega_spec(stacked)

    return {
        "filters": asdict(filters),
        "kpis": {
            "drivers": len(rows),
            "treated": sum(r["treated"] for r in rows),
            "pending": sum(r["pending"] for r in rows),
        },
        "rows": rows,
        "charts": charts,
    }
