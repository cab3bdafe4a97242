from __future__ import annotations

from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

PALETTE = [
    "#0e4b61",
    "#10b981",
    "#f59e0b",
    "#ef4444",
    "#8b5cf6",
    "#ec4899",
    "#06b6d4",
    "#4ade80",
    "#fb7185",
    "#60a5fa",
]


def to_vega_spec(chart: alt.TopLevelMixin) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def palette_color(index: int) -> str:
    return PALETTE[index % len(PALETTE)]


def _items_frame(items: List[Dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame(items, columns=["name", "value"])


def bar_chart(
    items: List[Dict[str, Any]],
    *,
    title: Optional[str] = None,
    color: str = PALETTE[0],
    horizontal: bool = False,
    height: int = 260,
) -> alt.Chart:
    """Bar chart over ``{name, value}`` items, keeping the items' order."""
    df = _items_frame(items)
    name_enc = alt.Y("name:N", sort=None, title=None) if horizontal else alt.X("name:N", sort=None, title=None)
    value_enc = (
        alt.X("value:Q", title="QTD", axis=alt.Axis(format="d", grid=False))
        if horizontal
        else alt.Y("value:Q", title="QTD", axis=alt.Axis(format="d", gridDash=[4, 4], domain=False, ticks=False))
    )
    base = alt.Chart(df).encode(
        **({"y": name_enc, "x": value_enc} if horizontal else {"x": name_enc, "y": value_enc}),
        tooltip=[alt.Tooltip("name:N", title="Nome"), alt.Tooltip("value:Q", title="QTD", format=",")],
    )
    bars = base.mark_bar(color=color, cornerRadius=4)
    labels = base.mark_text(
        align="left" if horizontal else "center",
        baseline="middle" if horizontal else "bottom",
        dx=3 if horizontal else 0,
        dy=0 if horizontal else -3,
        fontWeight="bold",
        color="#374151",
    ).encode(text=alt.Text("value:Q", format="d"))
    chart = alt.layer(bars, labels).properties(height=height)
    if title:
        chart = chart.properties(title=title)
    return chart


def pie_chart(items: List[Dict[str, Any]], *, title: Optional[str] = None, height: int = 260) -> alt.Chart:
    df = _items_frame(items)
    chart = (
        alt.Chart(df)
        .mark_arc(innerRadius=50)
        .encode(
            theta=alt.Theta("value:Q"),
            color=alt.Color("name:N", title=None, scale=alt.Scale(range=PALETTE)),
            tooltip=[alt.Tooltip("name:N", title="Nome"), alt.Tooltip("value:Q", format=",")],
        )
        .properties(height=height)
    )
    if title:
        chart = chart.properties(title=title)
    return chart
