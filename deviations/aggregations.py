"""Aggregations behind the dashboard.

Every function takes an already-filtered records frame (see
``deviations.filters.apply_filters``) and returns plain lists of
``{"name": ..., "value": ...}`` items or nested dicts, ready for charts and
tables. Rankings sort descending by value and keep first-encounter order on ties.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

import pandas as pd

from deviations.records import TREATED_NO, TREATED_YES


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def quantity_series(df: pd.DataFrame) -> pd.Series:
    if df.empty or "quantity" not in df.columns:
        return pd.Series(dtype="int64")
    qty = pd.to_numeric(df["quantity"], errors="coerce").fillna(0)
    return qty.clip(lower=0).astype("int64")


def _key_series(df: pd.DataFrame, col: str, *, normalize: bool = False) -> pd.Series:
    keys = df[col].fillna("").astype(str)
    if normalize:
        keys = keys.str.strip().str.upper()
    return keys


def _ranked(grouped: pd.Series) -> List[Dict[str, Any]]:
    grouped = grouped.sort_values(ascending=False, kind="stable")
    return [{"name": str(k), "value": int(v)} for k, v in grouped.items()]


def total_quantity(df: pd.DataFrame) -> int:
    return int(quantity_series(df).sum())


def totals_by_deviation_type(df: pd.DataFrame) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    keys = _key_series(df, "deviation_type", normalize=True)
    return _ranked(quantity_series(df).groupby(keys, sort=False).sum())


def totals_by_driver(df: pd.DataFrame) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    keys = _key_series(df, "driver")
    return _ranked(quantity_series(df).groupby(keys, sort=False).sum())


def top_entries(items: List[Dict[str, Any]], n: int) -> List[Dict[str, Any]]:
    return items[: max(0, n)]


def treated_mask(df: pd.DataFrame) -> pd.Series:
    return df["treated"].fillna("").astype(str).eq(TREATED_YES)


def treatment_status_breakdown(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Quantity split into SIM / NÃO. Any value other than SIM counts as pending."""
    if df.empty:
        return [{"name": TREATED_YES, "value": 0}, {"name": TREATED_NO, "value": 0}]
    qty = quantity_series(df)
    mask = treated_mask(df)
    return [
        {"name": TREATED_YES, "value": int(qty[mask].sum())},
        {"name": TREATED_NO, "value": int(qty[~mask].sum())},
    ]


def percent_treated(df: pd.DataFrame) -> float:
    total = total_quantity(df)
    if total == 0:
        return 0.0
    treated = int(quantity_series(df)[treated_mask(df)].sum())
    return round_half_up(100.0 * treated / total, 1)


def treatment_action_distribution(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Number of records per treatment action (a record count, not a quantity sum)."""
    if df.empty:
        return []
    actions = _key_series(df, "treatment_action").str.strip()
    actions = actions[actions != ""]
    if actions.empty:
        return []
    return _ranked(actions.groupby(actions, sort=False).size())


def _distinct_in_order(values: pd.Series) -> List[str]:
    seen: List[str] = []
    for v in values.fillna("").astype(str):
        if v and v not in seen:
            seen.append(v)
    return seen


def driver_treatment_detail(df: pd.DataFrame, limit: int = 50) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    keys = _key_series(df, "driver")
    qty = quantity_series(df)
    mask = treated_mask(df)
    groups = {str(k): idx for k, idx in df.groupby(keys, sort=False).groups.items()}

    rows: List[Dict[str, Any]] = []
    for item in top_entries(totals_by_driver(df), limit):
        idx = groups[item["name"]]
        group = df.loc[idx]
        group_mask = mask.loc[idx]
        rows.append(
            {
                "driver": item["name"],
                "treated": int(qty.loc[idx][group_mask].sum()),
                "pending": int(qty.loc[idx][~group_mask].sum()),
                "total": item["value"],
                "deviation_types": _distinct_in_order(group["deviation_type"]),
                "treatment_actions": _distinct_in_order(group.loc[group_mask, "treatment_action"].astype(str).str.strip()),
            }
        )
    return rows


def monthly_evolution(df: pd.DataFrame, months: List[str]) -> List[Dict[str, Any]]:
    """Quantity per (deviation type, month) over the given month vocabulary."""
    if df.empty:
        return []
    types = _key_series(df, "deviation_type", normalize=True)
    month_keys = _key_series(df, "month")
    pivot = quantity_series(df).groupby([types, month_keys]).sum()

    out: List[Dict[str, Any]] = []
    for dev_type in sorted(types.unique()):
        evolution = [{"name": m, "value": int(pivot.get((dev_type, m), 0))} for m in months]
        out.append(
            {
                "type": dev_type,
                "evolution": evolution,
                "total": sum(e["value"] for e in evolution),
            }
        )
    return out


def impact_table(evolution: List[Dict[str, Any]], total: int) -> List[Dict[str, Any]]:
    denominator = total or 1
    return [
        {
            "type": item["type"],
            "total": item["total"],
            "impact_pct": round_half_up(100.0 * item["total"] / denominator, 1),
        }
        for item in evolution
    ]
