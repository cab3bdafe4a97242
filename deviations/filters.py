from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Union

import pandas as pd

from deviations.records import MONTH_NUMBERS, DeviationRecord, records_to_frame


ALL = "ALL"

CHOICE_FIELDS = ("deviation_type", "status", "month", "treatment_action")


@dataclass(frozen=True)
class DeviationFilters:
    driver_query: str = ""
    deviation_type: str = ALL
    status: str = ALL
    month: str = ALL
    treatment_action: str = ALL
    valid_only: bool = False
    top_n: int = 10
    detail_limit: int = 50


def _choice(value: object) -> str:
    if value is None:
        return ALL
    s = str(value)
    if not s.strip() or s.strip() == ALL:
        return ALL
    return s


def _bounded_int(value: object, default: int, upper: int) -> int:
    try:
        out = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        out = default
    return max(1, min(upper, out))


def normalize_filters(raw: dict) -> DeviationFilters:
    return DeviationFilters(
        driver_query=str(raw.get("driver_query") or "").strip(),
        deviation_type=_choice(raw.get("deviation_type")),
        status=_choice(raw.get("status")),
        month=_choice(raw.get("month")),
        treatment_action=_choice(raw.get("treatment_action")),
        valid_only=bool(raw.get("valid_only", False)),
        top_n=_bounded_int(raw.get("top_n", 10), 10, 200),
        detail_limit=_bounded_int(raw.get("detail_limit", 50), 50, 1000),
    )


def apply_filters(df: pd.DataFrame, filters: DeviationFilters) -> pd.DataFrame:
    """Keep rows matching every criterion that is not the ALL/empty sentinel."""
    out = df
    if out.empty:
        return out
    if filters.valid_only and "is_valid" in out.columns:
        out = out[out["is_valid"].eq(True)]

    q = filters.driver_query.strip().lower()
    if q:
        out = out[out["driver"].astype(str).str.lower().str.contains(q, regex=False, na=False)]

    for attr in CHOICE_FIELDS:
        value = getattr(filters, attr)
        if value != ALL:
            out = out[out[attr].astype(str) == value]
    return out


def month_sort_key(label: str):
    # Known month names follow the calendar; anything else goes last.
    return (MONTH_NUMBERS.get(label, 13), label)


def _distinct(df: pd.DataFrame, col: str) -> List[str]:
    if df.empty or col not in df.columns:
        return []
    values = df[col].dropna().astype(str)
    return sorted({v for v in values if v.strip()})


def filter_options(df: pd.DataFrame) -> Dict[str, List[str]]:
    """Dropdown values for every filterable field, each led by the ALL sentinel."""
    months = sorted(_distinct(df, "month"), key=month_sort_key)
    return {
        "drivers": [ALL] + _distinct(df, "driver"),
        "deviation_types": [ALL] + _distinct(df, "deviation_type"),
        "statuses": [ALL] + _distinct(df, "status"),
        "months": [ALL] + months,
        "treatment_actions": [ALL] + _distinct(df, "treatment_action"),
    }


def prepare_context(
    filters: Union[dict, DeviationFilters],
    records: Union[Iterable[DeviationRecord], pd.DataFrame],
) -> Dict[str, Any]:
    base = records.copy() if isinstance(records, pd.DataFrame) else records_to_frame(records)
    filt = filters if isinstance(filters, DeviationFilters) else normalize_filters(filters)

    # Options and the month vocabulary come from the unfiltered scope so the
    # dropdowns keep listing every value while other filters are applied.
    scope = base
    if filt.valid_only and not base.empty:
        scope = base[base["is_valid"].eq(True)]
    options = filter_options(scope)
    filtered = apply_filters(base, filt)

    return {
        "filters": filt,
        "records": base,
        "scope": scope,
        "filtered": filtered,
        "options": options,
        "months": options["months"][1:],
    }
