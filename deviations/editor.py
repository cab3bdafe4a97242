"""Grid edit operations.

Edits replace one field of one record and never re-run validation: a row only
becomes valid again when the whole set goes back through ``data.normalize``.
All functions return a new list and leave the input untouched.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Iterable, List

from deviations.data import coerce_quantity
from deviations.records import DeviationRecord, blank_record


EDITABLE_FIELDS = (
    "driver",
    "deviation_type",
    "quantity",
    "month",
    "treated",
    "treatment_action",
    "date",
    "status",
    "applied_by",
)


def add_blank_row(records: Iterable[DeviationRecord]) -> List[DeviationRecord]:
    return [blank_record()] + list(records)


def _cell_value(field: str, value: Any) -> Any:
    if field == "quantity":
        return coerce_quantity(value)
    text = "" if value is None else str(value)
    if field == "month":
        return text.upper()
    return text


def update_cell(records: Iterable[DeviationRecord], record_id: str, field: str, value: Any) -> List[DeviationRecord]:
    if field not in EDITABLE_FIELDS:
        raise ValueError(f"field {field!r} is not editable")
    new_value = _cell_value(field, value)
    return [replace(r, **{field: new_value}) if r.id == record_id else r for r in records]


def remove_row(records: Iterable[DeviationRecord], record_id: str) -> List[DeviationRecord]:
    return [r for r in records if r.id != record_id]
