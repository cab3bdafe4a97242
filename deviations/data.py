from __future__ import annotations

import io
import logging
import math
import numbers
import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any, BinaryIO, Dict, List, Optional, Tuple, Union

import pandas as pd

from deviations.records import (
    COL_APPLIED_BY,
    COL_DATE,
    COL_DEVIATION_TYPE,
    COL_DRIVER,
    COL_MONTH,
    COL_QUANTITY,
    COL_STATUS,
    COL_TREATED,
    COL_TREATMENT_ACTION,
    MONTH_NAMES,
    TREATED_NO,
    DeviationRecord,
    ValidationError,
)


logger = logging.getLogger(__name__)

# Excel serial 25569 is 1970-01-01 (serial 0 is 1899-12-30).
EXCEL_UNIX_EPOCH_SERIAL = 25569
UNIX_EPOCH = datetime(1970, 1, 1)

DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%d/%m/%Y",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d-%m-%Y",
)

FOUR_DIGIT_YEAR = re.compile(r"(?<!\d)\d{4}(?!\d)")
MIN_YEAR = 1900

Row = Mapping[str, Any]


def is_blank(value: Any) -> bool:
    """True for absent cells: None, empty string, NaN/NaT/pd.NA."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def normalize_text(value: Any) -> str:
    if is_blank(value):
        return ""
    return str(value).strip().upper()


def clean_text(value: Any) -> str:
    if is_blank(value):
        return ""
    return str(value).strip()


def coerce_quantity(value: Any) -> int:
    """Coerce a raw QTD cell into a non-negative integer.

    Integral numbers are taken as-is; any other value keeps only its digit
    characters ("3x" -> 3, "1.234" -> 1234). Whatever cannot yield a
    non-negative integer becomes 0.
    """
    if is_blank(value) or isinstance(value, bool):
        return 0
    if isinstance(value, numbers.Integral):
        return max(0, int(value))
    if isinstance(value, numbers.Real):
        number = float(value)
        if not math.isfinite(number) or number < 0:
            return 0
        return int(number)
    digits = re.sub(r"\D", "", str(value))
    return int(digits) if digits else 0


def excel_serial_to_date(serial: Any) -> Optional[date]:
    try:
        days = float(serial)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(days):
        return None
    try:
        moment = UNIX_EPOCH + timedelta(days=days - EXCEL_UNIX_EPOCH_SERIAL)
    except OverflowError:
        return None
    return moment.date()


def parse_event_date(value: Any) -> Optional[date]:
    """Parse a raw DATA cell into a calendar day (UTC), or None."""
    if is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, numbers.Real):
        return excel_serial_to_date(value)

    text = str(value).strip()
    if not text:
        return None
    for fmt in DATE_FORMATS:
        try:
            day = datetime.strptime(text, fmt).date()
        except ValueError:
            continue
        return day if day.year >= MIN_YEAR else None
    # Free-form text must carry its own four-digit year.
    if not FOUR_DIGIT_YEAR.search(text):
        return None
    parsed = pd.to_datetime(text, errors="coerce", utc=True)
    if parsed is None or pd.isna(parsed) or parsed.year < MIN_YEAR:
        return None
    return parsed.date()


def iso_week(day: date) -> int:
    return day.isocalendar()[1]


def month_name(month_number: int) -> str:
    return MONTH_NAMES[month_number - 1]


def normalize_row(row: Row, row_number: int) -> Tuple[DeviationRecord, List[ValidationError]]:
    driver = normalize_text(row.get(COL_DRIVER))
    deviation_type = normalize_text(row.get(COL_DEVIATION_TYPE))
    raw_date = row.get(COL_DATE)
    event_date = parse_event_date(raw_date)

    errors: List[ValidationError] = []
    if not driver:
        errors.append(ValidationError(row=row_number, field=COL_DRIVER))
    if not deviation_type:
        errors.append(ValidationError(row=row_number, field=COL_DEVIATION_TYPE))
    if event_date is None:
        errors.append(ValidationError(row=row_number, field=COL_DATE))

    record = DeviationRecord(
        driver=driver,
        deviation_type=deviation_type,
        quantity=coerce_quantity(row.get(COL_QUANTITY)),
        month=normalize_text(row.get(COL_MONTH)),
        treated=normalize_text(row.get(COL_TREATED)) or TREATED_NO,
        treatment_action=clean_text(row.get(COL_TREATMENT_ACTION)),
        status=clean_text(row.get(COL_STATUS)),
        applied_by=clean_text(row.get(COL_APPLIED_BY)),
    )

    if event_date is None:
        record.date = "" if is_blank(raw_date) else str(raw_date)
        return record, errors

    record.date = event_date.isoformat()
    record.year = event_date.year
    record.month_number = event_date.month
    record.week = iso_week(event_date)
    record.month = record.month or month_name(event_date.month)
    record.is_valid = not errors
    return record, errors


def normalize(raw_rows: Iterable[Union[Row, DeviationRecord]]) -> Tuple[List[DeviationRecord], List[ValidationError]]:
    """Clean loosely-typed rows into canonical records.

    Every input row yields exactly one record, in input order. Rows that fail
    validation are kept with ``is_valid=False`` so they stay editable; the
    returned errors list is informational only. Records already in canonical
    form may be fed back in (re-running the cleaning step).
    """
    if isinstance(raw_rows, (str, bytes)) or not isinstance(raw_rows, Iterable):
        raise TypeError(f"expected an iterable of rows, got {type(raw_rows).__name__}")

    records: List[DeviationRecord] = []
    errors: List[ValidationError] = []
    for row_number, row in enumerate(raw_rows, start=1):
        if isinstance(row, DeviationRecord):
            row = row.to_row()
        if not isinstance(row, Mapping):
            raise TypeError(f"row {row_number} is not a mapping: {type(row).__name__}")
        record, row_errors = normalize_row(row, row_number)
        records.append(record)
        errors.extend(row_errors)

    logger.debug(
        "normalized rows=%d valid=%d invalid=%d errors=%d",
        len(records),
        sum(1 for r in records if r.is_valid),
        sum(1 for r in records if not r.is_valid),
        len(errors),
    )
    return records, errors


# ---------------- Spreadsheet import ----------------
def frame_to_rows(df: pd.DataFrame) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    df = df.astype(object).where(pd.notna(df), None)
    return [{str(k): v for k, v in row.items()} for row in df.to_dict(orient="records")]


def read_workbook(source: Union[str, bytes, BinaryIO], sheet_name: Union[int, str] = 0) -> List[Dict[str, Any]]:
    """Read the first (or named) sheet of an XLSX workbook into raw rows."""
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    df = pd.read_excel(source, sheet_name=sheet_name, engine="openpyxl")
    rows = frame_to_rows(df)
    logger.info("read workbook sheet=%s rows=%d", sheet_name, len(rows))
    return rows
