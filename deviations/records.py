from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd


COL_DRIVER = "MOTORISTAS"
COL_DEVIATION_TYPE = "TIPO DE DESVIO"
COL_QUANTITY = "QTD"
COL_MONTH = "MÊS"
COL_TREATED = "TRATADO"
COL_TREATMENT_ACTION = "TRATATIVA"
COL_DATE = "DATA"
COL_STATUS = "STATUS"
COL_APPLIED_BY = "APLICADO POR"
COL_YEAR = "ANO"
COL_MONTH_NUMBER = "MES_NUM"
COL_WEEK = "SEMANA"

# Spreadsheet label -> record attribute, in export column order.
COLUMN_FIELDS = {
    COL_DRIVER: "driver",
    COL_DEVIATION_TYPE: "deviation_type",
    COL_QUANTITY: "quantity",
    COL_MONTH: "month",
    COL_TREATED: "treated",
    COL_TREATMENT_ACTION: "treatment_action",
    COL_DATE: "date",
    COL_STATUS: "status",
    COL_APPLIED_BY: "applied_by",
    COL_YEAR: "year",
    COL_MONTH_NUMBER: "month_number",
    COL_WEEK: "week",
}
FIELD_COLUMNS = {v: k for k, v in COLUMN_FIELDS.items()}
EXPORT_COLUMNS = list(COLUMN_FIELDS)
IMPORT_COLUMNS = EXPORT_COLUMNS[:9]

TREATED_YES = "SIM"
TREATED_NO = "NÃO"

MONTH_NAMES = [
    "JANEIRO",
    "FEVEREIRO",
    "MARCO",
    "ABRIL",
    "MAIO",
    "JUNHO",
    "JULHO",
    "AGOSTO",
    "SETEMBRO",
    "OUTUBRO",
    "NOVEMBRO",
    "DEZEMBRO",
]
MONTH_NUMBERS = {name: i for i, name in enumerate(MONTH_NAMES, start=1)}

REQUIRED_FIELD_MESSAGE = "Campo obrigatório"


def new_record_id() -> str:
    return str(uuid.uuid4())


@dataclass
class DeviationRecord:
    """One driver deviation event.

    ``year``, ``month_number`` and ``week`` are only filled for records whose
    ``date`` parsed to a calendar day.
    """

    id: str = field(default_factory=new_record_id)
    driver: str = ""
    deviation_type: str = ""
    quantity: int = 0
    month: str = ""
    treated: str = TREATED_NO
    treatment_action: str = ""
    date: str = ""
    status: str = ""
    applied_by: str = ""
    year: Optional[int] = None
    month_number: Optional[int] = None
    week: Optional[int] = None
    is_valid: bool = False

    @property
    def is_treated(self) -> bool:
        return self.treated == TREATED_YES

    def to_row(self) -> Dict[str, Any]:
        """Spreadsheet-labelled row in export column order."""
        return {col: getattr(self, attr) for col, attr in COLUMN_FIELDS.items()}

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ValidationError:
    row: int
    field: str
    message: str = REQUIRED_FIELD_MESSAGE


RECORD_FIELDS = [f.name for f in fields(DeviationRecord)]


def blank_record() -> DeviationRecord:
    """Template row used by the editor's "add row" action."""
    return DeviationRecord(treated=TREATED_NO, quantity=0, is_valid=False)


def records_to_frame(records: Iterable[DeviationRecord]) -> pd.DataFrame:
    rows = [r.to_dict() for r in records]
    if not rows:
        return pd.DataFrame(columns=RECORD_FIELDS)
    return pd.DataFrame(rows, columns=RECORD_FIELDS)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or pd.isna(value):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> str:
    if value is None or pd.isna(value):
        return ""
    return str(value)


def record_from_dict(data: Dict[str, Any]) -> DeviationRecord:
    """Build a record from snake_case attributes, tolerating pandas NA values."""
    qty = _optional_int(data.get("quantity"))
    valid = data.get("is_valid")
    return DeviationRecord(
        id=_text(data.get("id")) or new_record_id(),
        driver=_text(data.get("driver")),
        deviation_type=_text(data.get("deviation_type")),
        quantity=max(0, qty or 0),
        month=_text(data.get("month")),
        treated=_text(data.get("treated")) or TREATED_NO,
        treatment_action=_text(data.get("treatment_action")),
        date=_text(data.get("date")),
        status=_text(data.get("status")),
        applied_by=_text(data.get("applied_by")),
        year=_optional_int(data.get("year")),
        month_number=_optional_int(data.get("month_number")),
        week=_optional_int(data.get("week")),
        is_valid=bool(valid) if valid is not None and not pd.isna(valid) else False,
    )


def records_from_frame(df: pd.DataFrame) -> List[DeviationRecord]:
    if df.empty:
        return []
    return [record_from_dict(row) for row in df.to_dict(orient="records")]


def record_from_row(row: Dict[str, Any], *, is_valid: bool = False) -> DeviationRecord:
    """Build a record from a spreadsheet-labelled row without cleaning it."""
    data: Dict[str, Any] = {attr: row.get(col) for col, attr in COLUMN_FIELDS.items()}
    data["id"] = row.get("id")
    data["is_valid"] = is_valid
    return record_from_dict(data)
