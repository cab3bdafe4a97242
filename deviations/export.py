from __future__ import annotations

import io
import logging
from typing import Dict, Iterable, Optional

import pandas as pd

from deviations.records import COL_MONTH_NUMBER, COL_QUANTITY, COL_WEEK, COL_YEAR, EXPORT_COLUMNS, DeviationRecord


logger = logging.getLogger(__name__)

SHEET_CURRENT = "BASE_ATUAL"
SHEET_TREATED = "BASE_TRATADA"
EXPORT_FILENAME = "gestao_desvios_atualizada.xlsx"


def export_frame(records: Iterable[DeviationRecord]) -> pd.DataFrame:
    df = pd.DataFrame([r.to_row() for r in records], columns=EXPORT_COLUMNS)
    df[COL_QUANTITY] = pd.to_numeric(df[COL_QUANTITY], errors="coerce").fillna(0).astype("int64")
    for col in (COL_YEAR, COL_MONTH_NUMBER, COL_WEEK):
        df[col] = pd.to_numeric(df[col], errors="coerce").astype("Int64")
    return df


def build_export_sheets(
    current: Iterable[DeviationRecord],
    treated: Optional[Iterable[DeviationRecord]] = None,
) -> Dict[str, pd.DataFrame]:
    """BASE_ATUAL holds every record; BASE_TRATADA only the valid ones of ``treated``."""
    current = list(current)
    treated = current if treated is None else list(treated)
    return {
        SHEET_CURRENT: export_frame(current),
        SHEET_TREATED: export_frame(r for r in treated if r.is_valid),
    }


def to_xlsx_bytes(sheets: Dict[str, pd.DataFrame]) -> bytes:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for name, df in sheets.items():
            df.to_excel(writer, sheet_name=name, index=False)
    logger.info("exported workbook sheets=%s", {name: len(df) for name, df in sheets.items()})
    return buf.getvalue()


def export_workbook(
    current: Iterable[DeviationRecord],
    treated: Optional[Iterable[DeviationRecord]] = None,
) -> bytes:
    return to_xlsx_bytes(build_export_sheets(current, treated))


def to_csv_bytes(records: Iterable[DeviationRecord]) -> bytes:
    return export_frame(records).to_csv(index=False).encode("utf-8")
