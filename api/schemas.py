from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class DeviationFiltersModel(BaseModel):
    driver_query: str = ""
    deviation_type: str = "ALL"
    status: str = "ALL"
    month: str = "ALL"
    treatment_action: str = "ALL"
    valid_only: bool = True
    top_n: int = 10
    detail_limit: int = 50


class DeviationRecordModel(BaseModel):
    id: Optional[str] = None
    driver: str = ""
    deviation_type: str = ""
    quantity: int = 0
    month: str = ""
    treated: str = "NÃO"
    treatment_action: str = ""
    date: str = ""
    status: str = ""
    applied_by: str = ""
    year: Optional[int] = None
    month_number: Optional[int] = None
    week: Optional[int] = None
    is_valid: bool = False


class CleanRequest(BaseModel):
    """Raw spreadsheet-labelled rows ("MOTORISTAS", "QTD", ...) to run through cleaning."""

    rows: List[Dict[str, Any]] = Field(default_factory=list)


class CellEditModel(BaseModel):
    field: str
    value: Any = None


class CredentialsModel(BaseModel):
    email: str
    password: str


class ValidationErrorModel(BaseModel):
    row: int
    field: str
    message: str


class CleanResponse(BaseModel):
    records: List[DeviationRecordModel]
    errors: List[ValidationErrorModel]
