from __future__ import annotations

import logging
from dataclasses import asdict
import math
from functools import lru_cache
from typing import List

import numpy as np
import pandas as pd
from fastapi import Depends, FastAPI, File, Query, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import (
    CellEditModel,
    CleanRequest,
    CleanResponse,
    CredentialsModel,
    DeviationFiltersModel,
    DeviationRecordModel,
)
from deviations.config import get_settings
from deviations.data import normalize, read_workbook
from deviations.editor import update_cell
from deviations.export import EXPORT_FILENAME, export_workbook, to_csv_bytes
from deviations.filters import DeviationFilters, normalize_filters, prepare_context
from deviations.metrics_drivers import compute_driver_treatment
from deviations.metrics_evolution import compute_evolution
from deviations.metrics_overview import compute_overview
from deviations.records import record_from_dict, records_from_frame
from deviations.slides import SLIDES_MIME, build_deck, slides_filename
from deviations.store import DeviationStore, StoreNotConfiguredError, create_store


settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(title="Fleet Deviations API", version=settings.VERSION)
logger = logging.getLogger(__name__)

EXPORT_FORMATS = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pptx": SLIDES_MIME,
}

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache()
def get_store() -> DeviationStore:
    return create_store(settings)


def _filters_from_model(model: DeviationFiltersModel) -> DeviationFilters:
    raw = model.model_dump()
    if "top_n" not in model.model_fields_set:
        raw["top_n"] = settings.TOP_DRIVERS_RANKING
    if "detail_limit" not in model.model_fields_set:
        raw["detail_limit"] = settings.TOP_DRIVERS_DETAIL
    return normalize_filters(raw)


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception, where: str) -> JSONResponse:
    if isinstance(exc, StoreNotConfiguredError):
        logger.warning("%s: store not configured", where)
        return JSONResponse(
            status_code=503,
            content={"error": str(exc), "type": type(exc).__name__, "configured": False},
        )
    logger.exception("%s failed", where)
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


def _clean_payload(rows) -> dict:
    records, errors = normalize(rows)
    return {"records": [r.to_dict() for r in records], "errors": [asdict(e) for e in errors]}


@app.get("/meta/store")
def meta_store(store: DeviationStore = Depends(get_store)):
    return _json({"configured": bool(store.configured)})


@app.get("/meta/options")
def meta_options(valid_only: bool = Query(default=True), store: DeviationStore = Depends(get_store)):
    try:
        ctx = prepare_context({"valid_only": valid_only}, store.fetch_all())
        return _json(ctx["options"])
    except Exception as exc:
        return _error(exc, "meta_options")


@app.post("/import")
async def import_workbook(
    file: UploadFile = File(...),
    save: bool = Query(default=False),
    store: DeviationStore = Depends(get_store),
):
    try:
        content = await file.read()
        rows = read_workbook(content)
        records, errors = normalize(rows)
        if save:
            store.upsert(records)
        return _json(
            {
                "filename": file.filename,
                "records": [r.to_dict() for r in records],
                "errors": [asdict(e) for e in errors],
                "saved": save,
            }
        )
    except Exception as exc:
        return _error(exc, "import_workbook")


@app.post("/clean", response_model=CleanResponse)
def clean(payload: CleanRequest):
    try:
        return _json(_clean_payload(payload.rows))
    except Exception as exc:
        return _error(exc, "clean")


@app.post("/records/clean", response_model=CleanResponse)
def clean_records(records: List[DeviationRecordModel]):
    """Re-run cleaning over records that were edited in the grid."""
    try:
        current = [record_from_dict(r.model_dump()) for r in records]
        return _json(_clean_payload(current))
    except Exception as exc:
        return _error(exc, "clean_records")


@app.get("/records")
def list_records(store: DeviationStore = Depends(get_store)):
    try:
        return _json({"records": [r.to_dict() for r in store.fetch_all()]})
    except Exception as exc:
        return _error(exc, "list_records")


@app.post("/records")
def save_records(records: List[DeviationRecordModel], store: DeviationStore = Depends(get_store)):
    try:
        to_save = [record_from_dict(r.model_dump()) for r in records]
        store.upsert(to_save)
        return _json({"saved": len(to_save), "ids": [r.id for r in to_save]})
    except Exception as exc:
        return _error(exc, "save_records")


@app.patch("/records/{record_id}")
def edit_record(record_id: str, edit: CellEditModel, store: DeviationStore = Depends(get_store)):
    try:
        current = store.fetch_all()
        if not any(r.id == record_id for r in current):
            return JSONResponse(status_code=404, content={"error": f"record {record_id} not found", "type": "NotFound"})
        updated = [r for r in update_cell(current, record_id, edit.field, edit.value) if r.id == record_id]
        store.upsert(updated)
        return _json({"record": updated[0].to_dict()})
    except ValueError as exc:
        return JSONResponse(status_code=422, content={"error": str(exc), "type": type(exc).__name__})
    except Exception as exc:
        return _error(exc, "edit_record")


@app.delete("/records/{record_id}")
def delete_record(record_id: str, store: DeviationStore = Depends(get_store)):
    try:
        store.delete_by_id(record_id)
        return _json({"deleted": record_id})
    except Exception as exc:
        return _error(exc, "delete_record")


@app.post("/overview")
def overview(filters: DeviationFiltersModel, store: DeviationStore = Depends(get_store)):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, store.fetch_all())
        return _json(compute_overview(f, ctx))
    except Exception as exc:
        return _error(exc, "overview")


@app.post("/drivers")
def drivers(filters: DeviationFiltersModel, store: DeviationStore = Depends(get_store)):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, store.fetch_all())
        return _json(compute_driver_treatment(f, ctx))
    except Exception as exc:
        return _error(exc, "drivers")


@app.post("/evolution")
def evolution(filters: DeviationFiltersModel, store: DeviationStore = Depends(get_store)):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, store.fetch_all())
        return _json(compute_evolution(f, ctx))
    except Exception as exc:
        return _error(exc, "evolution")


@app.post("/export/{fmt}")
def export(fmt: str, filters: DeviationFiltersModel, store: DeviationStore = Depends(get_store)):
    if fmt not in EXPORT_FORMATS:
        return JSONResponse(status_code=404, content={"error": f"unknown export format {fmt}", "type": "NotFound"})
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, store.fetch_all())
        filtered = records_from_frame(ctx["filtered"])

        if fmt == "csv":
            content, filename = to_csv_bytes(filtered), "desvios.csv"
        elif fmt == "pptx":
            content, filename = build_deck(f, ctx), slides_filename()
        else:
            content, filename = export_workbook(records_from_frame(ctx["records"]), filtered), EXPORT_FILENAME
        return Response(
            content=content,
            media_type=EXPORT_FORMATS[fmt],
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
    except Exception as exc:
        return _error(exc, "export")


def _session_payload(response: object) -> dict:
    user = getattr(response, "user", None)
    session = getattr(response, "session", None)
    return {
        "user": {"id": getattr(user, "id", None), "email": getattr(user, "email", None)} if user else None,
        "access_token": getattr(session, "access_token", None) if session else None,
    }


@app.post("/auth/sign-in")
def sign_in(credentials: CredentialsModel, store: DeviationStore = Depends(get_store)):
    try:
        return _json(_session_payload(store.sign_in(credentials.email, credentials.password)))
    except Exception as exc:
        return _error(exc, "sign_in")


@app.post("/auth/sign-up")
def sign_up(credentials: CredentialsModel, store: DeviationStore = Depends(get_store)):
    try:
        return _json(_session_payload(store.sign_up(credentials.email, credentials.password)))
    except Exception as exc:
        return _error(exc, "sign_up")


@app.post("/auth/sign-out")
def sign_out(store: DeviationStore = Depends(get_store)):
    try:
        store.sign_out()
        return _json({"signed_out": True})
    except Exception as exc:
        return _error(exc, "sign_out")
