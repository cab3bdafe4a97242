"""Cloud sync between the local record set and the store.

Local state is updated first (optimistically); the remote outcome comes back
as a ``SyncResult`` for the UI to report. Failures are neither retried nor
rolled back, and overlapping saves resolve last-write-wins on the server.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from deviations.editor import remove_row
from deviations.records import DeviationRecord
from deviations.store import DeviationStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    ok: bool
    message: str
    count: int = 0


def pull_records(store: DeviationStore) -> List[DeviationRecord]:
    """Fetch the full remote set; callers replace local state with it as a whole."""
    return store.fetch_all()


def push_records(store: DeviationStore, records: Iterable[DeviationRecord]) -> SyncResult:
    records = list(records)
    try:
        store.upsert(records)
    except Exception as exc:
        logger.exception("push_records failed")
        return SyncResult(ok=False, message=f"Erro ao salvar: {exc}")
    return SyncResult(ok=True, message=f"{len(records)} registros salvos na nuvem.", count=len(records))


def delete_record(
    store: DeviationStore,
    records: Iterable[DeviationRecord],
    record_id: str,
) -> Tuple[List[DeviationRecord], SyncResult]:
    remaining = remove_row(records, record_id)
    try:
        store.delete_by_id(record_id)
    except Exception as exc:
        logger.exception("delete_record failed")
        return remaining, SyncResult(ok=False, message=f"Erro ao excluir: {exc}")
    return remaining, SyncResult(ok=True, message="Registro excluído.", count=1)
