"""Persistence and authentication collaborators.

The rest of the package only talks to ``DeviationStore``. Two implementations:

- ``SupabaseDeviationStore``: hosted auth + Postgres table through ``supabase-py``.
- ``LocalDeviationStore``: process memory, used when Supabase is not configured
  (local-only mode) and as the test double.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional

from deviations.config import Settings, get_settings
from deviations.data import parse_event_date
from deviations.records import COL_DATE, DeviationRecord, record_from_row


logger = logging.getLogger(__name__)

SessionCallback = Callable[[Optional[Any]], None]


class StoreError(RuntimeError):
    pass


class StoreNotConfiguredError(StoreError):
    def __init__(self, message: str = "Supabase não configurado.") -> None:
        super().__init__(message)


def to_store_row(record: DeviationRecord) -> Dict[str, Any]:
    """Every persisted field except ``is_valid``, with DATA as YYYY-MM-DD when it parses."""
    row = {"id": record.id, **record.to_row()}
    day = parse_event_date(record.date)
    row[COL_DATE] = day.isoformat() if day is not None else record.date
    return row


def from_store_row(row: Dict[str, Any]) -> DeviationRecord:
    # Persisted rows were validated before upload.
    return record_from_row(row, is_valid=True)


class DeviationStore(ABC):
    configured: bool = True

    @abstractmethod
    def fetch_all(self) -> List[DeviationRecord]: ...

    @abstractmethod
    def upsert(self, records: Iterable[DeviationRecord]) -> None: ...

    @abstractmethod
    def delete_by_id(self, record_id: str) -> None: ...

    @abstractmethod
    def sign_in(self, email: str, password: str) -> Any: ...

    @abstractmethod
    def sign_up(self, email: str, password: str) -> Any: ...

    @abstractmethod
    def sign_out(self) -> None: ...

    @abstractmethod
    def on_session_change(self, callback: SessionCallback) -> Any: ...


class SupabaseDeviationStore(DeviationStore):
    def __init__(self, client: Any, table: str = "deviations") -> None:
        self.client = client
        self.table = table

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseDeviationStore":
        from supabase import create_client

        client = create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
        return cls(client, table=settings.SUPABASE_TABLE)

    def fetch_all(self) -> List[DeviationRecord]:
        try:
            response = self.client.table(self.table).select("*").order(COL_DATE, desc=True).execute()
        except Exception:
            logger.error("Erro ao buscar desvios", exc_info=True)
            raise
        rows = response.data or []
        logger.info("fetched %d records from %s", len(rows), self.table)
        return [from_store_row(row) for row in rows]

    def upsert(self, records: Iterable[DeviationRecord]) -> None:
        rows = [to_store_row(r) for r in records]
        if not rows:
            return
        try:
            self.client.table(self.table).upsert(rows, on_conflict="id").execute()
        except Exception:
            logger.error("Erro ao salvar desvios (%d registros)", len(rows), exc_info=True)
            raise
        logger.info("upserted %d records into %s", len(rows), self.table)

    def delete_by_id(self, record_id: str) -> None:
        try:
            self.client.table(self.table).delete().eq("id", record_id).execute()
        except Exception:
            logger.error("Erro ao deletar desvio %s", record_id, exc_info=True)
            raise

    def sign_in(self, email: str, password: str) -> Any:
        return self.client.auth.sign_in_with_password({"email": email, "password": password})

    def sign_up(self, email: str, password: str) -> Any:
        return self.client.auth.sign_up({"email": email, "password": password})

    def sign_out(self) -> None:
        self.client.auth.sign_out()

    def on_session_change(self, callback: SessionCallback) -> Any:
        return self.client.auth.on_auth_state_change(lambda _event, session: callback(session))


class _NoopSubscription:
    def unsubscribe(self) -> None:
        return None


class LocalDeviationStore(DeviationStore):
    """In-memory store: last write wins per id, no authentication."""

    configured = False

    def __init__(self, records: Optional[Iterable[DeviationRecord]] = None) -> None:
        self._rows: Dict[str, Dict[str, Any]] = {}
        if records:
            self.upsert(records)

    def fetch_all(self) -> List[DeviationRecord]:
        rows = sorted(self._rows.values(), key=lambda r: str(r.get(COL_DATE) or ""), reverse=True)
        return [from_store_row(row) for row in rows]

    def upsert(self, records: Iterable[DeviationRecord]) -> None:
        for record in records:
            self._rows[record.id] = to_store_row(record)

    def delete_by_id(self, record_id: str) -> None:
        self._rows.pop(record_id, None)

    def sign_in(self, email: str, password: str) -> Any:
        raise StoreNotConfiguredError()

    def sign_up(self, email: str, password: str) -> Any:
        raise StoreNotConfiguredError()

    def sign_out(self) -> None:
        return None

    def on_session_change(self, callback: SessionCallback) -> Any:
        return _NoopSubscription()


def create_store(settings: Optional[Settings] = None) -> DeviationStore:
    settings = settings or get_settings()
    if settings.supabase_configured:
        return SupabaseDeviationStore.from_settings(settings)
    logger.warning("Supabase not configured; running with a local in-memory store")
    return LocalDeviationStore()
