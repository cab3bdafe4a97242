"""
tests/test_store.py

Persistence collaborators, cloud sync outcomes and backend configuration.
"""

from __future__ import annotations

import pytest

from deviations.config import Settings
from deviations.store import (
    LocalDeviationStore,
    StoreNotConfiguredError,
    SupabaseDeviationStore,
    create_store,
    from_store_row,
    to_store_row,
)
from deviations.sync import delete_record, pull_records, push_records


def _settings(**values) -> Settings:
    return Settings(_env_file=None, **values)


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


class TestRowMapping:
    def test_store_row_drops_validity_flag(self, record_factory) -> None:
        row = to_store_row(record_factory())
        assert "is_valid" not in row
        assert row["id"]
        assert row["MOTORISTAS"] == "JOÃO SILVA"

    def test_store_row_formats_parsed_dates(self, record_factory) -> None:
        assert to_store_row(record_factory(date="15/03/2024"))["DATA"] == "2024-03-15"
        assert to_store_row(record_factory(date="sem data"))["DATA"] == "sem data"

    def test_fetched_rows_are_valid(self, invalid_record) -> None:
        rec = from_store_row(to_store_row(invalid_record))
        assert rec.is_valid is True
        assert rec.id == invalid_record.id
        assert rec.quantity == 4


# ---------------------------------------------------------------------------
# Local store
# ---------------------------------------------------------------------------


class TestLocalStore:
    def test_is_not_configured(self) -> None:
        assert LocalDeviationStore().configured is False

    def test_fetch_orders_by_date_descending(self, valid_records) -> None:
        store = LocalDeviationStore(valid_records)
        assert [r.date for r in store.fetch_all()] == ["2023-02-20", "2023-02-05", "2023-01-15", "2023-01-10"]

    def test_upsert_is_last_write_wins(self, record_factory) -> None:
        rec = record_factory(quantity=1)
        store = LocalDeviationStore([rec])
        store.upsert([record_factory(id=rec.id, quantity=9)])
        fetched = store.fetch_all()
        assert len(fetched) == 1
        assert fetched[0].quantity == 9

    def test_delete(self, valid_records) -> None:
        store = LocalDeviationStore(valid_records)
        store.delete_by_id(valid_records[0].id)
        store.delete_by_id("missing")
        assert len(store.fetch_all()) == 3

    def test_auth_requires_backend(self) -> None:
        store = LocalDeviationStore()
        with pytest.raises(StoreNotConfiguredError):
            store.sign_in("a@b.com", "secret")
        with pytest.raises(StoreNotConfiguredError):
            store.sign_up("a@b.com", "secret")
        store.sign_out()
        store.on_session_change(lambda session: None).unsubscribe()


# ---------------------------------------------------------------------------
# Supabase store over a fake client
# ---------------------------------------------------------------------------


class TestSupabaseStore:
    def test_round_trip(self, fake_client, valid_records) -> None:
        store = SupabaseDeviationStore(fake_client, table="deviations")
        store.upsert(valid_records)
        fetched = store.fetch_all()
        assert ("upsert", 4, "id") in fake_client.calls
        assert ("order", "DATA", True) in fake_client.calls
        assert [r.date for r in fetched] == ["2023-02-20", "2023-02-05", "2023-01-15", "2023-01-10"]
        assert all(r.is_valid for r in fetched)

    def test_empty_upsert_skips_the_call(self, fake_client) -> None:
        SupabaseDeviationStore(fake_client).upsert([])
        assert fake_client.calls == []

    def test_delete_by_id(self, fake_client, valid_records) -> None:
        store = SupabaseDeviationStore(fake_client)
        store.upsert(valid_records)
        store.delete_by_id(valid_records[0].id)
        assert ("eq", "id", valid_records[0].id) in fake_client.calls
        assert valid_records[0].id not in fake_client.rows

    def test_remote_errors_propagate(self, failing_client, valid_records) -> None:
        store = SupabaseDeviationStore(failing_client)
        with pytest.raises(ConnectionError):
            store.fetch_all()
        with pytest.raises(ConnectionError):
            store.upsert(valid_records)

    def test_auth_calls(self, fake_client) -> None:
        store = SupabaseDeviationStore(fake_client)
        response = store.sign_in("ana@frota.com", "secret")
        assert response.session.access_token == "token-1"
        store.sign_up("novo@frota.com", "secret")
        store.sign_out()
        assert fake_client.auth.calls == [
            ("sign_in", "ana@frota.com"),
            ("sign_up", "novo@frota.com"),
            ("sign_out",),
        ]

    def test_session_change_forwards_session(self, fake_client) -> None:
        seen = []
        SupabaseDeviationStore(fake_client).on_session_change(seen.append)
        fake_client.auth.listeners[0]("SIGNED_IN", "session-1")
        assert seen == ["session-1"]


# ---------------------------------------------------------------------------
# Sync outcomes
# ---------------------------------------------------------------------------


class TestSync:
    def test_push_reports_count(self, valid_records) -> None:
        store = LocalDeviationStore()
        result = push_records(store, valid_records)
        assert result.ok is True
        assert result.count == 4
        assert result.message == "4 registros salvos na nuvem."
        assert len(pull_records(store)) == 4

    def test_push_failure_is_reported(self, failing_client, valid_records) -> None:
        result = push_records(SupabaseDeviationStore(failing_client), valid_records)
        assert result.ok is False
        assert "network down" in result.message

    def test_delete_removes_locally_even_when_remote_fails(self, failing_client, valid_records) -> None:
        store = SupabaseDeviationStore(failing_client)
        remaining, result = delete_record(store, valid_records, valid_records[0].id)
        assert len(remaining) == 3
        assert result.ok is False

    def test_delete_success(self, valid_records) -> None:
        store = LocalDeviationStore(valid_records)
        remaining, result = delete_record(store, valid_records, valid_records[1].id)
        assert result.ok is True
        assert len(remaining) == 3
        assert len(store.fetch_all()) == 3


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "url,key,expected",
    [
        ("https://abc.supabase.co", "anon-key", True),
        ("", "anon-key", False),
        ("https://abc.supabase.co", "", False),
        ("abc.supabase.co", "anon-key", False),
        ("https://COLE_AQUI.supabase.co", "anon-key", False),
        ("https://abc.supabase.co", "YOUR_ANON_KEY", False),
    ],
)
def test_supabase_configured(url, key, expected):
    assert _settings(SUPABASE_URL=url, SUPABASE_KEY=key).supabase_configured is expected


def test_unconfigured_settings_fall_back_to_local_store():
    store = create_store(_settings(SUPABASE_URL="", SUPABASE_KEY=""))
    assert isinstance(store, LocalDeviationStore)
