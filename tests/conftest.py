from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from deviations.records import DeviationRecord


def make_record(**overrides: Any) -> DeviationRecord:
    base = dict(
        driver="JOÃO SILVA",
        deviation_type="EXCESSO DE VELOCIDADE",
        quantity=1,
        month="JANEIRO",
        treated="NÃO",
        date="2023-01-10",
        year=2023,
        month_number=1,
        week=2,
        is_valid=True,
    )
    base.update(overrides)
    return DeviationRecord(**base)


@pytest.fixture()
def record_factory():
    return make_record


@pytest.fixture()
def valid_records() -> List[DeviationRecord]:
    """Four valid records: 11 deviations in total, 5 treated."""
    return [
        make_record(
            driver="JOÃO SILVA",
            deviation_type="EXCESSO DE VELOCIDADE",
            quantity=3,
            month="JANEIRO",
            treated="SIM",
            treatment_action="ADVERTÊNCIA VERBAL",
            date="2023-01-10",
        ),
        make_record(
            driver="MARIA SOUZA",
            deviation_type="FRENAGEM BRUSCA",
            quantity=5,
            month="FEVEREIRO",
            treated="NÃO",
            date="2023-02-05",
            month_number=2,
            week=5,
        ),
        make_record(
            driver="ANA SILVA",
            deviation_type="EXCESSO DE VELOCIDADE",
            quantity=2,
            month="FEVEREIRO",
            treated="SIM",
            treatment_action="ADVERTÊNCIA ESCRITA",
            date="2023-02-20",
            month_number=2,
            week=8,
        ),
        make_record(
            driver="MARIA SOUZA",
            deviation_type="EXCESSO DE VELOCIDADE",
            quantity=1,
            month="JANEIRO",
            treated="NÃO",
            date="2023-01-15",
            week=2,
        ),
    ]


@pytest.fixture()
def invalid_record() -> DeviationRecord:
    return make_record(
        driver="",
        deviation_type="CELULAR",
        quantity=4,
        month="",
        date="",
        year=None,
        month_number=None,
        week=None,
        is_valid=False,
    )


@pytest.fixture()
def sample_records(valid_records, invalid_record) -> List[DeviationRecord]:
    return valid_records + [invalid_record]


@pytest.fixture()
def raw_rows() -> List[Dict[str, Any]]:
    """Spreadsheet rows as they come out of an uploaded workbook."""
    return [
        {
            "MOTORISTAS": " joão silva ",
            "TIPO DE DESVIO": "excesso de velocidade",
            "QTD": "3x",
            "MÊS": None,
            "TRATADO": None,
            "TRATATIVA": None,
            "DATA": 44927,
            "STATUS": "ABERTO",
            "APLICADO POR": "Supervisor",
        },
        {
            "MOTORISTAS": "maria souza",
            "TIPO DE DESVIO": "frenagem brusca",
            "QTD": 2,
            "MÊS": "fevereiro",
            "TRATADO": "sim",
            "TRATATIVA": " Advertência escrita ",
            "DATA": "05/02/2023",
        },
        {
            "MOTORISTAS": "",
            "TIPO DE DESVIO": "celular",
            "QTD": 1,
            "DATA": "sem data",
        },
    ]


# ---------------------------------------------------------------------------
# Fake Supabase client
# ---------------------------------------------------------------------------


class FakeQuery:
    def __init__(self, client: "FakeSupabaseClient", table: str) -> None:
        self.client = client
        self.table = table
        self.op = "select"
        self.payload: Any = None
        self.filters: List[tuple] = []

    def select(self, columns: str) -> "FakeQuery":
        self.client.calls.append(("select", self.table, columns))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.client.calls.append(("order", column, desc))
        return self

    def upsert(self, rows: List[Dict[str, Any]], on_conflict: str = "") -> "FakeQuery":
        self.op, self.payload = "upsert", rows
        self.client.calls.append(("upsert", len(rows), on_conflict))
        return self

    def delete(self) -> "FakeQuery":
        self.op = "delete"
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append((column, value))
        self.client.calls.append(("eq", column, value))
        return self

    def execute(self) -> SimpleNamespace:
        if self.client.fail:
            raise ConnectionError("network down")
        rows = self.client.rows
        if self.op == "upsert":
            for row in self.payload:
                rows[row["id"]] = dict(row)
            return SimpleNamespace(data=list(self.payload))
        if self.op == "delete":
            for column, value in self.filters:
                if column == "id":
                    rows.pop(value, None)
            return SimpleNamespace(data=[])
        ordered = sorted(rows.values(), key=lambda r: str(r.get("DATA") or ""), reverse=True)
        return SimpleNamespace(data=ordered)


class FakeAuth:
    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.listeners: List[Any] = []

    def sign_in_with_password(self, credentials: Dict[str, str]) -> SimpleNamespace:
        self.calls.append(("sign_in", credentials["email"]))
        user = SimpleNamespace(id="user-1", email=credentials["email"])
        return SimpleNamespace(user=user, session=SimpleNamespace(access_token="token-1"))

    def sign_up(self, credentials: Dict[str, str]) -> SimpleNamespace:
        self.calls.append(("sign_up", credentials["email"]))
        return SimpleNamespace(user=SimpleNamespace(id="user-2", email=credentials["email"]), session=None)

    def sign_out(self) -> None:
        self.calls.append(("sign_out",))

    def on_auth_state_change(self, listener) -> SimpleNamespace:
        self.listeners.append(listener)
        return SimpleNamespace(unsubscribe=lambda: None)


class FakeSupabaseClient:
    """Just enough of ``supabase.Client`` for the store: chained table queries and auth."""

    def __init__(self, fail: bool = False) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.fail = fail
        self.auth = FakeAuth()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


@pytest.fixture()
def fake_client() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture()
def failing_client() -> FakeSupabaseClient:
    return FakeSupabaseClient(fail=True)
