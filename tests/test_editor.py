from __future__ import annotations

import pytest

from deviations.editor import add_blank_row, remove_row, update_cell


def test_blank_row_is_prepended(valid_records):
    out = add_blank_row(valid_records)
    assert len(out) == len(valid_records) + 1
    blank = out[0]
    assert blank.treated == "NÃO"
    assert blank.quantity == 0
    assert blank.is_valid is False
    assert blank.id not in {r.id for r in valid_records}
    assert out[1:] == valid_records


@pytest.mark.parametrize(
    "field,value,expected",
    [
        ("quantity", "7x", 7),
        ("quantity", 4.0, 4),
        ("month", "marco", "MARCO"),
        ("driver", "novo motorista", "novo motorista"),
        ("date", None, ""),
    ],
)
def test_update_cell_coerces_value(valid_records, field, value, expected):
    target = valid_records[1]
    out = update_cell(valid_records, target.id, field, value)
    assert getattr(out[1], field) == expected


def test_update_cell_does_not_revalidate_or_mutate(valid_records):
    target = valid_records[0]
    out = update_cell(valid_records, target.id, "driver", "")
    assert out[0].driver == ""
    assert out[0].is_valid is True
    assert valid_records[0].driver == "JOÃO SILVA"
    assert out[1:] == valid_records[1:]


def test_update_cell_rejects_derived_fields(valid_records):
    with pytest.raises(ValueError):
        update_cell(valid_records, valid_records[0].id, "is_valid", False)
    with pytest.raises(ValueError):
        update_cell(valid_records, valid_records[0].id, "week", 3)


def test_remove_row(valid_records):
    out = remove_row(valid_records, valid_records[2].id)
    assert [r.id for r in out] == [r.id for r in valid_records if r is not valid_records[2]]
    assert remove_row(valid_records, "missing") == valid_records
