from __future__ import annotations

from csv_merge import PROVENANCE_COLUMN, ColumnConfig, order_records, output_columns


CONFIG = ColumnConfig(columns=["C", "A", "B"])


def test_output_columns_put_provenance_first() -> None:
    assert output_columns(CONFIG) == [PROVENANCE_COLUMN, "C", "A", "B"]


def test_missing_fields_default_to_empty_and_extras_are_dropped() -> None:
    records = [
        {PROVENANCE_COLUMN: "GHEC", "A": "1", "Extra": "x"},
        {"B": "2", "C": "3"},
    ]
    out = order_records(records, CONFIG)
    assert out == [
        {PROVENANCE_COLUMN: "GHEC", "C": "", "A": "1", "B": ""},
        {PROVENANCE_COLUMN: "", "C": "3", "A": "", "B": "2"},
    ]
    assert all(list(r) == output_columns(CONFIG) for r in out)


def test_every_row_has_configured_width() -> None:
    records = [{}, {"A": "1"}, {"Z": "9", "B": None}]
    out = order_records(records, CONFIG)
    assert all(len(r) == len(CONFIG.columns) + 1 for r in out)
    assert out[2]["B"] == ""


def test_order_is_idempotent() -> None:
    records = [{"B": "b", PROVENANCE_COLUMN: "GHES", "Junk": "j"}, {"A": "a"}]
    once = order_records(records, CONFIG)
    twice = order_records(once, CONFIG)
    assert once == twice
    assert [list(r) for r in once] == [list(r) for r in twice]


def test_input_records_are_not_mutated() -> None:
    record = {"A": "1", "Junk": "j"}
    order_records([record], CONFIG)
    assert record == {"A": "1", "Junk": "j"}


def test_empty_input_gives_empty_output() -> None:
    assert order_records([], CONFIG) == []
