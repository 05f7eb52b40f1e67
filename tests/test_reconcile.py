from __future__ import annotations

from csv_merge import (
    PROVENANCE_COLUMN,
    ColumnConfig,
    filter_record,
    reconcile_columns,
    tag_record,
)


CONFIG = ColumnConfig(
    columns=["Org_Name", "Repo_Name"],
    columns_to_exclude=["Full_URL"],
)


def test_matching_headers_produce_nothing() -> None:
    rec = reconcile_columns("ghec_a.csv", ["Repo_Name", "Org_Name"], CONFIG)
    assert rec.unexpected == []
    assert rec.excluded == []
    assert rec.warnings == []
    assert rec.notes == []


def test_unexpected_columns_give_one_warning_in_header_order() -> None:
    rec = reconcile_columns("ghes_b.csv", ["Zeta", "Org_Name", "Alpha", "Repo_Name"], CONFIG)
    assert rec.unexpected == ["Zeta", "Alpha"]
    assert len(rec.warnings) == 1
    assert "ghes_b.csv" in rec.warnings[0]
    assert "Zeta, Alpha" in rec.warnings[0]


def test_excluded_column_is_a_note_not_a_warning() -> None:
    rec = reconcile_columns("ghec_a.csv", ["Org_Name", "Full_URL", "Repo_Name"], CONFIG)
    assert rec.excluded == ["Full_URL"]
    assert rec.unexpected == []
    assert rec.warnings == []
    assert len(rec.notes) == 1
    assert "Full_URL" in rec.notes[0]


def test_excluded_and_unexpected_are_independent() -> None:
    rec = reconcile_columns("ghec_a.csv", ["Full_URL", "Extra", "Org_Name"], CONFIG)
    assert rec.excluded == ["Full_URL"]
    assert rec.unexpected == ["Extra"]
    assert len(rec.warnings) == 1
    assert len(rec.notes) == 1


def test_filter_record_drops_excluded_and_keeps_order() -> None:
    record = {"c": "3", "Full_URL": "http://x", "a": "1", "b": "2"}
    out = filter_record(record, ["Full_URL"])
    assert list(out.items()) == [("c", "3"), ("a", "1"), ("b", "2")]
    assert "Full_URL" in record


def test_filter_record_with_nothing_to_exclude_copies() -> None:
    record = {"a": "1"}
    out = filter_record(record, [])
    assert out == record
    assert out is not record


def test_tag_record_puts_provenance_first_and_overwrites_source_value() -> None:
    out = tag_record({"Org_Name": "o", PROVENANCE_COLUMN: "bogus", "Repo_Name": "r"}, "GHES")
    assert list(out.items()) == [(PROVENANCE_COLUMN, "GHES"), ("Org_Name", "o"), ("Repo_Name", "r")]


def test_repeated_headers_are_listed_once_with_their_own_warning() -> None:
    rec = reconcile_columns("ghec_a.csv", ["Org_Name", "Extra", "Extra", "Repo_Name", "Repo_Name"], CONFIG)
    assert rec.unexpected == ["Extra"]
    assert len(rec.warnings) == 2
    assert "repeated column names" in rec.warnings[0]
    assert "Extra, Repo_Name" in rec.warnings[0]
    assert rec.warnings[1].endswith("Extra")
