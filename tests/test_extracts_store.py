import json
from pathlib import Path

import pandas as pd
import pytest

from bloodwork.constants import EXTRACTS_COLS, EXTRACTS_LIST_COLS
from bloodwork.ingestion.parsers.blood_report import extract
from bloodwork.tools.extracts_store import ExtractStore, ExtractStoreError, row_records

STRUCTURED = extract("Hemoglobin: 13.5 g/dL\nGlucose: 90 mg/dL")
FALLBACK = extract("hello\nworld")


def test_missing_table_reads_as_empty(store):
    assert store.list_extracts() == []
    assert store.get(1) is None
    assert store.records(1) is None
    assert store.database_info() == {"totalRecords": 0, "records": []}


def test_add_assigns_increasing_ids_and_persists(store):
    first = store.add("pdf-1.pdf", "a.pdf", "Hemoglobin: 13.5 g/dL", STRUCTURED)
    second = store.add("pdf-2.pdf", "b.pdf", "hello\nworld", FALLBACK)
    assert (first, second) == (1, 2)
    assert Path(store.table_path).exists()

    row = store.get(second)
    assert set(row.keys()) == set(EXTRACTS_COLS)
    assert row["original_filename"] == "b.pdf"
    assert row["filename"] == "pdf-2.pdf"
    assert row["extracted_text"] == "hello\nworld"
    assert json.loads(row["excel_data"]) == FALLBACK


def test_records_round_trip_keeps_values_and_key_order(store):
    extract_id = store.add("pdf-1.pdf", "a.pdf", "text", STRUCTURED)
    # A fresh handle on the same table replays the same records
    replayed = ExtractStore(store.table_path).records(extract_id)
    assert replayed == STRUCTURED
    assert [list(r.keys()) for r in replayed] == [list(r.keys()) for r in STRUCTURED]


def test_empty_record_list_round_trips(store):
    extract_id = store.add("pdf-1.pdf", "blank.pdf", "", [])
    assert store.records(extract_id) == []


def test_list_is_newest_first_with_lengths(store):
    store.add("pdf-1.pdf", "a.pdf", "abc", STRUCTURED)
    store.add("pdf-2.pdf", "b.pdf", "abcdef", FALLBACK)
    listed = store.list_extracts()
    assert [r["id"] for r in listed] == [2, 1]
    assert list(listed[0].keys()) == EXTRACTS_LIST_COLS
    assert listed[0]["text_length"] == 6
    assert listed[1]["data_length"] == len(json.dumps(STRUCTURED))


def test_delete_removes_only_the_matching_row(store):
    store.add("pdf-1.pdf", "a.pdf", "a", STRUCTURED)
    store.add("pdf-2.pdf", "b.pdf", "b", FALLBACK)
    assert store.delete(1) is True
    assert store.get(1) is None
    assert [r["id"] for r in store.list_extracts()] == [2]
    assert store.delete(1) is False


def test_ids_continue_after_the_highest_remaining(store):
    store.add("pdf-1.pdf", "a.pdf", "a", [])
    store.add("pdf-2.pdf", "b.pdf", "b", [])
    store.delete(1)
    assert store.add("pdf-3.pdf", "c.pdf", "c", []) == 3


def test_database_info_previews(store):
    long_text = "x" * 800
    store.add("pdf-1.pdf", "a.pdf", long_text, STRUCTURED)
    store.add("pdf-2.pdf", "b.pdf", "hello\nworld", [])
    info = store.database_info()
    assert info["totalRecords"] == 2

    empty, full = info["records"]
    assert empty["excelDataPreview"] == {"rowCount": 0, "columns": [], "firstRow": None}
    assert full["text_preview"] == "x" * 500
    assert full["text_length"] == 800
    assert full["excelDataPreview"] == {
        "rowCount": len(STRUCTURED),
        "columns": ["Test Name", "Value", "Unit", "Row Number"],
        "firstRow": STRUCTURED[0],
    }
    assert store.database_info(preview_chars=10)["records"][1]["text_preview"] == "x" * 10


def test_unparseable_stored_records_are_reported(store):
    Path(store.table_path).parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame([{
        "id": 7,
        "filename": "pdf-7.pdf",
        "original_filename": "bad.pdf",
        "extracted_text": "text",
        "excel_data": "{not json",
        "created_at": "2024-01-01 00:00:00",
    }], columns=EXTRACTS_COLS)
    df.to_parquet(store.table_path, index=False)

    info = store.database_info()
    assert info["records"][0]["excelDataPreview"] == {"error": "Could not parse"}
    with pytest.raises(ExtractStoreError):
        store.records(7)


def test_corrupt_table_raises_store_error(store):
    Path(store.table_path).parent.mkdir(parents=True, exist_ok=True)
    Path(store.table_path).write_bytes(b"definitely not parquet")
    with pytest.raises(ExtractStoreError):
        store.list_extracts()
    with pytest.raises(ExtractStoreError):
        store.add("pdf-1.pdf", "a.pdf", "a", [])


def test_failed_write_keeps_the_previous_table(store, monkeypatch):
    store.add("pdf-1.pdf", "a.pdf", "a", STRUCTURED)

    def broken_to_parquet(self, path, *args, **kwargs):
        Path(path).write_bytes(b"PAR1 half written")
        raise OSError("disk full")

    monkeypatch.setattr(pd.DataFrame, "to_parquet", broken_to_parquet)
    with pytest.raises(ExtractStoreError):
        store.add("pdf-2.pdf", "b.pdf", "b", FALLBACK)
    with pytest.raises(ExtractStoreError):
        store.delete(1)
    monkeypatch.undo()

    assert [r["id"] for r in store.list_extracts()] == [1]
    assert store.records(1) == STRUCTURED
    # No temp files are left next to the table
    assert sorted(p.name for p in Path(store.table_path).parent.iterdir()) == [Path(store.table_path).name]


def test_full_rows_and_row_records(store):
    store.add("pdf-1.pdf", "a.pdf", "a", STRUCTURED)
    store.add("pdf-2.pdf", "b.pdf", "b", [])
    rows = store.full_rows()
    assert sorted(rows) == [1, 2]
    assert row_records(rows[1]) == STRUCTURED
    assert row_records(rows[2]) == []
    with pytest.raises(ExtractStoreError):
        row_records({"id": 3, "excel_data": "{not json"})
