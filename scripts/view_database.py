#!/usr/bin/env python3
"""
Print every stored extract, newest first.

Usage:
  python scripts/view_database.py [--table data/processed/tables/extracts.parquet]
"""
import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv
load_dotenv()

from bloodwork.constants import VIEWER_PREVIEW_CHARS
from bloodwork.tools.extracts_store import ExtractStore, ExtractStoreError, default_table_path


def print_extracts(store: ExtractStore) -> int:
    try:
        info = store.database_info(preview_chars=VIEWER_PREVIEW_CHARS)
    except ExtractStoreError as e:
        print("Error fetching data:", e)
        return 1

    if info["totalRecords"] == 0:
        print("No records found in the database.")
        return 0

    print(f"Found {info['totalRecords']} record(s):\n")
    print("=" * 80)

    for n, row in enumerate(info["records"], start=1):
        print(f"\nRecord #{n}")
        print("-" * 80)
        print(f"ID: {row['id']}")
        print(f"Original Filename: {row['original_filename']}")
        print(f"Stored Filename: {row['filename']}")
        print(f"Created At: {row['created_at']}")
        print(f"Text Length: {row['text_length']} characters")
        print(f"Excel Data Length: {row['data_length']} characters")

        if row["text_preview"]:
            more = "..." if row["text_length"] > VIEWER_PREVIEW_CHARS else ""
            print(f"\nExtracted Text Preview (first {VIEWER_PREVIEW_CHARS} chars):")
            print(row["text_preview"] + more)

        preview = row["excelDataPreview"]
        if preview is None:
            continue
        print("\nExcel Data Preview:")
        if "error" in preview:
            print("  - Could not parse Excel data")
            continue
        print(f"  - Number of rows: {preview['rowCount']}")
        if preview["rowCount"]:
            print(f"  - Columns: {', '.join(preview['columns'])}")
            print("  - First row sample:")
            print("    " + json.dumps(preview["firstRow"], indent=2))

    print("\n" + "=" * 80)
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description="Show stored blood report extracts")
    parser.add_argument("--table", default=default_table_path())
    args = parser.parse_args(argv)
    sys.exit(print_extracts(ExtractStore(args.table)))


if __name__ == "__main__":
    main()
