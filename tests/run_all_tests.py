import argparse
import sys
from pathlib import Path

import pytest

# Ensure repo root is importable when running directly
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

TEST_MODULES = [
    "test_blood_report_parser.py",
    "test_utils_pdf.py",
    "test_extracts_store.py",
    "test_spreadsheet.py",
    "test_ingest_reports.py",
    "test_api.py",
]


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run all blood report extraction tests")
    parser.add_argument(
        "--parser-only",
        action="store_true",
        help="Only run the text parser tests (no PDF, table or HTTP fixtures)",
    )
    args, extra = parser.parse_known_args(argv)

    here = Path(__file__).resolve().parent
    modules = TEST_MODULES[:1] if args.parser_only else TEST_MODULES
    rc = pytest.main(extra + [str(here / m) for m in modules])
    sys.exit(rc)


if __name__ == "__main__":
    main()
