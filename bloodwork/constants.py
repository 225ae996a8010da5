"""
Centralized constants for extracted record schemas and shared configuration.
These constants are imported by the parser, the extracts store, the spreadsheet
writer and the HTTP/UI layers so that schemas are consistent and not guessed in
multiple places.
"""
from __future__ import annotations

from typing import List

# Structured rows produced when at least one test pattern matches in a document
STRUCTURED_COLS: List[str] = [
    "Test Name",
    "Value",
    "Unit",
    "Row Number",
]

# Fallback rows produced when nothing structured was found anywhere
FALLBACK_COLS: List[str] = [
    "Line Number",
    "Content",
]

# Extracts table schema (one row per uploaded PDF)
# excel_data holds the extracted records serialized as JSON.
EXTRACTS_COLS: List[str] = [
    "id",
    "filename",
    "original_filename",
    "extracted_text",
    "excel_data",
    "created_at",
]

# Columns returned by list views (lengths are computed, not stored)
EXTRACTS_LIST_COLS: List[str] = [
    "id",
    "original_filename",
    "filename",
    "created_at",
    "text_length",
    "data_length",
]

EXTRACTS_TABLE_FILE: str = "extracts.parquet"
CREATED_AT_FORMAT: str = "%Y-%m-%d %H:%M:%S"

# Spreadsheet rendering
SHEET_NAME: str = "Blood Report Data"
SHEET_COLUMN_WIDTH: int = 30
SHEET_HEADER_FILL: str = "FFE0E0E0"
RAW_TEXT_HEADER: str = "Extracted Text"
EXCEL_CELL_MAX_CHARS: int = 32767

# Upload & preview settings
UPLOAD_FIELD: str = "pdf"
MAX_UPLOAD_MB: int = 10
UPLOAD_PREVIEW_CHARS: int = 500
VIEWER_PREVIEW_CHARS: int = 200
