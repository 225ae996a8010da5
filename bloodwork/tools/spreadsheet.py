import io
import re
import logging
from typing import List, Dict, Optional

import pandas as pd
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from bloodwork.constants import (
    SHEET_NAME,
    SHEET_COLUMN_WIDTH,
    SHEET_HEADER_FILL,
    RAW_TEXT_HEADER,
    EXCEL_CELL_MAX_CHARS,
)
from bloodwork.ingestion.parsers.blood_report import record_keys

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

pdf_suffix_re = re.compile(r"\.pdf$", re.IGNORECASE)


def xlsx_filename(original_filename: Optional[str]) -> str:
    name = original_filename or "extract"
    if pdf_suffix_re.search(name):
        return pdf_suffix_re.sub(".xlsx", name)
    return name + ".xlsx"


def clean_cell(value):
    """Drop control characters that openpyxl refuses to write (tab, CR and LF are kept)."""
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def _records_frame(records: List[Dict]) -> pd.DataFrame:
    cols = record_keys(records)
    df = pd.DataFrame(records, columns=cols)
    for col in cols:
        df[col] = df[col].map(clean_cell)
    return df


def _raw_text_frame(extracted_text: Optional[str]) -> pd.DataFrame:
    text = clean_cell(extracted_text or "")
    if len(text) > EXCEL_CELL_MAX_CHARS:
        logger.warning(f'Extracted text truncated to {EXCEL_CELL_MAX_CHARS} chars for the spreadsheet')
        text = text[:EXCEL_CELL_MAX_CHARS]
    return pd.DataFrame({RAW_TEXT_HEADER: [text]})


def _style_sheet(ws, n_cols: int) -> None:
    header_font = Font(bold=True)
    header_fill = PatternFill(fill_type="solid", fgColor=SHEET_HEADER_FILL)
    for ci in range(1, n_cols + 1):
        ws.column_dimensions[get_column_letter(ci)].width = SHEET_COLUMN_WIDTH
        cell = ws.cell(row=1, column=ci)
        cell.font = header_font
        cell.fill = header_fill


def build_workbook(records: List[Dict], extracted_text: Optional[str] = None) -> bytes:
    """
    Render extracted records as an .xlsx workbook.

    The header row comes from the keys of the first record. With no records the
    sheet holds the raw extracted text under a single header instead. Control
    characters left over from PDF decoding are dropped from the cells only; the
    records passed in are not modified.
    """
    df = _records_frame(records) if records else _raw_text_frame(extracted_text)
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=SHEET_NAME, index=False)
        _style_sheet(writer.sheets[SHEET_NAME], len(df.columns))
    logger.debug(f'Built workbook with {len(df)} rows x {len(df.columns)} columns')
    return buf.getvalue()
