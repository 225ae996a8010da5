from typing import Optional, List, Dict
import os
import json
import tempfile
import threading
import logging
from datetime import datetime, UTC

import pandas as pd

from bloodwork.constants import (
    EXTRACTS_COLS,
    EXTRACTS_LIST_COLS,
    EXTRACTS_TABLE_FILE,
    CREATED_AT_FORMAT,
    UPLOAD_PREVIEW_CHARS,
)

logger = logging.getLogger(__name__)


def default_table_path(processed_dir: Optional[str] = None) -> str:
    base = processed_dir or os.getenv("PROCESSED_DIR", "./data/processed")
    return os.path.join(base, "tables", EXTRACTS_TABLE_FILE)


class ExtractStoreError(Exception):
    """The extracts table could not be read or written."""


def _text_len(x) -> int:
    return len(x) if isinstance(x, str) else 0


def _records_preview(excel_data) -> Optional[Dict]:
    if not isinstance(excel_data, str) or not excel_data:
        return None
    try:
        parsed = json.loads(excel_data)
    except ValueError:
        return {"error": "Could not parse"}
    if not isinstance(parsed, list):
        return {"error": "Could not parse"}
    first = parsed[0] if parsed else None
    return {
        "rowCount": len(parsed),
        "columns": list(first.keys()) if isinstance(first, dict) else [],
        "firstRow": first,
    }


def row_records(row: Dict) -> List[Dict]:
    """Records stored on an already loaded extract row."""
    data = row.get("excel_data")
    if not data:
        return []
    try:
        return json.loads(data)
    except ValueError as e:
        raise ExtractStoreError(f"Stored records for extract {row.get('id')} are not valid JSON") from e


class ExtractStore:
    """
    Keyed store of extraction results backed by a single parquet table.

    One row per processed PDF: stored/original filenames, the decoded text, the
    extracted records as JSON and a creation timestamp. Writes rewrite the table
    under an instance lock and replace it atomically; a missing table reads as empty.
    """

    def __init__(self, table_path: Optional[str] = None):
        self.table_path = table_path or default_table_path()
        self._lock = threading.Lock()

    # --- Table I/O ---

    def _load_df(self) -> pd.DataFrame:
        tp = self.table_path
        if not os.path.exists(tp):
            logger.debug(f'Extracts table not found at {tp}')
            return pd.DataFrame(columns=EXTRACTS_COLS)
        try:
            df = pd.read_parquet(tp)
        except Exception as e:
            logger.error(f'Failed to load extracts table at {tp}: {e}')
            raise ExtractStoreError(f"Failed to load extracts table: {e}") from e
        for col in EXTRACTS_COLS:
            if col not in df.columns:
                df[col] = None
        return df[EXTRACTS_COLS]

    def _write_rows(self, rows: List[Dict]) -> None:
        # Written to a sibling temp file and swapped in, so readers never see a partial table
        tp = self.table_path
        tmp_path = None
        try:
            table_dir = os.path.dirname(tp) or "."
            os.makedirs(table_dir, exist_ok=True)
            df = pd.DataFrame(rows, columns=EXTRACTS_COLS)
            df["id"] = df["id"].astype("int64")
            fd, tmp_path = tempfile.mkstemp(dir=table_dir, prefix=".extracts-", suffix=".parquet.tmp")
            os.close(fd)
            df.to_parquet(tmp_path, index=False)
            os.replace(tmp_path, tp)
        except Exception as e:
            logger.error(f'Failed to write extracts table at {tp}: {e}')
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise ExtractStoreError(f"Failed to write extracts table: {e}") from e

    def _rows(self) -> List[Dict]:
        rows = self._load_df().to_dict(orient="records")
        for r in rows:
            r["id"] = int(r["id"])
        return rows

    def _sorted_newest_first(self) -> List[Dict]:
        return sorted(self._rows(), key=lambda r: (str(r.get("created_at") or ""), r["id"]), reverse=True)

    # --- Operations ---

    def add(self, filename: str, original_filename: str, extracted_text: str, records: List[Dict]) -> int:
        """
        Persist one extraction and return its id.

        Args:
            filename: Name the upload was stored under.
            original_filename: Name the client uploaded.
            extracted_text: Decoded PDF text.
            records: Extracted records, stored as JSON.
        """
        with self._lock:
            rows = self._rows()
            new_id = max((r["id"] for r in rows), default=0) + 1
            rows.append({
                "id": new_id,
                "filename": filename,
                "original_filename": original_filename,
                "extracted_text": extracted_text,
                "excel_data": json.dumps(records, ensure_ascii=False),
                "created_at": datetime.now(UTC).strftime(CREATED_AT_FORMAT),
            })
            self._write_rows(rows)
        logger.info(f'Stored extract {new_id} ({original_filename}, {len(records)} records)')
        return new_id

    def list_extracts(self) -> List[Dict]:
        """Return a summary of every extract, newest first."""
        out = []
        for r in self._sorted_newest_first():
            out.append({
                "id": r["id"],
                "original_filename": r.get("original_filename"),
                "filename": r.get("filename"),
                "created_at": r.get("created_at"),
                "text_length": _text_len(r.get("extracted_text")),
                "data_length": _text_len(r.get("excel_data")),
            })
        return [{c: o[c] for c in EXTRACTS_LIST_COLS} for o in out]

    def full_rows(self) -> Dict[int, Dict]:
        """Every stored row keyed by id, from a single table read."""
        return {r["id"]: r for r in self._rows()}

    def get(self, extract_id: int) -> Optional[Dict]:
        """Return the full stored row for an extract, or None."""
        for r in self._rows():
            if r["id"] == int(extract_id):
                return r
        logger.warning(f'Extract {extract_id} not found')
        return None

    def records(self, extract_id: int) -> Optional[List[Dict]]:
        """Replay the stored records of an extract, in their original order."""
        row = self.get(extract_id)
        if row is None:
            return None
        return row_records(row)

    def database_info(self, preview_chars: int = UPLOAD_PREVIEW_CHARS) -> Dict:
        """Summary rows plus text and record previews for the database viewer."""
        out = []
        for r in self._sorted_newest_first():
            text = r.get("extracted_text") if isinstance(r.get("extracted_text"), str) else ""
            out.append({
                "id": r["id"],
                "original_filename": r.get("original_filename"),
                "filename": r.get("filename"),
                "created_at": r.get("created_at"),
                "text_length": _text_len(r.get("extracted_text")),
                "data_length": _text_len(r.get("excel_data")),
                "text_preview": text[:preview_chars],
                "excel_data": r.get("excel_data"),
                "excelDataPreview": _records_preview(r.get("excel_data")),
            })
        return {"totalRecords": len(out), "records": out}

    def delete(self, extract_id: int) -> bool:
        """Remove an extract. Returns False when no row matched."""
        with self._lock:
            rows = self._rows()
            keep = [r for r in rows if r["id"] != int(extract_id)]
            if len(keep) == len(rows):
                logger.warning(f'Extract {extract_id} not found; nothing deleted')
                return False
            self._write_rows(keep)
        logger.info(f'Deleted extract {extract_id}')
        return True
