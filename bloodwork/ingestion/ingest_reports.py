import argparse
import os
import glob
import random
import time
from typing import List, Dict, Optional
import logging

from dotenv import load_dotenv
load_dotenv()

from bloodwork.constants import UPLOAD_FIELD, UPLOAD_PREVIEW_CHARS
from bloodwork.ingestion.utils_pdf import extract_pdf_text, DecodeError
from bloodwork.ingestion.parsers.blood_report import extract
from bloodwork.tools.extracts_store import ExtractStore, ExtractStoreError, default_table_path
from bloodwork.tools.spreadsheet import build_workbook, xlsx_filename

logger = logging.getLogger(__name__)


def ensure_dirs(base_out: str):
    os.makedirs(os.path.join(base_out, "tables"), exist_ok=True)
    os.makedirs(os.path.join(base_out, "sheets"), exist_ok=True)


def stored_upload_name() -> str:
    """Unique on-disk name for an upload: pdf-<epoch ms>-<9 random digits>.pdf"""
    unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9 - 1):09d}"
    return f"{UPLOAD_FIELD}-{unique_suffix}.pdf"


def text_preview(text: Optional[str], limit: int = UPLOAD_PREVIEW_CHARS) -> str:
    return (text or "")[:limit] + "..."


def ingest_pdf(store: ExtractStore, data: bytes, filename: str, original_filename: str) -> Dict:
    """
    Decode one PDF, parse its text and persist the result.

    Args:
        store: Extracts store to write to.
        data: Raw PDF bytes.
        filename: Name the upload was stored under.
        original_filename: Name the client uploaded.

    Raises:
        DecodeError: the PDF text could not be read.
        ExtractStoreError: the result could not be persisted.
    """
    text = extract_pdf_text(data)
    records = extract(text)
    if not records:
        logger.warning(f"No text lines found in {original_filename}")
    extract_id = store.add(filename, original_filename, text, records)
    return {
        "id": extract_id,
        "filename": filename,
        "original_filename": original_filename,
        "extracted_text": text,
        "records": records,
    }


def main(src: str, out: str, export: bool = False):
    ensure_dirs(out)
    store = ExtractStore(default_table_path(out))
    ingested: List[Dict] = []
    for fp in sorted(glob.glob(os.path.join(src, "*.pdf"))):
        try:
            with open(fp, "rb") as f:
                data = f.read()
            res = ingest_pdf(store, data, os.path.relpath(fp), os.path.basename(fp))
        except (OSError, DecodeError, ExtractStoreError) as e:
            logger.error(f"Failed to ingest {fp}: {e}")
            continue
        ingested.append(res)
        logger.info(f"Ingested {fp}: {len(res['records'])} records (id {res['id']})")

        if export:
            sheet_path = os.path.join(out, "sheets", xlsx_filename(res["original_filename"]))
            try:
                content = build_workbook(res["records"], res["extracted_text"])
                with open(sheet_path, "wb") as f:
                    f.write(content)
            except Exception as e:
                logger.error(f"Failed to write sheet for {fp}: {e}")
                continue
            logger.info(f"Wrote {sheet_path}")

    if not ingested:
        logger.warning(f"No blood report PDFs found or decoded under {src}")
    return ingested


if __name__ == "__main__":
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    parser = argparse.ArgumentParser()
    default_src = os.path.join(os.getenv("DATA_DIR", "./data/raw"), "reports")
    parser.add_argument("--src", default=default_src)
    parser.add_argument("--out", default=os.getenv("PROCESSED_DIR", "./data/processed"))
    parser.add_argument("--export", action="store_true", help="Also write one .xlsx per PDF under <out>/sheets")
    args = parser.parse_args()
    main(args.src, args.out, export=args.export)
