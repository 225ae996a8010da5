import os
import sys
from pathlib import Path
from typing import List

import fitz  # PyMuPDF
import pytest

# Ensure project root is on sys.path so `import bloodwork...` works when running pytest from repo root
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

# Load environment variables if present
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

# Keep stray writes out of the repo's data directory
os.environ.setdefault("PROCESSED_DIR", str(ROOT / "data/processed"))

from bloodwork.tools.extracts_store import ExtractStore


def build_pdf(pages: List[List[str]]) -> bytes:
    """Render each page's lines as real PDF text so the decoder has something to read."""
    doc = fitz.open()
    for lines in pages:
        page = doc.new_page()
        page.insert_text((72, 72), "\n".join(lines), fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture()
def make_pdf():
    return build_pdf


@pytest.fixture()
def report_pdf() -> bytes:
    return build_pdf([["Hemoglobin 13.5 g/dL", "Glucose: 90 mg/dL"]])


@pytest.fixture()
def store(tmp_path: Path) -> ExtractStore:
    return ExtractStore(str(tmp_path / "tables" / "extracts.parquet"))
