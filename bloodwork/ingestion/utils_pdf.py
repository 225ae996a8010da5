import fitz  # PyMuPDF
from typing import List, Dict, Union

PdfSource = Union[str, bytes]


class DecodeError(Exception):
    """The PDF could not be opened or its text could not be read."""


def _open(source: PdfSource) -> fitz.Document:
    if isinstance(source, (bytes, bytearray)):
        if not source:
            raise DecodeError("Empty PDF upload")
        return fitz.open(stream=bytes(source), filetype="pdf")
    return fitz.open(source)


def extract_pdf_pages(source: PdfSource) -> List[Dict]:
    """Extract text by page with basic metadata. Accepts a path or the PDF bytes."""
    out = []
    try:
        with _open(source) as doc:
            if doc.needs_pass:
                raise DecodeError("PDF is password protected")
            for i, page in enumerate(doc, start=1):
                text = page.get_text("text") or ""
                out.append({"page": i, "text": text})
    except DecodeError:
        raise
    except Exception as e:
        raise DecodeError(f"Could not read PDF: {e}") from e
    return out


def extract_pdf_text(source: PdfSource) -> str:
    """Whole-document text, pages separated by a blank line."""
    return "\n\n".join(p["text"] for p in extract_pdf_pages(source))
