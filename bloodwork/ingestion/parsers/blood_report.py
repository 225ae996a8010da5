"""
Heuristic blood report parser.

Turns the decoded text of a report into an ordered list of flat records. Every
record of one run shares the same shape:
- structured rows (Test Name / Value / Unit / Row Number) when a test pattern
  matched anywhere in the document, or
- fallback rows (Line Number / Content), one per non-empty line, otherwise.

Values are kept as the strings found in the text; nothing is converted.
"""
import re
import logging
from typing import List, Dict, Optional

from bloodwork.constants import STRUCTURED_COLS, FALLBACK_COLS

logger = logging.getLogger(__name__)

# Words that match the test patterns but label the report layout, not an analyte.
# Compared case-insensitively against the whole trimmed name.
TEST_NAME_STOPLIST = frozenset(w.lower() for w in [
    "Patient", "Name", "Date", "Age", "Gender", "Report",
    "Test", "Result", "Reference", "Normal", "Range",
])

MIN_TEST_NAME_LEN = 2  # names of this length or shorter are rejected

# Header/next-line check: exclusive bounds on the header line length
HEADER_LINE_MIN_LEN = 3
HEADER_LINE_MAX_LEN = 50

# Whitespace for trimming and token separation. Python's str.strip() and \s also
# treat \x1c-\x1f and \x85 as whitespace but miss U+FEFF; this set avoids both.
WHITESPACE = (
    " \t\n\v\f\r\xa0\u1680"
    + "".join(chr(c) for c in range(0x2000, 0x200B))
    + "\u2028\u2029\u202f\u205f\u3000\ufeff"
)
WS = "[" + WHITESPACE + "]"

NAME_TOKEN = "([A-Z][A-Za-z" + WHITESPACE + "]+?)"
VALUE_TOKEN = r"([0-9]+\.?[0-9]*|\.[0-9]+)"
UNIT_TOKEN = r"([a-zA-Z/%]+)?"

# Both patterns run independently over each line, in this order.
TEST_PATTERNS = [
    # "Glucose: 90 mg/dL", "Glucose 90 mg/dL", "Glucose90"
    re.compile(NAME_TOKEN + WS + "*:?" + WS + "*" + VALUE_TOKEN + WS + "*" + UNIT_TOKEN),
    # "Glucose 90 mg/dL"
    re.compile(NAME_TOKEN + WS + "+" + VALUE_TOKEN + WS + "*" + UNIT_TOKEN),
]

VALUE_UNIT_RE = re.compile(VALUE_TOKEN + WS + "*" + UNIT_TOKEN)
DIGIT_RE = re.compile(r"[0-9]")


def trim(s: str) -> str:
    return s.strip(WHITESPACE)


def prepare_lines(text: Optional[str]) -> List[str]:
    """Split on newlines, trim, and drop empty lines. Numbering refers to this list."""
    if text is None:
        return []
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    elif not isinstance(text, str):
        text = str(text)
    return [trim(ln) for ln in text.split("\n") if trim(ln)]


def is_test_name(name: str) -> bool:
    name = trim(name)
    if len(name) <= MIN_TEST_NAME_LEN:
        return False
    return name.lower() not in TEST_NAME_STOPLIST


def _structured_row(name: str, value: str, unit: str, row_number: int) -> Dict:
    return dict(zip(STRUCTURED_COLS, (name, value, unit, row_number)))


def _pattern_rows(line: str, row_number: int) -> List[Dict]:
    # No de-duplication between patterns: overlapping matches yield repeated rows.
    out: List[Dict] = []
    for pattern in TEST_PATTERNS:
        for m in pattern.finditer(line):
            name = trim(m.group(1))
            if not is_test_name(name):
                continue
            out.append(_structured_row(name, trim(m.group(2)), trim(m.group(3) or ""), row_number))
    return out


def _header_row(line: str, next_line: Optional[str], row_number: int) -> Optional[Dict]:
    """Pair a digit-free header line with the value/unit found on the following line."""
    if DIGIT_RE.search(line):
        return None
    if not (HEADER_LINE_MIN_LEN < len(line) < HEADER_LINE_MAX_LEN):
        return None
    if not next_line:
        return None
    m = VALUE_UNIT_RE.search(next_line)
    if not m:
        return None
    return _structured_row(line, m.group(1), m.group(2) or "", row_number)


def extract(text: Optional[str]) -> List[Dict]:
    """
    Parse report text into records.

    Args:
        text: Decoded report text. Empty or whitespace-only text yields [].

    Returns:
        Structured rows if any test pattern matched, else one fallback row per line.
    """
    lines = prepare_lines(text)
    rows: List[Dict] = []

    for i, line in enumerate(lines):
        row_number = i + 1
        rows.extend(_pattern_rows(line, row_number))

        # Only considered until the first structured row exists
        if not rows:
            next_line = lines[i + 1] if i + 1 < len(lines) else None
            header = _header_row(line, next_line, row_number)
            if header:
                rows.append(header)

    if rows:
        logger.debug(f"Parsed {len(rows)} structured rows from {len(lines)} lines")
        return rows

    if lines:
        logger.debug(f"No test patterns matched in {len(lines)} lines; using raw lines")
    return [dict(zip(FALLBACK_COLS, (i, line))) for i, line in enumerate(lines, start=1)]


def record_keys(records: List[Dict]) -> List[str]:
    """Header row for tabular output: the keys of the first record."""
    if not records:
        return []
    return list(records[0].keys())
