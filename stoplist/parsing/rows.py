"""
Row and cell helpers shared by the sheet parsers.

Sheets arrive as lists of rows, each row a list of cell strings. Rows may be
ragged or missing entirely; every accessor here degrades to ``''`` instead of
raising.
"""

import math
import re
from typing import Any, List, Optional, Sequence

Row = Sequence[str]
Sheet = Sequence[Row]

STREET_KEYWORDS = re.compile(
    r"(st|street|ave|avenue|rd|road|dr|drive|blvd|boulevard|pkwy|parkway"
    r"|ln|lane|way|ct|court|pl|place)",
    re.IGNORECASE,
)
PHONE_PATTERN = re.compile(r"\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
NUMBER_TOKEN = re.compile(r"-?\d{1,3}(?:,\d{3})+(?:\.\d+)?|-?\d+(?:\.\d+)?")
STOP_NUMBER = re.compile(r"^\d+$")


def as_text(value: Any) -> str:
    """Cell value as trimmed text; whole floats lose their '.0'."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def cell(row: Optional[Row], column: int) -> str:
    """Trimmed text of ``row[column]``; ``''`` when the row or cell is absent."""
    if not row or column < 0 or column >= len(row):
        return ""
    return as_text(row[column])


def strip_after_slash(value: str) -> str:
    """'08:15 / 08:30' -> '08:15'."""
    if "/" in value:
        return value.split("/", 1)[0].strip()
    return value


def looks_like_address(text: str) -> bool:
    """Best-effort check that a cell holds a street address.

    True when the text has a digit, and either a street keyword or more than
    ten characters, and does not mention open/close hours.
    """
    if not text:
        return False
    lowered = text.lower()
    has_number = any(ch.isdigit() for ch in text)
    has_street = STREET_KEYWORDS.search(text) is not None
    not_hours = "open" not in lowered and "close" not in lowered
    return has_number and (has_street or len(text) > 10) and not_hours


def extract_phone(text: str) -> str:
    match = PHONE_PATTERN.search(text or "")
    return match.group(0) if match else ""


def to_number(text: str) -> Optional[float]:
    """Parse '2,370.14' style numbers; None when not numeric."""
    cleaned = (text or "").replace(",", "").strip()
    if not cleaned or "_" in cleaned:
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def numeric_tokens(row: Optional[Row]) -> List[float]:
    """All numbers found in a row's cells, in reading order."""
    numbers: List[float] = []
    for value in row or ():
        for token in NUMBER_TOKEN.findall(as_text(value)):
            number = to_number(token)
            if number is not None:
                numbers.append(number)
    return numbers


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 rounding up."""
    return math.floor(value + 0.5)


class RowWindow:
    """Fixed-size view of consecutive sheet rows starting at ``start``.

    ``window[k]`` is the row at ``start + k``; rows past the end of the sheet
    read as empty rows.
    """

    def __init__(self, sheet: Sheet, start: int, size: int = 6):
        self.sheet = sheet
        self.start = start
        self.size = size

    def __getitem__(self, offset: int) -> Row:
        if offset < 0 or offset >= self.size:
            raise IndexError(f"offset {offset} outside window of {self.size} rows")
        index = self.start + offset
        if index >= len(self.sheet):
            return ()
        return self.sheet[index] or ()

    def cell(self, offset: int, column: int) -> str:
        return cell(self[offset], column)

    def __len__(self) -> int:
        return self.size
