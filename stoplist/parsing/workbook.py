"""Workbook loading and layout selection for uploaded stop lists."""

from __future__ import annotations

import io
import logging
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from openpyxl import load_workbook

from ..errors import NoRoutesFoundError, WorkbookError
from ..models import ParsedRouteSet
from .omnitracs import parse_omnitracs_rows
from .poc import ColumnMap, parse_poc_rows
from .rows import as_text


logger = logging.getLogger(__name__)

LAYOUT_OMNITRACS = "omnitracs"
LAYOUT_POC = "poc"
LAYOUT_AUTO = "auto"
LAYOUTS = (LAYOUT_AUTO, LAYOUT_OMNITRACS, LAYOUT_POC)

# Header row must bind at least this many fields to be read as a POC sheet
POC_MIN_COLUMNS = 3


def _cell_text(value: Any) -> str:
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.strftime("%m/%d/%Y")
        return value.strftime("%m/%d/%Y %H:%M")
    if isinstance(value, date):
        return value.strftime("%m/%d/%Y")
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return as_text(value)


def read_first_sheet(payload: bytes) -> List[List[str]]:
    """All rows of the first sheet as cell strings (blank cells are '')."""
    try:
        wb = load_workbook(io.BytesIO(payload), data_only=True, read_only=True)
    except Exception as e:
        raise WorkbookError(f"Could not read workbook: {e}") from e
    try:
        sheet = wb.worksheets[0] if wb.worksheets else None
        if sheet is None:
            raise WorkbookError("Workbook has no sheets")
        rows = [[_cell_text(v) for v in row] for row in sheet.iter_rows(values_only=True)]
    finally:
        wb.close()
    logger.debug(f"Read {len(rows)} rows from first sheet")
    return rows


def rows_to_records(rows: List[List[str]]) -> tuple[List[str], List[Dict[str, str]]]:
    """First row as headers, remaining rows as header-keyed dicts."""
    if not rows:
        return [], []
    headers = [h.strip() for h in rows[0]]
    records: List[Dict[str, str]] = []
    for row in rows[1:]:
        record = {}
        for idx, header in enumerate(headers):
            if header:
                record[header] = row[idx] if idx < len(row) else ""
        records.append(record)
    return headers, records


def detect_layout(file_name: Optional[str], rows: List[List[str]]) -> str:
    """POC by file-name convention or by a recognisable header row."""
    if file_name and Path(file_name).name.upper().startswith("POC"):
        return LAYOUT_POC
    if rows and len(ColumnMap.resolve(rows[0])) >= POC_MIN_COLUMNS:
        first = as_text(rows[0][0]) if rows[0] else ""
        if not first.startswith("Route Id:"):
            return LAYOUT_POC
    return LAYOUT_OMNITRACS


def parse_rows(rows: List[List[str]], layout: str, file_name: Optional[str] = None,
               day_dates: Optional[Mapping[str, str]] = None, **poc_options: str) -> ParsedRouteSet:
    if layout not in LAYOUTS:
        raise WorkbookError(f"Unknown layout {layout!r}; expected one of {', '.join(LAYOUTS)}")
    if layout == LAYOUT_AUTO:
        layout = detect_layout(file_name, rows)
    logger.info(f"Parsing {file_name or 'sheet'} as {layout} layout")

    if layout == LAYOUT_POC:
        headers, records = rows_to_records(rows)
        route_set = parse_poc_rows(records, headers=headers, day_dates=day_dates, **poc_options)
    else:
        route_set = parse_omnitracs_rows(rows)

    if not route_set.routes:
        raise NoRoutesFoundError(f"No routes found in {file_name or 'sheet'} ({layout} layout)")
    return route_set


def parse_workbook(payload: bytes, file_name: Optional[str] = None, layout: str = LAYOUT_AUTO,
                   day_dates: Optional[Mapping[str, str]] = None, **poc_options: str) -> ParsedRouteSet:
    """Read the first sheet of an .xlsx workbook and parse it.

    ``poc_options`` (route_start_time, route_end_time) only apply to POC sheets.
    """
    return parse_rows(read_first_sheet(payload), layout, file_name=file_name,
                      day_dates=day_dates, **poc_options)
