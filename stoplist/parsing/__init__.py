"""Stop-list sheet parsers."""

from .omnitracs import OmnitracsParser, ParserState, parse_delivery_block, parse_omnitracs_rows
from .poc import ColumnMap, FIELD_ALIASES, MatchStrategy, PocParser, parse_poc_rows
from .rows import RowWindow, looks_like_address
from .workbook import detect_layout, parse_rows, parse_workbook, read_first_sheet

__all__ = [
    "ColumnMap",
    "FIELD_ALIASES",
    "MatchStrategy",
    "OmnitracsParser",
    "ParserState",
    "PocParser",
    "RowWindow",
    "detect_layout",
    "looks_like_address",
    "parse_delivery_block",
    "parse_omnitracs_rows",
    "parse_poc_rows",
    "parse_rows",
    "parse_workbook",
    "read_first_sheet",
]
