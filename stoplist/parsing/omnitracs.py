"""
Parser for Omnitracs (Roadnet) stop-list reports.

The report is positional: each route opens with a ``Route Id:`` row, carries
driver, equipment and shift rows, then a delivery table where every stop spans
three to six physical rows. Field values live at fixed column offsets and at
fixed row offsets from the stop-number row.
"""

import logging
import re
from enum import Enum
from typing import List, Optional, Tuple

from ..models import Delivery, ParsedRouteSet, Route
from .rows import (
    Row, RowWindow, Sheet, STOP_NUMBER,
    cell, extract_phone, looks_like_address, numeric_tokens,
    round_half_up, strip_after_slash, to_number,
)


logger = logging.getLogger(__name__)

# Column offsets
COL_STOP = 0
COL_LOCATION_ID = 1
COL_ADDRESS = 1
COL_OPEN_CLOSE = 1
COL_LOCATION_NAME = 3
COL_EQUIPMENT = 8
COL_ARRIVAL = 8
COL_SERVICE_WINDOWS = 9
COL_INSTRUCTIONS = 9
COL_DEPART = 11
COL_PHONE = 12
COL_SERVICE = 13
COL_WEIGHT = 15
COL_CUBE = 18  # PAL on depot address rows
COL_GROSS = 20  # WGT on depot address rows

BLOCK_ROWS = 6

EQUIPMENT_TYPES = ("14BAY", "32LG", "28LG", "40LG", "18BT", "48LG", "48FT")

ROUTE_ID = re.compile(r"^Route Id:\s*(.*)$")
DRIVER = re.compile(r"^([A-Z\d]{2,}):\s*(.+)$")
ROUTE_START = re.compile(r"^Route Start Time:\s*(.+)$")
ROUTE_COMPLETE = re.compile(r"^Route Complete Time:\s*(.+)$")


class ParserState(str, Enum):
    """Where the scan is within the report."""
    SEEKING_ROUTE_HEADER = "seeking_route_header"
    SEEKING_DELIVERY_SECTION = "seeking_delivery_section"
    IN_DELIVERY_SECTION = "in_delivery_section"


def _times(row: Row) -> Tuple[str, str, str]:
    """Arrival, depart and service for a single-row record."""
    return (
        strip_after_slash(cell(row, COL_ARRIVAL)),
        strip_after_slash(cell(row, COL_DEPART)),
        cell(row, COL_SERVICE),
    )


def _format_weight(raw: str) -> str:
    number = to_number(raw)
    if number is None:
        return raw
    return f"{number:.1f}"


def _locate_address(window: RowWindow) -> Tuple[str, int]:
    """Find the address row within a delivery block.

    Returns the address and its row offset (1 or 2). The address usually sits
    on row+1, but an extra line upstream pushes it to row+2.
    """
    candidate1 = window.cell(1, COL_ADDRESS)
    candidate2 = window.cell(2, COL_ADDRESS)
    if looks_like_address(candidate1):
        return candidate1, 1
    if looks_like_address(candidate2):
        return candidate2, 2
    if candidate1:
        logger.debug(f"No address-like text in delivery block, defaulting to {candidate1!r}")
        return candidate1, 1
    return "", 1


def _extract_instructions(window: RowWindow) -> Tuple[str, str]:
    standard = ""
    special = ""
    for offset in (3, 4, 5):
        label = window.cell(offset, COL_STOP)
        lowered = label.lower()
        if label == "Standard Instructions" or "standard instruction" in lowered:
            standard = window.cell(offset, COL_INSTRUCTIONS)
            break
        if "special instruction" in lowered:
            special = window.cell(offset, COL_INSTRUCTIONS)
            break
        if "instruction" in lowered and not standard:
            standard = label
    return standard, special


def parse_delivery_block(sheet: Sheet, start: int) -> Delivery:
    """Extract one delivery whose stop-number row is ``sheet[start]``."""
    window = RowWindow(sheet, start, BLOCK_ROWS)
    first = window[0]

    location_name = cell(first, COL_LOCATION_NAME)
    arrival, depart, service = _times(first)

    weight = cell(first, COL_WEIGHT)
    gross = cell(first, COL_GROSS)
    if gross:
        weight = gross.replace(",", "")
    weight = _format_weight(weight)

    address, address_offset = _locate_address(window)
    if address_offset == 2:
        logger.debug(f"Address found on the third row for {location_name}: {address}")
    phone_row = window[address_offset]
    hours_row = window[address_offset + 1]

    standard, special = _extract_instructions(window)

    return Delivery(
        stop_number=cell(first, COL_STOP),
        location_id=cell(first, COL_LOCATION_ID),
        location_name=location_name,
        arrival=arrival,
        depart=depart,
        service=service,
        weight=weight,
        cube=cell(first, COL_CUBE),
        gross=gross,
        address=address,
        phone_number=extract_phone(cell(phone_row, COL_PHONE)),
        open_close_time=cell(hours_row, COL_OPEN_CLOSE),
        service_windows=cell(hours_row, COL_SERVICE_WINDOWS),
        standard_instructions=standard,
        special_instructions=special,
    )


def parse_break_row(row: Row) -> Delivery:
    arrival, depart, service = _times(row)
    return Delivery(
        location_name="Paid Break",
        arrival=arrival,
        depart=depart,
        service=service,
        is_break=True,
    )


def _depot_payload(row: Row, next_row: Row) -> Tuple[str, str]:
    """Pallets and weight picked up at a depot, read from the row after it."""
    pallets = cell(row, COL_CUBE)
    weight = ""

    numbers = numeric_tokens(next_row)
    if len(numbers) >= 3:
        _cases, pal, wgt = numbers[-3:]
        pallets = str(round_half_up(pal))
        weight = str(round_half_up(wgt))
    else:
        pallet_candidates = [n for n in numbers if 0 < n <= 100]
        if pallet_candidates:
            pallets = str(round_half_up(pallet_candidates[-1]))
        weight_candidates = [n for n in numbers if n >= 1000]
        if weight_candidates:
            weight = str(round_half_up(max(weight_candidates)))

    # Canonical PAL/WGT columns win when populated
    pal_column = to_number(cell(next_row, COL_CUBE))
    wgt_column = to_number(cell(next_row, COL_GROSS))
    if pal_column is not None and pal_column > 0:
        pallets = str(round_half_up(pal_column))
    if wgt_column is not None and wgt_column > 0:
        weight = str(round_half_up(wgt_column))

    return pallets, weight


def parse_depot_row(sheet: Sheet, index: int) -> Delivery:
    window = RowWindow(sheet, index, 2)
    row, next_row = window[0], window[1]
    arrival, depart, service = _times(row)
    pallets, weight = _depot_payload(row, next_row)
    gross = cell(row, COL_GROSS)
    if not weight and gross:
        weight = gross.replace(",", "")

    return Delivery(
        location_id=cell(row, COL_LOCATION_ID),
        location_name=cell(row, COL_LOCATION_NAME) or "Depot",
        arrival=arrival,
        depart=depart,
        service=service,
        weight=weight,
        cube=pallets,
        pallets=pallets,
        gross=gross,
        address=cell(next_row, COL_ADDRESS),
        is_depot_resupply=True,
    )


class OmnitracsParser:
    """Single forward scan over an Omnitracs report."""

    def __init__(self, sheet: Sheet):
        self.sheet = sheet
        self.routes: List[Route] = []
        self.current_route: Optional[Route] = None
        self.in_delivery_section = False

    @property
    def state(self) -> ParserState:
        if self.current_route is None:
            return ParserState.SEEKING_ROUTE_HEADER
        if not self.in_delivery_section:
            return ParserState.SEEKING_DELIVERY_SECTION
        return ParserState.IN_DELIVERY_SECTION

    def parse(self) -> ParsedRouteSet:
        for index, row in enumerate(self.sheet):
            self._scan_row(index, row or ())
        self._close_route()
        route_set = ParsedRouteSet.from_routes(self.routes)
        logger.info(
            f"Parsed {route_set.total_routes} Omnitracs routes "
            f"with {route_set.total_deliveries} deliveries"
        )
        return route_set

    def _close_route(self) -> None:
        if self.current_route is not None:
            self.routes.append(self.current_route)
            self.current_route = None

    def _scan_row(self, index: int, row: Row) -> None:
        first = cell(row, COL_STOP)

        route_match = ROUTE_ID.match(first)
        if route_match:
            self._close_route()
            self.current_route = Route(route_id=route_match.group(1).strip())

        route = self.current_route
        if route is not None:
            self._scan_route_header(route, row, first)

        if first == "Stop" and "Location" in cell(row, COL_LOCATION_ID):
            self.in_delivery_section = True

        if self.state is not ParserState.IN_DELIVERY_SECTION:
            return

        if STOP_NUMBER.match(first):
            route.deliveries.append(parse_delivery_block(self.sheet, index))

        lowered = first.lower()
        if lowered.startswith("paid break") or cell(row, COL_LOCATION_NAME).lower().startswith("paid break"):
            route.deliveries.append(parse_break_row(row))
        elif lowered == "depot":
            route.deliveries.append(parse_depot_row(self.sheet, index))

    def _scan_route_header(self, route: Route, row: Row, first: str) -> None:
        equipment = cell(row, COL_EQUIPMENT)
        if not route.equipment_type and equipment.startswith(EQUIPMENT_TYPES):
            route.equipment_type = equipment

        if not route.driver_id:
            driver_match = DRIVER.match(first)
            if driver_match:
                route.driver_id = driver_match.group(1).strip()
                route.driver_name = driver_match.group(2).strip()

        start_match = ROUTE_START.match(first)
        if start_match:
            route.route_start_time = start_match.group(1).strip()

        complete_match = ROUTE_COMPLETE.match(first)
        if complete_match:
            route.route_end_time = complete_match.group(1).strip()


def parse_omnitracs_rows(sheet: Sheet) -> ParsedRouteSet:
    """Parse an Omnitracs sheet given as a list of rows of cell strings."""
    return OmnitracsParser(sheet).parse()
