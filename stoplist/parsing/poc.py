"""
Parser for flat POC stop-list reports.

One header row, one data row per delivery. Column names differ between
exports, so every logical field is resolved against a list of aliases.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..models import Delivery, ParsedRouteSet, Route
from ..util.time_utils import day_bounds, time_window
from .rows import as_text


logger = logging.getLogger(__name__)

UNSPECIFIED_ROUTE = "UNSPECIFIED"
DAY_LETTERS = ("M", "T", "W", "R", "F")
NUMERIC = re.compile(r"^\d+(?:\.\d+)?$")

FIELD_ALIASES: Dict[str, tuple] = {
    "route": ("route", "route id", "route #", "route number", "route no", "route name", "truck #"),
    "stop_number": ("stop", "stop #", "stop number", "stop no", "stop sequence", "sequence"),
    "location_id": (
        "location id", "customer id", "customer #", "customer number", "store #",
        "store number", "store id", "ship-to id", "ship to id", "ship-to #",
        "account #", "account number",
    ),
    "location_name": (
        "location name", "customer name", "store name", "ship-to name", "ship to name",
        "account name", "location", "customer", "name",
    ),
    "address": (
        "address", "address line 1", "address 1", "street", "street address",
        "ship-to address", "ship to address",
    ),
    "city": ("city", "ship-to city", "ship to city"),
    "state": ("state", "st", "province", "ship-to state", "ship to state"),
    "zip": ("zip", "zip code", "zipcode", "postal code", "postal", "ship-to zip"),
    "day": ("day", "delivery day", "day of week"),
    "earliest": (
        "earliest", "earliest time", "earliest delivery", "open", "open time",
        "window start", "time window start",
    ),
    "latest": (
        "latest", "latest time", "latest delivery", "close", "close time",
        "window end", "time window end",
    ),
    "driver_name": ("driver", "driver name"),
    "equipment_type": ("equipment", "equipment type", "trailer type", "vehicle type"),
    "route_start": ("route start", "route start time", "dispatch time"),
    "route_end": ("route end", "route end time", "route complete time"),
    "phone": ("phone", "phone number", "telephone", "contact phone"),
    "service": ("service", "service time", "service minutes"),
    "weight": ("weight", "gross weight", "lbs"),
    "cube": ("cube", "cases", "pallets"),
    "instructions": ("instructions", "delivery instructions", "special instructions", "notes", "comments"),
}

# Fields never bound by substring matching ("Day" must not become the route)
EXACT_ONLY_FIELDS = frozenset({"route"})
MIN_CONTAINS_ALIAS = 3


class MatchStrategy(str, Enum):
    """How a header was bound to a logical field."""
    EXACT = "exact"
    CONTAINS = "contains"


@dataclass(frozen=True)
class ResolvedColumn:
    field: str
    header: str
    strategy: MatchStrategy


def _norm(text: Any) -> str:
    return as_text(text).lower()


class ColumnMap:
    """Logical field -> sheet header, resolved once per sheet."""

    def __init__(self, columns: Dict[str, ResolvedColumn]):
        self.columns = columns

    @classmethod
    def resolve(cls, headers: Sequence[str],
                aliases: Mapping[str, Sequence[str]] = FIELD_ALIASES) -> "ColumnMap":
        headers = [h for h in headers if as_text(h)]
        columns: Dict[str, ResolvedColumn] = {}

        # Exact alias matches claim their headers first
        for field, names in aliases.items():
            header = cls._exact(headers, names)
            if header is not None:
                columns[field] = ResolvedColumn(field, header, MatchStrategy.EXACT)

        claimed = {c.header for c in columns.values()}
        for field, names in aliases.items():
            if field in columns or field in EXACT_ONLY_FIELDS:
                continue
            header = cls._contains([h for h in headers if h not in claimed], names)
            if header is not None:
                columns[field] = ResolvedColumn(field, header, MatchStrategy.CONTAINS)
                claimed.add(header)

        for column in columns.values():
            logger.debug(f"POC column {column.field!r} -> {column.header!r} ({column.strategy.value})")
        return cls(columns)

    @staticmethod
    def _exact(headers: Sequence[str], names: Sequence[str]) -> Optional[str]:
        by_name = {}
        for header in headers:
            by_name.setdefault(_norm(header), header)
        for name in names:
            if name in by_name:
                return by_name[name]
        return None

    @staticmethod
    def _contains(headers: Sequence[str], names: Sequence[str]) -> Optional[str]:
        for name in names:
            if len(name) < MIN_CONTAINS_ALIAS:
                continue
            for header in headers:
                if name in _norm(header):
                    return header
        return None

    def header(self, field: str) -> Optional[str]:
        column = self.columns.get(field)
        return column.header if column else None

    def get(self, row: Mapping[str, Any], field: str) -> str:
        header = self.header(field)
        if header is None:
            return ""
        return as_text(row.get(header))

    def __contains__(self, field: str) -> bool:
        return field in self.columns

    def __len__(self) -> int:
        return len(self.columns)


def normalize_route_key(value: str) -> str:
    """'055' and '55' group together; blank and 'day' become UNSPECIFIED."""
    value = as_text(value)
    if not value or value.lower() == "day":
        return UNSPECIFIED_ROUTE
    if NUMERIC.match(value):
        return str(int(float(value)))
    return value


def day_token(value: str) -> str:
    letter = as_text(value)[:1].upper()
    return letter if letter in DAY_LETTERS else ""


def compose_address(street: str, city: str, state: str, zip_code: str) -> str:
    """'<street>, <city>, <state> <zip>' without doubled separators."""
    parts = [p.strip().strip(",").strip() for p in (street, city)]
    region = " ".join(p for p in (state.strip().strip(","), zip_code.strip()) if p)
    return ", ".join(p for p in (*parts, region) if p)


class PocParser:
    """Builds routes from header-labelled rows."""

    def __init__(self, rows: Sequence[Mapping[str, Any]], headers: Optional[Sequence[str]] = None,
                 day_dates: Optional[Mapping[str, str]] = None,
                 route_start_time: str = "04:00", route_end_time: str = "23:59"):
        self.rows = list(rows)
        if headers is None:
            headers = list(self.rows[0].keys()) if self.rows else []
        self.columns = ColumnMap.resolve(headers)
        self.day_dates = {k.upper(): v for k, v in (day_dates or {}).items()}
        self.route_start_time = route_start_time
        self.route_end_time = route_end_time

    def parse(self) -> ParsedRouteSet:
        routes = [self._build_route(key, group) for key, group in self._group_rows().items()]
        routes = [r for r in routes if r.deliveries]
        route_set = ParsedRouteSet.from_routes(routes)
        logger.info(
            f"Parsed {route_set.total_routes} POC routes "
            f"with {route_set.total_deliveries} deliveries"
        )
        return route_set

    def _group_rows(self) -> Dict[str, List[Mapping[str, Any]]]:
        groups: Dict[str, List[Mapping[str, Any]]] = {}
        has_route = "route" in self.columns
        if not has_route:
            logger.warning("No route column found - treating all rows as one route")
        for row in self.rows:
            key = normalize_route_key(self.columns.get(row, "route")) if has_route else UNSPECIFIED_ROUTE
            groups.setdefault(key, []).append(row)
        return groups

    def _build_route(self, route_id: str, rows: List[Mapping[str, Any]]) -> Route:
        first = rows[0]
        route = Route(
            route_id=route_id,
            driver_name=self.columns.get(first, "driver_name"),
            equipment_type=self.columns.get(first, "equipment_type"),
            route_start_time=self.columns.get(first, "route_start"),
            route_end_time=self.columns.get(first, "route_end"),
        )
        for row in rows:
            delivery = self._build_delivery(row)
            if delivery is not None:
                route.deliveries.append(delivery)

        day = next((d.day for d in route.deliveries if d.day), "")
        if day and day in self.day_dates:
            route.route_start_time, route.route_end_time = day_bounds(
                self.day_dates[day], self.route_start_time, self.route_end_time
            )
        elif day:
            logger.warning(f"No calendar date configured for day {day!r} (route {route_id})")
        return route

    def _build_delivery(self, row: Mapping[str, Any]) -> Optional[Delivery]:
        get = self.columns.get
        stop_number = get(row, "stop_number")
        name = get(row, "location_name")
        street = get(row, "address")
        city = get(row, "city")
        if not (stop_number or name or street or city):
            return None

        state = get(row, "state")
        zip_code = get(row, "zip")
        location_id = get(row, "location_id") or name or "|".join((street, city, state, zip_code))

        return Delivery(
            location_id=location_id,
            stop_number=stop_number,
            location_name=name,
            address=compose_address(street, city, state, zip_code),
            phone_number=get(row, "phone"),
            service=get(row, "service"),
            weight=get(row, "weight"),
            cube=get(row, "cube"),
            open_close_time=time_window(get(row, "earliest"), get(row, "latest")),
            standard_instructions=get(row, "instructions"),
            day=day_token(get(row, "day")),
            is_break="break" in name.lower(),
        )


def parse_poc_rows(rows: Sequence[Mapping[str, Any]], headers: Optional[Sequence[str]] = None,
                   day_dates: Optional[Mapping[str, str]] = None, **kwargs) -> ParsedRouteSet:
    """Parse POC rows given as dicts keyed by header text."""
    return PocParser(rows, headers=headers, day_dates=day_dates, **kwargs).parse()
