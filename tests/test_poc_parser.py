"""
Tests for the POC stop-list parser and column resolution.
"""

import pytest

from stoplist.errors import NoRoutesFoundError, WorkbookError
from stoplist.parsing.poc import (
    UNSPECIFIED_ROUTE, ColumnMap, MatchStrategy, compose_address,
    normalize_route_key, parse_poc_rows,
)
from stoplist.parsing.workbook import (
    LAYOUT_OMNITRACS, LAYOUT_POC, detect_layout, parse_rows, rows_to_records,
)


HEADERS = [
    "Route", "Stop #", "Store #", "Ship-To Name", "Address", "City", "State", "Zip",
    "Day", "Earliest", "Latest", "Driver",
]


def make_record(**values):
    record = {header: "" for header in HEADERS}
    record.update(values)
    return record


def create_test_rows():
    return [
        make_record(**{"Route": "055", "Stop #": "1", "Store #": "1001", "Ship-To Name": "Acme",
                       "Address": "123 Main St", "City": "Atlanta", "State": "GA", "Zip": "30301",
                       "Day": "Monday", "Earliest": "8", "Latest": "3", "Driver": "John"}),
        make_record(**{"Route": "55", "Stop #": "2", "Ship-To Name": "Beta Foods",
                       "Address": "9 Elm St", "City": "Decatur", "State": "GA", "Zip": "30030",
                       "Day": "M", "Driver": "Somebody Else"}),
        make_record(**{"Stop #": "1", "Address": "77 Oak Rd", "City": "Marietta", "State": "GA",
                       "Zip": "30060", "Day": "T", "Earliest": "7:30", "Latest": "14:00"}),
        make_record(**{"Route": "12"}),
        make_record(**{"Route": "055", "Stop #": "3", "Store #": "1003", "Ship-To Name": "Lunch Break"}),
    ]


def test_exact_header_resolution():
    columns = ColumnMap.resolve(HEADERS)

    assert columns.header("route") == "Route"
    assert columns.header("stop_number") == "Stop #"
    assert columns.header("location_id") == "Store #"
    assert columns.header("location_name") == "Ship-To Name"
    assert columns.header("driver_name") == "Driver"
    assert columns.columns["zip"].strategy is MatchStrategy.EXACT
    assert "phone" not in columns


def test_contains_fallback():
    columns = ColumnMap.resolve(["Delivery Address Line", "Customer Name", "Town City"])

    assert columns.header("address") == "Delivery Address Line"
    assert columns.columns["address"].strategy is MatchStrategy.CONTAINS
    assert columns.header("city") == "Town City"
    assert columns.header("location_name") == "Customer Name"
    # Two-letter aliases never match by substring
    assert "state" not in columns


def test_day_column_is_never_the_route():
    columns = ColumnMap.resolve(["Day", "Customer Name", "Address"])

    assert "route" not in columns
    assert columns.header("day") == "Day"


def test_route_grouping_and_unspecified():
    """'055' and '55' share a route; blank route ids group under UNSPECIFIED."""
    route_set = parse_poc_rows(create_test_rows(), headers=HEADERS)

    assert [r.route_id for r in route_set.routes] == ["55", UNSPECIFIED_ROUTE]
    assert route_set.total_routes == 2
    assert route_set.total_deliveries == 4

    route = route_set.routes[0]
    assert route.driver_name == "John"
    assert [d.location_name for d in route.deliveries] == ["Acme", "Beta Foods", "Lunch Break"]


def test_delivery_fields():
    route_set = parse_poc_rows(create_test_rows(), headers=HEADERS)
    acme, beta, lunch = route_set.routes[0].deliveries
    unspecified = route_set.routes[1].deliveries[0]

    assert acme.location_id == "1001"
    assert acme.address == "123 Main St, Atlanta, GA 30301"
    assert acme.open_close_time == "08:00-15:00"
    assert acme.day == "M"

    # Location id falls back to the name, then to the address parts
    assert beta.location_id == "Beta Foods"
    assert beta.open_close_time == "09:00-16:00"
    assert unspecified.location_id == "77 Oak Rd|Marietta|GA|30060"
    assert unspecified.open_close_time == "07:30-14:00"

    assert lunch.is_break is True
    assert acme.is_break is False


def test_day_dates_set_route_bounds():
    route_set = parse_poc_rows(create_test_rows(), headers=HEADERS, day_dates={"m": "10/13/2025"})
    route, unspecified = route_set.routes

    assert route.route_start_time == "10/13/2025 04:00"
    assert route.route_end_time == "10/13/2025 23:59"
    assert unspecified.route_start_time == ""


def test_no_route_column_means_single_route():
    rows = [
        {"Customer Name": "A Shop", "Address": "1 First St", "City": "Atlanta"},
        {"Customer Name": "B Shop", "Address": "2 Second St", "City": "Atlanta"},
    ]
    route_set = parse_poc_rows(rows)

    assert [r.route_id for r in route_set.routes] == [UNSPECIFIED_ROUTE]
    assert len(route_set.routes[0].deliveries) == 2


def test_normalize_route_key():
    assert normalize_route_key("055") == "55"
    assert normalize_route_key("55.0") == "55"
    assert normalize_route_key(" R-7 ") == "R-7"
    assert normalize_route_key("") == UNSPECIFIED_ROUTE
    assert normalize_route_key("Day") == UNSPECIFIED_ROUTE


def test_compose_address():
    assert compose_address("1 First St,", "Atlanta", "GA", "30301") == "1 First St, Atlanta, GA 30301"
    assert compose_address("1 First St", "", "GA", "") == "1 First St, GA"
    assert compose_address("", "", "", "") == ""


def test_detect_layout():
    poc_rows = [HEADERS, ["1", "1", "1001", "Acme"]]
    omnitracs_rows = [["Route Id: R1"], ["E1: Driver"]]

    assert detect_layout("POC Week 42.xlsx", omnitracs_rows) == LAYOUT_POC
    assert detect_layout("ATL-routes.xlsx", poc_rows) == LAYOUT_POC
    assert detect_layout("ATL-routes.xlsx", omnitracs_rows) == LAYOUT_OMNITRACS
    assert detect_layout(None, []) == LAYOUT_OMNITRACS


def test_rows_to_records_pads_short_rows():
    headers, records = rows_to_records([["Route", "Address", ""], ["7"]])

    assert headers == ["Route", "Address", ""]
    assert records == [{"Route": "7", "Address": ""}]


def test_parse_rows_without_routes():
    with pytest.raises(NoRoutesFoundError):
        parse_rows([["nothing", "to", "see"]], "omnitracs", file_name="empty.xlsx")


def test_parse_rows_rejects_unknown_layout():
    with pytest.raises(WorkbookError):
        parse_rows([], "csv")


def test_store_number_is_the_location_id():
    columns = ColumnMap.resolve(["Store #", "Ship-To Name", "Address Line 1", "City"])

    assert columns.header("location_id") == "Store #"
    assert columns.header("location_name") == "Ship-To Name"
    assert columns.header("address") == "Address Line 1"
