"""CSV export of parsed and geocoded routes."""

import csv
import io
from datetime import datetime
from typing import Iterable, List, Optional

from .models import Route

CSV_HEADERS = [
    "Route ID",
    "Driver Name",
    "Route Start Time",
    "Route End Time",
    "Stop #",
    "Location ID",
    "Location Name",
    "Arrival",
    "Depart",
    "Service",
    "Weight",
    "Cube",
    "Gross",
    "Address",
    "Phone Number",
    "Open/Close Time",
    "Service Windows",
    "Standard Instructions",
    "Special Instructions",
    "Latitude",
    "Longitude",
    "Geocoded With",
]


def _row(route: Route, delivery) -> List[str]:
    geocode = delivery.geocode
    located = geocode is not None and geocode.has_coordinates
    return [
        route.route_id,
        route.driver_name,
        route.route_start_time,
        route.route_end_time,
        delivery.stop_number,
        delivery.location_id,
        delivery.location_name,
        delivery.arrival,
        delivery.depart,
        delivery.service,
        delivery.weight,
        delivery.cube,
        delivery.gross,
        delivery.address,
        delivery.phone_number,
        delivery.open_close_time,
        delivery.service_windows,
        delivery.standard_instructions,
        delivery.special_instructions,
        f"{geocode.latitude:.6f}" if located else "",
        f"{geocode.longitude:.6f}" if located else "",
        geocode.geocoded_with.value if located and geocode.geocoded_with else "",
    ]


def routes_to_csv(routes: Iterable[Route]) -> str:
    """One CSV line per delivery, in route then stop order."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for route in routes:
        for delivery in route.deliveries:
            writer.writerow(_row(route, delivery))
    return buffer.getvalue()


def export_filename(now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"stoplist-routes-{stamp}.csv"
