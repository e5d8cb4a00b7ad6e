"""
Stop-list router package.
Parses driver stop-list workbooks, geocodes every delivery and submits route optimizations.
"""

__version__ = "0.1.0"

from .geocode_cache import GeocodeCache
from .geocoding import GeocodingResolver
from .models import Delivery, GeocodeResult, ParsedRouteSet, Route
from .parsing import parse_workbook
from .service import StopListService

__all__ = [
    "StopListService",
    "GeocodeCache",
    "GeocodingResolver",
    "parse_workbook",
    "ParsedRouteSet",
    "Route",
    "Delivery",
    "GeocodeResult",
]
