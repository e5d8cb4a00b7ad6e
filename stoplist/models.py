"""
Core data models for stop-list processing.
Uses Pydantic for validation; JSON payloads use camelCase field names.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_payload(self) -> dict:
        """Dump to the camelCase JSON shape consumed by the dashboard."""
        return self.model_dump(mode="json", by_alias=True)


class GeocodedWith(str, Enum):
    """Which delivery field produced a geocode."""
    ADDRESS = "address"
    LOCATION_NAME = "locationName"


class ProximityHint(CamelModel):
    """Neighbouring stop used to bias a location-name search."""
    lat: float
    lng: float
    distance: int  # stops away from the delivery being resolved
    direction: str  # 'previous' or 'next'


class GeocodeResult(CamelModel):
    """Outcome of a single geocode lookup."""
    success: bool
    address: Optional[str] = None  # query text sent to the geocoder
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    formatted_address: Optional[str] = None
    confidence: Optional[float] = None
    geocoded_with: Optional[GeocodedWith] = None
    proximity_hint: Optional[ProximityHint] = None
    used_proximity_hint: bool = False
    cached_at: Optional[datetime] = None
    from_cache: bool = False
    error: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.success and self.latitude is not None and self.longitude is not None

    @classmethod
    def failure(cls, error: str, address: Optional[str] = None) -> "GeocodeResult":
        return cls(success=False, error=error, address=address)


class Delivery(CamelModel):
    """One stop (or break/depot pseudo-stop) within a route."""
    location_id: str = ""
    stop_number: str = ""
    location_name: str = ""
    address: str = ""
    arrival: str = ""
    depart: str = ""
    service: str = ""
    weight: str = ""
    cube: str = ""
    gross: str = ""
    pallets: str = ""
    phone_number: str = ""
    open_close_time: str = ""
    service_windows: str = ""
    standard_instructions: str = ""
    special_instructions: str = ""
    day: str = ""
    is_break: bool = False
    is_depot_resupply: bool = False
    geocode: Optional[GeocodeResult] = None

    @property
    def is_geocoded(self) -> bool:
        return self.geocode is not None and self.geocode.success


class Route(CamelModel):
    """One vehicle's planned stop sequence."""
    route_id: str
    driver_id: str = ""
    driver_name: str = ""
    equipment_type: str = ""
    route_start_time: str = ""
    route_end_time: str = ""
    status: str = ""
    deliveries: List[Delivery] = Field(default_factory=list)


class PassStats(CamelModel):
    """Counters for a single geocoding pass."""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0


class GeocodingStats(CamelModel):
    """Aggregate counters for a two-pass geocoding run."""
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_size: int = 0
    pass1: PassStats = Field(default_factory=PassStats)
    pass2: PassStats = Field(default_factory=PassStats)

    @property
    def hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return (self.cache_hits / lookups * 100.0) if lookups else 0.0


class ParsedRouteSet(CamelModel):
    """Routes extracted from one sheet, optionally annotated with geocoding stats."""
    routes: List[Route] = Field(default_factory=list)
    total_routes: int = 0
    total_deliveries: int = 0
    geocoding_stats: Optional[GeocodingStats] = None

    @classmethod
    def from_routes(cls, routes: List[Route]) -> "ParsedRouteSet":
        route_set = cls(routes=routes)
        route_set.refresh_totals()
        return route_set

    def refresh_totals(self) -> None:
        self.total_routes = len(self.routes)
        self.total_deliveries = sum(len(route.deliveries) for route in self.routes)

    def find_route(self, route_id: str) -> Optional[Route]:
        for route in self.routes:
            if route.route_id == route_id:
                return route
        return None
