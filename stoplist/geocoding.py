"""
Two-pass geocoding of parsed routes.

Pass 1 geocodes every delivery that has an address. Pass 2 retries the rest
by location name, biased toward the nearest neighbouring stop that pass 1
resolved. Both passes run strictly sequentially with a delay between network
calls; the cache is saved once when the run finishes.
"""

import asyncio
import logging
from typing import List, Optional, Protocol

from .geocode_cache import GeocodeCache
from .integrations.nextbillion import ProximityBias
from .models import (
    Delivery, GeocodedWith, GeocodeResult, GeocodingStats,
    ParsedRouteSet, ProximityHint,
)


logger = logging.getLogger(__name__)

NO_QUERY_ERROR = "No address or location name provided"
PASS1_PROGRESS_EVERY = 25
PASS2_PROGRESS_EVERY = 10


class Geocoder(Protocol):
    async def geocode(self, query_text: str, proximity: Optional[ProximityBias] = None,
                      is_location_name_search: bool = False) -> GeocodeResult:
        ...


class RateLimitPolicy(Protocol):
    async def pause(self) -> None:
        """Called after every network geocode request."""
        ...


class FixedDelayPolicy:
    """Sleep a fixed interval after each request."""

    def __init__(self, delay_seconds: float = 0.05):
        self.delay_seconds = delay_seconds

    async def pause(self) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)


class NoDelayPolicy:
    """No throttling (tests, mock geocoder)."""

    async def pause(self) -> None:
        return None


def find_nearest_geocoded(deliveries: List[Delivery], index: int) -> Optional[ProximityHint]:
    """Nearest stop with coordinates, searching outward from ``index``.

    At equal distance the previous stop wins over the next one.
    """
    max_distance = max(index, len(deliveries) - index - 1)
    for distance in range(1, max_distance + 1):
        for direction, neighbour in (("previous", index - distance), ("next", index + distance)):
            if 0 <= neighbour < len(deliveries):
                geocode = deliveries[neighbour].geocode
                if geocode is not None and geocode.has_coordinates:
                    return ProximityHint(
                        lat=geocode.latitude,
                        lng=geocode.longitude,
                        distance=distance,
                        direction=direction,
                    )
    return None


class GeocodingResolver:
    """Populates ``delivery.geocode`` for every non-break delivery."""

    def __init__(self, geocoder: Geocoder, cache: GeocodeCache,
                 rate_limit: Optional[RateLimitPolicy] = None,
                 proximity_radius_m: int = 5000):
        self.geocoder = geocoder
        self.cache = cache
        self.rate_limit = rate_limit or FixedDelayPolicy()
        self.proximity_radius_m = proximity_radius_m

    async def resolve(self, route_set: ParsedRouteSet) -> ParsedRouteSet:
        """Run both passes over every route and attach aggregate stats."""
        route_set.refresh_totals()
        stats = GeocodingStats(total=route_set.total_deliveries)
        logger.info(f"Starting geocoding for {route_set.total_deliveries} deliveries...")

        logger.info("=== PASS 1: geocoding with addresses ===")
        await self._address_pass(route_set, stats)
        logger.info(f"Pass 1 complete: {stats.pass1.succeeded} succeeded, {stats.pass1.failed} failed")

        logger.info("=== PASS 2: geocoding with location names (proximity-based) ===")
        await self._location_name_pass(route_set, stats)
        logger.info(f"Pass 2 complete: {stats.pass2.succeeded} succeeded, {stats.pass2.failed} failed")

        for route in route_set.routes:
            for delivery in route.deliveries:
                if delivery.is_break:
                    continue
                if delivery.is_geocoded:
                    stats.succeeded += 1
                else:
                    stats.failed += 1

        self.cache.save()
        stats.cache_size = len(self.cache)
        route_set.geocoding_stats = stats

        logger.info(f"Total geocoded: {stats.succeeded} succeeded, {stats.failed} failed")
        logger.info(
            f"Cache stats: {stats.cache_hits} hits, {stats.cache_misses} misses "
            f"({stats.hit_rate:.1f}% hit rate)"
        )
        return route_set

    def _from_cache(self, delivery: Delivery, stats: GeocodingStats) -> Optional[GeocodeResult]:
        if not delivery.location_id:
            return None
        cached = self.cache.get(delivery.location_id)
        if cached is not None:
            stats.cache_hits += 1
        return cached

    async def _address_pass(self, route_set: ParsedRouteSet, stats: GeocodingStats) -> None:
        for route in route_set.routes:
            for delivery in route.deliveries:
                if delivery.is_break:
                    continue
                if not delivery.address.strip():
                    delivery.geocode = None
                    continue

                stats.pass1.processed += 1
                result = self._from_cache(delivery, stats)
                if result is None:
                    stats.cache_misses += 1
                    result = await self.geocoder.geocode(
                        delivery.address, proximity=None, is_location_name_search=False
                    )
                    result.geocoded_with = GeocodedWith.ADDRESS
                    if result.success and delivery.location_id:
                        self.cache.set(delivery.location_id, result)
                    await self.rate_limit.pause()

                delivery.geocode = result
                if result.success:
                    stats.pass1.succeeded += 1
                else:
                    stats.pass1.failed += 1

                if stats.pass1.processed % PASS1_PROGRESS_EVERY == 0:
                    logger.info(
                        f"Pass 1 progress: {stats.pass1.processed} processed "
                        f"({stats.pass1.succeeded} succeeded, {stats.pass1.failed} failed)"
                    )

    async def _location_name_pass(self, route_set: ParsedRouteSet, stats: GeocodingStats) -> None:
        for route in route_set.routes:
            for index, delivery in enumerate(route.deliveries):
                if delivery.is_break or delivery.is_geocoded:
                    continue
                if not delivery.location_name.strip():
                    delivery.geocode = GeocodeResult.failure(NO_QUERY_ERROR, address=delivery.address or None)
                    continue

                stats.pass2.processed += 1
                result = self._from_cache(delivery, stats)
                if result is None:
                    stats.cache_misses += 1
                    result = await self._geocode_by_name(route.deliveries, index)

                delivery.geocode = result
                if result.success:
                    stats.pass2.succeeded += 1
                else:
                    stats.pass2.failed += 1

                if stats.pass2.processed % PASS2_PROGRESS_EVERY == 0:
                    logger.info(
                        f"Pass 2 progress: {stats.pass2.processed} processed "
                        f"({stats.pass2.succeeded} succeeded, {stats.pass2.failed} failed)"
                    )

    async def _geocode_by_name(self, deliveries: List[Delivery], index: int) -> GeocodeResult:
        delivery = deliveries[index]
        hint = find_nearest_geocoded(deliveries, index)
        proximity = None
        if hint is not None:
            logger.info(
                f"  Using proximity hint from {hint.direction} stop "
                f"({hint.distance} stops away): {hint.lat},{hint.lng}"
            )
            proximity = ProximityBias(lat=hint.lat, lng=hint.lng, radius_m=self.proximity_radius_m)

        result = await self.geocoder.geocode(
            delivery.location_name, proximity=proximity, is_location_name_search=True
        )
        result.geocoded_with = GeocodedWith.LOCATION_NAME
        if hint is not None:
            result.proximity_hint = hint
        if result.success and delivery.location_id:
            self.cache.set(delivery.location_id, result)
        await self.rate_limit.pause()
        return result
