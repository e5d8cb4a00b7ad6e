"""
Builds NextBillion optimization requests from geocoded routes and runs them.

Each route is optimized twice: once pinned to the planned stop order
(in-sequence) and once free (no-sequence), so the two plans can be compared.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import OptimizationError
from .integrations.nextbillion import NextBillionOptimizer
from .models import ParsedRouteSet, Route
from .schemas import OptimizationConfig
from .util.time_utils import duration_seconds, route_start_epoch, shift_end, window_epochs


logger = logging.getLogger(__name__)

LAYOVER_CONFIG = {
    "max_continuous_time": 18000,
    "layover_duration": 1800,
    "include_service_time": True,
}


def resolve_depot(depot: Optional[str], file_name: Optional[str],
                  depots_by_prefix: Dict[str, str]) -> str:
    """Explicit depot 'lat,lng', else the depot configured for the file-name prefix."""
    if depot:
        return depot.replace(" ", "")
    name = Path(file_name).name if file_name else ""
    for prefix, location in depots_by_prefix.items():
        if name.startswith(prefix):
            return location
    raise OptimizationError("Depot location is required for route optimization")


class OptimizationRequestBuilder:
    """Translates a Route into in-sequence and no-sequence request bodies."""

    def __init__(self, config: OptimizationConfig):
        self.config = config

    def build(self, route: Route, depot: str) -> Dict[str, Dict[str, Any]]:
        locations: List[str] = []
        index_by_key: Dict[str, int] = {}

        def add_location(key: str, latlng: str) -> int:
            if key not in index_by_key:
                index_by_key[key] = len(locations)
                locations.append(latlng)
            return index_by_key[key]

        depot_index = add_location("depot", depot)

        jobs: List[Dict[str, Any]] = []
        for delivery in route.deliveries:
            geocode = delivery.geocode
            if geocode is None or not geocode.has_coordinates:
                continue
            location_index = add_location(
                f"stop-{delivery.stop_number}", f"{geocode.latitude},{geocode.longitude}"
            )
            start, end = window_epochs(
                delivery.open_close_time, route.route_start_time, delivery.arrival, delivery.depart
            )
            jobs.append({
                "id": f"{delivery.stop_number}-{route.route_id}",
                "description": (
                    f"{delivery.stop_number}|{delivery.location_name}|{delivery.address}"
                    f"|{delivery.arrival}-{delivery.depart}"
                ),
                "service": duration_seconds(delivery.service),
                "location_index": location_index,
                "time_windows": [[start, end]],
            })

        shift_start = route_start_epoch(route.route_start_time)
        vehicle = {
            "id": route.route_id,
            "description": f"{route.route_id}-{route.driver_name}-{len(route.deliveries)}",
            "time_window": [shift_start, shift_end(shift_start, self.config.shift_hours)],
            "start_index": depot_index,
            "end_index": depot_index,
            "layover_config": dict(LAYOVER_CONFIG),
        }

        # Only the first pinned job keeps its time window
        jobs_in_sequence = []
        for order, job in enumerate(jobs, start=1):
            pinned = dict(job, sequence_order=order)
            if order > 1:
                pinned.pop("time_windows")
            jobs_in_sequence.append(pinned)

        return {
            "in_sequence": self._body(locations, vehicle, jobs_in_sequence,
                                      f"Optimization (in-sequence) for {route.route_id}"),
            "no_sequence": self._body(locations, vehicle, jobs,
                                      f"Optimization (no sequence) for {route.route_id}"),
        }

    def _body(self, locations: List[str], vehicle: Dict[str, Any],
              jobs: List[Dict[str, Any]], description: str) -> Dict[str, Any]:
        return {
            "locations": {"location": list(locations)},
            "vehicles": [dict(vehicle)],
            "jobs": jobs,
            "options": {
                "routing": {"mode": "truck", "traffic_timestamp": self.config.traffic_timestamp},
                "objective": {"travel_cost": "duration"},
            },
            "description": description,
        }


def _unassigned_count(result: Dict[str, Any]) -> int:
    unassigned = (result.get("result") or {}).get("unassigned")
    return len(unassigned) if isinstance(unassigned, list) else 0


def _summary(result: Dict[str, Any]) -> Any:
    return (result.get("result") or {}).get("summary")


class RouteOptimizer:
    """Submits per-route optimization requests with bounded concurrency."""

    def __init__(self, client: NextBillionOptimizer, config: OptimizationConfig):
        self.client = client
        self.config = config
        self.builder = OptimizationRequestBuilder(config)

    async def optimize_route(self, route: Route, depot: str,
                             submit_limit: Optional[asyncio.Semaphore] = None,
                             poll_limit: Optional[asyncio.Semaphore] = None) -> Dict[str, Any]:
        bodies = self.builder.build(route, depot)
        submit_limit = submit_limit or asyncio.Semaphore(self.config.submit_concurrency)
        poll_limit = poll_limit or asyncio.Semaphore(self.config.poll_concurrency)

        async def submit(body: Dict[str, Any]) -> str:
            async with submit_limit:
                return await self.client.submit(body)

        async def poll(request_id: str) -> Dict[str, Any]:
            async with poll_limit:
                return await self.client.poll(request_id)

        id_in_seq = await submit(bodies["in_sequence"])
        id_no_seq = await submit(bodies["no_sequence"])
        result_in_seq, result_no_seq = await asyncio.gather(poll(id_in_seq), poll(id_no_seq))

        logger.info(f"Optimization complete for route {route.route_id}")
        return {
            "routeId": route.route_id,
            "requestId": id_no_seq,
            "requestIds": {"inSequence": id_in_seq, "noSequence": id_no_seq},
            "result": result_no_seq,
            "summaries": {
                "inSequence": _summary(result_in_seq),
                "noSequence": _summary(result_no_seq),
            },
            "unassignedCounts": {
                "inSequence": _unassigned_count(result_in_seq),
                "noSequence": _unassigned_count(result_no_seq),
            },
        }

    async def optimize_all(self, route_set: ParsedRouteSet, depot: str,
                           submit_concurrency: Optional[int] = None,
                           poll_concurrency: Optional[int] = None) -> Dict[str, Any]:
        """Optimize every route concurrently under the submit/poll limits."""
        submit_limit = asyncio.Semaphore(submit_concurrency or self.config.submit_concurrency)
        poll_limit = asyncio.Semaphore(poll_concurrency or self.config.poll_concurrency)
        results = await asyncio.gather(*[
            self.optimize_route(route, depot, submit_limit, poll_limit)
            for route in route_set.routes
        ])
        return {"routes": list(results)}

    async def optimize_custom(self, request_body: Dict[str, Any]) -> Dict[str, Any]:
        return await self.client.submit_and_poll(request_body)
