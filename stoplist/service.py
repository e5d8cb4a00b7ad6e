"""
Main service layer for stop-list processing.
Orchestrates workbook parsing, geocoding, saved uploads, export and optimization.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import OptimizationError, UploadNotFoundError, WorkbookError
from .export import routes_to_csv
from .geocode_cache import GeocodeCache
from .geocoding import FixedDelayPolicy, Geocoder, GeocodingResolver, NoDelayPolicy, RateLimitPolicy
from .integrations.nextbillion import MockGeocoder, NextBillionGeocoder, NextBillionOptimizer
from .models import ParsedRouteSet
from .optimization import RouteOptimizer, resolve_depot
from .parsing.workbook import LAYOUT_AUTO, parse_workbook
from .repo import SavedUpload, UploadRepository
from .schemas import AppConfig, Settings


logger = logging.getLogger(__name__)


class StopListService:
    """Main service for stop-list ingestion and routing."""

    def __init__(self, config_path: Optional[str] = None,
                 config: Optional[AppConfig] = None,
                 settings: Optional[Settings] = None,
                 geocoder: Optional[Geocoder] = None,
                 rate_limit: Optional[RateLimitPolicy] = None,
                 optimizer_client: Optional[NextBillionOptimizer] = None):
        """Initialize service with configuration."""
        self.settings = settings or Settings()
        self.config = config or AppConfig.load(config_path or self.settings.stoplist_config)
        self._setup_logging()

        self.repo = UploadRepository(self.config.database)
        self.repo.create_tables()

        self.cache = GeocodeCache(self.config.cache.path)
        if self.config.cache.prune_on_start:
            self.cache.prune_old_entries(self.config.cache.retention_days)

        if geocoder is not None:
            self.geocoder = geocoder
        elif self.config.dev.mock_geocoder:
            logger.info("Using mock geocoder")
            self.geocoder = MockGeocoder()
        else:
            self.geocoder = NextBillionGeocoder(self.config.geocoding, self.settings.nextbillion_api_key)

        if rate_limit is None:
            rate_limit = (NoDelayPolicy() if self.config.dev.mock_geocoder
                          else FixedDelayPolicy(self.config.geocoding.request_delay_ms / 1000.0))
        self.resolver = GeocodingResolver(
            self.geocoder, self.cache,
            rate_limit=rate_limit,
            proximity_radius_m=self.config.geocoding.proximity_radius_m,
        )
        self._optimizer_client = optimizer_client

    def _setup_logging(self) -> None:
        """Setup logging configuration."""
        logging.basicConfig(
            level=getattr(logging, self.config.logging.level),
            format=self.config.logging.format
        )

    def _route_optimizer(self) -> RouteOptimizer:
        if self._optimizer_client is None:
            self._optimizer_client = NextBillionOptimizer(
                self.config.optimization, self.settings.nextbillion_api_key
            )
        return RouteOptimizer(self._optimizer_client, self.config.optimization)

    def validate_upload(self, file_name: str, size: int) -> None:
        suffix = Path(file_name or "").suffix.lower()
        allowed = self.config.uploads.allowed_extensions
        if suffix not in allowed:
            raise WorkbookError(f"Only {', '.join(allowed)} files are allowed")
        max_bytes = self.config.uploads.max_file_size_mb * 1024 * 1024
        if size > max_bytes:
            raise WorkbookError(f"File exceeds the {self.config.uploads.max_file_size_mb} MB limit")

    def parse(self, file_name: str, payload: bytes, layout: str = LAYOUT_AUTO) -> ParsedRouteSet:
        return parse_workbook(
            payload, file_name=file_name, layout=layout,
            day_dates=self.config.poc.day_dates,
            route_start_time=self.config.poc.route_start_time,
            route_end_time=self.config.poc.route_end_time,
        )

    async def geocode(self, route_set: ParsedRouteSet) -> ParsedRouteSet:
        for route in route_set.routes:
            route.status = "in progress"
        await self.resolver.resolve(route_set)
        for route in route_set.routes:
            route.status = "complete"
        return route_set

    async def process_workbook(self, file_name: str, payload: bytes,
                               layout: str = LAYOUT_AUTO, save: bool = True) -> Dict[str, Any]:
        """
        Parse, geocode and (optionally) save an uploaded workbook.

        Returns:
            The parsed-output payload plus fileName and uploadId
        """
        self.validate_upload(file_name, len(payload))
        logger.info(f"Processing file: {file_name}")

        route_set = self.parse(file_name, payload, layout)
        logger.info(f"Successfully parsed {route_set.total_routes} routes")

        await self.geocode(route_set)
        logger.info("Geocoding complete for all routes")

        result = route_set.to_payload()
        result["fileName"] = file_name
        result["uploadId"] = None
        if save:
            upload = self.repo.save_upload(file_name, route_set)
            result["uploadId"] = upload.id
        return result

    def list_uploads(self) -> List[Dict[str, Any]]:
        return [upload.summary() for upload in self.repo.list_uploads()]

    def find_upload(self, upload_id: str) -> SavedUpload:
        upload = self.repo.get_upload(upload_id)
        if upload is None:
            raise UploadNotFoundError(upload_id)
        return upload

    def load_upload(self, upload_id: str) -> ParsedRouteSet:
        return self.find_upload(upload_id).route_set()

    def get_upload(self, upload_id: str) -> Dict[str, Any]:
        upload = self.find_upload(upload_id)
        result = upload.route_set().to_payload()
        result.update({"fileName": upload.file_name, "uploadId": upload.id})
        return result

    def delete_upload(self, upload_id: str) -> bool:
        return self.repo.delete_upload(upload_id)

    def export_csv(self, upload_id: str) -> str:
        return routes_to_csv(self.load_upload(upload_id).routes)

    def clear_cache(self) -> int:
        cleared = len(self.cache)
        self.cache.clear()
        logger.info(f"Cache cleared: {cleared} entries removed")
        return cleared

    def prune_cache(self, days: Optional[int] = None) -> int:
        return self.cache.prune_old_entries(days or self.config.cache.retention_days)

    async def optimize_route(self, upload_id: str, route_id: str,
                             depot: Optional[str] = None) -> Dict[str, Any]:
        upload = self.find_upload(upload_id)
        return await self.optimize_route_set(upload.route_set(), route_id, depot, upload.file_name)

    async def optimize_all(self, upload_id: str, depot: Optional[str] = None) -> Dict[str, Any]:
        upload = self.find_upload(upload_id)
        return await self.optimize_all_routes(upload.route_set(), depot, upload.file_name)

    async def optimize_route_set(self, route_set: ParsedRouteSet, route_id: str,
                                 depot: Optional[str] = None,
                                 file_name: Optional[str] = None) -> Dict[str, Any]:
        route = route_set.find_route(route_id)
        if route is None:
            raise OptimizationError(f"Route {route_id} not found")
        depot_location = resolve_depot(depot, file_name, self.config.optimization.depots_by_prefix)
        return await self._route_optimizer().optimize_route(route, depot_location)

    async def optimize_all_routes(self, route_set: ParsedRouteSet, depot: Optional[str] = None,
                                  file_name: Optional[str] = None,
                                  submit_concurrency: Optional[int] = None,
                                  poll_concurrency: Optional[int] = None) -> Dict[str, Any]:
        depot_location = resolve_depot(depot, file_name, self.config.optimization.depots_by_prefix)
        return await self._route_optimizer().optimize_all(
            route_set, depot_location, submit_concurrency, poll_concurrency
        )

    async def optimize_custom(self, request_body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._route_optimizer().optimize_custom(request_body)

    def health_check(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "database_connected": self.repo.health_check(),
            "geocoder_configured": bool(self.settings.nextbillion_api_key) or self.config.dev.mock_geocoder,
            "cache_entries": len(self.cache),
            "timestamp": datetime.now().isoformat(),
        }

    async def close(self) -> None:
        """Persist the cache and close remote clients."""
        self.cache.close()
        await self.geocoder.close()
        if self._optimizer_client is not None:
            await self._optimizer_client.close()
