"""
NextBillion.ai integration for geocoding and route optimization.
Geocoding failures are returned as unsuccessful results; optimization
failures raise OptimizationError.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..errors import OptimizationError
from ..models import GeocodeResult
from ..schemas import GeocodingConfig, OptimizationConfig


logger = logging.getLogger(__name__)


@dataclass
class ProximityBias:
    """Circle a location-name search is restricted to."""
    lat: float
    lng: float
    radius_m: int = 5000

    def to_param(self) -> str:
        return f"circle:{self.lat},{self.lng};r={self.radius_m}"


def _redact(params: Dict[str, Any]) -> Dict[str, Any]:
    return {k: ("***" if k == "key" else v) for k, v in params.items()}


def _describe_http_error(error: Exception) -> str:
    response = getattr(error, "response", None)
    if response is not None:
        try:
            return json.dumps(response.json())
        except ValueError:
            return response.text or str(error)
    return str(error) or error.__class__.__name__


class NextBillionGeocoder:
    """Async client for the NextBillion discover endpoint."""

    def __init__(self, config: GeocodingConfig, api_key: Optional[str],
                 client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.api_key = api_key or ""
        self.url = f"{config.base_url.rstrip('/')}/h/discover"
        self.client = client or httpx.AsyncClient(timeout=config.timeout_seconds)

        if not self.api_key:
            logger.warning("NextBillion API key not configured - geocoding requests will fail")

    async def geocode(self, query_text: str, proximity: Optional[ProximityBias] = None,
                      is_location_name_search: bool = False) -> GeocodeResult:
        """Geocode free text, taking the first item returned."""
        if not query_text or not query_text.strip():
            return GeocodeResult.failure("Empty address", address=query_text)

        params: Dict[str, Any] = {"q": query_text, "key": self.api_key}
        if not is_location_name_search:
            params["fallback"] = "true"
            params["score"] = self.config.min_score
        if proximity is not None:
            params["in"] = proximity.to_param()

        if is_location_name_search or self.config.verbose_requests:
            logger.info(f"Geocode request: {self.url} {_redact(params)}")

        try:
            response = await self.client.get(self.url, params=params, timeout=self.config.timeout_seconds)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            message = str(e) or e.__class__.__name__
            logger.error(f"Geocoding error for {query_text!r}: {message}")
            return GeocodeResult.failure(message, address=query_text)

        items = (data.get("items") or []) if isinstance(data, dict) else []
        if not items:
            if is_location_name_search or self.config.verbose_requests:
                logger.info(f"No items found for {query_text!r}")
            return GeocodeResult.failure("No results found", address=query_text)

        first = items[0]
        position = first.get("position") or {}
        return GeocodeResult(
            success=True,
            address=query_text,
            latitude=position.get("lat"),
            longitude=position.get("lng"),
            formatted_address=first.get("title") or (first.get("address") or {}).get("label") or query_text,
            confidence=(first.get("scoring") or {}).get("queryScore"),
            used_proximity_hint=proximity is not None,
        )

    async def close(self) -> None:
        await self.client.aclose()


class MockGeocoder:
    """Deterministic offline geocoder for development and testing."""

    async def geocode(self, query_text: str, proximity: Optional[ProximityBias] = None,
                      is_location_name_search: bool = False) -> GeocodeResult:
        if not query_text or not query_text.strip():
            return GeocodeResult.failure("Empty address", address=query_text)
        # Stable across processes, unlike hash()
        hash_val = sum((i + 1) * ord(c) for i, c in enumerate(query_text.lower())) % 10000
        if proximity is not None:
            lat = proximity.lat + (hash_val % 100 - 50) / 10000.0
            lng = proximity.lng + (hash_val % 80 - 40) / 10000.0
        else:
            lat = 33.7 + (hash_val % 100) / 1000.0
            lng = -84.5 + (hash_val % 500) / 1000.0
        logger.debug(f"Mock geocoding {query_text!r} -> ({lat:.6f}, {lng:.6f})")
        return GeocodeResult(
            success=True,
            address=query_text,
            latitude=lat,
            longitude=lng,
            formatted_address=query_text,
            confidence=1.0,
            used_proximity_hint=proximity is not None,
        )

    async def close(self) -> None:
        return None


class NextBillionOptimizer:
    """Async client for the NextBillion optimization v2 API (submit then poll)."""

    def __init__(self, config: OptimizationConfig, api_key: Optional[str],
                 client: Optional[httpx.AsyncClient] = None):
        if not api_key:
            raise OptimizationError("NEXTBILLION_API_KEY is not configured")
        self.config = config
        self.api_key = api_key
        self.base_url = f"{config.base_url.rstrip('/')}/optimization/v2"
        self.client = client or httpx.AsyncClient(timeout=config.timeout_seconds)

    async def submit(self, request_body: Dict[str, Any]) -> str:
        """Submit a request body; returns the request id."""
        logger.info(f"Submitting optimization: {request_body.get('description', '')}")
        logger.debug(f"Optimization request body: {json.dumps(request_body)}")
        try:
            response = await self.client.post(
                self.base_url, params={"key": self.api_key}, json=request_body
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            detail = _describe_http_error(e)
            logger.error(f"Optimization submit error: {detail}")
            raise OptimizationError(f"Optimization submit failed: {detail}") from e

        request_id = data.get("id") or data.get("requestId")
        if not request_id:
            logger.error(f"Unexpected submit response: {data}")
            raise OptimizationError("Failed to get request id from optimization submit")
        return request_id

    async def poll(self, request_id: str) -> Dict[str, Any]:
        """Poll until the result is ready."""
        url = f"{self.base_url}/result"
        for attempt in range(1, self.config.max_poll_attempts + 1):
            try:
                response = await self.client.get(url, params={"id": request_id, "key": self.api_key})
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as e:
                detail = _describe_http_error(e)
                logger.error(f"Error while polling optimization result {request_id}: {detail}")
                raise OptimizationError(f"Optimization poll failed: {detail}") from e

            result = data.get("result") or {}
            status = data.get("status") or result.get("status") or "error"
            message = data.get("message") or result.get("message") or ""
            logger.info(f"Polling attempt #{attempt} requestId={request_id} -> status={status!r} message={message!r}")
            if status == "Ok" and message != "Job still processing":
                return data
            await asyncio.sleep(self.config.poll_interval_seconds)

        raise OptimizationError(
            f"Optimization {request_id} not ready after {self.config.max_poll_attempts} polls"
        )

    async def submit_and_poll(self, request_body: Dict[str, Any]) -> Dict[str, Any]:
        request_id = await self.submit(request_body)
        result = await self.poll(request_id)
        return {"requestId": request_id, "result": result}

    async def close(self) -> None:
        await self.client.aclose()
