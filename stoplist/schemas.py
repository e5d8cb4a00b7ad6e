"""
Pydantic schemas for configuration, settings and API requests.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import CamelModel, ParsedRouteSet


logger = logging.getLogger(__name__)


class ProjectConfig(BaseModel):
    """Top-level project configuration."""
    name: str = Field(default="Stop List Router")
    version: str = Field(default="0.1.0")


class GeocodingConfig(BaseModel):
    """NextBillion discover API configuration."""
    base_url: str = Field(default="https://api.nextbillion.io")
    timeout_seconds: float = Field(default=10.0, gt=0)
    request_delay_ms: int = Field(default=50, ge=0)
    proximity_radius_m: int = Field(default=5000, gt=0)
    min_score: float = Field(default=0.75, ge=0, le=1)
    verbose_requests: bool = Field(default=False)


class CacheConfig(BaseModel):
    """Persistent geocode cache configuration."""
    path: str = Field(default="data/geocode-cache.json")
    retention_days: int = Field(default=30, ge=1)
    prune_on_start: bool = Field(default=True)


class OptimizationConfig(BaseModel):
    """NextBillion optimization API configuration."""
    base_url: str = Field(default="https://api.nextbillion.io")
    timeout_seconds: float = Field(default=30.0, gt=0)
    poll_interval_seconds: float = Field(default=5.0, ge=0)
    max_poll_attempts: int = Field(default=120, ge=1)
    submit_concurrency: int = Field(default=12, ge=1)
    poll_concurrency: int = Field(default=8, ge=1)
    traffic_timestamp: int = Field(default=1760648400)
    shift_hours: int = Field(default=12, ge=1)
    depots_by_prefix: Dict[str, str] = Field(
        default_factory=lambda: {
            "ATL": "33.807970,-84.43696",
            "NB Mays": "39.44214,-74.70332",
        },
        description="File-name prefix -> 'lat,lng' depot used when none is supplied",
    )


class PocConfig(BaseModel):
    """POC layout configuration."""
    day_dates: Dict[str, str] = Field(
        default_factory=dict,
        description="Day letter (M/T/W/R/F) -> YYYY-MM-DD date for route timestamps",
    )
    route_start_time: str = Field(default="04:00", pattern=r"^\d{2}:\d{2}$")
    route_end_time: str = Field(default="23:59", pattern=r"^\d{2}:\d{2}$")

    @field_validator("day_dates")
    @classmethod
    def upper_day_letters(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Day letters are matched upper-case."""
        return {str(k).strip().upper(): str(d).strip() for k, d in v.items()}


class UploadsConfig(BaseModel):
    """Upload handling configuration."""
    max_file_size_mb: int = Field(default=10, ge=1)
    allowed_extensions: List[str] = Field(default_factory=lambda: [".xlsx", ".xlsm"])


class DatabaseConfig(BaseModel):
    """Database configuration."""
    url: str = Field(default="sqlite:///./stoplist.db")
    echo: bool = Field(default=False)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR)$"
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


class DevConfig(BaseModel):
    """Development and testing configuration."""
    mock_geocoder: bool = Field(default=False)


class AppConfig(BaseModel):
    """Complete application configuration loaded from params.yaml."""
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    geocoding: GeocodingConfig = Field(default_factory=GeocodingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    optimization: OptimizationConfig = Field(default_factory=OptimizationConfig)
    poc: PocConfig = Field(default_factory=PocConfig)
    uploads: UploadsConfig = Field(default_factory=UploadsConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    dev: DevConfig = Field(default_factory=DevConfig)

    @classmethod
    def load(cls, config_path: Optional[str]) -> "AppConfig":
        """Load configuration from YAML; a missing file yields defaults."""
        if not config_path or not Path(config_path).exists():
            logger.warning(f"Configuration file {config_path!r} not found - using defaults")
            return cls()
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
            return cls(**config_data)
        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise


class Settings(BaseSettings):
    """Environment-based settings (primarily for secrets)."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    nextbillion_api_key: Optional[str] = Field(default=None)
    stoplist_config: str = Field(default="config/params.yaml")


# API request/response schemas

class OptimizeRouteRequest(CamelModel):
    """Route source for optimization: a saved upload or an inline route set."""
    upload_id: Optional[str] = None
    route_data: Optional[ParsedRouteSet] = None
    file_name: Optional[str] = None
    depot_location: Optional[str] = None


class OptimizeAllRequest(OptimizeRouteRequest):
    submit_concurrency: Optional[int] = Field(default=None, ge=1)
    poll_concurrency: Optional[int] = Field(default=None, ge=1)


class OptimizeFullRequest(CamelModel):
    request_body: Dict[str, Any]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    database_connected: bool
    geocoder_configured: bool
    cache_entries: int
    timestamp: str
