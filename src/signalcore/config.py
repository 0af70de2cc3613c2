"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="SIGNALCORE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Traffic Signal Pre-emption API"
    api_prefix: str = "/api"
    signals_file: Path = Field(
        default=Path("data/traffic_signals.json"),
        description="Signal inventory used when the database is not configured (JSON, CSV or XLSX).",
    )
    catalog_backend: Literal["auto", "database", "file", "overpass"] = Field(
        default="auto",
        description="Where the signal catalog is read from; 'auto' tries the database, then the file.",
    )

    # Proximity matching
    match_radius_m: float = Field(default=50.0, gt=0.0, description="Corridor radius around each route leg.")
    match_max_results: int = Field(default=0, ge=0, description="Maximum matches per route (0 = unlimited).")
    match_timeout_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Deadline for a single route match (0 disables the deadline).",
    )
    grid_cell_size_m: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Spatial grid cell size; defaults to the corridor radius.",
    )

    # Zone clustering
    cluster_radius_m: float = Field(default=1000.0, gt=0.0, description="Seed radius for signal zones.")
    cluster_max_iterations: int = Field(default=25, ge=0, description="Relaxation pass cap.")

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )
    signals_table: str = Field(default="traffic_signals", description="Table holding the signal inventory.")

    # Overpass (OpenStreetMap) import
    overpass_url: str = Field(default="https://overpass-api.de/api/interpreter")
    overpass_bbox: Optional[tuple[float, float, float, float]] = Field(
        default=None,
        description="South, west, north, east bounds used when importing signals from OpenStreetMap.",
    )
    overpass_timeout_seconds: float = Field(default=90.0, gt=0.0)
    overpass_max_retries: int = Field(default=3, ge=0)
    overpass_backoff_seconds: float = Field(default=1.0, ge=0.0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("signals_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator("overpass_bbox", mode="before")
    @classmethod
    def _parse_bbox_from_env(cls, value: Any) -> Optional[tuple[float, float, float, float]]:
        """Parse a bounding box from a JSON array or a comma-separated string."""
        if value is None or isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(float(item) for item in value)
        if isinstance(value, str):
            if not value.strip():
                return None
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(float(item) for item in parsed)
            except (json.JSONDecodeError, TypeError, ValueError):
                pass
            return tuple(float(item.strip()) for item in value.split(",") if item.strip())
        return value


settings = Settings()
