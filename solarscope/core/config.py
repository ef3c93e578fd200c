"""
Configuration management for SolarScope.

Two layers:
- Settings: process-wide service settings (API keys, endpoints, timeouts),
  read from SOLARSCOPE_* environment variables or a .env file.
- FusionConfig: immutable sizing constants and verdict thresholds passed
  explicitly into the fusion engine, so tests can swap thresholds without
  touching global state.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    Can be configured via environment variables or .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="SOLARSCOPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(default=Path("data"))
    cache_dir: Path = Field(default=Path("data/cache"))

    # API Keys
    google_api_key: str | None = Field(default=None, description="Google Solar API key")

    # Serverless backend (edge functions + storage)
    supabase_url: str | None = Field(default=None, description="Backend project URL")
    supabase_key: str | None = Field(default=None, description="Backend anon/service key")
    footprints_function: str = Field(default="footprints", description="Edge function serving the footprint DB")

    # Upstream endpoints
    overpass_url: str = Field(default="https://overpass-api.de/api/interpreter")
    nominatim_url: str = Field(default="https://nominatim.openstreetmap.org/search")
    google_solar_url: str = Field(default="https://solar.googleapis.com/v1")
    nasa_power_url: str = Field(default="https://power.larc.nasa.gov/api/temporal/climatology/point")

    # Processing settings
    footprint_search_radius_m: float = Field(default=50.0, description="Radius for footprint lookup")
    imagery_radius_m: float = Field(default=100.0, description="Radius for imagery layers")
    footprint_timeout_s: float = Field(default=20.0, description="Join timeout for footprint resolution")
    irradiation_timeout_s: float = Field(default=40.0, description="Join timeout for irradiation resolution")
    http_timeout_s: float = Field(default=15.0, description="Per-request HTTP timeout")

    # Persistence
    store_backend: Literal["memory", "supabase"] = Field(default="memory")

    # Logging
    log_level: str = Field(default="INFO")
    log_to_file: bool = Field(default=False)

    # API server
    api_port: int = Field(default=8000)


# Global settings instance
settings = Settings()


# Annual global horizontal irradiation (kWh/m²/year) by absolute latitude.
# Climatological averages used only when no provider answers.
LATITUDE_IRRADIATION: Tuple[Tuple[float, float], ...] = (
    (0.0, 2000.0),
    (10.0, 1950.0),
    (20.0, 1850.0),
    (30.0, 1700.0),
    (40.0, 1500.0),
    (50.0, 1150.0),
    (60.0, 950.0),
    (70.0, 800.0),
)


@dataclass(frozen=True)
class FusionConfig:
    """Sizing constants and verdict thresholds for the fusion engine."""

    # Production model
    module_efficiency: float = 0.215      # 21.5 % c-Si module
    performance_ratio: float = 0.82       # NBR 16274 residential default

    # Default panel model
    panel_power_w: float = 550.0
    panel_area_m2: float = 2.58
    # Technician-fixed panel count; capped to what fits on the roof
    panel_count: Optional[int] = None

    # Share of usable area panels may cover (walkways, obstructions)
    usage_factor: float = 0.8

    # Verdict thresholds
    min_area_m2: float = 8.0
    min_irradiation_kwh_m2: float = 1100.0
    max_shading_percent: int = 45         # Above this: Não apto
    caution_shading_percent: int = 30     # From here up to max: Parcial
    optimizer_max_shading_percent: int = 35   # Above this: microinverters instead of optimizers
    high_shading_warning_percent: int = 40

    # Orientation, as deviation from the equator-facing azimuth
    ideal_azimuth_deviation_deg: float = 20.0
    good_azimuth_deviation_deg: float = 45.0    # Above this: Parcial
    max_azimuth_deviation_deg: float = 90.0     # Above this: Não apto

    # Tilt, compared with an optimum equal to |latitude|
    min_tilt_deg: float = 5.0
    max_tilt_deg: float = 45.0
    ideal_tilt_deviation_deg: float = 10.0
    max_tilt_deviation_deg: float = 20.0        # Above this: Parcial

    # Fallbacks
    estimated_roof_area_m2: float = 60.0
    latitude_irradiation: Tuple[Tuple[float, float], ...] = LATITUDE_IRRADIATION

    # Shading heuristic (see analysis/shading.py)
    heuristic_base_shading: float = 0.03
    heuristic_per_neighbor: float = 0.01
    heuristic_neighbor_cap: int = 20
    heuristic_per_degree_latitude: float = 0.002
    heuristic_max_shading: float = 0.5

    def __post_init__(self):
        if not 0 < self.usage_factor <= 1:
            raise ValueError("usage_factor must be in (0, 1]")
        if self.caution_shading_percent > self.max_shading_percent:
            raise ValueError("caution_shading_percent must not exceed max_shading_percent")
        if self.panel_area_m2 <= 0 or self.panel_power_w <= 0:
            raise ValueError("panel_area_m2 and panel_power_w must be positive")
        if not (self.ideal_azimuth_deviation_deg <= self.good_azimuth_deviation_deg
                <= self.max_azimuth_deviation_deg <= 180):
            raise ValueError("azimuth deviation bands must be ascending and at most 180")
        if self.panel_count is not None and self.panel_count < 0:
            raise ValueError("panel_count must not be negative")


DEFAULT_FUSION_CONFIG = FusionConfig()
