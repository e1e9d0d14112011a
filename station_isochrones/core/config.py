"""Project configuration (paths, constants, YAML-backed analysis settings)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from station_isochrones.core.errors import ConfigError

# CRS defaults
CRS_WGS84: str = "EPSG:4326"
CRS_GEOCENTRIC: str = "EPSG:4978"  # WGS84 earth-centred, earth-fixed (metres)

# Isochrone threshold and travel mode are fixed for this analysis.
ISOCHRONE_MINUTES: int = 15
ISOCHRONE_PROFILE: str = "driving-car"

DEFAULT_CONFIG_NAME = "analysis_config.yaml"


def project_root() -> Path:
    """Return repository root assuming this file lives in `<root>/station_isochrones/core/config.py`."""
    return Path(__file__).resolve().parents[2]


@dataclass(frozen=True)
class Paths:
    root: Path
    config: Path
    data_raw: Path
    data_processed: Path
    figures: Path
    scripts: Path
    tests: Path

    def region_raw(self, region: str) -> Path:
        """Cache directory for the raw downloads of one region."""
        return self.data_raw / slugify(region)


def get_paths(root: Path | None = None) -> Paths:
    r = project_root() if root is None else Path(root).resolve()
    return Paths(
        root=r,
        config=r / "config",
        data_raw=r / "data" / "raw",
        data_processed=r / "data" / "processed",
        figures=r / "figures",
        scripts=r / "scripts",
        tests=r / "tests",
    )


def slugify(name: str) -> str:
    """Filesystem-friendly region key, e.g. 'Region Nordjylland' -> 'region_nordjylland'."""
    out = "".join(ch.lower() if ch.isalnum() else "_" for ch in name.strip())
    return "_".join(p for p in out.split("_") if p)


class ServiceSettings(BaseModel):
    """External HTTP services."""

    nominatim_url: str = "https://nominatim.openstreetmap.org/search"
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    ors_url: str = "https://api.openrouteservice.org/v2/isochrones"
    ors_api_key_env: str = "ORS_API_KEY"
    user_agent: str = "station-isochrones/0.1 (research; batch)"
    timeout_s: float = 60.0
    overpass_timeout_s: int = 180

    def ors_api_key(self) -> str | None:
        return os.environ.get(self.ors_api_key_env) or None


class IsochroneSettings(BaseModel):
    minutes: int = ISOCHRONE_MINUTES
    profile: str = ISOCHRONE_PROFILE
    # Courtesy delay between consecutive requests to the routing service.
    request_delay_s: float = Field(default=3.0, ge=0.0)


class CadastreSettings(BaseModel):
    simplify_tolerance_m: float = Field(default=5.0, ge=0.0)


class DistanceSettings(BaseModel):
    candidates: int = Field(default=4, ge=1)


class RegionConfig(BaseModel):
    """One study region: geocoding query, building file and station exclusions."""

    name: str
    query: str | None = None
    bbox: tuple[float, float, float, float] | None = None  # (min_lon, min_lat, max_lon, max_lat)
    buildings_file: Path
    buildings_layer: str | None = None
    excluded_stations: tuple[str, ...] = Field(default_factory=tuple)

    @field_validator("name")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("region name must be non-empty")
        return v.strip()

    @field_validator("excluded_stations")
    @classmethod
    def _strip_names(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(s.strip() for s in v if s and s.strip())

    @property
    def geocode_query(self) -> str:
        return self.query or f"{self.name}, Denmark"

    def resolve_buildings_file(self, root: Path) -> Path:
        p = Path(self.buildings_file)
        return p if p.is_absolute() else root / p


class AnalysisSettings(BaseModel):
    services: ServiceSettings = Field(default_factory=ServiceSettings)
    isochrones: IsochroneSettings = Field(default_factory=IsochroneSettings)
    cadastre: CadastreSettings = Field(default_factory=CadastreSettings)
    distance: DistanceSettings = Field(default_factory=DistanceSettings)
    regions: list[RegionConfig] = Field(default_factory=list)

    def region(self, name: str) -> RegionConfig:
        for r in self.regions:
            if r.name == name:
                return r
        raise KeyError(f"Unknown region {name!r}; configured: {[r.name for r in self.regions]}")


def load_settings(path: Path | None = None) -> AnalysisSettings:
    """Load and validate the YAML analysis config (default: `config/analysis_config.yaml`)."""
    path = get_paths().config / DEFAULT_CONFIG_NAME if path is None else Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    try:
        return AnalysisSettings.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid analysis config {path}: {exc}") from exc


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
