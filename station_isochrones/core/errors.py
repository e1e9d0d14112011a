"""Failure taxonomy for the per-region pipeline.

Region-fatal errors derive from `RegionError` and are turned into a labelled
`RegionResult` by the pipeline. `IsochroneRequestError` is recoverable per station.
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    REGION_LOOKUP = "region_lookup"
    MISSING_BUILDINGS = "missing_buildings"
    NO_STATIONS = "no_stations"
    NO_ISOCHRONES = "no_isochrones"


class ConfigError(ValueError):
    """Invalid or missing analysis configuration."""


class RegionError(RuntimeError):
    """A failure that makes one region's results unusable."""

    kind: FailureKind

    def __init__(self, region: str, message: str) -> None:
        super().__init__(f"{region}: {message}")
        self.region = region
        self.message = message


class RegionLookupError(RegionError):
    kind = FailureKind.REGION_LOOKUP


class MissingBuildingDataError(RegionError):
    kind = FailureKind.MISSING_BUILDINGS


class NoStationsError(RegionError):
    kind = FailureKind.NO_STATIONS


class NoIsochronesError(RegionError):
    kind = FailureKind.NO_ISOCHRONES


class IsochroneRequestError(RuntimeError):
    """A single isochrone request failed (HTTP error, timeout, bad payload)."""
