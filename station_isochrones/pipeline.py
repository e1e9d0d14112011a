"""Per-region pipeline: stations -> isochrones -> buildings -> classification -> distances.

Each region is processed by `run_region` into a `RegionResult`; region-fatal
errors are captured on the result so other regions still run. `summarize` and
`concat_distances` combine the per-region records at the end.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

import geopandas as gpd
import pandas as pd
import requests

from station_isochrones.core.config import AnalysisSettings, RegionConfig, get_paths
from station_isochrones.core.errors import FailureKind, RegionError, RegionLookupError
from station_isochrones.geo.cadastre import load_buildings
from station_isochrones.geo.distance import nearest_station_distances
from station_isochrones.geo.isochrones import (
    FixedDelay,
    IsochroneClient,
    IsochroneResult,
    OrsIsochroneClient,
    RateLimiter,
    generate_isochrones,
    isochrones_to_gdf,
)
from station_isochrones.geo.region import resolve_region_bbox
from station_isochrones.geo.spatial import ContainmentCounts, classify_buildings, containment_counts
from station_isochrones.geo.stations import fetch_stations
from station_isochrones.models.schemas import BUILDINGS, DISTANCES, ISOCHRONES, SUMMARY
from station_isochrones.models.validate import validate_df

LOGGER = logging.getLogger(__name__)

# (region, settings) -> named stations GeoDataFrame
StationSource = Callable[[RegionConfig, AnalysisSettings], gpd.GeoDataFrame]
# (region, stations) -> per-station isochrone outcomes
IsochroneSource = Callable[[RegionConfig, gpd.GeoDataFrame], list[IsochroneResult]]
# (region, settings) -> WGS84 building footprints
BuildingSource = Callable[[RegionConfig, AnalysisSettings], gpd.GeoDataFrame]


@dataclass(frozen=True)
class RegionResult:
    """Everything produced for one region; `error` is set when the region failed."""

    region: str
    stations: gpd.GeoDataFrame | None = None
    isochrone_results: tuple[IsochroneResult, ...] = ()
    isochrones: gpd.GeoDataFrame | None = None
    buildings: gpd.GeoDataFrame | None = None
    distances: pd.DataFrame | None = None
    counts: ContainmentCounts | None = None
    error: RegionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def failure_kind(self) -> FailureKind | None:
        return None if self.error is None else self.error.kind

    @property
    def failed_stations(self) -> list[str]:
        return [r.station for r in self.isochrone_results if not r.ok]


def osm_station_source(region: RegionConfig, settings: AnalysisSettings) -> gpd.GeoDataFrame:
    """Nominatim + Overpass lookup. Failures left after the HTTP retries are region-fatal."""
    try:
        bbox = resolve_region_bbox(region, settings.services)
        return fetch_stations(
            bbox,
            region=region.name,
            excluded=region.excluded_stations,
            services=settings.services,
        )
    except RegionError:
        raise
    except (requests.RequestException, RuntimeError) as exc:
        raise RegionLookupError(region.name, f"OSM lookup failed: {exc}") from exc


def cadastre_source(root: Path | None = None) -> BuildingSource:
    root = get_paths().root if root is None else Path(root)

    def _load(region: RegionConfig, settings: AnalysisSettings) -> gpd.GeoDataFrame:
        return load_buildings(
            region.resolve_buildings_file(root),
            region=region.name,
            tolerance_m=settings.cadastre.simplify_tolerance_m,
            layer=region.buildings_layer,
        )

    return _load


def routing_isochrone_source(
    client: IsochroneClient,
    limiter: RateLimiter,
    *,
    minutes: int,
) -> IsochroneSource:
    def _generate(region: RegionConfig, stations: gpd.GeoDataFrame) -> list[IsochroneResult]:
        LOGGER.info("%s: requesting %d-minute isochrones for %d stations", region.name, minutes, len(stations))
        return generate_isochrones(stations, client, limiter=limiter, minutes=minutes)

    return _generate


def default_sources(
    settings: AnalysisSettings,
) -> tuple[StationSource, IsochroneSource, BuildingSource]:
    """Live Nominatim/Overpass/openrouteservice sources and the on-disk cadastre."""
    client = OrsIsochroneClient.from_settings(settings.services, profile=settings.isochrones.profile)
    limiter = FixedDelay(settings.isochrones.request_delay_s)
    return (
        osm_station_source,
        routing_isochrone_source(client, limiter, minutes=settings.isochrones.minutes),
        cadastre_source(),
    )


def run_region(
    region: RegionConfig,
    settings: AnalysisSettings,
    *,
    station_source: StationSource,
    isochrone_source: IsochroneSource,
    building_source: BuildingSource,
) -> RegionResult:
    """Run the full pipeline for one region. Region-fatal errors are returned, not raised."""
    name = region.name
    stations = None
    iso_results: list[IsochroneResult] = []
    isochrones = None
    try:
        stations = station_source(region, settings)
        iso_results = isochrone_source(region, stations)
        isochrones = isochrones_to_gdf(
            iso_results,
            region=name,
            minutes=settings.isochrones.minutes,
            profile=settings.isochrones.profile,
        )
        validate_df(isochrones, ISOCHRONES, coerce_dtypes=False)
        buildings = building_source(region, settings)
        classified = classify_buildings(buildings, isochrones, region=name)
        validate_df(classified, BUILDINGS, coerce_dtypes=False)
        distances = nearest_station_distances(
            classified, stations, region=name, candidates=settings.distance.candidates
        )
        distances["inside"] = classified["inside"].to_numpy()
    except RegionError as exc:
        LOGGER.warning("Region %s failed (%s): %s", name, exc.kind.value, exc.message)
        return RegionResult(
            region=name,
            stations=stations,
            isochrone_results=tuple(iso_results),
            isochrones=isochrones,
            error=exc,
        )

    counts = containment_counts(classified, region=name)
    LOGGER.info(
        "%s: inside=%d outside=%d total=%d (%.1f%%)",
        name,
        counts.inside,
        counts.outside,
        counts.total,
        counts.proportion_inside,
    )
    return RegionResult(
        region=name,
        stations=stations,
        isochrone_results=tuple(iso_results),
        isochrones=isochrones,
        buildings=classified,
        distances=validate_df(distances, DISTANCES),
        counts=counts,
    )


def run_regions(
    settings: AnalysisSettings,
    *,
    regions: Iterable[str] | None = None,
    station_source: StationSource,
    isochrone_source: IsochroneSource,
    building_source: BuildingSource,
) -> dict[str, RegionResult]:
    """Run every (selected) configured region independently, in config order."""
    selected = [settings.region(r) for r in regions] if regions else list(settings.regions)
    results: dict[str, RegionResult] = {}
    for region in selected:
        results[region.name] = run_region(
            region,
            settings,
            station_source=station_source,
            isochrone_source=isochrone_source,
            building_source=building_source,
        )
    failed = [r for r, res in results.items() if not res.ok]
    if failed:
        LOGGER.warning("Regions with unusable results: %s", failed)
    return results


def summarize(results: dict[str, RegionResult]) -> pd.DataFrame:
    """Region / Inside / Outside / Total / Proportion_Inside for the successful regions."""
    rows = [res.counts.as_row() for res in results.values() if res.ok and res.counts is not None]
    df = pd.DataFrame(rows, columns=list(SUMMARY.required_columns))
    return validate_df(df, SUMMARY)


def failures(results: dict[str, RegionResult]) -> pd.DataFrame:
    rows = [
        {"Region": res.region, "Failure": res.error.kind.value, "Message": res.error.message}
        for res in results.values()
        if res.error is not None
    ]
    return pd.DataFrame(rows, columns=["Region", "Failure", "Message"])


def concat_distances(results: dict[str, RegionResult]) -> pd.DataFrame:
    frames = [res.distances for res in results.values() if res.ok and res.distances is not None]
    if not frames:
        return validate_df(
            pd.DataFrame(columns=["building_index", "region", "nearest_station", "distance_km", "inside"]),
            DISTANCES,
        )
    return pd.concat(frames, ignore_index=True)
