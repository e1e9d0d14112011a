"""Run the station isochrone coverage analysis for every configured region.

Run:
  python scripts/phases/run_analysis.py [--regions "Region Nordjylland"] [--force]

Processing steps (per region):
1. Resolve the region bounding box and fetch named railway stations/halts
2. Request a 15-minute driving isochrone per station (cached)
3. Load, simplify and reproject the building footprints
4. Classify buildings inside/outside the isochrone union
5. Distance from every building to its nearest station

Outputs:
- data/raw/<region>/stations.geojson, data/raw/<region>/isochrones.geojson (caches)
- data/processed/summary.csv, data/processed/distances.csv
- figures/<region>_map.html, figures/composite_map.png, figures/distance_histogram.png
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

import geopandas as gpd
import pandas as pd
from shapely.geometry import mapping, shape

from station_isochrones.core.cli_utils import RunStats, add_region_flags, create_base_parser
from station_isochrones.core.config import (
    CRS_WGS84,
    AnalysisSettings,
    RegionConfig,
    configure_logging,
    get_paths,
    load_settings,
    slugify,
)
from station_isochrones.geo.isochrones import IsochroneResult
from station_isochrones.io import (
    cached,
    read_geojson,
    read_json,
    sha256_file,
    write_csv_validated,
    write_geojson,
    write_json,
)
from station_isochrones.models.schemas import DISTANCES, SUMMARY
from station_isochrones.pipeline import (
    concat_distances,
    default_sources,
    failures,
    run_regions,
    summarize,
)
from station_isochrones.vis.maps import (
    export_region_map,
    format_summary,
    plot_composite_map,
    plot_distance_histogram,
)

LOGGER = logging.getLogger("run_analysis")


def _parse_args() -> argparse.Namespace:
    parser = create_base_parser("Station isochrone coverage of building footprints.")
    add_region_flags(parser)
    return parser.parse_args()


def _results_to_geojson(results: list[IsochroneResult]) -> dict:
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"station": r.station, "lon": r.lon, "lat": r.lat, "error": r.error},
                "geometry": mapping(r.geometry) if r.geometry is not None else None,
            }
            for r in results
        ],
    }


def _results_from_geojson(obj: dict) -> list[IsochroneResult]:
    out: list[IsochroneResult] = []
    for f in obj["features"]:
        p = f["properties"]
        geom = shape(f["geometry"]) if f.get("geometry") else None
        out.append(
            IsochroneResult(
                station=p["station"], lon=p["lon"], lat=p["lat"], geometry=geom, error=p.get("error")
            )
        )
    return out


def _cached_station_names(obj: dict) -> set[str]:
    return {f["properties"]["station"] for f in obj["features"]}


def _empty_stations() -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {"name": pd.Series(dtype="string"), "region": pd.Series(dtype="string")},
        geometry=gpd.GeoSeries([], crs=CRS_WGS84),
        crs=CRS_WGS84,
    )


def _cached_sources(settings: AnalysisSettings, *, force: bool):
    """Wrap the live sources so stations and isochrones are cached per region.

    The isochrone cache only serves stations that are still in the current
    station set; it is rebuilt when a current station has no cached entry.
    """
    paths = get_paths()
    live_stations, live_isochrones, buildings = default_sources(settings)

    def _stations(region: RegionConfig, s: AnalysisSettings) -> gpd.GeoDataFrame:
        out_path = paths.region_raw(region.name) / "stations.geojson"
        gdf, used_cache = cached(
            out_path,
            force=force,
            read=read_geojson,
            build=lambda: live_stations(region, s),
            write=write_geojson,
            # An empty FeatureCollection reads back without attribute columns.
            validate=lambda x: x.empty or "name" in x.columns,
        )
        if used_cache:
            LOGGER.info("Loaded cached stations: %s", out_path)
            if gdf.empty:
                return _empty_stations()
            gdf = gdf.set_crs(CRS_WGS84, allow_override=True)
            gdf = gdf[~gdf["name"].isin(set(region.excluded_stations))].reset_index(drop=True)
        return gdf

    def _isochrones(region: RegionConfig, stations: gpd.GeoDataFrame) -> list[IsochroneResult]:
        out_path = paths.region_raw(region.name) / "isochrones.geojson"
        names = set(stations["name"]) if "name" in stations.columns else set()
        obj, used_cache = cached(
            out_path,
            force=force,
            read=read_json,
            build=lambda: _results_to_geojson(live_isochrones(region, stations)),
            write=write_json,
            validate=lambda x: isinstance(x, dict) and "features" in x and names <= _cached_station_names(x),
        )
        results = _results_from_geojson(obj)
        if used_cache:
            LOGGER.info("Loaded cached isochrones: %s", out_path)
            stale = sorted(r.station for r in results if r.station not in names)
            if stale:
                LOGGER.info("%s: ignoring cached isochrones of stations no longer in the set: %s", region.name, stale)
        return [r for r in results if r.station in names]

    return _stations, _isochrones, buildings


def run(
    *,
    config: Path | None = None,
    regions: list[str] | None = None,
    force: bool = False,
    figures: bool = True,
    checkpoint: bool = False,
) -> dict[str, int | str]:
    """Run the analysis. Returns a small dict of key counts."""
    paths = get_paths()
    settings = load_settings(config)
    stats = RunStats()

    station_source, isochrone_source, building_source = _cached_sources(settings, force=force)
    results = run_regions(
        settings,
        regions=regions,
        station_source=station_source,
        isochrone_source=isochrone_source,
        building_source=building_source,
    )
    for name, res in results.items():
        stats.add_region(name, ok=res.ok)
        if res.failed_stations:
            LOGGER.warning("%s: stations without isochrone: %s", name, res.failed_stations)

    summary = summarize(results)
    distances = concat_distances(results)
    summary_csv = paths.data_processed / "summary.csv"
    distances_csv = paths.data_processed / "distances.csv"
    write_csv_validated(summary, summary_csv, schema=SUMMARY)
    write_csv_validated(distances, distances_csv, schema=DISTANCES)
    LOGGER.info("Wrote %s and %s", summary_csv, distances_csv)

    print(format_summary(summary))
    failed = failures(results)
    if not failed.empty:
        print("\nFailed regions:")
        print(failed.to_string(index=False))

    if figures and not summary.empty:
        for name, res in results.items():
            if res.ok:
                export_region_map(res, paths.figures / f"{slugify(name)}_map.html")
        plot_composite_map(results, paths.figures / "composite_map.png")
        plot_distance_histogram(distances, paths.figures / "distance_histogram.png")

    stats.update(
        {
            "regions_ok": len(summary),
            "regions_failed": len(failed),
            "buildings": int(summary["Total"].sum()) if not summary.empty else 0,
        }
    )
    out: dict[str, int | str] = {k: v for k, v in stats.get_summary().items() if not isinstance(v, list)}
    if checkpoint:
        out["sha_summary_csv"] = sha256_file(summary_csv)
        out["sha_distances_csv"] = sha256_file(distances_csv)
        LOGGER.info("CHECKPOINT: %s", out)
    return out


def main() -> None:
    configure_logging()
    args = _parse_args()
    run(
        config=args.config,
        regions=args.regions,
        force=args.force,
        figures=not args.no_figures,
        checkpoint=args.checkpoint,
    )


if __name__ == "__main__":
    main()
