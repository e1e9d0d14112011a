"""
Tests for the CLI runner: per-region caches, exclusions on rerun, --force rebuilds.
"""

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import Point, box

from scripts.phases import run_analysis
from station_isochrones.core.config import get_paths
from station_isochrones.geo.isochrones import IsochroneResult, generate_isochrones
from station_isochrones.geo.stations import stations_from_elements
from station_isochrones.io import read_json, write_geojson, write_json

STATION_A = ("Ry St.", 10.0, 56.0)
STATION_B = ("Laven St.", 10.5, 56.0)
CATCHMENTS = {
    STATION_A[0]: box(9.9, 55.9, 10.1, 56.1),
    STATION_B[0]: box(10.4, 55.9, 10.6, 56.1),
}

CONFIG = """
isochrones:
  request_delay_s: 0
regions:
  - name: Testland
    bbox: [9.5, 55.5, 11.0, 56.5]
    buildings_file: buildings.gpkg
    excluded_stations: [{excluded}]
"""


def _stations(*stations):
    return gpd.GeoDataFrame(
        {"name": [s[0] for s in stations], "region": ["Testland"] * len(stations)},
        geometry=[Point(s[1], s[2]) for s in stations],
        crs="EPSG:4326",
    )


def _isochrone_results(*stations):
    return [IsochroneResult(s[0], s[1], s[2], geometry=CATCHMENTS[s[0]]) for s in stations]


@pytest.fixture
def workspace(tmp_path, monkeypatch, make_square, client_factory):
    """Runner rooted at tmp_path with live sources that record their calls."""
    calls = {"stations": 0, "isochrones": 0}
    client = client_factory({(s[1], s[2]): CATCHMENTS[s[0]] for s in (STATION_A, STATION_B)})
    # One building in each catchment.
    buildings = gpd.GeoDataFrame(
        {"region": ["Testland"] * 2},
        geometry=[make_square(10.0, 55.95), make_square(10.5, 55.95)],
        crs="EPSG:4326",
    )

    def live_stations(region, settings):
        calls["stations"] += 1
        kept = [s for s in (STATION_A, STATION_B) if s[0] not in region.excluded_stations]
        return _stations(*kept)

    def live_isochrones(region, stations):
        calls["isochrones"] += 1
        return generate_isochrones(stations, client)

    paths = get_paths(tmp_path)
    monkeypatch.setattr(run_analysis, "get_paths", lambda: paths)
    monkeypatch.setattr(
        run_analysis,
        "default_sources",
        lambda settings: (live_stations, live_isochrones, lambda region, s: buildings),
    )

    def write_config(excluded=""):
        path = tmp_path / "analysis_config.yaml"
        path.write_text(CONFIG.format(excluded=excluded), encoding="utf-8")
        return path

    return paths, calls, write_config


def _seed_cache(paths, stations, isochrones):
    raw = paths.region_raw("Testland")
    write_geojson(_stations(*stations), raw / "stations.geojson")
    write_json(run_analysis._results_to_geojson(_isochrone_results(*isochrones)), raw / "isochrones.geojson")


def _summary(paths):
    return pd.read_csv(paths.data_processed / "summary.csv").to_dict(orient="records")


def test_excluded_station_isochrone_is_not_counted_from_cache(workspace):
    paths, calls, write_config = workspace
    _seed_cache(paths, [STATION_A, STATION_B], [STATION_A, STATION_B])

    out = run_analysis.run(config=write_config(f'"{STATION_B[0]}"'), figures=False)

    assert calls == {"stations": 0, "isochrones": 0}
    assert _summary(paths) == [
        {"Region": "Testland", "Inside": 1, "Outside": 1, "Total": 2, "Proportion_Inside": "50.0%"}
    ]
    assert out["buildings"] == 2


def test_cache_is_reused_without_network(workspace):
    paths, calls, write_config = workspace
    _seed_cache(paths, [STATION_A, STATION_B], [STATION_A, STATION_B])

    run_analysis.run(config=write_config(), figures=False)

    assert calls == {"stations": 0, "isochrones": 0}
    assert _summary(paths)[0]["Inside"] == 2


def test_isochrone_cache_rebuilds_when_a_station_is_missing(workspace):
    paths, calls, write_config = workspace
    _seed_cache(paths, [STATION_A, STATION_B], [STATION_A])

    run_analysis.run(config=write_config(), figures=False)

    assert calls == {"stations": 0, "isochrones": 1}
    cached = read_json(paths.region_raw("Testland") / "isochrones.geojson")
    assert run_analysis._cached_station_names(cached) == {STATION_A[0], STATION_B[0]}
    assert _summary(paths)[0]["Inside"] == 2


def test_force_rebuilds_both_caches(workspace):
    paths, calls, write_config = workspace
    _seed_cache(paths, [STATION_A, STATION_B], [STATION_A, STATION_B])

    out = run_analysis.run(config=write_config(f'"{STATION_B[0]}"'), force=True, checkpoint=True, figures=False)

    assert calls == {"stations": 1, "isochrones": 1}
    stations = gpd.read_file(paths.region_raw("Testland") / "stations.geojson")
    assert stations["name"].tolist() == [STATION_A[0]]
    assert _summary(paths)[0]["Inside"] == 1
    assert len(out["sha_summary_csv"]) == 64


def test_empty_cached_station_set_is_reused(workspace):
    paths, calls, write_config = workspace
    empty = stations_from_elements([], region="Testland", excluded=())
    write_geojson(empty, paths.region_raw("Testland") / "stations.geojson")
    settings = run_analysis.load_settings(write_config())
    station_source, isochrone_source, _ = run_analysis._cached_sources(settings, force=False)

    stations = station_source(settings.regions[0], settings)

    assert calls["stations"] == 0
    assert stations.empty
    assert "name" in stations.columns
    assert isochrone_source(settings.regions[0], stations) == []


def test_results_geojson_keeps_failures(failed_result):
    ok = _isochrone_results(STATION_A)[0]

    restored = run_analysis._results_from_geojson(run_analysis._results_to_geojson([ok, failed_result]))

    assert restored[0].station == STATION_A[0]
    assert restored[0].geometry.equals(CATCHMENTS[STATION_A[0]])
    assert restored[1].geometry is None
    assert restored[1].error == "timeout"
    assert not restored[1].ok
