"""
Shared pytest fixtures for station_isochrones tests.

Geometry is synthetic and placed in Jutland (around 10E, 56N) so that UTM
estimation lands in zone 32N like the real building data.
"""

import geopandas as gpd
import matplotlib
import pytest
from shapely.geometry import Point, box

from station_isochrones.core.config import AnalysisSettings, RegionConfig
from station_isochrones.core.errors import IsochroneRequestError
from station_isochrones.geo.isochrones import IsochroneResult, generate_isochrones

matplotlib.use("Agg")

STATION_OK = ("Skanderborg St.", 10.0, 56.0)
STATION_FAIL = ("Hørning St.", 10.5, 56.0)
ISOCHRONE_OK = box(9.9, 55.9, 10.1, 56.1)


def _square(lon, lat, half=0.0002):
    return box(lon - half, lat - half, lon + half, lat + half)


@pytest.fixture
def make_square():
    """Factory for small square footprints centred on (lon, lat)."""
    return _square


@pytest.fixture
def stations_gdf():
    """Two named stations; only the first one gets an isochrone in the fakes."""
    names = [STATION_OK[0], STATION_FAIL[0]]
    return gpd.GeoDataFrame(
        {"name": names, "region": ["Testland"] * 2, "osm_id": [1, 2], "railway": ["station", "halt"]},
        geometry=[Point(STATION_OK[1], STATION_OK[2]), Point(STATION_FAIL[1], STATION_FAIL[2])],
        crs="EPSG:4326",
    )


@pytest.fixture
def isochrones_gdf():
    return gpd.GeoDataFrame(
        {"station": [STATION_OK[0]], "region": ["Testland"], "minutes": [15]},
        geometry=[ISOCHRONE_OK],
        crs="EPSG:4326",
    )


@pytest.fixture
def buildings_gdf():
    """10 buildings: 6 inside the successful isochrone, 4 outside (east of it)."""
    inside = [_square(9.95 + 0.02 * i, 56.0) for i in range(6)]
    outside = [_square(10.3, 55.95 + 0.03 * i) for i in range(4)]
    return gpd.GeoDataFrame(
        {"region": ["Testland"] * 10},
        geometry=inside + outside,
        crs="EPSG:4326",
    )


class FakeIsochroneClient:
    """Returns a fixed polygon for known stations, fails for the others."""

    def __init__(self, polygons=None):
        self.polygons = {(STATION_OK[1], STATION_OK[2]): ISOCHRONE_OK} if polygons is None else polygons
        self.calls = []

    def fetch(self, lon, lat, minutes):
        self.calls.append((lon, lat, minutes))
        key = (round(lon, 6), round(lat, 6))
        if key not in self.polygons:
            raise IsochroneRequestError("504 Gateway Timeout")
        return self.polygons[key]


@pytest.fixture
def fake_client():
    return FakeIsochroneClient()


@pytest.fixture
def client_factory():
    return FakeIsochroneClient


@pytest.fixture
def settings(tmp_path):
    return AnalysisSettings(
        regions=[
            RegionConfig(
                name="Testland",
                bbox=(9.5, 55.5, 11.0, 56.5),
                buildings_file=tmp_path / "buildings.gpkg",
            )
        ]
    )


@pytest.fixture
def fake_sources(stations_gdf, buildings_gdf, fake_client):
    """(station_source, isochrone_source, building_source) without any network or disk."""

    def station_source(region, settings):
        return stations_gdf.assign(region=region.name)

    def isochrone_source(region, stations):
        return generate_isochrones(stations, fake_client)

    def building_source(region, settings):
        return buildings_gdf.assign(region=region.name)

    return station_source, isochrone_source, building_source


@pytest.fixture
def failed_result():
    return IsochroneResult(station="Nowhere", lon=0.0, lat=0.0, error="timeout")
