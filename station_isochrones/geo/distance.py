"""Nearest-station geodesic distance for every building.

Candidates come from a KD-tree over geocentric (ECEF) coordinates, where chord
length grows with surface distance; the exact WGS84 geodesic is then measured
to each candidate and the minimum kept.
"""

from __future__ import annotations

import logging

import geopandas as gpd
import numpy as np
import pandas as pd
from pyproj import Geod, Transformer
from scipy.spatial import cKDTree

from station_isochrones.core.config import CRS_GEOCENTRIC, CRS_WGS84
from station_isochrones.core.errors import NoStationsError

LOGGER = logging.getLogger(__name__)

GEOD = Geod(ellps="WGS84")


def to_geocentric(lon: np.ndarray, lat: np.ndarray) -> np.ndarray:
    """Project lon/lat arrays (degrees) to ECEF x/y/z in metres, shape (n, 3)."""
    transformer = Transformer.from_crs(CRS_WGS84, CRS_GEOCENTRIC, always_xy=True)
    lon = np.asarray(lon, dtype=float)
    x, y, z = transformer.transform(lon, np.asarray(lat, dtype=float), np.zeros_like(lon))
    return np.column_stack([np.asarray(x, dtype=float), np.asarray(y, dtype=float), np.asarray(z, dtype=float)])


def building_points(buildings: gpd.GeoDataFrame) -> gpd.GeoSeries:
    """Building centroids, computed in the estimated UTM zone and returned in WGS84.

    Distances are measured from these points, not from the footprint outline: a
    station inside a footprint but away from its centroid gives a non-zero distance.
    """
    if buildings.empty:
        return gpd.GeoSeries([], crs=CRS_WGS84)
    utm = buildings.estimate_utm_crs()
    return buildings.geometry.to_crs(utm).centroid.to_crs(CRS_WGS84)


def nearest_station_distances(
    buildings: gpd.GeoDataFrame,
    stations: gpd.GeoDataFrame,
    *,
    region: str = "",
    candidates: int = 4,
) -> pd.DataFrame:
    """One row per building (by row position): nearest station name and distance in km.

    The distance runs from the building centroid (see `building_points`).
    """
    if stations.empty:
        raise NoStationsError(region, "no named stations; cannot compute distances")
    if buildings.crs is None or stations.crs is None:
        raise ValueError("buildings and stations must have a CRS")

    st = stations.to_crs(CRS_WGS84)
    st_lon = st.geometry.x.to_numpy(dtype=float)
    st_lat = st.geometry.y.to_numpy(dtype=float)
    st_names = st["name"].astype(str).to_numpy()

    pts = building_points(buildings.to_crs(CRS_WGS84))
    b_lon = pts.x.to_numpy(dtype=float)
    b_lat = pts.y.to_numpy(dtype=float)

    if len(b_lon) == 0:
        return pd.DataFrame(
            {
                "building_index": pd.Series([], dtype="int64"),
                "region": pd.Series([], dtype="string"),
                "nearest_station": pd.Series([], dtype="string"),
                "distance_km": pd.Series([], dtype="float64"),
            }
        )

    k = int(min(max(candidates, 1), len(st_lon)))
    tree = cKDTree(to_geocentric(st_lon, st_lat))
    _, idx = tree.query(to_geocentric(b_lon, b_lat), k=k)
    idx = np.asarray(idx, dtype=int).reshape(len(b_lon), k)

    # Geodesic distance to each candidate, then pick the minimum per building.
    dist_m = np.empty(idx.shape, dtype=float)
    for j in range(k):
        _, _, d = GEOD.inv(b_lon, b_lat, st_lon[idx[:, j]], st_lat[idx[:, j]])
        dist_m[:, j] = np.abs(np.asarray(d, dtype=float))
    best = np.argmin(dist_m, axis=1)
    rows = np.arange(len(b_lon))
    nearest_m = dist_m[rows, best]
    nearest_idx = idx[rows, best]

    out = pd.DataFrame(
        {
            "building_index": rows,
            "region": region,
            "nearest_station": st_names[nearest_idx],
            "distance_km": nearest_m / 1000.0,
        }
    )
    LOGGER.info(
        "%s: distances for %d buildings (median %.2f km, max %.2f km)",
        region,
        len(out),
        float(out["distance_km"].median()),
        float(out["distance_km"].max()),
    )
    return out
