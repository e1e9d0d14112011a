"""Cadastre loader: building footprints -> simplified WGS84 polygons."""

from __future__ import annotations

import logging
from pathlib import Path

import geopandas as gpd
from pyproj import CRS

from station_isochrones.core.config import CRS_WGS84
from station_isochrones.core.errors import MissingBuildingDataError
from station_isochrones.io import ensure_unzipped

LOGGER = logging.getLogger(__name__)

POLYGON_TYPES = {"Polygon", "MultiPolygon"}


def metric_crs(gdf: gpd.GeoDataFrame) -> CRS:
    """The frame's own CRS if projected, else its estimated UTM zone."""
    if gdf.crs is None:
        raise ValueError("GeoDataFrame has no CRS")
    crs = CRS.from_user_input(gdf.crs)
    if crs.is_projected:
        return crs
    return gdf.estimate_utm_crs()


def load_buildings(
    path: Path,
    *,
    region: str,
    tolerance_m: float = 5.0,
    layer: str | None = None,
) -> gpd.GeoDataFrame:
    """Read a footprint dataset, simplify it in metres (topology preserving), reproject to WGS84.

    Raises `MissingBuildingDataError` when the file is missing or unreadable.
    """
    try:
        src = ensure_unzipped(Path(path))
        gdf = gpd.read_file(src, layer=layer) if layer else gpd.read_file(src)
    except (FileNotFoundError, ValueError, RuntimeError, OSError) as exc:
        raise MissingBuildingDataError(region, f"cannot read building data {path}: {exc}") from exc

    if gdf.crs is None:
        raise MissingBuildingDataError(region, f"building data {path} has no CRS")
    LOGGER.info("%s: loaded %d building features from %s (crs=%s)", region, len(gdf), path, gdf.crs)

    gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty]
    n_before = len(gdf)
    gdf = gdf[gdf.geometry.geom_type.isin(POLYGON_TYPES)]
    if len(gdf) < n_before:
        LOGGER.info("%s: dropped %d non-polygon features", region, n_before - len(gdf))

    if tolerance_m > 0 and not gdf.empty:
        # Topology-preserving simplification in meters
        work = gdf.to_crs(metric_crs(gdf))
        work["geometry"] = work.geometry.simplify(float(tolerance_m), preserve_topology=True)
        gdf = work

    gdf = gdf.to_crs(CRS_WGS84)
    gdf = gdf[~gdf.geometry.is_empty].reset_index(drop=True)
    gdf["region"] = region
    LOGGER.info("%s: %d buildings after simplification (tol_m=%.1f)", region, len(gdf), tolerance_m)
    return gdf
