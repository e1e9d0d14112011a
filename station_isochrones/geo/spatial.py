"""Spatial helpers: isochrone union and building containment classification."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import geopandas as gpd
from shapely.geometry.base import BaseGeometry

from station_isochrones.core.config import CRS_WGS84
from station_isochrones.core.errors import NoIsochronesError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContainmentCounts:
    region: str
    inside: int
    outside: int

    @property
    def total(self) -> int:
        return self.inside + self.outside

    @property
    def proportion_inside(self) -> float:
        """Percentage of buildings inside, rounded to one decimal (0.0 for an empty region)."""
        return round(self.inside / self.total * 100, 1) if self.total else 0.0

    def as_row(self) -> dict[str, object]:
        return {
            "Region": self.region,
            "Inside": self.inside,
            "Outside": self.outside,
            "Total": self.total,
            "Proportion_Inside": f"{self.proportion_inside:.1f}%",
        }


def _require_wgs84(gdf: gpd.GeoDataFrame, label: str) -> None:
    if gdf.crs is None:
        raise ValueError(f"{label}.crs is None; expected {CRS_WGS84}")
    if gdf.crs != CRS_WGS84:
        raise ValueError(f"{label} CRS must be {CRS_WGS84}, got {gdf.crs}")


def union_isochrones(isochrones: gpd.GeoDataFrame, *, region: str = "") -> BaseGeometry:
    """Dissolve all station catchments of a region into one area."""
    geoms = isochrones.geometry[isochrones.geometry.notna() & ~isochrones.geometry.is_empty]
    if geoms.empty:
        raise NoIsochronesError(region, "no isochrones were generated; cannot classify buildings")
    area = geoms.union_all()
    if not area.is_valid:
        area = area.buffer(0)
    return area


def classify_buildings(
    buildings: gpd.GeoDataFrame,
    isochrones: gpd.GeoDataFrame,
    *,
    region: str = "",
) -> gpd.GeoDataFrame:
    """Add `inside` (within the isochrone union) and `label_id` (1-based order within its group)."""
    _require_wgs84(buildings, "buildings")
    _require_wgs84(isochrones, "isochrones")

    area = union_isochrones(isochrones, region=region)

    out = buildings.copy()
    out["inside"] = out.geometry.within(area).astype(bool)
    out["label_id"] = out.groupby("inside").cumcount() + 1

    n_in = int(out["inside"].sum())
    LOGGER.info("%s: %d/%d buildings inside the isochrone union", region, n_in, len(out))
    return out


def containment_counts(classified: gpd.GeoDataFrame, *, region: str) -> ContainmentCounts:
    if "inside" not in classified.columns:
        raise ValueError("classified buildings must have an 'inside' column")
    inside = int(classified["inside"].sum())
    return ContainmentCounts(region=region, inside=inside, outside=int(len(classified) - inside))
