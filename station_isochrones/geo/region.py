"""Region resolver: free-text region name -> WGS84 bounding box (Nominatim)."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from station_isochrones.core.config import RegionConfig, ServiceSettings
from station_isochrones.core.errors import RegionLookupError
from station_isochrones.io import get_json, get_session

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class BBox:
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    def __post_init__(self) -> None:
        if self.min_lon > self.max_lon or self.min_lat > self.max_lat:
            raise ValueError(f"Degenerate bounding box: {self}")

    @classmethod
    def from_nominatim(cls, boundingbox: list[str]) -> BBox:
        """Nominatim orders the box as [south, north, west, east]."""
        south, north, west, east = (float(v) for v in boundingbox)
        return cls(min_lon=west, min_lat=south, max_lon=east, max_lat=north)

    def as_overpass(self) -> str:
        """`south,west,north,east` as used in Overpass QL filters."""
        return f"{self.min_lat},{self.min_lon},{self.max_lat},{self.max_lon}"

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.min_lon, self.min_lat, self.max_lon, self.max_lat)


def resolve_region_bbox(
    region: RegionConfig,
    services: ServiceSettings | None = None,
    *,
    fetch=get_json,
) -> BBox:
    """Return the region's bounding box, geocoding `region.geocode_query` unless configured."""
    if region.bbox is not None:
        return BBox(*region.bbox)

    services = services or ServiceSettings()
    params = {"q": region.geocode_query, "format": "jsonv2", "limit": "1"}
    LOGGER.info("Geocoding region %r (q=%r)...", region.name, region.geocode_query)
    data = fetch(
        services.nominatim_url,
        params=params,
        timeout=services.timeout_s,
        session=get_session(services.user_agent),
    )
    if not isinstance(data, list) or not data or "boundingbox" not in data[0]:
        raise RegionLookupError(region.name, f"geocoder returned no match for {region.geocode_query!r}")

    bbox = BBox.from_nominatim(data[0]["boundingbox"])
    LOGGER.info("Resolved %s bbox: %s", region.name, bbox.as_tuple())
    return bbox
