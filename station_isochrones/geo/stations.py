"""Station fetcher: OSM railway stations/halts within a bounding box (Overpass API)."""

from __future__ import annotations

import logging
from collections.abc import Iterable

import geopandas as gpd
import pandas as pd

from station_isochrones.core.config import CRS_WGS84, ServiceSettings
from station_isochrones.geo.region import BBox
from station_isochrones.io import get_json, get_session
from station_isochrones.models.schemas import STATIONS
from station_isochrones.models.validate import validate_df

LOGGER = logging.getLogger(__name__)

RAILWAY_TAGS: tuple[str, ...] = ("station", "halt")


def build_station_query(bbox: BBox, *, timeout_s: int = 180) -> str:
    """Overpass QL for railway=station|halt nodes inside `bbox`."""
    tag_re = "|".join(RAILWAY_TAGS)
    return (
        f"[out:json][timeout:{int(timeout_s)}];"
        f'node["railway"~"^({tag_re})$"]({bbox.as_overpass()});'
        "out body;"
    )


def fetch_station_elements(
    bbox: BBox,
    services: ServiceSettings | None = None,
    *,
    fetch=get_json,
) -> list[dict]:
    """Raw Overpass elements (nodes with `lat`, `lon`, `tags`)."""
    services = services or ServiceSettings()
    query = build_station_query(bbox, timeout_s=services.overpass_timeout_s)
    data = fetch(
        services.overpass_url,
        params={"data": query},
        timeout=float(services.overpass_timeout_s) + 30.0,
        session=get_session(services.user_agent),
    )
    if not isinstance(data, dict) or not isinstance(data.get("elements"), list):
        raise RuntimeError(f"Unexpected Overpass response type: {type(data)}")
    return data["elements"]


def _clean_name(tags: dict | None) -> str | None:
    name = (tags or {}).get("name")
    if not isinstance(name, str):
        return None
    name = name.strip()
    return name or None


def stations_from_elements(
    elements: Iterable[dict],
    *,
    region: str,
    excluded: Iterable[str] = (),
) -> gpd.GeoDataFrame:
    """Convert Overpass nodes to a named-station GeoDataFrame (WGS84).

    Unnamed points are discarded, then names on the exclusion list are removed.
    """
    excluded_set = {e.strip() for e in excluded if e and e.strip()}

    rows: list[dict[str, object]] = []
    n_unnamed = 0
    for el in elements:
        if el.get("type", "node") != "node" or el.get("lat") is None or el.get("lon") is None:
            continue
        tags = el.get("tags") or {}
        name = _clean_name(tags)
        if name is None:
            n_unnamed += 1
            continue
        rows.append(
            {
                "osm_id": el.get("id"),
                "name": name,
                "railway": tags.get("railway"),
                "region": region,
                "lon": float(el["lon"]),
                "lat": float(el["lat"]),
            }
        )

    df = pd.DataFrame(rows, columns=["osm_id", "name", "railway", "region", "lon", "lat"])
    df = df[df["osm_id"].isna() | ~df["osm_id"].duplicated(keep="first")]

    n_excluded = int(df["name"].isin(excluded_set).sum())
    df = df[~df["name"].isin(excluded_set)].reset_index(drop=True)

    LOGGER.info(
        "%s: kept %d stations (dropped unnamed=%d, excluded=%d)",
        region,
        len(df),
        n_unnamed,
        n_excluded,
    )

    gdf = gpd.GeoDataFrame(
        df,
        geometry=gpd.points_from_xy(df["lon"].astype(float), df["lat"].astype(float)),
        crs=CRS_WGS84,
    )
    return validate_df(gdf, STATIONS)


def fetch_stations(
    bbox: BBox,
    *,
    region: str,
    excluded: Iterable[str] = (),
    services: ServiceSettings | None = None,
    fetch=get_json,
) -> gpd.GeoDataFrame:
    """Fetch and clean the named stations of one region."""
    LOGGER.info("Querying Overpass for railway stations/halts in %s...", region)
    elements = fetch_station_elements(bbox, services, fetch=fetch)
    return stations_from_elements(elements, region=region, excluded=excluded)
