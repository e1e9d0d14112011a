"""Isochrone generator: one drive-time polygon per station (openrouteservice).

Requests are issued sequentially with a courtesy delay between them. A failed
request is logged and recorded as a failed `IsochroneResult`; it is never retried.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

import geopandas as gpd
import requests
from shapely.geometry import MultiPolygon, Polygon, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from station_isochrones.core.config import (
    CRS_WGS84,
    ISOCHRONE_MINUTES,
    ISOCHRONE_PROFILE,
    ServiceSettings,
)
from station_isochrones.core.errors import IsochroneRequestError

LOGGER = logging.getLogger(__name__)


class IsochroneClient(Protocol):
    def fetch(self, lon: float, lat: float, minutes: int) -> BaseGeometry: ...


class RateLimiter(Protocol):
    def wait(self) -> None: ...


class NoDelay:
    """Rate-limit policy that never waits."""

    def wait(self) -> None:
        return None


class FixedDelay:
    """Wait `delay_s` between consecutive calls; the first call is not delayed."""

    def __init__(self, delay_s: float, *, sleep: Callable[[float], None] = time.sleep) -> None:
        if delay_s < 0:
            raise ValueError("delay_s must be >= 0")
        self.delay_s = float(delay_s)
        self._sleep = sleep
        self._calls = 0

    def wait(self) -> None:
        if self._calls and self.delay_s > 0:
            self._sleep(self.delay_s)
        self._calls += 1


def _polygonal(geom: BaseGeometry) -> Polygon | MultiPolygon:
    """Keep only polygon parts of a geometry (drop stray points/lines)."""
    if isinstance(geom, (Polygon, MultiPolygon)):
        return geom
    parts = [g for g in getattr(geom, "geoms", []) if isinstance(g, (Polygon, MultiPolygon))]
    if not parts:
        raise IsochroneRequestError(f"isochrone response has no polygon ({geom.geom_type})")
    return unary_union(parts)


class OrsIsochroneClient:
    """openrouteservice `/v2/isochrones/{profile}` client (single attempt per call)."""

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = "https://api.openrouteservice.org/v2/isochrones",
        profile: str = ISOCHRONE_PROFILE,
        timeout_s: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.url = f"{base_url.rstrip('/')}/{profile}"
        self.timeout_s = timeout_s
        self.session = requests.Session() if session is None else session

    @classmethod
    def from_settings(cls, services: ServiceSettings, *, profile: str = ISOCHRONE_PROFILE):
        api_key = services.ors_api_key()
        if api_key is None:
            LOGGER.warning(
                "Environment variable %s is not set; isochrone requests will likely be rejected",
                services.ors_api_key_env,
            )
        return cls(api_key, base_url=services.ors_url, profile=profile, timeout_s=services.timeout_s)

    def fetch(self, lon: float, lat: float, minutes: int = ISOCHRONE_MINUTES) -> BaseGeometry:
        headers = {"Accept": "application/geo+json, application/json"}
        if self.api_key:
            headers["Authorization"] = self.api_key
        body = {"locations": [[float(lon), float(lat)]], "range": [int(minutes) * 60], "range_type": "time"}
        try:
            r = self.session.post(self.url, json=body, headers=headers, timeout=self.timeout_s)
            r.raise_for_status()
            payload = r.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            raise IsochroneRequestError(str(exc)) from exc

        features = payload.get("features") if isinstance(payload, dict) else None
        if not features:
            raise IsochroneRequestError("isochrone response contains no features")
        try:
            geoms = [shape(f["geometry"]) for f in features if f.get("geometry")]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise IsochroneRequestError(f"malformed isochrone geometry: {exc}") from exc
        if not geoms:
            raise IsochroneRequestError("isochrone response contains no geometry")
        return _polygonal(unary_union(geoms))


@dataclass(frozen=True)
class IsochroneResult:
    """Outcome of one station's isochrone request."""

    station: str
    lon: float
    lat: float
    geometry: BaseGeometry | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.geometry is not None and self.error is None


def generate_isochrones(
    stations: gpd.GeoDataFrame,
    client: IsochroneClient,
    *,
    limiter: RateLimiter | None = None,
    minutes: int = ISOCHRONE_MINUTES,
) -> list[IsochroneResult]:
    """Request one isochrone per station, in order. Failures are recorded, not raised."""
    limiter = NoDelay() if limiter is None else limiter
    results: list[IsochroneResult] = []
    for name, pt in zip(stations["name"].astype(str), stations.geometry, strict=True):
        limiter.wait()
        try:
            geom = client.fetch(float(pt.x), float(pt.y), minutes)
            if geom is None or geom.is_empty:
                raise IsochroneRequestError("empty isochrone polygon")
        except IsochroneRequestError as exc:
            LOGGER.warning("Isochrone failed for station %r: %s", name, exc)
            results.append(IsochroneResult(station=name, lon=pt.x, lat=pt.y, error=str(exc)))
            continue
        results.append(IsochroneResult(station=name, lon=pt.x, lat=pt.y, geometry=geom))

    n_ok = sum(r.ok for r in results)
    LOGGER.info("Isochrones: %d/%d stations succeeded", n_ok, len(results))
    return results


def isochrones_to_gdf(
    results: Iterable[IsochroneResult],
    *,
    region: str,
    minutes: int = ISOCHRONE_MINUTES,
    profile: str = ISOCHRONE_PROFILE,
) -> gpd.GeoDataFrame:
    """GeoDataFrame of the successful isochrones only."""
    ok = [r for r in results if r.ok]
    return gpd.GeoDataFrame(
        {
            "station": [r.station for r in ok],
            "region": [region] * len(ok),
            "minutes": [int(minutes)] * len(ok),
            "profile": [profile] * len(ok),
        },
        geometry=[r.geometry for r in ok],
        crs=CRS_WGS84,
    )
