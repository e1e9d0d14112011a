"""Lightweight I/O helpers.

This module centralises:
- the cache-to-disk helper (`cached`) used for network downloads
- the retrying JSON GET used for geocoding and Overpass queries
- simple JSON/GeoJSON/CSV writers used by scripts
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import geopandas as gpd
import pandas as pd
import requests
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from station_isochrones.io.compressed import ensure_unzipped
from station_isochrones.models.validate import validate_df

__all__ = [
    "cached",
    "ensure_parent_dir",
    "ensure_unzipped",
    "get_json",
    "get_session",
    "read_geojson",
    "read_json",
    "sha256_file",
    "write_csv_validated",
    "write_geojson",
    "write_json",
]

_SESSION: requests.Session | None = None


def ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def write_json(obj: Any, path: Path) -> None:
    ensure_parent_dir(path)
    path.write_text(json.dumps(obj, ensure_ascii=False, indent=2), encoding="utf-8")


def read_geojson(path: Path) -> gpd.GeoDataFrame:
    return gpd.read_file(path)


def write_geojson(gdf: gpd.GeoDataFrame, path: Path) -> None:
    ensure_parent_dir(path)
    path.write_text(gdf.to_json(drop_id=True), encoding="utf-8")


def cached(
    path: Path,
    *,
    force: bool,
    read,
    build,
    write=None,
    validate=None,
) -> tuple[Any, bool]:
    """Cache-to-disk helper used for station/isochrone downloads.

    Returns (obj, used_cache).
    """
    if not force and path.exists() and path.stat().st_size > 0:
        obj = read(path)
        if validate is None or validate(obj):
            return obj, True
    obj = build()
    if write is not None:
        write(obj, path)
    return obj, False


def get_session(user_agent: str | None = None) -> requests.Session:
    """Shared session; Nominatim and Overpass both require an identifying User-Agent."""
    global _SESSION  # noqa: PLW0603
    if _SESSION is None:
        _SESSION = requests.Session()
        _SESSION.headers.update({"User-Agent": "station-isochrones/0.1 (research; batch)"})
    if user_agent:
        _SESSION.headers["User-Agent"] = user_agent
    return _SESSION


def _retryable(exc: BaseException) -> bool:
    if isinstance(exc, requests.exceptions.HTTPError):
        resp = getattr(exc, "response", None)
        code = getattr(resp, "status_code", None)
        return code in {429, 500, 502, 503, 504}
    return isinstance(exc, requests.exceptions.RequestException)


def get_json(
    url: str,
    *,
    params: dict[str, str] | None = None,
    timeout: float = 60.0,
    session: requests.Session | None = None,
) -> Any:
    """HTTP GET JSON helper for metadata lookups (geocoding, Overpass).

    Retries 429/5xx and connection errors with exponential backoff. Isochrone
    requests do not go through here: they are single-shot by design of the run.
    """
    sess = get_session() if session is None else session

    @retry(
        retry=retry_if_exception(_retryable),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=10.0),
        stop=stop_after_attempt(6),
        reraise=True,
    )
    def _do_get() -> Any:
        r = sess.get(url, params=params, timeout=timeout)
        r.raise_for_status()
        return r.json()

    return _do_get()


def write_csv_validated(df: pd.DataFrame, path: Path, *, schema: Any) -> pd.DataFrame:
    """Validate a table against its schema, then write it as CSV."""
    out = validate_df(df, schema)
    ensure_parent_dir(path)
    out.to_csv(path, index=False)
    return out


def sha256_file(path: Path) -> str:
    """Return SHA256 hex digest for a file."""
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()
