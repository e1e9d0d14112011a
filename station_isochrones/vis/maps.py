"""Presentation: interactive region maps, static composite map, distance histogram."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import folium
import matplotlib.pyplot as plt
import pandas as pd

from station_isochrones.core.config import CRS_WGS84

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class MapStyle:
    """Consistent styling for all figures."""

    figsize_panel: tuple[float, float] = (7.0, 7.0)
    figsize_hist: tuple[float, float] = (10.0, 5.0)
    facecolor: str = "white"
    dpi: int = 200

    isochrone_color: str = "#2563eb"
    isochrone_alpha: float = 0.25
    inside_color: str = "#16a34a"
    outside_color: str = "#dc2626"
    station_color: str = "#111827"
    station_size: float = 12.0

    hist_bins: int = 50
    # Folium caps: interactive maps become unusable with every footprint drawn.
    max_map_buildings: int = 5000


def export_region_map(result, output_html: Path, style: MapStyle | None = None) -> Path:
    """Write an interactive HTML map of one region's isochrones, buildings and stations."""
    style = style or MapStyle()
    if not result.ok or result.buildings is None:
        raise ValueError(f"Region {result.region} has no classified buildings to map")

    area = result.isochrones.to_crs(CRS_WGS84)
    minx, miny, maxx, maxy = area.total_bounds
    fmap = folium.Map(location=[(miny + maxy) / 2, (minx + maxx) / 2], zoom_start=9, tiles="CartoDB positron")

    folium.GeoJson(
        area[["station", "geometry"]].__geo_interface__,
        name="15-minute isochrones",
        style_function=lambda _: {
            "color": style.isochrone_color,
            "weight": 1,
            "fillOpacity": style.isochrone_alpha,
        },
        tooltip=folium.GeoJsonTooltip(fields=["station"]),
    ).add_to(fmap)

    buildings = result.buildings
    if len(buildings) > style.max_map_buildings:
        buildings = buildings.sample(style.max_map_buildings, random_state=1)
    for inside, color, label in (
        (True, style.inside_color, "Buildings inside"),
        (False, style.outside_color, "Buildings outside"),
    ):
        part = buildings[buildings["inside"] == inside]
        if part.empty:
            continue
        folium.GeoJson(
            part[["label_id", "geometry"]].__geo_interface__,
            name=label,
            style_function=lambda _, c=color: {"color": c, "weight": 0.6, "fillOpacity": 0.4},
        ).add_to(fmap)

    for name, pt in zip(result.stations["name"], result.stations.geometry, strict=True):
        folium.CircleMarker(
            location=[pt.y, pt.x],
            radius=4,
            color=style.station_color,
            fill=True,
            tooltip=str(name),
        ).add_to(fmap)

    folium.LayerControl().add_to(fmap)
    output_html.parent.mkdir(parents=True, exist_ok=True)
    fmap.save(str(output_html))
    LOGGER.info("Wrote %s", output_html)
    return output_html


def plot_composite_map(results: dict, output_png: Path, style: MapStyle | None = None) -> Path:
    """One panel per successful region: isochrone union, inside/outside buildings, stations."""
    style = style or MapStyle()
    ok = [r for r in results.values() if r.ok and r.buildings is not None]
    if not ok:
        raise ValueError("No successful regions to plot")

    fig, axes = plt.subplots(
        1, len(ok), figsize=(style.figsize_panel[0] * len(ok), style.figsize_panel[1]), squeeze=False
    )
    for ax, res in zip(axes[0], ok, strict=True):
        ax.set_facecolor(style.facecolor)
        res.isochrones.plot(ax=ax, color=style.isochrone_color, alpha=style.isochrone_alpha, zorder=1)
        b = res.buildings
        if b["inside"].any():
            b[b["inside"]].plot(ax=ax, color=style.inside_color, linewidth=0, zorder=2)
        if (~b["inside"]).any():
            b[~b["inside"]].plot(ax=ax, color=style.outside_color, linewidth=0, zorder=2)
        res.stations.plot(ax=ax, color=style.station_color, markersize=style.station_size, zorder=3)
        ax.set_title(f"{res.region} ({res.counts.proportion_inside:.1f}% inside)")
        ax.set_xticks([])
        ax.set_yticks([])
        ax.set_aspect("equal", adjustable="datalim")

    fig.tight_layout()
    output_png.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_png, dpi=style.dpi)
    plt.close(fig)
    LOGGER.info("Wrote %s", output_png)
    return output_png


def plot_distance_histogram(
    distances: pd.DataFrame, output_png: Path, style: MapStyle | None = None
) -> Path:
    """Histogram of building-to-nearest-station distance (km), one series per region."""
    style = style or MapStyle()
    if distances.empty:
        raise ValueError("No distances to plot")

    fig, ax = plt.subplots(figsize=style.figsize_hist)
    for region, grp in distances.groupby("region", sort=True):
        ax.hist(grp["distance_km"].astype(float), bins=style.hist_bins, alpha=0.6, label=str(region))
    ax.set_xlabel("Distance to nearest station (km)")
    ax.set_ylabel("Buildings")
    ax.legend()
    fig.tight_layout()
    output_png.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_png, dpi=style.dpi)
    plt.close(fig)
    LOGGER.info("Wrote %s", output_png)
    return output_png


def format_summary(summary: pd.DataFrame) -> str:
    """Plain-text summary table for the console."""
    if summary.empty:
        return "(no regions classified)"
    return summary.to_string(index=False)
