"""Schema definitions for pipeline table contracts.

This module contains only:
- `TableSchema` (schema metadata container)
- concrete table schemas (`STATIONS`, `DISTANCES`, `SUMMARY`, ...)
"""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, Field


class TableSchema(BaseModel):
    """A simple schema for a pandas DataFrame (column-level contract)."""

    name: str
    required_columns: tuple[str, ...] = Field(default_factory=tuple)
    optional_columns: tuple[str, ...] = Field(default_factory=tuple)
    # pandas dtype strings, e.g. "string", "Float64", "boolean"
    dtypes: Mapping[str, str] = Field(default_factory=dict)
    non_null: tuple[str, ...] = Field(default_factory=tuple)
    # Columns that must not contain empty/whitespace-only strings.
    non_blank: tuple[str, ...] = Field(default_factory=tuple)

    def allowed_columns(self) -> set[str]:
        return set(self.required_columns) | set(self.optional_columns)


STATIONS = TableSchema(
    name="stations",
    required_columns=("name", "region", "geometry"),
    optional_columns=("osm_id", "railway", "lon", "lat"),
    dtypes={
        "name": "string",
        "region": "string",
        "osm_id": "Int64",
        "railway": "string",
        "lon": "Float64",
        "lat": "Float64",
    },
    non_null=("name", "geometry"),
    non_blank=("name",),
)

ISOCHRONES = TableSchema(
    name="isochrones",
    required_columns=("station", "region", "minutes", "geometry"),
    optional_columns=("profile",),
    dtypes={"station": "string", "region": "string", "minutes": "Int64", "profile": "string"},
    non_null=("station", "geometry"),
)

BUILDINGS = TableSchema(
    name="buildings",
    required_columns=("region", "geometry"),
    optional_columns=("inside", "label_id"),
    dtypes={"region": "string", "inside": "boolean", "label_id": "Int64"},
    non_null=("geometry",),
)

DISTANCES = TableSchema(
    name="distances",
    required_columns=("building_index", "region", "distance_km"),
    optional_columns=("nearest_station", "inside"),
    dtypes={
        "building_index": "Int64",
        "region": "string",
        "distance_km": "Float64",
        "nearest_station": "string",
        "inside": "boolean",
    },
    non_null=("building_index", "region", "distance_km"),
)

SUMMARY = TableSchema(
    name="summary",
    required_columns=("Region", "Inside", "Outside", "Total", "Proportion_Inside"),
    dtypes={
        "Region": "string",
        "Inside": "Int64",
        "Outside": "Int64",
        "Total": "Int64",
        "Proportion_Inside": "string",
    },
    non_null=("Region", "Inside", "Outside", "Total", "Proportion_Inside"),
)
