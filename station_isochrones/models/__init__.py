"""Pydantic table schemas and dataframe validators.

These are contracts at the pipeline boundaries:
- fetched stations are validated before any spatial work
- isochrones and classified buildings are checked inside `run_region`
- distance and summary tables are validated before they are written
"""

from __future__ import annotations

from station_isochrones.models.schemas import (
    BUILDINGS,
    DISTANCES,
    ISOCHRONES,
    STATIONS,
    SUMMARY,
    TableSchema,
)
from station_isochrones.models.validate import validate_df

__all__ = [
    "TableSchema",
    "validate_df",
    "STATIONS",
    "ISOCHRONES",
    "BUILDINGS",
    "DISTANCES",
    "SUMMARY",
]
