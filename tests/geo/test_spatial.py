"""
Tests for the containment classifier.

Tests cover:
- inside/outside partition and per-group label ids
- monotonicity of the inside count under extra isochrones
- region-fatal behaviour without isochrones
- summary row arithmetic
"""

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

from station_isochrones.core.errors import FailureKind, NoIsochronesError
from station_isochrones.geo.spatial import (
    ContainmentCounts,
    classify_buildings,
    containment_counts,
    union_isochrones,
)


def test_partition_is_disjoint_and_complete(buildings_gdf, isochrones_gdf):
    out = classify_buildings(buildings_gdf, isochrones_gdf, region="Testland")

    inside = set(out.index[out["inside"]])
    outside = set(out.index[~out["inside"]])
    assert inside.isdisjoint(outside)
    assert inside | outside == set(buildings_gdf.index)
    assert len(inside) == 6
    assert len(outside) == 4


def test_label_ids_are_sequences_within_each_group(buildings_gdf, isochrones_gdf):
    out = classify_buildings(buildings_gdf, isochrones_gdf)

    assert out.loc[out["inside"], "label_id"].tolist() == [1, 2, 3, 4, 5, 6]
    assert out.loc[~out["inside"], "label_id"].tolist() == [1, 2, 3, 4]


def test_overlapping_isochrones_are_dissolved(buildings_gdf):
    iso = gpd.GeoDataFrame(
        {"station": ["a", "b"]},
        geometry=[box(9.9, 55.9, 10.05, 56.1), box(10.0, 55.9, 10.1, 56.1)],
        crs="EPSG:4326",
    )
    area = union_isochrones(iso)

    assert area.geom_type == "Polygon"
    out = classify_buildings(buildings_gdf, iso)
    # A building straddling the seam between two catchments is still inside the union.
    assert int(out["inside"].sum()) == 6


def test_adding_an_isochrone_never_decreases_inside_count(buildings_gdf, isochrones_gdf):
    base = int(classify_buildings(buildings_gdf, isochrones_gdf)["inside"].sum())

    extra = gpd.GeoDataFrame(
        {"station": ["east"]}, geometry=[box(10.25, 55.9, 10.35, 56.0)], crs="EPSG:4326"
    )
    more = gpd.GeoDataFrame(
        pd.concat([isochrones_gdf, extra], ignore_index=True), crs="EPSG:4326"
    )
    grown = int(classify_buildings(buildings_gdf, more)["inside"].sum())

    assert grown >= base
    assert grown == 8


def test_building_crossing_the_boundary_is_outside(make_square, isochrones_gdf):
    buildings = gpd.GeoDataFrame(geometry=[make_square(10.1, 56.0)], crs="EPSG:4326")

    out = classify_buildings(buildings, isochrones_gdf)

    assert not out["inside"].iloc[0]


def test_no_isochrones_is_region_fatal(buildings_gdf):
    empty = gpd.GeoDataFrame({"station": []}, geometry=[], crs="EPSG:4326")

    with pytest.raises(NoIsochronesError) as exc:
        classify_buildings(buildings_gdf, empty, region="Testland")

    assert exc.value.kind is FailureKind.NO_ISOCHRONES
    assert exc.value.region == "Testland"


def test_requires_wgs84_inputs(buildings_gdf, isochrones_gdf):
    with pytest.raises(ValueError, match="EPSG:4326"):
        classify_buildings(buildings_gdf.to_crs("EPSG:25832"), isochrones_gdf)


def test_counts_match_summary_arithmetic(buildings_gdf, isochrones_gdf):
    out = classify_buildings(buildings_gdf, isochrones_gdf)
    counts = containment_counts(out, region="Testland")

    assert counts.inside + counts.outside == counts.total == 10
    assert counts.as_row() == {
        "Region": "Testland",
        "Inside": 6,
        "Outside": 4,
        "Total": 10,
        "Proportion_Inside": "60.0%",
    }


@pytest.mark.parametrize(
    "inside,outside,expected",
    [(1, 2, 33.3), (2, 1, 66.7), (0, 5, 0.0), (7, 0, 100.0), (0, 0, 0.0)],
)
def test_proportion_inside_rounds_to_one_decimal(inside, outside, expected):
    counts = ContainmentCounts(region="r", inside=inside, outside=outside)

    assert counts.proportion_inside == expected
    if counts.total:
        assert counts.proportion_inside == round(inside / counts.total * 100, 1)
