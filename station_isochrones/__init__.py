"""Station isochrone coverage of building footprints (Danish regions)."""

from .pipeline import (  # noqa: F401
    RegionResult,
    concat_distances,
    default_sources,
    failures,
    run_region,
    run_regions,
    summarize,
)
