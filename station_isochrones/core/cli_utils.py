"""Common CLI utilities for pipeline scripts."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any


def create_base_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-download stations/isochrones even if cached files exist.",
    )
    parser.add_argument(
        "--checkpoint",
        action="store_true",
        help="Log checkpoint summary including output hashes.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the analysis YAML config (default: config/analysis_config.yaml).",
    )
    return parser


def add_region_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--regions",
        nargs="*",
        default=None,
        help="Only process these configured region names (default: all).",
    )
    parser.add_argument(
        "--no-figures",
        action="store_true",
        help="Skip the interactive maps, composite map and histogram.",
    )


class RunStats:
    """Simple container for collecting statistics across regions."""

    def __init__(self) -> None:
        self.stats: dict[str, Any] = {}
        self.completed_regions: list[str] = []
        self.failed_regions: list[str] = []

    def update(self, region_stats: dict[str, Any]) -> None:
        self.stats.update(region_stats)

    def add_region(self, name: str, *, ok: bool) -> None:
        (self.completed_regions if ok else self.failed_regions).append(name)

    def get_summary(self) -> dict[str, Any]:
        return {
            "completed_regions": self.completed_regions,
            "failed_regions": self.failed_regions,
            "region_count": len(self.completed_regions) + len(self.failed_regions),
            **self.stats,
        }
