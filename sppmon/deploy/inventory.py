import logging
from typing import Dict, List, Optional

from prometheus_client import CollectorRegistry, Gauge, generate_latest
from prometheus_client.parser import text_string_to_metric_families

from sppmon.config import effective_settings

log = logging.getLogger(__name__)


def render_inventory(releases: List[str], current: Optional[str]) -> str:
    """
    Renders the release inventory of one target as Prometheus text exposition.

    Every installed release gets one `sppmon_release` sample with value 1; the
    `current` label is "true" on the active release only.

    :param releases: Installed release ids, in the order they should be listed.
    :param current: The id the current pointer references, or None.
    :return: The textfile content.
    """
    registry = CollectorRegistry()
    gauge = Gauge(
        effective_settings.INVENTORY_METRIC_NAME,
        effective_settings.INVENTORY_METRIC_HELP,
        ["release", "current"],
        registry=registry,
    )
    for release_id in releases:
        gauge.labels(release=release_id, current="true" if release_id == current else "false").set(1)
    return generate_latest(registry).decode("utf-8")


def parse_inventory(text: str) -> Dict[str, bool]:
    """Maps release id to its `current` flag for an inventory rendered by `render_inventory`."""
    rows: Dict[str, bool] = {}
    for family in text_string_to_metric_families(text):
        if family.name != effective_settings.INVENTORY_METRIC_NAME:
            continue
        for sample in family.samples:
            rows[sample.labels["release"]] = sample.labels.get("current") == "true"
    return rows
