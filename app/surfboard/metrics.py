"""Boiler plate for the metrics a single run produces.

The exporter this grew out of was a long-running process that prometheus scraped directly.
A watchdog run lasts a few seconds, so instead everything goes into its own registry which gets dumped into a
file for node_exporter's textfile collector to pick up. A dedicated registry keeps the default process/python
collectors out of that file; they'd describe a process that no longer exists by the time anyone reads them.
"""

from pathlib import Path

import structlog
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Summary,
    disable_created_metrics,
    write_to_textfile,
)

# `_created` samples are useless in a textfile that is rewritten every run
disable_created_metrics()

log = structlog.get_logger(__name__)

METRICS_NS = "surfboard"
META_NS = "meta"

REGISTRY = CollectorRegistry()

##
# Meta Metrics
##
# Only two requests ever go to the modem so we can index by target
s_meta_request_time = Summary(
    f"{META_NS}_request_duration_seconds",
    "Time spent waiting for modem to respond",
    labelnames=["request_target"],
    registry=REGISTRY,
)

c_meta_request_result = Counter(
    f"{META_NS}_request_result",
    "Count of modem requests by HTTP status",
    # "error" is used when there was no HTTP status at all (connection refused ... etc)
    labelnames=["http_code", "request_target"],
    registry=REGISTRY,
)

##
# What we actually came for
##
g_correctable_errors = Gauge(
    f"{METRICS_NS}_correctable_errors",
    "Sum of correctable errors across locked QAM256 downstream channels.",
    registry=REGISTRY,
)

g_uncorrectable_errors = Gauge(
    f"{METRICS_NS}_uncorrectable_errors",
    "Sum of uncorrectable errors across locked QAM256 downstream channels.",
    registry=REGISTRY,
)

g_locked_channels = Gauge(
    f"{METRICS_NS}_locked_channels",
    "Count of locked QAM256 downstream channels that went into the sums.",
    registry=REGISTRY,
)

c_remediation = Counter(
    f"{METRICS_NS}_remediation",
    "Count of reboot decisions, including dry runs.",
    labelnames=["reset", "dry_run"],
    registry=REGISTRY,
)


def record_counts(correctable: int, uncorrectable: int, channels: int) -> None:
    g_correctable_errors.set(correctable)
    g_uncorrectable_errors.set(uncorrectable)
    g_locked_channels.set(channels)


def write_textfile(path: Path) -> None:
    """Dump the registry for the textfile collector. write_to_textfile() does the tmp-file + rename for us."""
    write_to_textfile(str(path), REGISTRY)
    log.debug("Wrote metrics", path=str(path))
