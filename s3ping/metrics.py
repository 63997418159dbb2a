"""
Prometheus metrics for the discovery registry.

Every metric is labelled by group name. A label set is created per group
the process touches and is kept for the life of the process, so the series
count grows with the number of distinct groups. Deployments are expected to
use a small, fixed set of group names; a process that joins many short-lived
groups (e.g. random names per run) should not export these metrics.
"""
import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Histogram


registry_metrics = {
    "reads": Counter(
        "s3ping_reads_total",
        "Number of discovery rounds (read_all) started",
        ["group"]
    ),
    "records_discovered": Counter(
        "s3ping_records_discovered_total",
        "Number of peer records decoded from the bucket",
        ["group"]
    ),
    "read_failures": Counter(
        "s3ping_read_failures_total",
        "Failures during discovery rounds, by stage (list, fetch, decode)",
        ["group", "stage"]
    ),
    "read_duration": Histogram(
        "s3ping_read_duration_seconds",
        "Duration of a discovery round",
        ["group"]
    ),
    "writes": Counter(
        "s3ping_writes_total",
        "Number of advertisement writes, by status",
        ["group", "status"]
    ),
    "deletes": Counter(
        "s3ping_deletes_total",
        "Number of object deletions, by operation (remove, remove_all) and status "
        "(success, failure, list_failure)",
        ["group", "operation", "status"]
    ),
}


@contextmanager
def observe_duration(histogram: Histogram, **labels) -> Iterator[None]:
    """
    Records the time spent in the block in a labelled histogram.

    Args:
        histogram: Histogram metric
        labels: Label values for the histogram
    """
    start_time = time.time()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.time() - start_time)
