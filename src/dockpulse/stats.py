"""Derivation of display records from raw container statistics."""

import logging
import math
from typing import Any

import psutil

from dockpulse.models import (
    PLACEHOLDER,
    ContainerDescriptor,
    DisplayRecord,
    ResourceSnapshot,
)

logger = logging.getLogger(__name__)

DEFAULT_HOST_MEMORY = 8 * 1024**3
PRIMARY_INTERFACE = "eth0"


def _round(value: float) -> int:
    # Half-up; round() would turn 2.5 into 2.
    return math.floor(value + 0.5)


def cpu_percent(cpu_delta: float, system_delta: float, online_cpus: int) -> float:
    """
    CPU usage from two cumulative counter samples.

    Returns 0.0 when either delta is non-positive, which covers counter
    resets and the first sample after a container starts.
    """
    if system_delta <= 0 or cpu_delta <= 0:
        return 0.0
    return (cpu_delta / system_delta) * online_cpus * 100.0


def snapshot_cpu_percent(snapshot: ResourceSnapshot) -> float:
    """CPU usage of a snapshot carrying both current and previous counters."""
    if snapshot.cpu_total is None or snapshot.system_cpu is None:
        return 0.0
    cpu_delta = snapshot.cpu_total - (snapshot.precpu_total or 0)
    system_delta = snapshot.system_cpu - (snapshot.presystem_cpu or 0)
    return cpu_percent(cpu_delta, system_delta, snapshot.online_cpus or 1)


def host_memory_total() -> int:
    """Total host memory in bytes, or 8 GiB when it cannot be read."""
    try:
        total = psutil.virtual_memory().total
    except (OSError, RuntimeError, AttributeError):
        return DEFAULT_HOST_MEMORY
    return total or DEFAULT_HOST_MEMORY


def effective_memory_limit(limit: int | None, name: str = "") -> int:
    """Return limit, or host memory when the container has no limit."""
    if limit:
        return limit
    logger.warning("Container %s has no memory limit, using host memory", name or "?")
    return host_memory_total()


def memory_percent(usage: int, limit: int | None, name: str = "") -> float:
    """Memory usage as a percentage of the limit, clamped to [0, 100]."""
    limit = effective_memory_limit(limit, name)
    percent = usage / limit * 100.0
    return min(max(percent, 0.0), 100.0)


def format_mebibytes(size: int | None) -> str:
    """Format bytes as whole mebibytes, e.g. '512 MB'."""
    if size is None:
        return PLACEHOLDER
    return f"{_round(size / 1024 / 1024)} MB"


def format_kibibytes(size: int | None) -> str:
    """Format bytes as whole kibibytes, e.g. '2 KB'."""
    if size is None:
        return PLACEHOLDER
    return f"{_round(size / 1024)} KB"


def format_io_pair(first: int | None, second: int | None) -> str:
    """Format an in/out byte pair as '<first> KB / <second> KB'."""
    if first is None or second is None:
        return PLACEHOLDER
    return f"{format_kibibytes(first)} / {format_kibibytes(second)}"


def format_percent(value: float | None) -> str:
    """Format a percentage with two decimals, e.g. '12.50 %'."""
    if value is None:
        return PLACEHOLDER
    return f"{value:.2f} %"


def _select_interface(networks: dict[str, Any] | None) -> dict[str, Any] | None:
    if not networks:
        return None
    if PRIMARY_INTERFACE in networks:
        return networks[PRIMARY_INTERFACE]
    return next(iter(networks.values()))


def _block_io(blkio_stats: dict[str, Any] | None) -> tuple[int | None, int | None]:
    entries = (blkio_stats or {}).get("io_service_bytes_recursive")
    if entries is None:
        return None, None
    read = write = 0
    for entry in entries:
        op = str(entry.get("op", "")).lower()
        if op == "read":
            read += entry.get("value", 0)
        elif op == "write":
            write += entry.get("value", 0)
    return read, write


def snapshot_from_stats(stats: dict[str, Any]) -> ResourceSnapshot:
    """
    Build a ResourceSnapshot from the runtime's one-shot stats document.

    The document carries both the current (``cpu_stats``) and previous
    (``precpu_stats``) CPU counters, so a single read is enough for a delta.
    """
    cpu_stats = stats.get("cpu_stats") or {}
    precpu_stats = stats.get("precpu_stats") or {}
    cpu_usage = cpu_stats.get("cpu_usage") or {}
    memory_stats = stats.get("memory_stats") or {}
    interface = _select_interface(stats.get("networks"))
    block_read, block_write = _block_io(stats.get("blkio_stats"))

    online_cpus = cpu_stats.get("online_cpus")
    if not online_cpus:
        online_cpus = len(cpu_usage.get("percpu_usage") or []) or None

    return ResourceSnapshot(
        memory_usage=memory_stats.get("usage"),
        memory_limit=memory_stats.get("limit"),
        cpu_total=cpu_usage.get("total_usage"),
        precpu_total=(precpu_stats.get("cpu_usage") or {}).get("total_usage"),
        system_cpu=cpu_stats.get("system_cpu_usage"),
        presystem_cpu=precpu_stats.get("system_cpu_usage"),
        online_cpus=online_cpus,
        net_rx=interface.get("rx_bytes") if interface else None,
        net_tx=interface.get("tx_bytes") if interface else None,
        block_read=block_read,
        block_write=block_write,
        pids=(stats.get("pids_stats") or {}).get("current"),
    )


def placeholder_record(descriptor: ContainerDescriptor) -> DisplayRecord:
    """Record for a container whose statistics could not be read."""
    return DisplayRecord(
        name=descriptor.name,
        status=descriptor.state,
        warning=descriptor.warning,
        cpu_percent=PLACEHOLDER,
    )


def derive_record(
    descriptor: ContainerDescriptor,
    snapshot: ResourceSnapshot,
    cpu_override: float | None = None,
) -> DisplayRecord:
    """
    Turn one container's snapshot into its display record.

    Args:
        descriptor: Listing entry of the container.
        snapshot: Counters read for the container in this poll.
        cpu_override: Pre-computed CPU percentage from the metrics database.
            When None the percentage is derived from the counter deltas.
    """
    if snapshot.memory_usage is not None:
        limit = effective_memory_limit(snapshot.memory_limit, descriptor.name)
        mem_limit = format_mebibytes(limit)
        mem_percent = format_percent(
            memory_percent(snapshot.memory_usage, limit, descriptor.name)
        )
    else:
        mem_limit = format_mebibytes(snapshot.memory_limit or None)
        mem_percent = PLACEHOLDER

    if cpu_override is not None:
        cpu = cpu_override
    else:
        cpu = snapshot_cpu_percent(snapshot)

    return DisplayRecord(
        name=descriptor.name,
        status=descriptor.state,
        warning=descriptor.warning,
        mem_usage=format_mebibytes(snapshot.memory_usage),
        mem_limit=mem_limit,
        mem_percent=mem_percent,
        net_io=format_io_pair(snapshot.net_rx, snapshot.net_tx),
        block_io=format_io_pair(snapshot.block_read, snapshot.block_write),
        pids=str(snapshot.pids) if snapshot.pids is not None else PLACEHOLDER,
        cpu_percent=format_percent(cpu),
    )
