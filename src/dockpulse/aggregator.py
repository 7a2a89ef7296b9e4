"""Aggregation of per-container statistics into one dashboard payload."""

import asyncio
import dataclasses
import logging
from typing import Any

from dockpulse.exporter import GaugeExporter
from dockpulse.models import AggregateCounts, ContainerDescriptor, DisplayRecord
from dockpulse.prometheus import PrometheusClient
from dockpulse.runtime import RuntimeSource
from dockpulse.stats import (
    derive_record,
    effective_memory_limit,
    memory_percent,
    placeholder_record,
    snapshot_cpu_percent,
)

logger = logging.getLogger(__name__)


class ContainerAggregator:
    """
    Collects statistics for every container and assembles the payload.

    Each call lists the containers afresh and fans out one statistics fetch
    per container. Fetches run in worker threads, at most ``max_concurrent``
    at a time, each bounded by ``stats_timeout``.
    """

    def __init__(
        self,
        runtime: RuntimeSource,
        metrics: PrometheusClient | None = None,
        exporter: GaugeExporter | None = None,
        stats_timeout: float = 5.0,
        max_concurrent: int = 16,
    ) -> None:
        """
        Initialize the ContainerAggregator.

        Args:
            runtime: Source of container listings and statistics.
            metrics: Optional metrics database supplying CPU rates.
            exporter: Optional gauge exporter updated on every computation.
            stats_timeout: Seconds allowed for one container's statistics.
            max_concurrent: Upper bound on in-flight statistics fetches.
        """
        self._runtime = runtime
        self._metrics = metrics
        self._exporter = exporter
        self._stats_timeout = stats_timeout
        self._max_concurrent = max(1, max_concurrent)

    async def fetch_container_stats(self) -> dict[str, Any]:
        """
        Compute counts and display records for all containers.

        Raises:
            RuntimeUnavailableError: the container listing itself failed.
        """
        descriptors = await asyncio.to_thread(self._runtime.list_containers, True)
        counts = AggregateCounts.tally(descriptors)

        semaphore = asyncio.Semaphore(self._max_concurrent)
        records = await asyncio.gather(
            *(self._collect(descriptor, semaphore) for descriptor in descriptors)
        )

        if self._exporter is not None:
            self._exporter.retain({descriptor.name for descriptor in descriptors})

        return {
            "stats": counts.to_dict(),
            "containers": [record.to_dict() for record in records],
        }

    async def _collect(
        self,
        descriptor: ContainerDescriptor,
        semaphore: asyncio.Semaphore,
    ) -> DisplayRecord:
        async with semaphore:
            try:
                snapshot = await asyncio.wait_for(
                    asyncio.to_thread(self._runtime.get_stats, descriptor.id),
                    timeout=self._stats_timeout,
                )
            except Exception as exc:
                logger.error("Error fetching stats for container %s: %r", descriptor.name, exc)
                return placeholder_record(descriptor)

            if snapshot.memory_usage is not None and not snapshot.memory_limit:
                limit = await self._configured_limit(descriptor)
                snapshot = dataclasses.replace(
                    snapshot,
                    memory_limit=effective_memory_limit(limit, descriptor.name),
                )

        cpu = await self._metrics_cpu(descriptor)
        try:
            record = derive_record(descriptor, snapshot, cpu_override=cpu)
            if self._exporter is not None:
                self._exporter.observe(
                    descriptor.name,
                    snapshot,
                    cpu if cpu is not None else snapshot_cpu_percent(snapshot),
                    memory_percent(snapshot.memory_usage, snapshot.memory_limit)
                    if snapshot.memory_usage is not None
                    else None,
                )
        except Exception as exc:
            logger.error("Error deriving stats for container %s: %r", descriptor.name, exc)
            return placeholder_record(descriptor)
        return record

    async def _configured_limit(self, descriptor: ContainerDescriptor) -> int:
        try:
            details = await asyncio.wait_for(
                asyncio.to_thread(self._runtime.inspect, descriptor.id),
                timeout=self._stats_timeout,
            )
        except Exception as exc:
            logger.warning("Cannot inspect container %s: %r", descriptor.name, exc)
            return 0
        return details.get("memory_limit") or 0

    async def _metrics_cpu(self, descriptor: ContainerDescriptor) -> float | None:
        if self._metrics is None:
            return None
        try:
            return await self._metrics.container_cpu_percent(descriptor.name)
        except Exception as exc:
            logger.warning("Error fetching CPU %% for container %s: %s", descriptor.name, exc)
            return None
