"""Gauge export of the last computed container statistics."""

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest

from dockpulse.models import ResourceSnapshot


class GaugeExporter:
    """Holds per-container gauges in a private registry for scraping."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.cpu = Gauge(
            "cpu_usage_percent",
            "CPU usage in percentage",
            ["container"],
            registry=self.registry,
        )
        self.memory = Gauge(
            "memory_usage_percent",
            "Memory usage in percentage",
            ["container"],
            registry=self.registry,
        )
        self.network_in = Gauge(
            "network_in_bytes",
            "Network in bytes",
            ["container"],
            registry=self.registry,
        )
        self.network_out = Gauge(
            "network_out_bytes",
            "Network out bytes",
            ["container"],
            registry=self.registry,
        )
        self.pids = Gauge(
            "pids",
            "Number of processes",
            ["container"],
            registry=self.registry,
        )
        self._gauges = (self.cpu, self.memory, self.network_in, self.network_out, self.pids)
        self._containers: set[str] = set()

    def observe(
        self,
        name: str,
        snapshot: ResourceSnapshot,
        cpu_percent: float,
        memory_percent: float | None,
    ) -> None:
        """Set the gauges of one container from its latest snapshot."""
        self.cpu.labels(container=name).set(cpu_percent)
        if memory_percent is not None:
            self.memory.labels(container=name).set(memory_percent)
        if snapshot.net_rx is not None:
            self.network_in.labels(container=name).set(snapshot.net_rx)
        if snapshot.net_tx is not None:
            self.network_out.labels(container=name).set(snapshot.net_tx)
        if snapshot.pids is not None:
            self.pids.labels(container=name).set(snapshot.pids)
        self._containers.add(name)

    def retain(self, names: set[str]) -> None:
        """Drop the label sets of containers no longer listed."""
        for name in self._containers - names:
            for gauge in self._gauges:
                try:
                    gauge.remove(name)
                except KeyError:
                    pass  # Never observed for this gauge
        self._containers &= names

    def render(self) -> tuple[bytes, str]:
        """Exposition text and its content type."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
