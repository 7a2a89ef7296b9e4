"""Data models for dockpulse."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

PLACEHOLDER = "--"


class ContainerState(Enum):
    """Lifecycle bucket a container is counted in."""

    RUNNING = "running"
    EXITED = "exited"
    UNHEALTHY = "unhealthy"
    RESTARTING = "restarting"
    OTHER = "other"

    @classmethod
    def classify(cls, state: str, status: str = "") -> "ContainerState":
        """
        Map a runtime state and status text onto one bucket.

        The runtime reports health only as an annotation in the status text
        (e.g. ``Up 3 minutes (unhealthy)``), so a running container carrying
        that annotation is counted as unhealthy rather than running.
        """
        state = (state or "").lower()
        if state == "unhealthy":
            return cls.UNHEALTHY
        if state == "running":
            if "(unhealthy)" in (status or ""):
                return cls.UNHEALTHY
            return cls.RUNNING
        if state == "exited":
            return cls.EXITED
        if state == "restarting":
            return cls.RESTARTING
        return cls.OTHER


def normalize_name(raw_name: str) -> str:
    """Strip the single leading '/' the runtime puts in front of names."""
    if raw_name.startswith("/"):
        return raw_name[1:]
    return raw_name


@dataclass(slots=True, frozen=True)
class ContainerDescriptor:
    """One entry of the runtime's container listing."""

    id: str
    name: str
    state: str  # raw lifecycle state, e.g. 'running', 'exited'
    status: str  # raw status text, may carry '(unhealthy)'

    @classmethod
    def from_runtime(cls, raw: dict[str, Any]) -> "ContainerDescriptor":
        names = raw.get("Names") or []
        name = normalize_name(names[0]) if names else raw.get("Id", "")[:12]
        return cls(
            id=raw.get("Id", ""),
            name=name,
            state=raw.get("State") or "",
            status=raw.get("Status") or "",
        )

    @property
    def bucket(self) -> ContainerState:
        return ContainerState.classify(self.state, self.status)

    @property
    def warning(self) -> bool:
        """True iff the status text reports a failing health check."""
        return "unhealthy" in self.status


@dataclass(slots=True, frozen=True)
class ResourceSnapshot:
    """
    Immutable snapshot of one container's resource counters.

    Any counter the runtime did not report is None.
    """

    memory_usage: int | None = None  # Bytes
    memory_limit: int | None = None  # Bytes, 0 means no limit configured
    cpu_total: int | None = None  # Cumulative nanoseconds
    precpu_total: int | None = None
    system_cpu: int | None = None
    presystem_cpu: int | None = None
    online_cpus: int | None = None
    net_rx: int | None = None  # Bytes, primary interface
    net_tx: int | None = None
    block_read: int | None = None  # Bytes
    block_write: int | None = None
    pids: int | None = None


@dataclass(slots=True, frozen=True)
class DisplayRecord:
    """Per-container record sent to dashboard clients."""

    name: str
    status: str
    warning: bool
    mem_usage: str = PLACEHOLDER
    mem_limit: str = PLACEHOLDER
    mem_percent: str = PLACEHOLDER
    net_io: str = PLACEHOLDER
    block_io: str = PLACEHOLDER
    pids: str = PLACEHOLDER
    cpu_percent: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "status": self.status,
            "warning": self.warning,
            "memUsage": self.mem_usage,
            "memLimit": self.mem_limit,
            "memPercent": self.mem_percent,
            "netIO": self.net_io,
            "blockIO": self.block_io,
            "pids": self.pids,
        }
        if self.cpu_percent is not None:
            data["cpuPercent"] = self.cpu_percent
        return data


@dataclass(slots=True)
class AggregateCounts:
    """Per-bucket container counts, recomputed on every poll."""

    running: int = 0
    stopped: int = 0
    unhealthy: int = 0
    restarting: int = 0

    @classmethod
    def tally(cls, descriptors: list[ContainerDescriptor]) -> "AggregateCounts":
        counts = cls()
        for descriptor in descriptors:
            bucket = descriptor.bucket
            if bucket is ContainerState.RUNNING:
                counts.running += 1
            elif bucket is ContainerState.EXITED:
                counts.stopped += 1
            elif bucket is ContainerState.UNHEALTHY:
                counts.unhealthy += 1
            elif bucket is ContainerState.RESTARTING:
                counts.restarting += 1
        return counts

    @property
    def total(self) -> int:
        return self.running + self.stopped + self.unhealthy + self.restarting

    def to_dict(self) -> dict[str, int]:
        return {
            "running": self.running,
            "stopped": self.stopped,
            "unhealthy": self.unhealthy,
            "restarting": self.restarting,
        }


@dataclass(slots=True, frozen=True)
class QueryResult:
    """One labelled sample of an instant metrics query."""

    labels: dict[str, str] = field(default_factory=dict)
    timestamp: float = 0.0
    value: float = 0.0
