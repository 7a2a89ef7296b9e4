"""Shared fakes for dockpulse tests."""

import threading
import time

import pytest

from dockpulse.errors import RuntimeUnavailableError, StatsUnavailableError
from dockpulse.models import ContainerDescriptor, ResourceSnapshot
from dockpulse.stats import snapshot_from_stats

MiB = 1024 * 1024


def make_stats(
    memory_usage: int = 256 * MiB,
    memory_limit: int = 1024 * MiB,
    cpu_total: int = 400_000_000,
    precpu_total: int = 200_000_000,
    system_cpu: int = 20_000_000_000,
    presystem_cpu: int = 18_000_000_000,
    online_cpus: int = 4,
    rx: int = 4096,
    tx: int = 2048,
    read: int = 10240,
    write: int = 5120,
    pids: int = 7,
) -> dict:
    """Build a one-shot engine stats document."""
    return {
        "cpu_stats": {
            "cpu_usage": {"total_usage": cpu_total},
            "system_cpu_usage": system_cpu,
            "online_cpus": online_cpus,
        },
        "precpu_stats": {
            "cpu_usage": {"total_usage": precpu_total},
            "system_cpu_usage": presystem_cpu,
        },
        "memory_stats": {"usage": memory_usage, "limit": memory_limit},
        "networks": {"eth0": {"rx_bytes": rx, "tx_bytes": tx}},
        "blkio_stats": {
            "io_service_bytes_recursive": [
                {"major": 8, "minor": 0, "op": "read", "value": read},
                {"major": 8, "minor": 0, "op": "write", "value": write},
            ]
        },
        "pids_stats": {"current": pids},
    }


def make_container(cid: str, name: str, state: str = "running", status: str = "Up 5 minutes") -> dict:
    """Build one engine listing entry."""
    return {"Id": cid, "Names": [f"/{name}"], "State": state, "Status": status}


class FakeRuntime:
    """In-memory RuntimeSource with per-container stats, delays and failures."""

    def __init__(self, containers: list[dict], stats: dict | None = None) -> None:
        self.containers = containers
        self.stats = stats or {}
        self.limits: dict[str, int] = {}
        self.delays: dict[str, float] = {}
        self.failing: set[str] = set()
        self.list_error: Exception | None = None
        self.inspected: list[str] = []
        self._lock = threading.Lock()
        self.in_flight = 0
        self.max_in_flight = 0

    def list_containers(self, include_stopped: bool = True) -> list[ContainerDescriptor]:
        if self.list_error is not None:
            raise self.list_error
        return [ContainerDescriptor.from_runtime(raw) for raw in self.containers]

    def get_stats(self, container_id: str) -> ResourceSnapshot:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            time.sleep(self.delays.get(container_id, 0.0))
            if container_id in self.failing:
                raise StatsUnavailableError(container_id, "connection reset")
            return snapshot_from_stats(self.stats.get(container_id) or make_stats())
        finally:
            with self._lock:
                self.in_flight -= 1

    def inspect(self, container_id: str) -> dict[str, int]:
        self.inspected.append(container_id)
        return {"memory_limit": self.limits.get(container_id, 0)}


@pytest.fixture
def runtime() -> FakeRuntime:
    """Runtime with two running containers (one failing) and one exited."""
    fake = FakeRuntime(
        [
            make_container("aaa", "web"),
            make_container("bbb", "worker"),
            make_container("ccc", "batch", state="exited", status="Exited (0) 2 hours ago"),
        ]
    )
    fake.failing.add("bbb")
    return fake


@pytest.fixture
def broken_runtime() -> FakeRuntime:
    """Runtime whose listing always fails."""
    fake = FakeRuntime([])
    fake.list_error = RuntimeUnavailableError("cannot list containers: connection refused")
    return fake
