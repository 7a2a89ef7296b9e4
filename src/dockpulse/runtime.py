"""Container runtime access for dockpulse."""

import logging
import threading
from typing import Any, Protocol

import docker
from docker.errors import DockerException
from requests.exceptions import RequestException

from dockpulse.errors import RuntimeUnavailableError, StatsUnavailableError
from dockpulse.models import ContainerDescriptor, ResourceSnapshot
from dockpulse.stats import snapshot_from_stats

logger = logging.getLogger(__name__)


class RuntimeSource(Protocol):
    """The narrow slice of the runtime's administrative API dockpulse needs."""

    def list_containers(self, include_stopped: bool = True) -> list[ContainerDescriptor]:
        ...

    def get_stats(self, container_id: str) -> ResourceSnapshot:
        ...

    def inspect(self, container_id: str) -> dict[str, int]:
        ...


class DockerRuntime:
    """
    RuntimeSource backed by the Docker Engine API.

    Uses the SDK's low-level client, whose listing and stats documents are
    the raw engine JSON. The client is created on first use so that the
    service starts even while the engine is unreachable. All calls block and
    are meant to run in a worker thread.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = 10.0,
        client: Any = None,
    ) -> None:
        """
        Initialize the DockerRuntime.

        Args:
            base_url: Engine endpoint, e.g. ``unix:///var/run/docker.sock``.
                When None the standard DOCKER_* environment is used.
            timeout: Per-request timeout of the engine client (seconds).
            client: Pre-built low-level API client, used by tests.
        """
        self._base_url = base_url
        self._timeout = timeout
        self._api = client
        self._owned = client is None
        self._lock = threading.Lock()

    @property
    def api(self) -> Any:
        """The low-level engine client, connected on first access."""
        with self._lock:
            if self._api is None:
                try:
                    if self._base_url:
                        self._api = docker.APIClient(base_url=self._base_url, timeout=self._timeout)
                    else:
                        self._api = docker.from_env(timeout=self._timeout).api
                except DockerException as exc:
                    raise RuntimeUnavailableError(f"cannot connect to runtime: {exc}") from exc
                logger.info("Connected to container runtime at %s", self._api.base_url)
            return self._api

    def list_containers(self, include_stopped: bool = True) -> list[ContainerDescriptor]:
        api = self.api
        try:
            raw = api.containers(all=include_stopped)
        except (DockerException, RequestException) as exc:
            raise RuntimeUnavailableError(f"cannot list containers: {exc}") from exc
        return [ContainerDescriptor.from_runtime(item) for item in raw]

    def get_stats(self, container_id: str) -> ResourceSnapshot:
        try:
            stats = self.api.stats(container_id, stream=False)
        except (DockerException, RequestException) as exc:
            raise StatsUnavailableError(container_id, str(exc)) from exc
        if not isinstance(stats, dict):
            raise StatsUnavailableError(container_id, "malformed stats document")
        return snapshot_from_stats(stats)

    def inspect(self, container_id: str) -> dict[str, int]:
        """Return ``{"memory_limit": bytes}``, 0 when no limit is configured."""
        try:
            details = self.api.inspect_container(container_id)
        except (DockerException, RequestException) as exc:
            raise StatsUnavailableError(container_id, str(exc)) from exc
        host_config = details.get("HostConfig") or {}
        return {"memory_limit": host_config.get("Memory") or 0}

    def close(self) -> None:
        with self._lock:
            if self._owned and self._api is not None:
                self._api.close()
                self._api = None
