"""Exception types for dockpulse."""


class DockpulseError(Exception):
    """Base class for all dockpulse errors."""


class ConfigError(DockpulseError):
    """Raised when an environment setting cannot be parsed."""


class RuntimeUnavailableError(DockpulseError):
    """Raised when the container runtime cannot list containers at all."""


class StatsUnavailableError(DockpulseError):
    """Raised when live statistics for a single container cannot be read."""

    def __init__(self, container_id: str, reason: str) -> None:
        super().__init__(f"stats unavailable for {container_id}: {reason}")
        self.container_id = container_id
        self.reason = reason


class MetricsQueryError(DockpulseError):
    """Raised when the metrics time-series database rejects or fails a query."""
