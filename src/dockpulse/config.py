"""Environment-driven settings for dockpulse."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from dockpulse.errors import ConfigError
from dockpulse.prometheus import DEFAULT_CPU_QUERY

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _number(
    environ: Mapping[str, str],
    key: str,
    default: float,
    kind: type = float,
    minimum: float | None = None,
) -> Any:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = kind(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a {kind.__name__}, got {raw!r}") from exc
    if minimum is not None and value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


@dataclass(slots=True, frozen=True)
class Settings:
    """Process-wide settings, read once at startup."""

    docker_host: str | None = None
    prometheus_url: str | None = None
    host: str = "0.0.0.0"
    port: int = 3003
    allowed_origin: str = "http://localhost:3001"
    poll_interval: float = 1.0  # Seconds between push frames
    stats_timeout: float = 5.0  # Seconds per container stats fetch
    max_concurrent_fetches: int = 16
    cpu_query: str = DEFAULT_CPU_QUERY
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        Build settings from environment variables.

        Raises:
            ConfigError: a variable is set but cannot be used.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        log_level = (env.get("LOG_LEVEL") or defaults.log_level).upper()
        if log_level not in LOG_LEVELS:
            raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

        port = _number(env, "PORT", defaults.port, kind=int, minimum=1)
        if port > 65535:
            raise ConfigError(f"PORT must be <= 65535, got {port}")

        return cls(
            docker_host=env.get("DOCKER_HOST") or None,
            prometheus_url=env.get("PROMETHEUS_URL") or None,
            host=env.get("HOST") or defaults.host,
            port=port,
            allowed_origin=env.get("ALLOWED_ORIGIN") or defaults.allowed_origin,
            poll_interval=_number(env, "POLL_INTERVAL", defaults.poll_interval, minimum=0.1),
            stats_timeout=_number(env, "STATS_TIMEOUT", defaults.stats_timeout, minimum=0.1),
            max_concurrent_fetches=_number(
                env, "MAX_CONCURRENT_FETCHES", defaults.max_concurrent_fetches, kind=int, minimum=1
            ),
            cpu_query=env.get("CPU_QUERY") or defaults.cpu_query,
            log_level=log_level,
        )
