"""Client for the metrics time-series database (Prometheus HTTP API)."""

import logging
from typing import Any

import httpx

from dockpulse.errors import MetricsQueryError
from dockpulse.models import QueryResult

logger = logging.getLogger(__name__)

DEFAULT_CPU_QUERY = "rate(container_cpu_usage_seconds_total[1m])"
CONTAINER_CPU_QUERY = 'rate(container_cpu_usage_seconds_total{{container="{name}"}}[1m]) * 100'


def _parse_result(item: dict[str, Any]) -> QueryResult:
    timestamp, value = item["value"]
    return QueryResult(
        labels=dict(item.get("metric") or {}),
        timestamp=float(timestamp),
        value=float(value),
    )


def to_cpu_rows(results: list[QueryResult]) -> list[dict[str, Any]]:
    """Translate CPU rate samples into ``{container, cpuPercent}`` rows."""
    return [
        {
            "container": result.labels.get("container") or "unknown",
            "cpuPercent": result.value * 100,
        }
        for result in results
    ]


class PrometheusClient:
    """
    Async client for instant queries against a Prometheus-compatible API.

    One instance is built at process start and shared; call ``aclose()`` at
    shutdown to release its connection pool.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def instant_query(self, expression: str) -> list[QueryResult]:
        """
        Evaluate an expression at the current instant.

        Raises:
            MetricsQueryError: the server is unreachable, answers with an
                error status, or returns a payload that is not a vector.
        """
        logger.debug("Executing metrics query: %s", expression)
        try:
            response = await self._client.get("/api/v1/query", params={"query": expression})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise MetricsQueryError(f"query failed: {exc}") from exc
        except ValueError as exc:
            raise MetricsQueryError("metrics source returned invalid JSON") from exc

        if not isinstance(payload, dict):
            raise MetricsQueryError("metrics source returned an unexpected payload")
        if payload.get("status") != "success":
            raise MetricsQueryError(payload.get("error") or "query was not successful")

        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise MetricsQueryError("metrics source returned an unexpected data block")
        if data.get("resultType") not in ("vector", "scalar", None):
            raise MetricsQueryError(f"unsupported result type {data.get('resultType')}")

        result = data.get("result") or []
        if data.get("resultType") == "scalar":
            result = [{"metric": {}, "value": result}]
        try:
            return [_parse_result(item) for item in result]
        except (KeyError, TypeError, ValueError) as exc:
            raise MetricsQueryError("malformed sample in query result") from exc

    async def container_cpu_percent(self, name: str) -> float | None:
        """Pre-computed CPU percentage of one container, None if absent."""
        results = await self.instant_query(CONTAINER_CPU_QUERY.format(name=name))
        if not results:
            return None
        return results[0].value

    async def cpu_rows(self, expression: str = DEFAULT_CPU_QUERY) -> list[dict[str, Any]]:
        """Run a CPU rate expression and return ``{container, cpuPercent}`` rows."""
        return to_cpu_rows(await self.instant_query(expression))

    async def aclose(self) -> None:
        await self._client.aclose()
