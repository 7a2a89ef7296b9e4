"""Tests for the PrometheusClient."""

import httpx
import pytest

from dockpulse.errors import MetricsQueryError
from dockpulse.models import QueryResult
from dockpulse.prometheus import DEFAULT_CPU_QUERY, PrometheusClient, to_cpu_rows


def vector(*samples) -> dict:
    """Build a successful instant-vector response."""
    return {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [
                {"metric": labels, "value": [1700000000.123, str(value)]}
                for labels, value in samples
            ],
        },
    }


def make_client(handler) -> PrometheusClient:
    return PrometheusClient("http://prometheus:9090/", transport=httpx.MockTransport(handler))


class TestInstantQuery:
    """Tests for instant query parsing and error mapping."""

    @pytest.mark.asyncio
    async def test_parses_vector(self):
        """Test samples are parsed into QueryResults."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=vector(({"container": "web"}, 0.25)))

        client = make_client(handler)
        try:
            results = await client.instant_query("up")
        finally:
            await client.aclose()

        assert results == [
            QueryResult(labels={"container": "web"}, timestamp=1700000000.123, value=0.25)
        ]
        assert seen[0].url.path == "/api/v1/query"
        assert seen[0].url.params["query"] == "up"

    @pytest.mark.asyncio
    async def test_empty_result(self):
        """Test an empty vector is not an error."""
        client = make_client(lambda request: httpx.Response(200, json=vector()))
        try:
            assert await client.instant_query("up") == []
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_scalar_result(self):
        """Test a scalar result becomes one unlabelled sample."""
        payload = {"status": "success", "data": {"resultType": "scalar", "result": [1.0, "3"]}}
        client = make_client(lambda request: httpx.Response(200, json=payload))
        try:
            results = await client.instant_query("scalar(3)")
        finally:
            await client.aclose()

        assert results == [QueryResult(labels={}, timestamp=1.0, value=3.0)]

    @pytest.mark.asyncio
    async def test_error_status(self):
        """Test a query the server rejects raises MetricsQueryError."""
        payload = {"status": "error", "errorType": "bad_data", "error": "parse error"}
        client = make_client(lambda request: httpx.Response(200, json=payload))
        try:
            with pytest.raises(MetricsQueryError, match="parse error"):
                await client.instant_query("rate(")
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_http_error(self):
        """Test a non-2xx answer raises MetricsQueryError."""
        client = make_client(lambda request: httpx.Response(503, text="unavailable"))
        try:
            with pytest.raises(MetricsQueryError):
                await client.instant_query("up")
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_connect_error(self):
        """Test an unreachable server raises MetricsQueryError."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        try:
            with pytest.raises(MetricsQueryError):
                await client.instant_query("up")
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        """Test a non-JSON body raises MetricsQueryError."""
        client = make_client(lambda request: httpx.Response(200, text="<html>"))
        try:
            with pytest.raises(MetricsQueryError):
                await client.instant_query("up")
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_non_object_data(self):
        """Test a successful status with a list data block raises MetricsQueryError."""
        payload = {"status": "success", "data": ["oops"]}
        client = make_client(lambda request: httpx.Response(200, json=payload))
        try:
            with pytest.raises(MetricsQueryError):
                await client.instant_query("up")
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_malformed_sample(self):
        """Test a sample without a value raises MetricsQueryError."""
        payload = {"status": "success", "data": {"resultType": "vector", "result": [{"metric": {}}]}}
        client = make_client(lambda request: httpx.Response(200, json=payload))
        try:
            with pytest.raises(MetricsQueryError):
                await client.instant_query("up")
        finally:
            await client.aclose()


class TestCpuHelpers:
    """Tests for the CPU-specific helpers."""

    def test_to_cpu_rows(self):
        """Test rates become percentages and missing labels become 'unknown'."""
        rows = to_cpu_rows(
            [
                QueryResult(labels={"container": "web"}, value=0.5),
                QueryResult(labels={"pod": "x"}, value=0.015),
            ]
        )
        assert rows[0] == {"container": "web", "cpuPercent": 50.0}
        assert rows[1]["container"] == "unknown"
        assert rows[1]["cpuPercent"] == pytest.approx(1.5)

    def test_to_cpu_rows_empty(self):
        assert to_cpu_rows([]) == []

    @pytest.mark.asyncio
    async def test_cpu_rows_default_query(self):
        """Test the default expression is the container CPU rate."""
        queries = []

        def handler(request):
            queries.append(request.url.params["query"])
            return httpx.Response(200, json=vector(({"container": "db"}, 0.1)))

        client = make_client(handler)
        try:
            rows = await client.cpu_rows()
        finally:
            await client.aclose()

        assert queries == [DEFAULT_CPU_QUERY]
        assert rows == [{"container": "db", "cpuPercent": pytest.approx(10.0)}]

    @pytest.mark.asyncio
    async def test_container_cpu_percent(self):
        """Test the per-container query is scoped to the container label."""
        queries = []

        def handler(request):
            queries.append(request.url.params["query"])
            return httpx.Response(200, json=vector(({"container": "web"}, 37.5)))

        client = make_client(handler)
        try:
            assert await client.container_cpu_percent("web") == 37.5
        finally:
            await client.aclose()

        assert queries == ['rate(container_cpu_usage_seconds_total{container="web"}[1m]) * 100']

    @pytest.mark.asyncio
    async def test_container_cpu_percent_absent(self):
        client = make_client(lambda request: httpx.Response(200, json=vector()))
        try:
            assert await client.container_cpu_percent("web") is None
        finally:
            await client.aclose()

    def test_base_url_normalized(self):
        client = PrometheusClient("http://prometheus:9090/")
        assert client.base_url == "http://prometheus:9090"
