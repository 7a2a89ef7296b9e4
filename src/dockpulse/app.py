"""dockpulse - HTTP and WebSocket delivery of container statistics."""

import argparse
import logging
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from dockpulse.aggregator import ContainerAggregator
from dockpulse.config import LOG_LEVELS, Settings
from dockpulse.errors import ConfigError, MetricsQueryError, RuntimeUnavailableError
from dockpulse.exporter import GaugeExporter
from dockpulse.prometheus import PrometheusClient
from dockpulse.runtime import DockerRuntime, RuntimeSource
from dockpulse.stream import StatsStream

logger = logging.getLogger(__name__)

STATS_ERROR = "Error fetching container stats"
METRICS_DISABLED = "metrics source not configured"


async def _serve_stream(websocket: WebSocket, stream: StatsStream) -> None:
    """Run a stream for as long as the client stays connected."""
    client = websocket.client
    logger.info("WebSocket client %s connected to %s", client, websocket.url.path)
    stream.start()
    try:
        while stream.is_running:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        stream.stop()
        logger.info(
            "WebSocket client %s disconnected after %d frames", client, stream.frames_sent
        )
        await stream.wait_closed()


def create_app(
    settings: Settings | None = None,
    runtime: RuntimeSource | None = None,
    metrics: PrometheusClient | None = None,
    exporter: GaugeExporter | None = None,
) -> FastAPI:
    """
    Build the application.

    Collaborators are constructed once here and shared by every request and
    connection through ``app.state``. Those not passed in are built from
    ``settings`` and released at shutdown.
    """
    settings = settings or Settings.from_env()
    owned_runtime = runtime is None
    owned_metrics = metrics is None

    if runtime is None:
        runtime = DockerRuntime(settings.docker_host, timeout=settings.stats_timeout * 2)
    if metrics is None and settings.prometheus_url:
        metrics = PrometheusClient(settings.prometheus_url)
    exporter = exporter or GaugeExporter()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "dockpulse started (metrics source: %s, poll interval: %ss)",
            settings.prometheus_url or "none",
            settings.poll_interval,
        )
        yield
        if owned_metrics and metrics is not None:
            await metrics.aclose()
        if owned_runtime and isinstance(runtime, DockerRuntime):
            runtime.close()
        logger.info("dockpulse stopped")

    app = FastAPI(title="dockpulse", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.allowed_origin],
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.state.settings = settings
    app.state.runtime = runtime
    app.state.metrics = metrics
    app.state.exporter = exporter
    app.state.aggregator = ContainerAggregator(
        runtime,
        metrics=metrics,
        exporter=exporter,
        stats_timeout=settings.stats_timeout,
        max_concurrent=settings.max_concurrent_fetches,
    )

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"status": "ok", "message": "Backend server is running!"}

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "message": "Backend is running!"}

    @app.get("/ping")
    async def ping() -> dict[str, str]:
        return {"status": "ok", "message": "pong"}

    @app.get("/api/container-stats")
    async def container_stats(request: Request) -> Any:
        try:
            return await request.app.state.aggregator.fetch_container_stats()
        except RuntimeUnavailableError as exc:
            logger.error("%s: %s", STATS_ERROR, exc)
            return JSONResponse(status_code=500, content={"message": STATS_ERROR})

    @app.websocket("/api/container-stats-stream")
    async def container_stats_stream(websocket: WebSocket) -> None:
        await websocket.accept()
        stream = StatsStream(
            websocket.app.state.aggregator.fetch_container_stats,
            websocket.send_json,
            poll_rate=settings.poll_interval,
            name="container-stats-stream",
        )
        await _serve_stream(websocket, stream)

    @app.get("/metrics")
    async def exposition(request: Request) -> Response:
        body, content_type = request.app.state.exporter.render()
        return Response(content=body, media_type=content_type)

    @app.get("/metrics/advanced")
    async def advanced_metrics(request: Request, query: str | None = None) -> Any:
        source: PrometheusClient | None = request.app.state.metrics
        if source is None:
            return JSONResponse(status_code=503, content={"error": METRICS_DISABLED})
        try:
            rows = await source.cpu_rows(query or settings.cpu_query)
        except MetricsQueryError as exc:
            logger.error("Error in /metrics/advanced: %s", exc)
            return JSONResponse(status_code=502, content={"error": str(exc)})
        return {"containers": rows}

    @app.websocket("/metrics-stream")
    async def metrics_stream(websocket: WebSocket) -> None:
        await websocket.accept()
        source: PrometheusClient | None = websocket.app.state.metrics
        if source is None:
            await websocket.send_json({"error": METRICS_DISABLED})
            await websocket.close(code=1011)
            return

        query = websocket.query_params.get("query") or settings.cpu_query

        async def produce() -> dict[str, Any]:
            return {"containers": await source.cpu_rows(query)}

        stream = StatsStream(
            produce,
            websocket.send_json,
            poll_rate=settings.poll_interval,
            name="metrics-stream",
        )
        await _serve_stream(websocket, stream)

    return app


def main() -> None:
    """Entry point for the dockpulse server."""
    parser = argparse.ArgumentParser(description="Container statistics dashboard backend")
    parser.add_argument("--host", help="listen address (default: $HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="listen port (default: $PORT or 3003)")
    parser.add_argument("--log-level", choices=[level.lower() for level in LOG_LEVELS])
    args = parser.parse_args()

    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        parser.error(str(exc))

    log_level = (args.log_level or settings.log_level).upper()
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    uvicorn.run(
        create_app(settings),
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=log_level.lower(),
    )


if __name__ == "__main__":
    main()
