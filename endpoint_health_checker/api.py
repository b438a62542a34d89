"""
FastAPI application for Endpoint Health Checker.
"""

import asyncio
import platform
import sys
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, List, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from endpoint_health_checker import __version__
from endpoint_health_checker.config import Config
from endpoint_health_checker.handshake import probe_tls_client
from endpoint_health_checker.health import HealthChecker
from endpoint_health_checker.inspector import CertificateInspector
from endpoint_health_checker.logger import get_logger
from endpoint_health_checker.metrics import MetricsCollector
from endpoint_health_checker.models import InspectionResult, utc_timestamp
from endpoint_health_checker.targets import (
    health_targets_from_urls,
    parse_bulk_urls,
    split_host_port,
    targets_from_urls,
)

SERVICE_NAME = "SFMC Health Checker API"


class UrlEntry(BaseModel):
    """One row of the dashboard's URL list, addressed by `hostname` or `url`."""

    id: Union[str, int, None] = None
    url: Optional[str] = ""
    hostname: Optional[str] = None
    port: Union[int, str, None] = None
    enabled: bool = True


class HealthCheckRequest(BaseModel):
    urls: List[UrlEntry] = Field(default_factory=list)


class SSLInspectRequest(BaseModel):
    """Either a single `hostname`/`port` pair or a legacy `urls` list."""

    urls: Optional[List[UrlEntry]] = None
    hostname: Optional[str] = None
    port: Union[int, str, None] = None


class BulkInspectRequest(BaseModel):
    content: str
    filename: str = ""


async def log_tls_client_status(config: Config) -> Optional[str]:
    """Probe the TLS client once and log whether inspections can work."""
    logger = get_logger("api")
    version = await probe_tls_client(config.openssl_path)
    if version is None:
        logger.warning("OpenSSL not found. SSL inspection will not work.")
        logger.warning("Install OpenSSL: sudo apt-get install openssl")
    else:
        logger.info(f"OpenSSL available: {version}")
    return version


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Probe the TLS client at startup; suppress CancelledError during shutdown."""
    try:
        await log_tls_client_status(app.state.config)
        yield
    except asyncio.CancelledError:
        pass


def create_app(
    config: Config,
    inspector: CertificateInspector,
    health_checker: HealthChecker,
    metrics: MetricsCollector,
    lifespan_override: Optional[Any] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        config: Configuration instance
        inspector: Certificate inspector
        health_checker: HTTP liveness checker
        metrics: Metrics collector instance

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Endpoint Health Checker",
        description="HTTP liveness and TLS certificate inspection API",
        version=__version__,
        docs_url="/docs" if config.docs_enabled else None,
        redoc_url="/redoc" if config.docs_enabled else None,
        lifespan=lifespan_override or lifespan,
    )
    app.state.config = config
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_origin_regex=config.cors_origin_regex,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
    )

    logger = get_logger("api")

    @app.get("/", response_class=JSONResponse)
    async def root() -> JSONResponse:
        return JSONResponse(
            content={
                "message": "SFMC Health Checker Backend API",
                "version": __version__,
                "endpoints": {
                    "health": "GET /api/health",
                    "systemInfo": "GET /api/system-info",
                    "healthCheck": "POST /api/health-check",
                    "sslInspect": "POST /api/ssl-inspect",
                    "bulkSslInspect": "POST /api/ssl-inspect/bulk",
                    "metrics": "GET /metrics",
                },
                "frontend": "http://localhost:5173/sfmc-endpoint-health-checker/",
                "timestamp": utc_timestamp(),
            }
        )

    @app.get("/api/health", response_class=JSONResponse)
    async def get_health() -> JSONResponse:
        try:
            metrics_health = metrics.get_registry_status()
            return JSONResponse(
                content={
                    **metrics_health,
                    "status": "healthy",
                    "service": SERVICE_NAME,
                    "timestamp": utc_timestamp(),
                    "version": __version__,
                }
            )
        except Exception as e:
            logger.error(f"Failed to get health status: {e}")
            return JSONResponse(content={"status": "error", "error": str(e)}, status_code=500)

    @app.get("/api/system-info", response_class=JSONResponse)
    async def get_system_info() -> JSONResponse:
        openssl_version = await probe_tls_client(config.openssl_path)
        return JSONResponse(
            content={
                "python": platform.python_version(),
                "openssl": openssl_version or "Not available",
                "platform": sys.platform,
                "arch": platform.machine(),
                "uptime": round(time.monotonic() - app.state.started_at, 3),
                "timestamp": utc_timestamp(),
            }
        )

    @app.post("/api/health-check", response_class=JSONResponse)
    async def health_check(request: HealthCheckRequest) -> JSONResponse:
        targets = health_targets_from_urls(entry.model_dump() for entry in request.urls)
        results = await health_checker.check_all(targets)
        return JSONResponse(content={"results": [r.to_dict() for r in results]})

    @app.post("/api/ssl-inspect", response_class=JSONResponse)
    async def ssl_inspect(request: SSLInspectRequest) -> JSONResponse:
        if request.hostname:
            logger.info(f"Single hostname request: {request.hostname}:{request.port or 443}")
            result = await _inspect_single(inspector, request.hostname, request.port)
            return JSONResponse(content=result.to_dict())

        if not request.urls:
            return JSONResponse(content={"results": []})

        logger.info(f"Request received with {len(request.urls)} URLs")
        targets = targets_from_urls(entry.model_dump() for entry in request.urls)
        results = await inspector.run_batch(targets)
        return JSONResponse(content={"results": [r.to_dict() for r in results]})

    @app.post("/api/ssl-inspect/bulk", response_class=JSONResponse)
    async def bulk_ssl_inspect(request: BulkInspectRequest) -> JSONResponse:
        try:
            targets = parse_bulk_urls(request.content, request.filename)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Failed to parse file: {e}") from e

        logger.info(f"Bulk upload with {len(targets)} hostnames")
        results = await inspector.run_batch(targets)
        return JSONResponse(content={"results": [r.to_dict() for r in results]})

    @app.get("/metrics", response_class=PlainTextResponse)
    async def get_metrics() -> PlainTextResponse:
        try:
            metrics_data: str = metrics.get_metrics()
            return PlainTextResponse(content=metrics_data, media_type=metrics.get_content_type())
        except Exception as e:
            logger.error(f"Failed to generate metrics: {e}")
            raise HTTPException(status_code=500, detail="Failed to generate metrics") from e

    return app


async def _inspect_single(
    inspector: CertificateInspector, hostname: str, port: Union[int, str, None]
) -> InspectionResult:
    """Normalise a single hostname/port request and inspect it."""
    try:
        default_port = int(port) if port not in (None, "") else 443
        host, resolved_port = split_host_port(hostname, default_port=default_port)
    except ValueError:
        return await inspector.inspect_host(hostname, 0)
    return await inspector.inspect_host(host, resolved_port)
