"""
HTTP liveness checks for Endpoint Health Checker.
"""

import time
from typing import List, Optional, Sequence, Tuple

import httpx

from endpoint_health_checker.config import Config
from endpoint_health_checker.logger import get_logger, log_health_check_result
from endpoint_health_checker.metrics import MetricsCollector
from endpoint_health_checker.models import HealthCheckResult, HealthCheckTarget

DNS_FAILURE_MARKERS = (
    "Name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "Temporary failure in name resolution",
    "No address associated with hostname",
)

REPORTED_HEADERS = ("content-type", "server", "cache-control")


def classify_status_code(status_code: int) -> str:
    """Map an HTTP status code to healthy, warning or error."""
    if status_code < 400:
        return "healthy"
    if status_code < 500:
        return "warning"
    return "error"


def describe_transport_error(error: Exception) -> Tuple[str, str]:
    """
    Turn an httpx failure into (message, error code).

    The codes follow the errno-style names the dashboard already displays.
    """
    text = str(error)
    if isinstance(error, httpx.TimeoutException):
        return "Connection timeout", "ETIMEDOUT"
    if isinstance(error, httpx.ConnectError):
        if any(marker in text for marker in DNS_FAILURE_MARKERS):
            return "Domain not found", "ENOTFOUND"
        if "refused" in text.lower():
            return "Connection refused", "ECONNREFUSED"
    return text or type(error).__name__, type(error).__name__


class HealthChecker:
    """Probes URLs with an HTTP GET and reports their liveness."""

    def __init__(
        self,
        config: Config,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.metrics = metrics
        self.logger = get_logger("health")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.http_timeout_seconds,
            headers={"User-Agent": self.config.http_user_agent},
            follow_redirects=True,
            transport=self._transport,
        )

    async def check_all(self, targets: Sequence[HealthCheckTarget]) -> List[HealthCheckResult]:
        """
        Probe every enabled target in order.

        Args:
            targets: URLs in display order

        Returns:
            One result per enabled target with a non-empty URL
        """
        dispatched = [t for t in targets if t.enabled and t.url and t.url.strip()]
        self.logger.info(f"Testing {len(dispatched)} URLs...")

        results: List[HealthCheckResult] = []
        async with self._client() as client:
            for target in dispatched:
                results.append(await self.check(client, target))

        healthy = sum(1 for r in results if r.status == "healthy")
        self.logger.info(f"Completed. {healthy}/{len(results)} healthy")
        if self.metrics:
            self.metrics.update_health_batch_metrics(results)
        return results

    async def check(self, client: httpx.AsyncClient, target: HealthCheckTarget) -> HealthCheckResult:
        """Probe one URL; transport failures become error results."""
        url = target.url.strip()
        start_time = time.monotonic()

        try:
            response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            message, error_code = describe_transport_error(e)
            result = HealthCheckResult(
                id=target.id,
                url=url,
                status="error",
                response_time_ms=elapsed_ms,
                message=message,
                error_code=error_code,
            )
            log_health_check_result(self.logger, url, result.status, elapsed_ms, error=str(e))
        else:
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            result = HealthCheckResult(
                id=target.id,
                url=url,
                status=classify_status_code(response.status_code),
                response_time_ms=elapsed_ms,
                message=f"HTTP {response.status_code} - {response.reason_phrase}",
                status_code=response.status_code,
                headers={name: response.headers.get(name) for name in REPORTED_HEADERS},
            )
            log_health_check_result(self.logger, url, result.status, elapsed_ms)

        if self.metrics:
            self.metrics.update_health_check_metrics(result)
        return result
