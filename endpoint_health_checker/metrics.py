"""
Prometheus metrics collection for Endpoint Health Checker.
"""

import socket
import sys
import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import psutil
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from endpoint_health_checker.logger import get_logger, log_metrics_collection
from endpoint_health_checker.models import CertificateStatus, HealthCheckResult, InspectionResult

STATUS_CODES = {
    CertificateStatus.VALID: 0,
    CertificateStatus.WARNING: 1,
    CertificateStatus.EXPIRED: 2,
    CertificateStatus.ERROR: 3,
}

# Oldest per-target series are dropped beyond this many hostname/port pairs
MAX_TRACKED_TARGETS = 500


class MetricsCollector:
    """Prometheus metrics for certificate inspections, liveness probes and the process."""

    def __init__(self, max_tracked_targets: int = MAX_TRACKED_TARGETS) -> None:
        self.logger = get_logger("metrics")
        self.registry = CollectorRegistry()

        # Certificate metrics
        self.tls_cert_days_until_expiry = Gauge(
            "tls_cert_days_until_expiry",
            "Days until the certificate expires (negative when expired)",
            ["hostname", "port"],
            registry=self.registry,
        )

        self.tls_cert_expiration_timestamp = Gauge(
            "tls_cert_expiration_timestamp",
            "Certificate expiration time (Unix timestamp)",
            ["hostname", "port", "subject", "issuer"],
            registry=self.registry,
        )

        self.tls_cert_key_size_bits = Gauge(
            "tls_cert_key_size_bits",
            "Public key size of the leaf certificate",
            ["hostname", "port"],
            registry=self.registry,
        )

        self.tls_inspection_status_code = Gauge(
            "tls_inspection_status_code",
            "Last inspection status (0 valid, 1 warning, 2 expired, 3 error)",
            ["hostname", "port"],
            registry=self.registry,
        )

        self.tls_handshake_duration_seconds = Histogram(
            "tls_handshake_duration_seconds",
            "TLS client handshake duration",
            ["status"],
            registry=self.registry,
        )

        # Batch metrics
        self.tls_batch_targets_total = Gauge(
            "tls_batch_targets_total",
            "Targets dispatched in the last inspection batch",
            registry=self.registry,
        )

        self.tls_batch_errors_total = Gauge(
            "tls_batch_errors_total",
            "Targets with status error in the last inspection batch",
            registry=self.registry,
        )

        self.tls_weak_key_total = Gauge(
            "tls_weak_key_total",
            "Certificates with weak keys in the last inspection batch",
            registry=self.registry,
        )

        self.tls_batch_duration_seconds = Histogram(
            "tls_batch_duration_seconds",
            "Inspection batch duration",
            registry=self.registry,
        )

        # HTTP liveness metrics
        self.http_probe_response_seconds = Histogram(
            "http_probe_response_seconds",
            "HTTP liveness probe response time",
            ["status"],
            registry=self.registry,
        )

        self.http_probe_results = Gauge(
            "http_probe_results",
            "Probes per status in the last liveness check",
            ["status"],
            registry=self.registry,
        )

        # Application metrics
        self.app_memory_bytes = Gauge(
            "app_memory_bytes",
            "Application memory usage in bytes",
            ["type"],
            registry=self.registry,
        )

        self.app_cpu_percent = Gauge(
            "app_cpu_percent", "Application CPU usage percentage", registry=self.registry
        )

        self.app_thread_count = Gauge(
            "app_thread_count", "Number of application threads", registry=self.registry
        )

        self.app_info = Info(
            "app_info",
            "Application information",
            ["hostname", "version", "python_version"],
            registry=self.registry,
        )

        # Per-target label sets, oldest first; value is the (subject, issuer) expiry labels
        self._tracked: "OrderedDict[Tuple[str, str], Optional[Tuple[str, str]]]" = OrderedDict()
        self._max_tracked_targets = max_tracked_targets

        self._last_system_update = 0.0
        self._system_update_interval = 30  # Update system metrics every 30 seconds

        self.logger.info("Metrics collector initialized")

    def update_inspection_metrics(
        self, result: InspectionResult, not_after: Optional[datetime] = None
    ) -> None:
        """
        Update metrics for one inspection result.

        Args:
            result: Finished inspection
            not_after: Parsed expiry instant, when known
        """
        try:
            hostname = result.hostname
            port = str(result.port)
            key = (hostname, port)
            self._track(key)

            self.tls_inspection_status_code.labels(hostname=hostname, port=port).set(
                STATUS_CODES[result.status]
            )
            self.tls_handshake_duration_seconds.labels(status=result.status.value).observe(
                result.response_time_ms / 1000
            )

            if result.days_until_expiry is not None:
                days = result.days_until_expiry
                if result.is_expired:
                    days = -abs(days)
                self.tls_cert_days_until_expiry.labels(hostname=hostname, port=port).set(days)
            else:
                _remove(self.tls_cert_days_until_expiry, hostname, port)

            cert = result.certificate
            previous_names = self._tracked[key]
            if cert is not None and not_after is not None:
                names = (cert.subject or "unknown", cert.issuer or "unknown")
                if previous_names is not None and previous_names != names:
                    _remove(self.tls_cert_expiration_timestamp, hostname, port, *previous_names)
                self.tls_cert_expiration_timestamp.labels(hostname, port, *names).set(
                    not_after.timestamp()
                )
                self._tracked[key] = names
            elif previous_names is not None:
                _remove(self.tls_cert_expiration_timestamp, hostname, port, *previous_names)
                self._tracked[key] = None

            if cert is not None and cert.key_size_bits:
                self.tls_cert_key_size_bits.labels(hostname=hostname, port=port).set(
                    cert.key_size_bits
                )
            else:
                _remove(self.tls_cert_key_size_bits, hostname, port)

            log_metrics_collection(
                self.logger,
                "inspection_recorded",
                float(STATUS_CODES[result.status]),
                {"hostname": hostname, "port": port},
            )

        except Exception as e:
            self.logger.error(f"Failed to update inspection metrics: {e}")

    def _track(self, key: Tuple[str, str]) -> None:
        """Mark a target as most recently seen, evicting the oldest beyond the cap."""
        if key in self._tracked:
            self._tracked.move_to_end(key)
        else:
            self._tracked[key] = None

        while len(self._tracked) > self._max_tracked_targets:
            old_key, names = self._tracked.popitem(last=False)
            self._forget(old_key, names)

    def _forget(self, key: Tuple[str, str], names: Optional[Tuple[str, str]]) -> None:
        hostname, port = key
        _remove(self.tls_inspection_status_code, hostname, port)
        _remove(self.tls_cert_days_until_expiry, hostname, port)
        _remove(self.tls_cert_key_size_bits, hostname, port)
        if names is not None:
            _remove(self.tls_cert_expiration_timestamp, hostname, port, *names)

    def update_batch_metrics(self, results: List[InspectionResult], duration: float) -> None:
        """
        Update batch-level metrics.

        Args:
            results: All results of the batch
            duration: Batch wall-clock duration in seconds
        """
        try:
            errors = sum(1 for r in results if r.status == CertificateStatus.ERROR)
            weak_keys = sum(
                1
                for r in results
                if r.certificate is not None
                and r.certificate.key_size_bits
                and is_weak_key(r.certificate.key_size_bits, r.certificate.key_algorithm or "")
            )

            self.tls_batch_targets_total.set(len(results))
            self.tls_batch_errors_total.set(errors)
            self.tls_weak_key_total.set(weak_keys)
            self.tls_batch_duration_seconds.observe(duration)

            log_metrics_collection(
                self.logger,
                "batch_completed",
                duration,
                {"targets": len(results), "errors": errors, "weak_keys": weak_keys},
            )

        except Exception as e:
            self.logger.error(f"Failed to update batch metrics: {e}")

    def update_health_check_metrics(self, result: HealthCheckResult) -> None:
        """Update metrics for one HTTP liveness probe."""
        try:
            self.http_probe_response_seconds.labels(status=result.status).observe(
                result.response_time_ms / 1000
            )
        except Exception as e:
            self.logger.error(f"Failed to update health check metrics: {e}")

    def update_health_batch_metrics(self, results: List[HealthCheckResult]) -> None:
        """Record per-status counts of one liveness check request."""
        try:
            for status in ("healthy", "warning", "error"):
                self.http_probe_results.labels(status=status).set(
                    sum(1 for r in results if r.status == status)
                )
        except Exception as e:
            self.logger.error(f"Failed to update health batch metrics: {e}")

    def update_system_metrics(self) -> None:
        """Update system and application metrics."""
        current_time = time.time()

        # Only update system metrics every N seconds to reduce overhead
        if current_time - self._last_system_update < self._system_update_interval:
            return

        try:
            process = psutil.Process()

            memory_info = process.memory_info()
            self.app_memory_bytes.labels(type="rss").set(int(memory_info.rss))
            self.app_memory_bytes.labels(type="vms").set(int(memory_info.vms))

            cpu_percent = process.cpu_percent()
            self.app_cpu_percent.set(cpu_percent)

            thread_count = process.num_threads()
            self.app_thread_count.set(int(thread_count))

            from endpoint_health_checker import __version__

            self.app_info.labels(
                hostname=socket.gethostname(),
                version=__version__,
                python_version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
            ).info({"platform": sys.platform, "process_id": str(process.pid)})

            self._last_system_update = current_time

            log_metrics_collection(
                self.logger,
                "system_metrics_updated",
                1.0,
                {
                    "memory_rss": memory_info.rss,
                    "cpu_percent": cpu_percent,
                    "thread_count": thread_count,
                },
            )

        except Exception as e:
            self.logger.error(f"Failed to update system metrics: {e}")

    def get_metrics(self) -> str:
        """
        Get Prometheus metrics in text format.

        Returns:
            Metrics in Prometheus text format
        """
        self.update_system_metrics()
        return generate_latest(self.registry).decode("utf-8")

    def get_content_type(self) -> str:
        """Get content type for metrics endpoint."""
        return CONTENT_TYPE_LATEST

    def get_registry_status(self) -> Dict[str, Any]:
        """Get Prometheus registry status for health checks."""
        try:
            metrics_count = len(list(self.registry._collector_to_names.keys()))

            return {
                "prometheus_registry": {
                    "status": "healthy",
                    "metrics_count": metrics_count,
                    "last_update": self._last_system_update,
                }
            }
        except Exception as e:
            return {"prometheus_registry": {"status": "error", "error": str(e)}}


def is_weak_key(key_size: int, algorithm: str) -> bool:
    """
    Check if a key is considered weak.

    Args:
        key_size: Key size in bits
        algorithm: Key algorithm as printed by openssl (rsaEncryption, id-ecPublicKey)

    Returns:
        True if key is weak
    """
    algorithm_lower = algorithm.lower()

    if "ed25519" in algorithm_lower or "ed448" in algorithm_lower:
        return False

    # Check EC first since "ecdsa" contains "dsa"
    if "ec" in algorithm_lower:
        return key_size < 256
    elif "rsa" in algorithm_lower:
        return key_size < 2048
    elif "dsa" in algorithm_lower:
        return key_size < 2048

    # Unknown algorithm, be conservative
    return key_size < 2048


def _remove(metric: Any, *labelvalues: str) -> None:
    """Drop one labelled series if it exists."""
    try:
        metric.remove(*labelvalues)
    except KeyError:
        pass
