"""
Endpoint Health Checker

A small operational dashboard backend that probes HTTP(S) endpoints for
liveness and inspects TLS certificates through the openssl command-line client.
"""

__version__ = "1.0.0"
__author__ = "Endpoint Health Checker Team"
__description__ = "HTTP liveness and TLS certificate inspection service"

from endpoint_health_checker.config import Config
from endpoint_health_checker.inspector import CertificateInspector
from endpoint_health_checker.metrics import MetricsCollector

__all__ = [
    "Config",
    "CertificateInspector",
    "MetricsCollector",
]
