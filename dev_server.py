#!/usr/bin/env python3
"""
Development server entry point for Endpoint Health Checker.
This module provides a FastAPI app instance that uvicorn can discover:

    uvicorn dev_server:app --reload --port 3001
"""

import logging
import os

from fastapi import FastAPI

from endpoint_health_checker.api import create_app
from endpoint_health_checker.config import load_config
from endpoint_health_checker.health import HealthChecker
from endpoint_health_checker.inspector import CertificateInspector
from endpoint_health_checker.logger import setup_logging
from endpoint_health_checker.metrics import MetricsCollector


def create_dev_app() -> FastAPI:
    """Create the development FastAPI app with all components."""
    # Allow config path via ENV
    config_path = os.getenv("HEALTH_CHECKER_CONFIG")

    config = load_config(config_path)
    setup_logging(config)
    logger = logging.getLogger(__name__)
    logger.info("Initializing development server components")
    if config_path:
        logger.info(f"Using custom config: {config_path}")

    metrics = MetricsCollector()
    inspector = CertificateInspector(config=config, metrics=metrics)
    health_checker = HealthChecker(config=config, metrics=metrics)

    app = create_app(
        config=config, inspector=inspector, health_checker=health_checker, metrics=metrics
    )

    logger.info("Development server components initialized")
    return app


# Create app instance for uvicorn
app = create_dev_app()
