#!/usr/bin/env python3
"""
Endpoint Health Checker - Main Application Entry Point
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click
import uvicorn
from fastapi import FastAPI

from endpoint_health_checker import __version__
from endpoint_health_checker.api import create_app
from endpoint_health_checker.config import Config, create_example_config, load_config
from endpoint_health_checker.health import HealthChecker
from endpoint_health_checker.inspector import CertificateInspector
from endpoint_health_checker.logger import setup_logging
from endpoint_health_checker.metrics import MetricsCollector
from endpoint_health_checker.models import CertificateStatus, InspectionResult
from endpoint_health_checker.targets import targets_from_urls


class EndpointHealthChecker:
    """Main application class for Endpoint Health Checker."""

    def __init__(self, config_path: Optional[str] = None):
        self.config: Optional[Config] = None
        self.metrics: Optional[MetricsCollector] = None
        self.inspector: Optional[CertificateInspector] = None
        self.health_checker: Optional[HealthChecker] = None
        self.app: Optional[FastAPI] = None
        self.config_path = config_path
        self.logger = logging.getLogger(__name__)

    def initialize(self) -> None:
        """Initialize all application components."""
        try:
            self.config = load_config(self.config_path)
            setup_logging(self.config)
            self.logger.info("Initializing Endpoint Health Checker")

            self.metrics = MetricsCollector()
            self.inspector = CertificateInspector(config=self.config, metrics=self.metrics)
            self.health_checker = HealthChecker(config=self.config, metrics=self.metrics)
            self.app = create_app(
                config=self.config,
                inspector=self.inspector,
                health_checker=self.health_checker,
                metrics=self.metrics,
            )

            self.logger.info("Endpoint Health Checker initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize application: {e}")
            raise

    async def inspect(self, hosts: List[str]) -> List[InspectionResult]:
        """Run one inspection batch for `host[:port]` arguments."""
        if not self.inspector:
            self.initialize()
        assert self.inspector is not None, "Inspector should be initialized"

        entries = [{"id": str(i + 1), "url": host, "enabled": True} for i, host in enumerate(hosts)]
        return await self.inspector.run_batch(targets_from_urls(entries))

    async def serve(self) -> None:
        """Run the API server until interrupted."""
        if not self.app:
            self.initialize()
        assert self.config is not None, "Config should be initialized"

        config_dict = {
            "app": self.app,
            "host": self.config.bind_address,
            "port": self.config.port,
            "log_level": self.config.log_level.lower(),
            "access_log": True,
        }

        if self.config.tls_cert and self.config.tls_key:
            config_dict.update(
                {
                    "ssl_keyfile": self.config.tls_key,
                    "ssl_certfile": self.config.tls_cert,
                }
            )
            self.logger.info(
                f"Starting HTTPS server on {self.config.bind_address}:{self.config.port}"
            )
        else:
            self.logger.info(
                f"Starting HTTP server on {self.config.bind_address}:{self.config.port}"
            )

        server = uvicorn.Server(uvicorn.Config(**config_dict))  # type: ignore[arg-type]

        try:
            await server.serve()
        except KeyboardInterrupt:
            self.logger.info("Received interrupt signal")
        finally:
            self.logger.info("Server stopped")


def _exit_code(results: List[InspectionResult]) -> int:
    """Non-zero when any target is unreachable or expired."""
    failing: Tuple[CertificateStatus, ...] = (CertificateStatus.ERROR, CertificateStatus.EXPIRED)
    return 1 if any(result.status in failing for result in results) else 0


@click.command()
@click.option(
    "--config",
    "-f",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--version", "-v", is_flag=True, help="Show version information")
@click.option(
    "--inspect",
    "inspect_hosts",
    multiple=True,
    metavar="HOST[:PORT]",
    help="Inspect certificates once, print JSON results and exit (repeatable)",
)
@click.option(
    "--write-example-config",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write an example configuration file and exit",
)
def main(
    config: Optional[Path],
    version: bool,
    inspect_hosts: Tuple[str, ...],
    write_example_config: Optional[Path],
) -> None:
    """Endpoint Health Checker - HTTP liveness and TLS certificate inspection service."""

    if version:
        print(f"Endpoint Health Checker v{__version__}")
        return

    if write_example_config:
        create_example_config(str(write_example_config))
        print(f"Example configuration written to {write_example_config}")
        return

    try:
        checker = EndpointHealthChecker(str(config) if config else None)

        if inspect_hosts:
            results = asyncio.run(checker.inspect(list(inspect_hosts)))
            print(json.dumps([result.to_dict() for result in results], indent=2))
            sys.exit(_exit_code(results))

        asyncio.run(checker.serve())
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(0)
    except Exception as e:
        print(f"Application failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
