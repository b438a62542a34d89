"""
Standardized logging configuration for Endpoint Health Checker.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from endpoint_health_checker.config import Config

# Extra record attributes copied into structured log lines
STRUCTURED_FIELDS = (
    "hostname",
    "port",
    "status",
    "response_time_ms",
    "error_type",
    "url",
    "target_count",
    "batch_duration",
)


class CustomFormatter(logging.Formatter):
    """Custom formatter with colored output for console."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(self, use_color: bool = True) -> None:
        self.use_color = use_color
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with optional colors."""
        if self.use_color and record.levelname in self.COLORS:
            color = self.COLORS[record.levelname]
            reset = self.COLORS["RESET"]
            level_name = f"{color}{record.levelname:<8}{reset}"
        else:
            level_name = f"{record.levelname:<8}"

        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        message = record.getMessage()

        if record.exc_info:
            if not message.endswith("\n"):
                message += "\n"
            message += self.formatException(record.exc_info)

        return f"{timestamp} | {level_name} | {record.name:<32} | {message}"


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(config: Config) -> None:
    """
    Setup logging configuration.

    Args:
        config: Configuration object
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.log_level))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, config.log_level))

    # Use colored formatter for console if output is a TTY
    use_color = hasattr(sys.stdout, "isatty") and sys.stdout.isatty()
    console_handler.setFormatter(CustomFormatter(use_color=use_color))
    root_logger.addHandler(console_handler)

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # Rotating file handler (10MB max, 5 backups)
        file_handler = logging.handlers.RotatingFileHandler(
            config.log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setLevel(getattr(logging, config.log_level))
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    app_logger = logging.getLogger("endpoint_health_checker")
    app_logger.info(f"Logging initialized - Level: {config.log_level}")

    if config.log_file:
        app_logger.info(f"Log file: {config.log_file}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return logging.getLogger(f"endpoint_health_checker.{name}")


# Logging helpers for inspection operations
def log_inspection_start(logger: logging.Logger, hostname: str, port: int) -> None:
    """Log the start of a certificate inspection."""
    logger.info(f"Checking: {hostname}:{port}", extra={"hostname": hostname, "port": port})


def log_inspection_result(
    logger: logging.Logger, hostname: str, port: int, status: str, response_time_ms: int
) -> None:
    """Log a finished certificate inspection."""
    logger.info(
        f"{hostname}:{port}: {status} ({response_time_ms}ms)",
        extra={
            "hostname": hostname,
            "port": port,
            "status": status,
            "response_time_ms": response_time_ms,
        },
    )


def log_inspection_error(
    logger: logging.Logger, hostname: str, port: int, message: str, error_type: str
) -> None:
    """Log a failed certificate inspection."""
    logger.warning(
        f"{hostname}:{port}: {message}",
        extra={"hostname": hostname, "port": port, "error_type": error_type},
    )


def log_batch_complete(
    logger: logging.Logger, target_count: int, valid_count: int, duration: float
) -> None:
    """Log completion of an inspection batch."""
    logger.info(
        f"Completed. {valid_count}/{target_count} valid certificates",
        extra={"target_count": target_count, "batch_duration": duration},
    )


def log_health_check_result(
    logger: logging.Logger,
    url: str,
    status: str,
    response_time_ms: int,
    error: Optional[str] = None,
) -> None:
    """Log an HTTP liveness result."""
    extra = {"url": url, "status": status, "response_time_ms": response_time_ms}
    if error:
        logger.warning(f"{url}: {error}", extra={**extra, "error_type": "http_error"})
    else:
        logger.info(f"{url}: {status} ({response_time_ms}ms)", extra=extra)


def log_metrics_collection(
    logger: logging.Logger, metric_name: str, value: float, labels: Optional[dict] = None
) -> None:
    """Log metrics collection."""
    extra = {"metric_name": metric_name, "metric_value": value}
    if labels:
        extra["metric_labels"] = labels

    logger.debug(f"Metric collected: {metric_name}={value}", extra=extra)
