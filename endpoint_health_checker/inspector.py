"""
Certificate inspection orchestration for Endpoint Health Checker.
"""

import asyncio
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from endpoint_health_checker.classifier import classify
from endpoint_health_checker.config import Config
from endpoint_health_checker.handshake import HandshakeInvoker, format_seconds
from endpoint_health_checker.logger import (
    get_logger,
    log_batch_complete,
    log_inspection_error,
    log_inspection_result,
    log_inspection_start,
)
from endpoint_health_checker.metrics import MetricsCollector
from endpoint_health_checker.models import (
    CertificateStatus,
    FailureKind,
    InspectionResult,
    InspectionTarget,
    ParseFailure,
)
from endpoint_health_checker.parser import CONNECTION_FAILED, parse_transcript

_UNSET: object = object()


class CertificateInspector:
    """
    Runs handshake, parse and classification for inspection targets.

    No stage failure escapes: every dispatched target yields exactly one
    `InspectionResult`, errors included.
    """

    def __init__(
        self,
        config: Config,
        metrics: Optional[MetricsCollector] = None,
        invoker: Optional[HandshakeInvoker] = None,
    ):
        self.config = config
        self.metrics = metrics
        self.invoker = invoker or HandshakeInvoker(
            openssl_path=config.openssl_path, command_timeout=config.command_timeout_seconds
        )
        self.logger = get_logger("inspector")

        self.logger.info(
            f"Certificate inspector initialized - Workers: {config.inspection_workers}, "
            f"Handshake timeout: {config.handshake_timeout}"
        )

    async def inspect(
        self, target: InspectionTarget, timeout: Optional[float] = None
    ) -> InspectionResult:
        """
        Inspect one target.

        Args:
            target: Host and port to inspect
            timeout: Per-target handshake timeout in seconds

        Returns:
            Inspection result, with status "error" on any stage failure
        """
        timeout = timeout or self.config.handshake_timeout_seconds
        if not 1 <= target.port <= 65535:
            return self._failed(target, "Invalid port", 0, FailureKind.OTHER)

        log_inspection_start(self.logger, target.hostname, target.port)
        start_time = time.monotonic()

        try:
            raw = await self.invoker.invoke(target.hostname, target.port, timeout)
        except Exception as e:
            return self._failed(
                target,
                "Connection failed",
                _elapsed_ms(start_time),
                FailureKind.OTHER,
                error_details=str(e),
            )

        if not raw.succeeded:
            if raw.failure_kind == FailureKind.TIMEOUT:
                message = raw.detail or f"Connection timeout ({format_seconds(timeout)}s)"
                return self._failed(target, message, raw.elapsed_ms, FailureKind.TIMEOUT)
            return self._failed(
                target,
                "Connection failed",
                raw.elapsed_ms,
                raw.failure_kind,
                error_details=raw.detail,
            )

        try:
            parsed = parse_transcript(raw.text)
        except Exception as e:
            self.logger.exception(f"Parser failed for {target.hostname}:{target.port}")
            return self._failed(
                target,
                "Could not parse certificate",
                raw.elapsed_ms,
                FailureKind.OTHER,
                error_details=str(e),
            )

        if isinstance(parsed, ParseFailure):
            kind = (
                FailureKind.CONNECTION_FAILED
                if parsed.message == CONNECTION_FAILED
                else FailureKind.NONE
            )
            return self._failed(target, parsed.message, raw.elapsed_ms, kind)

        try:
            verdict = classify(
                parsed, datetime.now(timezone.utc), warning_days=self.config.expiry_warning_days
            )
        except Exception as e:
            self.logger.exception(f"Classifier failed for {target.hostname}:{target.port}")
            return self._failed(
                target,
                "Could not classify certificate",
                raw.elapsed_ms,
                FailureKind.OTHER,
                error_details=str(e),
            )

        if verdict.status == CertificateStatus.ERROR:
            return self._failed(target, verdict.message, raw.elapsed_ms, FailureKind.NONE)

        result = InspectionResult(
            id=target.id,
            hostname=target.hostname,
            port=target.port,
            status=verdict.status,
            message=verdict.message,
            connected=True,
            response_time_ms=raw.elapsed_ms,
            protocol=parsed.protocol,
            cipher=parsed.cipher,
            certificate=parsed,
            days_until_expiry=verdict.days_until_expiry,
            is_expired=verdict.is_expired,
        )
        self._record(result, verdict.not_after)
        log_inspection_result(
            self.logger, target.hostname, target.port, result.status.value, raw.elapsed_ms
        )
        return result

    async def inspect_host(
        self, hostname: str, port: int = 443, target_id: Optional[str] = None
    ) -> InspectionResult:
        """Single-target variant used by the one-host API request."""
        target = InspectionTarget(
            id=target_id or uuid.uuid4().hex[:8], hostname=hostname.strip(), port=port
        )
        return await self.inspect(target)

    async def run_batch(
        self,
        targets: Sequence[InspectionTarget],
        per_target_timeout: Optional[float] = None,
        batch_timeout: object = _UNSET,
    ) -> List[InspectionResult]:
        """
        Inspect a batch of targets with bounded concurrency.

        Disabled targets and blank hostnames are skipped and do not appear in
        the output. Results keep input order. When the batch deadline passes,
        targets still running are cancelled (their processes are killed) and
        reported as timeouts.

        Args:
            targets: Targets in display order
            per_target_timeout: Handshake timeout in seconds per target
            batch_timeout: Overall deadline in seconds, None for no deadline;
                defaults to the configured batch timeout

        Returns:
            One result per dispatched target
        """
        if batch_timeout is _UNSET:
            batch_timeout = self.config.batch_timeout_seconds

        dispatched = [target for target in targets if target.dispatchable]
        if not dispatched:
            return []

        self.logger.info(f"Testing {len(dispatched)} SSL certificates...")
        start_time = time.monotonic()
        semaphore = asyncio.Semaphore(self.config.inspection_workers)
        started: Dict[int, float] = {}
        finished: Dict[int, float] = {}

        async def run(index: int, target: InspectionTarget) -> InspectionResult:
            async with semaphore:
                started[index] = time.monotonic()
                try:
                    return await self.inspect(target, per_target_timeout)
                finally:
                    finished[index] = time.monotonic()

        tasks = [asyncio.create_task(run(i, target)) for i, target in enumerate(dispatched)]

        try:
            _, pending = await asyncio.wait(tasks, timeout=batch_timeout)  # type: ignore[arg-type]
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        if pending:
            self.logger.warning(
                f"Batch timeout after {batch_timeout}s - cancelling {len(pending)} pending targets"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        results: List[InspectionResult] = []
        for index, (target, task) in enumerate(zip(dispatched, tasks)):
            elapsed_ms = (
                _elapsed_ms(started[index], finished.get(index)) if index in started else 0
            )
            if task.cancelled():
                results.append(
                    self._failed(
                        target,
                        f"Batch timeout ({format_seconds(float(batch_timeout))}s)",  # type: ignore[arg-type]
                        elapsed_ms,
                        FailureKind.TIMEOUT,
                    )
                )
            elif task.exception() is not None:
                results.append(
                    self._failed(
                        target,
                        "Connection failed",
                        elapsed_ms,
                        FailureKind.OTHER,
                        error_details=str(task.exception()),
                    )
                )
            else:
                results.append(task.result())

        duration = time.monotonic() - start_time
        valid_count = sum(1 for r in results if r.status == CertificateStatus.VALID)
        log_batch_complete(self.logger, len(results), valid_count, duration)
        if self.metrics:
            self.metrics.update_batch_metrics(results, duration)

        return results

    def _failed(
        self,
        target: InspectionTarget,
        message: str,
        elapsed_ms: int,
        failure_kind: FailureKind,
        error_details: Optional[str] = None,
    ) -> InspectionResult:
        result = InspectionResult(
            id=target.id,
            hostname=target.hostname,
            port=target.port,
            status=CertificateStatus.ERROR,
            message=message,
            connected=False,
            response_time_ms=elapsed_ms,
            failure_kind=failure_kind,
            error_details=error_details,
        )
        log_inspection_error(
            self.logger, target.hostname, target.port, message, failure_kind.value
        )
        self._record(result)
        return result

    def _record(self, result: InspectionResult, not_after: Optional[datetime] = None) -> None:
        if self.metrics:
            self.metrics.update_inspection_metrics(result, not_after)


def _elapsed_ms(start_time: float, end_time: Optional[float] = None) -> int:
    end_time = time.monotonic() if end_time is None else end_time
    return int((end_time - start_time) * 1000)
