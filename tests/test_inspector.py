"""
Tests for certificate inspection orchestration.
"""

import asyncio
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import SELF_SIGNED_CHAIN_TRANSCRIPT

from endpoint_health_checker.config import Config
from endpoint_health_checker.handshake import HandshakeInvoker
from endpoint_health_checker.inspector import CertificateInspector
from endpoint_health_checker.metrics import MetricsCollector
from endpoint_health_checker.models import (
    CertificateStatus,
    FailureKind,
    InspectionTarget,
    RawHandshakeResult,
)


def ok(text: str, elapsed_ms: int = 42) -> RawHandshakeResult:
    return RawHandshakeResult(succeeded=True, text=text, elapsed_ms=elapsed_ms)


class TestCertificateInspector:
    """Test per-target inspection and stage failure mapping."""

    @pytest.fixture
    def config(self):
        return Config(handshake_timeout="10s", batch_timeout="", inspection_workers=4)

    @pytest.fixture
    def mock_invoker(self):
        return AsyncMock(spec=HandshakeInvoker)

    @pytest.fixture
    def mock_metrics(self):
        return MagicMock(spec=MetricsCollector)

    @pytest.fixture
    def inspector(self, config, mock_invoker, mock_metrics):
        return CertificateInspector(config=config, metrics=mock_metrics, invoker=mock_invoker)

    @pytest.mark.asyncio
    async def test_valid_certificate(self, inspector, mock_invoker, mock_metrics, transcript):
        mock_invoker.invoke.return_value = ok(transcript(days=200), elapsed_ms=87)

        result = await inspector.inspect(InspectionTarget(id="1", hostname="example.com"))

        mock_invoker.invoke.assert_awaited_once_with("example.com", 443, 10.0)
        assert result.status == CertificateStatus.VALID
        assert result.message == "Certificate is valid"
        assert result.connected is True
        assert result.response_time_ms == 87
        assert result.protocol == "TLSv1.3"
        assert result.cipher == "TLS_AES_256_GCM_SHA384"
        assert result.days_until_expiry == 200
        assert result.certificate.subject == "CN = example.com"
        mock_metrics.update_inspection_metrics.assert_called_once()

    @pytest.mark.asyncio
    async def test_expiring_certificate(self, inspector, mock_invoker, transcript):
        mock_invoker.invoke.return_value = ok(transcript(days=12))

        result = await inspector.inspect(InspectionTarget(id="1", hostname="example.com"))

        assert result.status == CertificateStatus.WARNING
        assert result.message == "Certificate expires in 12 days"

    @pytest.mark.asyncio
    async def test_expired_certificate(self, inspector, mock_invoker, transcript):
        mock_invoker.invoke.return_value = ok(transcript(days=-3))

        result = await inspector.inspect(InspectionTarget(id="1", hostname="example.com"))

        assert result.status == CertificateStatus.EXPIRED
        assert result.is_expired is True
        assert result.to_dict()["certificate"]["daysUntilExpiry"] == -3

    @pytest.mark.asyncio
    async def test_self_signed_chain(self, inspector, mock_invoker, transcript):
        mock_invoker.invoke.return_value = ok(
            transcript(days=300, template=SELF_SIGNED_CHAIN_TRANSCRIPT)
        )

        result = await inspector.inspect(InspectionTarget(id="1", hostname="intranet.corp"))

        assert result.status == CertificateStatus.WARNING
        assert result.message == "Certificate has verification warnings (self-signed chain)"
        assert result.to_dict()["certificate"]["verifyResult"] == "Self-signed certificate in chain"

    @pytest.mark.asyncio
    async def test_handshake_timeout(self, inspector, mock_invoker):
        mock_invoker.invoke.return_value = RawHandshakeResult(
            succeeded=False,
            text="",
            elapsed_ms=10000,
            failure_kind=FailureKind.TIMEOUT,
            detail="Connection timeout (10s)",
        )

        result = await inspector.inspect(InspectionTarget(id="1", hostname="slow.example"))

        assert result.status == CertificateStatus.ERROR
        assert result.message == "Connection timeout (10s)"
        assert result.failure_kind == FailureKind.TIMEOUT
        assert result.connected is False
        assert result.response_time_ms == 10000

    @pytest.mark.asyncio
    async def test_handshake_failure(self, inspector, mock_invoker):
        mock_invoker.invoke.return_value = RawHandshakeResult(
            succeeded=False,
            text="connect: Connection refused",
            elapsed_ms=3,
            failure_kind=FailureKind.CONNECTION_FAILED,
            detail="connect: Connection refused",
        )

        result = await inspector.inspect(InspectionTarget(id="1", hostname="closed.example"))

        assert result.message == "Connection failed"
        assert result.error_details == "connect: Connection refused"
        assert result.failure_kind == FailureKind.CONNECTION_FAILED
        assert "certificate" not in result.to_dict()

    @pytest.mark.asyncio
    async def test_invoker_exception(self, inspector, mock_invoker):
        mock_invoker.invoke.side_effect = RuntimeError("spawn exploded")

        result = await inspector.inspect(InspectionTarget(id="1", hostname="example.com"))

        assert result.status == CertificateStatus.ERROR
        assert result.message == "Connection failed"
        assert result.error_details == "spawn exploded"

    @pytest.mark.asyncio
    async def test_invoker_exception_reports_elapsed_time(self, inspector, mock_invoker):
        async def invoke(hostname, port, timeout):
            await asyncio.sleep(0.05)
            raise RuntimeError("spawn exploded")

        mock_invoker.invoke.side_effect = invoke

        result = await inspector.inspect(InspectionTarget(id="1", hostname="example.com"))

        assert result.status == CertificateStatus.ERROR
        assert result.response_time_ms >= 40

    @pytest.mark.asyncio
    async def test_connection_failure_in_successful_transcript(self, inspector, mock_invoker):
        mock_invoker.invoke.return_value = ok("connect: Network is unreachable\n")

        result = await inspector.inspect(InspectionTarget(id="1", hostname="example.com"))

        assert result.message == "Connection failed"
        assert result.failure_kind == FailureKind.CONNECTION_FAILED

    @pytest.mark.asyncio
    async def test_no_certificate(self, inspector, mock_invoker):
        mock_invoker.invoke.return_value = ok("CONNECTED(00000003)\nno peer certificate\n")

        result = await inspector.inspect(InspectionTarget(id="1", hostname="example.com"))

        assert result.status == CertificateStatus.ERROR
        assert result.message == "No certificate found"

    @pytest.mark.asyncio
    async def test_unparseable_dates(self, inspector, mock_invoker):
        mock_invoker.invoke.return_value = ok(
            "Certificate chain\n 0 s:CN = x\n   i:CN = y\nnotAfter=garbage GMT\n"
        )

        result = await inspector.inspect(InspectionTarget(id="1", hostname="example.com"))

        assert result.status == CertificateStatus.ERROR
        assert result.message == "Could not parse certificate dates"

    @pytest.mark.asyncio
    async def test_invalid_port(self, inspector, mock_invoker):
        result = await inspector.inspect(InspectionTarget(id="1", hostname="example.com", port=0))

        mock_invoker.invoke.assert_not_awaited()
        assert result.status == CertificateStatus.ERROR
        assert result.message == "Invalid port"

    @pytest.mark.asyncio
    async def test_inspect_host_assigns_id(self, inspector, mock_invoker, transcript):
        mock_invoker.invoke.return_value = ok(transcript(days=200))

        result = await inspector.inspect_host("  example.com ", 8443)

        assert result.hostname == "example.com"
        assert result.port == 8443
        assert len(result.id) == 8

    @pytest.mark.asyncio
    async def test_custom_per_target_timeout(self, inspector, mock_invoker, transcript):
        mock_invoker.invoke.return_value = ok(transcript(days=200))

        await inspector.inspect(InspectionTarget(id="1", hostname="example.com"), timeout=2.5)

        mock_invoker.invoke.assert_awaited_once_with("example.com", 443, 2.5)


class TestRunBatch:
    """Test bounded fan-out, ordering and the batch deadline."""

    @pytest.fixture
    def config(self):
        return Config(handshake_timeout="10s", batch_timeout="", inspection_workers=2)

    @pytest.fixture
    def mock_invoker(self):
        return AsyncMock(spec=HandshakeInvoker)

    @pytest.fixture
    def mock_metrics(self):
        return MagicMock(spec=MetricsCollector)

    @pytest.fixture
    def inspector(self, config, mock_invoker, mock_metrics):
        return CertificateInspector(config=config, metrics=mock_metrics, invoker=mock_invoker)

    @pytest.mark.asyncio
    async def test_skips_disabled_and_blank_targets(self, inspector, mock_invoker, transcript):
        mock_invoker.invoke.return_value = ok(transcript(days=200))
        targets = [
            InspectionTarget(id="1", hostname="a.example"),
            InspectionTarget(id="2", hostname="b.example", enabled=False),
            InspectionTarget(id="3", hostname="   "),
            InspectionTarget(id="4", hostname="d.example"),
        ]

        results = await inspector.run_batch(targets)

        assert [r.id for r in results] == ["1", "4"]
        assert mock_invoker.invoke.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_batch(self, inspector, mock_invoker, mock_metrics):
        results = await inspector.run_batch([InspectionTarget(id="1", hostname="x", enabled=False)])

        assert results == []
        mock_invoker.invoke.assert_not_awaited()
        mock_metrics.update_batch_metrics.assert_not_called()

    @pytest.mark.asyncio
    async def test_preserves_input_order(self, inspector, mock_invoker, transcript):
        delays = {"slow.example": 0.2, "medium.example": 0.1, "fast.example": 0.0}
        text = transcript(days=200)

        async def invoke(hostname, port, timeout):
            await asyncio.sleep(delays[hostname])
            return ok(text)

        mock_invoker.invoke.side_effect = invoke
        targets = [
            InspectionTarget(id="a", hostname="slow.example"),
            InspectionTarget(id="b", hostname="medium.example"),
            InspectionTarget(id="c", hostname="fast.example"),
        ]

        results = await inspector.run_batch(targets)

        assert [r.hostname for r in results] == ["slow.example", "medium.example", "fast.example"]
        assert [r.id for r in results] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_bounded_concurrency(self, inspector, mock_invoker, transcript):
        running = 0
        peak = 0
        text = transcript(days=200)

        async def invoke(hostname, port, timeout):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.05)
            running -= 1
            return ok(text)

        mock_invoker.invoke.side_effect = invoke
        targets = [InspectionTarget(id=str(i), hostname=f"h{i}.example") for i in range(6)]

        results = await inspector.run_batch(targets)

        assert len(results) == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, inspector, mock_invoker, transcript):
        text = transcript(days=200)

        async def invoke(hostname, port, timeout):
            if hostname == "broken.example":
                raise RuntimeError("boom")
            return ok(text)

        mock_invoker.invoke.side_effect = invoke
        targets = [
            InspectionTarget(id="1", hostname="ok.example"),
            InspectionTarget(id="2", hostname="broken.example"),
            InspectionTarget(id="3", hostname="ok2.example"),
        ]

        results = await inspector.run_batch(targets)

        assert [r.status for r in results] == [
            CertificateStatus.VALID,
            CertificateStatus.ERROR,
            CertificateStatus.VALID,
        ]

    @pytest.mark.asyncio
    async def test_batch_timeout(self, inspector, mock_invoker, transcript):
        text = transcript(days=200)

        async def invoke(hostname, port, timeout):
            if hostname == "hang.example":
                await asyncio.sleep(30)
            return ok(text)

        mock_invoker.invoke.side_effect = invoke
        targets = [
            InspectionTarget(id="1", hostname="fast.example"),
            InspectionTarget(id="2", hostname="hang.example"),
        ]

        results = await inspector.run_batch(targets, batch_timeout=0.3)

        assert results[0].status == CertificateStatus.VALID
        assert results[1].status == CertificateStatus.ERROR
        assert results[1].message == "Batch timeout (0.3s)"
        assert results[1].failure_kind == FailureKind.TIMEOUT
        assert results[1].response_time_ms >= 250

    @pytest.mark.asyncio
    async def test_batch_timeout_before_start(self, config, mock_invoker, transcript):
        """Targets still waiting for a worker report zero elapsed time."""
        config.inspection_workers = 1
        inspector = CertificateInspector(config=config, invoker=mock_invoker)

        async def invoke(hostname, port, timeout):
            await asyncio.sleep(30)

        mock_invoker.invoke.side_effect = invoke
        targets = [
            InspectionTarget(id="1", hostname="a.example"),
            InspectionTarget(id="2", hostname="b.example"),
        ]

        results = await inspector.run_batch(targets, batch_timeout=0.2)

        assert [r.message for r in results] == ["Batch timeout (0.2s)"] * 2
        assert results[1].response_time_ms == 0

    @pytest.mark.asyncio
    async def test_parent_cancellation_propagates(self, inspector, mock_invoker):
        cancelled = []

        async def invoke(hostname, port, timeout):
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.append(hostname)
                raise

        mock_invoker.invoke.side_effect = invoke
        targets = [
            InspectionTarget(id="1", hostname="a.example"),
            InspectionTarget(id="2", hostname="b.example"),
        ]

        task = asyncio.create_task(inspector.run_batch(targets))
        await asyncio.sleep(0.1)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert sorted(cancelled) == ["a.example", "b.example"]

    @pytest.mark.asyncio
    async def test_records_batch_metrics(self, inspector, mock_invoker, mock_metrics, transcript):
        mock_invoker.invoke.return_value = ok(transcript(days=200))

        results = await inspector.run_batch([InspectionTarget(id="1", hostname="a.example")])

        mock_metrics.update_batch_metrics.assert_called_once()
        assert mock_metrics.update_batch_metrics.call_args[0][0] == results


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell scripts")
class TestInspectorWithFakeClient:
    """Run the whole pipeline against a scripted TLS client."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, fake_openssl, transcript, tmp_path):
        transcript_file = tmp_path / "transcript.txt"
        transcript_file.write_text(transcript(days=90), encoding="utf-8")
        path = fake_openssl(f"cat {transcript_file}")
        config = Config(openssl_path=path, command_timeout="", batch_timeout="5s")
        inspector = CertificateInspector(config=config)

        results = await inspector.run_batch(
            [
                InspectionTarget(id="1", hostname="example.com"),
                InspectionTarget(id="2", hostname="example.com", port=8443),
            ]
        )

        assert [r.status for r in results] == [CertificateStatus.VALID] * 2
        data = results[0].to_dict()
        assert data["certificate"]["subject"] == "CN = example.com"
        assert data["certificate"]["keySize"] == "2048 bit"
        assert data["certificate"]["chainDepth"] == 2
        assert data["certificate"]["daysUntilExpiry"] == 90
