"""
TLS handshake invocation through the openssl command-line client.
"""

import asyncio
import os
import shutil
import signal
import time
from typing import List, Optional

from endpoint_health_checker.logger import get_logger
from endpoint_health_checker.models import FailureKind, RawHandshakeResult

CONNECTION_FAILURE_MARKERS = (
    "Connection refused",
    "Network is unreachable",
    "Name or service not known",
)

# Exit status used by coreutils `timeout` when the wrapped command ran out of time
WRAPPER_TIMEOUT_EXIT_CODE = 124


def has_connection_failure(text: str) -> bool:
    """Check diagnostic text for connection-refusal markers."""
    return any(marker in text for marker in CONNECTION_FAILURE_MARKERS)


def format_seconds(seconds: float) -> str:
    """Render a timeout bound the way it appears in messages (10, 2.5)."""
    return str(int(seconds)) if float(seconds).is_integer() else f"{seconds:g}"


class HandshakeInvoker:
    """
    Runs `openssl s_client` against a host and captures its transcript.

    Every spawned process runs in its own process group and is killed and
    reaped before `invoke` returns, including when the caller is cancelled.
    """

    def __init__(self, openssl_path: str = "openssl", command_timeout: Optional[float] = None):
        self.openssl_path = openssl_path
        self.command_timeout = command_timeout
        self.logger = get_logger("handshake")
        self._wrapper = shutil.which("timeout") if command_timeout else None

    def build_command(self, hostname: str, port: int) -> List[str]:
        """Build the argument vector for one handshake."""
        host = f"[{hostname}]" if ":" in hostname else hostname
        command = [
            self.openssl_path,
            "s_client",
            "-connect",
            f"{host}:{port}",
            "-servername",
            hostname,
        ]
        if self._wrapper and self.command_timeout:
            command = [self._wrapper, format_seconds(self.command_timeout)] + command
        return command

    async def invoke(self, hostname: str, port: int, timeout: float) -> RawHandshakeResult:
        """
        Perform one handshake with a hard wall-clock timeout.

        Args:
            hostname: Host to connect to, also sent as SNI
            port: TCP port
            timeout: Seconds before the process is killed

        Returns:
            Raw transcript or a structured failure
        """
        command = self.build_command(hostname, port)
        start_time = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=os.name == "posix",
            )
        except OSError as e:
            self.logger.error(f"Could not start TLS client '{self.openssl_path}': {e}")
            return RawHandshakeResult(
                succeeded=False,
                text="",
                elapsed_ms=_elapsed_ms(start_time),
                failure_kind=FailureKind.OTHER,
                detail=f"TLS client unavailable: {e}",
            )

        try:
            output, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            return RawHandshakeResult(
                succeeded=False,
                text="",
                elapsed_ms=_elapsed_ms(start_time),
                failure_kind=FailureKind.TIMEOUT,
                detail=f"Connection timeout ({format_seconds(timeout)}s)",
            )
        finally:
            await _terminate(process)

        elapsed_ms = _elapsed_ms(start_time)
        text = output.decode("utf-8", errors="replace")
        self.logger.debug(
            f"Command completed for {hostname}:{port} in {elapsed_ms}ms "
            f"(exit {process.returncode})"
        )

        if process.returncode == 0:
            return RawHandshakeResult(succeeded=True, text=text, elapsed_ms=elapsed_ms)

        if self._wrapper and process.returncode == WRAPPER_TIMEOUT_EXIT_CODE:
            return RawHandshakeResult(
                succeeded=False,
                text=text,
                elapsed_ms=elapsed_ms,
                failure_kind=FailureKind.TIMEOUT,
                detail=f"Connection timeout ({format_seconds(self.command_timeout or 0)}s)",
            )

        kind = FailureKind.CONNECTION_FAILED if has_connection_failure(text) else FailureKind.OTHER
        return RawHandshakeResult(
            succeeded=False,
            text=text,
            elapsed_ms=elapsed_ms,
            failure_kind=kind,
            detail=text.strip() or f"TLS client exited with status {process.returncode}",
        )


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """Kill the process group if still running, then reap it."""
    if process.returncode is None:
        try:
            if os.name == "posix":
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)


async def probe_tls_client(openssl_path: str = "openssl", timeout: float = 5.0) -> Optional[str]:
    """
    Report the installed TLS client version.

    Returns:
        Version string such as "OpenSSL 3.0.13 30 Jan 2024", or None when unavailable
    """
    try:
        process = await asyncio.create_subprocess_exec(
            openssl_path,
            "version",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError:
        return None

    try:
        output, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        return None
    finally:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    if process.returncode != 0:
        return None
    return output.decode("utf-8", errors="replace").strip() or None
