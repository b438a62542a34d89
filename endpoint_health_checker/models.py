"""
Data model for certificate inspections and HTTP liveness checks.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

NOT_AVAILABLE = "Not available"


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """Render an instant as an ISO-8601 UTC string with millisecond precision."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class FailureKind(str, Enum):
    """Why a handshake did not produce a usable transcript."""

    NONE = "none"
    TIMEOUT = "timeout"
    CONNECTION_FAILED = "connection_failed"
    OTHER = "other"


class CertificateStatus(str, Enum):
    """Health verdict for an inspected endpoint."""

    VALID = "valid"
    WARNING = "warning"
    EXPIRED = "expired"
    ERROR = "error"


@dataclass(frozen=True)
class InspectionTarget:
    """A hostname/port pair to inspect."""

    id: str
    hostname: str
    port: int = 443
    enabled: bool = True

    @property
    def dispatchable(self) -> bool:
        """Disabled targets and blank hostnames never enter the pipeline."""
        return self.enabled and bool(self.hostname and self.hostname.strip())


@dataclass(frozen=True)
class RawHandshakeResult:
    """Combined diagnostic output of one TLS client run."""

    succeeded: bool
    text: str
    elapsed_ms: int
    failure_kind: FailureKind = FailureKind.NONE
    detail: Optional[str] = None


@dataclass(frozen=True)
class ParsedCertificate:
    """Fields extracted from a diagnostic transcript; None means absent."""

    subject: Optional[str] = None
    issuer: Optional[str] = None
    not_before: Optional[str] = None
    not_after: Optional[str] = None
    protocol: str = "Unknown"
    cipher: str = "Unknown"
    chain_depth: int = 0
    has_verify_warning: bool = False
    verify_detail: str = "Unknown"
    serial_number: Optional[str] = None
    key_algorithm: Optional[str] = None
    key_size_bits: Optional[int] = None


@dataclass(frozen=True)
class ParseFailure:
    """A transcript that could not be turned into a certificate record."""

    message: str


@dataclass(frozen=True)
class Verdict:
    """Classifier output."""

    status: CertificateStatus
    message: str
    days_until_expiry: Optional[int] = None
    is_expired: bool = False
    not_before: Optional[datetime] = None
    not_after: Optional[datetime] = None


@dataclass
class InspectionResult:
    """Final per-target inspection record."""

    id: str
    hostname: str
    port: int
    status: CertificateStatus
    message: str
    connected: bool
    response_time_ms: int
    protocol: Optional[str] = None
    cipher: Optional[str] = None
    certificate: Optional[ParsedCertificate] = None
    days_until_expiry: Optional[int] = None
    is_expired: bool = False
    failure_kind: FailureKind = FailureKind.NONE
    error_details: Optional[str] = None
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire format consumed by the dashboard."""
        data: Dict[str, Any] = {
            "id": self.id,
            "hostname": self.hostname,
            "port": self.port,
            "status": self.status.value,
            "message": self.message,
            "connected": self.connected,
            "responseTime": self.response_time_ms,
        }
        if self.protocol is not None:
            data["protocol"] = self.protocol
        if self.cipher is not None:
            data["cipher"] = self.cipher
        if self.certificate is not None:
            data["certificate"] = self._certificate_dict(self.certificate)
        if self.error_details:
            data["errorDetails"] = self.error_details
        data["timestamp"] = self.timestamp
        return data

    def _certificate_dict(self, cert: ParsedCertificate) -> Dict[str, Any]:
        days = self.days_until_expiry
        if days is not None and self.is_expired:
            days = -abs(days)
        return {
            "subject": cert.subject or NOT_AVAILABLE,
            "issuer": cert.issuer or NOT_AVAILABLE,
            "validFrom": cert.not_before or NOT_AVAILABLE,
            "validTo": cert.not_after or NOT_AVAILABLE,
            "daysUntilExpiry": days,
            "isExpired": self.is_expired,
            "isVerified": not cert.has_verify_warning,
            "verifyResult": cert.verify_detail,
            "chainDepth": cert.chain_depth,
            "serialNumber": cert.serial_number or NOT_AVAILABLE,
            "keySize": f"{cert.key_size_bits} bit" if cert.key_size_bits else "Unknown",
        }


@dataclass(frozen=True)
class HealthCheckTarget:
    """A URL to probe for liveness."""

    id: str
    url: str
    enabled: bool = True


@dataclass
class HealthCheckResult:
    """Outcome of one HTTP liveness probe."""

    id: str
    url: str
    status: str
    response_time_ms: int
    message: str
    status_code: Optional[int] = None
    headers: Optional[Dict[str, Optional[str]]] = None
    error_code: Optional[str] = None
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire format consumed by the dashboard."""
        data: Dict[str, Any] = {
            "id": self.id,
            "url": self.url,
            "status": self.status,
            "responseTime": self.response_time_ms,
            "statusCode": self.status_code,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.headers is not None:
            data["headers"] = self.headers
        if self.error_code is not None:
            data["errorCode"] = self.error_code
        return data
