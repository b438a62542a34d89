"""
Certificate health classification.
"""

import math
from datetime import datetime, timezone
from typing import Optional

from endpoint_health_checker.models import CertificateStatus, ParsedCertificate, Verdict

SECONDS_PER_DAY = 86400
DEFAULT_WARNING_DAYS = 30

# openssl prints dates as "Aug 18 08:39:58 2025 GMT", day padded with a space
DIAGNOSTIC_DATE_FORMAT = "%b %d %H:%M:%S %Y GMT"


def parse_diagnostic_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an openssl timestamp into an aware UTC datetime.

    Returns:
        The instant, or None if the value is missing or malformed
    """
    if not value:
        return None
    normalized = " ".join(value.split())
    try:
        parsed = datetime.strptime(normalized, DIAGNOSTIC_DATE_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def days_until(expiry: datetime, now: datetime) -> int:
    """Whole days until expiry, rounding any remainder up."""
    return math.ceil((expiry - now).total_seconds() / SECONDS_PER_DAY)


def classify(
    parsed: ParsedCertificate,
    now: Optional[datetime] = None,
    warning_days: int = DEFAULT_WARNING_DAYS,
) -> Verdict:
    """
    Derive a health verdict from a parsed certificate.

    Expiry is checked before verification warnings, so an expiring
    self-signed certificate reports its expiry.

    Args:
        parsed: Fields extracted from the transcript
        now: Reference instant, defaults to the current UTC time
        warning_days: Days before expiry at which a certificate is flagged

    Returns:
        Verdict with status, message and expiry arithmetic
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    not_after = parse_diagnostic_date(parsed.not_after)
    not_before = parse_diagnostic_date(parsed.not_before)

    if not_after is None:
        return Verdict(
            status=CertificateStatus.ERROR,
            message="Could not parse certificate dates",
            not_before=not_before,
        )

    remaining = days_until(not_after, now)
    is_expired = not_after < now

    if is_expired:
        status = CertificateStatus.EXPIRED
        message = f"Certificate expired {abs(remaining)} days ago"
    elif remaining <= warning_days:
        status = CertificateStatus.WARNING
        message = f"Certificate expires in {remaining} days"
    elif parsed.has_verify_warning:
        status = CertificateStatus.WARNING
        message = "Certificate has verification warnings (self-signed chain)"
    else:
        status = CertificateStatus.VALID
        message = "Certificate is valid"

    return Verdict(
        status=status,
        message=message,
        days_until_expiry=remaining,
        is_expired=is_expired,
        not_before=not_before,
        not_after=not_after,
    )
