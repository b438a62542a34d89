"""
Parser for `openssl s_client` diagnostic transcripts.

The transcript format differs between openssl releases. Older clients print
validity as separate `notBefore=` / `notAfter=` lines, newer ones add a
combined `v:NotBefore: ...; NotAfter: ...` line under each chain entry. When
both are present the combined line wins.

Each field has its own extraction rule. `parse_transcript` runs the
short-circuit checks, applies every rule once to build a field bag, and
returns either a `ParsedCertificate` or a `ParseFailure`.
"""

import re
from typing import Any, Callable, Dict, Optional, Tuple, Union

from endpoint_health_checker.handshake import has_connection_failure
from endpoint_health_checker.models import ParseFailure, ParsedCertificate

CONNECTION_FAILED = "Connection failed"
NO_CERTIFICATE = "No certificate found"
UNPARSEABLE_DATES = "Could not parse certificate dates"

CERTIFICATE_MARKERS = ("Server certificate", "Certificate chain")

SUBJECT_RE = re.compile(r"^\s*0\s+s:(.+)$", re.MULTILINE)
ISSUER_RE = re.compile(r"^\s*0\s+s:.+\n\s*i:(.+)$", re.MULTILINE)
VALIDITY_RE = re.compile(r"v:NotBefore:\s*([^;\n]+?GMT);\s*NotAfter:\s*([^;\n]+?GMT)")
LEGACY_NOT_BEFORE_RE = re.compile(r"notBefore=(.+)")
LEGACY_NOT_AFTER_RE = re.compile(r"notAfter=(.+)")
PROTOCOL_RE = re.compile(r"Protocol\s*:\s*([^\n\r]+)", re.IGNORECASE)
CIPHER_RE = re.compile(r"Cipher\s*:\s*([^\n\r]+)", re.IGNORECASE)
DEPTH_RE = re.compile(r"depth=(\d+)")
SERIAL_RE = re.compile(r"serial:\s*([^\n\r]+)", re.IGNORECASE)
PKEY_RE = re.compile(r"PKEY:\s*([\w-]+),\s*(\d+)\s*\(bit\)")
LEGACY_KEY_SIZE_RE = re.compile(r"Server public key is (\d+) bit")

VERIFY_WARNING_RE = re.compile(r"verify error|self-signed certificate")
SELF_SIGNED_IN_CHAIN_RE = re.compile(r"self-signed certificate in certificate chain")


def _first_group(pattern: "re.Pattern[str]", text: str) -> Optional[str]:
    match = pattern.search(text)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def extract_subject(text: str) -> Optional[str]:
    """Subject of the depth-0 chain entry (` 0 s:CN = example.com`)."""
    return _first_group(SUBJECT_RE, text)


def extract_issuer(text: str) -> Optional[str]:
    """Issuer line directly following the depth-0 subject."""
    return _first_group(ISSUER_RE, text)


def extract_validity(text: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract the (notBefore, notAfter) pair.

    The combined `v:` line is used when it yields both dates, otherwise the
    legacy assignment lines are consulted.
    """
    match = VALIDITY_RE.search(text)
    if match:
        return match.group(1).strip(), match.group(2).strip()
    return _first_group(LEGACY_NOT_BEFORE_RE, text), _first_group(LEGACY_NOT_AFTER_RE, text)


def extract_protocol(text: str) -> str:
    return _first_group(PROTOCOL_RE, text) or "Unknown"


def extract_cipher(text: str) -> str:
    return _first_group(CIPHER_RE, text) or "Unknown"


def extract_chain_depth(text: str) -> int:
    match = DEPTH_RE.search(text)
    return int(match.group(1)) if match else 0


def detect_verify_warning(text: str) -> bool:
    """True when the client reported a non-fatal verification problem."""
    return VERIFY_WARNING_RE.search(text) is not None


def derive_verify_detail(text: str) -> str:
    if SELF_SIGNED_IN_CHAIN_RE.search(text):
        return "Self-signed certificate in chain"
    if "verify return:1" in text:
        return "Certificate accepted with warnings"
    return "Unknown"


def extract_serial_number(text: str) -> Optional[str]:
    return _first_group(SERIAL_RE, text)


def extract_public_key(text: str) -> Tuple[Optional[str], Optional[int]]:
    """
    Extract (algorithm, size in bits) of the leaf public key.

    Newer clients print `a:PKEY: rsaEncryption, 2048 (bit); sigalg: ...`,
    older ones only `Server public key is 2048 bit`.
    """
    match = PKEY_RE.search(text)
    if match:
        return match.group(1), int(match.group(2))
    legacy = LEGACY_KEY_SIZE_RE.search(text)
    if legacy:
        return None, int(legacy.group(1))
    return None, None


# Ordered (field names, rule) pairs; tuple-valued rules fill several fields
EXTRACTION_RULES: Tuple[Tuple[Tuple[str, ...], Callable[[str], Any]], ...] = (
    (("subject",), extract_subject),
    (("issuer",), extract_issuer),
    (("not_before", "not_after"), extract_validity),
    (("protocol",), extract_protocol),
    (("cipher",), extract_cipher),
    (("chain_depth",), extract_chain_depth),
    (("has_verify_warning",), detect_verify_warning),
    (("verify_detail",), derive_verify_detail),
    (("serial_number",), extract_serial_number),
    (("key_algorithm", "key_size_bits"), extract_public_key),
)


def extract_fields(text: str) -> Dict[str, Any]:
    """Apply every extraction rule once and collect the results."""
    fields: Dict[str, Any] = {}
    for names, rule in EXTRACTION_RULES:
        value = rule(text)
        if len(names) == 1:
            fields[names[0]] = value
        else:
            fields.update(zip(names, value))
    return fields


def parse_transcript(text: str) -> Union[ParsedCertificate, ParseFailure]:
    """
    Turn a diagnostic transcript into a certificate record.

    Checks run in a fixed order and the first failing check decides the
    outcome: connection failure, then missing certificate, then missing
    expiry date.

    Args:
        text: Combined stdout/stderr of `openssl s_client`

    Returns:
        ParsedCertificate on success, ParseFailure otherwise
    """
    if has_connection_failure(text):
        return ParseFailure(CONNECTION_FAILED)

    if not any(marker in text for marker in CERTIFICATE_MARKERS):
        return ParseFailure(NO_CERTIFICATE)

    fields = extract_fields(text)

    if fields["not_after"] is None:
        return ParseFailure(UNPARSEABLE_DATES)

    return ParsedCertificate(**fields)
