"""
Normalisation of user-supplied URLs into inspection and health-check targets.
"""

import json
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from endpoint_health_checker.models import HealthCheckTarget, InspectionTarget

DEFAULT_TLS_PORT = 443
SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def split_authority(value: str) -> Tuple[str, str]:
    """Strip scheme, path and query, then split the authority into (host, port text)."""
    remainder = SCHEME_RE.sub("", value.strip())
    remainder = remainder.split("/", 1)[0].split("?", 1)[0].split("#", 1)[0]

    if remainder.startswith("["):
        host, _, rest = remainder[1:].partition("]")
        return host, rest[1:] if rest.startswith(":") else ""
    if remainder.count(":") == 1:
        host, port_text = remainder.split(":")
        return host, port_text
    return remainder, ""


def split_host_port(value: str, default_port: int = DEFAULT_TLS_PORT) -> Tuple[str, int]:
    """
    Split "https://host:port/path" style input into (hostname, port).

    Raises:
        ValueError: If the port is not a number in 1..65535
    """
    host, port_text = split_authority(value)

    if not port_text:
        return host, default_port

    if not port_text.isdigit() or not 1 <= int(port_text) <= 65535:
        raise ValueError(f"Invalid port: {port_text}")
    return host, int(port_text)


def _entry_id(entry: Dict[str, Any]) -> str:
    value = entry.get("id")
    return "" if value is None else str(value)


def _explicit_port(value: Any) -> Optional[int]:
    """Port given alongside the host; 0 when present but invalid."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        port = int(value)
    except (TypeError, ValueError):
        return 0
    return port if 1 <= port <= 65535 else 0


def targets_from_urls(entries: Iterable[Dict[str, Any]]) -> List[InspectionTarget]:
    """
    Build inspection targets from batch request entries
    `{id, hostname|url, enabled, port?}`.

    `hostname` wins over `url` when both are set, and an explicit `port`
    wins over one embedded in the address. Entries with an invalid port keep
    port 0 so the inspector reports them as errors instead of dropping them.
    """
    targets = []
    for entry in entries:
        address = (entry.get("hostname") or entry.get("url") or "").strip()
        explicit_port = _explicit_port(entry.get("port"))
        try:
            hostname, port = (
                split_host_port(address, explicit_port or DEFAULT_TLS_PORT)
                if address
                else ("", DEFAULT_TLS_PORT)
            )
        except ValueError:
            hostname, port = split_authority(address)[0], 0
        if explicit_port is not None:
            port = explicit_port
        targets.append(
            InspectionTarget(
                id=_entry_id(entry),
                hostname=hostname,
                port=port,
                enabled=bool(entry.get("enabled", True)),
            )
        )
    return targets


def health_targets_from_urls(entries: Iterable[Dict[str, Any]]) -> List[HealthCheckTarget]:
    """Build liveness targets from request entries `{id, url, enabled}`."""
    return [
        HealthCheckTarget(
            id=_entry_id(entry),
            url=(entry.get("url") or "").strip(),
            enabled=bool(entry.get("enabled", True)),
        )
        for entry in entries
    ]


def _extract_urls(content: str, filename: str) -> List[str]:
    name = filename.lower()
    if name.endswith(".json"):
        data = json.loads(content)
        if isinstance(data, list):
            items = data
        elif isinstance(data, dict):
            items = data.get("urls", [])
        else:
            items = None
        if not isinstance(items, list):
            raise ValueError("JSON upload must be an array of URLs or an object with 'urls'")
        return [str(item).strip() for item in items if str(item).strip()]
    if name.endswith(".csv"):
        lines = [line for line in content.splitlines() if line.strip()]
        return [line.split(",")[0].strip() for line in lines if line.split(",")[0].strip()]
    return [
        line.strip()
        for line in content.splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]


def parse_bulk_urls(content: str, filename: str = "") -> List[InspectionTarget]:
    """
    Parse an uploaded URL list into inspection targets.

    Supports .json (array of URLs or {"urls": [...]}), .csv (URLs in the
    first column) and plain text (one URL per line, `#` comments). URLs
    without a scheme get https://, invalid URLs are skipped, duplicates
    are dropped and ids are assigned sequentially from 1.

    Raises:
        ValueError: If a .json upload is not valid JSON or not a list of URLs
    """
    targets: List[InspectionTarget] = []
    seen = set()

    for url in _extract_urls(content, filename):
        if not SCHEME_RE.match(url):
            url = f"https://{url}"
        try:
            parts = urlsplit(url)
            hostname = parts.hostname
            port = parts.port or DEFAULT_TLS_PORT
        except ValueError:
            continue
        if not hostname or (hostname, port) in seen:
            continue
        seen.add((hostname, port))
        targets.append(InspectionTarget(id=str(len(targets) + 1), hostname=hostname, port=port))

    return targets
