import ipaddress
import re
from typing import Tuple
from urllib.parse import urlparse, urlunparse

BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain", "0.0.0.0"}

_HOSTNAME_RE = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)


def normalize_url(url: str) -> Tuple[str, bool]:

    url = url.strip()

    parsed = urlparse(url)

    if not parsed.scheme:
        normalized = f"https://{url}"
        return normalized, True

    return url, False


def _is_private_host(hostname: str) -> bool:
    if hostname in BLOCKED_HOSTNAMES or hostname.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return address.is_private or address.is_loopback or address.is_link_local or address.is_unspecified


def validate_url(url: str) -> Tuple[bool, str, str]:
    """
    Returns (is_valid, normalized_url, error_message).

    Only public http(s) hosts are accepted; fragments are dropped and the
    hostname is lower-cased so the same page always maps to the same target.
    """
    if not url or not url.strip():
        return False, "", "URL cannot be empty"

    normalized_url, _ = normalize_url(url)

    try:
        parsed = urlparse(normalized_url)

        if parsed.scheme not in ["http", "https"]:
            return False, normalized_url, f"Invalid URL scheme: {parsed.scheme} (must be http or https)"

        hostname = (parsed.hostname or "").lower()
        if not hostname:
            return False, normalized_url, "Invalid URL format: missing domain"

        if _is_private_host(hostname):
            return False, normalized_url, "Private or local addresses are not allowed"

        if not _HOSTNAME_RE.match(hostname):
            return False, normalized_url, "Invalid domain format"

        netloc = hostname if parsed.port is None else f"{hostname}:{parsed.port}"
        normalized_url = urlunparse(
            (parsed.scheme, netloc, parsed.path or "/", parsed.params, parsed.query, "")
        )
        return True, normalized_url, ""

    except ValueError as e:
        return False, normalized_url, f"URL parsing error: {str(e)}"
