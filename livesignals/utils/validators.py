"""
LiveSignals Input Validators
============================

Validation for repository identifiers, feed URLs and upstream hosts, plus
lenient timestamp parsing for feed dates.
"""

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable, List, Optional, Set
from urllib.parse import urlparse

from .exceptions import ValidationError, ErrorCode


GITHUB_REPO_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


def is_valid_github_repo(value: str) -> bool:
    """Check an ``owner/name`` repository identifier."""
    return bool(value) and bool(GITHUB_REPO_PATTERN.match(value))


def source_label(url: str) -> str:
    """Hostname of ``url`` without a leading ``www.``."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        hostname = None
    if not hostname:
        return "unknown-source"
    return re.sub(r"^www\.", "", hostname)


def hosts_of(urls: Iterable[str]) -> Set[str]:
    """Collect hostnames of the given URLs, skipping unparsable entries."""
    hosts = set()
    for url in urls:
        try:
            hostname = urlparse(url).hostname
        except ValueError:
            continue
        if hostname:
            hosts.add(hostname)
    return hosts


class HostAllowlist:
    """Allowlist of trusted https hosts."""

    def __init__(self, hosts: Iterable[str]):
        self.hosts = {h.lower() for h in hosts if h}

    def is_trusted(self, url: str) -> bool:
        """True for ``https`` URLs on an allowlisted host."""
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return parsed.scheme == "https" and (parsed.hostname or "") in self.hosts

    def validate(self, url: Optional[str], field_name: str = "url") -> str:
        """Validate a proxy target.

        Raises:
            ValidationError: VALIDATION_INVALID_FORMAT for missing or non-https
                URLs, VALIDATION_UNTRUSTED_HOST for hosts off the allowlist
        """
        if not url or not re.match(r"^https://", url, re.IGNORECASE):
            raise ValidationError(
                "Provide a valid https upstream url",
                field_name=field_name,
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
            )
        if not self.is_trusted(url):
            raise ValidationError(
                "Upstream host is not on the trusted allowlist",
                field_name=field_name,
                error_code=ErrorCode.VALIDATION_UNTRUSTED_HOST,
            )
        return url


def parse_list_param(value: Optional[str], defaults: List[str]) -> List[str]:
    """Split a comma-separated query parameter, falling back to defaults when absent."""
    if not value:
        return list(defaults)
    return [entry.strip() for entry in value.split(",") if entry.strip()]


def parse_timestamp(value: Optional[str]) -> Optional[float]:
    """Parse a feed timestamp into epoch seconds.

    Accepts ISO-8601 (including a trailing ``Z``) and RFC-822 dates as used by
    RSS ``pubDate``. Naive values are taken as UTC. Returns None when the value
    cannot be parsed.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None

    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00").replace("z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError):
            return None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.timestamp()
    except (OverflowError, OSError, ValueError):
        return None
