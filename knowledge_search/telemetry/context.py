"""Request metadata shared by every telemetry event."""

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass


def hash_ip(ip: str | None) -> str:
    """One-way hash of a client address, truncated to 16 hex characters."""
    if not ip:
        return "unknown"
    return hashlib.sha256(ip.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class RequestContext:
    """The parts of an incoming request that telemetry cares about."""

    remote_addr: str | None = None
    user_agent: str | None = None
    session_id: str | None = None
    user_id: str | None = None
    referrer: str | None = None
    page_url: str | None = None
    path: str | None = None

    @classmethod
    def from_headers(
        cls,
        headers: Mapping[str, str],
        remote_addr: str | None = None,
        path: str | None = None,
    ) -> "RequestContext":
        """Build a context from request headers.

        Session and user identifiers are minted by the browser client and
        passed through as-is.
        """
        return cls(
            remote_addr=remote_addr,
            user_agent=headers.get("User-Agent"),
            session_id=headers.get("X-Session-Id"),
            user_id=headers.get("X-User-Id"),
            referrer=headers.get("Referer") or headers.get("Referrer"),
            page_url=headers.get("X-Page-Url"),
            path=path,
        )
