"""Usage telemetry module."""

from .context import RequestContext, hash_ip
from .recorder import EVENT_TYPES, TelemetryRecorder
from .user_agent import UserAgentInfo, parse_user_agent

__all__ = [
    "EVENT_TYPES",
    "RequestContext",
    "TelemetryRecorder",
    "UserAgentInfo",
    "hash_ip",
    "parse_user_agent",
]
