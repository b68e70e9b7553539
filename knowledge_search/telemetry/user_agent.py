"""Coarse User-Agent classification."""

import re
from dataclasses import dataclass

UNKNOWN = "unknown"

_TABLET_RE = re.compile(r"(tablet|ipad|playbook|silk)|(android(?!.*mobi))", re.IGNORECASE)
_MOBILE_RE = re.compile(
    r"Mobile|iP(hone|od)|Android|BlackBerry|IEMobile|Kindle|Silk-Accelerated|(hpw|web)OS|Opera M(obi|ini)"
)

# Checked in order against the lowercased agent, first match wins.
# Edge and Opera advertise chrome/ too, so they must come before Chrome.
_BROWSERS: list[tuple[str, tuple[str, ...], tuple[str, ...]]] = [
    ("Edge", ("edg/", "edge/"), ()),
    ("Opera", ("opr/", "opera/"), ()),
    ("Chrome", ("chrome/",), ()),
    ("Safari", ("safari/",), ("chrome",)),
    ("Firefox", ("firefox/",), ()),
    ("IE", ("msie", "trident/"), ()),
]

# Android agents mention linux and iOS agents mention "mac os x"
_OPERATING_SYSTEMS: list[tuple[str, tuple[str, ...]]] = [
    ("Windows", ("windows",)),
    ("Android", ("android",)),
    ("iOS", ("iphone", "ipad", "ipod")),
    ("macOS", ("mac os",)),
    ("Linux", ("linux",)),
]


@dataclass(frozen=True)
class UserAgentInfo:
    """Device type, browser and operating system of a client."""

    device_type: str = UNKNOWN
    browser: str = UNKNOWN
    os: str = UNKNOWN


def _device_type(user_agent: str) -> str:
    if _TABLET_RE.search(user_agent):
        return "tablet"
    if _MOBILE_RE.search(user_agent):
        return "mobile"
    return "desktop"


def _browser(ua: str) -> str:
    for name, markers, exclusions in _BROWSERS:
        if any(m in ua for m in markers) and not any(x in ua for x in exclusions):
            return name
    return UNKNOWN


def _operating_system(ua: str) -> str:
    for name, markers in _OPERATING_SYSTEMS:
        if any(m in ua for m in markers):
            return name
    return UNKNOWN


def parse_user_agent(user_agent: str | None) -> UserAgentInfo:
    """Classify a User-Agent header; anything unrecognised is ``unknown``."""
    if not user_agent or user_agent == UNKNOWN:
        return UserAgentInfo()

    ua = user_agent.lower()
    return UserAgentInfo(
        device_type=_device_type(user_agent),
        browser=_browser(ua),
        os=_operating_system(ua),
    )
