"""User-agent classification for click events.

Prioritized rule tables; the first matching rule wins, so order matters
(Edge and Opera advertise Chrome, Chrome advertises Safari).
"""

import re
from dataclasses import dataclass

from tinylink_shared import DeviceType

UNKNOWN = "Unknown"
BOT = "Bot"

BOT_SIGNATURES = (
    "bot",
    "crawl",
    "spider",
    "slurp",
    "mediapartners",
    "facebookexternalhit",
)

# (display name, pattern capturing major and optional minor version)
BROWSER_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("Edge", re.compile(r"Edg(?:e|A|iOS)?/(\d+)(?:\.(\d+))?")),
    ("Opera", re.compile(r"(?:OPR|Opera)/(\d+)(?:\.(\d+))?")),
    ("Chrome", re.compile(r"(?:Chrome|CriOS)/(\d+)(?:\.(\d+))?")),
    ("Firefox", re.compile(r"(?:Firefox|FxiOS)/(\d+)(?:\.(\d+))?")),
    ("Safari", re.compile(r"Version/(\d+)(?:\.(\d+))?.*Safari/")),
    ("IE", re.compile(r"MSIE (\d+)(?:\.(\d+))?")),
)

WINDOWS_VERSIONS = {
    "10.0": "Windows 10",
    "6.3": "Windows 8.1",
    "6.2": "Windows 8",
    "6.1": "Windows 7",
}

_WINDOWS_NT = re.compile(r"Windows NT (\d+\.\d+)")
_ANDROID = re.compile(r"Android (\d+(?:\.\d+)?)")
_MAC_OS_X = re.compile(r"Mac OS X (\d+)[._](\d+)")


@dataclass(frozen=True)
class UserAgentInfo:
    browser: str
    os: str
    device_type: DeviceType


def is_bot(user_agent: str) -> bool:
    lowered = user_agent.lower()
    return any(signature in lowered for signature in BOT_SIGNATURES)


def detect_browser(user_agent: str) -> str:
    for name, pattern in BROWSER_RULES:
        match = pattern.search(user_agent)
        if match:
            major, minor = match.group(1), match.group(2) or "0"
            return f"{name} {major}.{minor}"
    if "Trident/" in user_agent:
        return "IE 11"
    return UNKNOWN


def detect_os(user_agent: str) -> str:
    match = _WINDOWS_NT.search(user_agent)
    if match:
        return WINDOWS_VERSIONS.get(match.group(1), "Windows")
    if "Windows" in user_agent:
        return "Windows"

    # iOS devices also claim "like Mac OS X"
    for device in ("iPhone", "iPad", "iPod"):
        if device in user_agent:
            return f"iOS ({device})"

    match = _ANDROID.search(user_agent)
    if match:
        return f"Android {match.group(1)}"
    if "Android" in user_agent:
        return "Android"

    if "CrOS" in user_agent:
        return "Chrome OS"

    match = _MAC_OS_X.search(user_agent)
    if match:
        return f"macOS {match.group(1)}.{match.group(2)}"
    if "Macintosh" in user_agent or "Mac OS" in user_agent:
        return "macOS"

    if "Linux" in user_agent:
        return "Linux"
    return UNKNOWN


def detect_device_type(user_agent: str) -> DeviceType:
    if "iPad" in user_agent or "Tablet" in user_agent:
        return DeviceType.TABLET
    if "Mobile" in user_agent or "iPhone" in user_agent or "iPod" in user_agent:
        return DeviceType.MOBILE
    if "Android" in user_agent:
        # Android without "Mobile" is a tablet
        return DeviceType.TABLET
    return DeviceType.DESKTOP


def classify_user_agent(user_agent: str | None) -> UserAgentInfo:
    """Derive browser, OS and device type from a User-Agent header.

    Crawlers report ``Bot`` as their browser and device type; their OS is
    still taken from the header.
    """
    if not user_agent or not user_agent.strip():
        return UserAgentInfo(browser=UNKNOWN, os=UNKNOWN, device_type=DeviceType.UNKNOWN)

    if is_bot(user_agent):
        return UserAgentInfo(browser=BOT, os=detect_os(user_agent), device_type=DeviceType.BOT)
    return UserAgentInfo(
        browser=detect_browser(user_agent),
        os=detect_os(user_agent),
        device_type=detect_device_type(user_agent),
    )
