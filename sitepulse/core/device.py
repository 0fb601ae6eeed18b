"""
Device profiling: classify the visitor's device from the environment.

Produces a fixed-shape DeviceProfile:
  device_type      desktop | tablet | mobile   (tablet wins over mobile)
  browser          Chrome | Safari | Firefox | IE | Edge | unknown
  browser_version  from ua-parser, None when unparseable
  os               Windows | MacOS | Android | iOS | Linux | unknown
  os_version       "10.0", "13", "17.2" ... or "unknown"
  screen_width/height

Rule order matters: every Chrome-based UA also says "Safari", and iPads say
"Mobile". Unknown strings never raise, they resolve to "unknown".
"""

import re
from dataclasses import dataclass

from user_agents import parse as parse_ua

UNKNOWN = "unknown"

TABLET_UA = re.compile(r"iPad|Tablet|PlayBook", re.IGNORECASE)
MOBILE_UA = re.compile(
    r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE
)

# (browser, substrings) checked in order; first hit wins
BROWSER_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("Chrome", ("Chrome",)),
    ("Safari", ("Safari",)),
    ("Firefox", ("Firefox",)),
    ("IE", ("MSIE", "Trident/")),
    ("Edge", ("Edge",)),
]

# (os, detection pattern, version pattern or None)
OS_RULES: list[tuple[str, re.Pattern, re.Pattern | None]] = [
    ("Windows", re.compile(r"Windows"), re.compile(r"Windows NT (\d+\.\d+)")),
    ("MacOS", re.compile(r"Macintosh|MacIntel|MacPPC|Mac68K"), None),
    ("Android", re.compile(r"Android"), re.compile(r"Android (\d+(?:\.\d+)?)")),
    ("iOS", re.compile(r"iOS|iPhone|iPad|iPod"), re.compile(r"OS (\d+_\d+)")),
    ("Linux", re.compile(r"Linux"), None),
]


@dataclass(frozen=True)
class ScreenMetrics:
    width: int
    height: int
    color_depth: int = 24


@dataclass(frozen=True)
class DeviceProfile:
    device_type: str
    browser: str
    browser_version: str | None
    os: str
    os_version: str
    screen_width: int
    screen_height: int


def classify_device_type(ua: str) -> str:
    if TABLET_UA.search(ua):
        return "tablet"
    if MOBILE_UA.search(ua):
        return "mobile"
    return "desktop"


def classify_browser(ua: str) -> str:
    for browser, needles in BROWSER_RULES:
        if any(needle in ua for needle in needles):
            return browser
    return UNKNOWN


def classify_os(ua: str) -> tuple[str, str]:
    for os_name, pattern, version_pattern in OS_RULES:
        if not pattern.search(ua):
            continue
        version = UNKNOWN
        if version_pattern is not None:
            match = version_pattern.search(ua)
            if match:
                version = match.group(1).replace("_", ".")
        return os_name, version
    return UNKNOWN, UNKNOWN


def _browser_version(ua: str) -> str | None:
    if not ua:
        return None
    parsed = parse_ua(ua)
    return ".".join(str(v) for v in parsed.browser.version if v is not None) or None


def profile_user_agent(user_agent: str | None, screen: ScreenMetrics) -> DeviceProfile:
    """Classify a raw UA string plus screen metrics."""
    ua = user_agent or ""
    os_name, os_version = classify_os(ua)
    return DeviceProfile(
        device_type=classify_device_type(ua),
        browser=classify_browser(ua),
        browser_version=_browser_version(ua),
        os=os_name,
        os_version=os_version,
        screen_width=screen.width,
        screen_height=screen.height,
    )


def profile_device(env) -> DeviceProfile:
    """Profile the device behind an Environment snapshot."""
    return profile_user_agent(env.get_user_agent(), env.get_screen_metrics())
