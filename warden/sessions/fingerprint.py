"""
WardenSessions - Device fingerprinting.

Derives a stable device identity from request metadata:
- DeviceInfo: parsed user agent
- DeviceMetadata: optional client-reported hints
- compute_fingerprint: SHA-256 over the ordered components

Private-mode detection is a best-effort substring heuristic over the user
agent. It is a labelling aid, not a security control.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Any


# ============================================================================
# Types
# ============================================================================

DESKTOP = "Desktop"
MOBILE = "Mobile"
TABLET = "Tablet"
UNKNOWN = "Unknown"


@dataclass(frozen=True)
class DeviceInfo:
    """Parsed user agent."""
    browser: str = UNKNOWN
    browser_version: str = ""
    os: str = UNKNOWN
    os_version: str = ""
    device: str = DESKTOP
    is_private: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "browser": self.browser,
            "browser_version": self.browser_version,
            "os": self.os,
            "os_version": self.os_version,
            "device": self.device,
            "is_private": self.is_private,
        }


@dataclass(frozen=True)
class DeviceMetadata:
    """Optional client hints folded into the fingerprint."""
    screen_resolution: str | None = None
    timezone: str | None = None
    language: str | None = None


# ============================================================================
# User Agent Parsing
# ============================================================================

_WINDOWS_VERSIONS = (
    ("windows nt 10.0", "10"),
    ("windows nt 6.3", "8.1"),
    ("windows nt 6.2", "8"),
    ("windows nt 6.1", "7"),
    ("windows nt 6.0", "Vista"),
    ("windows nt 5.2", "XP x64"),
    ("windows nt 5.1", "XP"),
    ("windows nt 5.0", "2000"),
)


def _major_version(ua: str, *prefixes: str) -> str:
    """Major version following the first matching prefix ("chrome/120.0" -> "120")."""
    for prefix in prefixes:
        match = re.search(re.escape(prefix) + r"(\d+)", ua)
        if match:
            return match.group(1)
    return ""


def _detect_browser(ua: str) -> tuple[str, str]:
    # Edge and Opera embed "chrome/" so they are matched first
    if "edg/" in ua or "edge/" in ua:
        return "Edge", _major_version(ua, "edg/", "edge/")
    if "opr/" in ua or "opera" in ua:
        return "Opera", _major_version(ua, "opr/", "opera/", "version/")
    if "firefox/" in ua or "fxios/" in ua:
        return "Firefox", _major_version(ua, "firefox/", "fxios/")
    if "chrome/" in ua or "crios/" in ua or "chromium/" in ua:
        return "Chrome", _major_version(ua, "chrome/", "crios/", "chromium/")
    if "safari" in ua:
        return "Safari", _major_version(ua, "version/")
    return UNKNOWN, ""


def _detect_os(ua: str) -> tuple[str, str]:
    if "windows" in ua:
        for marker, version in _WINDOWS_VERSIONS:
            if marker in ua:
                return "Windows", version
        return "Windows", ""
    # Android UAs contain "linux", iOS UAs contain "mac os x"
    if "android" in ua:
        return "Android", _major_version(ua, "android ")
    if "iphone" in ua or "ipad" in ua or "ipod" in ua:
        return "iOS", _major_version(ua, "iphone os ", "cpu os ")
    if "mac os x" in ua or "macintosh" in ua:
        return "macOS", _major_version(ua, "mac os x ")
    if "cros " in ua:
        return "ChromeOS", ""
    if "linux" in ua:
        return "Linux", ""
    return UNKNOWN, ""


def _detect_device(ua: str) -> str:
    # iPad UAs carry "Mobile/..." so tablets are matched first
    if "ipad" in ua or "tablet" in ua:
        return TABLET
    if "android" in ua and "mobile" not in ua:
        return TABLET
    if "mobile" in ua or "iphone" in ua:
        return MOBILE
    return DESKTOP


def detect_private_mode(user_agent: str) -> bool:
    """
    Heuristic private-browsing marker check per browser family.

    Browsers do not normally advertise private mode; this only catches
    user agents that carry an explicit marker (and headless Chrome).
    """
    ua = user_agent.lower()

    if "chrome" in ua and ("incognito" in ua or "private" in ua or "headless" in ua):
        return True
    if "firefox" in ua and "private" in ua:
        return True
    if "safari" in ua and "private" in ua:
        return True
    if ("edge" in ua or "edg/" in ua) and "inprivate" in ua:
        return True
    return False


def parse_user_agent(user_agent: str | None) -> DeviceInfo:
    """Parse a user agent string into ``DeviceInfo``."""
    ua = (user_agent or "").lower()
    if not ua:
        return DeviceInfo()

    browser, browser_version = _detect_browser(ua)
    os_name, os_version = _detect_os(ua)

    return DeviceInfo(
        browser=browser,
        browser_version=browser_version,
        os=os_name,
        os_version=os_version,
        device=_detect_device(ua),
        is_private=detect_private_mode(ua),
    )


# ============================================================================
# Fingerprint & Naming
# ============================================================================

def fingerprint_components(
    ip_address: str,
    info: DeviceInfo,
    metadata: DeviceMetadata | None = None,
) -> list[str]:
    """Ordered fingerprint inputs; missing optional fields become ''."""
    metadata = metadata or DeviceMetadata()
    return [
        ip_address or "",
        info.browser,
        info.browser_version,
        info.os,
        info.os_version,
        info.device,
        "incognito" if info.is_private else "normal",
        metadata.screen_resolution or "",
        metadata.timezone or "",
        metadata.language or "",
    ]


def compute_fingerprint(
    ip_address: str,
    user_agent: str | None,
    metadata: DeviceMetadata | None = None,
) -> str:
    """
    Deterministic device fingerprint.

    Returns:
        Hex SHA-256 digest of the '|'-joined components

    Example:
        >>> compute_fingerprint("10.0.0.1", ua) == compute_fingerprint("10.0.0.1", ua)
        True
    """
    components = fingerprint_components(ip_address, parse_user_agent(user_agent), metadata)
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()


def create_device_name(info: DeviceInfo) -> str:
    """Human label: ``"Chrome - Windows - Desktop (Incognito)"``."""
    name = " - ".join(part for part in (info.browser, info.os, info.device) if part)
    if info.is_private:
        name += " (Incognito)"
    return name
