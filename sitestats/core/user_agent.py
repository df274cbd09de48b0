# ==============================================================================
# User-Agent Fallback Parsing
# ==============================================================================
"""
Coarse browser / OS / device detection from a raw User-Agent string.

The browser tracker normally sends parsed fields. This is only used when a
client (or a server-side proxy) forwards the raw `userAgent` instead, and it
applies the same ordered substring rules as the tracker so both paths agree.
"""

import re

_BROWSER_RULES = (
    ("Firefox/", "Firefox", r"Firefox/(\d+)"),
    ("Edg/", "Edge", r"Edg/(\d+)"),
    ("Chrome/", "Chrome", r"Chrome/(\d+)"),
)

_MOBILE_PATTERN = re.compile(r"Mobile|Android|iPhone|iPod")
_TABLET_PATTERN = re.compile(r"iPad|Tablet")


def _first_group(pattern: str, text: str) -> str:
    match = re.search(pattern, text)
    return match.group(1) if match else ""


def parse_user_agent(ua: str) -> dict:
    """
    Parse a User-Agent string into tracker-style device attributes.

    Returns:
        Dict with browser, browser_version, os, os_version, device.
        Unrecognized values are "unknown" (browser/os) or "" (versions).
    """
    browser, browser_version = "unknown", ""
    for marker, name, version_pattern in _BROWSER_RULES:
        if marker in ua:
            browser, browser_version = name, _first_group(version_pattern, ua)
            break
    else:
        if "Safari/" in ua and "Chrome" not in ua:
            browser, browser_version = "Safari", _first_group(r"Version/(\d+)", ua)

    # Order matters: Android UAs also contain "Linux", iOS UAs contain "Mac OS X"
    os_name, os_version = "unknown", ""
    if "Windows" in ua:
        os_name, os_version = "Windows", _first_group(r"Windows NT (\d+\.\d+)", ua)
    elif "Android" in ua:
        os_name, os_version = "Android", _first_group(r"Android (\d+)", ua)
    elif "iPhone" in ua or "iPad" in ua or "iOS" in ua:
        os_name, os_version = "iOS", _first_group(r"OS (\d+)", ua)
    elif "Mac OS X" in ua:
        os_name = "macOS"
        os_version = _first_group(r"Mac OS X (\d+[._]\d+)", ua).replace("_", ".")
    elif "Linux" in ua:
        os_name = "Linux"

    if _MOBILE_PATTERN.search(ua):
        device = "mobile"
    elif _TABLET_PATTERN.search(ua):
        device = "tablet"
    else:
        device = "desktop"

    return {
        "browser": browser,
        "browser_version": browser_version or None,
        "os": os_name,
        "os_version": os_version or None,
        "device": device,
    }
