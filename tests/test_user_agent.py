# ==============================================================================
# Tests for User-Agent Fallback Parsing
# ==============================================================================
"""
Unit tests for parse_user_agent().

Rule order matters: Edge UAs contain "Chrome/", Chrome UAs contain
"Safari/", Android UAs contain "Linux" and iOS UAs contain "Mac OS X".
"""

import pytest

from sitestats.core.user_agent import parse_user_agent

UAS = {
    "chrome_windows": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    "edge_windows": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36 Edg/122.0.2365.66"
    ),
    "firefox_linux": "Mozilla/5.0 (X11; Linux x86_64; rv:123.0) Gecko/20100101 Firefox/123.0",
    "safari_iphone": (
        "Mozilla/5.0 (iPhone; CPU iPhone OS 17_3 like Mac OS X) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/17.3 Mobile/15E148 Safari/604.1"
    ),
    "chrome_android": (
        "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/122.0.0.0 Mobile Safari/537.36"
    ),
    "safari_ipad": (
        "Mozilla/5.0 (iPad; CPU OS 17_3 like Mac OS X) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/17.3 Safari/604.1"
    ),
}


@pytest.mark.parametrize(
    "name, browser, browser_version, os_name, device",
    [
        ("chrome_windows", "Chrome", "122", "Windows", "desktop"),
        ("edge_windows", "Edge", "122", "Windows", "desktop"),
        ("firefox_linux", "Firefox", "123", "Linux", "desktop"),
        ("safari_iphone", "Safari", "17", "iOS", "mobile"),
        ("chrome_android", "Chrome", "122", "Android", "mobile"),
        ("safari_ipad", "Safari", "17", "iOS", "tablet"),
    ],
)
def test_known_user_agents(name, browser, browser_version, os_name, device):
    parsed = parse_user_agent(UAS[name])
    assert parsed["browser"] == browser
    assert parsed["browser_version"] == browser_version
    assert parsed["os"] == os_name
    assert parsed["device"] == device


def test_windows_version():
    assert parse_user_agent(UAS["chrome_windows"])["os_version"] == "10.0"


def test_unrecognized():
    parsed = parse_user_agent("curl/8.4.0")
    assert parsed["browser"] == "unknown"
    assert parsed["os"] == "unknown"
    assert parsed["browser_version"] is None
    assert parsed["device"] == "desktop"
