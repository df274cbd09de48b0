# ==============================================================================
# Tests for Tracking Payload Validation
# ==============================================================================
"""
Unit tests for parse_event() and the TrackingPayload boundary model.

Tests cover:
- Dispatch to the event type (pageview, pageleave, session_end)
- Rejection of events without a visitor or with an unknown type
- Lenient coercion of optional fields (trim, caps, clamps, drops)
- User-agent fallback for device attributes
- camelCase serialization of stored records
"""

from datetime import UTC, datetime

import pytest

from sitestats.core.errors import InvalidEventError
from sitestats.core.models import (
    MAX_INT_VALUE,
    MAX_TEXT_LENGTH,
    EventType,
    PageLeaveEvent,
    PageViewEvent,
    SessionEndEvent,
    TrackResult,
    Visitor,
    parse_event,
)

CHROME_MAC_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)


# ==============================================================================
# Dispatch
# ==============================================================================


class TestDispatch:
    """Tests for turning payloads into typed events."""

    def test_pageview(self):
        event = parse_event(
            {
                "visitorId": "v1",
                "eventType": "pageview",
                "path": "/news/1",
                "title": "Headline",
                "articleId": "a-1",
                "referer": "https://search.example/",
                "utmSource": "newsletter",
                "utmMedium": "email",
                "utmCampaign": "spring",
            }
        )
        assert isinstance(event, PageViewEvent)
        assert event.kind is EventType.PAGEVIEW
        assert event.path == "/news/1"
        assert event.article_id == "a-1"
        assert event.referrer == "https://search.example/"
        assert event.campaign.source == "newsletter"
        assert event.campaign.medium == "email"
        assert event.campaign.campaign == "spring"

    def test_pageleave(self):
        event = parse_event(
            {"visitorId": "v1", "eventType": "pageleave", "path": "/a", "duration": 42, "scrollDepth": 75}
        )
        assert isinstance(event, PageLeaveEvent)
        assert event.duration == 42
        assert event.scroll_depth == 75

    def test_session_end(self):
        event = parse_event({"visitorId": "v1", "eventType": "session_end"})
        assert isinstance(event, SessionEndEvent)

    def test_event_type_case_insensitive(self):
        event = parse_event({"visitorId": "v1", "eventType": " PageView "})
        assert isinstance(event, PageViewEvent)

    def test_missing_path_defaults_to_root(self):
        event = parse_event({"visitorId": "v1", "eventType": "pageview"})
        assert event.path == "/"

    def test_client_session_id_kept(self):
        event = parse_event({"visitorId": "v1", "sessionId": "tab-9", "eventType": "pageview"})
        assert event.client_session_id == "tab-9"


# ==============================================================================
# Rejection
# ==============================================================================


class TestRejection:
    """Only unattributable events are rejected."""

    def test_missing_visitor(self):
        with pytest.raises(InvalidEventError, match="visitorId"):
            parse_event({"eventType": "pageview", "path": "/"})

    def test_blank_visitor(self):
        with pytest.raises(InvalidEventError):
            parse_event({"visitorId": "   ", "eventType": "pageview"})

    def test_unknown_event_type(self):
        with pytest.raises(InvalidEventError, match="Unknown eventType"):
            parse_event({"visitorId": "v1", "eventType": "click"})

    def test_missing_event_type(self):
        with pytest.raises(InvalidEventError):
            parse_event({"visitorId": "v1"})

    def test_non_object_payload(self):
        with pytest.raises(InvalidEventError, match="object"):
            parse_event(["v1", "pageview"])

    def test_overlong_visitor_rejected(self):
        with pytest.raises(InvalidEventError, match="longer than"):
            parse_event({"visitorId": "v" * (MAX_TEXT_LENGTH + 1), "eventType": "pageview"})

    def test_long_tokens_with_shared_prefix_stay_distinct(self):
        prefix = "x" * (MAX_TEXT_LENGTH - 1)
        first = parse_event({"visitorId": prefix + "a", "eventType": "pageview"})
        second = parse_event({"visitorId": prefix + "b", "eventType": "pageview"})
        assert first.visitor_token != second.visitor_token


# ==============================================================================
# Lenient Coercion
# ==============================================================================


class TestCoercion:
    """Malformed optional fields are dropped, never fatal."""

    def test_strings_trimmed_and_blank_dropped(self):
        event = parse_event({"visitorId": " v1 ", "eventType": "pageview", "title": "  ", "path": " /a "})
        assert event.visitor_token == "v1"
        assert event.title is None
        assert event.path == "/a"

    def test_long_text_capped(self):
        event = parse_event({"visitorId": "v1", "eventType": "pageview", "title": "x" * 1000})
        assert len(event.title) == MAX_TEXT_LENGTH

    def test_scroll_depth_clamped(self):
        high = parse_event({"visitorId": "v1", "eventType": "pageleave", "scrollDepth": 180})
        low = parse_event({"visitorId": "v1", "eventType": "pageleave", "scrollDepth": -5})
        assert high.scroll_depth == 100
        assert low.scroll_depth == 0

    def test_negative_duration_dropped(self):
        event = parse_event({"visitorId": "v1", "eventType": "pageleave", "duration": -3})
        assert event.duration is None

    def test_numeric_strings_coerced(self):
        event = parse_event(
            {"visitorId": "v1", "eventType": "pageleave", "duration": "12.6", "scrollDepth": "40"}
        )
        assert event.duration == 13
        assert event.scroll_depth == 40

    def test_garbage_numbers_dropped(self):
        event = parse_event(
            {
                "visitorId": "v1",
                "eventType": "pageview",
                "screenWidth": "wide",
                "screenHeight": 0,
            }
        )
        assert event.device.screen_width is None
        assert event.device.screen_height is None

    def test_non_text_values_dropped(self):
        event = parse_event({"visitorId": "v1", "eventType": "pageview", "country": {"code": "DE"}})
        assert event.device.country is None

    def test_unknown_fields_ignored(self):
        event = parse_event({"visitorId": "v1", "eventType": "pageview", "foo": "bar"})
        assert isinstance(event, PageViewEvent)

    def test_nul_bytes_removed(self):
        event = parse_event(
            {"visitorId": "v\x001", "eventType": "pageview", "path": "/a\x00b", "title": "\x00"}
        )
        assert event.visitor_token == "v1"
        assert event.path == "/ab"
        assert event.title is None

    def test_out_of_range_numbers_dropped(self):
        leave = parse_event({"visitorId": "v1", "eventType": "pageleave", "duration": 3_000_000_000})
        view = parse_event(
            {"visitorId": "v1", "eventType": "pageview", "screenWidth": 1e12, "screenHeight": 900}
        )
        assert leave.duration is None
        assert view.device.screen_width is None
        assert view.device.screen_height == 900

    def test_largest_integer_kept(self):
        event = parse_event({"visitorId": "v1", "eventType": "pageleave", "duration": MAX_INT_VALUE})
        assert event.duration == MAX_INT_VALUE


# ==============================================================================
# Device Attributes
# ==============================================================================


class TestDeviceInfo:
    """Tests for device attributes and the user-agent fallback."""

    def test_reported_fields_win_over_user_agent(self):
        event = parse_event(
            {"visitorId": "v1", "eventType": "pageview", "browser": "Brave", "userAgent": CHROME_MAC_UA}
        )
        assert event.device.browser == "Brave"
        assert event.device.os == "macOS"
        assert event.device.device == "desktop"

    def test_user_agent_fills_gaps(self):
        event = parse_event({"visitorId": "v1", "eventType": "pageview", "userAgent": CHROME_MAC_UA})
        assert event.device.browser == "Chrome"
        assert event.device.browser_version == "122"
        assert event.device.os_version == "10.15"

    def test_non_empty_drops_missing(self):
        event = parse_event({"visitorId": "v1", "eventType": "pageview", "country": "DE"})
        assert event.device.non_empty() == {"country": "DE"}


# ==============================================================================
# Serialization
# ==============================================================================


class TestSerialization:
    """Stored records serialize with camelCase keys."""

    def test_track_result(self):
        result = TrackResult(visitor_id="v1", session_id=7, new_session=True)
        assert result.to_json() == {"visitorId": "v1", "sessionId": 7}

    def test_visitor_token_alias(self):
        now = datetime(2026, 1, 1, tzinfo=UTC)
        visitor = Visitor(id=1, token="v1", first_seen=now, last_seen=now, screen_width=1280)
        data = visitor.to_json()
        assert data["visitorId"] == "v1"
        assert data["screenWidth"] == 1280
        assert data["firstSeen"] == "2026-01-01T00:00:00Z"
