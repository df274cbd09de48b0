# ==============================================================================
# Site Analytics Domain Models
# ==============================================================================
"""
Pydantic models for tracking events, visitors, sessions and page views.

These models are used for:
- Validating and coercing raw tracking payloads at the ingestion boundary
- Representing stored rows returned by the analytics store
- Serializing query results as camelCase JSON

This module is part of the core domain layer and has no external dependencies
beyond Pydantic.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from sitestats.core.errors import InvalidEventError
from sitestats.core.user_agent import parse_user_agent

# Length caps applied to free-text payload fields
MAX_TEXT_LENGTH = 255
MAX_URL_LENGTH = 2048

# Largest value a PostgreSQL INTEGER column holds
MAX_INT_VALUE = 2**31 - 1


class EventType(str, Enum):
    """Event types sent by the browser tracker."""

    PAGEVIEW = "pageview"
    PAGELEAVE = "pageleave"
    SESSION_END = "session_end"


def _clean_text(value: Any, max_length: Optional[int] = MAX_TEXT_LENGTH) -> Optional[str]:
    """Trim a text field and drop NUL bytes; blanks and non-text values become None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.replace("\x00", "").strip()
    if not value:
        return None
    return value[:max_length] if max_length else value


def _lenient_int(value: Any) -> Optional[int]:
    """Coerce numbers and numeric strings to int; anything else becomes None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(round(number))


# ==============================================================================
# Event Payload Parts
# ==============================================================================


class DeviceInfo(BaseModel):
    """Device, locale and geography attributes reported with an event."""

    ip: Optional[str] = None
    browser: Optional[str] = None
    browser_version: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None
    device: Optional[str] = None
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    language: Optional[str] = None
    timezone: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None

    def non_empty(self) -> dict:
        """Attributes that carry a value, for merging into a stored visitor."""
        return {key: value for key, value in self.model_dump().items() if value not in (None, "")}


class Campaign(BaseModel):
    """UTM campaign attribution captured when a session opens."""

    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None


# ==============================================================================
# Normalized Events (discriminated union on `kind`)
# ==============================================================================


class _EventBase(BaseModel):
    visitor_token: str
    client_session_id: Optional[str] = None
    device: DeviceInfo = Field(default_factory=DeviceInfo)


class PageViewEvent(_EventBase):
    """A page was opened. The only event that may open a session."""

    kind: Literal[EventType.PAGEVIEW] = EventType.PAGEVIEW
    path: str
    title: Optional[str] = None
    article_id: Optional[str] = None
    referrer: Optional[str] = None
    campaign: Campaign = Field(default_factory=Campaign)


class PageLeaveEvent(_EventBase):
    """A page was left; closes the matching open page view."""

    kind: Literal[EventType.PAGELEAVE] = EventType.PAGELEAVE
    path: str
    duration: Optional[int] = None
    scroll_depth: Optional[int] = None


class SessionEndEvent(_EventBase):
    """The browser reported the end of the browsing session."""

    kind: Literal[EventType.SESSION_END] = EventType.SESSION_END


TrackingEvent = Annotated[
    Union[PageViewEvent, PageLeaveEvent, SessionEndEvent],
    Field(discriminator="kind"),
]


# ==============================================================================
# Raw Inbound Payload
# ==============================================================================


class TrackingPayload(BaseModel):
    """
    Raw tracking payload as sent by the browser (camelCase JSON).

    Every field is optional and coerced leniently: a beacon with a garbled
    optional field is still recorded, with that field dropped. Only the
    visitor token and the event type are needed to produce an event.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    visitor_token: Optional[str] = Field(None, alias="visitorId")
    client_session_id: Optional[str] = Field(None, alias="sessionId")
    event_type: Optional[str] = Field(None, alias="eventType")

    path: Optional[str] = None
    title: Optional[str] = None
    article_id: Optional[str] = Field(None, alias="articleId")
    referrer: Optional[str] = Field(None, alias="referer")
    utm_source: Optional[str] = Field(None, alias="utmSource")
    utm_medium: Optional[str] = Field(None, alias="utmMedium")
    utm_campaign: Optional[str] = Field(None, alias="utmCampaign")

    ip: Optional[str] = None
    user_agent: Optional[str] = Field(None, alias="userAgent")
    browser: Optional[str] = None
    browser_version: Optional[str] = Field(None, alias="browserVer")
    os: Optional[str] = None
    os_version: Optional[str] = Field(None, alias="osVer")
    device: Optional[str] = None
    screen_width: Optional[int] = Field(None, alias="screenWidth")
    screen_height: Optional[int] = Field(None, alias="screenHeight")
    language: Optional[str] = None
    timezone: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None

    duration: Optional[int] = None
    scroll_depth: Optional[int] = Field(None, alias="scrollDepth")

    @field_validator("path", "referrer", "user_agent", mode="before")
    @classmethod
    def _clean_url(cls, value: Any) -> Optional[str]:
        return _clean_text(value, MAX_URL_LENGTH)

    @field_validator("visitor_token", mode="before")
    @classmethod
    def _clean_token(cls, value: Any) -> Optional[str]:
        # Never truncated: two long tokens sharing a prefix are different visitors
        return _clean_text(value, max_length=None)

    @field_validator(
        "client_session_id",
        "title",
        "article_id",
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "ip",
        "browser",
        "browser_version",
        "os",
        "os_version",
        "device",
        "language",
        "timezone",
        "country",
        "region",
        "city",
        mode="before",
    )
    @classmethod
    def _clean_short_text(cls, value: Any) -> Optional[str]:
        return _clean_text(value)

    @field_validator("event_type", mode="before")
    @classmethod
    def _normalize_event_type(cls, value: Any) -> Optional[str]:
        text = _clean_text(value)
        return text.lower() if text else None

    @field_validator("screen_width", "screen_height", mode="before")
    @classmethod
    def _positive_dimension(cls, value: Any) -> Optional[int]:
        number = _lenient_int(value)
        return number if number and 0 < number <= MAX_INT_VALUE else None

    @field_validator("duration", mode="before")
    @classmethod
    def _non_negative_duration(cls, value: Any) -> Optional[int]:
        number = _lenient_int(value)
        return number if number is not None and 0 <= number <= MAX_INT_VALUE else None

    @field_validator("scroll_depth", mode="before")
    @classmethod
    def _clamp_scroll_depth(cls, value: Any) -> Optional[int]:
        number = _lenient_int(value)
        if number is None:
            return None
        return max(0, min(100, number))

    def device_info(self) -> DeviceInfo:
        """Device attributes, filling gaps from the raw user agent if present."""
        info = DeviceInfo(
            ip=self.ip,
            browser=self.browser,
            browser_version=self.browser_version,
            os=self.os,
            os_version=self.os_version,
            device=self.device,
            screen_width=self.screen_width,
            screen_height=self.screen_height,
            language=self.language,
            timezone=self.timezone,
            country=self.country,
            region=self.region,
            city=self.city,
        )
        if self.user_agent and not (info.browser and info.os and info.device):
            parsed = parse_user_agent(self.user_agent)
            for key, value in parsed.items():
                if value and not getattr(info, key):
                    setattr(info, key, value)
        return info

    def to_event(self) -> Union[PageViewEvent, PageLeaveEvent, SessionEndEvent]:
        """
        Convert the payload into a strict internal event.

        Raises:
            InvalidEventError: If the visitor token is missing or the event
                type is not one of pageview, pageleave, session_end.
        """
        if not self.visitor_token:
            raise InvalidEventError("Tracking event has no visitorId")
        if len(self.visitor_token) > MAX_TEXT_LENGTH:
            raise InvalidEventError(f"visitorId longer than {MAX_TEXT_LENGTH} characters")
        try:
            kind = EventType(self.event_type)
        except ValueError as e:
            raise InvalidEventError(f"Unknown eventType: {self.event_type!r}") from e

        common = {
            "visitor_token": self.visitor_token,
            "client_session_id": self.client_session_id,
            "device": self.device_info(),
        }
        path = self.path or "/"

        if kind is EventType.PAGEVIEW:
            return PageViewEvent(
                **common,
                path=path,
                title=self.title,
                article_id=self.article_id,
                referrer=self.referrer,
                campaign=Campaign(
                    source=self.utm_source,
                    medium=self.utm_medium,
                    campaign=self.utm_campaign,
                ),
            )
        if kind is EventType.PAGELEAVE:
            return PageLeaveEvent(
                **common,
                path=path,
                duration=self.duration,
                scroll_depth=self.scroll_depth,
            )
        return SessionEndEvent(**common)


def parse_event(payload: dict) -> Union[PageViewEvent, PageLeaveEvent, SessionEndEvent]:
    """Validate a raw JSON payload and convert it into a tracking event."""
    if not isinstance(payload, dict):
        raise InvalidEventError(f"Tracking payload must be an object, got {type(payload).__name__}")
    return TrackingPayload.model_validate(payload).to_event()


# ==============================================================================
# Stored Records
# ==============================================================================


class RecordModel(BaseModel):
    """Base for stored rows; serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        """JSON-safe dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class Visitor(RecordModel):
    """
    Durable visitor identity keyed by a client-generated token.

    Attributes:
        id: Store-assigned surrogate key
        token: Opaque token from the browser's local storage
        first_seen: When the token was first seen
        last_seen: Most recent event from this token
        visit_count: Number of sessions opened by this visitor
        session_count: Stored session rows (only populated by listings)
    """

    id: int
    token: str = Field(..., alias="visitorId")
    ip: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    browser: Optional[str] = None
    browser_version: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None
    device: Optional[str] = None
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    language: Optional[str] = None
    timezone: Optional[str] = None
    first_seen: datetime
    last_seen: datetime
    visit_count: int = 0
    session_count: Optional[int] = None


class PageView(RecordModel):
    """One path visit within a session."""

    id: int
    session_id: int
    path: str
    title: Optional[str] = None
    article_id: Optional[str] = None
    enter_time: datetime
    leave_time: Optional[datetime] = None
    duration: Optional[int] = None
    scroll_depth: Optional[int] = None
    # Owning visitor, filled in by range reads that join through the session
    visitor_id: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.leave_time is None


class VisitorSession(RecordModel):
    """
    A bounded browsing episode for one visitor.

    A session is open while end_time is None. Duration is only set when
    the session is closed.
    """

    id: int
    visitor_id: int
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    referrer: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    # Populated by range reads used for bounce rate
    page_view_count: Optional[int] = None
    # Populated by the visitor detail view
    page_views: Optional[list[PageView]] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None


class TrackResult(RecordModel):
    """Response to a tracking call: `{visitorId, sessionId}`."""

    visitor_id: str
    session_id: Optional[int] = None
    new_session: bool = Field(default=False, exclude=True)
