# ==============================================================================
# Report Models
# ==============================================================================
"""
Result models returned by the aggregation engine.

All models serialize with camelCase keys (`to_json()`), matching what the
admin dashboard consumes.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sitestats.core.models import RecordModel, Visitor, VisitorSession


class Granularity(str, Enum):
    """Time series bucket sizes."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class Summary(RecordModel):
    """Headline figures for a date range plus today's figures."""

    start_date: datetime
    end_date: datetime
    total_visitors: int
    total_sessions: int
    total_page_views: int
    avg_session_duration: int
    avg_page_duration: int
    bounce_rate: float
    today_visitors: int
    today_sessions: int
    today_page_views: int


class TimeSeriesPoint(RecordModel):
    """One time bucket."""

    date: str
    visitors: int
    sessions: int
    page_views: int


class TopPage(RecordModel):
    path: str
    views: int
    avg_duration: int


class TopReferrer(RecordModel):
    referrer: str
    count: int


class AttributeShare(RecordModel):
    """Share of active visitors having one attribute value (device, browser...)."""

    name: str
    count: int
    percentage: float


class RealtimeVisitor(RecordModel):
    """A visitor seen in the realtime window, with their latest page."""

    visitor_id: str
    path: str
    title: Optional[str] = None
    enter_time: datetime
    country: Optional[str] = None
    city: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    device: Optional[str] = None


class VisitorPage(RecordModel):
    """One page of the visitor listing."""

    items: list[Visitor]
    total: int
    page: int
    page_size: int
    total_pages: int


class VisitorDetail(RecordModel):
    """A visitor with its most recent sessions and their page views."""

    visitor: Visitor
    sessions: list[VisitorSession]
