# ==============================================================================
# Aggregation Engine
# ==============================================================================
"""
Read-only reporting over the visitor / session / page view model.

Every query takes an optional [start, end] range (default: the last
`default_range_days` days ending now) and folds the rows the store returns
into summaries, time buckets, rankings and breakdowns.

Reads take no locks. Sessions being ingested concurrently may be seen
half-written (a session without its first page view yet); that is
acceptable for dashboard figures.

Store failures propagate as StoreUnavailableError. There is no partial
result or retry: "no data available" must never be shown as zero.

The pure helpers at the top of the module (bounce_rate, truncate, ...) hold
the arithmetic and are unit-tested directly.
"""

import logging
import math
from collections import Counter, defaultdict
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sitestats.base.store import AnalyticsStore
from sitestats.core.clock import Clock, ensure_utc, utc_now
from sitestats.core.models import PageView, VisitorSession
from sitestats.core.reports import (
    AttributeShare,
    Granularity,
    RealtimeVisitor,
    Summary,
    TimeSeriesPoint,
    TopPage,
    TopReferrer,
    VisitorDetail,
    VisitorPage,
)

logger = logging.getLogger(__name__)

# Visitor attributes that can be broken down by the attribute reports
BREAKDOWN_ATTRIBUTES = ("device", "browser", "os", "country")

MAX_PAGE_SIZE = 100


# ==============================================================================
# Pure Helpers
# ==============================================================================


def round_half_up(value: float) -> int:
    """Round to the nearest whole number, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def mean_duration(durations: Iterable[Optional[int]]) -> int:
    """Mean of the non-null durations in whole seconds, 0 if there are none."""
    values = [d for d in durations if d is not None]
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def bounce_rate(page_view_counts: Iterable[int]) -> float:
    """
    Percentage of sessions with at most one page view, to 2 decimals.

    Args:
        page_view_counts: Page view count of each session in the range

    Returns:
        Value in [0, 100]; 0 when there are no sessions
    """
    counts = list(page_view_counts)
    if not counts:
        return 0.0
    bounced = sum(1 for count in counts if count <= 1)
    return round(bounced / len(counts) * 100, 2)


def percentage(count: int, total: int) -> float:
    """count / total as a percentage to 2 decimals, 0 when total is 0."""
    if total <= 0:
        return 0.0
    return round(count / total * 100, 2)


def truncate(timestamp: datetime, granularity: Granularity, tz: ZoneInfo) -> datetime:
    """Truncate a timestamp to the start of its bucket in the report timezone."""
    local = ensure_utc(timestamp).astimezone(tz)
    if granularity is Granularity.HOUR:
        return local.replace(minute=0, second=0, microsecond=0)
    day = local.replace(hour=0, minute=0, second=0, microsecond=0)
    if granularity is Granularity.DAY:
        return day
    if granularity is Granularity.WEEK:
        return day - timedelta(days=day.weekday())
    if granularity is Granularity.MONTH:
        return day.replace(day=1)
    raise ValueError(f"Unknown granularity: {granularity}")


def bucket_label(bucket_start: datetime, granularity: Granularity) -> str:
    """Label of a bucket: hour 'YYYY-MM-DD HH:00', month 'YYYY-MM', else the date."""
    if granularity is Granularity.HOUR:
        return bucket_start.strftime("%Y-%m-%d %H:00")
    if granularity is Granularity.MONTH:
        return bucket_start.strftime("%Y-%m")
    return bucket_start.strftime("%Y-%m-%d")


# ==============================================================================
# Engine
# ==============================================================================


class AggregationEngine:
    """Dashboard queries over the analytics store."""

    def __init__(
        self,
        store: AnalyticsStore,
        clock: Optional[Clock] = None,
        report_timezone: str = "UTC",
        default_range_days: int = 30,
        realtime_limit: int = 50,
        recent_sessions_limit: int = 20,
    ):
        """
        Initialize the engine.

        Args:
            store: Analytics store
            clock: Time source, defaults to UTC wall clock
            report_timezone: IANA timezone for 'today' and bucket boundaries
            default_range_days: Range length when no start date is given
            realtime_limit: Maximum visitors in the realtime view
            recent_sessions_limit: Sessions included in a visitor detail view
        """
        self._store = store
        self._clock = clock or utc_now
        self._tz = ZoneInfo(report_timezone)
        self._default_range = timedelta(days=default_range_days)
        self._realtime_limit = realtime_limit
        self._recent_sessions_limit = recent_sessions_limit

    # ==========================================================================
    # Ranges
    # ==========================================================================

    def resolve_range(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> tuple[datetime, datetime]:
        """
        Fill in a missing range bound.

        end defaults to now, start to `default_range_days` before end.

        Raises:
            ValueError: If start is after end
        """
        end = ensure_utc(end) if end else self._clock()
        start = ensure_utc(start) if start else end - self._default_range
        if start > end:
            raise ValueError(f"Start date {start.isoformat()} is after end date {end.isoformat()}")
        return start, end

    def today_start(self, now: datetime) -> datetime:
        """Midnight of `now`'s date in the report timezone, as UTC."""
        return truncate(now, Granularity.DAY, self._tz).astimezone(now.tzinfo)

    # ==========================================================================
    # Summary
    # ==========================================================================

    def summary(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Summary:
        """
        Headline figures for a range and for today.

        Visitors are the distinct visitors among sessions starting in range.
        Bounce rate counts sessions with at most one page view.
        """
        start, end = self.resolve_range(start, end)
        sessions = self._store.find_sessions(start, end)
        page_views = self._store.find_page_views(start, end)

        now = self._clock()
        today = self.today_start(now)
        today_sessions = self._store.find_sessions(today, now)
        today_page_views = self._store.find_page_views(today, now)

        return Summary(
            start_date=start,
            end_date=end,
            total_visitors=len({s.visitor_id for s in sessions}),
            total_sessions=len(sessions),
            total_page_views=len(page_views),
            avg_session_duration=mean_duration(s.duration for s in sessions),
            avg_page_duration=mean_duration(pv.duration for pv in page_views),
            bounce_rate=bounce_rate(s.page_view_count or 0 for s in sessions),
            today_visitors=len({s.visitor_id for s in today_sessions}),
            today_sessions=len(today_sessions),
            today_page_views=len(today_page_views),
        )

    # ==========================================================================
    # Time Series
    # ==========================================================================

    def time_series(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        granularity: Granularity | str = Granularity.DAY,
    ) -> list[TimeSeriesPoint]:
        """
        Visitors, sessions and page views per time bucket, oldest first.

        Page views are bucketed by enter time and sessions by start time.
        Visitors per bucket is the union of visitor identities seen in that
        bucket's page views. Buckets with no rows are omitted.
        """
        granularity = Granularity(granularity)
        start, end = self.resolve_range(start, end)
        sessions = self._store.find_sessions(start, end)
        page_views = self._store.find_page_views(start, end)

        visitors: dict[datetime, set[int]] = defaultdict(set)
        page_view_counts: Counter[datetime] = Counter()
        session_counts: Counter[datetime] = Counter()

        for pv in page_views:
            bucket = truncate(pv.enter_time, granularity, self._tz)
            page_view_counts[bucket] += 1
            if pv.visitor_id is not None:
                visitors[bucket].add(pv.visitor_id)

        for session in sessions:
            session_counts[truncate(session.start_time, granularity, self._tz)] += 1

        buckets = sorted(set(page_view_counts) | set(session_counts))
        return [
            TimeSeriesPoint(
                date=bucket_label(bucket, granularity),
                visitors=len(visitors.get(bucket, ())),
                sessions=session_counts[bucket],
                page_views=page_view_counts[bucket],
            )
            for bucket in buckets
        ]

    # ==========================================================================
    # Rankings
    # ==========================================================================

    def top_pages(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 10,
    ) -> list[TopPage]:
        """Most viewed paths with their average time on page."""
        start, end = self.resolve_range(start, end)
        by_path: dict[str, list[PageView]] = defaultdict(list)
        for pv in self._store.find_page_views(start, end):
            by_path[pv.path].append(pv)

        ranked = sorted(by_path.items(), key=lambda item: (-len(item[1]), item[0]))
        return [
            TopPage(
                path=path,
                views=len(views),
                avg_duration=mean_duration(pv.duration for pv in views),
            )
            for path, views in ranked[: max(0, limit)]
        ]

    def top_referrers(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 10,
    ) -> list[TopReferrer]:
        """Referrers of sessions starting in range; sessions without one are skipped."""
        start, end = self.resolve_range(start, end)
        counts = Counter(s.referrer for s in self._store.find_sessions(start, end) if s.referrer)
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [
            TopReferrer(referrer=referrer, count=count)
            for referrer, count in ranked[: max(0, limit)]
        ]

    # ==========================================================================
    # Attribute Breakdowns
    # ==========================================================================

    def attribute_stats(
        self,
        attribute: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[AttributeShare]:
        """
        Break active visitors down by a visitor attribute.

        Active visitors are those with at least one session starting in range.
        Percentages are relative to all active visitors, so a truncated list
        can sum to less than 100.
        """
        if attribute not in BREAKDOWN_ATTRIBUTES:
            raise ValueError(f"Unsupported attribute: {attribute}")

        start, end = self.resolve_range(start, end)
        active_ids = sorted({s.visitor_id for s in self._store.find_sessions(start, end)})
        if not active_ids:
            return []

        visitors = self._store.get_visitors(active_ids)
        total = len(visitors)
        counts = Counter(getattr(v, attribute) or "unknown" for v in visitors)
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        if limit is not None:
            ranked = ranked[: max(0, limit)]
        return [
            AttributeShare(name=name, count=count, percentage=percentage(count, total))
            for name, count in ranked
        ]

    def device_stats(self, start=None, end=None, limit: Optional[int] = None) -> list[AttributeShare]:
        return self.attribute_stats("device", start, end, limit)

    def browser_stats(self, start=None, end=None, limit: Optional[int] = 10) -> list[AttributeShare]:
        return self.attribute_stats("browser", start, end, limit)

    def os_stats(self, start=None, end=None, limit: Optional[int] = 10) -> list[AttributeShare]:
        return self.attribute_stats("os", start, end, limit)

    def country_stats(self, start=None, end=None, limit: Optional[int] = 10) -> list[AttributeShare]:
        return self.attribute_stats("country", start, end, limit)

    # ==========================================================================
    # Realtime
    # ==========================================================================

    def realtime_visitors(self, minutes: int = 5) -> list[RealtimeVisitor]:
        """
        Visitors with a page view in the last `minutes`, newest first.

        One row per visitor: their most recent page wins.
        """
        minutes = max(1, minutes)
        now = self._clock()
        recent = self._store.recent_page_views(now - timedelta(minutes=minutes))

        latest: dict[int, PageView] = {}
        for pv in recent:
            if pv.visitor_id is None or pv.visitor_id in latest:
                continue
            latest[pv.visitor_id] = pv
            if len(latest) >= self._realtime_limit:
                break

        visitors = {v.id: v for v in self._store.get_visitors(list(latest))}
        rows = []
        for visitor_id, pv in latest.items():
            visitor = visitors.get(visitor_id)
            if visitor is None:
                continue
            rows.append(
                RealtimeVisitor(
                    visitor_id=visitor.token,
                    path=pv.path,
                    title=pv.title,
                    enter_time=pv.enter_time,
                    country=visitor.country,
                    city=visitor.city,
                    browser=visitor.browser,
                    os=visitor.os,
                    device=visitor.device,
                )
            )
        rows.sort(key=lambda row: row.enter_time, reverse=True)
        return rows

    # ==========================================================================
    # Visitors
    # ==========================================================================

    def list_visitors(
        self,
        page: int = 1,
        page_size: int = 20,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> VisitorPage:
        """
        Visitors ordered by last seen, newest first.

        start/end, when given, filter on first-seen time.
        """
        page = max(1, page)
        page_size = max(1, min(MAX_PAGE_SIZE, page_size))
        items, total = self._store.list_visitors(
            offset=(page - 1) * page_size,
            limit=page_size,
            first_seen_start=ensure_utc(start) if start else None,
            first_seen_end=ensure_utc(end) if end else None,
        )
        return VisitorPage(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size),
        )

    def visitor_detail(self, token: str) -> Optional[VisitorDetail]:
        """A visitor with its recent sessions (newest first) and their page views (oldest first)."""
        visitor = self._store.get_visitor(token)
        if visitor is None:
            return None

        sessions = self._store.recent_sessions(visitor.id, self._recent_sessions_limit)
        by_session: dict[int, list[PageView]] = defaultdict(list)
        for pv in self._store.page_views_for_sessions([s.id for s in sessions]):
            by_session[pv.session_id].append(pv)

        detailed: list[VisitorSession] = [
            s.model_copy(update={"page_views": by_session.get(s.id, [])}) for s in sessions
        ]
        return VisitorDetail(visitor=visitor, sessions=detailed)
