# ==============================================================================
# Analytics Commands
# ==============================================================================
"""
Analytics commands for the sitestats CLI.

Each command runs one AggregationEngine query and prints it as a boxed table,
or as camelCase JSON with --json. When the store is unreachable the command
says so and exits 1; it never prints zeros in place of missing data.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Annotated, Any, Optional

import typer

from sitestats.cli.shared import (
    BOX_WIDTH,
    C,
    _rule,
    _truncate,
    fail,
    open_store,
    parse_datetime,
    print_box,
    print_json,
)
from sitestats.core.aggregation import AggregationEngine
from sitestats.core.reports import AttributeShare, Granularity
from sitestats.utils.config import get_settings

# ==============================================================================
# Common Options
# ==============================================================================

StartOption = Annotated[
    Optional[str],
    typer.Option("--start", "-s", help="Range start (ISO-8601, default: 30 days before end)"),
]
EndOption = Annotated[
    Optional[str], typer.Option("--end", "-e", help="Range end (ISO-8601, default: now)")
]
LimitOption = Annotated[
    Optional[int], typer.Option("--limit", "-n", min=1, help="Maximum rows to show")
]
JsonOption = Annotated[bool, typer.Option("--json", "-j", help="Output as JSON for scripting")]


def _query(json_output: bool, query: Callable[[AggregationEngine], Any]) -> Any:
    """Run one engine query against the configured store."""
    from sitestats.factory import build_engine

    with open_store(json_output) as store:
        engine = build_engine(store)
        try:
            return query(engine)
        except ValueError as e:
            fail(str(e), json_output)


def _range(start: Optional[str], end: Optional[str]) -> tuple[Optional[datetime], Optional[datetime]]:
    return parse_datetime(start), parse_datetime(end)


def _fmt_duration(seconds: int) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs:02d}s" if minutes else f"{secs}s"


def _fmt_time(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M")


def _no_rows() -> list[str]:
    return [f"  {C.DIM}No data in range{C.RESET}"]


# ==============================================================================
# Commands
# ==============================================================================


def analytics_summary(
    start: StartOption = None, end: EndOption = None, json_output: JsonOption = False
) -> None:
    """Show headline figures for a date range and for today.

    Examples:
        sitestats analytics summary
        sitestats analytics summary --start 2026-01-01 --end 2026-01-31 --json
    """
    range_start, range_end = _range(start, end)
    summary = _query(json_output, lambda engine: engine.summary(range_start, range_end))

    if json_output:
        print_json(summary.to_json())
        return

    rows = [
        ("Visitors", f"{summary.total_visitors:,}", f"{summary.today_visitors:,}"),
        ("Sessions", f"{summary.total_sessions:,}", f"{summary.today_sessions:,}"),
        ("Page Views", f"{summary.total_page_views:,}", f"{summary.today_page_views:,}"),
    ]
    lines = [
        f"  {_fmt_time(summary.start_date)} {C.DIM}→{C.RESET} {_fmt_time(summary.end_date)}",
        "",
        f"  {'':28}{'Range':>14}  {'Today':>14}",
        _rule(),
    ]
    lines += [f"  {label:<28}{total:>14}  {today:>14}" for label, total, today in rows]
    lines += [
        "",
        f"  {'Avg Session Duration':<28}{_fmt_duration(summary.avg_session_duration):>14}",
        f"  {'Avg Time on Page':<28}{_fmt_duration(summary.avg_page_duration):>14}",
        f"  {'Bounce Rate':<28}{summary.bounce_rate:>13.2f}%",
    ]
    print_box("SITE SUMMARY", lines)


def analytics_timeseries(
    start: StartOption = None,
    end: EndOption = None,
    granularity: Annotated[
        Granularity, typer.Option("--granularity", "-g", help="Bucket size")
    ] = Granularity.DAY,
    json_output: JsonOption = False,
) -> None:
    """Show visitors, sessions and page views per time bucket.

    Examples:
        sitestats analytics timeseries --granularity hour --start 2026-03-01
    """
    range_start, range_end = _range(start, end)
    points = _query(
        json_output, lambda engine: engine.time_series(range_start, range_end, granularity)
    )

    if json_output:
        print_json([p.to_json() for p in points])
        return

    lines = [
        f"  {'Bucket':<22}{'Visitors':>12}{'Sessions':>12}{'Page Views':>14}",
        _rule(),
    ]
    lines += [
        f"  {p.date:<22}{p.visitors:>12,}{p.sessions:>12,}{p.page_views:>14,}" for p in points
    ] or _no_rows()
    print_box(f"TRAFFIC BY {granularity.value.upper()}", lines)


def analytics_top_pages(
    start: StartOption = None,
    end: EndOption = None,
    limit: LimitOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show the most viewed pages with their average time on page."""
    range_start, range_end = _range(start, end)
    limit = limit or get_settings().tracking.top_limit
    pages = _query(json_output, lambda engine: engine.top_pages(range_start, range_end, limit))

    if json_output:
        print_json([p.to_json() for p in pages])
        return

    lines = [f"  {'Path':<40}{'Views':>10}{'Avg Time':>12}", _rule()]
    lines += [
        f"  {_truncate(p.path, 38):<40}{p.views:>10,}{_fmt_duration(p.avg_duration):>12}"
        for p in pages
    ] or _no_rows()
    print_box("TOP PAGES", lines)


def analytics_top_referrers(
    start: StartOption = None,
    end: EndOption = None,
    limit: LimitOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show the referrers that started the most sessions."""
    range_start, range_end = _range(start, end)
    limit = limit or get_settings().tracking.top_limit
    referrers = _query(
        json_output, lambda engine: engine.top_referrers(range_start, range_end, limit)
    )

    if json_output:
        print_json([r.to_json() for r in referrers])
        return

    lines = [f"  {'Referrer':<50}{'Sessions':>12}", _rule()]
    lines += [f"  {_truncate(r.referrer, 48):<50}{r.count:>12,}" for r in referrers] or _no_rows()
    print_box("TOP REFERRERS", lines)


def _attribute_command(
    title: str,
    method: str,
    start: Optional[str],
    end: Optional[str],
    limit: Optional[int],
    json_output: bool,
) -> None:
    range_start, range_end = _range(start, end)
    shares: list[AttributeShare] = _query(
        json_output,
        lambda engine: getattr(engine, method)(range_start, range_end, limit),
    )

    if json_output:
        print_json([s.to_json() for s in shares])
        return

    lines = [f"  {'Name':<36}{'Visitors':>12}{'Share':>12}", _rule()]
    lines += [
        f"  {_truncate(s.name, 34):<36}{s.count:>12,}{s.percentage:>11.2f}%" for s in shares
    ] or _no_rows()
    print_box(title, lines)


def analytics_devices(
    start: StartOption = None,
    end: EndOption = None,
    limit: LimitOption = None,
    json_output: JsonOption = False,
) -> None:
    """Break active visitors down by device type."""
    _attribute_command("DEVICES", "device_stats", start, end, limit, json_output)


def analytics_browsers(
    start: StartOption = None,
    end: EndOption = None,
    limit: LimitOption = None,
    json_output: JsonOption = False,
) -> None:
    """Break active visitors down by browser."""
    limit = limit or get_settings().tracking.top_limit
    _attribute_command("BROWSERS", "browser_stats", start, end, limit, json_output)


def analytics_os(
    start: StartOption = None,
    end: EndOption = None,
    limit: LimitOption = None,
    json_output: JsonOption = False,
) -> None:
    """Break active visitors down by operating system."""
    limit = limit or get_settings().tracking.top_limit
    _attribute_command("OPERATING SYSTEMS", "os_stats", start, end, limit, json_output)


def analytics_countries(
    start: StartOption = None,
    end: EndOption = None,
    limit: LimitOption = None,
    json_output: JsonOption = False,
) -> None:
    """Break active visitors down by country."""
    limit = limit or get_settings().tracking.top_limit
    _attribute_command("COUNTRIES", "country_stats", start, end, limit, json_output)


def analytics_realtime(
    minutes: Annotated[
        Optional[int], typer.Option("--minutes", "-m", min=1, help="Presence window in minutes")
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """Show visitors active in the last few minutes and the page they are on."""
    minutes = minutes or get_settings().tracking.realtime_minutes
    visitors = _query(json_output, lambda engine: engine.realtime_visitors(minutes))

    if json_output:
        print_json([v.to_json() for v in visitors])
        return

    lines = [
        f"  {len(visitors)} visitors in the last {minutes} minutes",
        "",
        f"  {'Page':<30}{'Country':<12}{'Device':<10}{'Seen':>10}",
        _rule(),
    ]
    lines += [
        f"  {_truncate(v.path, 28):<30}{_truncate(v.country or '-', 10):<12}"
        f"{_truncate(v.device or '-', 8):<10}{v.enter_time.strftime('%H:%M:%S'):>10}"
        for v in visitors
    ]
    print_box("REALTIME", lines)


def analytics_visitors(
    page: Annotated[int, typer.Option("--page", "-p", min=1, help="Page number")] = 1,
    page_size: Annotated[
        int, typer.Option("--page-size", min=1, max=100, help="Visitors per page")
    ] = 20,
    start: Annotated[
        Optional[str], typer.Option("--start", "-s", help="First seen on or after (ISO-8601)")
    ] = None,
    end: Annotated[
        Optional[str], typer.Option("--end", "-e", help="First seen on or before (ISO-8601)")
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """List visitors, most recently seen first."""
    first_start, first_end = _range(start, end)
    result = _query(
        json_output,
        lambda engine: engine.list_visitors(page, page_size, first_start, first_end),
    )

    if json_output:
        print_json(result.to_json())
        return

    lines = [
        f"  Page {result.page} of {max(1, result.total_pages)} ({result.total:,} visitors)",
        "",
        f"  {'Visitor':<26}{'Last Seen':<18}{'Visits':>8}{'Sessions':>10}",
        _rule(),
    ]
    lines += [
        f"  {_truncate(v.token, 24):<26}{_fmt_time(v.last_seen):<18}"
        f"{v.visit_count:>8,}{(v.session_count or 0):>10,}"
        for v in result.items
    ]
    print_box("VISITORS", lines)


def analytics_visitor(
    token: Annotated[str, typer.Argument(help="Visitor token (visitorId)")],
    json_output: JsonOption = False,
) -> None:
    """Show one visitor with its recent sessions and pages."""
    detail = _query(json_output, lambda engine: engine.visitor_detail(token))
    if detail is None:
        fail(f"Visitor not found: {token}", json_output)

    if json_output:
        print_json(detail.to_json())
        return

    v = detail.visitor
    device = " / ".join(part for part in (v.device, v.browser, v.os) if part) or "-"
    place = ", ".join(part for part in (v.city, v.country) if part) or "-"
    lines = [
        f"  {'Visitor':<16}{v.token}",
        f"  {'Device':<16}{device}",
        f"  {'Location':<16}{place}",
        f"  {'First Seen':<16}{_fmt_time(v.first_seen)}",
        f"  {'Last Seen':<16}{_fmt_time(v.last_seen)}",
        f"  {'Visits':<16}{v.visit_count:,}",
    ]
    for session in detail.sessions:
        state = "open" if session.is_open else _fmt_duration(session.duration or 0)
        lines += ["", f"  {C.BOLD}{_fmt_time(session.start_time)}{C.RESET}  ({state})"]
        for pv in session.page_views or []:
            lines.append(f"    {C.DIM}•{C.RESET} {_truncate(pv.path, BOX_WIDTH - 10)}")
    print_box("VISITOR", lines)

