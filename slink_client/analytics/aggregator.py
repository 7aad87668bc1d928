"""
Analytics aggregation for Slink Client.

Responsibilities:
    - Group a link's click events by device, OS and browser
    - Bucket clicks by calendar day (last N populated days)
    - Rank categories (top N, stable on ties)
    - Derive scalar counters and the click rate
    - Keep the most recent clicks for a click log

Everything here is pure: same events in, same report out. Nothing is cached
between calls; the report is never a source of truth.

Complexity:
    O(n) grouping over the events, O(k log k) ranking over k categories.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from ..models import AnalyticsReport, CategoryCount, ClickEvent, DailyClicks, LinkStats

UNKNOWN = "Unknown"
TOP_N = 5
DAILY_BUCKETS = 7
RECENT_CLICKS = 10


def frequency_table(events: Iterable[ClickEvent], field: str) -> Dict[str, int]:
    """
    Count events per value of `field`, in first-encounter order.

    Missing or empty values are counted under "Unknown".
    """
    counts: Dict[str, int] = {}
    for event in events:
        key = getattr(event, field) or UNKNOWN
        counts[key] = counts.get(key, 0) + 1
    return counts


def top_n(counts: Dict[str, int], n: int = TOP_N) -> List[CategoryCount]:
    """Highest counts first; ties keep first-encounter order (sorted() is stable)."""
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [CategoryCount(name=name, count=count) for name, count in ranked[:n]]


def daily_clicks(events: Iterable[ClickEvent], buckets: int = DAILY_BUCKETS) -> List[DailyClicks]:
    """
    Clicks per calendar day, oldest first, limited to the last `buckets`
    days that actually have clicks. Timestamps are truncated to their date
    as provided, without timezone conversion.
    """
    per_day: Dict = {}
    for event in events:
        day = event.clicked_at.date()
        per_day[day] = per_day.get(day, 0) + 1
    ordered = sorted(per_day.items())
    if buckets > 0:
        ordered = ordered[-buckets:]
    return [DailyClicks(day=day, clicks=count) for day, count in ordered]


def click_rate(total_clicks: int, unique_clicks: int) -> float:
    if unique_clicks == 0:
        return 0.0
    return total_clicks / unique_clicks


def recent_clicks(events: Iterable[ClickEvent], n: int = RECENT_CLICKS) -> List[ClickEvent]:
    """Newest first; events with equal timestamps keep their input order."""
    return sorted(events, key=lambda event: event.clicked_at, reverse=True)[:n]


def aggregate(
    events: Sequence[ClickEvent],
    stats: Optional[LinkStats] = None,
    link_id: Optional[int] = None,
    top: int = TOP_N,
    days: int = DAILY_BUCKETS,
    recent: int = RECENT_CLICKS,
) -> AnalyticsReport:
    """
    Build a display-ready report from one link's click history.

    Args:
        events (Sequence[ClickEvent]): The link's click events (may be empty).
        stats (Optional[LinkStats]): Server counters; when given they win over
            values derived from `events`.
        link_id (Optional[int]): Link the events belong to.
        top (int): Size of each ranking.
        days (int): Number of populated daily buckets to keep.
        recent (int): Number of newest events to keep in `recent_clicks`.

    Returns:
        AnalyticsReport: Empty tables and zero counters for an empty input.
    """
    events = list(events)
    if stats is not None:
        total = stats.total_clicks
        unique = stats.unique_clicks
        last_clicked = stats.last_clicked
        link_id = stats.url_id if link_id is None else link_id
    else:
        total = len(events)
        unique = len({event.ip_address for event in events})
        last_clicked = None
    if last_clicked is None and events:
        last_clicked = max(event.clicked_at for event in events)
    if link_id is None and events:
        link_id = events[0].url_id

    devices = frequency_table(events, "device")
    systems = frequency_table(events, "os")
    browsers = frequency_table(events, "browser")

    return AnalyticsReport(
        link_id=link_id,
        total_clicks=total,
        unique_clicks=unique,
        last_clicked_at=last_clicked,
        click_rate=click_rate(total, unique),
        devices=devices,
        os=systems,
        browsers=browsers,
        top_devices=top_n(devices, top),
        top_os=top_n(systems, top),
        top_browsers=top_n(browsers, top),
        daily_clicks=daily_clicks(events, days),
        recent_clicks=recent_clicks(events, recent),
    )
