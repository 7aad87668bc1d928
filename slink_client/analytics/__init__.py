"""Click analytics: pure aggregation plus a fetch-and-aggregate service."""

from .aggregator import aggregate, click_rate, daily_clicks, frequency_table, recent_clicks, top_n
from .service import AnalyticsService

__all__ = ["AnalyticsService", "aggregate", "click_rate", "daily_clicks", "frequency_table", "recent_clicks", "top_n"]
