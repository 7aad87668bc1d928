"""
AnalyticsService: fetch one link's click history and aggregate it.

A missing link is an explicit empty state (None), not an error.
"""

import logging
from typing import Optional

from ..api.client import APIClient
from ..errors import NotFound
from ..models import AnalyticsReport
from ..session.manager import AuthSessionManager
from .aggregator import DAILY_BUCKETS, TOP_N, aggregate

log = logging.getLogger("slink_client.analytics")


class AnalyticsService:
    def __init__(self, api: APIClient, sessions: AuthSessionManager):
        self.api = api
        self.sessions = sessions

    async def fetch(self, link_id: int, top: int = TOP_N, days: int = DAILY_BUCKETS) -> Optional[AnalyticsReport]:
        """
        Returns:
            Optional[AnalyticsReport]: Fresh report, or None if the link does not exist.

        Raises:
            SessionExpired: If not authenticated (or on 401).
        """
        self.sessions.require_identity()
        try:
            payload = await self.api.get_url_analytics(link_id)
        except NotFound:
            log.info("No analytics for link %s", link_id)
            return None
        return aggregate(payload.analytics, stats=payload.stats, link_id=link_id, top=top, days=days)
