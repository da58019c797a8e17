"""Heatmap service: fetch reports for a viewport and aggregate them."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from roadheat.conditions import ActivityType
from roadheat.database import utc_now
from roadheat.exceptions import ReportSourceUnavailable
from roadheat.schemas.heatmap import HeatmapCell, HeatmapQuery
from roadheat.services.activity import reweight_cells
from roadheat.services.aggregation import MAX_HEATMAP_CELLS, aggregate
from roadheat.sources.base import ReportSource

logger = logging.getLogger(__name__)


class HeatmapService:
    """One aggregation call: report source fetch followed by grid aggregation.

    Source failures surface as ReportSourceUnavailable and are never retried
    here; the caller decides when to try again.
    """

    def __init__(
        self,
        source: ReportSource,
        max_cells: int = MAX_HEATMAP_CELLS,
        fetch_timeout: float | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.source = source
        self._max_cells = max_cells
        self._fetch_timeout = fetch_timeout
        self._clock = clock

    async def fetch_cells(
        self,
        query: HeatmapQuery,
        now: datetime | None = None,
        timeout: float | None = None,
    ) -> list[HeatmapCell]:
        """Fetch and aggregate cells for a viewport.

        Args:
            query: Viewport bounding box and zoom
            now: Scoring instant (defaults to the current UTC time)
            timeout: Deadline for the fetch in seconds (defaults to the
                service-wide fetch timeout, if any)
        """
        if now is None:
            now = self._clock()
        timeout = timeout if timeout is not None else self._fetch_timeout

        try:
            if timeout is not None:
                reports = await asyncio.wait_for(
                    self.source.fetch_reports(query, now), timeout=timeout
                )
            else:
                reports = await self.source.fetch_reports(query, now)
        except TimeoutError as e:
            logger.error(f"Report fetch timed out after {timeout}s")
            raise ReportSourceUnavailable(f"Report fetch timed out after {timeout}s") from e

        cells = aggregate(query, reports, now, limit=self._max_cells)
        logger.debug(f"Aggregated {len(reports)} reports into {len(cells)} cells")
        return cells

    async def get_cells(
        self,
        query: HeatmapQuery,
        activity: ActivityType | None = None,
        now: datetime | None = None,
    ) -> list[HeatmapCell]:
        """Fetch cells, reweighted for an activity when one is given."""
        cells = await self.fetch_cells(query, now=now)
        if activity is None:
            return cells
        return reweight_cells(cells, activity)
