"""Base class for report sources."""

from abc import ABC, abstractmethod
from datetime import datetime

from roadheat.schemas.heatmap import ConditionReport, HeatmapQuery


class ReportSource(ABC):
    """Read access to a store of condition reports with bounding-box filtering."""

    @abstractmethod
    async def fetch_reports(self, query: HeatmapQuery, now: datetime) -> list[ConditionReport]:
        """Return reports inside the query's bounding box.

        Raises:
            ReportSourceUnavailable: the store could not be queried.
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the source."""
        pass
