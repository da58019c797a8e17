"""Report source backed by the condition_reports table."""

import logging
from datetime import datetime, timedelta

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from roadheat.exceptions import ReportSourceUnavailable
from roadheat.models import Report
from roadheat.schemas.heatmap import ConditionReport, HeatmapQuery
from roadheat.sources.base import ReportSource

logger = logging.getLogger(__name__)


class SqlReportSource(ReportSource):
    """Fetch reports directly from the database."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        lookback_days: int | None = None,
        engine: AsyncEngine | None = None,
    ):
        self._session_maker = session_maker
        self._lookback_days = lookback_days
        self._engine = engine

    def build_query(self, query: HeatmapQuery, now: datetime) -> Select:
        """Select reports inside the bounding box, oldest first."""
        stmt = (
            select(Report)
            .where(Report.latitude >= query.south)
            .where(Report.latitude <= query.north)
            .where(Report.longitude >= query.west)
            .where(Report.longitude <= query.east)
        )
        if self._lookback_days:
            cutoff = now - timedelta(days=self._lookback_days)
            stmt = stmt.where(Report.submitted_at >= cutoff)
        return stmt.order_by(Report.submitted_at, Report.id)

    async def fetch_reports(self, query: HeatmapQuery, now: datetime) -> list[ConditionReport]:
        """Fetch reports inside the query's bounding box."""
        stmt = self.build_query(query, now)
        try:
            async with self._session_maker() as db:
                result = await db.execute(stmt)
                rows = result.scalars().all()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Report query failed: {e}")
            raise ReportSourceUnavailable(f"Report store query failed: {e}") from e

        logger.debug(f"Fetched {len(rows)} reports for zoom {query.zoom}")
        return [row.to_report() for row in rows]

    async def close(self) -> None:
        """Close database connections."""
        if self._engine is not None:
            await self._engine.dispose()
