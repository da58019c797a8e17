"""Shared fixtures for heatmap tests."""

from datetime import UTC, datetime, timedelta
from itertools import count

import pytest

from roadheat.conditions import ConditionType
from roadheat.schemas.heatmap import ConditionReport, HeatmapQuery

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

_ids = count(1)


def make_report(
    lat: float = 42.36,
    lng: float = -71.06,
    condition: ConditionType | str = ConditionType.POTHOLE,
    severity: int = 2,
    age_days: float = 0.0,
    now: datetime = NOW,
) -> ConditionReport:
    """Build a report submitted ``age_days`` before ``now``."""
    return ConditionReport(
        id=f"report-{next(_ids)}",
        latitude=lat,
        longitude=lng,
        condition_type=condition,
        severity=severity,
        submitted_at=now - timedelta(days=age_days),
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def boston_query() -> HeatmapQuery:
    """Street-level viewport over downtown Boston."""
    return HeatmapQuery(south=42.34, north=42.38, west=-71.12, east=-71.05, zoom=14)
