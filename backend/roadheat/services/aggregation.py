"""Grid aggregation engine: raw condition reports -> ranked heatmap cells."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from roadheat.conditions import CONDITION_ORDER, ConditionType
from roadheat.schemas.heatmap import ConditionReport, HeatmapCell, HeatmapQuery
from roadheat.services.decay import decay_exponent
from roadheat.services.grid import cell_key, cell_size

logger = logging.getLogger(__name__)

# Maximum cells returned per query (egress budget guard)
MAX_HEATMAP_CELLS = 500

MAX_SCORE = 3.0


@dataclass
class _CellGroup:
    """Reports bucketed into one grid cell."""

    exponents: list[float] = field(default_factory=list)
    severities: list[int] = field(default_factory=list)
    conditions: list[ConditionType] = field(default_factory=list)
    latest_report_at: datetime | None = None

    def add(self, report: ConditionReport, exponent: float) -> None:
        self.exponents.append(exponent)
        self.severities.append(report.severity)
        self.conditions.append(report.condition_type)
        if self.latest_report_at is None or report.submitted_at > self.latest_report_at:
            self.latest_report_at = report.submitted_at

    def summarize(self, key: tuple[float, float]) -> HeatmapCell:
        """Compute the cell's decay-weighted score and dominant condition.

        Weights are taken relative to the group's freshest report
        (0.5 ** (e - e_min)). Ratios, and therefore the weighted mean and the
        per-condition ranking, are unchanged, but the sum can never underflow
        to zero for very old reports.
        """
        base = min(self.exponents)
        total_weight = 0.0
        weighted_severity = 0.0
        condition_weight: dict[ConditionType, float] = {}

        for exponent, severity, condition in zip(
            self.exponents, self.severities, self.conditions
        ):
            weight = 0.5 ** (exponent - base)
            total_weight += weight
            weighted_severity += severity * weight
            condition_weight[condition] = condition_weight.get(condition, 0.0) + weight

        avg_score = min(MAX_SCORE, max(0.0, weighted_severity / total_weight))

        # Largest weighted sum wins; equal sums go to the earlier-declared condition
        top_condition = max(
            condition_weight,
            key=lambda c: (condition_weight[c], -CONDITION_ORDER[c]),
        )

        return HeatmapCell(
            cell_lat=key[0],
            cell_lng=key[1],
            report_count=len(self.severities),
            avg_score=avg_score,
            top_condition=top_condition,
            latest_report_at=self.latest_report_at,
        )


def aggregate(
    query: HeatmapQuery,
    reports: Iterable[ConditionReport],
    now: datetime,
    limit: int = MAX_HEATMAP_CELLS,
) -> list[HeatmapCell]:
    """Bucket reports into grid cells and rank the cells by score.

    Args:
        query: Viewport query; only its zoom level affects binning. The
            reports are expected to already be filtered to its bounding box.
        reports: Reports to aggregate.
        now: Scoring instant. Identical inputs always give identical output.
        limit: Maximum number of cells to return (capped at 500).

    Returns:
        Cells ordered by avg_score descending. Cells with equal scores keep
        the order in which their first report was seen.
    """
    size = cell_size(query.zoom)
    groups: dict[tuple[float, float], _CellGroup] = {}

    for report in reports:
        key = cell_key(report.latitude, report.longitude, size)
        group = groups.get(key)
        if group is None:
            group = groups[key] = _CellGroup()
        group.add(report, decay_exponent(report.condition_type, report.submitted_at, now))

    cells = [group.summarize(key) for key, group in groups.items()]
    # sorted() is stable, including with reverse=True
    cells = sorted(cells, key=lambda c: c.avg_score, reverse=True)

    limit = min(limit, MAX_HEATMAP_CELLS)
    if len(cells) > limit:
        logger.debug(f"Truncating {len(cells)} cells to {limit} at zoom {query.zoom}")
    return cells[:limit]
