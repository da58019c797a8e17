"""Activity-specific reweighting of aggregated heatmap cells.

Runs entirely on already-fetched cells; it never triggers a fetch.
"""

from collections.abc import Iterable

from roadheat.conditions import (
    ACTIVITY_CONDITION_PRIORITY,
    ACTIVITY_DEFAULT_CONDITION,
    ACTIVITY_SCORE_WEIGHTS,
    ActivityType,
    ConditionType,
)
from roadheat.schemas.heatmap import HeatmapCell
from roadheat.services.aggregation import MAX_SCORE


def score_multiplier(activity: ActivityType, condition: ConditionType) -> float:
    """Multiplier for an (activity, condition) pair; 1.0 when not listed."""
    return ACTIVITY_SCORE_WEIGHTS[ActivityType(activity)].get(ConditionType(condition), 1.0)


def reweight(cell: HeatmapCell, activity: ActivityType) -> HeatmapCell:
    """Return the cell with its score adjusted for the activity."""
    multiplier = score_multiplier(activity, cell.top_condition)
    if multiplier == 1.0:
        return cell
    return cell.model_copy(update={"avg_score": min(MAX_SCORE, cell.avg_score * multiplier)})


def reweight_cells(cells: Iterable[HeatmapCell], activity: ActivityType) -> list[HeatmapCell]:
    """Reweight every cell, keeping the input order."""
    return [reweight(cell, activity) for cell in cells]


def condition_priority(activity: ActivityType) -> tuple[ConditionType, ...]:
    """Conditions ordered by relevance to the activity, most relevant first."""
    return ACTIVITY_CONDITION_PRIORITY[ActivityType(activity)]


def default_condition(activity: ActivityType) -> ConditionType:
    """Condition pre-selected when reporting during this activity."""
    return ACTIVITY_DEFAULT_CONDITION[ActivityType(activity)]
