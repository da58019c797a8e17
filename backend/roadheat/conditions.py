"""Condition registry: single source of truth for condition types and activities.

The declaration order of ``ConditionType`` is significant: it is the
tie-break order used when two conditions carry the same weight in a cell.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from types import MappingProxyType


class ConditionClass(str, enum.Enum):
    """Decay class of a condition."""

    WEATHER_ENVIRONMENTAL = "weather_environmental"
    STRUCTURAL = "structural"


class ConditionType(str, enum.Enum):
    """Reportable condition types, in tie-break order."""

    # Weather-environmental
    ICE = "ice"
    SNOW = "snow"
    MUD = "mud"
    FLOODING = "flooding"
    STANDING_WATER = "standing_water"
    # Structural
    POTHOLE = "pothole"
    CRACK = "crack"
    UNEVEN_SURFACE = "uneven_surface"
    MISSING_SECTION = "missing_section"
    DEBRIS = "debris"
    BROKEN_GLASS = "broken_glass"
    POOR_LIGHTING = "poor_lighting"
    CONSTRUCTION = "construction"
    CONGESTION = "congestion"


class ActivityType(str, enum.Enum):
    """Activity selected by the viewer; drives score reweighting."""

    RUNNING = "running"
    WALKING = "walking"
    BIKING = "biking"
    COMMUTING = "commuting"


DEFAULT_ACTIVITY = ActivityType.RUNNING

WEATHER_HALF_LIFE_DAYS = 1.5
STRUCTURAL_HALF_LIFE_DAYS = 7.0

# Cells with fewer reports than this are flagged as low data
LOW_DATA_THRESHOLD = 3


@dataclass(frozen=True)
class ConditionDef:
    """Static metadata for a single condition type."""

    condition: ConditionType
    label: str
    condition_class: ConditionClass

    @property
    def half_life_days(self) -> float:
        if self.condition_class is ConditionClass.WEATHER_ENVIRONMENTAL:
            return WEATHER_HALF_LIFE_DAYS
        return STRUCTURAL_HALF_LIFE_DAYS


# ---------------------------------------------------------------------------
# Build the registry
# ---------------------------------------------------------------------------

_W = ConditionClass.WEATHER_ENVIRONMENTAL
_S = ConditionClass.STRUCTURAL

_CONDITIONS: list[ConditionDef] = [
    ConditionDef(ConditionType.ICE, "Ice", _W),
    ConditionDef(ConditionType.SNOW, "Snow", _W),
    ConditionDef(ConditionType.MUD, "Mud", _W),
    ConditionDef(ConditionType.FLOODING, "Flooding", _W),
    ConditionDef(ConditionType.STANDING_WATER, "Standing Water", _W),
    ConditionDef(ConditionType.POTHOLE, "Pothole", _S),
    ConditionDef(ConditionType.CRACK, "Crack", _S),
    ConditionDef(ConditionType.UNEVEN_SURFACE, "Uneven Surface", _S),
    ConditionDef(ConditionType.MISSING_SECTION, "Missing Section", _S),
    ConditionDef(ConditionType.DEBRIS, "Debris", _S),
    ConditionDef(ConditionType.BROKEN_GLASS, "Broken Glass", _S),
    ConditionDef(ConditionType.POOR_LIGHTING, "Poor Lighting", _S),
    ConditionDef(ConditionType.CONSTRUCTION, "Construction", _S),
    ConditionDef(ConditionType.CONGESTION, "Congestion", _S),
]

CONDITION_REGISTRY: MappingProxyType[ConditionType, ConditionDef] = MappingProxyType(
    {c.condition: c for c in _CONDITIONS}
)

# Position of each condition in declaration order (tie-break rank)
CONDITION_ORDER: MappingProxyType[ConditionType, int] = MappingProxyType(
    {c: i for i, c in enumerate(ConditionType)}
)

# ---------------------------------------------------------------------------
# Activity tables
# ---------------------------------------------------------------------------

# Score multipliers by activity and top condition; unlisted pairs are 1.0.
ACTIVITY_SCORE_WEIGHTS: MappingProxyType[ActivityType, MappingProxyType[ConditionType, float]] = (
    MappingProxyType(
        {
            ActivityType.RUNNING: MappingProxyType(
                {
                    ConditionType.ICE: 1.5,
                    ConditionType.SNOW: 1.5,
                    ConditionType.MUD: 1.5,
                    ConditionType.FLOODING: 1.5,
                    ConditionType.STANDING_WATER: 1.5,
                }
            ),
            ActivityType.WALKING: MappingProxyType(
                {
                    ConditionType.ICE: 1.5,
                    ConditionType.SNOW: 1.5,
                    ConditionType.CRACK: 1.5,
                    ConditionType.UNEVEN_SURFACE: 1.5,
                    ConditionType.POTHOLE: 1.2,
                    ConditionType.MISSING_SECTION: 1.2,
                    ConditionType.DEBRIS: 1.2,
                    ConditionType.BROKEN_GLASS: 1.2,
                    ConditionType.POOR_LIGHTING: 1.2,
                    ConditionType.CONSTRUCTION: 1.2,
                    ConditionType.CONGESTION: 1.2,
                    ConditionType.MUD: 1.2,
                    ConditionType.FLOODING: 1.2,
                    ConditionType.STANDING_WATER: 1.2,
                }
            ),
            ActivityType.BIKING: MappingProxyType(
                {
                    ConditionType.POTHOLE: 1.5,
                    ConditionType.FLOODING: 1.5,
                    ConditionType.CONGESTION: 1.5,
                }
            ),
            ActivityType.COMMUTING: MappingProxyType(
                {
                    ConditionType.CONGESTION: 1.8,
                }
            ),
        }
    )
)


def _priority(*names: str) -> tuple[ConditionType, ...]:
    order = tuple(ConditionType(n) for n in names)
    assert set(order) == set(ConditionType), "priority list must cover every condition"
    return order


# Display order of conditions per activity (most relevant first)
ACTIVITY_CONDITION_PRIORITY: MappingProxyType[ActivityType, tuple[ConditionType, ...]] = (
    MappingProxyType(
        {
            ActivityType.RUNNING: _priority(
                "ice", "snow", "crack", "uneven_surface", "mud", "debris", "pothole",
                "flooding", "standing_water", "missing_section", "broken_glass",
                "poor_lighting", "construction", "congestion",
            ),
            ActivityType.WALKING: _priority(
                "ice", "uneven_surface", "crack", "debris", "snow", "mud", "broken_glass",
                "pothole", "flooding", "standing_water", "missing_section",
                "poor_lighting", "construction", "congestion",
            ),
            ActivityType.BIKING: _priority(
                "pothole", "flooding", "congestion", "crack", "construction", "debris",
                "mud", "standing_water", "uneven_surface", "ice", "snow",
                "missing_section", "broken_glass", "poor_lighting",
            ),
            ActivityType.COMMUTING: _priority(
                "congestion", "construction", "flooding", "pothole", "crack", "debris",
                "standing_water", "uneven_surface", "mud", "ice", "snow",
                "missing_section", "broken_glass", "poor_lighting",
            ),
        }
    )
)

# Condition pre-selected on the report form for each activity
ACTIVITY_DEFAULT_CONDITION: MappingProxyType[ActivityType, ConditionType] = MappingProxyType(
    {
        ActivityType.RUNNING: ConditionType.ICE,
        ActivityType.WALKING: ConditionType.UNEVEN_SURFACE,
        ActivityType.BIKING: ConditionType.POTHOLE,
        ActivityType.COMMUTING: ConditionType.CONGESTION,
    }
)


def half_life_days(condition: ConditionType) -> float:
    """Decay half-life for a condition. Raises ValueError for unknown values."""
    return CONDITION_REGISTRY[ConditionType(condition)].half_life_days
