"""Schemas for condition reports, viewport queries and heatmap cells."""

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, ValidationError, computed_field, model_validator

from roadheat.conditions import LOW_DATA_THRESHOLD, ActivityType, ConditionType
from roadheat.exceptions import InvalidQuery


class ConditionReport(BaseModel):
    """A submitted observation, as read from the report store."""

    model_config = ConfigDict(frozen=True)

    id: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    condition_type: ConditionType
    severity: int = Field(..., ge=1, le=3, description="1 = good/mild, 2 = fair, 3 = poor/severe")
    submitted_at: AwareDatetime
    description: str | None = None
    activity_context: ActivityType | None = None
    upvotes: int = 0


class HeatmapQuery(BaseModel):
    """A viewport request: bounding box plus integer zoom level."""

    model_config = ConfigDict(frozen=True)

    south: float = Field(..., ge=-90, le=90)
    north: float = Field(..., ge=-90, le=90)
    west: float = Field(..., ge=-180, le=180)
    east: float = Field(..., ge=-180, le=180)
    zoom: int

    @model_validator(mode="after")
    def check_bounds(self) -> "HeatmapQuery":
        """Reject inverted or empty boxes. Antimeridian-crossing boxes are not supported."""
        if self.south >= self.north:
            raise ValueError("south must be less than north")
        if self.west >= self.east:
            raise ValueError("west must be less than east")
        return self


def parse_query(**params) -> HeatmapQuery:
    """Build a HeatmapQuery, raising InvalidQuery on malformed input."""
    try:
        return HeatmapQuery(**params)
    except ValidationError as e:
        messages = "; ".join(err["msg"] for err in e.errors())
        raise InvalidQuery(messages) from e


class HeatmapCell(BaseModel):
    """One aggregated grid cell. Derived per request, never persisted."""

    model_config = ConfigDict(frozen=True)

    cell_lat: float
    cell_lng: float
    report_count: int = Field(..., ge=1)
    avg_score: float = Field(..., ge=0, le=3, description="Decay-weighted mean severity")
    top_condition: ConditionType
    latest_report_at: AwareDatetime

    @computed_field
    @property
    def low_data(self) -> bool:
        """Too few reports in this cell for the score to be reliable."""
        return self.report_count < LOW_DATA_THRESHOLD


class HeatmapUpdate(BaseModel):
    """A result delivered to a subscriber."""

    sequence: int
    activity: ActivityType
    cells: list[HeatmapCell] = Field(default_factory=list)
    error: str | None = None
    stale: bool = False


class ConditionInfo(BaseModel):
    """Registry entry for a condition type."""

    condition: ConditionType
    label: str
    condition_class: str
    half_life_days: float


class ActivityInfo(BaseModel):
    """Per-activity display metadata."""

    activity: ActivityType
    default_condition: ConditionType
    condition_priority: list[ConditionType]
    score_weights: dict[ConditionType, float]


class ConditionsResponse(BaseModel):
    """Response schema for the condition registry endpoint."""

    conditions: list[ConditionInfo]
    activities: list[ActivityInfo]
    low_data_threshold: int
