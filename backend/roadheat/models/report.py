"""Condition report model (read-only view of the report store)."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Double, Enum, Integer, SmallInteger, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from roadheat.conditions import ActivityType, ConditionType
from roadheat.database import Base, utc_now
from roadheat.schemas.heatmap import ConditionReport


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Report(Base):
    """A user-submitted condition report.

    Rows are written by the submission path and removed by the retention
    job; this service only ever reads them.
    """

    __tablename__ = "condition_reports"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    # Position (WGS84)
    latitude: Mapped[float] = mapped_column(Double, nullable=False, index=True)
    longitude: Mapped[float] = mapped_column(Double, nullable=False, index=True)

    condition_type: Mapped[ConditionType] = mapped_column(
        Enum(ConditionType, native_enum=False, length=32, values_callable=_enum_values),
        nullable=False,
    )
    severity: Mapped[int] = mapped_column(SmallInteger, nullable=False)  # 1-3
    description: Mapped[str | None] = mapped_column(Text)
    session_token: Mapped[str | None] = mapped_column(String(64))
    activity_context: Mapped[ActivityType | None] = mapped_column(
        Enum(ActivityType, native_enum=False, length=16, values_callable=_enum_values)
    )
    upvotes: Mapped[int] = mapped_column(Integer, default=0)

    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        index=True,
    )

    def to_report(self) -> ConditionReport:
        """Convert the row into an immutable ConditionReport."""
        return ConditionReport(
            id=str(self.id),
            latitude=self.latitude,
            longitude=self.longitude,
            condition_type=self.condition_type,
            severity=self.severity,
            submitted_at=self.submitted_at,
            description=self.description,
            activity_context=self.activity_context,
            upvotes=self.upvotes or 0,
        )
