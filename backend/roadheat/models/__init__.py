"""SQLAlchemy ORM models."""

from roadheat.models.report import Report

__all__ = [
    "Report",
]
