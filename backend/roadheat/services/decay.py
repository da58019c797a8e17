"""Recency decay model for condition reports."""

import sys
from datetime import datetime

from roadheat.conditions import ConditionType, half_life_days

SECONDS_PER_DAY = 86400.0

# Smallest positive normal float; keeps very old weights strictly above zero
MIN_WEIGHT = sys.float_info.min


def age_days(submitted_at: datetime, now: datetime) -> float:
    """Fractional age in days. Reports dated in the future count as age 0."""
    return max(0.0, (now - submitted_at).total_seconds() / SECONDS_PER_DAY)


def decay_exponent(condition: ConditionType, submitted_at: datetime, now: datetime) -> float:
    """Number of half-lives elapsed since submission."""
    return age_days(submitted_at, now) / half_life_days(condition)


def decay_weight(condition: ConditionType, submitted_at: datetime, now: datetime) -> float:
    """Weight of a report at ``now``: 0.5 ** (age_days / half_life), in (0, 1].

    A report submitted at ``now`` has weight exactly 1.
    """
    return max(0.5 ** decay_exponent(condition, submitted_at, now), MIN_WEIGHT)
