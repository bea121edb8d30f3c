"""7-day breath CO trends and smoke-free streak."""

import logging
import math

from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta

import numpy as np

from pydantic import BaseModel, Field

from breathco.constants import TrendConstants as TC

logger = logging.getLogger(__name__)


class DailyMedian(BaseModel):
    day: date = Field(description="UTC calendar day")
    median_ppm: float = Field(description="Median ppm for the day (NaN if none)")

    @property
    def measured(self) -> bool:
        return not math.isnan(self.median_ppm)


class TrendsResult(BaseModel):
    daily: list[DailyMedian] = Field(description="Chronological daily medians")
    smoke_free_streak_days: int = Field(ge=0, description="Trailing days <= threshold")
    measured_days: int = Field(ge=0, description="Days with at least one session")


def smoke_free_streak(
    daily: list[DailyMedian], threshold_ppm: float = TC.SMOKE_FREE_THRESHOLD_PPM
) -> int:
    """
    Count trailing days at or below the threshold.

    Days without data are skipped; the first measured day above the
    threshold ends the streak.
    """
    streak = 0
    for entry in reversed(daily):
        if not entry.measured:
            continue
        if entry.median_ppm > threshold_ppm:
            break
        streak += 1
    return streak


def compute_trends(
    sessions: Iterable[tuple[datetime, float | None]],
    today: date | None = None,
    days: int = TC.TREND_DAYS,
) -> TrendsResult:
    """
    Summarize sessions over the last `days` UTC days ending today.

    Args:
        sessions: (started_at, estimated_ppm) pairs; naive datetimes are UTC
        today: Last day of the range (defaults to the current UTC date)
        days: Number of days in the range

    Returns:
        TrendsResult
    """
    end_day = today or datetime.now(UTC).date()
    start_day = end_day - timedelta(days=days - 1)
    ppm_by_day: dict[date, list[float]] = {
        start_day + timedelta(days=offset): [] for offset in range(days)
    }

    for started_at, ppm in sessions:
        if ppm is None or ppm < 0 or math.isnan(ppm):
            continue
        if started_at.tzinfo is not None:
            started_at = started_at.astimezone(UTC)
        bucket = ppm_by_day.get(started_at.date())
        if bucket is not None:
            bucket.append(ppm)

    daily = [
        DailyMedian(day=day, median_ppm=float(np.median(values)) if values else math.nan)
        for day, values in ppm_by_day.items()
    ]
    measured = sum(1 for entry in daily if entry.measured)
    streak = smoke_free_streak(daily)
    logger.debug(f"Trends {start_day}..{end_day}: {measured} measured days, streak={streak}")

    return TrendsResult(daily=daily, smoke_free_streak_days=streak, measured_days=measured)
