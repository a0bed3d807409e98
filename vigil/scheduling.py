"""Scan schedule arithmetic.

Vigil has no trigger mechanism of its own. An external scheduler keeps
``ScanSchedule`` values, asks ``is_scan_due`` on its own tick, and calls
``FileIntegrity.run_scan(SCAN_TYPE_SCHEDULED)`` when one is due.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from .models.base import utcnow

FREQUENCY_HOURLY = "hourly"
FREQUENCY_DAILY = "daily"
FREQUENCY_WEEKLY = "weekly"
FREQUENCIES = (FREQUENCY_HOURLY, FREQUENCY_DAILY, FREQUENCY_WEEKLY)

# Days of week are numbered 0=Sunday .. 6=Saturday
DEFAULT_WEEKLY_DAYS = (1,)


def _parse_time(value: str) -> tuple[int, int]:
    try:
        hour_s, minute_s = value.split(":", 1)
        hour, minute = int(hour_s), int(minute_s)
    except ValueError:
        raise ValueError(f"time_of_day must be HH:MM, got {value!r}")
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"time_of_day out of range: {value!r}")
    return hour, minute


def _sunday_based_weekday(moment: datetime) -> int:
    return moment.isoweekday() % 7


@dataclass
class ScanSchedule:
    frequency: str = FREQUENCY_DAILY
    time_of_day: str = "00:00"  # hourly schedules use only the minute
    days_of_week: list[int] = field(default_factory=list)
    is_active: bool = True
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None

    def __post_init__(self):
        if self.frequency not in FREQUENCIES:
            raise ValueError(f"frequency must be one of {FREQUENCIES}")
        _parse_time(self.time_of_day)
        for day in self.days_of_week:
            if not 0 <= day <= 6:
                raise ValueError(f"days_of_week entries must be 0-6, got {day}")
        if self.next_run is None:
            # From last_run, or from now for a schedule that has never run
            self.next_run = calculate_next_run(self, self.last_run)

    def mark_run(self, now: Optional[datetime] = None) -> None:
        """Record a run at ``now`` and move next_run forward."""
        now = now or utcnow()
        self.last_run = now
        self.next_run = calculate_next_run(self, now)


def calculate_next_run(schedule: ScanSchedule, now: Optional[datetime] = None) -> datetime:
    """First occurrence of the schedule strictly after ``now``."""
    now = now or utcnow()
    hour, minute = _parse_time(schedule.time_of_day)

    if schedule.frequency == FREQUENCY_HOURLY:
        candidate = now.replace(minute=minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(hours=1)
        return candidate

    if schedule.frequency == FREQUENCY_DAILY:
        candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    days = schedule.days_of_week or list(DEFAULT_WEEKLY_DAYS)
    today = _sunday_based_weekday(now)
    candidates = []
    for day in days:
        offset = (day - today) % 7
        candidate = (now + timedelta(days=offset)).replace(
            hour=hour, minute=minute, second=0, microsecond=0
        )
        if candidate <= now:
            candidate += timedelta(weeks=1)
        candidates.append(candidate)
    return min(candidates)


def is_scan_due(schedule: ScanSchedule, now: Optional[datetime] = None) -> bool:
    if not schedule.is_active:
        return False
    now = now or utcnow()
    next_run = schedule.next_run or calculate_next_run(schedule, schedule.last_run)
    return next_run <= now
