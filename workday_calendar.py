"""
Workday calendar and duration clamp for PR landing time analysis.

A workday is any Monday to Friday. No public holidays are modeled.
"""

from datetime import datetime, date, time, tzinfo
from typing import Optional

from dateutil import tz
from dateutil.rrule import rrule, DAILY, MO, TU, WE, TH, FR


WORKDAYS = (MO, TU, WE, TH, FR)


def as_utc_aware(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with GitHub timestamps."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz.UTC)
    return moment


def hours_between(start: datetime, end: datetime) -> float:
    """
    Wall-clock hours elapsed between two instants.

    The order of the arguments does not matter.
    """
    delta = as_utc_aware(end) - as_utc_aware(start)
    return abs(delta.total_seconds()) / 3600


class WorkdayCalendar:
    """
    Calendar counting the weekdays spanned by a pair of instants.

    Instants are converted to dates in the calendar's timezone before
    counting, so the span boundaries follow that timezone's midnight.
    """

    def __init__(self, timezone: Optional[tzinfo] = None):
        """
        Initialize the calendar.

        Args:
            timezone: Timezone whose calendar dates are counted. Defaults to UTC
        """
        self.timezone = timezone or tz.UTC

    def to_date(self, moment: datetime) -> date:
        """Calendar date of an instant in this calendar's timezone."""
        return as_utc_aware(moment).astimezone(self.timezone).date()

    def count_workdays(self, start: datetime, end: datetime) -> int:
        """
        Count Monday to Friday dates in the inclusive span between two instants.

        Args:
            start: First instant of the span
            end: Last instant of the span; may precede start

        Returns:
            Number of workdays, counting both end dates
        """
        first, last = sorted((self.to_date(start), self.to_date(end)))

        days = rrule(
            DAILY,
            dtstart=datetime.combine(first, time()),
            until=datetime.combine(last, time()),
            byweekday=WORKDAYS
        )
        return days.count()


def effective_hours(start: datetime, end: datetime, calendar: WorkdayCalendar) -> float:
    """
    Elapsed hours between creation and merge with weekends discounted.

    The result is the smaller of the wall-clock hours and a budget of 24
    hours per workday spanned. Hours inside a workday are never discounted.

    Args:
        start: PR creation instant
        end: PR merge instant
        calendar: Calendar used to count workdays

    Returns:
        Effective elapsed hours, never more than the wall-clock hours
    """
    wall_hours = hours_between(start, end)
    calendar_budget_hours = float(calendar.count_workdays(start, end) * 24)
    return min(wall_hours, calendar_budget_hours)
