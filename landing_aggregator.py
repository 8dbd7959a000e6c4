"""
Landing time aggregation module.

This module folds pull requests into running totals and turns those totals
into the average landing time summary, honoring an optional author filter.
"""

import logging
from datetime import datetime
from typing import Dict, List, Any, Optional, Union

from dateutil.parser import isoparse

from workday_calendar import WorkdayCalendar, as_utc_aware, effective_hours, hours_between


class EmptyAggregateError(Exception):
    """Raised when no merged pull request matched, so no average exists."""
    pass


def parse_github_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a GitHub API timestamp into a timezone-aware datetime.

    Args:
        value: ISO-8601 string such as '2024-01-05T09:00:00Z', a datetime, or None

    Returns:
        Timezone-aware datetime (naive values are taken as UTC), or None if absent

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return as_utc_aware(value)
    return as_utc_aware(isoparse(value))


def pr_author(pr: Dict[str, Any]) -> str:
    """Login of the PR author; deleted accounts come back with a null user."""
    user = pr.get('user') or {}
    return user.get('login') or ''


class AggregateState:
    """Running totals of a landing time run. Counters only ever grow."""

    def __init__(self):
        self.total_count = 0
        self.filtered_count = 0
        self.merged_count = 0
        self.total_effective_hours = 0.0

    def __repr__(self) -> str:
        return (f"AggregateState(total_count={self.total_count}, filtered_count={self.filtered_count}, "
                f"merged_count={self.merged_count}, total_effective_hours={self.total_effective_hours})")


class Aggregator:
    """
    Folds pull requests into an AggregateState.

    Every PR counts toward the total. With an author filter only the
    author's PRs go further; merged ones among them add their effective
    landing hours.
    """

    def __init__(self, author_filter: str = '', calendar: Optional[WorkdayCalendar] = None,
                 keep_details: bool = False):
        """
        Initialize the aggregator.

        Args:
            author_filter: Author login to restrict to, matched case-insensitively. Empty means everyone
            calendar: Workday calendar for the duration clamp. Defaults to a UTC calendar
            keep_details: Record one landing row per counted PR for reporting
        """
        self.author_filter = author_filter or ''
        self.calendar = calendar or WorkdayCalendar()
        self.keep_details = keep_details
        self.state = AggregateState()
        self.details: List[Dict[str, Any]] = []
        self.logger = logging.getLogger(__name__)

    def matches_author(self, pr: Dict[str, Any]) -> bool:
        if not self.author_filter:
            return True
        return pr_author(pr).casefold() == self.author_filter.casefold()

    def fold(self, pr: Dict[str, Any], repository_name: str = '') -> AggregateState:
        """
        Fold one pull request into the running totals.

        Args:
            pr: Pull request data dictionary from GitHub API
            repository_name: 'owner/name' of the PR's repository, used for diagnostics

        Returns:
            The updated aggregate state
        """
        self.state.total_count += 1

        if not self.matches_author(pr):
            return self.state

        self.state.filtered_count += 1

        pr_number = pr.get('number', 'unknown')
        created_at = parse_github_timestamp(pr.get('created_at'))
        merged_at = parse_github_timestamp(pr.get('merged_at'))
        author = pr_author(pr)

        if merged_at is None:
            self.logger.debug(
                f"{pr.get('state', 'unknown')} PR {repository_name}#{pr_number}: {pr.get('title', '')} "
                f"created by {author} on a {created_at:%A} ({created_at.isoformat()})"
            )
            self._record(pr, repository_name, created_at, None, None, None, None)
            return self.state

        if merged_at < created_at:
            self.logger.warning(f"PR {repository_name}#{pr_number} merged before it was created")

        workdays = self.calendar.count_workdays(created_at, merged_at)
        delta = effective_hours(created_at, merged_at, self.calendar)

        self.state.merged_count += 1
        self.state.total_effective_hours += delta

        merged_by = (pr.get('merged_by') or {}).get('login') or ''
        self.logger.debug(
            f"{pr.get('state', 'unknown')} PR {repository_name}#{pr_number}: {pr.get('title', '')} "
            f"created by {author} on a {created_at:%A} ({created_at.isoformat()}), "
            f"merged by {merged_by} on a {merged_at:%A} ({merged_at.isoformat()}); "
            f"{delta:.2f} effective hours over {workdays} workday(s)"
        )
        self._record(pr, repository_name, created_at, merged_at, merged_by,
                     hours_between(created_at, merged_at), workdays, delta)
        return self.state

    def _record(self, pr: Dict[str, Any], repository_name: str, created_at: datetime,
                merged_at: Optional[datetime], merged_by: Optional[str],
                wall_hours: Optional[float], workdays: Optional[int],
                delta: Optional[float] = None) -> None:
        if not self.keep_details:
            return

        self.details.append({
            'repository_name': repository_name,
            'pr_number': pr.get('number'),
            'title': pr.get('title', ''),
            'author_login': pr_author(pr),
            'state': pr.get('state', ''),
            'created_at': created_at.isoformat() if created_at else None,
            'merged_at': merged_at.isoformat() if merged_at else None,
            'merged_by_login': merged_by or '',
            'wall_hours': wall_hours,
            'workdays': workdays,
            'effective_hours': delta,
            'is_merged': merged_at is not None
        })

    def fold_all(self, prs: List[Dict[str, Any]], repository_name: str = '') -> AggregateState:
        for pr in prs:
            self.fold(pr, repository_name)
        return self.state

    def summary(self) -> Dict[str, Any]:
        """
        Compute the average landing time from the folded totals.

        Returns:
            Dictionary with average_hours, total_merged_counted, total_prs,
            matched_prs, total_effective_hours and username

        Raises:
            EmptyAggregateError: If no merged pull request matched the filter
        """
        state = self.state
        if state.merged_count == 0:
            who = f" by {self.author_filter}" if self.author_filter else ""
            raise EmptyAggregateError(
                f"No merged pull requests{who} found among {state.total_count} pull requests"
            )

        return {
            'average_hours': state.total_effective_hours / state.merged_count,
            'total_merged_counted': state.merged_count,
            'total_prs': state.total_count,
            'matched_prs': state.filtered_count,
            'total_effective_hours': state.total_effective_hours,
            'username': self.author_filter
        }
