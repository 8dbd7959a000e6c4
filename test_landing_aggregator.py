"""
Unit tests for landing time aggregation.

This module covers folding pull requests into the aggregate, the author
filter, the average computation and the per-PR detail records.
"""

import logging
import pytest
from datetime import datetime

from dateutil import tz

from landing_aggregator import (
    Aggregator,
    AggregateState,
    EmptyAggregateError,
    parse_github_timestamp,
    pr_author
)


def make_pr(number, author, created_at, merged_at=None, state=None, merged_by='maintainer'):
    """Build a pull request dictionary shaped like the GitHub API response."""
    return {
        'number': number,
        'title': f'PR {number}',
        'user': {'login': author} if author is not None else None,
        'state': state or ('closed' if merged_at else 'open'),
        'created_at': created_at,
        'merged_at': merged_at,
        'merged_by': {'login': merged_by} if merged_at else None
    }


def sample_prs():
    return [
        make_pr(1, 'alice', '2024-01-01T08:00:00Z', '2024-01-01T18:00:00Z'),
        make_pr(2, 'bob', '2024-01-02T02:00:00Z', '2024-01-02T22:00:00Z'),
        make_pr(3, 'alice', '2024-01-03T10:00:00Z'),
    ]


class TestParseGitHubTimestamp:
    """Test cases for timestamp parsing."""

    def test_parse_zulu_timestamp(self):
        """Test parsing of the 'Z' suffixed format GitHub returns."""
        parsed = parse_github_timestamp('2024-01-05T09:00:00Z')
        assert parsed == datetime(2024, 1, 5, 9, 0, tzinfo=tz.UTC)

    def test_parse_offset_timestamp(self):
        """Test parsing of timestamps with an explicit offset."""
        parsed = parse_github_timestamp('2024-01-05T11:00:00+02:00')
        assert parsed == datetime(2024, 1, 5, 9, 0, tzinfo=tz.UTC)

    def test_missing_timestamp(self):
        """Test None and empty values mean absent."""
        assert parse_github_timestamp(None) is None
        assert parse_github_timestamp('') is None

    def test_naive_datetime_becomes_utc(self):
        """Test datetime inputs without tzinfo are taken as UTC."""
        parsed = parse_github_timestamp(datetime(2024, 1, 5, 9, 0))
        assert parsed.tzinfo == tz.UTC

    def test_invalid_timestamp(self):
        """Test malformed timestamps raise ValueError."""
        with pytest.raises(ValueError):
            parse_github_timestamp('not-a-date')


class TestFold:
    """Test cases for folding individual pull requests."""

    def test_initial_state(self):
        """Test a fresh aggregate starts at zero."""
        state = AggregateState()
        assert state.total_count == 0
        assert state.filtered_count == 0
        assert state.merged_count == 0
        assert state.total_effective_hours == 0.0

    def test_no_filter_counts_everything(self):
        """Test every PR is counted and merged ones add their hours."""
        aggregator = Aggregator()
        state = aggregator.fold_all(sample_prs())

        assert state.total_count == 3
        assert state.filtered_count == 3
        assert state.merged_count == 2
        assert state.total_effective_hours == pytest.approx(30.0)

    def test_author_filter(self):
        """Test only the filtered author's PRs go beyond the total count."""
        aggregator = Aggregator('alice')
        state = aggregator.fold_all(sample_prs())

        assert state.total_count == 3
        assert state.filtered_count == 2
        assert state.merged_count == 1
        assert state.total_effective_hours == pytest.approx(10.0)

    def test_author_filter_is_case_insensitive(self):
        """Test author logins match regardless of case."""
        aggregator = Aggregator('ALICE')
        state = aggregator.fold_all(sample_prs())

        assert state.filtered_count == 2

    def test_deleted_author_never_matches_filter(self):
        """Test PRs with a null user only count toward the total under a filter."""
        aggregator = Aggregator('alice')
        aggregator.fold(make_pr(9, None, '2024-01-01T08:00:00Z', '2024-01-01T09:00:00Z'))

        assert aggregator.state.total_count == 1
        assert aggregator.state.filtered_count == 0

    def test_weekend_pr_is_clamped(self):
        """Test a PR open over a weekend adds its clamped hours."""
        aggregator = Aggregator()
        aggregator.fold(make_pr(4, 'carol', '2024-01-05T09:00:00Z', '2024-01-08T09:00:00Z'))

        assert aggregator.state.total_effective_hours == pytest.approx(48.0)

    def test_fold_order_does_not_matter(self):
        """Test totals are independent of the order PRs are folded in."""
        forward = Aggregator().fold_all(sample_prs())
        backward = Aggregator().fold_all(list(reversed(sample_prs())))

        assert forward.total_count == backward.total_count
        assert forward.merged_count == backward.merged_count
        assert forward.total_effective_hours == pytest.approx(backward.total_effective_hours)

    def test_debug_diagnostics_do_not_change_totals(self, caplog):
        """Test debug logging of each PR leaves the aggregate untouched."""
        with caplog.at_level(logging.DEBUG, logger='landing_aggregator'):
            state = Aggregator().fold_all(sample_prs(), 'acme/widgets')

        assert state.total_effective_hours == pytest.approx(30.0)
        assert 'acme/widgets#3' in caplog.text
        assert 'merged by maintainer' in caplog.text

    def test_pr_author(self):
        """Test author extraction tolerates missing user data."""
        assert pr_author({'user': {'login': 'alice'}}) == 'alice'
        assert pr_author({'user': None}) == ''
        assert pr_author({}) == ''


class TestSummary:
    """Test cases for the average landing time summary."""

    def test_average_without_filter(self):
        """Test the average divides by the merged PRs counted."""
        aggregator = Aggregator()
        aggregator.fold_all(sample_prs())
        summary = aggregator.summary()

        assert summary['average_hours'] == pytest.approx(15.0)
        assert summary['total_merged_counted'] == 2
        assert summary['total_prs'] == 3
        assert summary['matched_prs'] == 3
        assert summary['username'] == ''

    def test_average_with_filter(self):
        """Test the filtered average only uses the author's merged PRs."""
        aggregator = Aggregator('alice')
        aggregator.fold_all(sample_prs())
        summary = aggregator.summary()

        assert summary['average_hours'] == pytest.approx(10.0)
        assert summary['total_merged_counted'] == 1
        assert summary['matched_prs'] == 2
        assert summary['username'] == 'alice'

    def test_empty_aggregate(self):
        """Test an aggregate with nothing folded raises EmptyAggregateError."""
        with pytest.raises(EmptyAggregateError, match="No merged pull requests found among 0"):
            Aggregator().summary()

    def test_only_open_prs(self):
        """Test open PRs alone cannot produce an average."""
        aggregator = Aggregator()
        aggregator.fold(make_pr(1, 'alice', '2024-01-01T08:00:00Z'))

        with pytest.raises(EmptyAggregateError):
            aggregator.summary()

    def test_filter_matches_nothing(self):
        """Test a filter with no merged PRs names the author in the error."""
        aggregator = Aggregator('dave')
        aggregator.fold_all(sample_prs())

        with pytest.raises(EmptyAggregateError, match="by dave"):
            aggregator.summary()


class TestDetails:
    """Test cases for per-PR landing records."""

    def test_details_not_kept_by_default(self):
        """Test no records are kept unless requested."""
        aggregator = Aggregator()
        aggregator.fold_all(sample_prs())
        assert aggregator.details == []

    def test_details_for_merged_and_open(self):
        """Test records carry landing figures for merged PRs and blanks for open ones."""
        aggregator = Aggregator(keep_details=True)
        aggregator.fold_all(sample_prs(), 'acme/widgets')

        assert len(aggregator.details) == 3

        merged = aggregator.details[0]
        assert merged['repository_name'] == 'acme/widgets'
        assert merged['pr_number'] == 1
        assert merged['author_login'] == 'alice'
        assert merged['merged_by_login'] == 'maintainer'
        assert merged['wall_hours'] == pytest.approx(10.0)
        assert merged['workdays'] == 1
        assert merged['effective_hours'] == pytest.approx(10.0)
        assert merged['is_merged'] is True

        still_open = aggregator.details[2]
        assert still_open['merged_at'] is None
        assert still_open['effective_hours'] is None
        assert still_open['is_merged'] is False

    def test_filtered_out_prs_have_no_details(self):
        """Test PRs rejected by the author filter are not recorded."""
        aggregator = Aggregator('bob', keep_details=True)
        aggregator.fold_all(sample_prs())

        assert [d['pr_number'] for d in aggregator.details] == [2]
