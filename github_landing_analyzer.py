#!/usr/bin/env python3
"""
GitHub PR Landing Time Tool

This tool calculates the average time it takes pull requests to land
(creation to merge) across a repository or every repository of an
organization, discounting weekends.

Usage:
    python github_landing_analyzer.py <owner> | <owner/repo> [options]

Environment Variables:
    GITHUB_TOKEN: GitHub personal access token (optional)
    LANDING_USERNAME: Default author filter
    LANDING_DEBUG: Enable debug output when set to 1/true/yes
    NISEKOI_ACCESS_TOKEN, NISEKOI_USERNAME, NISEKOI_DEBUG: Fallbacks for the above

Examples:
    python github_landing_analyzer.py kubernetes
    python github_landing_analyzer.py facebook/react --username gaearon
    python github_landing_analyzer.py myorg --since 2024-01-01 --output landing.csv
"""

import argparse
import logging
import os
import re
import sys
from datetime import datetime
from typing import Any, Dict, Tuple

from dateutil.parser import isoparse

from github_client import GitHubClient
from pr_analyzer import (AnalysisConfig, DEFAULT_CUTOFF, LandingTimeAnalyzer, PRAnalysisError,
                         calculate_landing_time)
from landing_aggregator import EmptyAggregateError
from csv_reporter import CSVReporter, CSVReportError
from workday_calendar import as_utc_aware


EXIT_INVALID_SEARCH_TERM = 1
EXIT_INVALID_USERNAME = 2
EXIT_FAILURE = 3

LOGIN_PATTERN = re.compile(r'^[A-Za-z0-9](?:[A-Za-z0-9]|-(?=[A-Za-z0-9])){0,38}$')
REPOSITORY_PATTERN = re.compile(r'^[A-Za-z0-9._-]{1,100}$')


def setup_logging(level: str = "INFO", verbose: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        verbose: Enable verbose logging output
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if verbose:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
    else:
        log_format = '%(asctime)s - %(levelname)s - %(message)s'

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt='%Y-%m-%d %H:%M:%S'
    )


class LandingArgumentParser(argparse.ArgumentParser):
    """Argument parser whose usage errors exit with EXIT_FAILURE."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(EXIT_FAILURE, f"{self.prog}: error: {message}\n")


def env_value(*names: str) -> str:
    """First non-empty value among the given environment variables."""
    for name in names:
        value = os.environ.get(name, '').strip()
        if value:
            return value
    return ''


def env_flag(*names: str) -> bool:
    return env_value(*names).lower() in ('1', 'true', 'yes', 'on')


def parse_cutoff(value: str) -> datetime:
    """argparse type for --since; naive values are taken as UTC."""
    try:
        return as_utc_aware(isoparse(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date: {value!r} (expected ISO-8601, e.g. 2019-01-01)")


def parse_arguments() -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = LandingArgumentParser(
        description='Calculate average landing PR times',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s kubernetes
  %(prog)s facebook/react --username gaearon
  %(prog)s myorg --since 2024-01-01 --max-workers 8 --output landing.csv

Environment Variables:
  GITHUB_TOKEN       GitHub personal access token (optional)
  LANDING_USERNAME   Default value for --username
  LANDING_DEBUG      Enable --debug when set to 1/true/yes

  NISEKOI_ACCESS_TOKEN, NISEKOI_USERNAME and NISEKOI_DEBUG are read as
  fallbacks for the three variables above.
        """
    )

    parser.add_argument(
        'target',
        nargs='?',
        default='',
        metavar='<owner> | <owner/repo>',
        help='Organization to scan, or a single repository in format owner/repo'
    )

    parser.add_argument(
        '--username', '-u',
        default=env_value('LANDING_USERNAME', 'NISEKOI_USERNAME'),
        help='If set, average times for USERNAME will be displayed'
    )

    parser.add_argument(
        '--access-token', '-t',
        default=GitHubClient.get_token_from_env() or env_value('NISEKOI_ACCESS_TOKEN'),
        help='GitHub access token used for authentication (default: $GITHUB_TOKEN)'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        default=env_flag('LANDING_DEBUG', 'NISEKOI_DEBUG'),
        help='Enable debug logging with per-PR details'
    )

    parser.add_argument(
        '--since',
        type=parse_cutoff,
        default=DEFAULT_CUTOFF,
        help='Only count PRs created after this date (default: 2019-01-01)'
    )

    parser.add_argument(
        '--max-workers',
        type=int,
        default=None,
        help='Maximum number of repositories fetched concurrently (default: one per repository)'
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        default=None,
        help='Write per-PR landing details to this CSV file'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Suppress all output except errors and the result'
    )

    return parser.parse_args()


def validate_identifier(identifier: str) -> bool:
    """Check that a string is a valid GitHub user or organization login."""
    return bool(identifier) and LOGIN_PATTERN.match(identifier) is not None


def validate_search_term(term: str) -> Tuple[str, str]:
    """
    Split a search term into owner and repository.

    Args:
        term: '<owner>' or '<owner/repo>'

    Returns:
        Tuple of (owner, repo); repo is empty for a bare owner

    Raises:
        ValueError: If the term does not conform to either form
    """
    if not term:
        raise ValueError("Search term is required")

    parts = term.strip().split('/')
    if len(parts) > 2:
        raise ValueError(f"Too many path segments in {term!r}")

    owner = parts[0]
    repo = parts[1] if len(parts) == 2 else ''

    if not validate_identifier(owner):
        raise ValueError(f"Invalid owner: {owner!r}")

    if len(parts) == 2 and (not REPOSITORY_PATTERN.match(repo) or repo in ('.', '..')):
        raise ValueError(f"Invalid repository name: {repo!r}")

    return owner, repo


def format_summary(summary: Dict[str, Any]) -> str:
    """Render the one-line landing time result."""
    landed = f"{summary['matched_prs']} out of " if summary.get('username') else ""
    return (f"Average landing PR time is: {summary['average_hours']:.2f} hours, "
            f"for a total of {landed}{summary['total_prs']} landed PRs")


def main() -> int:
    """
    Main application entry point.

    Returns:
        Exit code (0 for success, 1 bad search term, 2 bad username, 3 failure)
    """
    try:
        args = parse_arguments()

        if args.debug:
            log_level = "DEBUG"
        elif args.quiet:
            log_level = "ERROR"
        else:
            log_level = "INFO"

        setup_logging(log_level, args.verbose)
        logger = logging.getLogger(__name__)

        try:
            owner, repo = validate_search_term(args.target)
        except ValueError as e:
            logger.debug(f"Search term rejected: {e}")
            print("❌ The search term doesn't conform to [<owner> | <owner/repo>]")
            return EXIT_INVALID_SEARCH_TERM

        if args.username and not validate_identifier(args.username):
            print("❌ The username provided is invalid")
            return EXIT_INVALID_USERNAME

        config = AnalysisConfig(
            owner=owner,
            repository=repo,
            username=args.username,
            access_token=args.access_token,
            debug=args.debug,
            cutoff=args.since,
            max_workers=args.max_workers,
            output=args.output
        )

        target = f"{owner}/{repo}" if repo else owner
        logger.info(f"Calculating landing times for {target} (PRs created after {config.cutoff.isoformat()})")

        try:
            github_client = GitHubClient(config.access_token)
            analyzer = LandingTimeAnalyzer(github_client, config.max_workers,
                                           keep_details=bool(config.output))
            summary = calculate_landing_time(config, github_client, analyzer)
        except EmptyAggregateError as e:
            logger.error(f"Nothing to average: {e}")
            print(f"\n❌ {e}")
            return EXIT_FAILURE
        except PRAnalysisError as e:
            logger.error(f"Landing time calculation failed: {e}")
            print(f"\n❌ {e}")
            return EXIT_FAILURE

        print(format_summary(summary))
        print()

        if config.output:
            try:
                csv_reporter = CSVReporter(config.output)
                output_file = csv_reporter.generate_report({
                    'summary': summary,
                    'pr_details': analyzer.aggregator.details
                })
            except CSVReportError as e:
                logger.error(f"CSV generation failed: {e}")
                print(f"\n❌ Failed to generate CSV report: {e}")
                return EXIT_FAILURE

            if not args.quiet:
                print(f"📄 Detailed results saved to: {output_file}")

        return 0

    except KeyboardInterrupt:
        print("\n\n⚠️  Calculation interrupted by user")
        return EXIT_FAILURE

    except Exception as e:
        logger = logging.getLogger(__name__)
        logger.error(f"Unexpected error: {e}", exc_info=True)
        print(f"\n❌ Unexpected error occurred: {e}")
        print("Run with --debug for detailed error information")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
