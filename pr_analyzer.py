"""
Pull request landing time analysis module.

This module resolves the repositories to scan, fetches their pull requests
concurrently, and folds every fetched pull request into one landing time
aggregate.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Dict, List, Any, NamedTuple, Optional

from dateutil import tz

from github_client import GitHubClient, GitHubAPIError
from landing_aggregator import Aggregator, AggregateState, parse_github_timestamp
from workday_calendar import WorkdayCalendar, as_utc_aware


DEFAULT_CUTOFF = datetime(2019, 1, 1, tzinfo=tz.UTC)


class PRAnalysisError(Exception):
    """Custom exception for PR analysis related errors."""
    pass


class RemoteFetchError(PRAnalysisError):
    """Raised when listing repositories or pull requests fails upstream."""
    pass


class Repository(NamedTuple):
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


class FetchResult(NamedTuple):
    repository: Repository
    pull_requests: List[Dict[str, Any]]
    error: Optional[Exception] = None


class AnalysisConfig(NamedTuple):
    """Settings for one landing time run."""
    owner: str
    repository: str = ''
    username: str = ''
    access_token: str = ''
    debug: bool = False
    cutoff: datetime = DEFAULT_CUTOFF
    max_workers: Optional[int] = None
    output: Optional[str] = None


class RepositoryResolver:
    """Decides which repositories a run scans."""

    def __init__(self, github_client: GitHubClient):
        self.github_client = github_client
        self.logger = logging.getLogger(__name__)

    def resolve(self, owner: str, explicit_repo: str = '') -> List[Repository]:
        """
        Resolve the repositories to scan.

        Args:
            owner: Organization or user login
            explicit_repo: Single repository name. Empty means every repository of the organization

        Returns:
            List of repositories

        Raises:
            RemoteFetchError: If listing the organization's repositories fails
        """
        if explicit_repo:
            return [Repository(owner=owner, name=explicit_repo)]

        records = []
        page = 1
        try:
            while page is not None:
                items, page = self.github_client.list_repositories_by_owner(owner, page)
                records.extend(items)
        except GitHubAPIError as e:
            raise RemoteFetchError(f"Failed to list repositories for {owner}: {e}") from e

        repositories = [
            Repository(owner=(record.get('owner') or {}).get('login', owner), name=record['name'])
            for record in records
        ]
        self.logger.info(f"Resolved {len(repositories)} repositories for {owner}")
        return repositories


class PullRequestSource:
    """Retrieves every pull request of one repository created after a cutoff."""

    def __init__(self, github_client: GitHubClient, cutoff: datetime = DEFAULT_CUTOFF):
        self.github_client = github_client
        self.cutoff = as_utc_aware(cutoff)
        self.logger = logging.getLogger(__name__)

    def fetch_all(self, repository: Repository) -> List[Dict[str, Any]]:
        """
        Fetch all pull requests in any state created strictly after the cutoff.

        Args:
            repository: Repository to fetch

        Returns:
            List of pull request data dictionaries

        Raises:
            RemoteFetchError: On the first failed page; no further pages are requested
        """
        retained = []
        page = 1
        try:
            while page is not None:
                prs, page = self.github_client.list_pull_requests(repository.owner, repository.name, page)
                retained.extend(self._after_cutoff(prs))
        except GitHubAPIError as e:
            raise RemoteFetchError(f"Failed to fetch pull requests for {repository.full_name}: {e}") from e

        self.logger.info(f"Fetched {len(retained)} pull requests from {repository.full_name}")
        return retained

    def _after_cutoff(self, prs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        kept = []
        for pr in prs:
            try:
                created_at = parse_github_timestamp(pr.get('created_at'))
                parse_github_timestamp(pr.get('merged_at'))
            except (ValueError, OverflowError) as e:
                self.logger.warning(f"Failed to parse date for PR #{pr.get('number', 'unknown')}: {e}")
                continue

            if created_at is None:
                self.logger.warning(f"PR #{pr.get('number', 'unknown')} missing created_at field")
                continue

            if created_at > self.cutoff:
                kept.append(pr)
        return kept


class LandingTimeAnalyzer:
    """
    Runs one landing time calculation across many repositories.

    Each repository is fetched on its own worker thread. All workers finish
    before any result is looked at; a single failed repository fails the
    whole run.
    """

    def __init__(self, github_client: GitHubClient, max_workers: Optional[int] = None,
                 calendar: Optional[WorkdayCalendar] = None, keep_details: bool = False):
        """
        Initialize the analyzer.

        Args:
            github_client: GitHubClient instance for API interactions
            max_workers: Cap on concurrent repository fetches. None means one worker per repository
            calendar: Workday calendar for the duration clamp
            keep_details: Keep per-PR landing records on the aggregator

        Raises:
            PRAnalysisError: If github_client is missing or max_workers is not positive
        """
        if not github_client:
            raise PRAnalysisError("GitHubClient is required")

        if max_workers is not None and max_workers < 1:
            raise PRAnalysisError("max_workers must be at least 1")

        self.github_client = github_client
        self.max_workers = max_workers
        self.calendar = calendar or WorkdayCalendar()
        self.keep_details = keep_details
        self.aggregator: Optional[Aggregator] = None
        self.logger = logging.getLogger(__name__)

    def _fetch_repository(self, source: PullRequestSource, repository: Repository) -> FetchResult:
        self.logger.debug(f"Fetching pull requests for {repository.full_name}")
        try:
            return FetchResult(repository, source.fetch_all(repository))
        except RemoteFetchError as e:
            return FetchResult(repository, [], e)

    def fetch_all(self, repositories: List[Repository], cutoff: datetime = DEFAULT_CUTOFF) -> List[FetchResult]:
        """
        Fetch every repository concurrently and wait for all of them.

        Returns:
            One FetchResult per repository, in the order given
        """
        if not repositories:
            return []

        source = PullRequestSource(self.github_client, cutoff)
        workers = self.max_workers or len(repositories)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self._fetch_repository, source, repo) for repo in repositories]

        return [future.result() for future in futures]

    def run(self, repositories: List[Repository], cutoff: datetime = DEFAULT_CUTOFF,
            author_filter: str = '') -> AggregateState:
        """
        Fetch and aggregate pull requests of all repositories.

        Args:
            repositories: Repositories to scan
            cutoff: Only PRs created strictly after this instant count
            author_filter: Author login to restrict to. Empty means everyone

        Returns:
            The aggregate over every repository

        Raises:
            RemoteFetchError: If any repository fetch failed
        """
        self.logger.info(f"Fetching pull requests from {len(repositories)} repositories")
        results = self.fetch_all(repositories, cutoff)

        for result in results:
            if result.error is not None:
                self.logger.error(f"Fetch failed for {result.repository.full_name}: {result.error}")
                raise result.error

        self.aggregator = Aggregator(author_filter, self.calendar, keep_details=self.keep_details)
        for result in results:
            self.aggregator.fold_all(result.pull_requests, result.repository.full_name)

        self.logger.info(f"Aggregated {self.aggregator.state.total_count} pull requests")
        return self.aggregator.state


def calculate_landing_time(config: AnalysisConfig, github_client: Optional[GitHubClient] = None,
                           analyzer: Optional[LandingTimeAnalyzer] = None) -> Dict[str, Any]:
    """
    Compute the average landing time for an owner or a single repository.

    Args:
        config: Run settings
        github_client: Client to use. Built from config.access_token when omitted
        analyzer: Analyzer to use. Built from config when omitted

    Returns:
        Summary dictionary from Aggregator.summary()

    Raises:
        RemoteFetchError: If any listing request failed
        EmptyAggregateError: If no merged pull request matched
    """
    if not config.owner:
        raise PRAnalysisError("Repository owner is required")

    client = github_client or GitHubClient(config.access_token)
    analyzer = analyzer or LandingTimeAnalyzer(client, config.max_workers,
                                               keep_details=bool(config.output))

    repositories = RepositoryResolver(client).resolve(config.owner, config.repository)
    analyzer.run(repositories, config.cutoff, config.username)
    return analyzer.aggregator.summary()
