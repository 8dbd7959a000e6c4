"""
GitHub API client for pull request landing time analysis.

This module provides a client for the two paginated GitHub listings the
analysis depends on: repositories of an organization and pull requests of
a repository.
"""

import os
import logging
import requests
from requests.adapters import HTTPAdapter
import time
from datetime import datetime
from typing import Dict, List, Optional, Any, Tuple
from urllib.parse import urlparse, parse_qs


class GitHubAPIError(Exception):
    """Custom exception for GitHub API related errors."""
    pass


class GitHubRateLimitError(GitHubAPIError):
    """Exception raised when GitHub API rate limit is exceeded."""
    pass


class GitHubAuthenticationError(GitHubAPIError):
    """Exception raised when GitHub API authentication fails."""
    pass


class GitHubClient:
    """
    Client for interacting with GitHub API to list repositories and pull requests.

    Every listing method fetches exactly one page and reports the number of
    the next page, leaving the pagination loop to the caller.
    """

    BASE_URL = "https://api.github.com"
    PER_PAGE = 100
    POOL_SIZE = 32

    def __init__(self, token: Optional[str] = None, pool_size: int = POOL_SIZE):
        """
        Initialize GitHub client with an optional authentication token.

        The session is shared by every worker thread of a run. It only issues
        GET requests and its headers are fixed here, so workers never mutate
        it. Fetches beyond pool_size concurrent connections still succeed but
        their connections are discarded instead of reused.

        Args:
            token: GitHub personal access token. Requests are anonymous when empty
            pool_size: Connections kept open to the API host
        """
        self.token = token or None
        self.session = requests.Session()
        self.session.mount('https://', HTTPAdapter(pool_connections=1, pool_maxsize=pool_size))
        self.session.headers.update({
            'Accept': 'application/vnd.github.v3+json',
            'User-Agent': 'GitHub-PR-Landing/1.0'
        })
        if self.token:
            self.session.headers['Authorization'] = f'token {self.token}'

        self.logger = logging.getLogger(__name__)

    @classmethod
    def get_token_from_env(cls) -> Optional[str]:
        """
        Read GitHub token from GITHUB_TOKEN environment variable.

        Returns:
            GitHub token from environment variable, or None if not set
        """
        return os.environ.get('GITHUB_TOKEN') or None

    def _get_rate_limit_info(self, response: requests.Response) -> Dict[str, Any]:
        """Extract rate limit information from response headers."""
        return {
            'remaining': int(response.headers.get('X-RateLimit-Remaining', 0)),
            'limit': int(response.headers.get('X-RateLimit-Limit', 5000)),
            'reset': int(response.headers.get('X-RateLimit-Reset', 0)),
            'used': int(response.headers.get('X-RateLimit-Used', 0))
        }

    def _calculate_wait_time(self, reset_timestamp: int) -> int:
        """Calculate how long until rate limit resets."""
        current_time = int(time.time())
        return max(0, reset_timestamp - current_time)

    def _handle_rate_limit(self, response: requests.Response) -> None:
        """
        Inspect GitHub API rate limit headers.

        Args:
            response: HTTP response from GitHub API

        Raises:
            GitHubRateLimitError: If rate limit is exhausted
        """
        # Without rate limit headers a 403 is a plain Forbidden
        if 'X-RateLimit-Remaining' not in response.headers:
            return

        rate_info = self._get_rate_limit_info(response)
        self.logger.debug(f"API rate limit: {rate_info['remaining']}/{rate_info['limit']} remaining")

        if response.status_code in (403, 429) and rate_info['remaining'] == 0:
            wait_time = self._calculate_wait_time(rate_info['reset'])
            reset_time_str = datetime.fromtimestamp(rate_info['reset']).strftime('%Y-%m-%d %H:%M:%S')

            raise GitHubRateLimitError(
                f"GitHub API rate limit exceeded ({rate_info['used']}/{rate_info['limit']} used). "
                f"Rate limit resets at {reset_time_str} (wait {wait_time} seconds)"
            )

        if rate_info['remaining'] < 100:
            reset_time_str = datetime.fromtimestamp(rate_info['reset']).strftime('%H:%M:%S')
            self.logger.warning(
                f"GitHub API rate limit running low: {rate_info['remaining']}/{rate_info['limit']} "
                f"remaining (resets at {reset_time_str})"
            )

    def _next_page(self, response: requests.Response) -> Optional[int]:
        """
        Read the next page number from the Link header.

        Returns:
            Next page number, or None on the last page
        """
        next_link = response.links.get('next', {}).get('url')
        if not next_link:
            return None

        page_values = parse_qs(urlparse(next_link).query).get('page')
        if not page_values:
            return None

        try:
            return int(page_values[0])
        except ValueError:
            raise GitHubAPIError(f"Malformed pagination link: {next_link}")

    def _get_page(self, url: str, params: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """
        Make one authenticated listing request.

        Args:
            url: API endpoint URL
            params: Query parameters for the request

        Returns:
            Tuple of (page items, next page number or None)

        Raises:
            GitHubAuthenticationError: If the token is rejected
            GitHubRateLimitError: If the rate limit is exhausted
            GitHubAPIError: For any other failed request
        """
        try:
            response = self.session.get(url, params=params)
        except requests.RequestException as e:
            raise GitHubAPIError(f"Failed to connect to GitHub API: {e}")

        self._handle_rate_limit(response)

        if response.status_code == 401:
            raise GitHubAuthenticationError("GitHub token is invalid or expired")
        elif response.status_code == 404:
            raise GitHubAPIError(f"Resource not found or not accessible: {url}")
        elif response.status_code != 200:
            raise GitHubAPIError(f"API request failed: {response.status_code} - {response.text}")

        try:
            items = response.json()
        except ValueError as e:
            raise GitHubAPIError(f"Invalid JSON in response from {url}: {e}")

        return items, self._next_page(response)

    def list_repositories_by_owner(self, owner: str, page: int = 1) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """
        Fetch one page of repositories belonging to an organization.

        Args:
            owner: Organization login
            page: Page number to fetch, starting at 1

        Returns:
            Tuple of (repository records, next page number or None)

        Raises:
            GitHubAPIError: If API request fails
        """
        if not owner:
            raise GitHubAPIError("Repository owner is required")

        url = f"{self.BASE_URL}/orgs/{owner}/repos"
        params = {'per_page': self.PER_PAGE, 'page': page}

        repos, next_page = self._get_page(url, params)
        self.logger.debug(f"Fetched {len(repos)} repositories for {owner} (page {page})")
        return repos, next_page

    def list_pull_requests(self, owner: str, repo: str, page: int = 1) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """
        Fetch one page of pull requests in any state from a repository.

        Args:
            owner: Repository owner (user or organization)
            repo: Repository name
            page: Page number to fetch, starting at 1

        Returns:
            Tuple of (pull request records, next page number or None)

        Raises:
            GitHubAPIError: If API request fails
        """
        if not owner or not repo:
            raise GitHubAPIError("Repository owner and name are required")

        url = f"{self.BASE_URL}/repos/{owner}/{repo}/pulls"
        params = {'state': 'all', 'per_page': self.PER_PAGE, 'page': page}

        prs, next_page = self._get_page(url, params)
        self.logger.debug(f"Fetched {len(prs)} pull requests from {owner}/{repo} (page {page})")
        return prs, next_page
